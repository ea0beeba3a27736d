"""
Ledger persistence boundary

LedgerStore is the contract a LedgerSession hydrates from and writes through
to. Two implementations:
- PostgresLedgerStore: profiles + gamification_state via psycopg
- InMemoryLedgerStore: volatile, for tests and local runs
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import psycopg

from ecoquest.db import queries
from ecoquest.db.connection import Database
from ecoquest.exceptions import wrap_external_exception
from ecoquest.models.badge import badge_from_json
from ecoquest.models.ledger import LedgerSnapshot

logger = logging.getLogger(__name__)


class LedgerStore(ABC):
    """Durable home of ledger snapshots"""

    @abstractmethod
    async def load_snapshot(self, user_id: str) -> Optional[LedgerSnapshot]:
        """Return the stored snapshot, or None for a user with no saved state"""

    @abstractmethod
    async def save_snapshot(self, snapshot: LedgerSnapshot) -> None:
        """Persist a full snapshot (last write wins)"""


class InMemoryLedgerStore(LedgerStore):
    """Process-local store; nothing survives a restart"""

    def __init__(self, snapshots: Optional[Dict[str, LedgerSnapshot]] = None):
        self._snapshots: Dict[str, LedgerSnapshot] = dict(snapshots or {})
        self.save_count = 0

    async def load_snapshot(self, user_id: str) -> Optional[LedgerSnapshot]:
        snapshot = self._snapshots.get(user_id)
        return snapshot.model_copy(deep=True) if snapshot else None

    async def save_snapshot(self, snapshot: LedgerSnapshot) -> None:
        self._snapshots[snapshot.user_id] = snapshot.model_copy(deep=True)
        self.save_count += 1
        logger.debug(f"Saved snapshot for user {snapshot.user_id} to memory store (NOT PERSISTED)")


class PostgresLedgerStore(LedgerStore):
    """Snapshots stored on the relational backend"""

    def __init__(self, db: Database):
        self.db = db

    async def load_snapshot(self, user_id: str) -> Optional[LedgerSnapshot]:
        try:
            row = await queries.get_ledger_row(self.db, user_id)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="load_snapshot", user_id=user_id)

        if row is None:
            return None

        return LedgerSnapshot(
            user_id=user_id,
            points=row.get("points") or 0,
            streak=row.get("streak") or 0,
            badges=[badge_from_json(raw) for raw in row.get("badges") or []],
            last_active_date=row.get("last_active_date"),
            credited_events=list(row.get("credited_events") or []),
        )

    async def save_snapshot(self, snapshot: LedgerSnapshot) -> None:
        try:
            await queries.save_ledger_snapshot(self.db, snapshot)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="save_snapshot", user_id=snapshot.user_id)
