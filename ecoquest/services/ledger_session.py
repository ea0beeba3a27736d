"""
LedgerSession - one signed-in user's ledger bound to a durable store

Lifecycle:
1. hydrate(): fetch the snapshot (or start a new user at zero). All or
   nothing; cancelling it leaves the session NOT_HYDRATED.
2. mutations: applied to the in-memory Ledger first, then written through.
   A failed write keeps the in-memory change, marks the session diverged
   and puts a PersistenceDivergence on the MutationResult.
3. retry_persistence(): re-send the latest snapshot with backoff.
4. close(): drop the ledger (sign-out). A hydration still in flight is
   discarded and raises LedgerNotHydrated.

Reward events carry an idempotency key (task:<id>, episode:<id>,
challenge:<id>); a key that was already credited yields DUPLICATE_EVENT.
"""

import asyncio
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from ecoquest import config
from ecoquest.db.ledger_store import LedgerStore
from ecoquest.exceptions import HydrationFailed, LedgerNotHydrated, PersistenceDivergence
from ecoquest.gamification import achievement_system, streak_system
from ecoquest.gamification.ledger import Ledger, MutationResult, MutationStatus
from ecoquest.gamification.streak_system import StreakPolicy
from ecoquest.gamification.unlock_gate import LearnerStats
from ecoquest.models.badge import Badge, BadgeDefinition
from ecoquest.models.ledger import LedgerSnapshot
from ecoquest.observability.metrics import (
    active_sessions,
    record_badge,
    record_hydration,
    record_mutation,
    record_persistence_failure,
    record_points,
)
from ecoquest.resilience.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NOT_HYDRATED = "not_hydrated"
    HYDRATED = "hydrated"
    HYDRATION_FAILED = "hydration_failed"


class LedgerSession:
    """Owns the Ledger for one user between sign-in and sign-out"""

    def __init__(
        self,
        user_id: str,
        store: LedgerStore,
        level_size: Optional[int] = None,
        policy: Optional[StreakPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_retries: Optional[int] = None,
    ):
        self.user_id = user_id
        self.store = store
        self.level_size = level_size or config.LEVEL_SIZE
        self.policy = policy or streak_system.get_streak_policy()
        self.max_retries = config.PERSISTENCE_MAX_RETRIES if max_retries is None else max_retries
        self._clock = clock
        self._state = SessionState.NOT_HYDRATED
        self._ledger: Optional[Ledger] = None
        self._credited: List[str] = []
        self._diverged = False
        self._pending_operation: Optional[str] = None
        self._write_lock = asyncio.Lock()
        self._hydrate_lock = asyncio.Lock()
        # Bumped by close(); a load started under an older value is discarded
        self._generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_hydrated(self) -> bool:
        return self._state == SessionState.HYDRATED

    @property
    def diverged(self) -> bool:
        """True while the in-memory ledger is ahead of the store"""
        return self._diverged

    @property
    def ledger(self) -> Ledger:
        """
        The hydrated ledger

        Raises:
            HydrationFailed: the last hydration attempt failed
            LedgerNotHydrated: hydrate() has not completed
        """
        if self._state == SessionState.HYDRATION_FAILED:
            raise HydrationFailed(
                "Ledger unavailable: hydration failed",
                user_id=self.user_id,
                operation="read_ledger",
            )
        if self._state != SessionState.HYDRATED or self._ledger is None:
            raise LedgerNotHydrated(user_id=self.user_id, operation="read_ledger")
        return self._ledger

    @property
    def credited_events(self) -> List[str]:
        return list(self._credited)

    def is_credited(self, event_key: str) -> bool:
        return event_key in self._credited

    # ------------------------------------------------------------------
    # Hydration
    # ------------------------------------------------------------------

    async def hydrate(self) -> Ledger:
        """
        Load the user's snapshot into a fresh Ledger

        A user with no stored snapshot starts at 0 points, level 1, no streak,
        no badges. Calling hydrate() on a hydrated session is a no-op, and
        overlapping calls share a single load.

        Raises:
            HydrationFailed: the store could not be read
            LedgerNotHydrated: close() ran before the load finished
            asyncio.CancelledError: re-raised; the session stays NOT_HYDRATED
        """
        generation = self._generation

        async with self._hydrate_lock:
            if generation != self._generation:
                raise self._closed_during_hydration()
            if self._state == SessionState.HYDRATED:
                return self._ledger

            try:
                snapshot = await self.store.load_snapshot(self.user_id)
            except asyncio.CancelledError:
                if generation == self._generation:
                    self._state = SessionState.NOT_HYDRATED
                record_hydration("cancelled")
                logger.info(f"Hydration cancelled for user {self.user_id}")
                raise
            except Exception as e:
                if generation != self._generation:
                    raise self._closed_during_hydration() from e
                self._state = SessionState.HYDRATION_FAILED
                record_hydration("failed")
                raise HydrationFailed(
                    f"Could not load ledger snapshot for user {self.user_id}: {e}",
                    user_id=self.user_id,
                    operation="hydrate",
                    cause=e,
                ) from e

            if generation != self._generation:
                raise self._closed_during_hydration()

            return self._install(snapshot)

    def _closed_during_hydration(self) -> LedgerNotHydrated:
        record_hydration("cancelled")
        return LedgerNotHydrated(
            "Session closed before hydration completed",
            user_id=self.user_id,
            operation="hydrate",
        )

    def _install(self, snapshot: Optional[LedgerSnapshot]) -> Ledger:
        kwargs: Dict[str, Any] = {"clock": self._clock} if self._clock else {}
        if snapshot is None:
            ledger = Ledger(self.user_id, level_size=self.level_size, **kwargs)
            credited: List[str] = []
            record_hydration("new_user")
            logger.info(f"No stored ledger for user {self.user_id}; starting fresh")
        else:
            ledger = Ledger.from_snapshot(snapshot, level_size=self.level_size, **kwargs)
            credited = list(snapshot.credited_events)
            record_hydration("snapshot")

        # Swap in only once everything is built
        self._ledger = ledger
        self._credited = credited
        self._diverged = False
        self._state = SessionState.HYDRATED
        active_sessions.inc()

        logger.info(f"Hydrated ledger for user {self.user_id}: {ledger!r}")
        return ledger

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_points(
        self,
        amount: int,
        source: str = "manual",
        event_key: Optional[str] = None,
    ) -> MutationResult:
        """
        Credit (or correct) points

        Args:
            amount: Points to add; negative for corrections
            source: Metrics label (task/episode/challenge/manual)
            event_key: Idempotency key of the reward event, if any
        """
        ledger = self.ledger

        if event_key is not None and event_key in self._credited:
            record_mutation("add_points", MutationStatus.DUPLICATE_EVENT.value)
            logger.info(f"Skipping already credited event {event_key} for user {self.user_id}")
            return MutationResult(
                operation="add_points",
                status=MutationStatus.DUPLICATE_EVENT,
                points=ledger.points,
                level=ledger.level,
                streak=ledger.streak,
                message="These points were already awarded",
            )

        result = ledger.add_points(amount)
        record_mutation(result.operation, result.status.value)
        if not result.applied:
            return result

        record_points(source, amount)
        if event_key is not None:
            self._credited.append(event_key)

        await self._write_through(result)
        return result

    async def unlock_badge(self, badge: Badge) -> MutationResult:
        result = self.ledger.unlock_badge(badge)
        record_mutation(result.operation, result.status.value)
        if result.applied:
            record_badge(badge.tier.value)
            await self._write_through(result)
        return result

    async def update_streak(self) -> MutationResult:
        result = self.ledger.update_streak()
        record_mutation(result.operation, result.status.value)
        await self._write_through(result)
        return result

    async def record_daily_activity(self, activity_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Apply the streak policy for activity on a date

        Returns the streak_system result dict plus 'persistence_error'.
        """
        ledger = self.ledger
        last_date = ledger.last_active_date
        result = streak_system.record_daily_activity(ledger, activity_date, self.policy)
        result["persistence_error"] = None

        mutation = result["mutation"]
        if mutation is not None:
            record_mutation(mutation.operation, mutation.status.value)

        if ledger.last_active_date != last_date:
            operation = mutation.operation if mutation is not None else "record_activity"
            result["persistence_error"] = await self._persist(operation)
            if mutation is not None:
                mutation.persistence_error = result["persistence_error"]

        return result

    async def award_badges(
        self,
        stats: LearnerStats,
        catalog: Sequence[BadgeDefinition],
    ) -> Dict[str, Any]:
        """
        Unlock every badge in the catalog whose rule the stats now meet

        Returns:
            {'badges': [newly unlocked badge dicts], 'persistence_error': Exception or None}
        """
        unlocked = achievement_system.check_and_award_badges(self.ledger, stats, catalog)
        persistence_error = None

        for badge in unlocked:
            record_mutation("unlock_badge", MutationStatus.APPLIED.value)
            record_badge(badge["tier"])

        if unlocked:
            persistence_error = await self._persist("unlock_badge")

        return {"badges": unlocked, "persistence_error": persistence_error}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        """Current state; synced is False while diverged"""
        return self._durable_snapshot().model_copy(update={"synced": not self._diverged})

    def _durable_snapshot(self) -> LedgerSnapshot:
        return self.ledger.to_snapshot().model_copy(update={"credited_events": list(self._credited)})

    async def _write_through(self, result: MutationResult) -> None:
        result.persistence_error = await self._persist(result.operation)

    async def _persist(self, operation: str) -> Optional[PersistenceDivergence]:
        """Save the latest snapshot; returns the divergence instead of raising"""
        async with self._write_lock:
            try:
                await self.store.save_snapshot(self._durable_snapshot())
            except Exception as e:
                self._diverged = True
                self._pending_operation = operation
                record_persistence_failure(operation)
                return PersistenceDivergence(
                    f"Write-through failed after {operation} for user {self.user_id}: {e}",
                    pending_operation=operation,
                    user_id=self.user_id,
                    operation=operation,
                    cause=e,
                )

        if self._diverged:
            logger.info(f"Ledger for user {self.user_id} back in sync after {operation}")
        self._diverged = False
        self._pending_operation = None
        return None

    async def retry_persistence(self) -> bool:
        """
        Re-send the latest snapshot after a failed write-through

        Returns:
            True once the store holds the in-memory state (also when nothing was pending)

        Raises:
            PersistenceDivergence: every retry failed; the session stays diverged
        """
        ledger = self.ledger
        if not self._diverged:
            return True

        operation = self._pending_operation or "retry_persistence"
        async with self._write_lock:
            try:
                await retry_with_backoff(
                    self.store.save_snapshot,
                    self._durable_snapshot(),
                    max_retries=self.max_retries,
                    target="ledger",
                )
            except Exception as e:
                record_persistence_failure("retry_persistence")
                raise PersistenceDivergence(
                    f"Could not save ledger for user {self.user_id}: {e}",
                    pending_operation=operation,
                    user_id=self.user_id,
                    operation="retry_persistence",
                    cause=e,
                ) from e

            self._diverged = False
            self._pending_operation = None

        logger.info(f"Persisted pending {operation} for user {self.user_id}: {ledger!r}")
        return True

    def close(self) -> None:
        """Forget the ledger and invalidate any hydration still in flight"""
        self._generation += 1
        if self._state == SessionState.HYDRATED:
            active_sessions.dec()
            if self._diverged:
                logger.warning(
                    f"Closing session for user {self.user_id} with unsaved changes "
                    f"(pending: {self._pending_operation})"
                )
        self._ledger = None
        self._credited = []
        self._diverged = False
        self._pending_operation = None
        self._state = SessionState.NOT_HYDRATED
        logger.info(f"Closed ledger session for user {self.user_id}")
