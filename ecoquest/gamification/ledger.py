"""
Points/Level/Streak/Badge Ledger

Single source of truth for one user's gamification state during a session.

Invariants:
- points never goes below 0
- level is derived from points on every read, so it can never be stale
- badges are append-only, in unlock order, unique by id

Operations never raise for domain problems. They return a MutationResult
whose status says whether the ledger changed, so a UI can show the right toast.
No I/O happens here; see ecoquest.services.ledger_session for persistence.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple
import logging

from ecoquest import config
from ecoquest.gamification.level_system import LevelProgress, calculate_level, calculate_level_progress
from ecoquest.models.badge import Badge
from ecoquest.models.ledger import LedgerSnapshot

logger = logging.getLogger(__name__)


class MutationStatus(str, Enum):
    """Outcome of a ledger mutation"""
    APPLIED = "applied"
    INVALID_AMOUNT = "invalid_amount"
    DUPLICATE_BADGE = "duplicate_badge"
    DUPLICATE_EVENT = "duplicate_event"


@dataclass
class MutationResult:
    """
    What a mutation did

    persistence_error is filled in by the session when the in-memory change
    applied but the write-through failed.
    """
    operation: str
    status: MutationStatus
    points: int
    level: int
    streak: int
    message: str = ""
    leveled_up: bool = False
    persistence_error: Optional[Exception] = None

    @property
    def applied(self) -> bool:
        return self.status == MutationStatus.APPLIED

    @property
    def is_noop(self) -> bool:
        return self.status in (MutationStatus.DUPLICATE_BADGE, MutationStatus.DUPLICATE_EVENT)

    @property
    def persisted(self) -> bool:
        return self.applied and self.persistence_error is None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Ledger:
    """In-memory gamification ledger for one user"""

    def __init__(
        self,
        user_id: str,
        points: int = 0,
        streak: int = 0,
        badges: Optional[Iterable[Badge]] = None,
        last_active_date: Optional[date] = None,
        level_size: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if points < 0:
            raise ValueError("points cannot be negative")
        if streak < 0:
            raise ValueError("streak cannot be negative")

        self.user_id = user_id
        self.level_size = level_size or config.LEVEL_SIZE
        self.last_active_date = last_active_date
        self._points = points
        self._streak = streak
        self._badges: List[Badge] = []
        self._badge_ids: set[str] = set()
        self._clock = clock

        for badge in badges or ():
            if badge.id in self._badge_ids:
                logger.warning(f"Skipping duplicate badge {badge.id} while loading ledger for {user_id}")
                continue
            self._badges.append(badge)
            self._badge_ids.add(badge.id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def points(self) -> int:
        return self._points

    @property
    def level(self) -> int:
        return calculate_level(self._points, self.level_size)

    @property
    def streak(self) -> int:
        return self._streak

    @property
    def badges(self) -> Tuple[Badge, ...]:
        return tuple(self._badges)

    def has_badge(self, badge_id: str) -> bool:
        return badge_id in self._badge_ids

    def latest_badges(self, limit: int = 3) -> List[Badge]:
        """Most recently unlocked first"""
        return list(reversed(self._badges[-limit:])) if limit > 0 else []

    def level_progress(self) -> LevelProgress:
        return calculate_level_progress(self._points, self.level_size)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_points(self, amount: int) -> MutationResult:
        """
        Add (or, for corrections, subtract) points

        Rejected with INVALID_AMOUNT if the total would drop below zero;
        points stay unchanged in that case.
        """
        if self._points + amount < 0:
            logger.info(
                f"Rejected add_points({amount}) for user {self.user_id}: "
                f"balance {self._points} would go negative"
            )
            return self._result(
                "add_points",
                MutationStatus.INVALID_AMOUNT,
                f"Cannot apply {amount} points: balance is only {self._points}",
            )

        old_level = self.level
        self._points += amount
        new_level = self.level

        logger.info(
            f"Added {amount} points for user {self.user_id}. "
            f"Total: {self._points}, Level: {new_level}"
        )
        if new_level > old_level:
            logger.info(f"User {self.user_id} leveled up from {old_level} to {new_level}!")

        result = self._result("add_points", MutationStatus.APPLIED, f"+{amount} points")
        result.leveled_up = new_level > old_level
        return result

    def unlock_badge(self, badge: Badge) -> MutationResult:
        """
        Append a badge, stamping unlocked_at if the caller didn't

        Duplicate ids are a reported no-op.
        """
        if badge.id in self._badge_ids:
            return self._result(
                "unlock_badge",
                MutationStatus.DUPLICATE_BADGE,
                f"Badge '{badge.name}' already unlocked",
            )

        if badge.unlocked_at is None:
            badge = badge.model_copy(update={"unlocked_at": self._clock()})

        self._badges.append(badge)
        self._badge_ids.add(badge.id)
        logger.info(f"User {self.user_id} unlocked badge: {badge.id} ({badge.name}, {badge.tier.value})")

        return self._result("unlock_badge", MutationStatus.APPLIED, f"Badge unlocked: {badge.name} {badge.icon}".rstrip())

    def update_streak(self) -> MutationResult:
        """Count one more qualifying day"""
        self._streak += 1
        return self._result("update_streak", MutationStatus.APPLIED, f"Streak: {self._streak} days")

    def reset_streak(self, value: int = 0) -> MutationResult:
        """Set the streak after a missed day (value chosen by the streak policy)"""
        if value < 0:
            return self._result("reset_streak", MutationStatus.INVALID_AMOUNT, "Streak cannot be negative")

        old_streak = self._streak
        self._streak = value
        logger.info(f"Streak reset for user {self.user_id}: {old_streak} -> {value}")
        return self._result("reset_streak", MutationStatus.APPLIED, f"Streak reset to {value}")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def to_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            user_id=self.user_id,
            points=self._points,
            streak=self._streak,
            badges=list(self._badges),
            last_active_date=self.last_active_date,
        )

    @classmethod
    def from_snapshot(cls, snapshot: LedgerSnapshot, level_size: Optional[int] = None, **kwargs) -> "Ledger":
        return cls(
            user_id=snapshot.user_id,
            points=snapshot.points,
            streak=snapshot.streak,
            badges=snapshot.badges,
            last_active_date=snapshot.last_active_date,
            level_size=level_size,
            **kwargs,
        )

    def _result(self, operation: str, status: MutationStatus, message: str) -> MutationResult:
        return MutationResult(
            operation=operation,
            status=status,
            points=self._points,
            level=self.level,
            streak=self._streak,
            message=message,
        )

    def __repr__(self) -> str:
        return (
            f"Ledger(user_id={self.user_id!r}, points={self._points}, level={self.level}, "
            f"streak={self._streak}, badges={len(self._badges)})"
        )
