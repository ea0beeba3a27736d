"""
Unlock-Gate Evaluator

Decides which catalog items (story episodes, weekly-challenge tiers) are
accessible for a given completed-task count, and whether a badge's criteria
are met for a given set of learner stats.

Everything here is pure: no hidden state, same inputs give the same outputs.
Raising completions never locks an item that was unlocked before.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence
import logging

from ecoquest.exceptions import ValidationError
from ecoquest.models.badge import (
    BadgeCriteria,
    ChallengeCountCriteria,
    EpisodeCountCriteria,
    LevelCriteria,
    PointsCriteria,
    StreakCriteria,
    TaskCountCriteria,
)
from ecoquest.models.content import UnlockableContent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDecision:
    is_unlocked: bool
    required: int
    remaining: int


@dataclass(frozen=True)
class LearnerStats:
    """Counters a badge rule can look at"""
    tasks_completed: int = 0
    points: int = 0
    level: int = 1
    streak: int = 0
    episodes_completed: int = 0
    challenges_completed: int = 0


def is_unlocked(item: UnlockableContent, completions: int) -> bool:
    """Threshold 0 is always unlocked"""
    return completions >= item.required_prior_completions


def evaluate(catalog: Sequence[UnlockableContent], completions: int) -> Dict[str, GateDecision]:
    """
    Evaluate a catalog against a completions count

    Args:
        catalog: Ordered content items
        completions: Tasks the learner has finished (>= 0)

    Returns:
        {content_id: GateDecision} in catalog order
    """
    if completions < 0:
        raise ValidationError("completions cannot be negative", field="completions", value=completions)

    decisions: Dict[str, GateDecision] = {}
    for item in catalog:
        required = item.required_prior_completions
        decisions[item.id] = GateDecision(
            is_unlocked=completions >= required,
            required=required,
            remaining=max(required - completions, 0),
        )
    return decisions


def unlocked_ids(catalog: Sequence[UnlockableContent], completions: int) -> List[str]:
    """Ids of accessible items, in catalog order"""
    return [item_id for item_id, decision in evaluate(catalog, completions).items() if decision.is_unlocked]


def next_unlock(catalog: Iterable[UnlockableContent], completions: int) -> Optional[UnlockableContent]:
    """The locked item closest to unlocking (first in catalog order on ties)"""
    locked = [item for item in catalog if not is_unlocked(item, completions)]
    if not locked:
        return None
    return min(locked, key=lambda item: item.required_prior_completions)


# ============================================
# Badge criteria
# ============================================

def _criteria_value(criteria: BadgeCriteria, stats: LearnerStats) -> int:
    if isinstance(criteria, TaskCountCriteria):
        return stats.tasks_completed
    if isinstance(criteria, PointsCriteria):
        return stats.points
    if isinstance(criteria, LevelCriteria):
        return stats.level
    if isinstance(criteria, StreakCriteria):
        return stats.streak
    if isinstance(criteria, EpisodeCountCriteria):
        return stats.episodes_completed
    if isinstance(criteria, ChallengeCountCriteria):
        return stats.challenges_completed
    raise TypeError(f"Unsupported badge criteria: {criteria!r}")


def criteria_met(criteria: BadgeCriteria, stats: LearnerStats) -> bool:
    return _criteria_value(criteria, stats) >= criteria.threshold


def criteria_progress(criteria: BadgeCriteria, stats: LearnerStats) -> Dict[str, int]:
    """
    Progress toward a badge rule

    Returns:
        {'current': int, 'target': int, 'percentage': int}
    """
    current = _criteria_value(criteria, stats)
    target = criteria.threshold
    if target <= 0:
        percentage = 100
    else:
        percentage = min(int(current / target * 100), 100)
    return {"current": min(current, target), "target": target, "percentage": percentage}
