"""
Gamification core for EcoQuest

This module implements the learner motivation model:
- Points ledger with derived levels (500 points per level)
- Daily streaks with a configurable reset policy
- Badges with typed unlock criteria
- Unlock gate for story episodes and weekly challenges
- Leaderboard ranking
"""

from ecoquest.gamification.ledger import Ledger, MutationResult, MutationStatus
from ecoquest.gamification.level_system import LevelProgress, calculate_level, calculate_level_progress
from ecoquest.gamification.unlock_gate import GateDecision, LearnerStats, evaluate
from ecoquest.gamification.streak_system import record_daily_activity, reset_to_one, reset_to_zero
from ecoquest.gamification.achievement_system import check_and_award_badges, load_badge_catalog

__all__ = [
    "Ledger",
    "MutationResult",
    "MutationStatus",
    "LevelProgress",
    "calculate_level",
    "calculate_level_progress",
    "GateDecision",
    "LearnerStats",
    "evaluate",
    "record_daily_activity",
    "reset_to_one",
    "reset_to_zero",
    "check_and_award_badges",
    "load_badge_catalog",
]
