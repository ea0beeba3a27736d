"""
Daily Streak System

The ledger only knows how to count one more day (update_streak) or set a
value (reset_streak). This module decides which to call when a learner is
active on a given date:

- first activity ever: streak starts
- same day as last activity: no change
- next day: update_streak()
- gap of 2+ days: the configured StreakPolicy decides the new value

Built-in policies differ only on the gap case:
- reset_to_one: the day that broke the gap counts as day 1
- reset_to_zero: the streak is cleared; the next consecutive day makes it 1
"""

from typing import Callable, Dict, Optional
from datetime import date, timedelta
import logging

from ecoquest import config
from ecoquest.exceptions import ConfigurationError
from ecoquest.gamification.ledger import Ledger, MutationResult, MutationStatus

logger = logging.getLogger(__name__)

# (last_active_date, today, current_streak) -> new streak
StreakPolicy = Callable[[Optional[date], date, int], int]

STREAK_MILESTONES = (7, 14, 30, 100)


def _without_gap(last_active_date: Optional[date], today: date, current_streak: int) -> Optional[int]:
    """New streak for the cases every policy agrees on, None for a gap"""
    if last_active_date is None:
        return current_streak + 1
    if today <= last_active_date:
        return current_streak
    if today - last_active_date == timedelta(days=1):
        return current_streak + 1
    return None


def reset_to_one(last_active_date: Optional[date], today: date, current_streak: int) -> int:
    new_streak = _without_gap(last_active_date, today, current_streak)
    return 1 if new_streak is None else new_streak


def reset_to_zero(last_active_date: Optional[date], today: date, current_streak: int) -> int:
    new_streak = _without_gap(last_active_date, today, current_streak)
    return 0 if new_streak is None else new_streak


_POLICIES: Dict[str, StreakPolicy] = {
    "one": reset_to_one,
    "zero": reset_to_zero,
}


def get_streak_policy(name: Optional[str] = None) -> StreakPolicy:
    """Look up a built-in policy by name (defaults to STREAK_RESET_POLICY)"""
    name = name or config.STREAK_RESET_POLICY
    try:
        return _POLICIES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown streak policy: {name}",
            config_key="STREAK_RESET_POLICY",
        ) from None


def record_daily_activity(
    ledger: Ledger,
    activity_date: Optional[date] = None,
    policy: Optional[StreakPolicy] = None,
) -> Dict[str, any]:
    """
    Apply one qualifying activity to the ledger's streak

    Args:
        ledger: The session's ledger
        activity_date: Date of activity (defaults to today)
        policy: Gap handling; defaults to the configured policy

    Returns:
        {
            'current_streak': int,
            'old_streak': int,
            'changed': bool,
            'milestone_reached': bool,
            'milestone': int | None,
            'message': str,
            'mutation': MutationResult | None
        }
    """
    if activity_date is None:
        activity_date = date.today()
    if policy is None:
        policy = get_streak_policy()

    last_date = ledger.last_active_date
    old_streak = ledger.streak
    mutation: Optional[MutationResult] = None

    if last_date is not None and activity_date <= last_date:
        message = f"Streak continues! Day {old_streak} 🔥"
    else:
        new_streak = policy(last_date, activity_date, old_streak)
        if new_streak == old_streak + 1:
            mutation = ledger.update_streak()
        elif new_streak != old_streak:
            mutation = ledger.reset_streak(new_streak)

        if mutation is not None and mutation.status != MutationStatus.APPLIED:
            logger.warning(f"Streak policy produced invalid value {new_streak} for user {ledger.user_id}")
            mutation = None

        ledger.last_active_date = activity_date

        if last_date is None and old_streak == 0:
            message = f"Streak started! Day {ledger.streak} 🎉"
        elif ledger.streak > old_streak:
            message = f"Streak continues! Day {ledger.streak} 🔥"
        else:
            message = f"Streak reset. Previous: {old_streak} days. Starting fresh! 💪"
            logger.info(f"User {ledger.user_id} streak broken. Was {old_streak}, last active {last_date}")

    current = ledger.streak
    milestone = None
    if ledger.streak > old_streak and current in STREAK_MILESTONES:
        milestone = current
        message += f"\n🏆 {milestone}-day milestone reached!"

    logger.info(f"Updated streak for user {ledger.user_id}: {old_streak} → {current} days")

    return {
        "current_streak": current,
        "old_streak": old_streak,
        "changed": current != old_streak,
        "milestone_reached": milestone is not None,
        "milestone": milestone,
        "message": message,
        "mutation": mutation,
    }


def format_streak_display(streak: int) -> str:
    """Short streak label for dashboards"""
    if streak <= 0:
        return "No active streak yet. Complete a task today to start one! 💪"
    if streak == 1:
        return "🔥 1 day streak"
    return f"🔥 {streak} day streak"
