"""
Points and Leveling System

Level curve is flat: every LEVEL_SIZE points (500 by default) is one level.

    level = points // LEVEL_SIZE + 1

Reward rules (points credited per activity):
- Task completion: the task's own point value
- Story episode completion: the episode's point value
- Weekly challenge completion: reward points + bonus points
- Streak milestone: no points, reported only

Every screen (dashboard, profile, leaderboard) derives level and progress
through this module so they cannot drift apart.
"""

from dataclasses import dataclass
from typing import Dict, Optional
import logging

from ecoquest import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelProgress:
    """Derived read of where a points total sits inside its level"""
    current_level: int
    points_into_level: int
    points_to_next: int

    @property
    def percentage(self) -> float:
        size = self.points_into_level + self.points_to_next
        return round(self.points_into_level / size * 100, 1)


def calculate_level(points: int, level_size: Optional[int] = None) -> int:
    """Level for a non-negative points total (level 1 at 0 points)"""
    size = level_size or config.LEVEL_SIZE
    return max(points, 0) // size + 1


def calculate_level_progress(points: int, level_size: Optional[int] = None) -> LevelProgress:
    """
    Progress inside the current level

    Returns:
        LevelProgress(current_level, points_into_level, points_to_next)
    """
    size = level_size or config.LEVEL_SIZE
    points = max(points, 0)
    into_level = points % size
    return LevelProgress(
        current_level=points // size + 1,
        points_into_level=into_level,
        points_to_next=size - into_level,
    )


def calculate_level_from_points(points: int, level_size: Optional[int] = None) -> Dict[str, int]:
    """
    Calculate level info as a plain dict for UI payloads

    Returns:
        {
            'current_level': int,
            'points_in_current_level': int,
            'points_to_next_level': int,
            'total_points_for_next_level': int
        }
    """
    size = level_size or config.LEVEL_SIZE
    progress = calculate_level_progress(points, size)
    return {
        "current_level": progress.current_level,
        "points_in_current_level": progress.points_into_level,
        "points_to_next_level": progress.points_to_next,
        "total_points_for_next_level": progress.current_level * size,
    }


def get_points_for_activity(activity_type: str, **kwargs) -> int:
    """
    Calculate points for different activity types

    Args:
        activity_type: 'task', 'episode' or 'challenge'
        **kwargs: points / reward_points / bonus_points from the catalog row

    Returns:
        Points to credit
    """
    if activity_type in ("task", "episode"):
        amount = kwargs.get("points", 0)
    elif activity_type == "challenge":
        amount = kwargs.get("reward_points", 0) + kwargs.get("bonus_points", 0)
    else:
        logger.warning(f"Unknown activity type for points: {activity_type}")
        amount = 0

    return amount
