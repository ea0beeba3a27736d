"""
Leaderboard ranking

Rows come from the leaderboard / weekly_leaderboard views. Ranking order:
points desc, then badge count desc, then name. Learners tied on both points
and badge count share a rank (1, 2, 2, 4). Level is derived with the same
formula the ledger uses.
"""

from dataclasses import dataclass
from typing import Any, Collection, Dict, Iterable, List, Optional
import logging

from ecoquest.gamification.level_system import calculate_level

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: str
    full_name: str
    points: int
    level: int
    badge_count: int
    avatar_url: Optional[str] = None
    is_current_user: bool = False


def rank_entries(
    rows: Iterable[Dict[str, Any]],
    current_user_id: Optional[str] = None,
    excluded_user_ids: Collection[str] = (),
    points_field: str = "points",
    level_size: Optional[int] = None,
) -> List[LeaderboardEntry]:
    """
    Rank leaderboard rows

    Args:
        rows: Dicts with user_id, full_name, points (or weekly_points), badge_count
        current_user_id: Marks the signed-in learner's entry
        excluded_user_ids: Learners who opted out of leaderboards
        points_field: 'points' for all-time, 'weekly_points' for the weekly board

    Returns:
        Entries in rank order
    """
    cleaned = []
    for row in rows:
        user_id = row.get("user_id")
        if not user_id or user_id in excluded_user_ids:
            continue
        cleaned.append({
            "user_id": str(user_id),
            "full_name": row.get("full_name") or "Anonymous",
            "points": max(int(row.get(points_field) or 0), 0),
            "badge_count": int(row.get("badge_count") or 0),
            "avatar_url": row.get("avatar_url"),
        })

    cleaned.sort(key=lambda r: (-r["points"], -r["badge_count"], r["full_name"].lower()))

    entries: List[LeaderboardEntry] = []
    previous_key = None
    rank = 0
    for position, row in enumerate(cleaned, start=1):
        key = (row["points"], row["badge_count"])
        if key != previous_key:
            rank = position
            previous_key = key
        entries.append(LeaderboardEntry(
            rank=rank,
            user_id=row["user_id"],
            full_name=row["full_name"],
            points=row["points"],
            level=calculate_level(row["points"], level_size),
            badge_count=row["badge_count"],
            avatar_url=row["avatar_url"],
            is_current_user=row["user_id"] == current_user_id,
        ))

    return entries


def find_user_rank(entries: Iterable[LeaderboardEntry], user_id: str) -> Optional[int]:
    """Rank of a learner, or None if not on the board"""
    for entry in entries:
        if entry.user_id == user_id:
            return entry.rank
    return None
