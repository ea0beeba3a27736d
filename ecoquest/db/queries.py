"""Gamification database queries"""
import logging
from typing import Optional
from psycopg.types.json import Jsonb

from ecoquest.db.connection import Database
from ecoquest.exceptions import RecordNotFoundError
from ecoquest.models.ledger import LedgerSnapshot
from ecoquest.models.preferences import UserPreferences

logger = logging.getLogger(__name__)

# Streak and reward-dedup state have no column on profiles; they live here.
GAMIFICATION_STATE_DDL = """
CREATE TABLE IF NOT EXISTS gamification_state (
    user_id UUID PRIMARY KEY REFERENCES profiles(id) ON DELETE CASCADE,
    streak INTEGER NOT NULL DEFAULT 0 CHECK (streak >= 0),
    last_active_date DATE,
    credited_events JSONB NOT NULL DEFAULT '[]'::jsonb,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

COMPLETED_SUBMISSION_STATUSES = ("approved", "completed")


async def ensure_gamification_schema(db: Database) -> None:
    """Create the gamification_state table if it is missing"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(GAMIFICATION_STATE_DDL)
            await conn.commit()
    logger.info("gamification_state table ensured")


# ==========================================
# Profiles / Ledger snapshot
# ==========================================

async def get_ledger_row(db: Database, user_id: str) -> Optional[dict]:
    """
    Get everything a ledger snapshot needs in one round trip

    Returns:
        {'points', 'badges', 'streak', 'last_active_date', 'credited_events'} or None
        when the user has no profile yet
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT p.points, p.badges,
                       COALESCE(g.streak, 0) AS streak,
                       g.last_active_date,
                       COALESCE(g.credited_events, '[]'::jsonb) AS credited_events
                FROM profiles p
                LEFT JOIN gamification_state g ON g.user_id = p.id
                WHERE p.id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            return dict(row) if row else None


async def save_ledger_snapshot(db: Database, snapshot: LedgerSnapshot) -> None:
    """
    Write a ledger snapshot (points + badges on profiles, the rest on gamification_state)

    Both writes commit together or not at all.

    Raises:
        RecordNotFoundError: the user has no profile row
    """
    badges_json = [badge.model_dump(mode="json") for badge in snapshot.badges]

    async with db.connection() as conn:
        async with conn.transaction():
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE profiles
                    SET points = %s,
                        badges = %s
                    WHERE id = %s
                    """,
                    (snapshot.points, Jsonb(badges_json), snapshot.user_id)
                )
                if cur.rowcount == 0:
                    raise RecordNotFoundError(
                        f"No profile for user {snapshot.user_id}",
                        record_type="Profile",
                        record_id=snapshot.user_id,
                    )

                await cur.execute(
                    """
                    INSERT INTO gamification_state (user_id, streak, last_active_date, credited_events)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (user_id) DO UPDATE
                    SET streak = EXCLUDED.streak,
                        last_active_date = EXCLUDED.last_active_date,
                        credited_events = EXCLUDED.credited_events,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (
                        snapshot.user_id,
                        snapshot.streak,
                        snapshot.last_active_date,
                        Jsonb(snapshot.credited_events),
                    )
                )

    logger.debug(f"Saved ledger snapshot for user {snapshot.user_id}: {snapshot.points} points")


async def update_avatar_url(db: Database, user_id: str, avatar_path: str) -> None:
    """Point the profile at a newly uploaded avatar"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "UPDATE profiles SET avatar_url = %s WHERE id = %s",
                (avatar_path, user_id)
            )
            await conn.commit()


# ==========================================
# Preferences
# ==========================================

async def get_user_preferences(db: Database, user_id: str) -> Optional[dict]:
    """Get raw preference columns (notifications, display, learning, privacy)"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT notifications, display, learning, privacy
                FROM user_preferences
                WHERE user_id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            return dict(row) if row else None


async def upsert_user_preferences(db: Database, user_id: str, preferences: UserPreferences) -> None:
    """Store canonical preferences"""
    row = preferences.to_row()
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO user_preferences (user_id, notifications, display, learning, privacy)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (user_id) DO UPDATE
                SET notifications = EXCLUDED.notifications,
                    display = EXCLUDED.display,
                    learning = EXCLUDED.learning,
                    privacy = EXCLUDED.privacy,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    user_id,
                    Jsonb(row["notifications"]),
                    Jsonb(row["display"]),
                    Jsonb(row["learning"]),
                    Jsonb(row["privacy"]),
                )
            )
            await conn.commit()


# ==========================================
# Catalogs
# ==========================================

async def get_badge_rows(db: Database) -> list[dict]:
    """All badge definitions"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT id, name, description, icon_url, criteria FROM badges ORDER BY created_at"
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]


async def get_episode_rows(db: Database) -> list[dict]:
    """Published episodes in story order"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id, title, content, episode_order, published
                FROM episodes
                WHERE published = TRUE
                ORDER BY episode_order NULLS LAST, created_at
                """
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]


async def get_weekly_challenge_rows(db: Database) -> list[dict]:
    """Weekly challenges by start date"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id, title, description, reward_points, start_date, end_date
                FROM weekly_challenges
                ORDER BY start_date, created_at
                """
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]


async def count_completed_tasks(db: Database, user_id: str) -> int:
    """Distinct tasks with an approved/completed submission"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT COUNT(DISTINCT task_id) AS completed
                FROM submissions
                WHERE user_id = %s AND status = ANY(%s)
                """,
                (user_id, list(COMPLETED_SUBMISSION_STATUSES))
            )
            row = await cur.fetchone()
            return int(row["completed"]) if row else 0


# ==========================================
# Leaderboards
# ==========================================

async def get_leaderboard_rows(db: Database, limit: int = 50, weekly: bool = False) -> list[dict]:
    """Rows from the leaderboard or weekly_leaderboard view"""
    if weekly:
        query = """
            SELECT user_id, full_name, avatar_url, weekly_points, 0 AS badge_count
            FROM weekly_leaderboard
            ORDER BY weekly_points DESC NULLS LAST
            LIMIT %s
        """
    else:
        query = """
            SELECT user_id, full_name, avatar_url, points, badge_count
            FROM leaderboard
            ORDER BY points DESC NULLS LAST
            LIMIT %s
        """

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, (limit,))
            rows = await cur.fetchall()
            return [dict(row) for row in rows]
