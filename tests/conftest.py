"""Global test fixtures for ecoquest tests"""
import pytest
from datetime import date, datetime, timezone

from ecoquest.db.ledger_store import InMemoryLedgerStore
from ecoquest.gamification.achievement_system import load_badge_catalog
from ecoquest.gamification.streak_system import reset_to_one
from ecoquest.models.badge import Badge, BadgeTier
from ecoquest.models.content import Episode, Task, WeeklyChallenge
from ecoquest.models.user import Role, User
from ecoquest.services.ledger_session import LedgerSession


FIXED_NOW = datetime(2026, 10, 14, 9, 30, tzinfo=timezone.utc)
TODAY = date(2026, 10, 14)


class FlakyLedgerStore(InMemoryLedgerStore):
    """In-memory store whose next N saves (or loads) fail"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_saves = 0
        self.fail_loads = 0
        self.save_attempts = 0

    async def load_snapshot(self, user_id):
        if self.fail_loads > 0:
            self.fail_loads -= 1
            raise RuntimeError("backend unavailable")
        return await super().load_snapshot(user_id)

    async def save_snapshot(self, snapshot):
        self.save_attempts += 1
        if self.fail_saves > 0:
            self.fail_saves -= 1
            raise RuntimeError("write rejected")
        await super().save_snapshot(snapshot)


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "5f0c2b1e-learner"


@pytest.fixture
def student(test_user_id):
    return User(id=test_user_id, email="maya@example.org", full_name="Maya Green", role=Role.STUDENT)


@pytest.fixture
def educator():
    return User(id="9a1d-educator", email="teacher@example.org", full_name="Sam Rivers", role=Role.EDUCATOR)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


# ============================================================================
# Catalog Fixtures
# ============================================================================

@pytest.fixture
def badge_rows():
    """Rows as they come from the badges table"""
    return [
        {"id": "first-steps", "name": "First Steps", "description": "Complete your first task",
         "icon_url": "🌱", "criteria": {"kind": "task_count", "threshold": 1}},
        {"id": "eco-warrior", "name": "Eco Warrior", "description": "Complete 10 tasks",
         "icon_url": "🛡️", "tier": "silver", "criteria": {"type": "task_count", "value": 10}},
        {"id": "point-collector", "name": "Point Collector", "description": "Earn 500 points",
         "icon_url": "⭐", "tier": "silver", "criteria": {"kind": "points", "threshold": 500}},
        {"id": "week-streak", "name": "Week Streak", "description": "Stay active 7 days in a row",
         "icon_url": "🔥", "tier": "gold", "criteria": {"kind": "streak", "threshold": 7}},
        {"id": "story-explorer", "name": "Story Explorer", "description": "Finish a story episode",
         "icon_url": "📖", "criteria": {"kind": "episode_count", "threshold": 1}},
    ]


@pytest.fixture
def badge_catalog(badge_rows):
    return load_badge_catalog(badge_rows)


@pytest.fixture
def eco_warrior_badge():
    return Badge(id="eco-warrior", name="Eco Warrior", description="Complete 10 tasks",
                 icon="🛡️", tier=BadgeTier.SILVER)


@pytest.fixture
def episode_catalog():
    """Story episodes gated at 0, 2 and 5 completed tasks"""
    return [
        Episode(id="e1", title="The Polluted River", points=50, episode_order=1, required_prior_completions=0),
        Episode(id="e2", title="Forest Guardians", points=75, episode_order=2, required_prior_completions=2),
        Episode(id="e3", title="Ocean Cleanup", points=100, episode_order=3, required_prior_completions=5),
    ]


@pytest.fixture
def challenge_catalog():
    return [
        WeeklyChallenge(id="c1", title="Plastic-Free Week", reward_points=100, bonus_points=20,
                        start_date=date(2026, 10, 12), end_date=date(2026, 10, 18), max_progress=3),
        WeeklyChallenge(id="c2", title="Energy Saver", reward_points=150, required_prior_completions=5,
                        start_date=date(2026, 10, 12), end_date=date(2026, 10, 18)),
        WeeklyChallenge(id="c3", title="Green Commute", reward_points=80,
                        start_date=date(2026, 10, 19), end_date=date(2026, 10, 25)),
    ]


@pytest.fixture
def recycling_task():
    return Task(id="t-recycle", title="Sort your recycling", points=25)


@pytest.fixture
def leaderboard_rows():
    """Rows as they come from the leaderboard view"""
    return [
        {"user_id": "u-alex", "full_name": "Alex Chen", "avatar_url": None, "points": 1250, "badge_count": 5},
        {"user_id": "u-maya", "full_name": "Maya Green", "avatar_url": None, "points": 980, "badge_count": 4},
        {"user_id": "u-jordan", "full_name": "Jordan Lee", "avatar_url": None, "points": 980, "badge_count": 4},
        {"user_id": "u-priya", "full_name": "Priya Patel", "avatar_url": None, "points": 980, "badge_count": 2},
        {"user_id": "u-sam", "full_name": "Sam Okafor", "avatar_url": None, "points": 0, "badge_count": 0},
    ]


# ============================================================================
# Session Fixtures
# ============================================================================

@pytest.fixture
def memory_store():
    return InMemoryLedgerStore()


@pytest.fixture
def flaky_store():
    return FlakyLedgerStore()


@pytest.fixture
async def session(test_user_id, memory_store, fixed_clock):
    """Hydrated session for a brand-new learner"""
    ledger_session = LedgerSession(
        test_user_id,
        memory_store,
        level_size=500,
        policy=reset_to_one,
        clock=fixed_clock,
        max_retries=0,
    )
    await ledger_session.hydrate()
    yield ledger_session
    ledger_session.close()
