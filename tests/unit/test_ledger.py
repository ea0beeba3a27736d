"""Unit tests for the points/level/streak/badge ledger"""
import pytest
from datetime import datetime, timezone

from ecoquest.gamification.ledger import Ledger, MutationStatus
from ecoquest.models.badge import Badge, BadgeTier


FIXED_NOW = datetime(2026, 10, 14, 9, 30, tzinfo=timezone.utc)


def make_ledger(**kwargs):
    return Ledger("user-1", level_size=500, clock=lambda: FIXED_NOW, **kwargs)


def test_new_ledger_defaults():
    """A new learner starts at 0 points, level 1, no streak, no badges"""
    ledger = make_ledger()

    assert ledger.points == 0
    assert ledger.level == 1
    assert ledger.streak == 0
    assert ledger.badges == ()


def test_negative_initial_values_rejected():
    with pytest.raises(ValueError):
        make_ledger(points=-1)
    with pytest.raises(ValueError):
        make_ledger(streak=-3)


# ============================================================================
# Points
# ============================================================================

def test_add_points_applies():
    ledger = make_ledger()

    result = ledger.add_points(50)

    assert result.status == MutationStatus.APPLIED
    assert result.applied
    assert result.points == 50
    assert result.level == 1
    assert ledger.points == 50


def test_level_up_scenario():
    """0 -> 50 -> 510 crosses into level 2"""
    ledger = make_ledger()

    first = ledger.add_points(50)
    second = ledger.add_points(460)

    assert first.leveled_up is False
    assert second.leveled_up is True
    assert ledger.points == 510
    assert ledger.level == 2
    progress = ledger.level_progress()
    assert (progress.current_level, progress.points_into_level, progress.points_to_next) == (2, 10, 490)


def test_add_points_rejects_negative_balance():
    """100 then -150 is rejected and the balance stays at 100"""
    ledger = make_ledger()
    ledger.add_points(100)

    result = ledger.add_points(-150)

    assert result.status == MutationStatus.INVALID_AMOUNT
    assert not result.applied
    assert result.points == 100
    assert ledger.points == 100
    assert ledger.level == 1


def test_add_points_allows_corrections():
    ledger = make_ledger(points=100)

    result = ledger.add_points(-40)

    assert result.applied
    assert ledger.points == 60


def test_add_points_is_additive():
    """add_points(a); add_points(b) ends where add_points(a + b) does"""
    split = make_ledger()
    split.add_points(320)
    split.add_points(280)

    combined = make_ledger()
    combined.add_points(600)

    assert split.points == combined.points == 600
    assert split.level == combined.level == 2


def test_level_is_never_stale():
    ledger = make_ledger(points=499)
    assert ledger.level == 1

    ledger.add_points(1)
    assert ledger.level == 2

    ledger.add_points(-1)
    assert ledger.level == 1


# ============================================================================
# Badges
# ============================================================================

def test_unlock_badge_stamps_time(eco_warrior_badge):
    ledger = make_ledger()

    result = ledger.unlock_badge(eco_warrior_badge)

    assert result.applied
    assert ledger.has_badge("eco-warrior")
    assert ledger.badges[0].unlocked_at == FIXED_NOW


def test_unlock_badge_keeps_given_time(eco_warrior_badge):
    earlier = datetime(2026, 1, 2, tzinfo=timezone.utc)
    ledger = make_ledger()

    ledger.unlock_badge(eco_warrior_badge.model_copy(update={"unlocked_at": earlier}))

    assert ledger.badges[0].unlocked_at == earlier


def test_unlock_badge_twice_is_noop(eco_warrior_badge):
    """Unlocking "eco-warrior" twice leaves exactly one entry"""
    ledger = make_ledger()
    ledger.unlock_badge(eco_warrior_badge)

    result = ledger.unlock_badge(eco_warrior_badge)

    assert result.status == MutationStatus.DUPLICATE_BADGE
    assert result.is_noop
    assert [badge.id for badge in ledger.badges] == ["eco-warrior"]


def test_badges_keep_unlock_order():
    ledger = make_ledger()
    for badge_id in ("a", "b", "c", "d"):
        ledger.unlock_badge(Badge(id=badge_id, name=badge_id.upper()))

    assert [badge.id for badge in ledger.badges] == ["a", "b", "c", "d"]
    assert [badge.id for badge in ledger.latest_badges()] == ["d", "c", "b"]
    assert ledger.latest_badges(0) == []


def test_duplicate_badges_dropped_on_load():
    badge = Badge(id="first-steps", name="First Steps", tier=BadgeTier.BRONZE)

    ledger = make_ledger(badges=[badge, badge])

    assert len(ledger.badges) == 1


# ============================================================================
# Streak
# ============================================================================

def test_update_streak_seven_days():
    ledger = make_ledger()

    for _ in range(7):
        result = ledger.update_streak()

    assert result.applied
    assert ledger.streak == 7


def test_reset_streak():
    ledger = make_ledger(streak=12)

    assert ledger.reset_streak().applied
    assert ledger.streak == 0

    assert ledger.reset_streak(1).applied
    assert ledger.streak == 1


def test_reset_streak_rejects_negative():
    ledger = make_ledger(streak=4)

    result = ledger.reset_streak(-1)

    assert result.status == MutationStatus.INVALID_AMOUNT
    assert ledger.streak == 4


# ============================================================================
# Snapshots
# ============================================================================

def test_snapshot_round_trip(eco_warrior_badge):
    ledger = make_ledger(points=510, streak=3)
    ledger.unlock_badge(eco_warrior_badge)

    restored = Ledger.from_snapshot(ledger.to_snapshot(), level_size=500)

    assert restored.points == 510
    assert restored.level == 2
    assert restored.streak == 3
    assert restored.badges == ledger.badges
