"""Unit tests for badge catalog loading and awarding"""
from datetime import datetime, timezone

from ecoquest.gamification.achievement_system import (
    check_and_award_badges,
    get_badge_progress,
    load_badge_catalog,
)
from ecoquest.gamification.ledger import Ledger
from ecoquest.gamification.unlock_gate import LearnerStats
from ecoquest.models.badge import BadgeTier, PointsCriteria, TaskCountCriteria


STAMP = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


def test_load_badge_catalog_parses_criteria(badge_catalog):
    """Both current and legacy criteria shapes are parsed"""
    by_id = {definition.id: definition for definition in badge_catalog}

    assert isinstance(by_id["first-steps"].criteria, TaskCountCriteria)
    assert by_id["eco-warrior"].criteria == TaskCountCriteria(threshold=10)
    assert isinstance(by_id["point-collector"].criteria, PointsCriteria)
    assert by_id["week-streak"].tier == BadgeTier.GOLD
    assert by_id["first-steps"].icon == "🌱"


def test_load_badge_catalog_skips_bad_rows(badge_rows):
    rows = badge_rows + [
        {"id": "mystery", "name": "Mystery", "criteria": {"kind": "karma", "threshold": 3}},
        {"id": "nameless", "criteria": {"kind": "points", "threshold": 1}},
    ]

    catalog = load_badge_catalog(rows)

    assert [d.id for d in catalog] == [row["id"] for row in badge_rows]


def test_check_and_award_badges(badge_catalog):
    ledger = Ledger("user-1", points=520, level_size=500)
    stats = LearnerStats(tasks_completed=1, points=520, level=2)

    unlocked = check_and_award_badges(ledger, stats, badge_catalog, unlocked_at=STAMP)

    assert [b["badge_id"] for b in unlocked] == ["first-steps", "point-collector"]
    assert unlocked[1]["tier"] == "silver"
    assert unlocked[0]["unlocked_at"] == STAMP
    assert ledger.has_badge("first-steps")


def test_check_and_award_badges_never_twice(badge_catalog):
    ledger = Ledger("user-1", level_size=500)
    stats = LearnerStats(tasks_completed=1)

    first = check_and_award_badges(ledger, stats, badge_catalog)
    second = check_and_award_badges(ledger, stats, badge_catalog)

    assert len(first) == 1
    assert second == []
    assert len(ledger.badges) == 1


def test_get_badge_progress(badge_catalog):
    ledger = Ledger("user-1", points=250, level_size=500)
    stats = LearnerStats(tasks_completed=1, points=250)
    check_and_award_badges(ledger, stats, badge_catalog)

    progress = get_badge_progress(ledger, stats, badge_catalog, include_locked=True)

    assert progress["total_unlocked"] == 1
    assert progress["total_badges"] == 5
    assert [b["badge_id"] for b in progress["unlocked"]] == ["first-steps"]
    locked = progress["locked"]
    assert locked[0]["badge_id"] == "point-collector"
    assert locked[0]["progress"]["percentage"] == 50
    assert "first-steps" not in [b["badge_id"] for b in locked]


def test_get_badge_progress_without_locked(badge_catalog):
    ledger = Ledger("user-1", level_size=500)

    progress = get_badge_progress(ledger, LearnerStats(), badge_catalog)

    assert "locked" not in progress
    assert progress["unlocked"] == []
