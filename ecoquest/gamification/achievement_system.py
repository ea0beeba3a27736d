"""
Badge (Achievement) System

Badge definitions come from the badges table; each row carries a criteria
JSON which is parsed into a typed rule at load time. Awarding walks the
catalog, asks the unlock gate whether each rule is met for the learner's
stats, and appends newly earned badges to the ledger.

Features:
- Progress tracking for locked badges
- Automatic detection and awarding
- Duplicate unlocks are reported no-ops, never double entries
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence
from datetime import datetime
import logging

from pydantic import ValidationError as PydanticValidationError

from ecoquest.gamification.ledger import Ledger, MutationStatus
from ecoquest.gamification.unlock_gate import LearnerStats, criteria_met, criteria_progress
from ecoquest.models.badge import BadgeDefinition, BadgeTier, parse_criteria

logger = logging.getLogger(__name__)


def load_badge_catalog(rows: Iterable[Dict[str, Any]]) -> List[BadgeDefinition]:
    """
    Build typed badge definitions from badges table rows

    Rows whose criteria cannot be parsed are skipped with a warning so one bad
    row does not hide the whole catalog.
    """
    catalog = []
    for row in rows:
        try:
            definition = BadgeDefinition(
                id=str(row["id"]),
                name=row["name"],
                description=row.get("description") or "",
                icon=row.get("icon") or row.get("icon_url") or "",
                tier=row.get("tier") or BadgeTier.BRONZE,
                criteria=parse_criteria(row.get("criteria") or {}),
            )
        except (KeyError, PydanticValidationError) as e:
            logger.warning(f"Skipping badge row {row.get('id')}: invalid definition ({e})")
            continue
        catalog.append(definition)

    logger.debug(f"Loaded {len(catalog)} badge definitions")
    return catalog


def check_and_award_badges(
    ledger: Ledger,
    stats: LearnerStats,
    catalog: Sequence[BadgeDefinition],
    unlocked_at: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Unlock every catalog badge whose rule the learner now meets

    Args:
        ledger: The session's ledger
        stats: Current learner counters
        catalog: Badge definitions
        unlocked_at: Timestamp to stamp (defaults to the ledger's clock)

    Returns:
        List of newly unlocked badges:
        [
            {
                'badge_id': str,
                'name': str,
                'description': str,
                'icon': str,
                'tier': str,
                'unlocked_at': datetime
            }
        ]
    """
    newly_unlocked = []

    for definition in catalog:
        if ledger.has_badge(definition.id):
            continue
        if not criteria_met(definition.criteria, stats):
            continue

        result = ledger.unlock_badge(definition.to_badge(unlocked_at))
        if result.status != MutationStatus.APPLIED:
            continue

        badge = ledger.badges[-1]
        newly_unlocked.append({
            "badge_id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "icon": badge.icon,
            "tier": badge.tier.value,
            "unlocked_at": badge.unlocked_at,
        })

    return newly_unlocked


def get_badge_progress(
    ledger: Ledger,
    stats: LearnerStats,
    catalog: Sequence[BadgeDefinition],
    include_locked: bool = False,
) -> Dict[str, Any]:
    """
    Get the learner's badges with progress

    Returns:
        {
            'unlocked': [unlocked badges, most recent first],
            'locked': [locked badges with progress] (if include_locked=True),
            'total_unlocked': int,
            'total_badges': int
        }
    """
    unlocked = [
        {
            "badge_id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "icon": badge.icon,
            "tier": badge.tier.value,
            "unlocked_at": badge.unlocked_at,
        }
        for badge in reversed(ledger.badges)
    ]

    catalog_ids = {definition.id for definition in catalog}
    result: Dict[str, Any] = {
        "unlocked": unlocked,
        "total_unlocked": len(unlocked),
        "total_badges": len(catalog_ids | {badge.id for badge in ledger.badges}),
    }

    if include_locked:
        locked = []
        for definition in catalog:
            if ledger.has_badge(definition.id):
                continue
            locked.append({
                "badge_id": definition.id,
                "name": definition.name,
                "description": definition.description,
                "icon": definition.icon,
                "tier": definition.tier.value,
                "progress": criteria_progress(definition.criteria, stats),
            })

        # Closest to completion first
        locked.sort(key=lambda x: x["progress"]["percentage"], reverse=True)
        result["locked"] = locked

    return result
