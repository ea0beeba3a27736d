"""Badge models for gamification"""
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class BadgeTier(str, Enum):
    """Badge tiers"""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class Badge(BaseModel):
    """
    Unlocked badge record

    Frozen: once a badge is appended to a ledger it is never mutated.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    icon: str = ""
    tier: BadgeTier = BadgeTier.BRONZE
    unlocked_at: Optional[datetime] = None


# ==========================================
# Badge criteria (tagged variants)
# ==========================================

class TaskCountCriteria(BaseModel):
    """Unlocked after N completed tasks"""
    kind: Literal["task_count"] = "task_count"
    threshold: int = Field(..., ge=0)


class PointsCriteria(BaseModel):
    """Unlocked at N total points"""
    kind: Literal["points"] = "points"
    threshold: int = Field(..., ge=0)


class LevelCriteria(BaseModel):
    """Unlocked on reaching level N"""
    kind: Literal["level"] = "level"
    threshold: int = Field(..., ge=1)


class StreakCriteria(BaseModel):
    """Unlocked at an N-day streak"""
    kind: Literal["streak"] = "streak"
    threshold: int = Field(..., ge=0)


class EpisodeCountCriteria(BaseModel):
    """Unlocked after N finished story episodes"""
    kind: Literal["episode_count"] = "episode_count"
    threshold: int = Field(..., ge=0)


class ChallengeCountCriteria(BaseModel):
    """Unlocked after N completed weekly challenges"""
    kind: Literal["challenge_count"] = "challenge_count"
    threshold: int = Field(..., ge=0)


BadgeCriteria = Annotated[
    Union[
        TaskCountCriteria,
        PointsCriteria,
        LevelCriteria,
        StreakCriteria,
        EpisodeCountCriteria,
        ChallengeCountCriteria,
    ],
    Field(discriminator="kind"),
]

_criteria_adapter = TypeAdapter(BadgeCriteria)


def parse_criteria(raw: dict[str, Any]) -> BadgeCriteria:
    """
    Parse the criteria JSON stored on a badges row

    Older rows use {"type": ..., "value": ...}; both shapes are accepted.
    Raises pydantic.ValidationError for unknown kinds.
    """
    data = dict(raw)
    if "kind" not in data and "type" in data:
        data["kind"] = data.pop("type")
    if "threshold" not in data and "value" in data:
        data["threshold"] = data.pop("value")
    return _criteria_adapter.validate_python(data)


class BadgeDefinition(BaseModel):
    """Catalog entry: a badge that can be earned and the rule that earns it"""
    id: str
    name: str
    description: str = ""
    icon: str = ""
    tier: BadgeTier = BadgeTier.BRONZE
    criteria: BadgeCriteria

    def to_badge(self, unlocked_at: Optional[datetime] = None) -> Badge:
        return Badge(
            id=self.id,
            name=self.name,
            description=self.description,
            icon=self.icon,
            tier=self.tier,
            unlocked_at=unlocked_at,
        )


def badge_from_json(raw: dict[str, Any]) -> Badge:
    """
    Parse one entry of profiles.badges

    Older client builds wrote {"type": "gold", "unlockedAt": ...}; both those
    keys and the current ones are accepted.
    """
    data = dict(raw)
    if "tier" not in data and "type" in data:
        data["tier"] = data.pop("type")
    if "unlocked_at" not in data and "unlockedAt" in data:
        data["unlocked_at"] = data.pop("unlockedAt")
    data["id"] = str(data["id"])
    return Badge.model_validate(data)
