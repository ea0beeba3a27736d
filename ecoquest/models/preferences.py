"""
User preferences: one canonical, versioned schema

Two shapes exist in stored data:
- v1 (flat): {"email_notifications": true, "theme": "dark", ...}
- v2 (nested by category): {"notifications": {...}, "display": {...}, ...}

migrate_preferences() turns either into UserPreferences (v2). The ledger never
depends on preferences; migration happens at the persistence boundary only.
"""
import logging
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

PREFERENCES_VERSION = 2


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = True
    achievements: bool = True
    reminders: bool = True


class DisplayPreferences(BaseModel):
    theme: Literal["light", "dark", "system"] = "system"
    language: str = Field(default="en", min_length=2, max_length=5)
    animations: bool = True
    accessibility: bool = False


class LearningPreferences(BaseModel):
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    reminders: bool = True
    progress_tracking: bool = True
    gamification: bool = True


class PrivacyPreferences(BaseModel):
    profile_visibility: Literal["public", "private"] = "public"
    progress_sharing: bool = True
    leaderboard_participation: bool = True
    data_collection: bool = False


class UserPreferences(BaseModel):
    """Canonical preferences document"""
    version: Literal[2] = PREFERENCES_VERSION
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    display: DisplayPreferences = Field(default_factory=DisplayPreferences)
    learning: LearningPreferences = Field(default_factory=LearningPreferences)
    privacy: PrivacyPreferences = Field(default_factory=PrivacyPreferences)

    def to_row(self) -> dict[str, Any]:
        """Column values for the user_preferences table"""
        return {
            "notifications": self.notifications.model_dump(),
            "display": self.display.model_dump(),
            "learning": self.learning.model_dump(),
            "privacy": self.privacy.model_dump(),
        }


# v1 flat key -> (category, v2 field)
_FLAT_KEY_MAP: dict[str, tuple[str, str]] = {
    "email_notifications": ("notifications", "email"),
    "push_notifications": ("notifications", "push"),
    "achievement_notifications": ("notifications", "achievements"),
    "reminder_notifications": ("notifications", "reminders"),
    "theme": ("display", "theme"),
    "language": ("display", "language"),
    "animations": ("display", "animations"),
    "accessibility": ("display", "accessibility"),
    "difficulty": ("learning", "difficulty"),
    "learning_reminders": ("learning", "reminders"),
    "progress_tracking": ("learning", "progress_tracking"),
    "gamification": ("learning", "gamification"),
    "profile_visibility": ("privacy", "profile_visibility"),
    "progress_sharing": ("privacy", "progress_sharing"),
    "leaderboard_participation": ("privacy", "leaderboard_participation"),
    "data_collection": ("privacy", "data_collection"),
}

_CATEGORIES = ("notifications", "display", "learning", "privacy")


def migrate_preferences(raw: Optional[dict[str, Any]]) -> UserPreferences:
    """
    Convert a stored preferences document of any known shape to v2

    Unknown flat keys are dropped with a warning. Missing values take defaults.
    Raises pydantic.ValidationError if a known value is out of range.
    """
    # NULL category columns carry no data
    raw = {key: value for key, value in (raw or {}).items() if value is not None}
    if not raw:
        return UserPreferences()

    if any(isinstance(raw.get(category), dict) for category in _CATEGORIES):
        return UserPreferences(**{category: raw.get(category) or {} for category in _CATEGORIES})

    nested: dict[str, dict[str, Any]] = {category: {} for category in _CATEGORIES}
    for key, value in raw.items():
        if key == "version":
            continue
        target = _FLAT_KEY_MAP.get(key)
        if target is None:
            logger.warning(f"Dropping unknown v1 preference key: {key}")
            continue
        category, field_name = target
        nested[category][field_name] = value

    logger.info("Migrated v1 flat preferences to v2")
    return UserPreferences(**nested)
