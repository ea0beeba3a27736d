"""Content catalog models: tasks, story episodes, weekly challenges"""
from enum import Enum
from typing import Any, Optional
from datetime import date
from pydantic import BaseModel, Field, model_validator


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ChallengeType(str, Enum):
    INDIVIDUAL = "individual"
    TEAM = "team"
    GLOBAL = "global"


class UnlockableContent(BaseModel):
    """
    Anything gated on the learner's completed-task count

    Unlock state is never stored here; ask the unlock gate.
    """
    id: str
    title: str = ""
    required_prior_completions: int = Field(default=0, ge=0)


class Task(BaseModel):
    """A learning task an educator publishes"""
    id: str
    title: str
    description: Optional[str] = None
    difficulty: Difficulty = Difficulty.EASY
    points: int = Field(default=0, ge=0)
    created_by: Optional[str] = None


class Episode(UnlockableContent):
    """Story-mode episode"""
    description: Optional[str] = None
    episode_order: int = 0
    points: int = Field(default=0, ge=0)
    published: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Episode":
        """Build from an episodes row; points and task gate live in the content JSON"""
        content = row.get("content") or {}
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            description=content.get("description"),
            episode_order=row.get("episode_order") or 0,
            points=content.get("points", 0),
            required_prior_completions=content.get("required_tasks", 0),
            published=row.get("published", True),
        )


class WeeklyChallenge(UnlockableContent):
    """Weekly challenge tier"""
    description: Optional[str] = None
    challenge_type: ChallengeType = ChallengeType.INDIVIDUAL
    difficulty: Difficulty = Difficulty.EASY
    reward_points: int = Field(default=0, ge=0)
    bonus_points: int = Field(default=0, ge=0)
    start_date: date
    end_date: date
    max_progress: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def check_dates(self) -> "WeeklyChallenge":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    @property
    def total_reward(self) -> int:
        return self.reward_points + self.bonus_points

    def is_active(self, today: date) -> bool:
        return self.start_date <= today <= self.end_date

    def is_upcoming(self, today: date) -> bool:
        return today < self.start_date

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "WeeklyChallenge":
        """Build from a weekly_challenges row"""
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            description=row.get("description"),
            reward_points=row.get("reward_points") or 0,
            bonus_points=row.get("bonus_points") or 0,
            start_date=row["start_date"],
            end_date=row["end_date"],
            max_progress=row.get("max_progress") or 1,
            required_prior_completions=row.get("required_tasks") or 0,
        )
