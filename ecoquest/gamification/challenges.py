"""
Weekly Challenge System

Tracks a learner's participation in the weekly challenges catalog:
joining (gated on completed tasks), recording progress, and completion.

Points are NOT credited here. record_progress() reports the reward and the
caller credits it through the ledger session with an idempotency key, so a
replayed completion never pays twice.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ecoquest.gamification.unlock_gate import is_unlocked
from ecoquest.models.content import WeeklyChallenge

logger = logging.getLogger(__name__)


class ChallengeStatus(Enum):
    """User challenge status"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class UserChallenge:
    """User's challenge progress"""
    challenge_id: str
    status: ChallengeStatus
    progress: int
    max_progress: int
    joined_at: datetime
    completed_at: Optional[datetime] = None


class ChallengeBoard:
    """One learner's view of the weekly challenges catalog"""

    def __init__(self, user_id: str, catalog: Sequence[WeeklyChallenge]):
        self.user_id = user_id
        self._catalog = {challenge.id: challenge for challenge in catalog}
        self._joined: Dict[str, UserChallenge] = {}

    def get_challenge(self, challenge_id: str) -> Optional[WeeklyChallenge]:
        return self._catalog.get(challenge_id)

    def get_user_challenge(self, challenge_id: str) -> Optional[UserChallenge]:
        return self._joined.get(challenge_id)

    @property
    def completed_count(self) -> int:
        return sum(1 for uc in self._joined.values() if uc.status == ChallengeStatus.COMPLETED)

    def split(self, today: date) -> Dict[str, List[WeeklyChallenge]]:
        """
        Group the catalog for display

        Returns:
            {'active': [...], 'upcoming': [...], 'joined': [...]} in catalog order
        """
        challenges = list(self._catalog.values())
        return {
            "active": [c for c in challenges if c.is_active(today)],
            "upcoming": [c for c in challenges if c.is_upcoming(today)],
            "joined": [c for c in challenges if c.id in self._joined],
        }

    def join(self, challenge_id: str, completions: int, today: date) -> Dict:
        """
        Join a challenge

        Returns:
            {
                'success': bool,
                'user_challenge': UserChallenge or None,
                'message': str
            }
        """
        challenge = self._catalog.get(challenge_id)
        if challenge is None:
            return {"success": False, "user_challenge": None, "message": f"Challenge '{challenge_id}' not found"}

        if challenge_id in self._joined:
            return {
                "success": False,
                "user_challenge": self._joined[challenge_id],
                "message": "You're already participating in this challenge!",
            }

        if today > challenge.end_date:
            return {"success": False, "user_challenge": None, "message": f"'{challenge.title}' has already ended"}

        if not is_unlocked(challenge, completions):
            remaining = challenge.required_prior_completions - completions
            return {
                "success": False,
                "user_challenge": None,
                "message": f"Complete {remaining} more tasks to unlock this challenge.",
            }

        user_challenge = UserChallenge(
            challenge_id=challenge_id,
            status=ChallengeStatus.IN_PROGRESS,
            progress=0,
            max_progress=challenge.max_progress,
            joined_at=datetime.now(timezone.utc),
        )
        self._joined[challenge_id] = user_challenge

        logger.info(f"User {self.user_id} joined challenge '{challenge_id}'")

        return {
            "success": True,
            "user_challenge": user_challenge,
            "message": f"You've joined \"{challenge.title}\". Good luck! 🌱",
        }

    def record_progress(self, challenge_id: str, steps: int = 1) -> Dict:
        """
        Record progress on a joined challenge

        Returns:
            {
                'success': bool,
                'progress': int,
                'max_progress': int,
                'completed': bool,
                'reward_points': int,  # non-zero only on the completing step
                'message': str
            }
        """
        user_challenge = self._joined.get(challenge_id)
        challenge = self._catalog.get(challenge_id)
        if user_challenge is None or challenge is None:
            return {
                "success": False,
                "progress": 0,
                "max_progress": challenge.max_progress if challenge else 0,
                "completed": False,
                "reward_points": 0,
                "message": "Join this challenge first.",
            }

        if user_challenge.status == ChallengeStatus.COMPLETED:
            return {
                "success": False,
                "progress": user_challenge.progress,
                "max_progress": user_challenge.max_progress,
                "completed": True,
                "reward_points": 0,
                "message": "Challenge already completed.",
            }

        user_challenge.progress = min(user_challenge.progress + max(steps, 0), user_challenge.max_progress)
        reward_points = 0

        if user_challenge.progress >= user_challenge.max_progress:
            user_challenge.status = ChallengeStatus.COMPLETED
            user_challenge.completed_at = datetime.now(timezone.utc)
            reward_points = challenge.total_reward
            message = f"Challenge Complete! Congratulations! You earned {reward_points} points."
            logger.info(f"User {self.user_id} completed challenge '{challenge_id}'")
        else:
            message = f"Progress updated: {user_challenge.progress}/{user_challenge.max_progress}"

        return {
            "success": True,
            "progress": user_challenge.progress,
            "max_progress": user_challenge.max_progress,
            "completed": user_challenge.status == ChallengeStatus.COMPLETED,
            "reward_points": reward_points,
            "message": message,
        }
