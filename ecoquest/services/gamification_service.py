"""
GamificationService - Gamification Business Logic

Turns learner activity (tasks, story episodes, weekly challenges) into
ledger mutations through a LedgerSession, then checks streaks, badges and
newly unlocked content. Every process_* call returns a result dict with a
user-facing message.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ecoquest.gamification.challenges import ChallengeBoard
from ecoquest.gamification.level_system import calculate_level_from_points, get_points_for_activity
from ecoquest.gamification.ledger import MutationResult, MutationStatus
from ecoquest.gamification.streak_system import format_streak_display
from ecoquest.gamification.unlock_gate import LearnerStats, evaluate, is_unlocked, next_unlock
from ecoquest.models.badge import BadgeDefinition
from ecoquest.models.content import Episode, Task
from ecoquest.services.ledger_session import LedgerSession

logger = logging.getLogger(__name__)


class GamificationService:
    """
    Service for gamification features.

    Responsibilities:
    - Points for tasks, episodes and challenges (each rewarded once)
    - Daily streak tracking
    - Badge checking and unlocking
    - Episode unlocks as completed tasks grow
    """

    def __init__(
        self,
        session: LedgerSession,
        badge_catalog: Sequence[BadgeDefinition] = (),
        episode_catalog: Sequence[Episode] = (),
        challenge_board: Optional[ChallengeBoard] = None,
        tasks_completed: int = 0,
    ):
        """
        Initialize GamificationService.

        Args:
            session: Hydrated (or about to be hydrated) ledger session
            badge_catalog: Badge definitions
            episode_catalog: Story episodes in story order
            challenge_board: The learner's weekly challenges
            tasks_completed: Completed-task count already on record
        """
        self.session = session
        self.badge_catalog = list(badge_catalog)
        self.episode_catalog = list(episode_catalog)
        self.challenge_board = challenge_board or ChallengeBoard(session.user_id, [])
        self.tasks_completed = tasks_completed
        logger.debug("GamificationService initialized")

    # ------------------------------------------------------------------
    # Activity processing
    # ------------------------------------------------------------------

    async def process_task_completion(self, task: Task, activity_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Process gamification for a completed task.

        Returns:
            {
                'points_awarded': int,
                'level_up': bool,
                'new_level': int,
                'current_streak': int,
                'badges_unlocked': list,
                'episodes_unlocked': list[str],
                'persisted': bool,
                'message': str  # User-facing message
            }
        """
        result = self._empty_result()
        points = get_points_for_activity("task", points=task.points)

        mutation = await self.session.add_points(points, source="task", event_key=f"task:{task.id}")
        if mutation.status == MutationStatus.DUPLICATE_EVENT:
            result["message"] = f"You already earned points for \"{task.title}\"."
            result["new_level"] = mutation.level
            result["current_streak"] = mutation.streak
            return result

        before = self.tasks_completed
        self.tasks_completed += 1
        await self._apply_common(result, mutation, points, activity_date)

        result["episodes_unlocked"] = self._newly_unlocked_episodes(before, self.tasks_completed)
        result["message"] = self._build_message(f"Task complete: {task.title}", result)

        logger.info(
            f"Gamification processed for task completion: user={self.session.user_id}, "
            f"points={result['points_awarded']}, streak={result['current_streak']}, "
            f"badges={len(result['badges_unlocked'])}"
        )
        return result

    async def process_episode_completion(self, episode: Episode, activity_date: Optional[date] = None) -> Dict[str, Any]:
        """Process gamification for a finished story episode (locked episodes earn nothing)"""
        result = self._empty_result()

        if not is_unlocked(episode, self.tasks_completed):
            remaining = episode.required_prior_completions - self.tasks_completed
            ledger = self.session.ledger
            result["new_level"] = ledger.level
            result["current_streak"] = ledger.streak
            result["message"] = f"🔒 Complete {remaining} more tasks to unlock \"{episode.title}\"."
            return result

        points = get_points_for_activity("episode", points=episode.points)
        mutation = await self.session.add_points(points, source="episode", event_key=f"episode:{episode.id}")
        if mutation.status == MutationStatus.DUPLICATE_EVENT:
            result["message"] = f"You already finished \"{episode.title}\"."
            result["new_level"] = mutation.level
            result["current_streak"] = mutation.streak
            return result

        await self._apply_common(result, mutation, points, activity_date)
        result["message"] = self._build_message(f"Episode complete: {episode.title}", result)

        logger.info(
            f"Gamification processed for episode completion: user={self.session.user_id}, "
            f"episode={episode.id}, points={result['points_awarded']}"
        )
        return result

    def join_challenge(self, challenge_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """Join a weekly challenge, gated on completed tasks"""
        return self.challenge_board.join(challenge_id, self.tasks_completed, today or date.today())

    async def process_challenge_progress(
        self,
        challenge_id: str,
        steps: int = 1,
        activity_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Record progress on a joined challenge; credits the reward once on completion

        Returns the challenge progress dict merged with the points/badges result.
        """
        progress = self.challenge_board.record_progress(challenge_id, steps)
        result = {**self._empty_result(), **progress}

        if not progress["success"] or progress["reward_points"] == 0:
            return result

        mutation = await self.session.add_points(
            progress["reward_points"], source="challenge", event_key=f"challenge:{challenge_id}"
        )
        if mutation.status == MutationStatus.DUPLICATE_EVENT:
            result["message"] = "Challenge reward was already awarded."
            return result

        await self._apply_common(result, mutation, progress["reward_points"], activity_date)
        result["message"] = self._build_message(progress["message"], result)
        return result

    async def record_daily_activity(self, activity_date: Optional[date] = None) -> Dict[str, Any]:
        """Count a qualifying day without awarding points"""
        return await self.session.record_daily_activity(activity_date)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def learner_stats(self) -> LearnerStats:
        ledger = self.session.ledger
        credited = self.session.credited_events
        return LearnerStats(
            tasks_completed=self.tasks_completed,
            points=ledger.points,
            level=ledger.level,
            streak=ledger.streak,
            episodes_completed=sum(1 for key in credited if key.startswith("episode:")),
            challenges_completed=max(
                self.challenge_board.completed_count,
                sum(1 for key in credited if key.startswith("challenge:")),
            ),
        )

    def get_dashboard(self) -> Dict[str, Any]:
        """
        Everything the dashboard header shows

        Returns:
            {
                'points': int,
                'level': dict (calculate_level_from_points),
                'streak': int,
                'streak_display': str,
                'latest_badges': list[Badge],
                'unlocked_episodes': list[str],
                'next_episode': Episode or None,
                'synced': bool
            }
        """
        ledger = self.session.ledger
        decisions = evaluate(self.episode_catalog, self.tasks_completed)
        return {
            "points": ledger.points,
            "level": calculate_level_from_points(ledger.points, ledger.level_size),
            "streak": ledger.streak,
            "streak_display": format_streak_display(ledger.streak),
            "latest_badges": ledger.latest_badges(),
            "unlocked_episodes": [eid for eid, d in decisions.items() if d.is_unlocked],
            "next_episode": next_unlock(self.episode_catalog, self.tasks_completed),
            "synced": not self.session.diverged,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _apply_common(
        self,
        result: Dict[str, Any],
        mutation: MutationResult,
        points: int,
        activity_date: Optional[date],
    ) -> None:
        """Fill in points, streak and badges after a reward mutation"""
        errors: List[Exception] = []
        if mutation.persistence_error is not None:
            errors.append(mutation.persistence_error)

        if mutation.applied:
            result["points_awarded"] = points
            result["level_up"] = mutation.leveled_up

        streak_result = await self.session.record_daily_activity(activity_date)
        result["current_streak"] = streak_result["current_streak"]
        result["streak_milestone"] = streak_result["milestone"]
        if streak_result["persistence_error"] is not None:
            errors.append(streak_result["persistence_error"])

        badge_result = await self.session.award_badges(self.learner_stats(), self.badge_catalog)
        result["badges_unlocked"] = badge_result["badges"]
        if badge_result["persistence_error"] is not None:
            errors.append(badge_result["persistence_error"])

        # Every write carries the full snapshot; only the last outcome counts
        result["new_level"] = self.session.ledger.level
        result["persisted"] = not self.session.diverged
        result["persistence_error"] = errors[-1] if errors and self.session.diverged else None

    def _newly_unlocked_episodes(self, before: int, after: int) -> List[str]:
        old = evaluate(self.episode_catalog, before)
        new = evaluate(self.episode_catalog, after)
        return [eid for eid, decision in new.items() if decision.is_unlocked and not old[eid].is_unlocked]

    def _build_message(self, headline: str, result: Dict[str, Any]) -> str:
        lines = [f"✅ {headline}"]
        if result["points_awarded"]:
            lines.append(f"⭐ +{result['points_awarded']} points")
        if result["level_up"]:
            lines.append(f"🎉 LEVEL UP! You're now level {result['new_level']}!")
        if result["current_streak"]:
            lines.append(format_streak_display(result["current_streak"]))
        if result.get("streak_milestone"):
            lines.append(f"🏆 {result['streak_milestone']}-day milestone reached!")
        for badge in result["badges_unlocked"]:
            lines.append(f"{badge['icon']} Badge unlocked: {badge['name']}".strip())
        for episode_id in result.get("episodes_unlocked", []):
            title = next((e.title for e in self.episode_catalog if e.id == episode_id), episode_id)
            lines.append(f"📖 New episode unlocked: {title}")
        if not result["persisted"]:
            lines.append("⚠️ Progress not saved yet. We'll keep trying.")
        return "\n".join(lines)

    def _empty_result(self) -> Dict[str, Any]:
        return {
            "points_awarded": 0,
            "level_up": False,
            "new_level": 1,
            "current_streak": 0,
            "streak_milestone": None,
            "badges_unlocked": [],
            "episodes_unlocked": [],
            "persisted": True,
            "persistence_error": None,
            "message": "",
        }
