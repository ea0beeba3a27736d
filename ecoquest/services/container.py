"""
Service Container

Explicit wiring of the ledger store, object storage, identity provider and
catalogs. There is no global instance: the host creates one container and
passes it where needed.

One LedgerSession is opened per signed-in user and discarded on sign-out.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging

from ecoquest.auth.identity import IdentityProvider, require_user
from ecoquest.db import queries
from ecoquest.db.connection import Database
from ecoquest.db.ledger_store import LedgerStore
from ecoquest.exceptions import ConfigurationError, LedgerNotHydrated
from ecoquest.gamification.achievement_system import load_badge_catalog
from ecoquest.gamification.challenges import ChallengeBoard
from ecoquest.gamification.leaderboard import LeaderboardEntry, rank_entries
from ecoquest.models.badge import BadgeDefinition
from ecoquest.models.content import Episode, WeeklyChallenge
from ecoquest.models.preferences import UserPreferences, migrate_preferences
from ecoquest.models.user import User
from ecoquest.services.gamification_service import GamificationService
from ecoquest.services.ledger_session import LedgerSession
from ecoquest.storage.avatars import AvatarStorage
from ecoquest.validators import validate_image, validate_profile_name

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Dependency container for one running client.

    Infrastructure dependencies (store, identity, storage, db) are injected.
    Sessions and services are created on demand per user.
    """

    # Infrastructure dependencies (injected)
    store: LedgerStore
    identity: IdentityProvider
    storage: Optional[AvatarStorage] = None
    db: Optional[Database] = None  # Needed for catalogs, preferences, leaderboards

    # Catalogs (injected or loaded with load_catalogs)
    badge_catalog: List[BadgeDefinition] = field(default_factory=list)
    episode_catalog: List[Episode] = field(default_factory=list)
    challenge_catalog: List[WeeklyChallenge] = field(default_factory=list)

    # Per-user state
    _sessions: Dict[str, LedgerSession] = field(default_factory=dict, init=False, repr=False)
    _services: Dict[str, GamificationService] = field(default_factory=dict, init=False, repr=False)
    _unsubscribe: Optional[Callable[[], None]] = field(default=None, init=False, repr=False)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Follow the identity provider: hydrate on sign-in, discard on sign-out"""
        if self._unsubscribe is None:
            self._unsubscribe = self.identity.on_session_change(self._on_session_change)
            logger.info("Service container attached to identity provider")

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_session_change(self, user: Optional[User]) -> None:
        if user is None:
            self.close_all_sessions()
            return
        try:
            await self.open_session(user)
        except LedgerNotHydrated:
            logger.info(f"User {user.id} signed out before their ledger loaded")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def open_session(self, user: User) -> LedgerSession:
        """
        Get the user's hydrated session, creating it on first use

        Raises:
            HydrationFailed: the snapshot could not be loaded (the session is
                kept so the caller can hydrate again)
            LedgerNotHydrated: the session was closed while it was loading
        """
        session = self._sessions.get(user.id)
        if session is None:
            session = LedgerSession(user.id, self.store)
            self._sessions[user.id] = session
            logger.debug(f"LedgerSession created for user {user.id}")

        await session.hydrate()
        return session

    def get_session(self, user_id: str) -> Optional[LedgerSession]:
        return self._sessions.get(user_id)

    def close_session(self, user_id: str) -> None:
        session = self._sessions.pop(user_id, None)
        self._services.pop(user_id, None)
        if session is not None:
            session.close()

    def close_all_sessions(self) -> None:
        for user_id in list(self._sessions):
            self.close_session(user_id)

    async def current_session(self) -> LedgerSession:
        """Session for the signed-in user (AuthenticationError if nobody is)"""
        return await self.open_session(require_user(self.identity))

    async def gamification_service(self, user: User) -> GamificationService:
        """Get the user's GamificationService (created on first access)"""
        service = self._services.get(user.id)
        if service is None:
            session = await self.open_session(user)
            tasks_completed = await queries.count_completed_tasks(self.db, user.id) if self.db else 0
            if self._sessions.get(user.id) is not session:
                raise LedgerNotHydrated(
                    "Session closed while the service was being created",
                    user_id=user.id,
                    operation="gamification_service",
                )
            service = GamificationService(
                session,
                badge_catalog=self.badge_catalog,
                episode_catalog=self.episode_catalog,
                challenge_board=ChallengeBoard(user.id, self.challenge_catalog),
                tasks_completed=tasks_completed,
            )
            self._services[user.id] = service
            logger.debug(f"GamificationService instantiated for user {user.id}")
        return service

    # ------------------------------------------------------------------
    # Catalogs, profile, preferences, leaderboards
    # ------------------------------------------------------------------

    def _require_db(self, operation: str) -> Database:
        if self.db is None:
            raise ConfigurationError(f"{operation} needs a database connection", config_key="DATABASE_URL")
        return self.db

    async def load_catalogs(self) -> None:
        """Load badge, episode and weekly challenge catalogs from the database"""
        db = self._require_db("load_catalogs")
        self.badge_catalog = load_badge_catalog(await queries.get_badge_rows(db))
        self.episode_catalog = [Episode.from_row(row) for row in await queries.get_episode_rows(db)]
        self.challenge_catalog = [WeeklyChallenge.from_row(row) for row in await queries.get_weekly_challenge_rows(db)]
        logger.info(
            f"Loaded catalogs: {len(self.badge_catalog)} badges, {len(self.episode_catalog)} episodes, "
            f"{len(self.challenge_catalog)} weekly challenges"
        )

    async def upload_avatar(self, user: User, filename: str, content_type: str, data: bytes) -> str:
        """
        Validate, upload and link a new avatar

        Returns:
            Public URL of the stored avatar
        """
        if self.storage is None:
            raise ConfigurationError("Avatar storage is not configured", config_key="SUPABASE_URL")

        image = validate_image(filename, content_type, data)
        path = await self.storage.upload_avatar(user.id, image)
        if self.db is not None:
            await queries.update_avatar_url(self.db, user.id, path)
        return self.storage.public_url(path)

    def clean_profile_name(self, name: str) -> str:
        return validate_profile_name(name)

    async def get_preferences(self, user_id: str) -> UserPreferences:
        row = await queries.get_user_preferences(self._require_db("get_preferences"), user_id)
        return migrate_preferences(row)

    async def save_preferences(self, user_id: str, preferences: UserPreferences) -> None:
        await queries.upsert_user_preferences(self._require_db("save_preferences"), user_id, preferences)

    async def get_leaderboard(
        self,
        current_user_id: Optional[str] = None,
        weekly: bool = False,
        limit: int = 50,
    ) -> List[LeaderboardEntry]:
        rows = await queries.get_leaderboard_rows(self._require_db("get_leaderboard"), limit=limit, weekly=weekly)
        return rank_entries(
            rows,
            current_user_id=current_user_id,
            points_field="weekly_points" if weekly else "points",
        )
