"""
Identity provider interface

Sessions are owned by the external identity provider. The core only needs:
- current_user(): who is signed in (or None)
- on_session_change(callback): hear about sign-in / sign-out
- sign_out(): end the session

InMemoryIdentityProvider backs tests and local runs.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Union

from ecoquest.exceptions import AuthenticationError, AuthorizationError
from ecoquest.models.user import Role, User

logger = logging.getLogger(__name__)

SessionCallback = Callable[[Optional[User]], Union[None, Awaitable[None]]]


class IdentityProvider(ABC):
    """Opaque capability supplied by the auth backend"""

    @abstractmethod
    def current_user(self) -> Optional[User]:
        """Signed-in user, or None"""

    @abstractmethod
    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it"""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session"""


class InMemoryIdentityProvider(IdentityProvider):
    """Identity provider holding the session in process memory"""

    def __init__(self, user: Optional[User] = None):
        self._user = user
        self._callbacks: List[SessionCallback] = []

    def current_user(self) -> Optional[User]:
        return self._user

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def sign_in(self, user: User) -> None:
        self._user = user
        logger.info(f"User {user.id} signed in as {user.role.value}")
        await self._notify()

    async def sign_out(self) -> None:
        if self._user is None:
            return
        logger.info(f"User {self._user.id} signed out")
        self._user = None
        await self._notify()

    async def _notify(self) -> None:
        for callback in list(self._callbacks):
            result = callback(self._user)
            if inspect.isawaitable(result):
                await result


def require_user(provider: IdentityProvider) -> User:
    """Signed-in user or AuthenticationError"""
    user = provider.current_user()
    if user is None:
        raise AuthenticationError("No user is signed in")
    return user


def require_role(user: User, role: Role) -> User:
    """The user if they hold the role, else AuthorizationError"""
    if user.role != role:
        raise AuthorizationError(
            f"User {user.id} is a {user.role.value}, {role.value} required",
            resource=f"{role.value} area",
            user_id=user.id,
        )
    return user
