"""Authenticated session state.

The session owns the process-wide token and the current user's identity.
Capabilities are recomputed on every authentication event so the rest of the
client never compares role strings.
"""

from typing import Any, Callable

import structlog

from taskflow.api.client import ApiClient
from taskflow.exceptions import TaskflowError
from taskflow.models.user import User
from taskflow.services.roles import ANONYMOUS, Capabilities, resolve_capabilities

logger = structlog.get_logger()


class Session:
    """Current user, token and capability set for one client."""

    def __init__(self, client: ApiClient):
        self.client = client
        self.user: User | None = None
        self.capabilities: Capabilities = ANONYMOUS
        self.is_authenticated = False
        self.is_loading = True
        self._invalidate_listeners: list[Callable[[], None]] = []
        client.on_unauthorized(self._forget_identity)

    @property
    def token(self) -> str | None:
        return self.client.token_store.get()

    @property
    def needs_email_verification(self) -> bool:
        return self.capabilities.needs_email_verification

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def restore(self) -> bool:
        """Validate a stored token and load the user it belongs to."""
        try:
            if not self.token:
                return False
            try:
                user = await self.client.get_user()
            except TaskflowError as e:
                logger.info("stored_token_rejected", code=e.code)
                self.invalidate()
                return False
            self._authenticate(user)
            return True
        finally:
            self.is_loading = False

    async def login(self, email: str, password: str) -> User:
        result = await self.client.login(email, password)
        self.client.token_store.set(result.token)
        self._authenticate(result.user)
        logger.info("logged_in", user_id=result.user.id)
        return result.user

    async def register(self, data: dict[str, Any]) -> User:
        result = await self.client.register(data)
        self.client.token_store.set(result.token)
        self._authenticate(result.user)
        logger.info("registered", user_id=result.user.id)
        return result.user

    async def logout(self) -> None:
        """Log out on the backend and always clear local state."""
        try:
            await self.client.logout()
        except TaskflowError as e:
            logger.info("logout_request_failed", code=e.code)
        finally:
            self.invalidate()
            logger.info("logged_out")

    def invalidate(self) -> None:
        """Drop the token and every piece of identity derived from it."""
        self.client.token_store.clear()
        self._forget_identity()

    def on_invalidate(self, listener: Callable[[], None]) -> None:
        """Register a callback run whenever the identity is dropped."""
        self._invalidate_listeners.append(listener)

    def update_user(self, user: User) -> None:
        self.user = user
        self.capabilities = resolve_capabilities(user)

    # =========================================================================
    # Internals
    # =========================================================================

    def _authenticate(self, user: User) -> None:
        self.update_user(user)
        self.is_authenticated = True
        self.is_loading = False

    def _forget_identity(self) -> None:
        self.user = None
        self.capabilities = ANONYMOUS
        self.is_authenticated = False
        for listener in self._invalidate_listeners:
            listener()
