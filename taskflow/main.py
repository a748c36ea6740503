"""Client entry point."""

from dataclasses import dataclass

import httpx
import structlog

from taskflow.api.client import ApiClient, Navigator, TokenStore
from taskflow.api.session import Session
from taskflow.api.sync import TaskSync
from taskflow.config import Settings, get_settings
from taskflow.logging import configure_logging
from taskflow.services.notification import NotificationService, Notifier

logger = structlog.get_logger()


@dataclass
class TaskflowClient:
    """One session's worth of client services."""

    settings: Settings
    api: ApiClient
    session: Session
    sync: TaskSync

    async def start(self) -> bool:
        """Restore a stored session, if any."""
        logger.info("Starting Taskflow client", version=self.settings.app_version)
        return await self.session.restore()

    async def aclose(self) -> None:
        """Drop tracked tasks and close the HTTP connection pool."""
        self.sync.close()
        await self.api.aclose()
        logger.info("Taskflow client closed")


def create_client(
    settings: Settings | None = None,
    token_store: TokenStore | None = None,
    navigator: Navigator | None = None,
    notifier: Notifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TaskflowClient:
    """Create and wire the client services."""
    settings = settings or get_settings()
    configure_logging(settings)

    api = ApiClient(
        settings=settings,
        token_store=token_store,
        navigator=navigator,
        transport=transport,
    )
    session = Session(api)
    notifications = NotificationService(notifier) if notifier is not None else None

    return TaskflowClient(
        settings=settings,
        api=api,
        session=session,
        sync=TaskSync(session, notifications),
    )
