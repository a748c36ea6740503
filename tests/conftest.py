from __future__ import annotations

import pytest

from taskflow.api.client import ApiClient, MemoryNavigator, MemoryTokenStore
from taskflow.api.session import Session
from taskflow.api.sync import TaskSync
from taskflow.services.notification import NotificationService
from tests.factories import FakeBackend, RecordingNotifier, make_settings


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def token_store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def navigator() -> MemoryNavigator:
    return MemoryNavigator(current_path="/dashboard")


@pytest.fixture
def client(backend: FakeBackend, token_store: MemoryTokenStore, navigator: MemoryNavigator) -> ApiClient:
    return ApiClient(
        settings=make_settings(),
        token_store=token_store,
        navigator=navigator,
        transport=backend.transport,
    )


@pytest.fixture
def session(client: ApiClient) -> Session:
    return Session(client)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sync(session: Session, notifier: RecordingNotifier) -> TaskSync:
    return TaskSync(session, NotificationService(notifier))
