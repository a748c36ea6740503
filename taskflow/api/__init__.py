"""Backend client package."""

from taskflow.api.client import ApiClient, MemoryNavigator, MemoryTokenStore
from taskflow.api.session import Session
from taskflow.api.sync import MutationState, TaskSync, TrackedTask

__all__ = [
    "ApiClient",
    "MemoryNavigator",
    "MemoryTokenStore",
    "Session",
    "MutationState",
    "TaskSync",
    "TrackedTask",
]
