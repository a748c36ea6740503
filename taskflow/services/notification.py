"""Notification service mapping client errors onto the notice surface."""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import structlog

from taskflow.exceptions import (
    AlreadyAcceptedError,
    LockedError,
    TaskflowError,
    ValidationError,
)

logger = structlog.get_logger()


class Presentation(str, Enum):
    """How a notice is shown to the user."""
    INLINE = "inline"
    TOAST = "toast"
    BANNER = "banner"
    SUCCESS = "success"


@dataclass(frozen=True)
class Notice:
    presentation: Presentation
    message: str
    code: str | None = None
    field: str | None = None


class Notifier(Protocol):
    """Toast/banner surface supplied by the UI."""

    def show(self, notice: Notice) -> None: ...


def notice_for(error: TaskflowError) -> Notice:
    """Decide how an error is presented.

    Validation errors sit next to the offending field, a locked task gets a
    blocking banner until refresh, a duplicate acceptance displays as success,
    everything else is a transient toast.
    """
    if isinstance(error, ValidationError):
        return Notice(Presentation.INLINE, error.message, error.code, error.field)
    if isinstance(error, LockedError):
        return Notice(Presentation.BANNER, error.message, error.code)
    if isinstance(error, AlreadyAcceptedError):
        return Notice(Presentation.SUCCESS, "Task accepted", error.code)
    return Notice(Presentation.TOAST, error.message, error.code)


class NotificationService:
    """Service pushing notices for user actions to the UI surface."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def success(self, message: str) -> Notice:
        notice = Notice(Presentation.SUCCESS, message)
        self.notifier.show(notice)
        return notice

    def report(self, error: TaskflowError) -> Notice:
        """Show an error and log it."""
        notice = notice_for(error)

        if isinstance(error, AlreadyAcceptedError):
            logger.warning("unexpected_duplicate_acceptance", task_id=error.task_id)
        else:
            logger.info(
                "action_failed",
                code=error.code,
                presentation=notice.presentation.value,
            )

        self.notifier.show(notice)
        return notice
