"""Taskflow exceptions.

Every failure in the client core is local to the action that triggered it.
The hierarchy lets callers decide how to present each failure without
inspecting messages.
"""

from typing import Optional


class TaskflowError(Exception):
    """Base exception for client errors."""

    def __init__(self, message: str, code: str = "TASKFLOW_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(TaskflowError):
    """Malformed input, such as progress outside 0-100.

    Carries the offending field name so the error can be shown next to it.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message=message, code="VALIDATION_ERROR")


class ForbiddenError(TaskflowError):
    """The acting user lacks the role or ownership needed for a mutation."""

    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(message=message, code="FORBIDDEN")


class LockedError(TaskflowError):
    """A progress or status mutation was attempted on an accepted task."""

    def __init__(self, task_id: int | str, message: Optional[str] = None):
        self.task_id = task_id
        super().__init__(
            message=message or "This task has been accepted and can no longer be modified",
            code="TASK_LOCKED",
        )


class AlreadyAcceptedError(TaskflowError):
    """Acceptance was requested for a task that is already accepted."""

    def __init__(self, task_id: int | str):
        self.task_id = task_id
        super().__init__(
            message=f"Task {task_id} has already been accepted",
            code="TASK_ALREADY_ACCEPTED",
        )


class NotFoundError(TaskflowError):
    """Requested task, project or assignment does not exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message=message, code="NOT_FOUND")


class ConflictError(TaskflowError):
    """The task changed underneath a mutation.

    Raised for stale version stamps reported by the backend and for a second
    mutation issued while one is still pending on the same task.
    """

    def __init__(self, message: str = "The task was modified by someone else, please refresh"):
        super().__init__(message=message, code="CONFLICT")


class AuthenticationError(TaskflowError):
    """The backend rejected the credentials or the stored token."""

    def __init__(self, message: str = "Unauthenticated"):
        super().__init__(message=message, code="UNAUTHENTICATED")


class TransportError(TaskflowError):
    """Network failure or unexpected backend response.

    Transient: the user may retry the action, nothing is retried automatically.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message=message, code="TRANSPORT_ERROR")
