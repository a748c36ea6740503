"""Project, task, assignment and comment models.

These mirror the backend's JSON payloads. Embedded relationship data arrives
in a `pivot` object (the project role of a member, the progress and status
of an assignee) and is lifted onto the owning model on validation.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from taskflow.models.user import User


# =============================================================================
# Enums
# =============================================================================


class ProjectRole(str, Enum):
    """Relationship of a user to a specific project."""
    INCHARGE = "incharge"
    MEMBER = "member"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    """Task-level status, set by project managers."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    UNDER_REVIEW = "under_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssignmentStatus(str, Enum):
    """Per-assignee status, independent of the task's own status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    UNDER_REVIEW = "under_review"
    COMPLETED = "completed"


def _lift_pivot(data: Any, user_key: str, fields: tuple[str, ...]) -> Any:
    """Turn `{id, ..., pivot: {...}}` into `{user_key: {...}, **pivot_fields}`."""
    if not isinstance(data, dict) or user_key in data:
        return data
    payload = dict(data)
    pivot = payload.pop("pivot", None) or {}
    lifted: dict[str, Any] = {user_key: payload}
    for name in fields:
        if pivot.get(name) is not None:
            lifted[name] = pivot[name]
    return lifted


# =============================================================================
# Project
# =============================================================================


class ProjectMember(BaseModel):
    """A user attached to a project with a project-relationship role."""

    model_config = ConfigDict(frozen=True)

    user: User
    role: ProjectRole = ProjectRole.MEMBER

    @model_validator(mode="before")
    @classmethod
    def from_pivot(cls, data: Any) -> Any:
        return _lift_pivot(data, "user", ("role",))


class Project(BaseModel):
    """Project with its ordered member list."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str = ""
    status: str | None = None
    progress: float = 0
    users: list[ProjectMember] = Field(default_factory=list)

    def member(self, user_id: int) -> ProjectMember | None:
        for member in self.users:
            if member.user.id == user_id:
                return member
        return None

    def is_incharge(self, user_id: int | None) -> bool:
        """Check if a user holds the incharge relationship on this project."""
        if user_id is None:
            return False
        member = self.member(user_id)
        return member is not None and member.role == ProjectRole.INCHARGE


# =============================================================================
# Task
# =============================================================================


class Assignment(BaseModel):
    """One assignee's own progress and status on a task."""

    model_config = ConfigDict(frozen=True)

    assignee: User
    progress: int = Field(default=0, ge=0, le=100)
    status: AssignmentStatus = AssignmentStatus.PENDING

    @model_validator(mode="before")
    @classmethod
    def from_pivot(cls, data: Any) -> Any:
        return _lift_pivot(data, "assignee", ("progress", "status"))

    @property
    def assignee_id(self) -> int:
        return self.assignee.id


class Comment(BaseModel):
    """Append-only task comment."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    content: str
    user: User | None = None
    created_at: datetime | None = None


class Task(BaseModel):
    """Task with its embedded assignments and comments."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    project_id: int
    title: str = ""
    description: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_date: date | None = None

    # Legacy single progress value, still used for tasks without assignees
    progress: int = Field(default=0, ge=0, le=100)
    overall_progress: float | None = None

    accepted_at: datetime | None = None
    accepter: User | None = None
    is_accepted: bool = False

    # Version stamp for optimistic concurrency
    updated_at: datetime | None = None

    assignees: list[Assignment] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.is_accepted or self.accepted_at is not None

    def __repr__(self) -> str:
        return f"<Task id={self.id} status={self.status.value}>"


# =============================================================================
# Pagination
# =============================================================================

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Paginated list envelope returned by listing endpoints."""

    data: list[T] = Field(default_factory=list)
    current_page: int = 1
    last_page: int = 1
    per_page: int | None = None
    total: int | None = None

    @property
    def has_more(self) -> bool:
        return self.current_page < self.last_page
