"""Pydantic models package."""

from taskflow.models.user import Role, User
from taskflow.models.project import (
    Assignment,
    AssignmentStatus,
    Comment,
    Page,
    Project,
    ProjectMember,
    ProjectRole,
    Task,
    TaskPriority,
    TaskStatus,
)

__all__ = [
    "Role",
    "User",
    "Assignment",
    "AssignmentStatus",
    "Comment",
    "Page",
    "Project",
    "ProjectMember",
    "ProjectRole",
    "Task",
    "TaskPriority",
    "TaskStatus",
]
