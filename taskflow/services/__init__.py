"""Services package."""

from taskflow.services.access_control import (
    TaskPermissions,
    can_manage_tasks,
    can_record_progress,
    task_permissions,
)
from taskflow.services.notification import Notice, NotificationService, Presentation
from taskflow.services.progress import (
    SEGMENT_PALETTE,
    ProgressLayout,
    allocate_segments,
    layout_for_task,
)
from taskflow.services.roles import Capabilities, resolve_capabilities
from taskflow.services.task_assignment import AssignmentLedger, is_overdue
from taskflow.services.workflow import AcceptanceGate, AcceptanceState

__all__ = [
    "TaskPermissions",
    "can_manage_tasks",
    "can_record_progress",
    "task_permissions",
    "Notice",
    "NotificationService",
    "Presentation",
    "SEGMENT_PALETTE",
    "ProgressLayout",
    "allocate_segments",
    "layout_for_task",
    "Capabilities",
    "resolve_capabilities",
    "AssignmentLedger",
    "is_overdue",
    "AcceptanceGate",
    "AcceptanceState",
]
