"""Task authorization matrix.

Four relationship classes decide who may mutate what on a task:
- ADMIN: organization admins (admin, superadmin) manage every task
- INCHARGE: users holding the incharge relationship on the task's project
- ASSIGNEE: users assigned to the task, owning their own assignment row
- OTHER: everyone else, read-only

The backend enforces these rules authoritatively; the client applies the same
matrix to hide controls and to refuse mutations before they are sent.
"""

from dataclasses import dataclass

import structlog

from taskflow.exceptions import ForbiddenError
from taskflow.models.project import Project, Task, TaskStatus
from taskflow.services.roles import Capabilities

logger = structlog.get_logger()


def can_manage_tasks(caps: Capabilities, project: Project | None) -> bool:
    """Check if the user may manage the tasks of a project."""
    if caps.is_admin:
        return True
    return project is not None and project.is_incharge(caps.user_id)


def can_record_progress(
    caps: Capabilities,
    project: Project | None,
    assignee_id: int,
) -> bool:
    """Check if the user may write progress for the given assignee."""
    if not caps.is_authenticated:
        return False
    if caps.user_id == assignee_id:
        return True
    return can_manage_tasks(caps, project)


def check_manage_rights(caps: Capabilities, project: Project | None) -> None:
    """Raise ForbiddenError unless the user manages the project's tasks."""
    if not can_manage_tasks(caps, project):
        logger.warning(
            "manage_rights_denied",
            user_id=caps.user_id,
            project_id=project.id if project else None,
        )
        raise ForbiddenError("Only admins or the project incharge can manage this task")


def check_progress_rights(
    caps: Capabilities,
    project: Project | None,
    assignee_id: int,
) -> None:
    """Raise ForbiddenError unless the user may write this assignee's progress."""
    if not can_record_progress(caps, project, assignee_id):
        logger.warning(
            "progress_rights_denied",
            user_id=caps.user_id,
            assignee_id=assignee_id,
            project_id=project.id if project else None,
        )
        raise ForbiddenError("You can only update your own progress on this task")


@dataclass(frozen=True)
class TaskPermissions:
    """What the viewer may do on one task, projected for display."""

    can_manage: bool
    is_assignee: bool
    is_accepted: bool
    can_update_progress: bool
    can_accept: bool

    @property
    def show_own_progress_controls(self) -> bool:
        return self.can_update_progress and self.is_assignee

    @property
    def show_manager_controls(self) -> bool:
        return self.can_manage and not self.is_assignee and not self.is_accepted

    @property
    def show_locked_notice(self) -> bool:
        return self.is_accepted and self.is_assignee

    @property
    def progress_controls_disabled(self) -> bool:
        return self.is_accepted


def task_permissions(
    caps: Capabilities,
    project: Project | None,
    task: Task,
) -> TaskPermissions:
    """Compute the viewer's permissions on a task."""
    can_manage = can_manage_tasks(caps, project)
    is_assignee = caps.user_id is not None and any(
        a.assignee_id == caps.user_id for a in task.assignees
    )
    accepted = task.accepted

    return TaskPermissions(
        can_manage=can_manage,
        is_assignee=is_assignee,
        is_accepted=accepted,
        can_update_progress=(can_manage or is_assignee) and not accepted,
        can_accept=can_manage and task.status == TaskStatus.COMPLETED and not accepted,
    )
