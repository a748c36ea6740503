"""Assignment ledger for per-assignee progress on a task."""

import math
from datetime import date

import structlog

from taskflow.exceptions import LockedError, NotFoundError, ValidationError
from taskflow.models.project import (
    Assignment,
    AssignmentStatus,
    Project,
    Task,
    TaskStatus,
)
from taskflow.services.access_control import check_progress_rights
from taskflow.services.roles import Capabilities

logger = structlog.get_logger()


def round_half_up(value: float) -> int:
    """Round a non-negative percentage for display."""
    return int(math.floor(value + 0.5))


def validate_progress(progress: object) -> int:
    """Return progress as an int in [0, 100] or raise ValidationError."""
    if isinstance(progress, bool) or not isinstance(progress, int):
        raise ValidationError("Progress must be a whole number", field="progress")
    if progress < 0 or progress > 100:
        raise ValidationError("Progress must be between 0 and 100", field="progress")
    return progress


def validate_assignment_status(status: object) -> AssignmentStatus:
    try:
        return AssignmentStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid status '{status}'", field="status") from None


def is_overdue(task: Task, today: date | None = None) -> bool:
    """Check if a task is past its due date and still open."""
    if task.due_date is None:
        return False
    if task.status in (TaskStatus.COMPLETED, TaskStatus.CANCELLED):
        return False
    return task.due_date < (today or date.today())


class AssignmentLedger:
    """Display view of a task's assignee progress and status.

    The ledger never mutates the Task or Assignment objects it was given.
    Each write produces new objects and `task` is replaced with an updated
    copy.
    """

    def __init__(self, task: Task):
        self.task = task

    # =========================================================================
    # Lookups
    # =========================================================================

    @property
    def assignments(self) -> list[Assignment]:
        return list(self.task.assignees)

    def assignment_for(self, user_id: int) -> Assignment | None:
        for assignment in self.task.assignees:
            if assignment.assignee_id == user_id:
                return assignment
        return None

    def is_assigned(self, user_id: int) -> bool:
        return self.assignment_for(user_id) is not None

    def assignee_ids(self) -> list[int]:
        return [a.assignee_id for a in self.task.assignees]

    # =========================================================================
    # Aggregates
    # =========================================================================

    def aggregate_progress(self) -> float:
        """Mean of all assignee progress values, 0.0 without assignees."""
        assignments = self.task.assignees
        if not assignments:
            return 0.0
        return sum(a.progress for a in assignments) / len(assignments)

    def overall_progress(self) -> int:
        """Aggregate progress rounded for display."""
        return round_half_up(self.aggregate_progress())

    def derive_display_status(self, assignment: Assignment) -> AssignmentStatus:
        """Status as stored.

        The only derivation (100% means completed) happens on write.
        """
        return assignment.status

    def all_completed(self) -> bool:
        assignments = self.task.assignees
        return bool(assignments) and all(
            a.status == AssignmentStatus.COMPLETED for a in assignments
        )

    def stats(self) -> dict:
        """Assignment statistics for the task."""
        stats = {
            "total": len(self.task.assignees),
            "by_status": {},
            "completed": 0,
        }

        for assignment in self.task.assignees:
            status = assignment.status.value
            if status not in stats["by_status"]:
                stats["by_status"][status] = 0
            stats["by_status"][status] += 1
            if assignment.status == AssignmentStatus.COMPLETED:
                stats["completed"] += 1

        return stats

    # =========================================================================
    # Writes
    # =========================================================================

    def record_progress(
        self,
        actor: Capabilities,
        assignee_id: int,
        progress: int,
        status: AssignmentStatus | str | None = None,
        project: Project | None = None,
    ) -> Assignment:
        """Record one assignee's progress (and optionally status).

        Setting progress to 100 always stores status `completed`, whatever
        status was supplied alongside it.

        Raises:
            LockedError: the task has been accepted
            ValidationError: progress outside 0-100 or unknown status
            NotFoundError: the user is not assigned to the task
            ForbiddenError: the actor may not write this assignee's row
        """
        if self.task.accepted:
            raise LockedError(self.task.id)

        progress = validate_progress(progress)
        new_status = validate_assignment_status(status) if status is not None else None

        current = self.assignment_for(assignee_id)
        if current is None:
            raise NotFoundError(f"User {assignee_id} is not assigned to task {self.task.id}")

        check_progress_rights(actor, project, assignee_id)

        if progress == 100:
            if new_status not in (None, AssignmentStatus.COMPLETED):
                logger.info(
                    "status_normalized_to_completed",
                    task_id=self.task.id,
                    assignee_id=assignee_id,
                    requested_status=new_status.value,
                )
            new_status = AssignmentStatus.COMPLETED

        updated = current.model_copy(
            update={
                "progress": progress,
                "status": new_status or current.status,
            }
        )
        assignees = [
            updated if a.assignee_id == assignee_id else a
            for a in self.task.assignees
        ]
        self.task = self.task.model_copy(update={"assignees": assignees})
        self.task = self.task.model_copy(
            update={"overall_progress": self.aggregate_progress()}
        )

        logger.info(
            "progress_recorded",
            task_id=self.task.id,
            assignee_id=assignee_id,
            actor_id=actor.user_id,
            progress=progress,
            status=updated.status.value,
        )

        return updated

    def plan_assignees(self, user_ids: list[int]) -> tuple[list[int], list[int]]:
        """Diff the current assignee set against a target list.

        Returns (to_add, to_remove). Duplicate ids in the target collapse,
        keeping first-seen order.
        """
        target: list[int] = []
        for user_id in user_ids:
            if user_id not in target:
                target.append(user_id)

        current = self.assignee_ids()
        to_add = [u for u in target if u not in current]
        to_remove = [u for u in current if u not in target]
        return to_add, to_remove
