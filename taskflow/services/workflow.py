"""Acceptance workflow for completed tasks.

A task starts OPEN. A project manager may accept it once its own status is
`completed`; acceptance is terminal. An accepted task rejects every progress
or status write for all of its assignments.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

import structlog

from taskflow.exceptions import AlreadyAcceptedError, LockedError, ValidationError
from taskflow.models.project import Project, Task, TaskStatus
from taskflow.models.user import User
from taskflow.services.access_control import can_manage_tasks, check_manage_rights
from taskflow.services.roles import Capabilities

logger = structlog.get_logger()

# Fields frozen by acceptance. Other task metadata stays editable by managers.
LOCKED_FIELDS = frozenset({"progress", "status"})


class AcceptanceState(str, Enum):
    OPEN = "open"
    ACCEPTED = "accepted"


class AcceptanceGate:
    """One-way OPEN -> ACCEPTED transition over a task."""

    def __init__(self, task: Task):
        self.task = task

    @property
    def state(self) -> AcceptanceState:
        return AcceptanceState.ACCEPTED if self.task.accepted else AcceptanceState.OPEN

    @property
    def is_locked(self) -> bool:
        return self.state == AcceptanceState.ACCEPTED

    def can_accept(self, actor: Capabilities, project: Project | None) -> bool:
        """Check whether `accept` would succeed for this actor."""
        return (
            not self.is_locked
            and self.task.status == TaskStatus.COMPLETED
            and can_manage_tasks(actor, project)
        )

    def accept(
        self,
        actor: Capabilities,
        project: Project | None,
        accepter: User | None = None,
        now: datetime | None = None,
    ) -> Task:
        """Accept the task and return the locked copy.

        Raises:
            AlreadyAcceptedError: the task is already accepted
            ForbiddenError: actor is neither admin nor project incharge
            ValidationError: the task status is not `completed`
        """
        if self.is_locked:
            raise AlreadyAcceptedError(self.task.id)

        check_manage_rights(actor, project)

        if self.task.status != TaskStatus.COMPLETED:
            raise ValidationError(
                "Only completed tasks can be accepted", field="status"
            )

        self.task = self.task.model_copy(
            update={
                "accepted_at": now or datetime.now(timezone.utc),
                "accepter": accepter,
                "is_accepted": True,
            }
        )

        logger.info(
            "task_accepted",
            task_id=self.task.id,
            accepted_by=actor.user_id,
        )

        return self.task

    def ensure_mutable(self, fields: Iterable[str]) -> None:
        """Raise LockedError if an accepted task would have locked fields changed."""
        if not self.is_locked:
            return
        touched = LOCKED_FIELDS.intersection(fields)
        if touched:
            logger.warning(
                "locked_task_mutation_refused",
                task_id=self.task.id,
                fields=sorted(touched),
            )
            raise LockedError(self.task.id)
