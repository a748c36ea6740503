"""Task synchronization with optimistic local state.

Each tracked task moves through a small state machine per mutation:

    IDLE -> PENDING -> SETTLED      server accepted, task replaced wholesale
                    -> ROLLED_BACK  request failed, pre-request snapshot restored

The server payload always replaces the local task; fields are never merged.
Responses that arrive after a task was detached (its view torn down) are
dropped instead of applied.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog
from pydantic import ValidationError as PydanticValidationError

from taskflow.api.session import Session
from taskflow.exceptions import (
    AlreadyAcceptedError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TaskflowError,
    ValidationError,
)
from taskflow.models.project import AssignmentStatus, Page, Project, Task
from taskflow.services.access_control import check_manage_rights
from taskflow.services.notification import NotificationService
from taskflow.services.task_assignment import AssignmentLedger, validate_progress
from taskflow.services.workflow import AcceptanceGate

logger = structlog.get_logger()

EDITABLE_TASK_FIELDS = frozenset(
    {"title", "description", "priority", "status", "due_date", "progress"}
)


class MutationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SETTLED = "settled"
    ROLLED_BACK = "rolled_back"


@dataclass
class TrackedTask:
    """A task held by the client plus the state of its last mutation."""

    task: Task
    state: MutationState = MutationState.IDLE
    snapshot: Task | None = None
    error: TaskflowError | None = None
    detached: bool = False


def version_of(task: Task) -> str | None:
    return task.updated_at.isoformat() if task.updated_at else None


def _wire_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class TaskSync:
    """Reads and mutations for the tasks a view is showing."""

    def __init__(self, session: Session, notifications: NotificationService | None = None):
        self.session = session
        self.client = session.client
        self.notifications = notifications
        self._tracked: dict[int, TrackedTask] = {}
        session.on_invalidate(self.close)

    # =========================================================================
    # Tracking
    # =========================================================================

    def track(self, task: Task) -> TrackedTask:
        """Start (or restart) tracking a task with a fresh server copy.

        A task with a mutation in flight keeps its entry; the response replaces
        it anyway. Any other replaced entry is detached.
        """
        current = self._tracked.get(task.id)
        if current is not None:
            if current.state == MutationState.PENDING:
                logger.info("track_skipped_pending", task_id=task.id)
                return current
            current.detached = True
        tracked = TrackedTask(task=task)
        self._tracked[task.id] = tracked
        return tracked

    def tracked(self, task_id: int) -> TrackedTask | None:
        return self._tracked.get(task_id)

    def task(self, task_id: int) -> Task:
        return self._require(task_id).task

    def detach(self, task_id: int) -> None:
        """Stop tracking a task; in-flight responses for it are discarded."""
        tracked = self._tracked.pop(task_id, None)
        if tracked is not None:
            tracked.detached = True

    def close(self) -> None:
        for task_id in list(self._tracked):
            self.detach(task_id)

    def _require(self, task_id: int) -> TrackedTask:
        tracked = self._tracked.get(task_id)
        if tracked is None:
            raise NotFoundError(f"Task {task_id} is not loaded")
        return tracked

    # =========================================================================
    # Reads
    # =========================================================================

    async def load_project_tasks(self, project_id: int, **filters: Any) -> Page[Task]:
        page = await self.client.list_project_tasks(project_id, **filters)
        for task in page.data:
            self.track(task)
        return page

    async def load_my_tasks(
        self,
        search: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        per_page: int | None = None,
        page: int = 1,
    ) -> Page[Task]:
        result = await self.client.list_my_tasks(
            search=search,
            status=status,
            priority=priority,
            per_page=per_page or self.client.settings.my_tasks_page_size,
            page=page,
        )
        for task in result.data:
            self.track(task)
        return result

    async def refresh(self, task_id: int) -> Task:
        """Re-fetch a tracked task and replace it wholesale."""
        tracked = self._require(task_id)
        task = await self.client.get_task(tracked.task.project_id, task_id)
        if not tracked.detached:
            tracked.task = task
        return task

    # =========================================================================
    # Mutations
    # =========================================================================

    async def update_progress(
        self,
        task_id: int,
        progress: int,
        status: AssignmentStatus | str | None = None,
        assignee_id: int | None = None,
        project: Project | None = None,
    ) -> Task:
        """Write an assignee's progress, by default the current user's."""
        tracked = self._require(task_id)
        caps = self.session.capabilities
        target = assignee_id if assignee_id is not None else caps.user_id

        ledger = AssignmentLedger(tracked.task)
        try:
            if target is None:
                raise ForbiddenError("You must be logged in to update progress")
            updated = ledger.record_progress(caps, target, progress, status, project)
        except TaskflowError as e:
            self._report(e)
            raise

        body: dict[str, Any] = {"progress": updated.progress}
        if status is not None or updated.progress == 100:
            body["status"] = updated.status.value
        if target != caps.user_id:
            body["assignee_id"] = target
        self._add_version(body, tracked.task)

        task = tracked.task
        return await self._mutate(
            tracked,
            lambda: self.client.update_task(task.project_id, task.id, body),
            optimistic=ledger.task,
        )

    async def update_task(
        self,
        task_id: int,
        project: Project | None = None,
        **fields: Any,
    ) -> Task:
        """Edit task-level fields. Managers only."""
        tracked = self._require(task_id)
        try:
            unknown = set(fields) - EDITABLE_TASK_FIELDS
            if unknown:
                raise ValidationError(
                    f"Unknown task field '{sorted(unknown)[0]}'", field=sorted(unknown)[0]
                )
            if not fields:
                raise ValidationError("Nothing to update")
            AcceptanceGate(tracked.task).ensure_mutable(fields)
            check_manage_rights(self.session.capabilities, project)
            if "progress" in fields:
                validate_progress(fields["progress"])
            optimistic = self._apply_fields(tracked.task, fields)
        except TaskflowError as e:
            self._report(e)
            raise

        body = {key: _wire_value(value) for key, value in fields.items()}
        self._add_version(body, tracked.task)

        task = tracked.task
        return await self._mutate(
            tracked,
            lambda: self.client.update_task(task.project_id, task.id, body),
            optimistic=optimistic,
        )

    async def assign(
        self,
        task_id: int,
        user_ids: list[int],
        project: Project | None = None,
    ) -> Task:
        """Replace the assignee set of a task. Managers only."""
        tracked = self._require(task_id)
        try:
            check_manage_rights(self.session.capabilities, project)
        except TaskflowError as e:
            self._report(e)
            raise

        ledger = AssignmentLedger(tracked.task)
        to_add, to_remove = ledger.plan_assignees(user_ids)
        assignees = [u for u in ledger.assignee_ids() if u not in to_remove] + to_add
        logger.info(
            "assignees_planned",
            task_id=task_id,
            added=to_add,
            removed=to_remove,
        )

        task = tracked.task
        return await self._mutate(
            tracked,
            lambda: self.client.assign_users(
                task.project_id, task.id, assignees, version_of(task)
            ),
        )

    async def accept(self, task_id: int, project: Project | None = None) -> Task:
        """Accept a completed task, locking all progress on it."""
        tracked = self._require(task_id)
        gate = AcceptanceGate(tracked.task)
        try:
            gate.accept(self.session.capabilities, project, accepter=self.session.user)
        except TaskflowError as e:
            self._report(e)
            raise

        task = tracked.task
        try:
            return await self._mutate(
                tracked,
                lambda: self.client.accept_task(task.project_id, task.id, version_of(task)),
                optimistic=gate.task,
            )
        except AlreadyAcceptedError:
            # Someone else accepted first; pick up their acceptance.
            if not tracked.detached:
                try:
                    await self.refresh(task_id)
                except TaskflowError as e:
                    logger.warning("accepted_task_refresh_failed", task_id=task_id, code=e.code)
            raise

    async def add_comment(self, task_id: int, content: str) -> Task:
        """Append a comment, then reload the task."""
        tracked = self._require(task_id)
        content = content.strip()
        try:
            if not self.session.is_authenticated:
                raise ForbiddenError("You must be logged in to comment")
            if not content:
                raise ValidationError("Comment cannot be empty", field="content")
        except TaskflowError as e:
            self._report(e)
            raise

        task = tracked.task

        async def send() -> Task:
            await self.client.add_comment(task.project_id, task.id, content)
            return await self.client.get_task(task.project_id, task.id)

        return await self._mutate(tracked, send)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _mutate(
        self,
        tracked: TrackedTask,
        send: Callable[[], Awaitable[Task]],
        optimistic: Task | None = None,
    ) -> Task:
        if tracked.state == MutationState.PENDING:
            error = ConflictError("An update for this task is already in progress")
            self._report(error)
            raise error

        tracked.snapshot = tracked.task
        tracked.state = MutationState.PENDING
        tracked.error = None
        if optimistic is not None:
            tracked.task = optimistic

        try:
            task = await send()
        except TaskflowError as e:
            tracked.task = tracked.snapshot
            tracked.snapshot = None
            tracked.state = MutationState.ROLLED_BACK
            tracked.error = e
            logger.info("mutation_rolled_back", task_id=tracked.task.id, code=e.code)
            if not tracked.detached:
                self._report(e)
            raise

        if tracked.detached:
            logger.info("response_discarded", task_id=task.id)
            return task

        tracked.task = task
        tracked.snapshot = None
        tracked.state = MutationState.SETTLED
        logger.info("mutation_settled", task_id=task.id)
        return task

    def _report(self, error: TaskflowError) -> None:
        if self.notifications is not None:
            self.notifications.report(error)

    @staticmethod
    def _add_version(body: dict[str, Any], task: Task) -> None:
        version = version_of(task)
        if version is not None:
            body["expected_version"] = version

    @staticmethod
    def _apply_fields(task: Task, fields: dict[str, Any]) -> Task:
        try:
            return Task.model_validate({**task.model_dump(), **fields})
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else None
            raise ValidationError(first["msg"], field=field) from None
