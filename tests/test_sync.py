from __future__ import annotations

from datetime import date

import httpx
import pytest

from taskflow.api.sync import MutationState
from taskflow.exceptions import (
    AlreadyAcceptedError,
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    LockedError,
    TransportError,
    ValidationError,
)
from taskflow.models.project import AssignmentStatus, Task
from taskflow.services.notification import Presentation
from tests.factories import (
    FakeBackend,
    make_project,
    make_task,
    run,
    task_payload,
    user_payload,
)

TASK_PATH = "/projects/10/tasks/1"


async def login_as(session, backend: FakeBackend, user_id: int, role: str = "user") -> None:
    backend.add("POST", "/login", json={"token": f"tok-{user_id}", "user": user_payload(user_id, role=role)})
    await session.login(f"user{user_id}@example.com", "pw")


class TestReads:
    def test_load_my_tasks_uses_default_page_size(self, sync, session, backend) -> None:
        backend.add(
            "GET",
            "/my-tasks",
            json={"data": [task_payload(1), task_payload(2)], "current_page": 1, "last_page": 1},
        )

        async def scenario():
            await login_as(session, backend, 1)
            return await sync.load_my_tasks(status="in_progress")

        page = run(scenario())

        params = backend.requests[-1].url.params
        assert params["per_page"] == "50"
        assert params["status"] == "in_progress"
        assert [t.id for t in page.data] == [1, 2]
        assert sync.tracked(2).state == MutationState.IDLE

    def test_load_project_tasks_tracks_each_task(self, sync, session, backend) -> None:
        backend.add("GET", "/projects/10/tasks", json={"data": [task_payload(5)]})

        run(sync.load_project_tasks(10, priority="high"))

        assert sync.task(5).id == 5
        assert backend.requests[-1].url.params["priority"] == "high"


class TestUpdateProgress:
    def test_success_replaces_task_with_server_copy(self, sync, session, backend) -> None:
        server = task_payload(
            1,
            assignees=[(1, 60, "in_progress"), (2, 0)],
            overall_progress=30,
            updated_at="2024-06-02T00:00:00Z",
        )
        backend.add("PUT", TASK_PATH, json={"task": server})
        sync.track(make_task(assignees=[(1, 0), (2, 0)], updated_at="2024-06-01T00:00:00Z"))

        async def scenario():
            await login_as(session, backend, 1)
            return await sync.update_progress(1, 60, "in_progress")

        result = run(scenario())

        request = backend.sent("PUT", TASK_PATH)[-1]
        assert FakeBackend.body(request) == {
            "progress": 60,
            "status": "in_progress",
            "expected_version": "2024-06-01T00:00:00+00:00",
        }
        assert request.headers["Authorization"] == "Bearer tok-1"
        tracked = sync.tracked(1)
        assert tracked.state == MutationState.SETTLED
        assert tracked.task == Task.model_validate(server)
        assert result == tracked.task

    def test_full_progress_sends_completed(self, sync, session, backend) -> None:
        backend.add("PUT", TASK_PATH, json=task_payload(1, assignees=[(1, 100, "completed")]))
        sync.track(make_task(assignees=[(1, 10)]))

        async def scenario():
            await login_as(session, backend, 1)
            await sync.update_progress(1, 100, "in_progress")

        run(scenario())

        body = FakeBackend.body(backend.sent("PUT", TASK_PATH)[-1])
        assert body == {"progress": 100, "status": "completed"}
        assert sync.task(1).assignees[0].status == AssignmentStatus.COMPLETED

    def test_failure_rolls_back_to_snapshot(self, sync, session, backend, notifier) -> None:
        backend.add("PUT", TASK_PATH, status=500, json={"message": "Server Error"})
        original = make_task(assignees=[(1, 10)])
        sync.track(original)

        async def scenario():
            await login_as(session, backend, 1)
            await sync.update_progress(1, 80)

        with pytest.raises(TransportError):
            run(scenario())

        tracked = sync.tracked(1)
        assert tracked.state == MutationState.ROLLED_BACK
        assert tracked.task is original
        assert isinstance(tracked.error, TransportError)
        assert notifier.notices[-1].presentation == Presentation.TOAST

    def test_version_conflict_rolls_back(self, sync, session, backend) -> None:
        backend.add("PUT", TASK_PATH, status=409, json={"message": "Task changed"})
        original = make_task(assignees=[(1, 10)], updated_at="2024-06-01T00:00:00Z")
        sync.track(original)

        async def scenario():
            await login_as(session, backend, 1)
            await sync.update_progress(1, 80)

        with pytest.raises(ConflictError):
            run(scenario())

        assert sync.task(1) is original

    def test_locked_task_sends_nothing(self, sync, session, backend, notifier) -> None:
        sync.track(
            make_task(
                status="completed",
                assignees=[(1, 100, "completed")],
                accepted_at="2024-06-01T00:00:00Z",
            )
        )

        async def scenario():
            await login_as(session, backend, 1)
            await sync.update_progress(1, 50)

        with pytest.raises(LockedError):
            run(scenario())

        assert backend.sent("PUT", TASK_PATH) == []
        assert notifier.notices[-1].presentation == Presentation.BANNER

    def test_other_assignee_row_is_forbidden(self, sync, session, backend, notifier) -> None:
        sync.track(make_task(assignees=[(1, 0), (2, 0)]))

        async def scenario():
            await login_as(session, backend, 1)
            await sync.update_progress(1, 50, assignee_id=2)

        with pytest.raises(ForbiddenError):
            run(scenario())

        assert backend.sent("PUT", TASK_PATH) == []
        assert sync.tracked(1).state == MutationState.IDLE
        assert notifier.notices[-1].presentation == Presentation.TOAST

    def test_invalid_progress_is_inline(self, sync, session, backend, notifier) -> None:
        sync.track(make_task(assignees=[(1, 0)]))

        async def scenario():
            await login_as(session, backend, 1)
            await sync.update_progress(1, 150)

        with pytest.raises(ValidationError):
            run(scenario())

        notice = notifier.notices[-1]
        assert notice.presentation == Presentation.INLINE
        assert notice.field == "progress"

    def test_manager_override_names_assignee(self, sync, session, backend) -> None:
        project = make_project(incharge_ids=[5], member_ids=[2])
        backend.add("PUT", TASK_PATH, json=task_payload(1, assignees=[(2, 30)]))
        sync.track(make_task(assignees=[(2, 0)]))

        async def scenario():
            await login_as(session, backend, 5, role="incharge")
            await sync.update_progress(1, 30, assignee_id=2, project=project)

        run(scenario())

        body = FakeBackend.body(backend.sent("PUT", TASK_PATH)[-1])
        assert body == {"progress": 30, "assignee_id": 2}

    def test_second_mutation_while_pending_conflicts(self, sync, session, backend) -> None:
        sync.track(make_task(assignees=[(1, 0)]))
        sync.tracked(1).state = MutationState.PENDING

        async def scenario():
            await login_as(session, backend, 1)
            await sync.update_progress(1, 20)

        with pytest.raises(ConflictError):
            run(scenario())

        assert backend.sent("PUT", TASK_PATH) == []

    def test_response_after_detach_is_discarded(self, sync, session, backend) -> None:
        server = task_payload(1, assignees=[(1, 60)], overall_progress=99)

        def handler(request: httpx.Request) -> httpx.Response:
            sync.detach(1)
            return httpx.Response(200, json=server)

        backend.on("PUT", TASK_PATH, handler)
        sync.track(make_task(assignees=[(1, 0)]))
        tracked = sync.tracked(1)

        async def scenario():
            await login_as(session, backend, 1)
            return await sync.update_progress(1, 60)

        result = run(scenario())

        assert result.overall_progress == 99
        assert sync.tracked(1) is None
        assert tracked.detached
        assert tracked.task.overall_progress != 99
        assert tracked.state == MutationState.PENDING


class TestAcceptance:
    def _completed(self) -> Task:
        return make_task(status="completed", assignees=[(1, 100, "completed"), (2, 100, "completed")])

    def test_accept_then_everything_is_locked(self, sync, session, backend, notifier) -> None:
        accepted = task_payload(
            1,
            status="completed",
            assignees=[(1, 100, "completed"), (2, 100, "completed")],
            accepted_at="2024-06-03T09:00:00Z",
            accepter=user_payload(9, role="admin"),
        )
        backend.add("POST", f"{TASK_PATH}/accept", json={"task": accepted})
        sync.track(self._completed())

        async def scenario():
            await login_as(session, backend, 9, role="admin")
            await sync.accept(1)
            with pytest.raises(LockedError):
                await sync.update_progress(1, 90, assignee_id=1)
            with pytest.raises(AlreadyAcceptedError):
                await sync.accept(1)

        run(scenario())

        assert sync.task(1).accepted
        assert sync.task(1).accepter.id == 9
        assert len(backend.sent("POST", f"{TASK_PATH}/accept")) == 1
        assert backend.sent("PUT", TASK_PATH) == []
        assert notifier.notices[-1].presentation == Presentation.SUCCESS

    def test_accept_requires_manager(self, sync, session, backend) -> None:
        sync.track(self._completed())

        async def scenario():
            await login_as(session, backend, 1)
            await sync.accept(1, project=make_project(member_ids=[1]))

        with pytest.raises(ForbiddenError):
            run(scenario())

        assert backend.sent("POST", f"{TASK_PATH}/accept") == []
        assert not sync.task(1).accepted

    def test_accepted_elsewhere_refreshes(self, sync, session, backend) -> None:
        backend.add("POST", f"{TASK_PATH}/accept", status=409, json={"message": "Already accepted"})
        backend.add(
            "GET",
            TASK_PATH,
            json=task_payload(1, status="completed", accepted_at="2024-06-03T09:00:00Z"),
        )
        sync.track(self._completed())

        async def scenario():
            await login_as(session, backend, 9, role="admin")
            await sync.accept(1)

        with pytest.raises(AlreadyAcceptedError):
            run(scenario())

        assert sync.task(1).accepted


class TestTaskEdits:
    def _accepted(self) -> Task:
        return make_task(
            status="completed",
            assignees=[(1, 100, "completed")],
            accepted_at="2024-06-01T00:00:00Z",
        )

    def test_metadata_editable_after_acceptance(self, sync, session, backend) -> None:
        project = make_project(incharge_ids=[5])
        backend.add(
            "PUT",
            TASK_PATH,
            json=task_payload(1, status="completed", due_date="2024-07-01", accepted_at="2024-06-01T00:00:00Z"),
        )
        sync.track(self._accepted())

        async def scenario():
            await login_as(session, backend, 5, role="incharge")
            await sync.update_task(1, project, due_date=date(2024, 7, 1), priority="high")

        run(scenario())

        body = FakeBackend.body(backend.sent("PUT", TASK_PATH)[-1])
        assert body == {"due_date": "2024-07-01", "priority": "high"}
        assert sync.task(1).due_date == date(2024, 7, 1)

    @pytest.mark.parametrize("fields", [{"status": "in_progress"}, {"progress": 50}])
    def test_status_and_progress_locked_after_acceptance(self, sync, session, backend, fields) -> None:
        sync.track(self._accepted())

        async def scenario():
            await login_as(session, backend, 9, role="admin")
            await sync.update_task(1, **fields)

        with pytest.raises(LockedError):
            run(scenario())

        assert backend.sent("PUT", TASK_PATH) == []

    def test_non_manager_cannot_edit(self, sync, session, backend) -> None:
        sync.track(make_task(assignees=[(1, 0)]))

        async def scenario():
            await login_as(session, backend, 1)
            await sync.update_task(1, make_project(member_ids=[1]), priority="urgent")

        with pytest.raises(ForbiddenError):
            run(scenario())

    def test_invalid_field_values(self, sync, session, backend) -> None:
        sync.track(make_task())

        async def scenario(**fields):
            await sync.update_task(1, **fields)

        run(login_as(session, backend, 9, role="admin"))
        with pytest.raises(ValidationError) as exc:
            run(scenario(priority="asap"))
        assert exc.value.field == "priority"
        with pytest.raises(ValidationError):
            run(scenario(owner=3))
        with pytest.raises(ValidationError):
            run(scenario())

    def test_assign_deduplicates(self, sync, session, backend) -> None:
        backend.add(
            "PUT",
            f"{TASK_PATH}/assign",
            json=task_payload(1, assignees=[(2, 0), (3, 0)]),
        )
        sync.track(make_task(assignees=[(1, 0), (2, 40)]))

        async def scenario():
            await login_as(session, backend, 9, role="admin")
            await sync.assign(1, [2, 3, 3])

        run(scenario())

        body = FakeBackend.body(backend.sent("PUT", f"{TASK_PATH}/assign")[-1])
        assert body == {"assignees": [2, 3]}
        assert [a.assignee_id for a in sync.task(1).assignees] == [2, 3]

    def test_assign_requires_manager(self, sync, session, backend) -> None:
        sync.track(make_task(assignees=[(1, 0)]))

        async def scenario():
            await login_as(session, backend, 1)
            await sync.assign(1, [1, 2])

        with pytest.raises(ForbiddenError):
            run(scenario())


class TestComments:
    def test_add_comment_reloads_task(self, sync, session, backend) -> None:
        backend.add("POST", f"{TASK_PATH}/comments", status=201, json={"id": 1, "content": "On it"})
        backend.add(
            "GET",
            TASK_PATH,
            json=task_payload(
                1,
                comments=[{"id": 1, "content": "On it", "user": user_payload(1), "created_at": "2024-06-01T08:00:00Z"}],
            ),
        )
        sync.track(make_task())

        async def scenario():
            await login_as(session, backend, 1)
            await sync.add_comment(1, "  On it ")

        run(scenario())

        body = FakeBackend.body(backend.sent("POST", f"{TASK_PATH}/comments")[-1])
        assert body == {"content": "On it"}
        assert sync.task(1).comments[0].content == "On it"
        assert sync.tracked(1).state == MutationState.SETTLED

    def test_blank_comment_rejected(self, sync, session, backend, notifier) -> None:
        sync.track(make_task())

        async def scenario():
            await login_as(session, backend, 1)
            await sync.add_comment(1, "   ")

        with pytest.raises(ValidationError):
            run(scenario())

        assert notifier.notices[-1].field == "content"
        assert backend.sent("POST", f"{TASK_PATH}/comments") == []


class TestRetracking:
    def test_retrack_detaches_previous_entry(self, sync) -> None:
        first = sync.track(make_task())
        second = sync.track(make_task(overall_progress=40))

        assert first.detached
        assert sync.tracked(1) is second
        assert not second.detached

    def test_retrack_keeps_entry_with_mutation_in_flight(self, sync, session, backend) -> None:
        server = task_payload(1, assignees=[(1, 60)], overall_progress=60)

        def handler(request: httpx.Request) -> httpx.Response:
            sync.track(make_task(assignees=[(1, 0)], overall_progress=5))
            return httpx.Response(200, json=server)

        backend.on("PUT", TASK_PATH, handler)
        tracked = sync.track(make_task(assignees=[(1, 0)]))

        async def scenario():
            await login_as(session, backend, 1)
            return await sync.update_progress(1, 60)

        run(scenario())

        assert sync.tracked(1) is tracked
        assert tracked.state == MutationState.SETTLED
        assert tracked.task.overall_progress == 60


class TestAcceptedElsewhere:
    def _completed(self) -> Task:
        return make_task(status="completed", assignees=[(1, 100, "completed")])

    def test_conflict_after_detach_keeps_original_error(self, sync, session, backend, notifier) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            sync.detach(1)
            return httpx.Response(409, json={"message": "Already accepted"})

        backend.on("POST", f"{TASK_PATH}/accept", handler)
        sync.track(self._completed())

        async def scenario():
            await login_as(session, backend, 9, role="admin")
            await sync.accept(1)

        with pytest.raises(AlreadyAcceptedError):
            run(scenario())

        assert backend.sent("GET", TASK_PATH) == []
        assert notifier.notices == []

    def test_failed_refresh_keeps_original_error(self, sync, session, backend) -> None:
        backend.add("POST", f"{TASK_PATH}/accept", status=409, json={"message": "Already accepted"})
        backend.add("GET", TASK_PATH, status=500, json={"message": "Server error"})
        sync.track(self._completed())

        async def scenario():
            await login_as(session, backend, 9, role="admin")
            await sync.accept(1)

        with pytest.raises(AlreadyAcceptedError):
            run(scenario())

        assert len(backend.sent("GET", TASK_PATH)) == 1
        assert not sync.task(1).accepted


class TestSessionTeardown:
    def test_logout_drops_tracked_tasks(self, sync, session, backend) -> None:
        backend.add("POST", "/logout", json={})
        tracked = sync.track(make_task())

        async def scenario():
            await login_as(session, backend, 1)
            await session.logout()

        run(scenario())

        assert sync.tracked(1) is None
        assert tracked.detached

    def test_expired_token_drops_tracked_tasks(self, sync, session, backend, navigator) -> None:
        backend.add("GET", "/my-tasks", status=401, json={})
        tracked = sync.track(make_task())

        async def scenario():
            await login_as(session, backend, 1)
            await sync.load_my_tasks()

        with pytest.raises(AuthenticationError):
            run(scenario())

        assert sync.tracked(1) is None
        assert tracked.detached
        assert navigator.current_path == "/login"

    def test_login_keeps_tracked_tasks(self, sync, session, backend) -> None:
        sync.track(make_task())

        run(login_as(session, backend, 1))

        assert sync.tracked(1) is not None
