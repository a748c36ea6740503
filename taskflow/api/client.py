"""REST client for the task-tracking backend.

All calls are JSON over HTTP. Every request except login and registration
carries the session's bearer token. A 401 anywhere outside the auth pages
clears the token and sends the user back to the login page.
"""

from typing import Any, Callable, Protocol

import httpx
import structlog
from pydantic import BaseModel

from taskflow.config import Settings, get_settings
from taskflow.exceptions import (
    AlreadyAcceptedError,
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    LockedError,
    NotFoundError,
    TaskflowError,
    TransportError,
    ValidationError,
)
from taskflow.models.project import Page, Task
from taskflow.models.user import User

logger = structlog.get_logger()


# =============================================================================
# Collaborators
# =============================================================================


class TokenStore(Protocol):
    """Persistent home of the authentication token."""

    def get(self) -> str | None: ...

    def set(self, token: str) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    """Token store kept in process memory."""

    def __init__(self, token: str | None = None):
        self._token = token

    def get(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class Navigator(Protocol):
    """Routing surface of the UI."""

    @property
    def current_path(self) -> str: ...

    def redirect(self, path: str) -> None: ...


class MemoryNavigator:
    """Navigator that only records where it was sent."""

    def __init__(self, current_path: str = "/"):
        self.current_path = current_path
        self.history: list[str] = []

    def redirect(self, path: str) -> None:
        self.history.append(path)
        self.current_path = path


class AuthResult(BaseModel):
    token: str
    user: User


# =============================================================================
# Client
# =============================================================================


def _unwrap(payload: Any, key: str) -> Any:
    """Pull the entity out of `{key: {...}}` or `{data: {...}}` envelopes."""
    if isinstance(payload, dict):
        if isinstance(payload.get(key), dict):
            return payload[key]
        if isinstance(payload.get("data"), dict):
            return payload["data"]
    return payload


class ApiClient:
    """Async backend client bound to one token store and navigator."""

    def __init__(
        self,
        settings: Settings | None = None,
        token_store: TokenStore | None = None,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.token_store = token_store if token_store is not None else MemoryTokenStore()
        self.navigator = navigator if navigator is not None else MemoryNavigator()
        self._unauthorized_listeners: list[Callable[[], None]] = []
        self._client = httpx.AsyncClient(
            base_url=self.settings.api_url,
            timeout=self.settings.request_timeout,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def on_unauthorized(self, listener: Callable[[], None]) -> None:
        """Register a callback run whenever the backend rejects the token."""
        self._unauthorized_listeners.append(listener)

    # =========================================================================
    # Transport
    # =========================================================================

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> Any:
        """Send a request and return the decoded JSON body."""
        headers = {}
        token = self.token_store.get() if authenticated else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ""}

        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.TimeoutException:
            logger.error("backend_timeout", method=method, path=path)
            raise TransportError("The server took too long to respond") from None
        except httpx.HTTPError as e:
            logger.error("backend_unreachable", method=method, path=path, error=str(e))
            raise TransportError(f"Could not reach the server: {e}") from None

        if response.status_code >= 400:
            raise self._error_for(response, method, path)

        if not response.content:
            return None
        return response.json()

    def _error_for(self, response: httpx.Response, method: str, path: str) -> TaskflowError:
        status_code = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message")

        logger.warning(
            "backend_error",
            method=method,
            path=path,
            status_code=status_code,
            message=message,
        )

        if status_code == 401:
            self._handle_unauthorized()
            return AuthenticationError(message or "Unauthenticated")
        if status_code == 403:
            return ForbiddenError(message or "You are not allowed to perform this action")
        if status_code == 404:
            return NotFoundError(message or "Resource not found")
        if status_code == 409:
            if path.rstrip("/").endswith("/accept"):
                return AlreadyAcceptedError(_task_id_from(path))
            return ConflictError(message or "The task was modified by someone else, please refresh")
        if status_code in (400, 422):
            errors = body.get("errors") or {}
            field = next(iter(errors), None) if isinstance(errors, dict) else None
            return ValidationError(message or "Invalid request", field=field)
        if status_code == 423:
            return LockedError(_task_id_from(path), message)
        return TransportError(message or f"Server error ({status_code})", status_code=status_code)

    def _handle_unauthorized(self) -> None:
        """Clear the token and return to login unless already on an auth page."""
        current = self.navigator.current_path
        if any(current.startswith(p) for p in self.settings.auth_paths):
            return

        logger.info("session_expired", path=current)
        self.token_store.clear()
        for listener in self._unauthorized_listeners:
            listener()
        self.navigator.redirect(self.settings.login_path)

    # =========================================================================
    # Auth endpoints
    # =========================================================================

    async def login(self, email: str, password: str) -> AuthResult:
        payload = await self.request(
            "POST", "/login", json={"email": email, "password": password}, authenticated=False
        )
        return AuthResult.model_validate(payload)

    async def register(self, data: dict[str, Any]) -> AuthResult:
        payload = await self.request("POST", "/register", json=data, authenticated=False)
        return AuthResult.model_validate(payload)

    async def logout(self) -> None:
        await self.request("POST", "/logout")

    async def get_user(self) -> User:
        payload = await self.request("GET", "/user")
        return User.model_validate(_unwrap(payload, "user"))

    # =========================================================================
    # Task endpoints
    # =========================================================================

    async def list_project_tasks(self, project_id: int, **params: Any) -> Page[Task]:
        payload = await self.request("GET", f"/projects/{project_id}/tasks", params=params)
        return Page[Task].model_validate(payload)

    async def list_my_tasks(self, **params: Any) -> Page[Task]:
        payload = await self.request("GET", "/my-tasks", params=params)
        return Page[Task].model_validate(payload)

    async def get_task(self, project_id: int, task_id: int) -> Task:
        payload = await self.request("GET", f"/projects/{project_id}/tasks/{task_id}")
        return Task.model_validate(_unwrap(payload, "task"))

    async def update_task(self, project_id: int, task_id: int, data: dict[str, Any]) -> Task:
        payload = await self.request(
            "PUT", f"/projects/{project_id}/tasks/{task_id}", json=data
        )
        return Task.model_validate(_unwrap(payload, "task"))

    async def assign_users(
        self,
        project_id: int,
        task_id: int,
        assignees: list[int],
        expected_version: str | None = None,
    ) -> Task:
        body: dict[str, Any] = {"assignees": assignees}
        if expected_version is not None:
            body["expected_version"] = expected_version
        payload = await self.request(
            "PUT", f"/projects/{project_id}/tasks/{task_id}/assign", json=body
        )
        return Task.model_validate(_unwrap(payload, "task"))

    async def accept_task(
        self,
        project_id: int,
        task_id: int,
        expected_version: str | None = None,
    ) -> Task:
        body = {"expected_version": expected_version} if expected_version is not None else None
        payload = await self.request(
            "POST", f"/projects/{project_id}/tasks/{task_id}/accept", json=body
        )
        return Task.model_validate(_unwrap(payload, "task"))

    async def add_comment(self, project_id: int, task_id: int, content: str) -> Any:
        return await self.request(
            "POST",
            f"/projects/{project_id}/tasks/{task_id}/comments",
            json={"content": content},
        )


def _task_id_from(path: str) -> int | str:
    """Extract the task id from `/projects/{id}/tasks/{taskId}[/...]`."""
    parts = [p for p in path.split("/") if p]
    try:
        segment = parts[parts.index("tasks") + 1]
    except (ValueError, IndexError):
        return path
    return int(segment) if segment.isdigit() else segment
