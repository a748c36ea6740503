"""User models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    """Organization-wide roles known to the backend."""
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    INCHARGE = "incharge"
    USER = "user"


class User(BaseModel):
    """An authenticated user or a user embedded in a task/project payload.

    `role` stays a raw string: the backend may send values this client does
    not know, and the role resolver decides what they are worth.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    role: str | None = None
    email_verified_at: datetime | None = None
    profile_picture: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role}>"
