"""Role resolver.

Turns the raw role string of the authenticated user into a capability set,
computed once per authentication event. Call sites consume the capability
flags instead of comparing role strings.
"""

from dataclasses import dataclass

import structlog

from taskflow.models.user import Role, User

logger = structlog.get_logger()


@dataclass(frozen=True)
class Capabilities:
    """Capabilities held by a user.

    Several roles can share a capability (admin and superadmin are both
    admins), so this is a set of flags rather than a single role value.
    """

    user_id: int | None = None
    is_super_admin: bool = False
    is_admin: bool = False
    is_only_admin: bool = False
    is_incharge: bool = False
    is_user: bool = False
    email_verified: bool = False
    needs_email_verification: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = Capabilities()


def parse_role(raw: str | None) -> Role | None:
    """Map a raw role string onto a known role, or None.

    Matching is exact; variants such as `"ADMIN "` are unknown roles.
    """
    if raw is None:
        return None
    try:
        return Role(raw)
    except ValueError:
        return None


def resolve_capabilities(user: User | None) -> Capabilities:
    """Derive the capability set for a user. Never raises.

    Unknown roles resolve to the least-privileged set: plain user, no elevated
    flags. Email verification only gates the literal `user` role.
    """
    if user is None:
        return ANONYMOUS

    role = parse_role(user.role)
    verified = user.email_verified_at is not None

    if role is None:
        logger.warning("unknown_role_defaulted", user_id=user.id, role=user.role)
        return Capabilities(user_id=user.id, is_user=True, email_verified=verified)

    return Capabilities(
        user_id=user.id,
        is_super_admin=role == Role.SUPERADMIN,
        is_admin=role in (Role.ADMIN, Role.SUPERADMIN),
        is_only_admin=role == Role.ADMIN,
        is_incharge=role == Role.INCHARGE,
        is_user=role == Role.USER,
        email_verified=verified,
        needs_email_verification=role == Role.USER and not verified,
    )
