"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). Dataclasses own
domain shape; stores and services do the work. sanitize_user() is the one
helper kept here because it is the only sanctioned way a User crosses the
service boundary.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SUPER_ADMIN_CODE = "strapi-super-admin"


@dataclass
class User:
    """An administrator account.

    hashed_password is None for invited users who have not registered yet.
    registration_token is set while an invitation is pending and cleared when
    the invitee registers. reset_password_token holds an HMAC of the emailed
    reset token (never the raw value).
    """

    email: str
    firstname: str | None = None
    lastname: str | None = None
    username: str | None = None
    id: int | None = None
    hashed_password: str | None = None
    roles: list[int] = field(default_factory=list)
    is_active: bool = False
    registration_token: str | None = None
    reset_password_token: str | None = None
    reset_password_expires: str | None = None
    created_at: str | None = None


@dataclass
class Role:
    """A role definition. Read-only from the auth core's perspective."""

    name: str
    code: str
    id: int | None = None
    description: str = ""

    @property
    def is_super_admin(self) -> bool:
        return self.code == SUPER_ADMIN_CODE


@dataclass
class RevocationRecord:
    """A token that must no longer be accepted, regardless of its signature.

    expires_at is the token's own expiry; after that moment the record is
    dead weight and the purge loop may delete it.
    """

    token: str
    revoked_at: str
    expires_at: str | None = None


@dataclass
class AuthEvent:
    kind: str  # "success" or "failure"
    actor: str | None
    provider: str
    timestamp: str
    reason: str | None = None


@dataclass
class PublicUserInfo:
    """What an invitee may learn about their pending account."""

    email: str
    firstname: str | None = None
    lastname: str | None = None


def sanitize_user(user: User) -> dict:
    """Return a plain dict view of the user with credentials and internal tokens stripped.

    Built from an allowlist rather than dataclasses.asdict() minus a denylist,
    so a field added to User later stays private until someone exposes it here.
    """
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "firstname": user.firstname,
        "lastname": user.lastname,
        "roles": list(user.roles),
        "isActive": user.is_active,
        "createdAt": user.created_at,
    }
