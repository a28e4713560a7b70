"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in telemetry/models.py -- dataclasses own domain shape; services, stores and
routes do the work.

Layer rule: no imports from api/ or telemetry/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass
class Account:
    """A registered user.

    password_hash is the bcrypt output (salt embedded). The raw password is
    never stored on this object.

    role is set at creation only -- there is no escalation path over HTTP.
    Bootstrap admins are created with `python main.py create-user <name> --admin`.
    """

    username: str
    password_hash: str
    role: Role = Role.USER
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token. Timestamps are epoch seconds."""

    username: str
    role: Role
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class Identity:
    """The authenticated caller bound to a request.

    token and expires_at are kept so logout can revoke exactly the token
    that authenticated the request, until its natural expiry.
    """

    username: str
    role: Role
    token: str
    expires_at: int

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
