"""
auth/service.py -- Account lifecycle, session tokens, and access decisions.

AuthService is the boundary the HTTP layer talks to. It composes:
  AccountStore        -- credential persistence
  TokenIssuer         -- signing / verifying session tokens
  RevocationRegistry  -- logged-out tokens still inside their TTL

All three are constructed once by the application lifespan (the composition
root) and injected here; nothing in this module reads global state, so tests
build an AuthService with a fake clock and in-memory stores.

Password hashing happens in register() and change_password() -- exactly
once per call, before the store is touched.

Role is carried in the token. A role change (only possible out of band, via
the CLI or the database) takes effect once the user's current token expires
or is revoked; authenticate() never re-reads the account.

Layer rule: no imports from api/. telemetry/ is imported only for the
account-deletion cascade.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from auth.models import Account, Identity, Role
from auth.revocation import RevocationRegistry
from auth.store import AccountStore
from auth.tokens import (
    BadSignature,
    MalformedToken,
    TokenExpired,
    TokenIssuer,
    burn_password_check,
    hash_password,
    verify_password,
)
from core.errors import (
    Conflict,
    Expired,
    Forbidden,
    InvalidCredentials,
    InvalidInput,
    InvalidToken,
    NotFound,
    Revoked,
    Unauthenticated,
)
from telemetry.store import TelemetryStore

logger = logging.getLogger("sensorhub.auth")

USERNAME_MAX_LEN = 255


class Decision(str, Enum):
    ALLOW = "allow"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class LoginResult:
    token: str
    account: Account
    expires_in: int


# ---------------------------------------------------------------------------
# Access policy (pure)
# ---------------------------------------------------------------------------


def authorize(identity: str, role: Role, resource_owner: str | None, requires_admin: bool) -> Decision:
    """Decide whether a caller may act on a resource.

    ADMIN may do anything. Otherwise an admin-only action is forbidden, and an
    owned resource is allowed only to its owner. resource_owner=None means the
    action is not ownership-gated.
    """
    if role == Role.ADMIN:
        return Decision.ALLOW
    if requires_admin:
        return Decision.FORBIDDEN
    if resource_owner is not None and resource_owner != identity:
        return Decision.FORBIDDEN
    return Decision.ALLOW


def ensure_authorized(
    caller: Identity,
    resource_owner: str | None = None,
    requires_admin: bool = False,
    message: str | None = None,
) -> None:
    """Raise Forbidden unless authorize() allows the caller."""
    if authorize(caller.username, caller.role, resource_owner, requires_admin) is Decision.FORBIDDEN:
        raise Forbidden(message or ("Admin access required." if requires_admin else None))


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AuthService:
    def __init__(
        self,
        accounts: AccountStore,
        tokens: TokenIssuer,
        revocations: RevocationRegistry,
        telemetry: TelemetryStore | None = None,
    ) -> None:
        self.accounts = accounts
        self.tokens = tokens
        self.revocations = revocations
        self.telemetry = telemetry

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, role: Role = Role.USER) -> Account:
        """Create an account. Raises InvalidInput or Conflict.

        The pre-check gives a clean Conflict in the common case; the store's
        UNIQUE constraint still catches a concurrent duplicate.
        """
        username = (username or "").strip()
        if not username or not password:
            raise InvalidInput("Username and password are required.")
        if len(username) > USERNAME_MAX_LEN:
            raise InvalidInput("Username is too long.")
        if self.accounts.find_account(username) is not None:
            raise Conflict("Username is already taken.")
        account = self.accounts.create_account(username, hash_password(password), Role(role))
        logger.info("Registered account %s (role=%s)", account.username, account.role.value)
        return account

    def change_password(self, username: str, old_password: str, new_password: str) -> None:
        """Re-hash and store a new password after checking the old one.

        Raises NotFound if the account is gone, InvalidCredentials if
        old_password does not match, InvalidInput if new_password is empty.
        """
        if not old_password or not new_password:
            raise InvalidInput("Old and new password are required.")
        account = self.accounts.find_account(username)
        if account is None:
            raise NotFound("User not found.")
        if not verify_password(old_password, account.password_hash):
            raise InvalidCredentials("Current password is incorrect.")
        self.accounts.save_password_hash(username, hash_password(new_password))
        logger.info("Password changed for %s", username)

    def delete_account(self, username: str) -> dict[str, int]:
        """Delete an account and cascade to its sensors, measurements and locations.

        Telemetry goes first so a failure never leaves data owned by a
        username that no longer exists (and could be re-registered).
        """
        if self.accounts.find_account(username) is None:
            raise NotFound("User not found.")
        counts = {"sensors": 0, "measurements": 0, "locations": 0}
        if self.telemetry is not None:
            counts = self.telemetry.delete_owner_data(username)
        self.accounts.delete_account(username)
        logger.info("Deleted account %s", username)
        return counts

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> LoginResult:
        """Check credentials and issue a token.

        Unknown username and wrong password both raise the same
        InvalidCredentials, and both pay for one bcrypt comparison so
        response time does not reveal which one it was.
        """
        if not username or not password:
            raise InvalidInput("Username and password are required.")
        account = self.accounts.find_account(username)
        if account is None:
            burn_password_check(password)
            logger.warning("Failed login for unknown user %r", username)
            raise InvalidCredentials()
        if not verify_password(password, account.password_hash):
            logger.warning("Failed login for %r", username)
            raise InvalidCredentials()
        token = self.tokens.issue(account.username, account.role)
        return LoginResult(token=token, account=account, expires_in=self.tokens.ttl_seconds)

    def logout(self, token: str) -> None:
        """Revoke a token until its natural expiry.

        The token must still be valid (not revoked, not expired, correctly
        signed); authenticate() enforces that first.
        """
        identity = self.authenticate(token)
        self.revocations.revoke(token, identity.expires_at)
        logger.info("Logged out %s", identity.username)

    def authenticate(self, token: str | None) -> Identity:
        """Resolve a bearer token to the caller's identity.

        Order matters: revocation is checked before verification so a
        logged-out token reports Revoked rather than being re-validated.
        """
        if not token:
            raise Unauthenticated()
        if self.revocations.is_revoked(token):
            raise Revoked()
        try:
            claims = self.tokens.verify(token)
        except TokenExpired as exc:
            raise Expired() from exc
        except (MalformedToken, BadSignature) as exc:
            raise InvalidToken() from exc
        return Identity(
            username=claims.username,
            role=claims.role,
            token=token,
            expires_at=claims.expires_at,
        )
