"""
auth/tokens.py -- Password hashing, JWT issue/verify, and sensor API key utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (username), role, iat and exp. Verification raises one of three
       distinct errors -- MalformedToken, BadSignature, TokenExpired -- so
       the guard can answer 403 for forged tokens and 401 for stale ones.
       Expiry is checked against an injected clock rather than jose's own
       datetime.utcnow() so tests can move time deterministically.

  Passwords: bcrypt with a configurable cost factor (BCRYPT_ROUNDS). The
       _DUMMY_HASH constant enables timing equalization in
       AuthService.login() so response time does not reveal whether a
       username exists.

  API keys: secrets.token_hex(24) behind an "sk_" prefix gives 192 bits of
       entropy. We store HMAC-SHA256(SECRET_KEY, raw_key) so ingestion can
       look a sensor up by hash in O(1). bcrypt's slowness is unnecessary
       for high-entropy keys and would throttle measurement ingestion.

Layer rule: no imports from api/ or telemetry/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable

import bcrypt
from jose import JWTError, jwt

from auth.models import Role, TokenClaims
from core.config import get_settings
from core.errors import InvalidInput

logger = logging.getLogger("sensorhub.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes of input.
_BCRYPT_MAX_BYTES = 72

API_KEY_PREFIX = "sk_"


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def _password_bytes(plain: str) -> bytes:
    if not plain:
        raise InvalidInput("Password must not be empty.")
    encoded = plain.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        raise InvalidInput(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes.")
    return encoded


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Passwords over 72 bytes are rejected with InvalidInput instead of being
    silently truncated, so two long passwords sharing a prefix never collide.
    """
    cost = rounds if rounds is not None else _settings.bcrypt_rounds
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Raises InvalidInput when either argument is empty. A malformed stored
    hash, or a password too long to have been hashed, verifies as False.
    """
    if not hashed:
        raise InvalidInput("Password hash must not be empty.")
    if not plain:
        raise InvalidInput("Password must not be empty.")
    pw_bytes = plain.encode("utf-8")
    if len(pw_bytes) > _BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("sensorhub_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded.

    Called when the username does not exist so that the unknown-user path
    costs the same as the wrong-password path.
    """
    try:
        verify_password(plain, _DUMMY_HASH)
    except InvalidInput:
        pass


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for token verification failures."""


class MalformedToken(TokenError):
    pass


class BadSignature(TokenError):
    pass


class TokenExpired(TokenError):
    pass


class TokenIssuer:
    """Signs and validates session tokens over a process-wide secret key.

    Stateless apart from its configuration: issue() and verify() are pure
    with respect to the injected clock.

    Usage:
        issuer = TokenIssuer(settings.secret_key, ttl_seconds=86400)
        token = issuer.issue("alice", Role.USER)
        claims = issuer.verify(token)      # TokenClaims or raises TokenError
    """

    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int = 86400,
        algorithm: str = _ALGORITHM,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must be non-empty")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._algorithm = algorithm
        self._clock = clock

    def issue(self, username: str, role: Role) -> str:
        """Return a signed token for (username, role) expiring ttl_seconds from now.

        The random jti keeps two tokens issued in the same second distinct, so
        revoking one never revokes the other.
        """
        issued_at = int(self._clock())
        payload = {
            "sub": username,
            "role": Role(role).value,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """Validate a token and return its claims.

        Order of checks: structure, then signature, then expiry. A token that
        is both forged and expired is therefore reported as BadSignature.
        """
        try:
            unverified = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedToken(str(exc)) from exc
        claims = _parse_claims(unverified)

        try:
            jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise BadSignature(str(exc)) from exc

        if self._clock() > claims.expires_at:
            raise TokenExpired("token expired")
        return claims


def _parse_claims(payload: dict) -> TokenClaims:
    sub = payload.get("sub")
    role = payload.get("role")
    iat = payload.get("iat")
    exp = payload.get("exp")
    if not isinstance(sub, str) or not sub:
        raise MalformedToken("missing sub claim")
    if not isinstance(iat, int) or not isinstance(exp, int):
        raise MalformedToken("missing or non-integer iat/exp claims")
    try:
        parsed_role = Role(role)
    except ValueError as exc:
        raise MalformedToken("unknown role claim") from exc
    return TokenClaims(username=sub, role=parsed_role, issued_at=iat, expires_at=exp)


# ---------------------------------------------------------------------------
# Sensor API key generation and hashing
# ---------------------------------------------------------------------------


def generate_api_key() -> str:
    """Generate a new sensor API key in the format: sk_<48 hex chars>."""
    return f"{API_KEY_PREFIX}{secrets.token_hex(24)}"


def hash_api_key(raw_key: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_key) as a hex string.

    Deterministic, so the store can do an equality lookup on the hash.
    An attacker holding the database cannot recover keys without SECRET_KEY.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_key.encode(),
        hashlib.sha256,
    ).hexdigest()


def new_sensor_key() -> tuple[str, str, str]:
    """Return (raw_key, key_hash, display_prefix) for a fresh sensor key.

    Only the hash and prefix are persisted; raw_key goes back to the caller once.
    """
    raw_key = generate_api_key()
    return raw_key, hash_api_key(raw_key), raw_key[:10]
