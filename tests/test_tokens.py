"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - bcrypt hashing: salted, verifiable, empty and over-long input rejected
  - TokenIssuer: round trip, expiry boundary against the injected clock,
    malformed tokens, foreign signatures
  - Sensor API keys: format, deterministic HMAC, one-shot key tuple
"""

from __future__ import annotations

import pytest
from jose import jwt

from auth.models import Role
from auth.tokens import (
    API_KEY_PREFIX,
    BadSignature,
    MalformedToken,
    TokenExpired,
    TokenIssuer,
    generate_api_key,
    hash_api_key,
    hash_password,
    new_sensor_key,
    verify_password,
)
from core.errors import InvalidInput
from tests.conftest import START_TIME, TTL, FakeClock


class TestPasswordHashing:
    def test_hash_verifies(self) -> None:
        hashed = hash_password("correct horse")
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_hash_is_salted(self) -> None:
        """Two hashes of the same password differ but both verify."""
        first = hash_password("same-password")
        second = hash_password("same-password")
        assert first != second
        assert verify_password("same-password", first)
        assert verify_password("same-password", second)

    def test_empty_password_rejected(self) -> None:
        with pytest.raises(InvalidInput):
            hash_password("")

    def test_verify_empty_inputs_rejected(self) -> None:
        hashed = hash_password("x")
        with pytest.raises(InvalidInput):
            verify_password("", hashed)
        with pytest.raises(InvalidInput):
            verify_password("x", "")

    def test_over_72_bytes_rejected(self) -> None:
        """bcrypt ignores bytes past 72; such passwords are refused rather than truncated."""
        with pytest.raises(InvalidInput):
            hash_password("a" * 73)
        # Multi-byte characters count by encoded length.
        with pytest.raises(InvalidInput):
            hash_password("é" * 37)

    def test_verify_over_72_bytes_is_false(self) -> None:
        hashed = hash_password("a" * 72)
        assert not verify_password("a" * 73, hashed)

    def test_malformed_stored_hash_is_false(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestTokenIssuer:
    SECRET = "unit-test-secret-key-0123456789-abcdefghij"

    def _issuer(self, clock: FakeClock, secret: str | None = None) -> TokenIssuer:
        return TokenIssuer(secret or self.SECRET, ttl_seconds=TTL, clock=clock)

    def test_round_trip(self, clock: FakeClock) -> None:
        issuer = self._issuer(clock)
        claims = issuer.verify(issuer.issue("alice", Role.USER))
        assert claims.username == "alice"
        assert claims.role == Role.USER
        assert claims.issued_at == int(START_TIME)
        assert claims.expires_at == int(START_TIME) + TTL

    def test_same_second_tokens_differ(self, clock: FakeClock) -> None:
        """Two tokens for one identity issued in the same second are distinct."""
        issuer = self._issuer(clock)
        first = issuer.issue("alice", Role.USER)
        second = issuer.issue("alice", Role.USER)
        assert first != second
        assert issuer.verify(first).issued_at == issuer.verify(second).issued_at

    def test_admin_role_round_trip(self, clock: FakeClock) -> None:
        issuer = self._issuer(clock)
        assert issuer.verify(issuer.issue("root", Role.ADMIN)).role == Role.ADMIN

    def test_valid_exactly_at_expiry(self, clock: FakeClock) -> None:
        """exp is inclusive: a token is expired only strictly after exp."""
        issuer = self._issuer(clock)
        token = issuer.issue("alice", Role.USER)
        clock.advance(TTL)
        assert issuer.verify(token).username == "alice"

    def test_expired_after_ttl(self, clock: FakeClock) -> None:
        issuer = self._issuer(clock)
        token = issuer.issue("alice", Role.USER)
        clock.advance(TTL + 1)
        with pytest.raises(TokenExpired):
            issuer.verify(token)

    def test_foreign_signature_rejected(self, clock: FakeClock) -> None:
        token = self._issuer(clock, secret="another-secret-key-0123456789-abcdefghij").issue("alice", Role.USER)
        with pytest.raises(BadSignature):
            self._issuer(clock).verify(token)

    def test_forged_and_expired_reports_bad_signature(self, clock: FakeClock) -> None:
        """Signature is checked before expiry."""
        token = self._issuer(clock, secret="another-secret-key-0123456789-abcdefghij").issue("alice", Role.USER)
        clock.advance(TTL * 2)
        with pytest.raises(BadSignature):
            self._issuer(clock).verify(token)

    def test_tampered_payload_rejected(self, clock: FakeClock) -> None:
        """Swapping in an ADMIN payload under the genuine signature fails."""
        issuer = self._issuer(clock)
        header, _payload, signature = issuer.issue("alice", Role.USER).split(".")
        forged_payload = jwt.encode(
            {"sub": "alice", "role": "ADMIN", "iat": int(START_TIME), "exp": int(START_TIME) + TTL},
            "x" * 40,
            algorithm="HS256",
        ).split(".")[1]
        with pytest.raises(BadSignature):
            issuer.verify(f"{header}.{forged_payload}.{signature}")

    @pytest.mark.parametrize("garbage", ["", "garbage", "a.b", "not.a.token"])
    def test_garbage_is_malformed(self, clock: FakeClock, garbage: str) -> None:
        with pytest.raises(MalformedToken):
            self._issuer(clock).verify(garbage)

    def test_missing_role_is_malformed(self, clock: FakeClock) -> None:
        token = jwt.encode({"sub": "alice", "iat": 1, "exp": 2}, self.SECRET, algorithm="HS256")
        with pytest.raises(MalformedToken):
            self._issuer(clock).verify(token)

    def test_unknown_role_is_malformed(self, clock: FakeClock) -> None:
        token = jwt.encode({"sub": "alice", "role": "ROOT", "iat": 1, "exp": 2}, self.SECRET, algorithm="HS256")
        with pytest.raises(MalformedToken):
            self._issuer(clock).verify(token)

    def test_empty_secret_refused(self) -> None:
        with pytest.raises(ValueError):
            TokenIssuer("")


class TestApiKeys:
    def test_generate_format(self) -> None:
        key = generate_api_key()
        assert key.startswith(API_KEY_PREFIX)
        assert len(key) == len(API_KEY_PREFIX) + 48
        assert generate_api_key() != key

    def test_hash_is_deterministic_hmac(self) -> None:
        key = generate_api_key()
        assert hash_api_key(key) == hash_api_key(key)
        assert hash_api_key(key) != hash_api_key(generate_api_key())
        assert len(hash_api_key(key)) == 64

    def test_new_sensor_key(self) -> None:
        raw, key_hash, prefix = new_sensor_key()
        assert key_hash == hash_api_key(raw)
        assert raw.startswith(prefix)
        assert len(prefix) == 10
