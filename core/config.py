"""
core/config.py -- SensorHub settings, read once from the environment.

Every knob (SECRET_KEY, DATABASE_URL, TOKEN_EXPIRE_SECONDS, ...) is a field on
Settings; pydantic-settings maps each field to the upper-cased env var and
also reads a local .env file. Code elsewhere asks get_settings() rather than
touching os.environ, so tests control configuration in one place.

get_settings() is lru_cached: the first call builds Settings, later calls
return the same object.

Security notes:
  SECRET_KEY is mandatory. A missing key is a hard startup failure in every
  mode -- there is no generated or hardcoded fallback, because a fallback key
  would either invalidate sessions on restart or be publicly known.
  Keys shorter than 32 chars are rejected: JWT signing and the sensor API key
  HMAC both rely on key entropy.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or telemetry/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sensorhub.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'sensorhub.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except secret_key has a default. Settings() raises
    ValueError (wrapped in pydantic's ValidationError) when SECRET_KEY is
    absent, so the process refuses to start instead of signing tokens with
    a guessable key.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured"; the validator rejects it.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Fixed 24h session lifetime.
    token_expire_seconds: int = 86400
    revocation_sweep_seconds: int = 3600
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    cors_origins: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("DATABASE_URL must be set and non-empty")
        return v.strip()

    @field_validator("token_expire_seconds")
    @classmethod
    def validate_token_expire_seconds(cls, v: int) -> int:
        if v < 60 or v > 604800:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be between 60 and 604800 (1 min to 7 days)")
        return v

    @field_validator("revocation_sweep_seconds")
    @classmethod
    def validate_revocation_sweep_seconds(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("REVOCATION_SWEEP_SECONDS must be greater than 0")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        # bcrypt itself only accepts 4..31
        if v < 4 or v > 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return v

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Refuse to start without a usable SECRET_KEY."""
        if not self.secret_key or not self.secret_key.strip():
            raise ValueError(
                "SECRET_KEY is required. "
                "Set SECRET_KEY in your environment or .env file "
                "(e.g. python -c 'import secrets; print(secrets.token_hex(32))')."
            )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.debug:
            logger.warning("DEBUG is enabled -- SQL statements will be echoed to the log.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, building it on first use.

    Tests set environment variables before the first import of any module
    that calls this; get_settings.cache_clear() forces a rebuild.
    """
    return Settings()
