"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two credential channels:
  1. Authorization: Bearer <token> header -- users (browser frontend, scripts).
     Resolved through AuthService.authenticate(), which checks revocation,
     signature and expiry, then bound to the route as an Identity.
  2. X-API-Key header -- sensors pushing measurements. A static per-sensor
     key looked up by its HMAC; no token machinery involved.

get_current_identity() raises the AppError from AuthService unchanged; the
api/ exception handler maps it to 401/403.
require_admin() wraps get_current_identity() and raises Forbidden if not admin.
try_get_current_identity() is the soft variant for routes where auth is optional.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import Identity
from auth.service import AuthService, ensure_authorized
from auth.tokens import hash_api_key
from core.errors import Forbidden, Unauthenticated
from telemetry.models import Sensor
from telemetry.store import TelemetryStore


def bearer_token(request: Request) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_telemetry(request: Request) -> TelemetryStore:
    return request.app.state.telemetry


def get_current_identity(request: Request) -> Identity:
    """Require a valid bearer token. Raises Unauthenticated/Revoked/Expired/InvalidToken.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(caller: Identity = Depends(get_current_identity)): ...
    """
    service = get_auth_service(request)
    return service.authenticate(bearer_token(request))


def try_get_current_identity(request: Request) -> Identity | None:
    """Return the caller's Identity, or None if the request is not authenticated.

    Only a missing token is treated as anonymous. A presented but invalid
    token still fails, so a client never silently loses its privileges.
    """
    token = bearer_token(request)
    if token is None:
        return None
    return get_auth_service(request).authenticate(token)


def require_admin(caller: Identity = Depends(get_current_identity)) -> Identity:
    """Require ADMIN role. Raises 401 if unauthenticated, 403 if not admin."""
    ensure_authorized(caller, requires_admin=True)
    return caller


def get_sensor_from_api_key(request: Request) -> Sensor:
    """Authenticate a sensor by its X-API-Key header.

    Missing or unknown key -> Unauthenticated (401). A deactivated sensor
    -> Forbidden (403): the key is genuine but the owner has switched it off.
    """
    raw_key = request.headers.get("X-API-Key", "").strip()
    if not raw_key:
        raise Unauthenticated("API key required.")
    sensor = get_telemetry(request).get_sensor_by_api_key_hash(hash_api_key(raw_key))
    if sensor is None:
        raise Unauthenticated("Invalid API key.")
    if not sensor.is_active:
        raise Forbidden("Sensor is inactive.")
    return sensor

