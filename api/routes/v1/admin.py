"""
api/routes/v1/admin.py -- Administrative views across all users.

Every route requires the ADMIN role (router-level dependency).

Routes:
  GET    /admin/users                      -- all accounts
  DELETE /admin/users/{username}           -- delete another user + cascade
  GET    /admin/users/{username}/sensors
  GET    /admin/users/{username}/locations
  GET    /admin/sensors                    -- every sensor
  GET    /admin/locations                  -- every location
  DELETE /admin/sensors/{id}
  POST   /admin/sensors/{id}/transfer      -- hand a sensor to another user
"""

import logging

from fastapi import APIRouter, Depends, Request

from api.models import (
    AccountDeletedResponse,
    DeletedCounts,
    LocationOut,
    LocationsResponse,
    MessageResponse,
    SensorKeyResponse,
    SensorOut,
    SensorsResponse,
    SensorTransfer,
    UserOut,
    UsersResponse,
)
from auth.dependencies import get_auth_service, get_telemetry, require_admin
from auth.models import Identity
from auth.service import AuthService
from auth.tokens import new_sensor_key
from core.errors import InvalidInput, NotFound
from telemetry.store import TelemetryStore

logger = logging.getLogger("sensorhub.api")

router = APIRouter(dependencies=[Depends(require_admin)])


def _require_user(service: AuthService, username: str) -> None:
    if service.accounts.find_account(username) is None:
        raise NotFound("User not found.")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=UsersResponse)
def list_users(request: Request) -> UsersResponse:
    accounts = get_auth_service(request).accounts.list_accounts()
    return UsersResponse(users=[UserOut.from_account(a) for a in accounts])


@router.delete("/admin/users/{username}", response_model=AccountDeletedResponse)
def delete_user(
    request: Request,
    username: str,
    caller: Identity = Depends(require_admin),
) -> AccountDeletedResponse:
    """Delete a user and everything they own. Admins delete themselves via /auth/account."""
    if username == caller.username:
        raise InvalidInput("Use DELETE /api/auth/account to delete your own account.")
    counts = get_auth_service(request).delete_account(username)
    logger.info("Admin %s deleted user %s", caller.username, username)
    return AccountDeletedResponse(
        message=f"User {username} and all associated data deleted successfully.",
        deleted=DeletedCounts(user=username, **counts),
    )


@router.get("/admin/users/{username}/sensors", response_model=SensorsResponse)
def list_user_sensors(request: Request, username: str) -> SensorsResponse:
    _require_user(get_auth_service(request), username)
    sensors = get_telemetry(request).list_sensors(owner=username)
    return SensorsResponse(sensors=[SensorOut.from_sensor(s) for s in sensors])


@router.get("/admin/users/{username}/locations", response_model=LocationsResponse)
def list_user_locations(request: Request, username: str) -> LocationsResponse:
    _require_user(get_auth_service(request), username)
    locations = get_telemetry(request).list_locations(owner=username)
    return LocationsResponse(locations=[LocationOut.from_location(loc) for loc in locations])


# ---------------------------------------------------------------------------
# Sensors and locations
# ---------------------------------------------------------------------------


@router.get("/admin/sensors", response_model=SensorsResponse)
def list_all_sensors(request: Request) -> SensorsResponse:
    sensors = get_telemetry(request).list_sensors()
    return SensorsResponse(sensors=[SensorOut.from_sensor(s) for s in sensors])


@router.get("/admin/locations", response_model=LocationsResponse)
def list_all_locations(request: Request) -> LocationsResponse:
    locations = get_telemetry(request).list_locations()
    return LocationsResponse(locations=[LocationOut.from_location(loc) for loc in locations])


@router.delete("/admin/sensors/{sensor_id}", response_model=MessageResponse)
def delete_sensor(request: Request, sensor_id: int) -> MessageResponse:
    removed = get_telemetry(request).delete_sensor(sensor_id)
    return MessageResponse(message=f"Sensor deleted successfully along with {removed} measurement(s).")


@router.post("/admin/sensors/{sensor_id}/transfer", response_model=SensorKeyResponse)
def transfer_sensor(
    request: Request,
    sensor_id: int,
    body: SensorTransfer,
    caller: Identity = Depends(require_admin),
) -> SensorKeyResponse:
    """Move a sensor to another user.

    The location is cleared and a new API key is issued; the key in this
    response is the only copy.
    """
    telemetry: TelemetryStore = get_telemetry(request)
    current_owner = telemetry.find_resource_owner("sensor", sensor_id)
    _require_user(get_auth_service(request), body.new_owner)
    if body.new_owner == current_owner:
        raise InvalidInput("Sensor already belongs to this user.")
    raw_key, key_hash, key_prefix = new_sensor_key()
    sensor = telemetry.transfer_sensor(sensor_id, body.new_owner, key_hash, key_prefix)
    logger.info("Admin %s transferred sensor %s from %s to %s", caller.username, sensor_id, current_owner, body.new_owner)
    return SensorKeyResponse(
        message=f"Sensor transferred from {current_owner} to {body.new_owner}.",
        sensor=SensorOut.from_sensor(sensor),
        api_key=raw_key,
    )
