"""
api/routes/v1/sensors.py -- Sensor management for the SensorHub REST API.

Routes:
  POST   /sensors                    -- register a sensor; returns its API key once
  GET    /sensors                    -- caller's sensors (?locationId=<id>|none)
  GET    /sensors/{id}               -- one sensor
  PUT    /sensors/{id}               -- partial update (location: null unassigns)
  DELETE /sensors/{id}               -- delete sensor and its measurements
  GET    /sensors/{id}/measurements  -- newest first (?limit=N)
  POST   /sensors/{id}/api-key       -- rotate the API key

Every /{id} route resolves the owner first (404 if the sensor is gone) and
then runs the ownership check (403 unless owner or admin).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    MeasurementOut,
    MeasurementsResponse,
    MessageResponse,
    SensorCreate,
    SensorKeyResponse,
    SensorOut,
    SensorResponse,
    SensorsResponse,
    SensorUpdate,
)
from auth.dependencies import get_current_identity, get_telemetry
from auth.models import Identity
from auth.service import ensure_authorized
from auth.tokens import new_sensor_key
from core.errors import Forbidden, InvalidInput, NotFound
from telemetry.models import Sensor
from telemetry.store import TelemetryStore

router = APIRouter(dependencies=[Depends(get_current_identity)])


def _owned_sensor(telemetry: TelemetryStore, caller: Identity, sensor_id: int) -> Sensor:
    ensure_authorized(caller, telemetry.find_resource_owner("sensor", sensor_id))
    sensor = telemetry.get_sensor(sensor_id)
    if sensor is None:
        raise NotFound("Sensor not found.")
    return sensor


def _check_location(telemetry: TelemetryStore, caller: Identity, location_id: int) -> None:
    """A sensor may only be placed in one of the caller's own locations."""
    location = telemetry.get_location(location_id)
    if location is None:
        raise InvalidInput("Location not found.")
    if location.owner != caller.username:
        raise Forbidden("You can only assign sensors to your own locations.")


def _parse_location_filter(raw: Optional[str]) -> tuple[Optional[int], bool]:
    # "none" selects unassigned sensors.
    if raw is None or raw == "":
        return None, False
    if raw.lower() == "none":
        return None, True
    try:
        return int(raw), False
    except ValueError as exc:
        raise InvalidInput("locationId must be an integer or 'none'.") from exc


@router.post("/sensors", response_model=SensorKeyResponse, status_code=201)
def create_sensor(
    request: Request,
    body: SensorCreate,
    caller: Identity = Depends(get_current_identity),
) -> SensorKeyResponse:
    """Register a sensor. The raw API key is in this response and nowhere else."""
    telemetry: TelemetryStore = get_telemetry(request)
    if body.location is not None:
        _check_location(telemetry, caller, body.location)
    raw_key, key_hash, key_prefix = new_sensor_key()
    sensor = telemetry.create_sensor(
        Sensor(
            name=body.name,
            type=body.type,
            owner=caller.username,
            location_id=body.location,
            api_key_hash=key_hash,
            api_key_prefix=key_prefix,
        )
    )
    return SensorKeyResponse(
        message="Sensor created successfully. Store the API key now; it will not be shown again.",
        sensor=SensorOut.from_sensor(sensor),
        api_key=raw_key,
    )


@router.get("/sensors", response_model=SensorsResponse)
def list_sensors(
    request: Request,
    location_id: Optional[str] = Query(default=None, alias="locationId"),
    caller: Identity = Depends(get_current_identity),
) -> SensorsResponse:
    location, unassigned = _parse_location_filter(location_id)
    sensors = get_telemetry(request).list_sensors(owner=caller.username, location_id=location, unassigned=unassigned)
    return SensorsResponse(sensors=[SensorOut.from_sensor(s) for s in sensors])


@router.get("/sensors/{sensor_id}", response_model=SensorResponse)
def get_sensor(
    request: Request,
    sensor_id: int,
    caller: Identity = Depends(get_current_identity),
) -> SensorResponse:
    sensor = _owned_sensor(get_telemetry(request), caller, sensor_id)
    return SensorResponse(sensor=SensorOut.from_sensor(sensor))


@router.put("/sensors/{sensor_id}", response_model=SensorResponse)
def update_sensor(
    request: Request,
    sensor_id: int,
    body: SensorUpdate,
    caller: Identity = Depends(get_current_identity),
) -> SensorResponse:
    """Partial update.

    Fields left out of the body are untouched. An explicit "location": null
    unassigns the sensor; a location id must name one of the caller's own
    locations.
    """
    telemetry: TelemetryStore = get_telemetry(request)
    _owned_sensor(telemetry, caller, sensor_id)
    updates = body.model_dump(exclude_none=True, exclude={"location"})
    if "location" in body.model_fields_set:
        if body.location is not None:
            _check_location(telemetry, caller, body.location)
        updates["location_id"] = body.location
    sensor = telemetry.update_sensor(sensor_id, **updates)
    return SensorResponse(message="Sensor updated successfully.", sensor=SensorOut.from_sensor(sensor))


@router.delete("/sensors/{sensor_id}", response_model=MessageResponse)
def delete_sensor(
    request: Request,
    sensor_id: int,
    caller: Identity = Depends(get_current_identity),
) -> MessageResponse:
    telemetry: TelemetryStore = get_telemetry(request)
    _owned_sensor(telemetry, caller, sensor_id)
    removed = telemetry.delete_sensor(sensor_id)
    return MessageResponse(message=f"Sensor deleted successfully along with {removed} measurement(s).")


@router.get("/sensors/{sensor_id}/measurements", response_model=MeasurementsResponse)
def list_sensor_measurements(
    request: Request,
    sensor_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=10000),
    caller: Identity = Depends(get_current_identity),
) -> MeasurementsResponse:
    telemetry: TelemetryStore = get_telemetry(request)
    _owned_sensor(telemetry, caller, sensor_id)
    measurements = telemetry.list_measurements(sensor_id, limit=limit)
    return MeasurementsResponse(measurements=[MeasurementOut.from_measurement(m) for m in measurements])


@router.post("/sensors/{sensor_id}/api-key", response_model=SensorKeyResponse)
def rotate_api_key(
    request: Request,
    sensor_id: int,
    caller: Identity = Depends(get_current_identity),
) -> SensorKeyResponse:
    """Issue a new API key. The old key stops working immediately."""
    telemetry: TelemetryStore = get_telemetry(request)
    _owned_sensor(telemetry, caller, sensor_id)
    raw_key, key_hash, key_prefix = new_sensor_key()
    sensor = telemetry.set_sensor_api_key(sensor_id, key_hash, key_prefix)
    return SensorKeyResponse(
        message="API key regenerated. Store it now; it will not be shown again.",
        sensor=SensorOut.from_sensor(sensor),
        api_key=raw_key,
    )
