"""
api/routes/v1/measurements.py -- Measurement ingestion and management.

Routes:
  POST   /measurements        -- sensor pushes a reading (X-API-Key header)
  GET    /measurements/{id}   -- bearer auth, owner of the sensor or admin
  PUT    /measurements/{id}   -- correct value/unit
  DELETE /measurements/{id}

Ingestion uses the sensor's API key rather than a user token: devices never
hold user credentials.
"""

import logging
from datetime import timezone

from fastapi import APIRouter, Depends, Request

from api.models import MeasurementCreate, MeasurementOut, MeasurementResponse, MeasurementUpdate, MessageResponse
from auth.dependencies import get_current_identity, get_sensor_from_api_key, get_telemetry
from auth.models import Identity
from auth.service import ensure_authorized
from core.errors import NotFound
from telemetry.models import Measurement, Sensor
from telemetry.store import TelemetryStore

logger = logging.getLogger("sensorhub.api")

router = APIRouter()


@router.post("/measurements", response_model=MeasurementResponse, status_code=201)
def create_measurement(
    request: Request,
    body: MeasurementCreate,
    sensor: Sensor = Depends(get_sensor_from_api_key),
) -> MeasurementResponse:
    """Record a reading for the sensor that owns the presented API key.

    A timestamp without a zone is taken as UTC; no timestamp means "now".
    """
    timestamp = ""
    if body.timestamp is not None:
        ts = body.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        timestamp = ts.astimezone(timezone.utc).isoformat()
    measurement = get_telemetry(request).create_measurement(
        Measurement(sensor_id=sensor.id, value=body.value, unit=body.unit, timestamp=timestamp)
    )
    logger.debug("Measurement %s recorded for sensor %s", measurement.id, sensor.id)
    return MeasurementResponse(
        message="Measurement recorded successfully.",
        measurement=MeasurementOut.from_measurement(measurement),
    )


@router.get("/measurements/{measurement_id}", response_model=MeasurementResponse)
def get_measurement(
    request: Request,
    measurement_id: int,
    caller: Identity = Depends(get_current_identity),
) -> MeasurementResponse:
    telemetry: TelemetryStore = get_telemetry(request)
    ensure_authorized(caller, telemetry.find_resource_owner("measurement", measurement_id))
    measurement = telemetry.get_measurement(measurement_id)
    if measurement is None:
        raise NotFound("Measurement not found.")
    return MeasurementResponse(measurement=MeasurementOut.from_measurement(measurement))


@router.put("/measurements/{measurement_id}", response_model=MeasurementResponse)
def update_measurement(
    request: Request,
    measurement_id: int,
    body: MeasurementUpdate,
    caller: Identity = Depends(get_current_identity),
) -> MeasurementResponse:
    telemetry: TelemetryStore = get_telemetry(request)
    ensure_authorized(caller, telemetry.find_resource_owner("measurement", measurement_id))
    measurement = telemetry.update_measurement(measurement_id, **body.model_dump(exclude_none=True))
    return MeasurementResponse(
        message="Measurement updated successfully.",
        measurement=MeasurementOut.from_measurement(measurement),
    )


@router.delete("/measurements/{measurement_id}", response_model=MessageResponse)
def delete_measurement(
    request: Request,
    measurement_id: int,
    caller: Identity = Depends(get_current_identity),
) -> MessageResponse:
    telemetry: TelemetryStore = get_telemetry(request)
    ensure_authorized(caller, telemetry.find_resource_owner("measurement", measurement_id))
    if not telemetry.delete_measurement(measurement_id):
        raise NotFound("Measurement not found.")
    return MessageResponse(message="Measurement deleted successfully.")
