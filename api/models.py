"""
API request and response models for SensorHub REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
telemetry/models.py, which own the internal domain representation. Route
handlers map between the two with the from_* factory methods below.

JSON field names are camelCase on the wire (isActive, createdAt, oldPassword)
to match the browser frontend; Python attributes stay snake_case. Request
models accept either spelling.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Account, Role
from telemetry.models import Location, Measurement, Sensor

# ---------------------------------------------------------------------------
# Base models
# ---------------------------------------------------------------------------


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorResponse(_Response):
    """Error envelope returned on every 4xx/5xx response.

    message is human-readable; code is stable and machine-readable.
    """

    message: str
    code: str
    detail: Optional[str] = None


class MessageResponse(_Response):
    message: str


class HealthResponse(_Response):
    """Response for GET /api/health."""

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(_Request):
    """Request body for POST /api/auth/register.

    role defaults to USER. Asking for ADMIN requires an admin bearer token.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)
    role: Role = Role.USER


class LoginRequest(_Request):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class PasswordChangeRequest(_Request):
    old_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class AccountDeleteRequest(_Request):
    """Password re-entry confirms an irreversible cascade delete."""

    password: str = Field(min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class UserOut(_Response):
    username: str
    role: Role
    created_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "UserOut":
        return cls(username=account.username, role=account.role, created_at=account.created_at)


class UserResponse(_Response):
    message: str
    user: UserOut


class UsersResponse(_Response):
    users: list[UserOut]


class LoginResponse(_Response):
    message: str
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class VerifyResponse(_Response):
    valid: bool
    user: UserOut


class MeResponse(_Response):
    user: UserOut


class DeletedCounts(_Response):
    sensors: int
    measurements: int
    locations: int
    user: str


class AccountDeletedResponse(_Response):
    message: str
    deleted: DeletedCounts


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


class LocationCreate(_Request):
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=1000)


class LocationUpdate(_Request):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)


class LocationOut(_Response):
    id: int
    name: str
    description: str
    owner: str
    created_at: str
    updated_at: str

    @classmethod
    def from_location(cls, location: Location) -> "LocationOut":
        return cls(
            id=location.id,
            name=location.name,
            description=location.description,
            owner=location.owner,
            created_at=location.created_at,
            updated_at=location.updated_at,
        )


class LocationResponse(_Response):
    message: Optional[str] = None
    location: LocationOut


class LocationsResponse(_Response):
    locations: list[LocationOut]


# ---------------------------------------------------------------------------
# Sensors
# ---------------------------------------------------------------------------


class SensorCreate(_Request):
    name: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=100)
    location: Optional[int] = Field(default=None, description="Location id; omit for unassigned.")


class SensorUpdate(_Request):
    """Partial update. Sending "location": null unassigns the sensor;
    omitting the key leaves the location unchanged (see model_fields_set).
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_active: Optional[bool] = None
    location: Optional[int] = None


class SensorTransfer(_Request):
    new_owner: str = Field(min_length=1, max_length=255)


class SensorOut(_Response):
    """A sensor as shown to its owner. The raw API key is never included."""

    id: int
    name: str
    type: str
    owner: str
    location: Optional[LocationOut]
    api_key_prefix: str
    is_active: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_sensor(cls, sensor: Sensor) -> "SensorOut":
        return cls(
            id=sensor.id,
            name=sensor.name,
            type=sensor.type,
            owner=sensor.owner,
            location=LocationOut.from_location(sensor.location) if sensor.location else None,
            api_key_prefix=sensor.api_key_prefix,
            is_active=sensor.is_active,
            created_at=sensor.created_at,
            updated_at=sensor.updated_at,
        )


class SensorResponse(_Response):
    message: Optional[str] = None
    sensor: SensorOut


class SensorKeyResponse(_Response):
    """Returned when a key is created, rotated or regenerated on transfer.

    api_key is shown ONCE; only its HMAC is stored.
    """

    message: str
    sensor: SensorOut
    api_key: str


class SensorsResponse(_Response):
    sensors: list[SensorOut]


# ---------------------------------------------------------------------------
# Measurements
# ---------------------------------------------------------------------------


class MeasurementCreate(_Request):
    value: float = Field(allow_inf_nan=False)
    unit: str = Field(default="", max_length=50)
    timestamp: Optional[datetime] = Field(default=None, description="Defaults to server receive time.")


class MeasurementUpdate(_Request):
    value: Optional[float] = Field(default=None, allow_inf_nan=False)
    unit: Optional[str] = Field(default=None, max_length=50)


class MeasurementOut(_Response):
    id: int
    sensor_id: int
    value: float
    unit: str
    timestamp: str
    created_at: str

    @classmethod
    def from_measurement(cls, measurement: Measurement) -> "MeasurementOut":
        return cls(
            id=measurement.id,
            sensor_id=measurement.sensor_id,
            value=measurement.value,
            unit=measurement.unit,
            timestamp=measurement.timestamp,
            created_at=measurement.created_at,
        )


class MeasurementResponse(_Response):
    message: Optional[str] = None
    measurement: MeasurementOut


class MeasurementsResponse(_Response):
    measurements: list[MeasurementOut]
