"""
telemetry/models.py -- Domain dataclasses for locations, sensors and measurements.

These are pure data containers with zero logic. Ownership rules live in
auth/service.py; persistence and cascade deletes live in telemetry/store.py.

owner is always a username. A measurement has no owner column of its own --
it belongs to whoever owns its sensor.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Location:
    """A named place a user groups sensors under.

    (name, owner) is unique: two users may both have a "Kitchen".
    id is None before the record is written to the database.
    """

    name: str
    owner: str
    description: str = ""
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class Sensor:
    """A device that pushes measurements with its own API key.

    api_key_hash is HMAC-SHA256(SECRET_KEY, raw_key); the raw key is only
    ever returned to the owner at creation, rotation or transfer.
    api_key_prefix (first 10 chars of the raw key) is stored for display so
    owners can tell keys apart without exposing them.
    """

    name: str
    type: str
    owner: str
    api_key_hash: str = ""
    api_key_prefix: str = ""
    location_id: Optional[int] = None
    is_active: bool = True
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
    location: Optional[Location] = None  # populated by the store on reads


@dataclass
class Measurement:
    """One reading pushed by a sensor."""

    sensor_id: int
    value: float
    unit: str = ""
    timestamp: str = ""  # ISO 8601, defaults to insert time
    id: Optional[int] = None
    created_at: str = ""
