"""
telemetry/store.py -- SQLAlchemy-backed persistence layer for SensorHub telemetry.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in telemetry/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. TelemetryStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route handlers
never touch SQL directly.

Cascades:
  delete_sensor()      -- the sensor's measurements, then the sensor.
  delete_owner_data()  -- measurements of the owner's sensors, the sensors,
                          then the owner's locations.
  Each cascade runs inside a single transaction so a failure midway leaves
  nothing half-deleted.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = TelemetryStore()                               # SQLite default
    store = TelemetryStore("postgresql://user:pw@host/db") # PostgreSQL
    location = store.create_location(Location(name="Lab", owner="alice"))
    owner = store.find_resource_owner("sensor", 7)
    store.close()
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from core.config import get_settings
from core.errors import Conflict, InvalidInput, NotFound
from telemetry.models import Location, Measurement, Sensor

logger = logging.getLogger("sensorhub.telemetry")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_locations = Table(
    "locations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("owner", String(255), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("name", "owner", name="uq_location_name_owner"),
)

_sensors = Table(
    "sensors",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("type", String(100), nullable=False),
    Column("owner", String(255), nullable=False, index=True),
    Column("location_id", Integer, index=True),  # NULL = unassigned
    Column("api_key_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("api_key_prefix", String(12), nullable=False),  # display only
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_measurements = Table(
    "measurements",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("sensor_id", Integer, nullable=False, index=True),
    Column("value", Float, nullable=False),
    Column("unit", String(50), nullable=False, server_default=""),
    Column("timestamp", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_LOCATION_FIELDS = {"name", "description"}
_SENSOR_FIELDS = {"name", "type", "is_active", "location_id"}
_MEASUREMENT_FIELDS = {"value", "unit"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _check_fields(fields: dict, allowed: set[str]) -> None:
    # Column names come from this whitelist, never from raw user input.
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown fields: {sorted(unknown)!r}")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TelemetryStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, echo=get_settings().debug)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Ownership boundary
    # ------------------------------------------------------------------

    def find_resource_owner(self, resource_type: str, resource_id: int) -> str:
        """Return the owning username of a resource.

        A measurement is owned by its sensor's owner. Raises NotFound if the
        resource (or, for a measurement, its sensor) does not exist.
        """
        if resource_type == "location":
            stmt = select(_locations.c.owner).where(_locations.c.id == resource_id)
        elif resource_type == "sensor":
            stmt = select(_sensors.c.owner).where(_sensors.c.id == resource_id)
        elif resource_type == "measurement":
            stmt = (
                select(_sensors.c.owner)
                .select_from(_measurements.join(_sensors, _measurements.c.sensor_id == _sensors.c.id))
                .where(_measurements.c.id == resource_id)
            )
        else:
            raise ValueError(f"Unknown resource type: {resource_type!r}")
        with self.engine.connect() as conn:
            owner = conn.execute(stmt).scalar()
        if owner is None:
            raise NotFound(f"{resource_type.capitalize()} not found.")
        return owner

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def create_location(self, location: Location) -> Location:
        """Insert a location. Raises Conflict if the owner already has one with this name."""
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _locations.insert().values(
                        name=location.name,
                        description=location.description or "",
                        owner=location.owner,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise Conflict("You already have a location with this name.") from exc
        return self.get_location(result.inserted_primary_key[0])

    def get_location(self, location_id: int) -> Optional[Location]:
        with self.engine.connect() as conn:
            row = conn.execute(_locations.select().where(_locations.c.id == location_id)).fetchone()
        return _row_to_location(row) if row is not None else None

    def list_locations(self, owner: Optional[str] = None) -> list[Location]:
        """Return locations ordered by name, optionally scoped to one owner."""
        stmt = _locations.select().order_by(_locations.c.name, _locations.c.id)
        if owner is not None:
            stmt = stmt.where(_locations.c.owner == owner)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_location(r) for r in rows]

    def update_location(self, location_id: int, **fields) -> Location:
        """Update name/description. Raises Conflict on a duplicate name, NotFound if absent."""
        _check_fields(fields, _LOCATION_FIELDS)
        if fields:
            try:
                with self.engine.connect() as conn:
                    result = conn.execute(
                        _locations.update()
                        .where(_locations.c.id == location_id)
                        .values(**fields, updated_at=_now_iso())
                    )
                    conn.commit()
            except IntegrityError as exc:
                raise Conflict("You already have a location with this name.") from exc
            if result.rowcount == 0:
                raise NotFound("Location not found.")
        location = self.get_location(location_id)
        if location is None:
            raise NotFound("Location not found.")
        return location

    def count_sensors_at(self, location_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_sensors).where(_sensors.c.location_id == location_id)
            ).scalar()
        return result or 0

    def delete_location(self, location_id: int) -> None:
        """Delete a location that has no sensors assigned.

        Raises InvalidInput if sensors still reference it, NotFound if absent.
        The count and the delete share one transaction.
        """
        with self.engine.connect() as conn:
            assigned = conn.execute(
                select(func.count()).select_from(_sensors).where(_sensors.c.location_id == location_id)
            ).scalar()
            if assigned:
                raise InvalidInput(
                    f"Cannot delete location. {assigned} sensor(s) are still assigned to this location."
                )
            result = conn.execute(_locations.delete().where(_locations.c.id == location_id))
            conn.commit()
        if result.rowcount == 0:
            raise NotFound("Location not found.")

    # ------------------------------------------------------------------
    # Sensors
    # ------------------------------------------------------------------

    def create_sensor(self, sensor: Sensor) -> Sensor:
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _sensors.insert().values(
                    name=sensor.name,
                    type=sensor.type,
                    owner=sensor.owner,
                    location_id=sensor.location_id,
                    api_key_hash=sensor.api_key_hash,
                    api_key_prefix=sensor.api_key_prefix,
                    is_active=sensor.is_active,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return self.get_sensor(result.inserted_primary_key[0])

    def get_sensor(self, sensor_id: int) -> Optional[Sensor]:
        """Return a sensor with its location populated, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_sensors.select().where(_sensors.c.id == sensor_id)).fetchone()
            if row is None:
                return None
            return self._with_locations(conn, [_row_to_sensor(row)])[0]

    def get_sensor_by_api_key_hash(self, key_hash: str) -> Optional[Sensor]:
        """Look up a sensor by its API key HMAC. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_sensors.select().where(_sensors.c.api_key_hash == key_hash)).fetchone()
        return _row_to_sensor(row) if row is not None else None

    def list_sensors(
        self,
        owner: Optional[str] = None,
        location_id: Optional[int] = None,
        unassigned: bool = False,
    ) -> list[Sensor]:
        """Return sensors ordered by id.

        owner scopes to one user. location_id filters to one location;
        unassigned=True filters to sensors with no location.
        """
        stmt = _sensors.select().order_by(_sensors.c.id)
        if owner is not None:
            stmt = stmt.where(_sensors.c.owner == owner)
        if unassigned:
            stmt = stmt.where(_sensors.c.location_id.is_(None))
        elif location_id is not None:
            stmt = stmt.where(_sensors.c.location_id == location_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            return self._with_locations(conn, [_row_to_sensor(r) for r in rows])

    def update_sensor(self, sensor_id: int, **fields) -> Sensor:
        """Update name/type/is_active/location_id. Raises NotFound if absent."""
        _check_fields(fields, _SENSOR_FIELDS)
        if fields:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _sensors.update().where(_sensors.c.id == sensor_id).values(**fields, updated_at=_now_iso())
                )
                conn.commit()
            if result.rowcount == 0:
                raise NotFound("Sensor not found.")
        sensor = self.get_sensor(sensor_id)
        if sensor is None:
            raise NotFound("Sensor not found.")
        return sensor

    def set_sensor_api_key(self, sensor_id: int, key_hash: str, key_prefix: str) -> Sensor:
        """Replace a sensor's API key. The previous key stops working immediately."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sensors.update()
                .where(_sensors.c.id == sensor_id)
                .values(api_key_hash=key_hash, api_key_prefix=key_prefix, updated_at=_now_iso())
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFound("Sensor not found.")
        sensor = self.get_sensor(sensor_id)
        if sensor is None:
            raise NotFound("Sensor not found.")
        return sensor

    def transfer_sensor(self, sensor_id: int, new_owner: str, key_hash: str, key_prefix: str) -> Sensor:
        """Hand a sensor to another user.

        The location is cleared (it belongs to the old owner) and the API key
        is replaced so the previous owner's devices can no longer push data.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _sensors.update()
                .where(_sensors.c.id == sensor_id)
                .values(
                    owner=new_owner,
                    location_id=None,
                    api_key_hash=key_hash,
                    api_key_prefix=key_prefix,
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFound("Sensor not found.")
        return self.get_sensor(sensor_id)

    def delete_sensor(self, sensor_id: int) -> int:
        """Delete a sensor and all of its measurements.

        Returns the number of measurements removed. Raises NotFound if absent.
        """
        with self.engine.connect() as conn:
            removed = conn.execute(_measurements.delete().where(_measurements.c.sensor_id == sensor_id)).rowcount
            result = conn.execute(_sensors.delete().where(_sensors.c.id == sensor_id))
            if result.rowcount == 0:
                conn.rollback()
                raise NotFound("Sensor not found.")
            conn.commit()
        return removed

    def delete_owner_data(self, owner: str) -> dict[str, int]:
        """Delete every sensor, measurement and location owned by owner.

        Returns counts: {"sensors": n, "measurements": n, "locations": n}.
        """
        with self.engine.connect() as conn:
            sensor_ids = [r[0] for r in conn.execute(select(_sensors.c.id).where(_sensors.c.owner == owner))]
            measurements = 0
            if sensor_ids:
                measurements = conn.execute(
                    _measurements.delete().where(_measurements.c.sensor_id.in_(sensor_ids))
                ).rowcount
            sensors = conn.execute(_sensors.delete().where(_sensors.c.owner == owner)).rowcount
            locations = conn.execute(_locations.delete().where(_locations.c.owner == owner)).rowcount
            conn.commit()
        logger.info(
            "Deleted data for %s: %d sensors, %d measurements, %d locations",
            owner,
            sensors,
            measurements,
            locations,
        )
        return {"sensors": sensors, "measurements": measurements, "locations": locations}

    # ------------------------------------------------------------------
    # Measurements
    # ------------------------------------------------------------------

    def create_measurement(self, measurement: Measurement) -> Measurement:
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _measurements.insert().values(
                    sensor_id=measurement.sensor_id,
                    value=measurement.value,
                    unit=measurement.unit or "",
                    timestamp=measurement.timestamp or now,
                    created_at=now,
                )
            )
            conn.commit()
        return self.get_measurement(result.inserted_primary_key[0])

    def get_measurement(self, measurement_id: int) -> Optional[Measurement]:
        with self.engine.connect() as conn:
            row = conn.execute(_measurements.select().where(_measurements.c.id == measurement_id)).fetchone()
        return _row_to_measurement(row) if row is not None else None

    def list_measurements(self, sensor_id: int, limit: Optional[int] = None) -> list[Measurement]:
        """Return a sensor's measurements, newest first."""
        stmt = (
            _measurements.select()
            .where(_measurements.c.sensor_id == sensor_id)
            .order_by(_measurements.c.timestamp.desc(), _measurements.c.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_measurement(r) for r in rows]

    def update_measurement(self, measurement_id: int, **fields) -> Measurement:
        _check_fields(fields, _MEASUREMENT_FIELDS)
        if fields:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _measurements.update().where(_measurements.c.id == measurement_id).values(**fields)
                )
                conn.commit()
            if result.rowcount == 0:
                raise NotFound("Measurement not found.")
        measurement = self.get_measurement(measurement_id)
        if measurement is None:
            raise NotFound("Measurement not found.")
        return measurement

    def delete_measurement(self, measurement_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_measurements.delete().where(_measurements.c.id == measurement_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _with_locations(self, conn: Connection, sensors: list[Sensor]) -> list[Sensor]:
        """Populate Sensor.location with one query for the whole batch."""
        ids = {s.location_id for s in sensors if s.location_id is not None}
        if ids:
            rows = conn.execute(_locations.select().where(_locations.c.id.in_(ids))).fetchall()
            by_id = {r.id: _row_to_location(r) for r in rows}
            for sensor in sensors:
                sensor.location = by_id.get(sensor.location_id)
        return sensors

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_location(row) -> Location:
    return Location(
        id=row.id,
        name=row.name,
        description=row.description or "",
        owner=row.owner,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_sensor(row) -> Sensor:
    return Sensor(
        id=row.id,
        name=row.name,
        type=row.type,
        owner=row.owner,
        location_id=row.location_id,
        api_key_hash=row.api_key_hash,
        api_key_prefix=row.api_key_prefix,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_measurement(row) -> Measurement:
    return Measurement(
        id=row.id,
        sensor_id=row.sensor_id,
        value=row.value,
        unit=row.unit or "",
        timestamp=row.timestamp,
        created_at=row.created_at,
    )
