"""
tests/test_telemetry_store.py -- Unit tests for TelemetryStore (SQLite in-memory).

Covers:
  - find_resource_owner for each resource type, NotFound, unknown type
  - location name uniqueness per owner (create and rename), delete guard
  - sensor filters (owner, location, unassigned), location population
  - API key lookup and rotation, transfer clearing the location
  - cascades: delete_sensor, delete_owner_data
  - measurements newest-first with limit, update and delete
"""

from __future__ import annotations

import pytest

from core.errors import Conflict, InvalidInput, NotFound
from telemetry.models import Location, Measurement, Sensor
from telemetry.store import TelemetryStore


def _sensor(telemetry: TelemetryStore, owner: str, name: str, location_id: int | None = None) -> Sensor:
    return telemetry.create_sensor(
        Sensor(
            name=name,
            type="temperature",
            owner=owner,
            location_id=location_id,
            api_key_hash=f"hash-{owner}-{name}",
            api_key_prefix="sk_abcdefg",
        )
    )


class TestOwnership:
    def test_owner_of_each_type(self, telemetry: TelemetryStore) -> None:
        loc = telemetry.create_location(Location(name="Lab", owner="alice"))
        sensor = _sensor(telemetry, "alice", "s1", loc.id)
        m = telemetry.create_measurement(Measurement(sensor_id=sensor.id, value=21.5, unit="C"))
        assert telemetry.find_resource_owner("location", loc.id) == "alice"
        assert telemetry.find_resource_owner("sensor", sensor.id) == "alice"
        assert telemetry.find_resource_owner("measurement", m.id) == "alice"

    def test_missing_resource(self, telemetry: TelemetryStore) -> None:
        with pytest.raises(NotFound, match="Sensor not found"):
            telemetry.find_resource_owner("sensor", 999)

    def test_unknown_type(self, telemetry: TelemetryStore) -> None:
        with pytest.raises(ValueError):
            telemetry.find_resource_owner("dashboard", 1)


class TestLocations:
    def test_name_unique_per_owner(self, telemetry: TelemetryStore) -> None:
        telemetry.create_location(Location(name="Lab", owner="alice"))
        with pytest.raises(Conflict):
            telemetry.create_location(Location(name="Lab", owner="alice"))
        # Another owner may reuse the name.
        assert telemetry.create_location(Location(name="Lab", owner="bob")).owner == "bob"

    def test_rename_conflict(self, telemetry: TelemetryStore) -> None:
        telemetry.create_location(Location(name="Lab", owner="alice"))
        office = telemetry.create_location(Location(name="Office", owner="alice"))
        with pytest.raises(Conflict):
            telemetry.update_location(office.id, name="Lab")

    def test_update(self, telemetry: TelemetryStore) -> None:
        loc = telemetry.create_location(Location(name="Lab", owner="alice"))
        updated = telemetry.update_location(loc.id, description="Second floor")
        assert updated.name == "Lab"
        assert updated.description == "Second floor"

    def test_update_missing(self, telemetry: TelemetryStore) -> None:
        with pytest.raises(NotFound):
            telemetry.update_location(42, name="x")

    def test_update_rejects_unknown_field(self, telemetry: TelemetryStore) -> None:
        loc = telemetry.create_location(Location(name="Lab", owner="alice"))
        with pytest.raises(ValueError):
            telemetry.update_location(loc.id, owner="mallory")

    def test_list_scoped_and_sorted(self, telemetry: TelemetryStore) -> None:
        telemetry.create_location(Location(name="Zeta", owner="alice"))
        telemetry.create_location(Location(name="Alpha", owner="alice"))
        telemetry.create_location(Location(name="Other", owner="bob"))
        assert [loc.name for loc in telemetry.list_locations(owner="alice")] == ["Alpha", "Zeta"]
        assert len(telemetry.list_locations()) == 3

    def test_delete_refused_while_sensors_assigned(self, telemetry: TelemetryStore) -> None:
        loc = telemetry.create_location(Location(name="Lab", owner="alice"))
        sensor = _sensor(telemetry, "alice", "s1", loc.id)
        with pytest.raises(InvalidInput, match="1 sensor"):
            telemetry.delete_location(loc.id)
        telemetry.update_sensor(sensor.id, location_id=None)
        telemetry.delete_location(loc.id)
        assert telemetry.get_location(loc.id) is None

    def test_delete_missing(self, telemetry: TelemetryStore) -> None:
        with pytest.raises(NotFound):
            telemetry.delete_location(42)


class TestSensors:
    def test_location_populated(self, telemetry: TelemetryStore) -> None:
        loc = telemetry.create_location(Location(name="Lab", owner="alice"))
        sensor = _sensor(telemetry, "alice", "s1", loc.id)
        assert sensor.location is not None
        assert sensor.location.name == "Lab"
        assert sensor.is_active is True

    def test_filters(self, telemetry: TelemetryStore) -> None:
        loc = telemetry.create_location(Location(name="Lab", owner="alice"))
        placed = _sensor(telemetry, "alice", "placed", loc.id)
        loose = _sensor(telemetry, "alice", "loose")
        _sensor(telemetry, "bob", "bobs")
        assert [s.id for s in telemetry.list_sensors(owner="alice")] == [placed.id, loose.id]
        assert [s.id for s in telemetry.list_sensors(owner="alice", location_id=loc.id)] == [placed.id]
        assert [s.id for s in telemetry.list_sensors(owner="alice", unassigned=True)] == [loose.id]
        assert len(telemetry.list_sensors()) == 3

    def test_lookup_by_key_hash(self, telemetry: TelemetryStore) -> None:
        sensor = _sensor(telemetry, "alice", "s1")
        assert telemetry.get_sensor_by_api_key_hash("hash-alice-s1").id == sensor.id
        assert telemetry.get_sensor_by_api_key_hash("nope") is None

    def test_rotate_key(self, telemetry: TelemetryStore) -> None:
        sensor = _sensor(telemetry, "alice", "s1")
        rotated = telemetry.set_sensor_api_key(sensor.id, "new-hash", "sk_new0000")
        assert rotated.api_key_prefix == "sk_new0000"
        assert telemetry.get_sensor_by_api_key_hash("hash-alice-s1") is None
        assert telemetry.get_sensor_by_api_key_hash("new-hash").api_key_prefix == "sk_new0000"

    def test_rotate_key_unknown_sensor(self, telemetry: TelemetryStore) -> None:
        with pytest.raises(NotFound):
            telemetry.set_sensor_api_key(9999, "new-hash", "sk_new0000")

    def test_deactivate(self, telemetry: TelemetryStore) -> None:
        sensor = _sensor(telemetry, "alice", "s1")
        assert telemetry.update_sensor(sensor.id, is_active=False).is_active is False

    def test_transfer_clears_location_and_key(self, telemetry: TelemetryStore) -> None:
        loc = telemetry.create_location(Location(name="Lab", owner="alice"))
        sensor = _sensor(telemetry, "alice", "s1", loc.id)
        moved = telemetry.transfer_sensor(sensor.id, "bob", "bob-hash", "sk_bob0000")
        assert moved.owner == "bob"
        assert moved.location_id is None
        assert moved.location is None
        assert telemetry.get_sensor_by_api_key_hash("hash-alice-s1") is None

    def test_delete_cascades_measurements(self, telemetry: TelemetryStore) -> None:
        sensor = _sensor(telemetry, "alice", "s1")
        m = telemetry.create_measurement(Measurement(sensor_id=sensor.id, value=1.0))
        telemetry.create_measurement(Measurement(sensor_id=sensor.id, value=2.0))
        assert telemetry.delete_sensor(sensor.id) == 2
        assert telemetry.get_sensor(sensor.id) is None
        assert telemetry.get_measurement(m.id) is None

    def test_delete_missing(self, telemetry: TelemetryStore) -> None:
        with pytest.raises(NotFound):
            telemetry.delete_sensor(999)


class TestMeasurements:
    def test_newest_first_with_limit(self, telemetry: TelemetryStore) -> None:
        sensor = _sensor(telemetry, "alice", "s1")
        for i, ts in enumerate(["2024-01-01T00:00:00+00:00", "2024-03-01T00:00:00+00:00", "2024-02-01T00:00:00+00:00"]):
            telemetry.create_measurement(Measurement(sensor_id=sensor.id, value=float(i), timestamp=ts))
        values = [m.value for m in telemetry.list_measurements(sensor.id)]
        assert values == [1.0, 2.0, 0.0]
        assert [m.value for m in telemetry.list_measurements(sensor.id, limit=1)] == [1.0]

    def test_timestamp_defaults_to_now(self, telemetry: TelemetryStore) -> None:
        sensor = _sensor(telemetry, "alice", "s1")
        m = telemetry.create_measurement(Measurement(sensor_id=sensor.id, value=3.0))
        assert m.timestamp
        assert m.timestamp == m.created_at

    def test_update_and_delete(self, telemetry: TelemetryStore) -> None:
        sensor = _sensor(telemetry, "alice", "s1")
        m = telemetry.create_measurement(Measurement(sensor_id=sensor.id, value=3.0, unit="C"))
        updated = telemetry.update_measurement(m.id, value=4.5)
        assert updated.value == 4.5
        assert updated.unit == "C"
        assert telemetry.delete_measurement(m.id) is True
        assert telemetry.delete_measurement(m.id) is False

    def test_update_missing(self, telemetry: TelemetryStore) -> None:
        with pytest.raises(NotFound):
            telemetry.update_measurement(999, value=1.0)


def test_delete_owner_data_counts(telemetry: TelemetryStore) -> None:
    loc = telemetry.create_location(Location(name="Lab", owner="alice"))
    s1 = _sensor(telemetry, "alice", "s1", loc.id)
    _sensor(telemetry, "alice", "s2")
    telemetry.create_measurement(Measurement(sensor_id=s1.id, value=1.0))
    keep = _sensor(telemetry, "bob", "s3")
    telemetry.create_measurement(Measurement(sensor_id=keep.id, value=9.0))

    assert telemetry.delete_owner_data("alice") == {"sensors": 2, "measurements": 1, "locations": 1}
    assert telemetry.list_locations(owner="alice") == []
    assert len(telemetry.list_measurements(keep.id)) == 1
