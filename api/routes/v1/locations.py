"""
api/routes/v1/locations.py -- Location CRUD for the SensorHub REST API.

Routes:
  POST   /locations        -- create (name unique per owner)
  GET    /locations        -- caller's own locations
  GET    /locations/{id}   -- one location (owner or admin)
  PUT    /locations/{id}   -- rename / re-describe (owner or admin)
  DELETE /locations/{id}   -- delete if no sensors are assigned (owner or admin)

Listing is always scoped to the caller, admins included; the admin router
has the unscoped views.
"""

from fastapi import APIRouter, Depends, Request

from api.models import LocationCreate, LocationOut, LocationResponse, LocationsResponse, LocationUpdate, MessageResponse
from auth.dependencies import get_current_identity, get_telemetry
from auth.models import Identity
from auth.service import ensure_authorized
from core.errors import NotFound
from telemetry.models import Location
from telemetry.store import TelemetryStore

router = APIRouter(dependencies=[Depends(get_current_identity)])


def _owned_location(telemetry: TelemetryStore, caller: Identity, location_id: int) -> Location:
    """Fetch a location after the ownership check. NotFound -> 404, not owner -> 403."""
    ensure_authorized(caller, telemetry.find_resource_owner("location", location_id))
    location = telemetry.get_location(location_id)
    if location is None:
        raise NotFound("Location not found.")
    return location


@router.post("/locations", response_model=LocationResponse, status_code=201)
def create_location(
    request: Request,
    body: LocationCreate,
    caller: Identity = Depends(get_current_identity),
) -> LocationResponse:
    telemetry: TelemetryStore = get_telemetry(request)
    location = telemetry.create_location(
        Location(name=body.name, description=body.description, owner=caller.username)
    )
    return LocationResponse(message="Location created successfully.", location=LocationOut.from_location(location))


@router.get("/locations", response_model=LocationsResponse)
def list_locations(request: Request, caller: Identity = Depends(get_current_identity)) -> LocationsResponse:
    locations = get_telemetry(request).list_locations(owner=caller.username)
    return LocationsResponse(locations=[LocationOut.from_location(loc) for loc in locations])


@router.get("/locations/{location_id}", response_model=LocationResponse)
def get_location(
    request: Request,
    location_id: int,
    caller: Identity = Depends(get_current_identity),
) -> LocationResponse:
    location = _owned_location(get_telemetry(request), caller, location_id)
    return LocationResponse(location=LocationOut.from_location(location))


@router.put("/locations/{location_id}", response_model=LocationResponse)
def update_location(
    request: Request,
    location_id: int,
    body: LocationUpdate,
    caller: Identity = Depends(get_current_identity),
) -> LocationResponse:
    """Update name and/or description. A new name must be unique for the owner (409)."""
    telemetry: TelemetryStore = get_telemetry(request)
    _owned_location(telemetry, caller, location_id)
    updates = body.model_dump(exclude_none=True)
    location = telemetry.update_location(location_id, **updates)
    return LocationResponse(message="Location updated successfully.", location=LocationOut.from_location(location))


@router.delete("/locations/{location_id}", response_model=MessageResponse)
def delete_location(
    request: Request,
    location_id: int,
    caller: Identity = Depends(get_current_identity),
) -> MessageResponse:
    """Delete a location. Refused with 400 while sensors are still assigned to it."""
    telemetry: TelemetryStore = get_telemetry(request)
    _owned_location(telemetry, caller, location_id)
    telemetry.delete_location(location_id)
    return MessageResponse(message="Location deleted successfully.")
