import uuid
from typing import List, Optional

from pydantic import Field

from common.schemas import CamelModel, to_float
from common.timeutils import isoformat
from models.route import ActiveTrip, Route, RouteStep
from services.locations.schemas import location_ref


class FindRoutesRequest(CamelModel):
    start_location_id: uuid.UUID
    end_location_id: uuid.UUID


class SmartRouteSearchRequest(CamelModel):
    start_address: Optional[str] = None
    start_lat: Optional[float] = Field(None, ge=-90, le=90)
    start_lng: Optional[float] = Field(None, ge=-180, le=180)
    end_address: Optional[str] = None
    end_lat: Optional[float] = Field(None, ge=-90, le=90)
    end_lng: Optional[float] = Field(None, ge=-180, le=180)


class StartTripRequest(CamelModel):
    route_id: uuid.UUID
    current_lat: float = Field(..., ge=-90, le=90)
    current_lng: float = Field(..., ge=-180, le=180)


class UpdateLocationRequest(CamelModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = None


class CancelTripRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


def step_to_dict(step: RouteStep) -> dict:
    return {
        "id": str(step.id),
        "stepOrder": step.step_order,
        "fromLocation": location_ref(step.from_location),
        "toLocation": location_ref(step.to_location),
        "transportMode": step.transport_mode.value,
        "instructions": step.instructions,
        "duration": to_float(step.duration),
        "distance": to_float(step.distance),
        "estimatedFare": to_float(step.estimated_fare),
        "vehicleInfo": step.vehicle_info,
        "landmarks": step.landmarks or [],
    }


def route_to_dict(route: Route, steps: Optional[List[RouteStep]] = None) -> dict:
    """Stored units: duration in minutes, distance in kilometers."""
    data = {
        "id": str(route.id),
        "name": route.name,
        "description": route.description,
        "startLocation": location_ref(route.start_location),
        "endLocation": location_ref(route.end_location),
        "transportModes": route.transport_modes or [],
        "estimatedDuration": to_float(route.estimated_duration),
        "distance": to_float(route.distance),
        "minFare": to_float(route.min_fare),
        "maxFare": to_float(route.max_fare),
        "requiresTransfer": route.requires_transfer,
        "transferPoints": route.transfer_points or [],
        "popularityScore": route.popularity_score,
        "isVerified": route.is_verified,
    }
    if steps is not None:
        data["steps"] = [step_to_dict(s) for s in sorted(steps, key=lambda s: s.step_order)]
    return data


def trip_to_dict(trip: ActiveTrip) -> dict:
    return {
        "id": str(trip.id),
        "routeId": str(trip.route_id) if trip.route_id else None,
        "currentStepId": str(trip.current_step_id) if trip.current_step_id else None,
        "startLocationId": str(trip.start_location_id) if trip.start_location_id else None,
        "endLocationId": str(trip.end_location_id) if trip.end_location_id else None,
        "currentLat": to_float(trip.current_lat),
        "currentLng": to_float(trip.current_lng),
        "status": trip.status.value,
        "startedAt": isoformat(trip.started_at),
        "estimatedArrival": isoformat(trip.estimated_arrival),
        "completedAt": isoformat(trip.completed_at),
        "stepProgress": trip.step_progress or {},
        "metadata": trip.extra or {},
        "createdAt": isoformat(trip.created_at),
    }
