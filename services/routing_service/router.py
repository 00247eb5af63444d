import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from common.constants import SMART_ROUTE_CACHE_PREFIX, SMART_ROUTE_CACHE_TTL
from common.schemas import fail, ok
from libs.auth.tokens import get_current_user
from libs.db import get_db
from libs.fastapi_service import record_business_event
from libs.maps_client import get_maps_client
from libs.rate_limit import default_rate_limiter
from models.location import Location
from models.route import Route, RouteStep
from models.user_models import User
from services.cache.service import CacheService, build_response_cache_key
from services.routing_service.matching import SmartRouteMatcher
from services.routing_service.schemas import (
    CancelTripRequest,
    FindRoutesRequest,
    SmartRouteSearchRequest,
    StartTripRequest,
    UpdateLocationRequest,
    route_to_dict,
    trip_to_dict,
)
from services.routing_service.trips import TripService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/routes",
    tags=["Routes"],
    dependencies=[Depends(default_rate_limiter)],
)

FIND_ROUTES_LIMIT = 5


def _with_locations(query):
    return query.options(selectinload(Route.start_location), selectinload(Route.end_location))


@router.post("/find")
async def find_routes(body: FindRoutesRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        _with_locations(select(Route))
        .where(
            Route.start_location_id == body.start_location_id,
            Route.end_location_id == body.end_location_id,
            Route.is_active.is_(True),
        )
        .order_by(Route.popularity_score.desc(), Route.estimated_duration.asc())
        .limit(FIND_ROUTES_LIMIT)
    )
    routes = list(result.scalars().all())
    return ok({"routes": [route_to_dict(r) for r in routes], "count": len(routes)})


async def _resolve_point(
    label: str, address: Optional[str], lat: Optional[float], lng: Optional[float]
):
    """Return ((lat, lng), None) or (None, error message)."""
    if address and address.strip():
        point = await get_maps_client().geocode(address.strip())
        if point is None:
            return None, f"Could not find {label} location"
        return (point["lat"], point["lng"]), None
    if lat is not None and lng is not None:
        return (lat, lng), None
    return None, f"{label.capitalize()} location is required (either address or coordinates)"


@router.post("/search/smart")
async def smart_search(
    body: SmartRouteSearchRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    cache = CacheService()
    cache_key = build_response_cache_key(
        SMART_ROUTE_CACHE_PREFIX, None, body.model_dump(exclude_none=True)
    )
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    start, error = await _resolve_point("start", body.start_address, body.start_lat, body.start_lng)
    if error:
        return fail(error)
    end, error = await _resolve_point("end", body.end_address, body.end_lat, body.end_lng)
    if error:
        return fail(error)

    try:
        result = await SmartRouteMatcher(db).match(start[0], start[1], end[0], end[1])
    except Exception as e:
        logger.error(f"Smart route search failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search routes",
        )

    best = result["routes"][0]["source"] if result["routes"] else "none"
    record_business_event(request, "route_searches_total", source=best)

    response = ok(result)
    await cache.set(cache_key, response, SMART_ROUTE_CACHE_TTL)
    return response


@router.get("/popular")
async def popular_routes(
    city: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    query = _with_locations(select(Route)).where(
        Route.is_active.is_(True), Route.is_verified.is_(True)
    )
    if city:
        query = query.join(Location, Route.start_location_id == Location.id).where(
            func.lower(Location.city) == city.strip().lower()
        )
    result = await db.execute(query.order_by(Route.popularity_score.desc()).limit(limit))
    routes = list(result.scalars().all())
    return ok({"routes": [route_to_dict(r) for r in routes], "count": len(routes)})


@router.get("/geocode/search")
async def geocode_search(address: str = Query(..., min_length=1)):
    point = await get_maps_client().geocode(address)
    if point is None:
        return fail("Location not found")
    return ok(point)


# ---------- trips ----------


@router.post("/trips/start", status_code=status.HTTP_201_CREATED)
async def start_trip(
    body: StartTripRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    trip = await TripService(db).start(
        current_user.id, body.route_id, body.current_lat, body.current_lng
    )
    record_business_event(request, "trip_events_total", event="started")
    return ok({"trip": trip_to_dict(trip)}, message="Trip started successfully")


@router.get("/trips/active")
async def get_active_trip(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    trip = await TripService(db).get_active(current_user.id)
    return ok({"trip": trip})


@router.patch("/trips/{trip_id}/location")
async def update_trip_location(
    trip_id: uuid.UUID,
    body: UpdateLocationRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    progress = await TripService(db).update_location(
        trip_id, current_user.id, body.lat, body.lng, body.accuracy
    )
    return ok(progress)


@router.post("/trips/{trip_id}/complete")
async def complete_trip(
    trip_id: uuid.UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    trip = await TripService(db).complete(trip_id, current_user.id)
    record_business_event(request, "trip_events_total", event="completed")
    return ok({"trip": trip_to_dict(trip)}, message="Trip completed successfully")


@router.post("/trips/{trip_id}/end")
async def end_trip(
    trip_id: uuid.UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    trip = await TripService(db).end(trip_id, current_user.id)
    record_business_event(request, "trip_events_total", event="ended")
    return ok({"trip": trip_to_dict(trip)}, message="Trip ended successfully")


@router.post("/trips/{trip_id}/cancel")
async def cancel_trip(
    trip_id: uuid.UUID,
    request: Request,
    body: Optional[CancelTripRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    reason = body.reason if body else None
    trip = await TripService(db).cancel(trip_id, current_user.id, reason)
    record_business_event(request, "trip_events_total", event="cancelled")
    return ok({"trip": trip_to_dict(trip)}, message="Trip cancelled successfully")


@router.get("/trips/history")
async def trip_history(
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    trips = await TripService(db).history(current_user.id, limit)
    return ok({"trips": [trip_to_dict(t) for t in trips], "count": len(trips)})


@router.get("/trips/statistics")
async def trip_statistics(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await TripService(db).statistics(current_user.id))


@router.get("/{route_id}")
async def get_route(route_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        _with_locations(select(Route))
        .options(
            selectinload(Route.steps).selectinload(RouteStep.from_location),
            selectinload(Route.steps).selectinload(RouteStep.to_location),
        )
        .where(Route.id == route_id)
    )
    route = result.scalar_one_or_none()
    if route is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Route not found")
    return ok({"route": route_to_dict(route, route.steps)})
