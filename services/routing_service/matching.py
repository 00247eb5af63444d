"""
Smart route matching.

Given raw start and end coordinates, snap them to known locations and build
a ranked list of enhanced routes. Sources are tried in order of confidence:

    database (95) > reversed database (92) > intermediate stop (85)
    > with walking (75) > google maps (70)

Enhanced routes are expressed in meters, seconds and naira, whatever the
units of the stored rows.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from common.constants import (
    NEAREST_END_RADIUS_KM,
    NEAREST_START_RADIUS_KM,
    OKADA_BASE_FARE,
    OKADA_FARE_PER_KM,
    WALKING_MAX_RADIUS_KM,
    WALKING_SPEED_MPS,
)
from common.geo import haversine_m
from common.schemas import to_float
from libs.maps_client import GoogleMapsClient, get_maps_client
from models.location import Location
from models.route import Route, RouteSegment, RouteStep
from services.locations.service import LocationService

logger = logging.getLogger(__name__)

CONFIDENCE_DIRECT = 95
CONFIDENCE_REVERSED = 92
CONFIDENCE_INTERMEDIATE = 85
CONFIDENCE_WALKING = 75
CONFIDENCE_GOOGLE = 70

DIRECT_ROUTE_LIMIT = 3
# Walk to the first boarding point only inside this band (meters)
PREPEND_WALK_MIN_M = 200
PREPEND_WALK_MAX_M = 2000
# Past this distance an okada is offered instead of walking
OKADA_SUGGESTION_M = 1000
STOP_MATCH_RADIUS_M = NEAREST_END_RADIUS_KM * 1000
HIGH_CONFIDENCE_STOP_M = 200

LOCAL_PHRASES = [
    "Abeg, how I fit reach this address from {name}?",
    "Excuse me, which way to this street from {name}?",
]


def _availability(has_data: bool, confidence: str, reason: Optional[str] = None) -> dict:
    data = {"hasVehicleData": has_data, "confidence": confidence}
    if reason:
        data["reason"] = reason
    return data


def okada_fare(distance_m: float) -> int:
    return round(OKADA_BASE_FARE + OKADA_FARE_PER_KM * distance_m / 1000)


def walking_step(order: int, from_name: str, to_name: str, distance_m: float) -> dict:
    """A walk leg at 1.4 m/s, with an okada alternative past 1 km."""
    distance_m = round(distance_m)
    duration_s = round(distance_m / WALKING_SPEED_MPS)
    instruction = f"Walk about {distance_m}m to {to_name}"
    step = {
        "order": order,
        "fromLocation": from_name,
        "toLocation": to_name,
        "transportMode": "walk",
        "instructions": instruction,
        "duration": duration_s,
        "distance": distance_m,
        "dataAvailability": _availability(True, "high"),
        "walkingDirections": {
            "distance": distance_m,
            "duration": duration_s,
            "steps": [
                {"instruction": instruction, "distance": distance_m, "duration": duration_s}
            ],
        },
    }
    if distance_m > OKADA_SUGGESTION_M:
        step["alternativeTransport"] = {
            "type": "okada",
            "estimatedFare": okada_fare(distance_m),
            "instructions": f"Take an okada to {to_name} if you would rather not walk",
        }
    return step


def _renumber(steps: List[dict], start: int = 1) -> List[dict]:
    for index, step in enumerate(steps, start=start):
        step["order"] = index
    return steps


def _db_step(step: RouteStep, route: Route) -> dict:
    from_location = step.from_location or route.start_location
    to_location = step.to_location or route.end_location
    return {
        "order": step.step_order,
        "fromLocation": from_location.name,
        "toLocation": to_location.name,
        "transportMode": step.transport_mode.value,
        "instructions": step.instructions,
        "duration": round(float(step.duration) * 60),
        "distance": round(float(step.distance) * 1000),
        "estimatedFare": to_float(step.estimated_fare),
        "dataAvailability": _availability(True, "high"),
    }


def enhance_route(route: Route, confidence: int = CONFIDENCE_DIRECT) -> dict:
    steps = [_db_step(s, route) for s in sorted(route.steps, key=lambda s: s.step_order)]
    return {
        "routeId": str(route.id),
        "routeName": route.name,
        "source": "database",
        "distance": round(float(route.distance) * 1000),
        "duration": round(float(route.estimated_duration) * 60),
        "minFare": to_float(route.min_fare),
        "maxFare": to_float(route.max_fare),
        "steps": steps,
        "confidence": confidence,
        "requiresTransfer": route.requires_transfer,
        "transferPoints": route.transfer_points or [],
        "requiresWalking": False,
    }


def reverse_route(route: Route) -> dict:
    """Ride a stored end->start route the other way round."""
    enhanced = enhance_route(route, CONFIDENCE_REVERSED)
    steps = []
    for step in reversed(enhanced["steps"]):
        step["fromLocation"], step["toLocation"] = step["toLocation"], step["fromLocation"]
        steps.append(step)
    enhanced["steps"] = _renumber(steps)
    enhanced["routeName"] = f"{route.end_location.name} to {route.start_location.name}"
    enhanced["transferPoints"] = list(reversed(enhanced["transferPoints"]))
    enhanced["isReversed"] = True
    return enhanced


@dataclass
class SegmentLeg:
    """A stored segment as ridden in one direction."""

    segment: RouteSegment
    start_location: Location
    end_location: Location
    stops: List[dict]
    is_reversed: bool = False

    @classmethod
    def forward(cls, segment: RouteSegment) -> "SegmentLeg":
        return cls(segment, segment.start_location, segment.end_location, list(segment.intermediate_stops or []))

    @classmethod
    def backward(cls, segment: RouteSegment) -> "SegmentLeg":
        stops = [
            dict(stop, order=order)
            for order, stop in enumerate(reversed(segment.intermediate_stops or []), start=1)
        ]
        return cls(segment, segment.end_location, segment.start_location, stops, is_reversed=True)

    @property
    def name(self) -> str:
        if self.is_reversed:
            return f"{self.start_location.name} to {self.end_location.name}"
        return self.segment.name


class SmartRouteMatcher:
    def __init__(self, db: AsyncSession, maps: Optional[GoogleMapsClient] = None):
        self.db = db
        self.locations = LocationService(db)
        self._maps = maps

    @property
    def maps(self) -> GoogleMapsClient:
        if self._maps is None:
            self._maps = get_maps_client()
        return self._maps

    async def _routes_between(self, start_id: uuid.UUID, end_id: uuid.UUID) -> List[Route]:
        result = await self.db.execute(
            select(Route)
            .options(
                selectinload(Route.start_location),
                selectinload(Route.end_location),
                selectinload(Route.steps).selectinload(RouteStep.from_location),
                selectinload(Route.steps).selectinload(RouteStep.to_location),
            )
            .where(
                Route.start_location_id == start_id,
                Route.end_location_id == end_id,
                Route.is_active.is_(True),
            )
            .order_by(Route.popularity_score.desc())
            .limit(DIRECT_ROUTE_LIMIT)
        )
        return list(result.scalars().all())

    async def direct_routes(self, start: Location, end: Location) -> List[dict]:
        forward = await self._routes_between(start.id, end.id)
        if forward:
            return [enhance_route(r) for r in forward]

        backward = await self._routes_between(end.id, start.id)
        if backward:
            logger.info(f"Using {len(backward)} reversed route(s) for {start.name} -> {end.name}")
        return [reverse_route(r) for r in backward]

    async def intermediate_stop_routes(
        self, start: Location, end_lat: float, end_lng: float
    ) -> List[dict]:
        """Segments from `start` that stop near the destination on the way somewhere else.

        Bidirectional segments ending at `start` are ridden back towards their origin.
        """
        result = await self.db.execute(
            select(RouteSegment)
            .options(selectinload(RouteSegment.start_location), selectinload(RouteSegment.end_location))
            .where(
                RouteSegment.is_active.is_(True),
                or_(
                    RouteSegment.start_location_id == start.id,
                    and_(
                        RouteSegment.end_location_id == start.id,
                        RouteSegment.is_bidirectional.is_(True),
                    ),
                ),
            )
            .order_by(RouteSegment.usage_count.desc())
        )
        legs = [
            SegmentLeg.forward(segment) if segment.start_location_id == start.id else SegmentLeg.backward(segment)
            for segment in result.scalars().all()
        ]
        if not legs:
            return []

        stop_ids = set()
        for leg in legs:
            for stop in leg.stops:
                if stop.get("locationId"):
                    stop_ids.add(uuid.UUID(str(stop["locationId"])))
        if not stop_ids:
            return []
        rows = await self.db.execute(select(Location).where(Location.id.in_(stop_ids)))
        stop_locations = {loc.id: loc for loc in rows.scalars()}

        routes = []
        for leg in legs:
            match = self._closest_stop(leg, stop_locations, end_lat, end_lng)
            if match is not None:
                routes.append(self._segment_route(leg, *match))
        return routes

    @staticmethod
    def _closest_stop(
        leg: SegmentLeg,
        stop_locations: Dict[uuid.UUID, Location],
        end_lat: float,
        end_lng: float,
    ) -> Optional[Tuple[dict, Location, float]]:
        best = None
        for stop in leg.stops:
            location = stop_locations.get(uuid.UUID(str(stop["locationId"]))) if stop.get("locationId") else None
            if location is None:
                continue
            distance = haversine_m(end_lat, end_lng, float(location.latitude), float(location.longitude))
            if distance <= STOP_MATCH_RADIUS_M and (best is None or distance < best[2]):
                best = (stop, location, distance)
        return best

    @staticmethod
    def _segment_route(
        leg: SegmentLeg, stop: dict, stop_location: Location, distance_to_end: float
    ) -> dict:
        segment = leg.segment
        fraction = stop.get("order", 1) / (len(leg.stops) + 1)
        min_fare = float(segment.min_fare or 0)
        max_fare = float(segment.max_fare or min_fare)
        fare = round(min_fare + (max_fare - min_fare) * fraction)
        distance_m = round(float(segment.distance) * 1000 * fraction)
        duration_s = round(segment.estimated_duration * 60 * fraction)
        mode = (segment.transport_modes or ["bus"])[0]

        instructions = (
            f"Board a {mode} going to {leg.end_location.name} and tell the driver "
            f"you are stopping at {stop_location.name}."
        )
        # Stored instructions describe the forward direction only
        if not leg.is_reversed and segment.instructions:
            instructions = f"{instructions} {segment.instructions}"

        confidence = "high" if distance_to_end <= HIGH_CONFIDENCE_STOP_M else "medium"
        step = {
            "order": 1,
            "fromLocation": leg.start_location.name,
            "toLocation": stop_location.name,
            "transportMode": mode,
            "instructions": instructions,
            "duration": duration_s,
            "distance": distance_m,
            "estimatedFare": fare,
            "dataAvailability": _availability(
                True, confidence, f"Stop on the {leg.name} route"
            ),
        }
        route = {
            "routeId": str(segment.id),
            "routeName": f"{leg.start_location.name} to {stop_location.name}",
            "source": "intermediate_stop",
            "distance": distance_m,
            "duration": duration_s,
            "minFare": fare,
            "maxFare": fare,
            "steps": [step],
            "confidence": CONFIDENCE_INTERMEDIATE,
            "requiresTransfer": False,
            "transferPoints": [],
            "requiresWalking": False,
            "intermediateStopInfo": {
                "segmentId": str(segment.id),
                "segmentName": leg.name,
                "finalDestination": leg.end_location.name,
                "stopLocationId": str(stop_location.id),
                "stopName": stop_location.name,
                "stopOrder": stop.get("order"),
                "distanceToDestination": round(distance_to_end),
            },
        }
        if leg.is_reversed:
            route["isReversed"] = True
        return route

    async def walking_routes(self, start: Location, end_lat: float, end_lng: float) -> List[dict]:
        """Ride to the closest known drop-off, then walk the rest."""
        hits = await self.locations.within_radius(end_lat, end_lng, WALKING_MAX_RADIUS_KM)
        for drop_off, walk_m in hits:
            if drop_off.id == start.id:
                continue
            routes = await self.direct_routes(start, drop_off)
            if not routes:
                continue
            for route in routes:
                walk = walking_step(len(route["steps"]) + 1, drop_off.name, "your destination", walk_m)
                walk["dataAvailability"] = _availability(
                    False, "low", "No known vehicle service past this stop"
                )
                walk["alternativeOptions"] = {
                    "askLocals": True,
                    "localPhrases": [p.format(name=drop_off.name) for p in LOCAL_PHRASES],
                    "walkable": walk["distance"] <= OKADA_SUGGESTION_M,
                }
                route["steps"].append(walk)
                route["distance"] += walk["distance"]
                route["duration"] += walk["duration"]
                route["source"] = "with_walking"
                route["confidence"] = CONFIDENCE_WALKING
                route["requiresWalking"] = True
                route["finalDestinationInfo"] = {
                    "needsWalking": True,
                    "dropOffLocation": {
                        "id": str(drop_off.id),
                        "name": drop_off.name,
                        "latitude": float(drop_off.latitude),
                        "longitude": float(drop_off.longitude),
                    },
                    "walkingDirections": walk["walkingDirections"],
                    "alternativeTransport": walk.get("alternativeTransport"),
                }
            return routes
        return []

    async def google_route(
        self, start_lat: float, start_lng: float, end_lat: float, end_lng: float
    ) -> Optional[dict]:
        try:
            directions = await self.maps.get_directions((start_lat, start_lng), (end_lat, end_lng))
        except Exception as e:
            logger.error(f"Google Maps fallback failed: {e}", exc_info=True)
            return None
        if not directions:
            return None

        steps = []
        for index, raw in enumerate(directions["steps"], start=1):
            mode = "walk" if raw["travelMode"] == "walking" else "bus"
            steps.append(
                {
                    "order": index,
                    "fromLocation": _coord_label(raw["startLocation"]),
                    "toLocation": _coord_label(raw["endLocation"]),
                    "transportMode": mode,
                    "instructions": raw["instruction"],
                    "duration": raw["duration"],
                    "distance": raw["distance"],
                    "dataAvailability": _availability(
                        mode == "walk", "medium", "Directions from map data, fares unknown"
                    ),
                }
            )
        return {
            "routeName": "Suggested route",
            "source": "google_maps",
            "distance": directions["distance"],
            "duration": directions["duration"],
            "steps": steps,
            "confidence": CONFIDENCE_GOOGLE,
            "requiresTransfer": False,
            "transferPoints": [],
            "requiresWalking": any(s["transportMode"] == "walk" for s in steps),
            "polyline": directions.get("polyline"),
        }

    @staticmethod
    def prepend_walk(route: dict, boarding: Location, start_lat: float, start_lng: float) -> None:
        distance = haversine_m(start_lat, start_lng, float(boarding.latitude), float(boarding.longitude))
        if not PREPEND_WALK_MIN_M < distance < PREPEND_WALK_MAX_M:
            return
        walk = walking_step(1, "Your location", boarding.name, distance)
        route["steps"] = _renumber([walk] + route["steps"])
        route["distance"] += walk["distance"]
        route["duration"] += walk["duration"]
        route["requiresWalking"] = True

    async def match(
        self, start_lat: float, start_lng: float, end_lat: float, end_lng: float
    ) -> dict:
        start_hit = await self.locations.find_nearest(start_lat, start_lng, NEAREST_START_RADIUS_KM)
        end_hit = await self.locations.find_nearest(end_lat, end_lng, NEAREST_END_RADIUS_KM)
        start = start_hit[0] if start_hit else None
        end = end_hit[0] if end_hit else None
        logger.info(
            f"Smart match: start={start.name if start else None}, end={end.name if end else None}"
        )

        routes: List[dict] = []
        if start is not None:
            if end is not None and end.id != start.id:
                routes = await self.direct_routes(start, end)
            if not routes:
                routes = await self.intermediate_stop_routes(start, end_lat, end_lng)
            if not routes and end is None:
                routes = await self.walking_routes(start, end_lat, end_lng)
            for route in routes:
                self.prepend_walk(route, start, start_lat, start_lng)

        if not routes:
            fallback = await self.google_route(start_lat, start_lng, end_lat, end_lng)
            if fallback:
                routes = [fallback]

        routes.sort(key=lambda r: r["confidence"], reverse=True)
        return {
            "hasDirectRoute": any(r["source"] == "database" for r in routes),
            "hasIntermediateStop": any(r["source"] == "intermediate_stop" for r in routes),
            "requiresWalking": any(r.get("requiresWalking") for r in routes),
            "routes": routes,
        }


def _coord_label(point: dict) -> str:
    return f"{point['lat']:.5f},{point['lng']:.5f}"
