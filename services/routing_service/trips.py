"""
Live trip tracking: start, follow the user's position along the route steps,
then complete, end or cancel.

A trip may follow a curated Route (step by step) or a bare RouteSegment
picked by smart matching; segment trips have no route_id and only track
arrival at the segment's end.
"""

import logging
import uuid
from datetime import timedelta
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from common.constants import AVERAGE_TRANSIT_SPEED_KMH
from common.geo import haversine_m
from common.timeutils import isoformat, utcnow
from libs.config import config
from models.location import Location
from models.route import ActiveTrip, Route, RouteSegment, RouteStep, TripStatus
from services.cache.service import CacheService
from services.notification.manager import NotificationManager
from services.notification.notification_types import NotificationType
from services.routing_service.schemas import trip_to_dict

logger = logging.getLogger(__name__)


def estimate_arrival(lat: float, lng: float, dest_lat: float, dest_lng: float, speed_kmh: float = AVERAGE_TRANSIT_SPEED_KMH):
    distance_km = haversine_m(lat, lng, dest_lat, dest_lng) / 1000
    return utcnow() + timedelta(hours=distance_km / speed_kmh)


class TripService:
    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[CacheService] = None,
        notifications: Optional[NotificationManager] = None,
    ):
        self.db = db
        self.cache = cache or CacheService()
        self.notifications = notifications or NotificationManager(db)

    async def _notify(self, user_id: uuid.UUID, title: str, body: str, type: NotificationType, **data) -> None:
        try:
            await self.notifications.send_to_user(
                user_id, title, body, type, data={k: str(v) for k, v in data.items()}
            )
        except Exception as e:
            logger.error(f"Trip notification {type.value} failed for user {user_id}: {e}", exc_info=True)

    async def _load_route(self, route_id: uuid.UUID) -> Optional[Route]:
        result = await self.db.execute(
            select(Route)
            .options(
                selectinload(Route.end_location),
                selectinload(Route.steps).selectinload(RouteStep.to_location),
            )
            .where(Route.id == route_id)
        )
        return result.scalar_one_or_none()

    async def _get_owned(self, trip_id: uuid.UUID, user_id: uuid.UUID) -> ActiveTrip:
        result = await self.db.execute(
            select(ActiveTrip).where(ActiveTrip.id == trip_id, ActiveTrip.user_id == user_id)
        )
        trip = result.scalar_one_or_none()
        if trip is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")
        return trip

    async def active_trip(self, user_id: uuid.UUID) -> Optional[ActiveTrip]:
        result = await self.db.execute(
            select(ActiveTrip)
            .where(ActiveTrip.user_id == user_id, ActiveTrip.status == TripStatus.IN_PROGRESS)
            .order_by(ActiveTrip.created_at.desc())
        )
        return result.scalars().first()

    async def start(self, user_id: uuid.UUID, route_id: uuid.UUID, lat: float, lng: float) -> ActiveTrip:
        if await self.active_trip(user_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You already have an active trip. Please complete or cancel it first.",
            )

        route = await self._load_route(route_id)
        segment = None
        if route is None:
            result = await self.db.execute(
                select(RouteSegment)
                .options(selectinload(RouteSegment.end_location))
                .where(RouteSegment.id == route_id)
            )
            segment = result.scalar_one_or_none()
            if segment is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND, detail="Route or segment not found"
                )

        now = utcnow()
        source = route or segment
        destination = source.end_location
        trip = ActiveTrip(
            user_id=user_id,
            start_location_id=source.start_location_id,
            end_location_id=source.end_location_id,
            current_lat=lat,
            current_lng=lng,
            status=TripStatus.IN_PROGRESS,
            started_at=now,
            estimated_arrival=estimate_arrival(
                lat, lng, float(destination.latitude), float(destination.longitude)
            ),
            location_history=[{"lat": lat, "lng": lng, "timestamp": now.isoformat()}],
            step_progress={},
            notifications_sent={},
        )
        if route is not None:
            trip.route_id = route.id
            steps = sorted(route.steps, key=lambda s: s.step_order)
            if steps:
                trip.current_step_id = steps[0].id
                trip.step_progress = {str(steps[0].id): {"startedAt": now.isoformat()}}
        else:
            # Segments are not routes, keep the FK empty
            trip.extra = {"segmentId": str(segment.id), "isSegmentBased": True}

        self.db.add(trip)
        await self.db.commit()

        await self.cache.set_active_journey(str(user_id), trip_to_dict(trip))
        await self._notify(
            user_id,
            "Trip Started",
            f"Your journey to {destination.name} has begun. Safe travels!",
            NotificationType.TRIP_STARTED,
            tripId=trip.id,
            routeId=route_id,
        )
        logger.info(f"Trip started: trip_id={trip.id}, user_id={user_id}")
        return trip

    async def get_active(self, user_id: uuid.UUID) -> Optional[dict]:
        cached = await self.cache.get_active_journey(str(user_id))
        if cached is not None:
            return cached
        trip = await self.active_trip(user_id)
        if trip is None:
            return None
        data = trip_to_dict(trip)
        await self.cache.set_active_journey(str(user_id), data)
        return data

    async def update_location(
        self,
        trip_id: uuid.UUID,
        user_id: uuid.UUID,
        lat: float,
        lng: float,
        accuracy: Optional[float] = None,
    ) -> dict:
        trip = await self._get_owned(trip_id, user_id)
        if trip.status != TripStatus.IN_PROGRESS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Trip is not in progress"
            )

        now = utcnow()
        trip.current_lat = lat
        trip.current_lng = lng
        # JSON columns are reassigned so the change is flushed
        trip.location_history = (trip.location_history or []) + [
            {"lat": lat, "lng": lng, "accuracy": accuracy, "timestamp": now.isoformat()}
        ]
        notifications_sent = dict(trip.notifications_sent or {})
        step_progress = dict(trip.step_progress or {})
        await self.cache.set_user_location(
            str(user_id), {"lat": lat, "lng": lng, "accuracy": accuracy, "timestamp": now.isoformat()}
        )

        route = await self._load_route(trip.route_id) if trip.route_id else None
        steps = sorted(route.steps, key=lambda s: s.step_order) if route else []
        current = next((s for s in steps if s.id == trip.current_step_id), None)

        if current is not None:
            waypoint = current.to_location or route.end_location
            final = route.end_location
        else:
            waypoint = final = await self.db.get(Location, trip.end_location_id)

        distance = haversine_m(lat, lng, float(waypoint.latitude), float(waypoint.longitude))
        alerts: List[str] = []
        step_completed = False
        next_started = False
        trip_completed = False

        if distance <= config.ARRIVAL_THRESHOLD:
            step_completed = True
            if current is not None:
                key = str(current.id)
                step_progress[key] = {**step_progress.get(key, {}), "completedAt": now.isoformat()}
                index = steps.index(current)
            if current is None or index == len(steps) - 1:
                trip_completed = True
                alerts.append("Trip completed! You have arrived at your destination.")
            else:
                upcoming = steps[index + 1]
                trip.current_step_id = upcoming.id
                step_progress[str(upcoming.id)] = {"startedAt": now.isoformat()}
                next_started = True
                notifications_sent[f"step_completed_{current.id}"] = True
                alerts.append(f"Step {index + 1} completed. Moving to next step.")
                await self._notify(
                    user_id,
                    "Next Step",
                    f"Step {index + 1} completed. Now: {upcoming.instructions[:100]}",
                    NotificationType.STEP_COMPLETED,
                    tripId=trip.id,
                    stepId=upcoming.id,
                )
        elif distance <= config.APPROACHING_THRESHOLD:
            key = f"approaching_{current.id}" if current is not None else "approaching_destination"
            if not notifications_sent.get(key):
                notifications_sent[key] = True
                alerts.append(f"Approaching {waypoint.name}")
                await self._notify(
                    user_id,
                    "Approaching Stop",
                    f"You are approaching {waypoint.name}. Get ready to alight.",
                    NotificationType.APPROACHING,
                    tripId=trip.id,
                )

        trip.notifications_sent = notifications_sent
        trip.step_progress = step_progress
        trip.estimated_arrival = estimate_arrival(
            lat, lng, float(final.latitude), float(final.longitude)
        )
        await self.db.commit()

        if trip_completed:
            await self.complete(trip.id, user_id)
        else:
            await self.cache.set_active_journey(str(user_id), trip_to_dict(trip))

        return {
            "currentStepCompleted": step_completed,
            "nextStepStarted": next_started,
            "distanceToNextWaypoint": round(distance),
            "estimatedArrival": isoformat(trip.estimated_arrival),
            "alerts": alerts,
        }

    async def _finish(self, trip: ActiveTrip, new_status: TripStatus, **metadata) -> ActiveTrip:
        trip.status = new_status
        trip.completed_at = utcnow()
        if metadata:
            trip.extra = {**(trip.extra or {}), **metadata}
        await self.db.commit()
        await self.cache.clear_active_journey(str(trip.user_id))
        return trip

    async def complete(self, trip_id: uuid.UUID, user_id: uuid.UUID) -> ActiveTrip:
        trip = await self._get_owned(trip_id, user_id)
        trip = await self._finish(trip, TripStatus.COMPLETED)
        destination = await self.db.get(Location, trip.end_location_id) if trip.end_location_id else None
        name = destination.name if destination else "your destination"
        await self._notify(
            user_id,
            "Trip Completed",
            f"You have arrived at {name}. We hope you had a safe journey!",
            NotificationType.TRIP_COMPLETED,
            tripId=trip.id,
        )
        logger.info(f"Trip completed: trip_id={trip.id}, user_id={user_id}")
        return trip

    async def end(self, trip_id: uuid.UUID, user_id: uuid.UUID) -> ActiveTrip:
        """User stopped the journey before arriving."""
        trip = await self._get_owned(trip_id, user_id)
        if trip.status != TripStatus.IN_PROGRESS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Trip is not in progress"
            )
        trip = await self._finish(
            trip, TripStatus.CANCELLED, cancellationReason="Ended by user", endedAt=isoformat(utcnow())
        )
        await self._notify(
            user_id,
            "Journey Stopped",
            "You ended your journey.",
            NotificationType.JOURNEY_STOPPED,
            tripId=trip.id,
        )
        logger.info(f"Trip ended: trip_id={trip.id}, user_id={user_id}")
        return trip

    async def cancel(self, trip_id: uuid.UUID, user_id: uuid.UUID, reason: Optional[str] = None) -> ActiveTrip:
        trip = await self._get_owned(trip_id, user_id)
        if trip.status != TripStatus.IN_PROGRESS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Only active trips can be cancelled"
            )
        trip = await self._finish(
            trip,
            TripStatus.CANCELLED,
            cancellationReason=reason,
            cancelledAt=isoformat(utcnow()),
            previousStatus=TripStatus.IN_PROGRESS.value,
        )
        await self._notify(
            user_id,
            "Trip Cancelled",
            f"Trip cancelled: {reason}" if reason else "Your trip has been cancelled.",
            NotificationType.TRIP_CANCELLED,
            tripId=trip.id,
        )
        logger.info(f"Trip cancelled: trip_id={trip.id}, user_id={user_id}, reason={reason or 'Not provided'}")
        return trip

    async def history(self, user_id: uuid.UUID, limit: int = 20) -> List[ActiveTrip]:
        result = await self.db.execute(
            select(ActiveTrip)
            .where(ActiveTrip.user_id == user_id)
            .order_by(ActiveTrip.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def statistics(self, user_id: uuid.UUID) -> dict:
        result = await self.db.execute(
            select(ActiveTrip.status, func.count())
            .where(ActiveTrip.user_id == user_id)
            .group_by(ActiveTrip.status)
        )
        counts = {row[0]: row[1] for row in result.all()}
        total = sum(counts.values())
        completed = counts.get(TripStatus.COMPLETED, 0)
        return {
            "totalTrips": total,
            "completedTrips": completed,
            "cancelledTrips": counts.get(TripStatus.CANCELLED, 0),
            "activeTrips": counts.get(TripStatus.IN_PROGRESS, 0),
            "completionRate": round(completed / total * 100, 1) if total else 0,
        }
