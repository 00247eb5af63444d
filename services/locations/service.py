import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from common.geo import bounding_box, haversine_m
from models.location import Location
from services.locations.schemas import CreateLocationRequest

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
NEARBY_LIMIT = 50


class LocationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def search(self, query: str, city: Optional[str] = None) -> List[Location]:
        filters = [
            Location.is_active.is_(True),
            func.lower(Location.name).contains(query.strip().lower(), autoescape=True),
        ]
        if city:
            filters.append(func.lower(Location.city) == city.strip().lower())
        result = await self.db.execute(
            select(Location)
            .where(*filters)
            .order_by(Location.popularity_score.desc())
            .limit(SEARCH_LIMIT)
        )
        return list(result.scalars().all())

    async def within_radius(
        self, lat: float, lng: float, radius_km: float
    ) -> List[Tuple[Location, float]]:
        """Active locations within radius_km as (location, meters), nearest first.

        A bounding box narrows the rows in SQL; haversine gives the exact cut.
        """
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)
        result = await self.db.execute(
            select(Location).where(
                Location.is_active.is_(True),
                Location.latitude.between(min_lat, max_lat),
                Location.longitude.between(min_lng, max_lng),
            )
        )
        radius_m = radius_km * 1000
        hits = []
        for location in result.scalars():
            distance = haversine_m(lat, lng, float(location.latitude), float(location.longitude))
            if distance <= radius_m:
                hits.append((location, distance))
        hits.sort(key=lambda hit: hit[1])
        return hits

    async def find_nearest(
        self, lat: float, lng: float, radius_km: float
    ) -> Optional[Tuple[Location, float]]:
        hits = await self.within_radius(lat, lng, radius_km)
        return hits[0] if hits else None

    async def nearby(self, lat: float, lng: float, radius_km: float = 5) -> List[Tuple[Location, float]]:
        hits = await self.within_radius(lat, lng, radius_km)
        hits.sort(key=lambda hit: hit[0].popularity_score or 0, reverse=True)
        return hits[:NEARBY_LIMIT]

    async def popular(self, city: Optional[str] = None, limit: int = 20) -> List[Location]:
        query = select(Location).where(Location.is_active.is_(True))
        if city:
            query = query.where(func.lower(Location.city) == city.strip().lower())
        result = await self.db.execute(
            query.order_by(Location.popularity_score.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def get_active(self, location_id: uuid.UUID) -> Optional[Location]:
        location = await self.db.get(Location, location_id)
        if location is None or not location.is_active:
            return None
        return location

    async def create(self, body: CreateLocationRequest, created_by: uuid.UUID) -> Location:
        location = Location(
            name=body.name,
            city=body.city,
            state=body.state,
            country=body.country,
            latitude=body.latitude,
            longitude=body.longitude,
            description=body.description,
            is_verified=False,
            is_active=True,
            popularity_score=0,
        )
        self.db.add(location)
        await self.db.commit()
        logger.info(f"Location created: location_id={location.id}, created_by={created_by}")
        return location
