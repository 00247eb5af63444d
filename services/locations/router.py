import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from common.constants import SMART_ROUTE_CACHE_PREFIX
from common.schemas import ok
from libs.auth.tokens import get_current_user
from libs.db import get_db
from libs.rate_limit import default_rate_limiter
from models.user_models import User
from services.cache.service import CacheService
from services.locations.schemas import CreateLocationRequest, location_to_dict
from services.locations.service import LocationService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/locations",
    tags=["Locations"],
    dependencies=[Depends(default_rate_limiter)],
)


@router.get("/search")
async def search_locations(
    q: Optional[str] = None,
    city: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    if not q or not q.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Search query is required"
        )
    locations = await LocationService(db).search(q, city)
    return ok({"locations": [location_to_dict(loc) for loc in locations], "count": len(locations)})


@router.get("/nearby")
async def nearby_locations(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(5, gt=0, le=50),
    db: AsyncSession = Depends(get_db),
):
    hits = await LocationService(db).nearby(lat, lng, radius)
    return ok(
        {
            "locations": [location_to_dict(loc, distance) for loc, distance in hits],
            "count": len(hits),
        }
    )


@router.get("/popular")
async def popular_locations(
    city: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    locations = await LocationService(db).popular(city, limit)
    return ok({"locations": [location_to_dict(loc) for loc in locations], "count": len(locations)})


@router.get("/{location_id}")
async def get_location(location_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    location = await LocationService(db).get_active(location_id)
    if location is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return ok({"location": location_to_dict(location)})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_location(
    body: CreateLocationRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        location = await LocationService(db).create(body, current_user.id)
    except Exception as e:
        logger.error(f"Failed to create location: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create location",
        )
    # New stops change how smart search snaps coordinates
    await CacheService().delete_pattern(f"{SMART_ROUTE_CACHE_PREFIX}:*")
    return ok({"location": location_to_dict(location)}, message="Location created successfully")
