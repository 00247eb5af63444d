import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from common.schemas import ok
from libs.auth.tokens import get_current_user, get_optional_user
from libs.db import get_db
from libs.rate_limit import default_rate_limiter
from models.user_models import User
from services.location_share.schemas import (
    CreateEventShareRequest,
    CreateShareRequest,
    UpdateShareStatusRequest,
    public_share_to_dict,
    share_to_dict,
)
from services.location_share.service import LocationShareService, qr_payload
from services.routing_service.matching import SmartRouteMatcher

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/location-share",
    tags=["Location Share"],
    dependencies=[Depends(default_rate_limiter)],
)


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_share(
    body: CreateShareRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    share = await LocationShareService(db).create(current_user, body)
    return ok({"share": share_to_dict(share)}, message="Location shared successfully")


@router.post("/event", status_code=status.HTTP_201_CREATED)
async def create_event_share(
    body: CreateEventShareRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    share = await LocationShareService(db).create_event(current_user, body)
    return ok({"share": share_to_dict(share)}, message="Event location shared successfully")


@router.get("/token/{token}")
async def open_share(
    token: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    service = LocationShareService(db)
    share = await service.validate_access(token, current_user)
    await service.record_access(share, current_user)
    return ok({"location": public_share_to_dict(share)})


@router.get("/token/{token}/directions")
async def share_directions(
    token: str,
    from_lat: float = Query(..., alias="fromLat", ge=-90, le=90),
    from_lng: float = Query(..., alias="fromLng", ge=-180, le=180),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    share = await LocationShareService(db).validate_access(token, current_user)
    try:
        routes = await SmartRouteMatcher(db).match(
            from_lat, from_lng, float(share.latitude), float(share.longitude)
        )
    except Exception as e:
        logger.error(f"Directions to share {share.id} failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get directions",
        )
    return ok({"destination": public_share_to_dict(share), **routes})


@router.get("/token/{token}/qr-code")
async def share_qr_code(
    token: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    share = await LocationShareService(db).validate_access(token, current_user)
    return ok(qr_payload(share))


@router.get("/my-shares")
async def my_shares(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    shares = await LocationShareService(db).my_shares(current_user)
    return ok({"shares": [share_to_dict(s) for s in shares], "count": len(shares)})


@router.get("/accessible")
async def accessible_shares(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    shares = await LocationShareService(db).accessible(current_user)
    return ok({"shares": [share_to_dict(s) for s in shares], "count": len(shares)})


@router.patch("/{share_id}/status")
async def update_share_status(
    share_id: uuid.UUID,
    body: UpdateShareStatusRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    share = await LocationShareService(db).update_status(share_id, current_user, body.status)
    return ok({"share": share_to_dict(share)}, message="Share status updated")


@router.delete("/{share_id}")
async def delete_share(
    share_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await LocationShareService(db).delete(share_id, current_user)
    return ok(message="Shared location deleted")
