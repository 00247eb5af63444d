import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from common.schemas import CamelModel, to_float
from common.timeutils import isoformat
from models.location_share import LocationShare, ShareStatus, ShareType


class CreateShareRequest(CamelModel):
    share_type: ShareType = ShareType.PUBLIC
    location_name: str = Field(..., min_length=1, max_length=255)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_access: Optional[int] = Field(None, ge=1)
    allowed_user_ids: Optional[List[uuid.UUID]] = None
    event_date: Optional[datetime] = None
    metadata: Optional[dict] = None


class CreateEventShareRequest(CamelModel):
    location_name: str = Field(..., min_length=1, max_length=255)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    event_date: datetime
    description: Optional[str] = None
    max_access: Optional[int] = Field(None, ge=1)
    metadata: Optional[dict] = None


class UpdateShareStatusRequest(CamelModel):
    status: ShareStatus


def share_to_dict(share: LocationShare) -> dict:
    return {
        "id": str(share.id),
        "shareToken": share.share_token,
        "shareUrl": share.share_url,
        "shareType": share.share_type.value,
        "locationName": share.location_name,
        "latitude": to_float(share.latitude),
        "longitude": to_float(share.longitude),
        "description": share.description,
        "expiresAt": isoformat(share.expires_at),
        "maxAccess": share.max_access,
        "allowedUserIds": share.allowed_user_ids or [],
        "status": share.status.value,
        "accessCount": share.access_count,
        "lastAccessedAt": isoformat(share.last_accessed_at),
        "eventDate": isoformat(share.event_date),
        "metadata": share.extra or {},
        "ownerId": str(share.owner_id),
        "createdAt": isoformat(share.created_at),
    }


def public_share_to_dict(share: LocationShare) -> dict:
    """What someone opening the link sees."""
    return {
        "locationName": share.location_name,
        "latitude": to_float(share.latitude),
        "longitude": to_float(share.longitude),
        "description": share.description,
        "shareType": share.share_type.value,
        "eventDate": isoformat(share.event_date),
        "expiresAt": isoformat(share.expires_at),
        "metadata": share.extra or {},
    }
