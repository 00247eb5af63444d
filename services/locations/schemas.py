from typing import Optional

from pydantic import Field

from common.schemas import CamelModel, to_float
from models.location import Location


class CreateLocationRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    country: str = Field("Nigeria", max_length=100)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    description: Optional[str] = None


def location_to_dict(location: Location, distance_m: Optional[float] = None) -> dict:
    data = {
        "id": str(location.id),
        "name": location.name,
        "city": location.city,
        "state": location.state,
        "country": location.country,
        "latitude": to_float(location.latitude),
        "longitude": to_float(location.longitude),
        "description": location.description,
        "isVerified": location.is_verified,
        "popularityScore": location.popularity_score,
    }
    if distance_m is not None:
        data["distance"] = round(distance_m)
    return data


def location_ref(location: Optional[Location]) -> Optional[dict]:
    """Compact {id, name, lat, lng} used inside routes and steps."""
    if location is None:
        return None
    return {
        "id": str(location.id),
        "name": location.name,
        "latitude": to_float(location.latitude),
        "longitude": to_float(location.longitude),
    }
