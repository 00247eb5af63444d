"""
Google Maps API client for the Avigate backend.
Handles geocoding and transit directions used when no curated route exists.
"""

import logging
import re
from typing import Any, Dict, Optional

import httpx
from httpx import AsyncClient, Timeout

from libs.config import config

logger = logging.getLogger(__name__)

GOOGLE_MAPS_BASE_URL = "https://maps.googleapis.com/maps/api"

_HTML_TAG = re.compile(r"<[^>]*>")


class GoogleMapsClient:
    """Client for the Google Maps geocoding and directions APIs."""

    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize Google Maps client.

        Args:
            api_key: Google Maps API key. If None, reads GOOGLE_MAPS_API_KEY from config.
        """
        self.api_key = api_key or config.GOOGLE_MAPS_API_KEY
        if not self.api_key:
            logger.warning(
                "GOOGLE_MAPS_API_KEY not set. Geocoding and fallback directions will be disabled."
            )

        self.client = AsyncClient(base_url=GOOGLE_MAPS_BASE_URL, timeout=Timeout(15.0))

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    def _is_enabled(self) -> bool:
        return self.api_key is not None

    async def _get(self, path: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self._is_enabled():
            logger.error("Google Maps is not enabled (missing API key)")
            return None
        try:
            response = await self.client.get(path, params={**params, "key": self.api_key})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Google Maps API error: {e.response.status_code} - {e.response.text}")
            return None
        except httpx.RequestError as e:
            logger.error(f"Google Maps request error: {e}")
            return None

        if data.get("status") != "OK":
            logger.warning(f"Google Maps {path} returned status {data.get('status')}")
            return None
        return data

    async def geocode(self, address: str) -> Optional[Dict[str, float]]:
        """
        Resolve a free-text address.

        Returns:
            {"lat": float, "lng": float} or None when not found
        """
        data = await self._get("/geocode/json", {"address": address})
        if not data or not data.get("results"):
            return None
        location = data["results"][0]["geometry"]["location"]
        return {"lat": location["lat"], "lng": location["lng"]}

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[str]:
        data = await self._get("/geocode/json", {"latlng": f"{lat},{lng}"})
        if not data or not data.get("results"):
            return None
        return data["results"][0].get("formatted_address")

    async def get_directions(
        self,
        origin: tuple[float, float],
        destination: tuple[float, float],
        mode: str = "transit",
    ) -> Optional[Dict[str, Any]]:
        """
        Get directions for the first route's first leg.

        Args:
            origin: (lat, lng)
            destination: (lat, lng)
            mode: "transit", "walking" or "driving"

        Returns:
            {"distance": meters, "duration": seconds, "polyline": str, "steps": [...]}
            or None on error
        """
        logger.info(
            f"Requesting directions from Google Maps: mode={mode}, "
            f"origin=({origin[0]}, {origin[1]}), destination=({destination[0]}, {destination[1]})"
        )
        data = await self._get(
            "/directions/json",
            {
                "origin": f"{origin[0]},{origin[1]}",
                "destination": f"{destination[0]},{destination[1]}",
                "mode": mode,
                "alternatives": "false",
            },
        )
        if not data or not data.get("routes"):
            return None

        route = data["routes"][0]
        leg = route["legs"][0]
        return {
            "distance": leg["distance"]["value"],
            "duration": leg["duration"]["value"],
            "polyline": route.get("overview_polyline", {}).get("points"),
            "steps": [
                {
                    "instruction": _HTML_TAG.sub("", step.get("html_instructions", "")),
                    "distance": step["distance"]["value"],
                    "duration": step["duration"]["value"],
                    "travelMode": step.get("travel_mode", "").lower(),
                    "startLocation": step["start_location"],
                    "endLocation": step["end_location"],
                }
                for step in leg.get("steps", [])
            ],
        }


# Singleton instance
_maps_client: Optional[GoogleMapsClient] = None


def get_maps_client() -> GoogleMapsClient:
    """Get or create the Google Maps client singleton"""
    global _maps_client
    if _maps_client is None:
        _maps_client = GoogleMapsClient()
    return _maps_client
