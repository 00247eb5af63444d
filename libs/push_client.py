"""
Firebase Cloud Messaging client.
Sends push notifications to device registration tokens over the FCM HTTP API.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from httpx import AsyncClient, Timeout

from libs.config import config

logger = logging.getLogger(__name__)

FCM_BASE_URL = "https://fcm.googleapis.com"

# FCM errors meaning the token will never work again
INVALID_TOKEN_ERRORS = {"NotRegistered", "InvalidRegistration"}


class FCMClient:
    """Client for the FCM send endpoint."""

    def __init__(self, server_key: Optional[str] = None):
        self.server_key = server_key or config.FCM_SERVER_KEY
        if not self.server_key:
            logger.warning("FCM_SERVER_KEY not set. Push delivery will be disabled.")

        self.client = AsyncClient(
            base_url=FCM_BASE_URL,
            timeout=Timeout(10.0),
            headers={"Authorization": f"key={self.server_key}"} if self.server_key else {},
        )

    async def close(self):
        await self.client.aclose()

    def _is_enabled(self) -> bool:
        return self.server_key is not None

    async def send_multicast(
        self,
        tokens: List[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        image_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one notification to several device tokens.

        Returns:
            {"success": int, "failure": int, "invalid_tokens": [str]}
        """
        result = {"success": 0, "failure": 0, "invalid_tokens": []}
        if not tokens:
            return result
        if not self._is_enabled():
            logger.error("FCM is not enabled (missing server key)")
            result["failure"] = len(tokens)
            return result

        notification = {"title": title, "body": body}
        if image_url:
            notification["image"] = image_url

        payload = {
            "registration_ids": tokens,
            "notification": notification,
            # FCM data values must be strings
            "data": {k: str(v) for k, v in (data or {}).items()},
            "priority": "high",
        }

        try:
            response = await self.client.post("/fcm/send", json=payload)
            response.raise_for_status()
            body_json = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"FCM API error: {e.response.status_code} - {e.response.text}")
            result["failure"] = len(tokens)
            return result
        except httpx.RequestError as e:
            logger.error(f"FCM request error: {e}")
            result["failure"] = len(tokens)
            return result

        result["success"] = int(body_json.get("success", 0))
        result["failure"] = int(body_json.get("failure", 0))
        for token, item in zip(tokens, body_json.get("results", [])):
            if item.get("error") in INVALID_TOKEN_ERRORS:
                result["invalid_tokens"].append(token)

        logger.info(
            f"FCM multicast sent: success={result['success']}, failure={result['failure']}"
        )
        return result


# Singleton instance
_fcm_client: Optional[FCMClient] = None


def get_fcm_client() -> FCMClient:
    """Get or create the FCM client singleton"""
    global _fcm_client
    if _fcm_client is None:
        _fcm_client = FCMClient()
    return _fcm_client
