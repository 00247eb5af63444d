"""
Application cache built on the shared Redis client.

Values are JSON-serialised. Every failure is logged and treated as a miss,
so callers never need their own error handling around the cache.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from common.constants import (
    ACTIVE_JOURNEY_KEY_PREFIX,
    ACTIVE_JOURNEY_TTL,
    DEFAULT_CACHE_TTL,
    JOURNEY_TRACKING_KEY_PREFIX,
    JOURNEY_TRACKING_TTL,
    USER_LOCATION_KEY_PREFIX,
    USER_LOCATION_TTL,
)
from libs.redis_client import RedisClient, get_redis_client

logger = logging.getLogger(__name__)


def build_response_cache_key(
    prefix: str,
    params: Optional[Mapping[str, Any]] = None,
    query: Optional[Mapping[str, Any]] = None,
) -> str:
    """`{prefix}:{json(params)}:{json(query)}` with sorted keys, so equal inputs share a key."""
    return (
        f"{prefix}:{json.dumps(params or {}, sort_keys=True, default=str)}"
        f":{json.dumps(query or {}, sort_keys=True, default=str)}"
    )


class CacheService:
    def __init__(self, redis: Optional[RedisClient] = None):
        self.redis = redis or get_redis_client()

    async def get(self, key: str) -> Optional[Any]:
        try:
            return self.redis.get_json(key)
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = DEFAULT_CACHE_TTL) -> bool:
        try:
            return self.redis.set_json(key, value, ttl=ttl)
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            return self.redis.delete(key)
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        try:
            return self.redis.delete_pattern(pattern)
        except Exception as e:
            logger.error(f"Cache delete error for pattern {pattern}: {e}")
            return 0

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = DEFAULT_CACHE_TTL,
    ) -> Any:
        """Cache-aside: return the cached value, or await factory and store its result."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await factory()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    # ---------- user location ----------

    async def set_user_location(self, user_id: str, location: dict) -> bool:
        return await self.set(f"{USER_LOCATION_KEY_PREFIX}{user_id}", location, USER_LOCATION_TTL)

    async def get_user_location(self, user_id: str) -> Optional[dict]:
        location = await self.get(f"{USER_LOCATION_KEY_PREFIX}{user_id}")
        if location is None:
            logger.debug(f"User location not found in cache: user_id={user_id}")
        return location

    # ---------- active journey ----------

    async def set_active_journey(self, user_id: str, journey: dict) -> bool:
        return await self.set(f"{ACTIVE_JOURNEY_KEY_PREFIX}{user_id}", journey, ACTIVE_JOURNEY_TTL)

    async def get_active_journey(self, user_id: str) -> Optional[dict]:
        return await self.get(f"{ACTIVE_JOURNEY_KEY_PREFIX}{user_id}")

    async def clear_active_journey(self, user_id: str) -> bool:
        return await self.delete(f"{ACTIVE_JOURNEY_KEY_PREFIX}{user_id}")

    # ---------- journey tracking ----------

    async def set_journey_tracking(self, journey_id: str, interval_id: str) -> bool:
        return await self.set(
            f"{JOURNEY_TRACKING_KEY_PREFIX}{journey_id}", interval_id, JOURNEY_TRACKING_TTL
        )

    async def get_journey_tracking(self, journey_id: str) -> Optional[str]:
        return await self.get(f"{JOURNEY_TRACKING_KEY_PREFIX}{journey_id}")

    async def clear_user(self, user_id: str) -> None:
        """Drop every per-user key (used on account deletion)."""
        for prefix in (USER_LOCATION_KEY_PREFIX, ACTIVE_JOURNEY_KEY_PREFIX):
            await self.delete(f"{prefix}{user_id}")


def get_cache_service() -> CacheService:
    return CacheService()
