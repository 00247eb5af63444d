"""
Redis connection client for Avigate services.
Automatically detects environment (local dev, Docker, K8s) and configures connection.
"""

import json
import logging
import os
from typing import Any, Iterable, Optional, Set

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper with automatic environment detection."""

    _instance: Optional["RedisClient"] = None
    _client: Optional[redis.Redis] = None

    def __init__(self):
        """Initialize Redis connection based on environment."""
        is_in_container = (
            os.path.exists("/.dockerenv")
            or os.getenv("KUBERNETES_SERVICE_HOST") is not None
        )
        local_dev_env = os.getenv("LOCAL_DEV", "").lower()
        is_local_dev = local_dev_env == "true" or (
            not is_in_container and local_dev_env != "false"
        )

        default_host = "localhost" if is_local_dev else "redis.data.svc.cluster.local"
        redis_host = os.getenv("REDIS_HOST", default_host)
        redis_port = int(os.getenv("REDIS_PORT", "6379"))
        redis_password = os.getenv("REDIS_PASSWORD")
        redis_username = os.getenv("REDIS_USERNAME")  # Redis ACL
        redis_db = int(os.getenv("REDIS_DB", "0"))

        connection_kwargs = {
            "host": redis_host,
            "port": redis_port,
            "db": redis_db,
            "decode_responses": True,
            "socket_connect_timeout": 5,
            "socket_timeout": 5,
            "retry_on_timeout": True,
            "health_check_interval": 30,
        }
        if redis_username:
            connection_kwargs["username"] = redis_username
        if redis_password:
            connection_kwargs["password"] = str(redis_password).strip()

        try:
            self._client = redis.Redis(**connection_kwargs)
            self._client.ping()
            logger.info(
                f"Redis connected: host={redis_host}, port={redis_port}, db={redis_db}, "
                f"auth={'username' if redis_username else 'password only'}"
            )
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis connection failed: {e}")
            logger.error(
                f"Redis config: host={redis_host}, port={redis_port}, db={redis_db}, "
                f"has_username={bool(redis_username)}, has_password={bool(redis_password)}"
            )
            # In development the API may run without Redis; caching and rate
            # limiting then degrade to no-ops.
            if not is_local_dev:
                raise

    @classmethod
    def get_instance(cls) -> "RedisClient":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def client(self) -> Optional[redis.Redis]:
        """Get Redis client."""
        return self._client

    def is_connected(self) -> bool:
        """Check if Redis is connected."""
        if self._client is None:
            return False
        try:
            self._client.ping()
            return True
        except (RedisConnectionError, RedisError):
            return False

    def get(self, key: str) -> Optional[str]:
        """Get value from Redis."""
        if not self.is_connected():
            return None
        try:
            return self._client.get(key)
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set value in Redis with optional TTL."""
        if not self.is_connected():
            return False
        try:
            if ttl:
                return bool(self._client.setex(key, ttl, value))
            return bool(self._client.set(key, value))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis SET error for key {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete key from Redis."""
        if not self.is_connected():
            return False
        try:
            return bool(self._client.delete(key))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis DELETE error for key {key}: {e}")
            return False

    def delete_many(self, keys: Iterable[str]) -> int:
        """Delete several keys at once, returning how many existed."""
        keys = list(keys)
        if not keys or not self.is_connected():
            return 0
        try:
            return int(self._client.delete(*keys))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis DELETE error for {len(keys)} keys: {e}")
            return 0

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        if not self.is_connected():
            return 0
        try:
            keys = list(self._client.scan_iter(match=pattern, count=100))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis SCAN error for pattern {pattern}: {e}")
            return 0
        return self.delete_many(keys)

    def exists(self, key: str) -> bool:
        """Check if key exists in Redis."""
        if not self.is_connected():
            return False
        try:
            return bool(self._client.exists(key))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis EXISTS error for key {key}: {e}")
            return False

    def incr(self, key: str) -> Optional[int]:
        """Atomically increment a counter, returning the new value."""
        if not self.is_connected():
            return None
        try:
            return int(self._client.incr(key))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis INCR error for key {key}: {e}")
            return None

    def expire(self, key: str, ttl: int) -> bool:
        """Set a TTL on an existing key."""
        if not self.is_connected():
            return False
        try:
            return bool(self._client.expire(key, ttl))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis EXPIRE error for key {key}: {e}")
            return False

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set JSON value in Redis."""
        try:
            json_str = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"JSON serialization error for key {key}: {e}")
            return False
        return self.set(key, json_str, ttl)

    def get_json(self, key: str) -> Optional[Any]:
        """Get JSON value from Redis."""
        json_str = self.get(key)
        if json_str is None:
            return None
        try:
            return json.loads(json_str)
        except (TypeError, ValueError) as e:
            logger.error(f"JSON deserialization error for key {key}: {e}")
            return None

    def get_ttl(self, key: str) -> Optional[int]:
        """Get remaining TTL for a key."""
        if not self.is_connected():
            return None
        try:
            ttl = self._client.ttl(key)
            return ttl if ttl >= 0 else None
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis TTL error for key {key}: {e}")
            return None

    def sadd(self, key: str, *values: str) -> int:
        """Add one or more members to a Redis Set."""
        if not values or not self.is_connected():
            return 0
        try:
            return int(self._client.sadd(key, *values))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis SADD error for key {key}: {e}")
            return 0

    def srem(self, key: str, *values: str) -> int:
        """Remove one or more members from a Redis Set."""
        if not values or not self.is_connected():
            return 0
        try:
            return int(self._client.srem(key, *values))
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis SREM error for key {key}: {e}")
            return 0

    def smembers(self, key: str) -> Set[str]:
        """Get all members of a Redis Set."""
        if not self.is_connected():
            return set()
        try:
            return set(self._client.smembers(key) or ())
        except (RedisConnectionError, RedisError) as e:
            logger.error(f"Redis SMEMBERS error for key {key}: {e}")
            return set()


# Global instance getter
def get_redis_client() -> RedisClient:
    """Get Redis client instance."""
    return RedisClient.get_instance()
