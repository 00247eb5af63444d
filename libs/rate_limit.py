"""
Redis-backed fixed-window rate limiting.

Applied as a router-level dependency:

    router = APIRouter(prefix="/auth", dependencies=[Depends(default_rate_limiter)])

and per endpoint for stricter named limits (OTP delivery). Requests are
allowed through when Redis is unavailable.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, status

from common.constants import (
    OTP_RATE_LIMIT_MAX,
    OTP_RATE_LIMIT_WINDOW,
    RATE_LIMIT_EXCLUDED_PATHS,
    THROTTLE_KEY_PREFIX,
)
from libs.auth.tokens import user_id_from_access_token
from libs.config import config
from libs.fastapi_service import record_business_event
from libs.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _tracker(request: Request) -> str:
    user_id = None
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        user_id = user_id_from_access_token(auth_header[7:].strip())
    return f"{THROTTLE_KEY_PREFIX}{user_id or 'anonymous'}:{client_ip(request)}:{request.url.path}"


class RateLimiter:
    """
    Fixed-window counter: INCR the tracker key, set EXPIRE on the first hit,
    reject with 429 once the count passes the limit.

    limit/window default to RATE_LIMIT_MAX / RATE_LIMIT_TTL, read per request.
    """

    def __init__(
        self,
        limit: Optional[int] = None,
        window: Optional[int] = None,
        name: Optional[str] = None,
    ):
        self.limit = limit
        self.window = window
        self.name = name

    async def __call__(self, request: Request) -> None:
        if request.url.path in RATE_LIMIT_EXCLUDED_PATHS:
            return

        limit = self.limit or config.RATE_LIMIT_MAX
        window = self.window or config.RATE_LIMIT_TTL

        key = _tracker(request)
        if self.name:
            key = f"{key}:{self.name}"

        redis = get_redis_client()
        count = redis.incr(key)
        if count is None:
            # Redis down: fail open
            return
        if count == 1:
            redis.expire(key, window)

        if count > limit:
            retry_after = redis.get_ttl(key) or window
            logger.warning(
                f"Rate limit exceeded: key={key}, count={count}, limit={limit}"
            )
            record_business_event(
                request, "rate_limited_requests_total", limiter=self.name or "default"
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": "Too many requests. Please try again later.",
                    "retry_after": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )


default_rate_limiter = RateLimiter()
otp_rate_limiter = RateLimiter(limit=OTP_RATE_LIMIT_MAX, window=OTP_RATE_LIMIT_WINDOW, name="otp")
