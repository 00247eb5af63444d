import logging
import time

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from common.timeutils import isoformat, utcnow
from libs.db import get_db
from libs.redis_client import get_redis_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/detailed")
async def detailed_health(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Readiness check covering the database and Redis.

    Redis being down only degrades the service (cache and rate limiting
    become no-ops); the database being down makes it unavailable.
    """
    checks = {}

    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = {
            "status": "ok",
            "latencyMs": round((time.perf_counter() - start) * 1000, 2),
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = {"status": "down", "error": str(e)}

    try:
        redis_ok = get_redis_client().is_connected()
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        redis_ok = False
    checks["redis"] = {"status": "ok" if redis_ok else "down"}

    db_ok = checks["database"]["status"] == "ok"
    body = {
        "status": "ok" if db_ok and redis_ok else "degraded",
        "service": request.app.state.service_name,
        "timestamp": isoformat(utcnow()),
        "checks": checks,
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body,
    )
