# Run:
# uvicorn main:app --host 0.0.0.0 --port 3000 --reload
# Docs: http://127.0.0.1:3000/docs

import logging

from libs.config import config
from libs.fastapi_service import (
    CORSMiddlewareConfig,
    FastAPIServiceFactory,
    ServiceAppConfig,
)
from services.admin.router import auth_router as admin_auth_router
from services.admin.router import community_router as admin_community_router
from services.admin.router import users_router as admin_users_router
from services.auth.router import router as auth_router
from services.community.router import router as community_router
from services.health.router import router as health_router
from services.location_share.router import router as location_share_router
from services.locations.router import router as locations_router
from services.notification.router import router as notification_router
from services.routing_service.router import router as routes_router
from services.users.router import router as users_router

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ========= Business metrics =========
BUSINESS_METRICS = {
    "user_registrations_total": ("Total number of user registrations", ["provider"]),
    "otp_sent_total": ("Total number of OTP codes sent", ["type"]),
    "notifications_sent_total": ("Total number of notifications sent", ["type"]),
    "rate_limited_requests_total": ("Total number of rate limited requests", ["limiter"]),
    "route_searches_total": ("Total number of smart route searches by best source", ["source"]),
    "trip_events_total": ("Trip lifecycle events", ["event"]),
}

service_config = ServiceAppConfig(
    title="Avigate API",
    description="Transit route discovery, live trips, community feed and location sharing.",
    service_name=config.SERVICE_NAME,
    cors_config=CORSMiddlewareConfig(allow_origins=config.CORS_ORIGINS),
    business_metrics=BUSINESS_METRICS,
    routers=[
        health_router,
        auth_router,
        users_router,
        locations_router,
        routes_router,
        community_router,
        notification_router,
        location_share_router,
        admin_auth_router,
        admin_users_router,
        admin_community_router,
    ],
)

factory = FastAPIServiceFactory(service_config)
app = factory.create_app()

logger.info(f"{config.SERVICE_NAME} started in {config.ENVIRONMENT} mode")
