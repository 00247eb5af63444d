import hashlib
import logging
from typing import Optional, Tuple

from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from common.timeutils import utcnow
from libs.rate_limit import client_ip
from models.user_models import DeviceType, User, UserDevice
from services.notification.manager import NotificationManager
from services.notification.notification_types import NotificationType

logger = logging.getLogger(__name__)


def device_fingerprint(fcm_token: str, user_agent: str, device_info: str, ip_address: str) -> str:
    data = f"{fcm_token}-{user_agent}-{device_info}-{ip_address}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def detect_device(user_agent: str) -> Tuple[DeviceType, Optional[str]]:
    """Best-effort (device_type, platform) from a User-Agent string."""
    ua = (user_agent or "").lower()

    platform = None
    if "android" in ua or "okhttp" in ua:
        platform = "android"
    elif "iphone" in ua or "ipad" in ua or "ios" in ua or "darwin" in ua:
        platform = "ios"
    elif "windows" in ua or "macintosh" in ua or "linux" in ua:
        platform = "web"

    if "ipad" in ua or "tablet" in ua:
        return DeviceType.TABLET, platform
    if any(marker in ua for marker in ("mobile", "android", "iphone", "okhttp", "expo", "dart")):
        return DeviceType.MOBILE, platform
    if any(marker in ua for marker in ("windows", "macintosh", "linux")):
        return DeviceType.DESKTOP, platform
    return DeviceType.UNKNOWN, platform


class DeviceService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def register_or_update(
        self,
        user: User,
        fcm_token: str,
        request: Request,
        device_info: Optional[str] = None,
        skip_notification: bool = False,
    ) -> UserDevice:
        """
        Upsert the device identified by (user, fingerprint) and commit.

        A brand-new device on an account that already had devices triggers a
        "New device login" system alert.
        """
        user_agent = request.headers.get("user-agent", "Unknown")
        ip_address = client_ip(request)
        info = device_info or user_agent
        fingerprint = device_fingerprint(fcm_token, user_agent, info, ip_address)
        device_type, platform = detect_device(user_agent)
        now = utcnow()

        result = await self.db.execute(
            select(UserDevice).where(
                UserDevice.user_id == user.id,
                UserDevice.device_fingerprint == fingerprint,
            )
        )
        device = result.scalar_one_or_none()

        if device is not None:
            device.fcm_token = fcm_token
            device.device_info = info
            device.ip_address = ip_address
            device.last_active_at = now
            device.is_active = True
            await self.db.commit()
            logger.info(f"Device updated: user_id={user.id}, device_id={device.id}")
            return device

        existing_count = await self.db.scalar(
            select(func.count()).select_from(UserDevice).where(UserDevice.user_id == user.id)
        )

        device = UserDevice(
            user_id=user.id,
            fcm_token=fcm_token,
            device_fingerprint=fingerprint,
            device_info=info,
            device_type=device_type,
            platform=platform,
            app_version=request.headers.get("x-app-version"),
            ip_address=ip_address,
            last_active_at=now,
            is_active=True,
        )
        self.db.add(device)
        await self.db.commit()
        logger.info(f"New device created: user_id={user.id}, device_id={device.id}")

        if existing_count and not skip_notification:
            await NotificationManager(self.db).send_to_user(
                user.id,
                title="New device login",
                body=f"Your account was just used to sign in on {info}.",
                type=NotificationType.SYSTEM_ALERT,
                data={"deviceId": str(device.id), "ipAddress": ip_address},
            )

        return device
