import asyncio
import logging
from typing import Dict, Union

from libs.config import config
from libs.email_client import get_email_client
from libs.push_client import get_fcm_client
from libs.twilio_client import get_twilio_client
from services.notification.models import (
    EmailNotificationResponse,
    PushNotificationResponse,
    SMSNotificationResponse,
)

logger = logging.getLogger(__name__)

DUMMY_MODES = {"dummy", "dev", "test"}


class BaseSender:
    """Base class for notification senders"""

    async def send(
        self, payload: Dict
    ) -> Union[PushNotificationResponse, EmailNotificationResponse, SMSNotificationResponse]:
        """
        Send notification via this channel.

        Args:
            payload: Channel-specific payload dictionary

        Returns:
            Channel-specific response model
        """
        raise NotImplementedError("Sender must implement send()")


class PushSender(BaseSender):
    """Push notification sender (FCM)"""

    async def send(self, payload: Dict) -> PushNotificationResponse:
        """
        Send a push notification.

        Args:
            payload: Dictionary with tokens, title, body, data, image_url
        """
        tokens = payload.get("tokens") or []
        if not tokens:
            return PushNotificationResponse(status="not_triggered", platform="fcm")

        if config.NOTIFICATION_PUSH_MODE in DUMMY_MODES:
            return PushNotificationResponse(
                status="sent", platform="dummy", success_count=len(tokens)
            )

        result = await get_fcm_client().send_multicast(
            tokens=tokens,
            title=payload["title"],
            body=payload["body"],
            data=payload.get("data"),
            image_url=payload.get("image_url"),
        )
        if result["success"] and not result["failure"]:
            status = "sent"
        elif result["success"]:
            status = "partial"
        else:
            status = "failed"
        return PushNotificationResponse(
            status=status,
            platform="fcm",
            success_count=result["success"],
            failure_count=result["failure"],
            invalid_tokens=result["invalid_tokens"],
        )


class EmailSender(BaseSender):
    """Email sender (SMTP)"""

    async def send(self, payload: Dict) -> EmailNotificationResponse:
        """
        Args:
            payload: Dictionary with to_email, subject, body
        """
        if config.NOTIFICATION_EMAIL_MODE in DUMMY_MODES:
            logger.info(f"[dummy email] to={payload['to_email']} subject={payload['subject']}")
            return EmailNotificationResponse(status="sent", to=payload["to_email"])

        # smtplib blocks for the whole SMTP exchange
        result = await asyncio.to_thread(
            get_email_client().send_email,
            to_email=payload["to_email"],
            subject=payload["subject"],
            text_body=payload["body"],
        )
        return EmailNotificationResponse(
            status=result["status"], to=result["to"], error=result.get("error")
        )


class SmsSender(BaseSender):
    """SMS notification sender"""

    async def send(self, payload: Dict) -> SMSNotificationResponse:
        """
        Send SMS notification.

        Args:
            payload: Dictionary with to_phone, message
        """
        if config.NOTIFICATION_SMS_MODE in DUMMY_MODES:
            return SMSNotificationResponse(
                status="sent",
                sid="SMS-DUMMY",
                to=payload.get("to_phone", ""),
                from_="dummy",
                message_status="sent",
                error=None,
            )
        twilio = get_twilio_client()
        twilio_result = await twilio.send_sms(
            to_phone=payload["to_phone"], message=payload["message"]
        )
        return SMSNotificationResponse(
            status=twilio_result["status"],
            sid=twilio_result.get("sid"),
            to=twilio_result.get("to", payload["to_phone"]),
            from_=twilio_result.get("from"),
            message_status=twilio_result.get("message_status"),
            error=twilio_result.get("error"),
        )


class NotificationFactory:
    def __init__(self) -> None:
        self._senders = {
            "push": PushSender(),
            "email": EmailSender(),
            "sms": SmsSender(),
        }

    def get_sender(self, channel: str) -> BaseSender:
        if channel not in self._senders:
            raise ValueError(f"Unsupported channel: {channel}")
        return self._senders[channel]
