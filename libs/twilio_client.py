"""
Twilio SMS client for phone verification codes.

Numbers are normalised to E.164 with Nigeria (+234) as the home country,
so "08031234567" and "+2348031234567" reach the same handset.
"""

import asyncio
import logging
import re
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from libs.config import config

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODE = "234"


def to_e164(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Normalise a local or international number to +<country><subscriber>."""
    digits = re.sub(r"[^\d+]", "", phone or "")
    if digits.startswith("+"):
        return digits
    if digits.startswith("00"):
        return "+" + digits[2:]
    if digits.startswith(country_code):
        return "+" + digits
    if digits.startswith("0"):
        return f"+{country_code}{digits[1:]}"
    return f"+{country_code}{digits}"


def _mask(phone: str) -> str:
    if len(phone) <= 8:
        return phone
    return phone[:4] + "*" * (len(phone) - 8) + phone[-4:]


class TwilioClient:
    """Sends SMS through the Twilio REST API off the event loop."""

    def __init__(self, client: Optional[Client] = None):
        if client is None and not config.validate_twilio_config():
            raise ValueError(
                "Missing Twilio configuration. Please set TWILIO_ACCOUNT_SID, "
                "TWILIO_AUTH_TOKEN, and TWILIO_PHONE_NUMBER in your .env file"
            )
        self.from_phone = config.TWILIO_PHONE_NUMBER
        self.client = client or Client(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN)

    async def send_sms(self, to_phone: str, message: str) -> dict:
        """
        Send one SMS.

        Returns a dict with status ("sent" / "failed"), sid, to, from,
        message_status and error. Twilio errors are reported, never raised.
        """
        to = to_e164(to_phone)
        try:
            msg = await asyncio.to_thread(
                self.client.messages.create, body=message, from_=self.from_phone, to=to
            )
        except TwilioRestException as e:
            logger.warning(f"Twilio rejected SMS to {_mask(to)}: {e.msg} (code {e.code})")
            return self._failed(to, f"{e.code}: {e.msg}")
        except Exception as e:
            logger.error(f"SMS to {_mask(to)} failed: {e}")
            return self._failed(to, f"Unexpected error: {e}")

        logger.info(f"SMS {msg.sid} queued to {_mask(to)} ({msg.status})")
        return {
            "status": "sent",
            "sid": msg.sid,
            "to": to,
            "from": self.from_phone,
            "message_status": msg.status,
            "error": None,
        }

    def _failed(self, to: str, error: str) -> dict:
        return {
            "status": "failed",
            "sid": None,
            "to": to,
            "from": self.from_phone,
            "message_status": "failed",
            "error": error,
        }


_twilio_client: Optional[TwilioClient] = None


def get_twilio_client() -> TwilioClient:
    global _twilio_client
    if _twilio_client is None:
        _twilio_client = TwilioClient()
    return _twilio_client
