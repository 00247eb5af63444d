"""
SMTP Email Client
Sends transactional email (verification and login codes) over SMTP
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from libs.config import config

logger = logging.getLogger(__name__)


class EmailClient:
    """Thin wrapper around smtplib with configuration from libs.config"""

    def __init__(self):
        self.host = config.SMTP_HOST
        self.port = config.SMTP_PORT
        self.username = config.SMTP_USERNAME
        self.password = config.SMTP_PASSWORD
        self.use_ssl = config.SMTP_USE_SSL
        self.from_email = config.EMAIL_FROM

        if not config.validate_smtp_config():
            raise ValueError(
                "Missing SMTP configuration. Please set SMTP_HOST, "
                "SMTP_USERNAME, and SMTP_PASSWORD in your .env file"
            )

    def send_email(
        self,
        to_email: str,
        subject: str,
        text_body: str,
        html_body: Optional[str] = None,
    ) -> dict:
        """
        Send one email.

        Returns:
            dict with status and any error information
        """
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        try:
            smtp_cls = smtplib.SMTP_SSL if self.use_ssl else smtplib.SMTP
            with smtp_cls(self.host, self.port, timeout=15) as client:
                if not self.use_ssl:
                    client.starttls()
                client.login(self.username, self.password)
                client.send_message(msg)
            return {"status": "sent", "to": to_email, "error": None}
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send failed for {to_email}: {e}")
            return {"status": "failed", "to": to_email, "error": str(e)}


# Singleton instance
_email_client: Optional[EmailClient] = None


def get_email_client() -> EmailClient:
    """Get or create the email client singleton"""
    global _email_client
    if _email_client is None:
        _email_client = EmailClient()
    return _email_client
