"""
Configuration module for loading environment variables
"""

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration"""

    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "avigate_api")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS: list = [
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    ]

    # JWT Configuration
    JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-access-secret")
    JWT_REFRESH_SECRET: str = os.getenv("JWT_REFRESH_SECRET", "dev-refresh-secret")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN: int = int(os.getenv("JWT_EXPIRES_IN", "3600"))
    JWT_REFRESH_EXPIRES_IN: int = int(
        os.getenv("JWT_REFRESH_EXPIRES_IN", str(7 * 24 * 3600))
    )

    # Admin Configuration
    ADMIN_JWT_SECRET: str = os.getenv("ADMIN_JWT_SECRET", "dev-admin-secret")
    ADMIN_REFRESH_SECRET: str = os.getenv(
        "ADMIN_REFRESH_SECRET", "dev-admin-refresh-secret"
    )
    ADMIN_SESSION_TTL: int = int(os.getenv("ADMIN_SESSION_TTL", "3600"))
    ADMIN_REFRESH_TTL: int = int(os.getenv("ADMIN_REFRESH_TTL", str(7 * 24 * 3600)))
    ADMIN_EMAIL_DOMAIN: str = os.getenv("ADMIN_EMAIL_DOMAIN", "@avigate.co")

    # Rate limiting (fixed window)
    RATE_LIMIT_TTL: int = int(os.getenv("RATE_LIMIT_TTL", "60"))
    RATE_LIMIT_MAX: int = int(os.getenv("RATE_LIMIT_MAX", "100"))

    # Google
    GOOGLE_CLIENT_ID: Optional[str] = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_MAPS_API_KEY: Optional[str] = os.getenv("GOOGLE_MAPS_API_KEY")

    # Push notifications (FCM)
    FCM_SERVER_KEY: Optional[str] = os.getenv("FCM_SERVER_KEY")
    NOTIFICATION_PUSH_MODE: str = os.getenv("NOTIFICATION_PUSH_MODE", "").lower()

    # Email (SMTP)
    SMTP_HOST: Optional[str] = os.getenv("SMTP_HOST")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME: Optional[str] = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD: Optional[str] = os.getenv("SMTP_PASSWORD")
    SMTP_USE_SSL: bool = os.getenv("SMTP_USE_SSL", "false").lower() == "true"
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "Avigate <no-reply@avigate.co>")
    NOTIFICATION_EMAIL_MODE: str = os.getenv("NOTIFICATION_EMAIL_MODE", "").lower()

    # Twilio Configuration
    TWILIO_ACCOUNT_SID: Optional[str] = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN: Optional[str] = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER: Optional[str] = os.getenv("TWILIO_PHONE_NUMBER")
    NOTIFICATION_SMS_MODE: str = os.getenv("NOTIFICATION_SMS_MODE", "").lower()

    # Location sharing
    SHARE_BASE_URL: str = os.getenv("SHARE_BASE_URL", "https://avigate.app/share")

    # Trip geofencing (meters)
    APPROACHING_THRESHOLD: int = int(os.getenv("APPROACHING_THRESHOLD", "500"))
    ARRIVAL_THRESHOLD: int = int(os.getenv("ARRIVAL_THRESHOLD", "100"))

    @classmethod
    def validate_twilio_config(cls) -> bool:
        """Check if Twilio configuration is complete"""
        return all(
            [cls.TWILIO_ACCOUNT_SID, cls.TWILIO_AUTH_TOKEN, cls.TWILIO_PHONE_NUMBER]
        )

    @classmethod
    def validate_smtp_config(cls) -> bool:
        """Check if SMTP configuration is complete"""
        return all([cls.SMTP_HOST, cls.SMTP_USERNAME, cls.SMTP_PASSWORD])


config = Config()
