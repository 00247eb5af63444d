"""Delivery results returned by the push, email and SMS senders."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DeliveryStatus(str, Enum):
    SENT = "sent"
    PARTIAL = "partial"  # push only: some device tokens failed
    FAILED = "failed"
    NOT_TRIGGERED = "not_triggered"  # push only: user has no registered devices


class PushNotificationResponse(BaseModel):
    status: DeliveryStatus
    platform: str
    success_count: int = 0
    failure_count: int = 0
    invalid_tokens: List[str] = Field(default_factory=list)


class EmailNotificationResponse(BaseModel):
    status: DeliveryStatus
    to: str
    error: Optional[str] = None


class SMSNotificationResponse(BaseModel):
    status: DeliveryStatus
    sid: Optional[str] = None
    to: str
    from_: Optional[str] = None
    message_status: Optional[str] = None
    error: Optional[str] = None
