"""Notification Delivery Models

Every delivery attempt (email or push) is recorded once for audit and retry
analysis. Records are never updated or deleted.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class DeliveryChannel(str, Enum):
    EMAIL = "email"
    PUSH = "push"


class DeliveryStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class DeliveryResultInput(BaseModel):
    """One delivery attempt as reported by the notification processor"""
    notification_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    channel: DeliveryChannel
    provider: str = Field(..., min_length=1)  # e.g. "onesignal"
    status: DeliveryStatus
    error_message: Optional[str] = None
    external_user_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class DeliveryResult(DeliveryResultInput):
    """Persisted delivery attempt.

    delivery_id is 24 hex digits (microsecond timestamp + random suffix),
    strictly increasing for records written by the same recorder.
    """
    delivery_id: str
    created_at: datetime

    model_config = ConfigDict(extra="ignore", frozen=True)
