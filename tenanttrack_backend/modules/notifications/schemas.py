"""Notification schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from .models import NotificationKind, NotificationStatus


class NotificationJobResponse(BaseModel):
    id: int
    kind: NotificationKind
    recipient_email: str
    recipient_name: str
    payload: dict[str, Any]
    status: NotificationStatus
    attempts: int
    last_error: str | None = None
    next_attempt_at: datetime
    sent_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True
