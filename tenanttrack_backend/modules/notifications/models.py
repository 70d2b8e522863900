"""Notification outbox model."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ...core.utils import utc_now
from ...database import Base, TimestampMixin


class NotificationKind(str, enum.Enum):
    """Email templates the dispatcher can render."""

    VERIFICATION = "verification"
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_DENIED = "application_denied"
    LEASE_CONFIRMED = "lease_confirmed"
    PAYMENT_RECEIVED = "payment_received"
    MAINTENANCE_STATUS_CHANGED = "maintenance_status_changed"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationJob(TimestampMixin, Base):
    """One templated email waiting for delivery.

    Written in the same transaction as the state change that produced it;
    only the dispatcher updates it afterwards.
    """

    __tablename__ = "notification_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[NotificationKind] = mapped_column(
        Enum(NotificationKind), nullable=False
    )
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus), nullable=False, default=NotificationStatus.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_notification_jobs_due", "status", "next_attempt_at"),
    )

    def __repr__(self) -> str:
        return f"<NotificationJob(id={self.id}, kind={self.kind}, status={self.status})>"
