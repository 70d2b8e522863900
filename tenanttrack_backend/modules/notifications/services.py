"""Notification outbox operations."""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.exceptions import NotFoundError, ValidationError
from ...core.logging import get_logger
from ...core.utils import utc_now
from .models import NotificationJob, NotificationKind, NotificationStatus

logger = get_logger("notifications.services")


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def enqueue_notification(
    db: AsyncSession,
    kind: NotificationKind,
    recipient_email: str,
    recipient_name: str,
    payload: dict[str, Any],
) -> NotificationJob:
    """Add an outbox row to the caller's transaction.

    Nothing is flushed or committed here; the job becomes visible to the
    dispatcher only when the surrounding state change commits.
    """
    job = NotificationJob(
        kind=kind,
        recipient_email=recipient_email,
        recipient_name=recipient_name,
        payload=_json_safe(payload),
        status=NotificationStatus.PENDING,
        attempts=0,
        next_attempt_at=utc_now(),
    )
    db.add(job)
    logger.debug(
        "Notification queued", extra={"kind": kind.value, "recipient": recipient_email}
    )
    return job


async def list_failed_jobs(
    db: AsyncSession, skip: int = 0, limit: int = 50
) -> list[NotificationJob]:
    result = await db.execute(
        select(NotificationJob)
        .where(NotificationJob.status == NotificationStatus.FAILED)
        .order_by(NotificationJob.updated_at.desc(), NotificationJob.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())


async def retry_job(db: AsyncSession, job_id: int) -> NotificationJob:
    """Put a permanently failed job back in the queue with its attempt count reset."""
    result = await db.execute(select(NotificationJob).where(NotificationJob.id == job_id))
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFoundError("NotificationJob", job_id)
    if job.status != NotificationStatus.FAILED:
        raise ValidationError(
            "Only failed notifications can be retried", field="status", value=job.status
        )

    job.status = NotificationStatus.PENDING
    job.attempts = 0
    job.next_attempt_at = utc_now()
    await db.commit()
    logger.info("Notification requeued by operator", extra={"job_id": job.id})
    return job
