"""Notification dispatcher.

Drains the outbox through the email client. Delivery runs in sessions of its
own, so a failing email never touches the transaction that queued it.
"""

import asyncio
from datetime import datetime, timedelta

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import RetryCallState, wait_exponential

from ...config import settings
from ...core.exceptions import ExternalUnavailableError
from ...core.logging import get_logger
from ...core.utils import utc_now
from ...database import AsyncSessionLocal
from .email_client import EmailClient
from .models import NotificationJob, NotificationKind, NotificationStatus

logger = get_logger("notifications.dispatcher")

TEMPLATE_SENDERS: dict[NotificationKind, str] = {
    NotificationKind.VERIFICATION: "send_verification",
    NotificationKind.APPLICATION_SUBMITTED: "send_application_submitted",
    NotificationKind.APPLICATION_APPROVED: "send_application_approved",
    NotificationKind.APPLICATION_DENIED: "send_application_denied",
    NotificationKind.LEASE_CONFIRMED: "send_lease_confirmation",
    NotificationKind.PAYMENT_RECEIVED: "send_payment_receipt",
    NotificationKind.MAINTENANCE_STATUS_CHANGED: "send_maintenance_status",
}


class DispatchReport(BaseModel):
    sent: int = 0
    retried: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.retried + self.failed


class NotificationDispatcher:
    """Delivers due notification jobs with exponential backoff."""

    def __init__(
        self,
        email_client: EmailClient,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        max_attempts: int | None = None,
        base_delay_seconds: int | None = None,
        max_delay_seconds: int | None = None,
        send_timeout_seconds: float | None = None,
        batch_size: int | None = None,
    ):
        self.email_client = email_client
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.base_delay_seconds = (
            base_delay_seconds or settings.notification_base_delay_seconds
        )
        self.max_delay_seconds = (
            max_delay_seconds or settings.notification_max_delay_seconds
        )
        self.send_timeout_seconds = (
            send_timeout_seconds or settings.email_timeout_seconds
        )
        self.batch_size = batch_size or settings.notification_batch_size
        self.wait = wait_exponential(
            multiplier=self.base_delay_seconds, max=self.max_delay_seconds
        )

    def backoff(self, attempts: int) -> timedelta:
        """Delay before the next attempt after ``attempts`` failures.

        Jobs wait in the outbox between attempts; only the tenacity wait
        strategy is used, never its sleeping retry loop.
        """
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = max(attempts, 1)
        return timedelta(seconds=self.wait(state))

    async def dispatch_due(self, now: datetime | None = None) -> DispatchReport:
        """Attempt every pending job whose next attempt is due."""
        now = now or utc_now()
        async with self.session_factory() as db:
            result = await db.execute(
                select(NotificationJob.id)
                .where(
                    NotificationJob.status == NotificationStatus.PENDING,
                    NotificationJob.next_attempt_at <= now,
                )
                .order_by(NotificationJob.next_attempt_at, NotificationJob.id)
                .limit(self.batch_size)
            )
            job_ids = list(result.scalars().all())

        report = DispatchReport()
        for job_id in job_ids:
            outcome = await self._dispatch_one(job_id, now)
            if outcome == "sent":
                report.sent += 1
            elif outcome == "retried":
                report.retried += 1
            elif outcome == "failed":
                report.failed += 1

        if report.processed:
            logger.info("Notification batch dispatched", extra=report.model_dump())
        return report

    async def _deliver(self, job: NotificationJob) -> None:
        sender = getattr(self.email_client, TEMPLATE_SENDERS[job.kind])
        await sender(job.recipient_email, job.recipient_name, **(job.payload or {}))

    async def _dispatch_one(self, job_id: int, now: datetime) -> str | None:
        async with self.session_factory() as db:
            job = await db.get(NotificationJob, job_id)
            if job is None or job.status != NotificationStatus.PENDING:
                return None

            job.attempts += 1
            try:
                await asyncio.wait_for(
                    self._deliver(job), timeout=self.send_timeout_seconds
                )
            except (ExternalUnavailableError, asyncio.TimeoutError) as exc:
                outcome = self._schedule_retry(job, now, exc)
            except (KeyError, TypeError, ValueError) as exc:
                outcome = self._fail(job, f"Malformed notification job: {exc!r}")
            except Exception as exc:
                logger.exception(
                    "Unexpected notification failure", extra={"job_id": job.id}
                )
                outcome = self._fail(job, f"Unexpected error: {exc!r}")
            else:
                job.status = NotificationStatus.SENT
                job.sent_at = utc_now()
                job.last_error = None
                outcome = "sent"
                logger.info(
                    "Notification sent",
                    extra={"job_id": job.id, "kind": job.kind.value, "attempts": job.attempts},
                )

            await db.commit()
            return outcome

    def _schedule_retry(
        self, job: NotificationJob, now: datetime, exc: BaseException
    ) -> str:
        error = str(exc) or type(exc).__name__
        if job.attempts >= self.max_attempts:
            return self._fail(job, f"Gave up after {job.attempts} attempts: {error}")

        delay = self.backoff(job.attempts)
        job.last_error = error
        job.next_attempt_at = now + delay
        logger.warning(
            "Notification delivery failed, will retry",
            extra={
                "job_id": job.id,
                "attempts": job.attempts,
                "retry_in_seconds": delay.total_seconds(),
                "error": error,
            },
        )
        return "retried"

    def _fail(self, job: NotificationJob, reason: str) -> str:
        job.status = NotificationStatus.FAILED
        job.last_error = reason
        logger.error(
            "Notification permanently failed",
            extra={"job_id": job.id, "kind": job.kind.value, "error": reason},
        )
        return "failed"

    async def run_forever(
        self, stop_event: asyncio.Event, poll_interval: float | None = None
    ) -> None:
        """Poll the outbox until ``stop_event`` is set."""
        interval = poll_interval or settings.notification_poll_interval_seconds
        logger.info("Notification dispatcher started", extra={"interval": interval})
        while not stop_event.is_set():
            try:
                await self.dispatch_due()
            except Exception:
                logger.exception("Notification dispatch pass failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Notification dispatcher stopped")
