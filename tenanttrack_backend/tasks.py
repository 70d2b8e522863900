"""In-process background work: outbox delivery and the lifecycle sweep.

Both loops are started from the application lifespan when
``background_tasks_enabled`` is set; a failing pass is logged and the loop
carries on with the next one.
"""

import asyncio
from datetime import date

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import settings
from .core.logging import get_logger
from .core.utils import billing_period, utc_today
from .database import AsyncSessionLocal
from .modules.lease_management import services as lease_services
from .modules.notifications import EmailClient, NotificationDispatcher
from .modules.payments import services as payment_services

logger = get_logger("tasks")


class SweepReport(BaseModel):
    activated: int = 0
    expired: int = 0
    accrued: int = 0
    accrual_failures: int = 0
    payments_expired: int = 0


async def run_lifecycle_sweep(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    today: date | None = None,
) -> SweepReport:
    """Apply every date-driven transition once.

    Activations run before expiries so a lease that both starts and ends in
    the window is handled in order; rent accrues for the current period only
    after both.
    """
    today = today or utc_today()
    report = SweepReport()

    async with session_factory() as db:
        report.activated = await lease_services.activate_due_leases(db, today)
    async with session_factory() as db:
        report.expired = await lease_services.expire_due_leases(db, today)

    accruals = await lease_services.accrue_charges_for_period(
        session_factory, billing_period(today), today
    )
    report.accrued = accruals.created
    report.accrual_failures = accruals.failed

    async with session_factory() as db:
        report.payments_expired = await payment_services.expire_stale_payments(db)

    logger.info("Lifecycle sweep finished", extra=report.model_dump())
    return report


class BackgroundTasks:
    """Owns the dispatcher and sweep loops for the lifetime of the app."""

    def __init__(
        self,
        email_client: EmailClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        sweep_interval_seconds: int | None = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = NotificationDispatcher(
            email_client or EmailClient(), session_factory=session_factory
        )
        self.sweep_interval_seconds = (
            sweep_interval_seconds or settings.lifecycle_sweep_interval_seconds
        )
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def _sweep_forever(self) -> None:
        logger.info(
            "Lifecycle sweep started",
            extra={"interval": self.sweep_interval_seconds},
        )
        while not self._stop.is_set():
            try:
                await run_lifecycle_sweep(self.session_factory)
            except Exception:
                logger.exception("Lifecycle sweep failed")
            try:
                await asyncio.wait_for(
                    self._stop.wait(), timeout=self.sweep_interval_seconds
                )
            except asyncio.TimeoutError:
                pass
        logger.info("Lifecycle sweep stopped")

    def start(self) -> None:
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(self.dispatcher.run_forever(self._stop)),
            asyncio.create_task(self._sweep_forever()),
        ]

    async def stop(self) -> None:
        self._stop.set()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
