"""Lease lifecycle and ledger business logic.

Every mutation follows the same shape: load, check scope, take the per-lease
lock, re-read the row under a row lock, apply the transition together with
its ledger and outbox writes, then commit once.
"""

import asyncio
from datetime import date
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...config import settings
from ...core.exceptions import (
    InvalidLedgerStateError,
    InvalidTransitionError,
    NotFoundError,
    TenantTrackException,
    ValidationError,
)
from ...core.locks import hold
from ...core.logging import get_logger
from ...core.utils import billing_period, utc_now, utc_today
from ...database import AsyncSessionLocal, commit_or_conflict
from ..access_control import (
    AccessScope,
    Capability,
    ensure_in_scope,
    ensure_manages,
    require_capability,
    scope_filter,
)
from ..auth.models import User
from ..notifications.models import NotificationKind
from ..notifications.services import enqueue_notification
from ..property_management.models import Property, Unit, UnitStatus
from ..tenant_management.models import Tenant
from . import crud, ledger
from .models import (
    CLOSED_LEASE_STATUSES,
    LEASE_TRANSITIONS,
    Lease,
    LeaseStatus,
    LedgerEntry,
)
from .schemas import (
    AccrualResponse,
    AdjustmentCreate,
    BatchAccrualReport,
    LeaseApplicationCreate,
    LedgerSummary,
)

logger = get_logger("lease_management.services")

RELEASE_IMMEDIATE = "immediate"
RELEASE_WHEN_SETTLED = "when_settled"


# ----- Internal helpers (caller holds the lease lock) -----


def ensure_transition(lease: Lease, target: LeaseStatus, reason: str | None = None):
    if target not in LEASE_TRANSITIONS[lease.status]:
        raise InvalidTransitionError("Lease", lease.status, target, reason)


async def _get_lease_or_404(db: AsyncSession, lease_id: int) -> Lease:
    lease = await crud.get_lease_by_id(db, lease_id)
    if lease is None:
        raise NotFoundError("Lease", lease_id)
    return lease


async def _lease_parties(
    db: AsyncSession, lease: Lease
) -> tuple[Tenant, Unit, Property, User | None]:
    tenant = await db.get(Tenant, lease.tenant_id)
    unit = await db.get(Unit, lease.unit_id)
    property_obj = await db.get(Property, lease.property_id)
    landlord = await db.get(User, property_obj.owner_user_id)
    return tenant, unit, property_obj, landlord


async def _activate(
    db: AsyncSession, lease: Lease, today: date, explicit: bool = False
) -> None:
    """PENDING -> ACTIVE. Raises before mutating anything."""
    ensure_transition(lease, LeaseStatus.ACTIVE)
    if lease.start_date > today:
        raise InvalidTransitionError(
            "Lease",
            lease.status,
            LeaseStatus.ACTIVE,
            f"lease starts on {lease.start_date.isoformat()}",
        )

    outstanding = await ledger.deposit_outstanding(db, lease)
    if outstanding > 0:
        raise InvalidLedgerStateError(
            f"Deposit not fully paid; {outstanding} outstanding",
            {"lease_id": lease.id, "deposit_outstanding": str(outstanding)},
        )

    if await crud.other_active_lease_exists(db, lease.unit_id, lease.id):
        raise InvalidTransitionError(
            "Lease", lease.status, LeaseStatus.ACTIVE, "unit already has an active lease"
        )

    tenant, unit, property_obj, landlord = await _lease_parties(db, lease)
    lease.status = LeaseStatus.ACTIVE
    lease.activated_at = utc_now()
    unit.status = UnitStatus.RENTED

    details = {
        "property_name": property_obj.name,
        "unit_number": unit.unit_number,
        "start_date": lease.start_date,
        "end_date": lease.end_date,
    }
    if explicit:
        enqueue_notification(
            db,
            NotificationKind.APPLICATION_APPROVED,
            tenant.email,
            tenant.full_name,
            details,
        )
    enqueue_notification(
        db,
        NotificationKind.LEASE_CONFIRMED,
        tenant.email,
        tenant.full_name,
        {
            **details,
            "landlord_name": landlord.full_name if landlord else property_obj.name,
            "rent": lease.rent,
        },
    )
    logger.info(
        "Lease activated",
        extra={"lease_id": lease.id, "unit_id": unit.id, "explicit": explicit},
    )


async def try_activate_lease(
    db: AsyncSession, lease: Lease, today: date | None = None
) -> bool:
    """Activate if every precondition holds; otherwise leave the lease as is."""
    if lease.status != LeaseStatus.PENDING:
        return False
    try:
        await _activate(db, lease, today or utc_today())
    except (InvalidTransitionError, InvalidLedgerStateError) as exc:
        logger.info(
            "Lease not yet activatable",
            extra={"lease_id": lease.id, "reason": exc.message},
        )
        return False
    return True


async def _release_unit_if_settled(db: AsyncSession, lease: Lease) -> bool:
    """Apply the unit release policy to a closed lease."""
    if lease.status not in CLOSED_LEASE_STATUSES:
        return False

    unit = await db.get(Unit, lease.unit_id)
    if unit.status != UnitStatus.RENTED:
        return False
    if await crud.other_active_lease_exists(db, unit.id, lease.id):
        return False

    if settings.unit_release_policy != RELEASE_IMMEDIATE:
        summary = await ledger.summarize(db, lease)
        if summary.signed_balance > 0:
            logger.info(
                "Unit held until lease is settled",
                extra={
                    "lease_id": lease.id,
                    "unit_id": unit.id,
                    "balance": str(summary.signed_balance),
                },
            )
            return False

    unit.status = UnitStatus.AVAILABLE
    logger.info("Unit released", extra={"lease_id": lease.id, "unit_id": unit.id})
    return True


async def _close(
    db: AsyncSession, lease: Lease, target: LeaseStatus, reason: str | None = None
) -> None:
    ensure_transition(lease, target)
    previous = lease.status
    lease.status = target
    if target == LeaseStatus.TERMINATED:
        lease.terminated_at = utc_now()
        lease.termination_reason = reason
    await _release_unit_if_settled(db, lease)
    logger.info(
        "Lease closed",
        extra={"lease_id": lease.id, "from": previous.value, "to": target.value},
    )


# ----- Lease lifecycle -----


async def submit_application(
    db: AsyncSession, scope: AccessScope, data: LeaseApplicationCreate
) -> Lease:
    """Create a PENDING lease for a tenant and charge its deposit."""
    require_capability(
        scope,
        Capability.SUBMIT_APPLICATION,
        Capability.MANAGE_LEASES,
        action="submit",
        resource="lease application",
    )
    tenant = await db.get(Tenant, data.tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant", data.tenant_id)
    ensure_in_scope(
        scope,
        tenant.property_id,
        tenant_id=tenant.id,
        action="submit",
        resource="lease application",
    )

    if data.start_date >= data.end_date:
        raise ValidationError("End date must be after start date", field="end_date")
    term_days = (data.end_date - data.start_date).days
    if term_days < settings.lease_min_term_days:
        raise ValidationError(
            f"Lease must run at least {settings.lease_min_term_days} days",
            field="end_date",
            value=data.end_date,
        )

    async with hold("tenant", tenant.id):
        if await crud.get_open_lease_for_tenant(db, tenant.id) is not None:
            raise ValidationError(
                "Tenant already has a pending or active lease", field="tenant_id"
            )

        lease = await crud.create_lease(
            db,
            tenant_id=tenant.id,
            unit_id=tenant.unit_id,
            property_id=tenant.property_id,
            start_date=data.start_date,
            end_date=data.end_date,
            rent=data.rent,
            deposit=data.deposit,
        )
        await ledger.record_deposit_charge(db, lease, created_by_user_id=scope.user_id)

        _, unit, property_obj, landlord = await _lease_parties(db, lease)
        if landlord is not None:
            enqueue_notification(
                db,
                NotificationKind.APPLICATION_SUBMITTED,
                landlord.email,
                landlord.full_name,
                {
                    "tenant_name": tenant.full_name,
                    "property_name": property_obj.name,
                    "unit_number": unit.unit_number,
                    "start_date": lease.start_date,
                    "end_date": lease.end_date,
                    "rent": lease.rent,
                },
            )
        await db.commit()

    logger.info(
        "Lease application submitted",
        extra={"lease_id": lease.id, "tenant_id": tenant.id},
    )
    return lease


async def get_lease(db: AsyncSession, scope: AccessScope, lease_id: int) -> Lease:
    lease = await _get_lease_or_404(db, lease_id)
    ensure_in_scope(
        scope, lease.property_id, tenant_id=lease.tenant_id, action="view", resource="lease"
    )
    return lease


async def list_leases(
    db: AsyncSession,
    scope: AccessScope,
    skip: int = 0,
    limit: int = 20,
    status: LeaseStatus | None = None,
    tenant_id: int | None = None,
) -> tuple[list[Lease], int]:
    return await crud.get_leases(
        db,
        criterion=scope_filter(scope, Lease.property_id, Lease.tenant_id),
        skip=skip,
        limit=limit,
        status=status,
        tenant_id=tenant_id,
    )


async def activate_lease(
    db: AsyncSession, scope: AccessScope, lease_id: int, today: date | None = None
) -> Lease:
    """Approve an application: PENDING -> ACTIVE."""
    lease = await _get_lease_or_404(db, lease_id)
    ensure_manages(
        scope, lease.property_id, Capability.MANAGE_LEASES, action="activate", resource="lease"
    )
    async with hold("lease", lease.id):
        await db.refresh(lease, with_for_update=True)
        await _activate(db, lease, today or utc_today(), explicit=True)
        await commit_or_conflict(db, "Lease", lease.id)
    return lease


async def deny_application(
    db: AsyncSession, scope: AccessScope, lease_id: int, reason: str | None = None
) -> Lease:
    """Reject an application: PENDING -> DENIED."""
    lease = await _get_lease_or_404(db, lease_id)
    ensure_manages(
        scope, lease.property_id, Capability.MANAGE_LEASES, action="deny", resource="lease"
    )
    async with hold("lease", lease.id):
        await db.refresh(lease, with_for_update=True)
        ensure_transition(lease, LeaseStatus.DENIED)
        lease.status = LeaseStatus.DENIED
        lease.termination_reason = reason

        tenant, unit, property_obj, _ = await _lease_parties(db, lease)
        enqueue_notification(
            db,
            NotificationKind.APPLICATION_DENIED,
            tenant.email,
            tenant.full_name,
            {
                "property_name": property_obj.name,
                "unit_number": unit.unit_number,
                "reason": reason,
            },
        )
        await commit_or_conflict(db, "Lease", lease.id)

    logger.info("Lease application denied", extra={"lease_id": lease.id})
    return lease


async def terminate_lease(
    db: AsyncSession, scope: AccessScope, lease_id: int, reason: str | None = None
) -> Lease:
    """End an active lease early: ACTIVE -> TERMINATED."""
    lease = await _get_lease_or_404(db, lease_id)
    ensure_manages(
        scope, lease.property_id, Capability.MANAGE_LEASES, action="terminate", resource="lease"
    )
    async with hold("lease", lease.id):
        await db.refresh(lease, with_for_update=True)
        await _close(db, lease, LeaseStatus.TERMINATED, reason)
        await commit_or_conflict(db, "Lease", lease.id)
    return lease


async def renew_lease(
    db: AsyncSession, scope: AccessScope, lease_id: int, new_end_date: date
) -> Lease:
    """Record a renewal by moving the end date of an active lease."""
    lease = await _get_lease_or_404(db, lease_id)
    ensure_manages(
        scope, lease.property_id, Capability.MANAGE_LEASES, action="renew", resource="lease"
    )
    async with hold("lease", lease.id):
        await db.refresh(lease, with_for_update=True)
        if lease.status != LeaseStatus.ACTIVE:
            raise InvalidTransitionError(
                "Lease", lease.status, LeaseStatus.ACTIVE, "only active leases can be renewed"
            )
        if new_end_date <= lease.end_date:
            raise ValidationError(
                "New end date must be after the current end date",
                field="new_end_date",
                value=new_end_date,
            )
        previous_end = lease.end_date
        lease.end_date = new_end_date
        lease.renewal_count += 1
        await commit_or_conflict(db, "Lease", lease.id)

    logger.info(
        "Lease renewed",
        extra={
            "lease_id": lease.id,
            "previous_end_date": previous_end.isoformat(),
            "end_date": new_end_date.isoformat(),
        },
    )
    return lease


# ----- Scheduled transitions -----


async def activate_due_leases(db: AsyncSession, today: date | None = None) -> int:
    """Activate pending leases whose start date has arrived and deposit is paid."""
    today = today or utc_today()
    activated = 0
    for lease_id in await crud.get_lease_ids_due_for_activation(db, today):
        async with hold("lease", lease_id):
            lease = await _get_lease_or_404(db, lease_id)
            await db.refresh(lease, with_for_update=True)
            if await try_activate_lease(db, lease, today):
                try:
                    await commit_or_conflict(db, "Lease", lease_id)
                except TenantTrackException:
                    continue
                activated += 1
            else:
                await db.rollback()
    return activated


async def expire_due_leases(db: AsyncSession, today: date | None = None) -> int:
    """Expire (or auto-renew) active leases past their end date."""
    today = today or utc_today()
    renew_months = settings.lease_auto_renew_months
    changed = 0
    for lease_id in await crud.get_lease_ids_past_end(db, today):
        async with hold("lease", lease_id):
            lease = await _get_lease_or_404(db, lease_id)
            await db.refresh(lease, with_for_update=True)
            if lease.status != LeaseStatus.ACTIVE or lease.end_date >= today:
                await db.rollback()
                continue

            if renew_months > 0:
                new_end = lease.end_date
                while new_end < today:
                    new_end = new_end + relativedelta(months=renew_months)
                lease.end_date = new_end
                lease.renewal_count += 1
                logger.info(
                    "Lease auto-renewed",
                    extra={"lease_id": lease_id, "end_date": new_end.isoformat()},
                )
            else:
                await _close(db, lease, LeaseStatus.EXPIRED)

            try:
                await commit_or_conflict(db, "Lease", lease_id)
            except TenantTrackException:
                continue
            changed += 1
    return changed


# ----- Ledger operations -----


async def get_ledger_summary(
    db: AsyncSession, scope: AccessScope, lease_id: int, today: date | None = None
) -> LedgerSummary:
    lease = await _get_lease_or_404(db, lease_id)
    require_capability(scope, Capability.VIEW_LEDGER, action="view", resource="ledger")
    ensure_in_scope(
        scope, lease.property_id, tenant_id=lease.tenant_id, action="view", resource="ledger"
    )
    return await ledger.summarize(db, lease, today)


async def list_ledger_entries(
    db: AsyncSession, scope: AccessScope, lease_id: int
) -> list[LedgerEntry]:
    lease = await _get_lease_or_404(db, lease_id)
    require_capability(scope, Capability.VIEW_LEDGER, action="view", resource="ledger")
    ensure_in_scope(
        scope, lease.property_id, tenant_id=lease.tenant_id, action="view", resource="ledger"
    )
    return await ledger.list_entries(db, lease.id)


async def accrue_monthly_charge(
    db: AsyncSession,
    scope: AccessScope,
    lease_id: int,
    period: str | None = None,
) -> AccrualResponse:
    """Charge one month of rent on demand."""
    lease = await _get_lease_or_404(db, lease_id)
    ensure_manages(
        scope, lease.property_id, Capability.MANAGE_LEASES, action="accrue", resource="rent"
    )
    period = period or billing_period(utc_today())
    async with hold("lease", lease.id):
        await db.refresh(lease, with_for_update=True)
        entry, created = await ledger.accrue_monthly_charge(
            db, lease, period, created_by_user_id=scope.user_id
        )
        response = AccrualResponse(
            lease_id=lease_id,
            period=period,
            amount=entry.amount,
            created=created,
            entry_id=entry.id,
        )
        await db.commit()
    return response


async def post_ledger_adjustment(
    db: AsyncSession, scope: AccessScope, lease_id: int, data: AdjustmentCreate
) -> LedgerEntry:
    """Credit a lease and release its unit if that settles a closed lease."""
    lease = await _get_lease_or_404(db, lease_id)
    ensure_manages(
        scope, lease.property_id, Capability.MANAGE_LEASES, action="adjust", resource="ledger"
    )
    async with hold("lease", lease.id):
        await db.refresh(lease, with_for_update=True)
        entry = await ledger.post_adjustment(
            db, lease, Decimal(data.amount), data.description, scope.user_id
        )
        await _release_unit_if_settled(db, lease)
        await commit_or_conflict(db, "Lease", lease.id)
    return entry


async def accrue_charges_for_period(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    period: str | None = None,
    today: date | None = None,
) -> BatchAccrualReport:
    """Accrue rent for every active lease, each in its own session.

    Leases share no state, so accruals run concurrently up to
    ``accrual_max_concurrency``.
    """
    period = period or billing_period(today or utc_today())
    first_day, last_day = ledger.period_bounds(period)
    async with session_factory() as db:
        lease_ids = await crud.get_active_lease_ids_for_period(db, first_day, last_day)

    semaphore = asyncio.Semaphore(settings.accrual_max_concurrency)

    async def accrue_one(lease_id: int) -> str:
        async with semaphore, session_factory() as db:
            try:
                async with hold("lease", lease_id):
                    lease = await _get_lease_or_404(db, lease_id)
                    await db.refresh(lease, with_for_update=True)
                    _, created = await ledger.accrue_monthly_charge(db, lease, period)
                    await db.commit()
            except (TenantTrackException, SQLAlchemyError):
                logger.exception(
                    "Rent accrual failed", extra={"lease_id": lease_id, "period": period}
                )
                await db.rollback()
                return "failed"
            return "created" if created else "skipped"

    outcomes = await asyncio.gather(*(accrue_one(lease_id) for lease_id in lease_ids))
    report = BatchAccrualReport(
        period=period,
        created=outcomes.count("created"),
        skipped=outcomes.count("skipped"),
        failed=outcomes.count("failed"),
    )
    logger.info("Rent accrual batch finished", extra=report.model_dump())
    return report
