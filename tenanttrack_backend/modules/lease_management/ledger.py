"""Per-lease rent ledger.

Charges (deposit, monthly rent) and credits (confirmed payments,
adjustments) are stored as positive amounts; the balance is derived on read.
These functions add rows to the caller's session and never commit, so a
ledger write always lands in the same transaction as the transition that
caused it.
"""

from datetime import date, timedelta
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...core.exceptions import InvalidLedgerStateError, ValidationError
from ...core.logging import get_logger
from ...core.utils import period_start, to_money, utc_today
from ..payments.models import Payment, PaymentStatus
from .models import (
    CHARGE_TYPES,
    CREDIT_TYPES,
    DEPOSIT_PERIOD,
    Lease,
    LeaseStatus,
    LedgerEntry,
    LedgerEntryType,
)
from .schemas import PERIOD_PATTERN, LedgerSummary

logger = get_logger("lease_management.ledger")

ZERO = Decimal("0.00")


def _money(value) -> Decimal:
    # Aggregates come back as Decimal, int or float depending on the driver.
    return to_money(str(value if value is not None else 0))


def _sum_where(condition):
    return func.coalesce(func.sum(case((condition, LedgerEntry.amount), else_=0)), 0)


async def get_entry(
    db: AsyncSession, lease_id: int, entry_type: LedgerEntryType, period: str
) -> LedgerEntry | None:
    result = await db.execute(
        select(LedgerEntry).where(
            LedgerEntry.lease_id == lease_id,
            LedgerEntry.entry_type == entry_type,
            LedgerEntry.period == period,
        )
    )
    return result.scalar_one_or_none()


async def get_payment_entry(db: AsyncSession, payment_id: int) -> LedgerEntry | None:
    result = await db.execute(
        select(LedgerEntry).where(LedgerEntry.payment_id == payment_id)
    )
    return result.scalar_one_or_none()


async def list_entries(db: AsyncSession, lease_id: int) -> list[LedgerEntry]:
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.lease_id == lease_id)
        .order_by(LedgerEntry.created_at, LedgerEntry.id)
    )
    return list(result.scalars().all())


async def summarize(
    db: AsyncSession, lease: Lease, today: date | None = None
) -> LedgerSummary:
    """Compute charges, credits, balance, overdue and outstanding deposit."""
    today = today or utc_today()
    overdue_cutoff = today - timedelta(days=settings.rent_grace_days)

    is_charge = LedgerEntry.entry_type.in_(CHARGE_TYPES)
    result = await db.execute(
        select(
            _sum_where(is_charge),
            _sum_where(LedgerEntry.entry_type.in_(CREDIT_TYPES)),
            _sum_where(LedgerEntry.entry_type == LedgerEntryType.DEPOSIT_CHARGE),
            _sum_where(is_charge & (LedgerEntry.due_date < overdue_cutoff)),
        ).where(LedgerEntry.lease_id == lease.id)
    )
    charges, credits, deposit_charges, overdue_charges = (
        _money(value) for value in result.one()
    )

    signed_balance = charges - credits
    return LedgerSummary(
        lease_id=lease.id,
        total_charges=charges,
        total_credits=credits,
        signed_balance=signed_balance,
        balance=max(signed_balance, ZERO),
        overdue=max(overdue_charges - credits, ZERO),
        deposit_outstanding=max(deposit_charges - credits, ZERO),
        as_of=today,
    )


async def current_balance(db: AsyncSession, lease: Lease) -> Decimal:
    """Charges minus credits, clamped at zero."""
    return (await summarize(db, lease)).balance


async def deposit_outstanding(db: AsyncSession, lease: Lease) -> Decimal:
    return (await summarize(db, lease)).deposit_outstanding


async def record_deposit_charge(
    db: AsyncSession, lease: Lease, created_by_user_id: int | None = None
) -> LedgerEntry | None:
    """Charge the security deposit, due on the lease start date."""
    if lease.deposit <= 0:
        return None

    existing = await get_entry(
        db, lease.id, LedgerEntryType.DEPOSIT_CHARGE, DEPOSIT_PERIOD
    )
    if existing is not None:
        return existing

    entry = LedgerEntry(
        lease_id=lease.id,
        property_id=lease.property_id,
        entry_type=LedgerEntryType.DEPOSIT_CHARGE,
        amount=to_money(lease.deposit),
        period=DEPOSIT_PERIOD,
        due_date=lease.start_date,
        description="Security deposit",
        created_by_user_id=created_by_user_id,
    )
    db.add(entry)
    await db.flush()
    return entry


def period_bounds(period: str) -> tuple[date, date]:
    if not PERIOD_PATTERN.match(period):
        raise ValidationError("Expected YYYY-MM", field="period", value=period)
    first = period_start(period)
    return first, first + relativedelta(months=1) - timedelta(days=1)


async def accrue_monthly_charge(
    db: AsyncSession,
    lease: Lease,
    period: str,
    created_by_user_id: int | None = None,
) -> tuple[LedgerEntry, bool]:
    """Charge one month of rent, at most once per (lease, period).

    Returns the charge and whether it was created by this call. A concurrent
    writer that wins the unique key is reported as already accrued.
    """
    first, last = period_bounds(period)
    if lease.status != LeaseStatus.ACTIVE:
        raise InvalidLedgerStateError(
            f"Cannot accrue rent on a {lease.status.value} lease",
            {"lease_id": lease.id, "status": lease.status.value},
        )
    if first > lease.end_date or last < lease.start_date:
        raise InvalidLedgerStateError(
            f"Period {period} is outside the lease term",
            {"lease_id": lease.id, "period": period},
        )

    lease_id = lease.id
    existing = await get_entry(db, lease_id, LedgerEntryType.RENT_CHARGE, period)
    if existing is not None:
        logger.info(
            "Rent already accrued", extra={"lease_id": lease_id, "period": period}
        )
        return existing, False

    due_date = max(first.replace(day=settings.rent_due_day), lease.start_date)
    entry = LedgerEntry(
        lease_id=lease_id,
        property_id=lease.property_id,
        entry_type=LedgerEntryType.RENT_CHARGE,
        amount=to_money(lease.rent),
        period=period,
        due_date=due_date,
        description=f"Rent for {period}",
        created_by_user_id=created_by_user_id,
    )
    try:
        async with db.begin_nested():
            db.add(entry)
    except IntegrityError:
        existing = await get_entry(db, lease_id, LedgerEntryType.RENT_CHARGE, period)
        if existing is None:
            raise
        logger.info(
            "Rent accrued concurrently", extra={"lease_id": lease_id, "period": period}
        )
        return existing, False

    logger.info(
        "Rent accrued",
        extra={"lease_id": lease_id, "period": period, "amount": str(entry.amount)},
    )
    return entry, True


async def ensure_accepts_payment(db: AsyncSession, lease: Lease) -> None:
    """Payments are taken on active leases and on pending leases with a deposit due."""
    if lease.status == LeaseStatus.PENDING:
        if (await deposit_outstanding(db, lease)) <= 0:
            raise InvalidLedgerStateError(
                "Pending lease has no deposit due",
                {"lease_id": lease.id},
            )
    elif lease.status != LeaseStatus.ACTIVE:
        raise InvalidLedgerStateError(
            f"Cannot post a payment to a {lease.status.value} lease",
            {"lease_id": lease.id, "status": lease.status.value},
        )


async def post_payment(db: AsyncSession, lease: Lease, payment: Payment) -> LedgerEntry:
    """Credit a confirmed payment to the lease, once per payment."""
    if payment.status != PaymentStatus.CONFIRMED:
        raise InvalidLedgerStateError(
            "Only confirmed payments can be posted",
            {"payment_id": payment.id, "status": payment.status.value},
        )
    if payment.lease_id != lease.id:
        raise InvalidLedgerStateError(
            "Payment belongs to a different lease",
            {"payment_id": payment.id, "lease_id": lease.id},
        )

    existing = await get_payment_entry(db, payment.id)
    if existing is not None:
        return existing

    await ensure_accepts_payment(db, lease)

    entry = LedgerEntry(
        lease_id=lease.id,
        property_id=lease.property_id,
        entry_type=LedgerEntryType.PAYMENT,
        amount=to_money(payment.amount),
        payment_id=payment.id,
        description=f"Payment {payment.gateway_reference}",
    )
    db.add(entry)
    await db.flush()
    logger.info(
        "Payment posted to ledger",
        extra={
            "lease_id": lease.id,
            "payment_id": payment.id,
            "amount": str(entry.amount),
        },
    )
    return entry


async def post_adjustment(
    db: AsyncSession,
    lease: Lease,
    amount: Decimal,
    description: str,
    created_by_user_id: int | None = None,
) -> LedgerEntry:
    """Credit the lease outside of a payment, e.g. a write-off."""
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Adjustment must be positive", field="amount", value=amount)

    entry = LedgerEntry(
        lease_id=lease.id,
        property_id=lease.property_id,
        entry_type=LedgerEntryType.ADJUSTMENT,
        amount=amount,
        description=description,
        created_by_user_id=created_by_user_id,
    )
    db.add(entry)
    await db.flush()
    logger.info(
        "Ledger adjustment posted",
        extra={"lease_id": lease.id, "amount": str(amount)},
    )
    return entry
