"""CRUD operations for payments."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ColumnElement, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.utils import to_money
from .models import Payment, PaymentStatus


async def get_payment_by_reference(
    db: AsyncSession, gateway_reference: str
) -> Payment | None:
    result = await db.execute(
        select(Payment).where(Payment.gateway_reference == gateway_reference)
    )
    return result.scalar_one_or_none()


async def get_payments(
    db: AsyncSession,
    criterion: ColumnElement[bool] | None = None,
    skip: int = 0,
    limit: int = 20,
    status: PaymentStatus | None = None,
    lease_id: int | None = None,
) -> tuple[list[Payment], int]:
    """Get payments matching a scope criterion with pagination."""
    filters = [criterion if criterion is not None else true()]
    if status:
        filters.append(Payment.status == status)
    if lease_id:
        filters.append(Payment.lease_id == lease_id)

    count_result = await db.execute(select(func.count(Payment.id)).where(*filters))
    total = count_result.scalar() or 0

    result = await db.execute(
        select(Payment)
        .where(*filters)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_stale_pending_payments(
    db: AsyncSession, cutoff: datetime
) -> list[tuple[int, int]]:
    """Get (payment id, lease id) pairs still pending since before ``cutoff``."""
    result = await db.execute(
        select(Payment.id, Payment.lease_id)
        .where(Payment.status == PaymentStatus.PENDING, Payment.created_at < cutoff)
        .order_by(Payment.id)
    )
    return [(row[0], row[1]) for row in result.all()]


async def create_payment(
    db: AsyncSession,
    lease_id: int,
    tenant_id: int,
    property_id: int,
    amount: Decimal,
    currency: str,
    gateway_reference: str,
    initiated_by_user_id: int | None = None,
) -> Payment:
    payment = Payment(
        lease_id=lease_id,
        tenant_id=tenant_id,
        property_id=property_id,
        amount=amount,
        currency=currency,
        gateway_reference=gateway_reference,
        status=PaymentStatus.PENDING,
        initiated_by_user_id=initiated_by_user_id,
    )
    db.add(payment)
    await db.flush()
    return payment


async def get_pending_total(db: AsyncSession, lease_id: int) -> Decimal:
    """Sum of the lease's payments still awaiting a gateway outcome."""
    result = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.lease_id == lease_id, Payment.status == PaymentStatus.PENDING
        )
    )
    return to_money(str(result.scalar() or 0))
