"""CRUD operations for leases."""

from datetime import date
from decimal import Decimal

from sqlalchemy import ColumnElement, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from .models import OPEN_LEASE_STATUSES, Lease, LeaseStatus


async def get_lease_by_id(db: AsyncSession, lease_id: int) -> Lease | None:
    result = await db.execute(select(Lease).where(Lease.id == lease_id))
    return result.scalar_one_or_none()


async def get_open_lease_for_tenant(db: AsyncSession, tenant_id: int) -> Lease | None:
    """Get the tenant's pending or active lease, if any."""
    result = await db.execute(
        select(Lease)
        .where(Lease.tenant_id == tenant_id, Lease.status.in_(OPEN_LEASE_STATUSES))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def other_active_lease_exists(
    db: AsyncSession, unit_id: int, exclude_lease_id: int
) -> bool:
    result = await db.execute(
        select(func.count(Lease.id)).where(
            Lease.unit_id == unit_id,
            Lease.status == LeaseStatus.ACTIVE,
            Lease.id != exclude_lease_id,
        )
    )
    return (result.scalar() or 0) > 0


async def get_leases(
    db: AsyncSession,
    criterion: ColumnElement[bool] | None = None,
    skip: int = 0,
    limit: int = 20,
    status: LeaseStatus | None = None,
    tenant_id: int | None = None,
) -> tuple[list[Lease], int]:
    """Get leases matching a scope criterion with pagination."""
    filters = [criterion if criterion is not None else true()]
    if status:
        filters.append(Lease.status == status)
    if tenant_id:
        filters.append(Lease.tenant_id == tenant_id)

    count_result = await db.execute(select(func.count(Lease.id)).where(*filters))
    total = count_result.scalar() or 0

    result = await db.execute(
        select(Lease)
        .where(*filters)
        .order_by(Lease.created_at.desc(), Lease.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def create_lease(
    db: AsyncSession,
    tenant_id: int,
    unit_id: int,
    property_id: int,
    start_date: date,
    end_date: date,
    rent: Decimal,
    deposit: Decimal,
) -> Lease:
    lease = Lease(
        tenant_id=tenant_id,
        unit_id=unit_id,
        property_id=property_id,
        start_date=start_date,
        end_date=end_date,
        rent=rent,
        deposit=deposit,
        status=LeaseStatus.PENDING,
        renewal_count=0,
    )
    db.add(lease)
    await db.flush()
    return lease


# ----- Sweep queries -----


async def get_lease_ids_due_for_activation(db: AsyncSession, today: date) -> list[int]:
    result = await db.execute(
        select(Lease.id)
        .where(Lease.status == LeaseStatus.PENDING, Lease.start_date <= today)
        .order_by(Lease.id)
    )
    return list(result.scalars().all())


async def get_lease_ids_past_end(db: AsyncSession, today: date) -> list[int]:
    result = await db.execute(
        select(Lease.id)
        .where(Lease.status == LeaseStatus.ACTIVE, Lease.end_date < today)
        .order_by(Lease.id)
    )
    return list(result.scalars().all())


async def get_active_lease_ids_for_period(
    db: AsyncSession, first_day: date, last_day: date
) -> list[int]:
    result = await db.execute(
        select(Lease.id)
        .where(
            Lease.status == LeaseStatus.ACTIVE,
            Lease.start_date <= last_day,
            Lease.end_date >= first_day,
        )
        .order_by(Lease.id)
    )
    return list(result.scalars().all())
