"""CRUD operations for maintenance requests."""

from sqlalchemy import ColumnElement, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from .models import MaintenancePriority, MaintenanceRequest, MaintenanceStatus


async def get_request_by_id(
    db: AsyncSession, request_id: int
) -> MaintenanceRequest | None:
    result = await db.execute(
        select(MaintenanceRequest).where(MaintenanceRequest.id == request_id)
    )
    return result.scalar_one_or_none()


async def get_requests(
    db: AsyncSession,
    criterion: ColumnElement[bool] | None = None,
    skip: int = 0,
    limit: int = 20,
    status: MaintenanceStatus | None = None,
    priority: MaintenancePriority | None = None,
    unit_id: int | None = None,
    staff_id: int | None = None,
) -> tuple[list[MaintenanceRequest], int]:
    """Get maintenance requests matching a scope criterion with pagination."""
    filters = [criterion if criterion is not None else true()]
    if status:
        filters.append(MaintenanceRequest.status == status)
    if priority:
        filters.append(MaintenanceRequest.priority == priority)
    if unit_id:
        filters.append(MaintenanceRequest.unit_id == unit_id)
    if staff_id:
        filters.append(MaintenanceRequest.staff_id == staff_id)

    count_result = await db.execute(
        select(func.count(MaintenanceRequest.id)).where(*filters)
    )
    total = count_result.scalar() or 0

    result = await db.execute(
        select(MaintenanceRequest)
        .where(*filters)
        .order_by(MaintenanceRequest.requested_at.desc(), MaintenanceRequest.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def create_request(
    db: AsyncSession,
    property_id: int,
    unit_id: int,
    tenant_id: int,
    description: str,
    priority: MaintenancePriority,
) -> MaintenanceRequest:
    request = MaintenanceRequest(
        property_id=property_id,
        unit_id=unit_id,
        tenant_id=tenant_id,
        description=description,
        priority=priority,
        status=MaintenanceStatus.OPEN,
    )
    db.add(request)
    await db.flush()
    return request
