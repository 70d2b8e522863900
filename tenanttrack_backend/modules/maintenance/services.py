"""Maintenance request state machine.

Transitions run under the per-request lock and a row lock, and the version
counter rejects any write that raced past both.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ...core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from ...core.locks import hold
from ...core.logging import get_logger
from ...core.utils import utc_now
from ...database import commit_or_conflict
from ..access_control import (
    AccessScope,
    Capability,
    deny,
    ensure_in_scope,
    ensure_manages,
    require_capability,
    scope_filter,
)
from ..auth.models import User
from ..notifications.models import NotificationKind
from ..notifications.services import enqueue_notification
from ..property_management.models import Property, Staff, Unit
from ..tenant_management.models import Tenant
from . import crud
from .models import (
    MAINTENANCE_TRANSITIONS,
    MaintenancePriority,
    MaintenanceRequest,
    MaintenanceStatus,
)
from .schemas import MaintenanceRequestCreate

logger = get_logger("maintenance.services")


def ensure_transition(request: MaintenanceRequest, target: MaintenanceStatus):
    if target not in MAINTENANCE_TRANSITIONS[request.status]:
        raise InvalidTransitionError("MaintenanceRequest", request.status, target)


async def _get_request_or_404(db: AsyncSession, request_id: int) -> MaintenanceRequest:
    request = await crud.get_request_by_id(db, request_id)
    if request is None:
        raise NotFoundError("MaintenanceRequest", request_id)
    return request


def _ensure_can_work(scope: AccessScope, request: MaintenanceRequest, action: str):
    """The assigned staff member, or a manager of the property."""
    if scope.manages(request.property_id) and scope.can(Capability.MANAGE_MAINTENANCE):
        return
    if (
        scope.can(Capability.WORK_MAINTENANCE)
        and request.staff_id is not None
        and request.staff_id in scope.staff_ids
    ):
        return
    deny(scope, action, "maintenance request", request.property_id)


def _ensure_can_cancel(scope: AccessScope, request: MaintenanceRequest):
    if scope.manages(request.property_id) and scope.can(Capability.MANAGE_MAINTENANCE):
        return
    if scope.can(Capability.CANCEL_OWN_MAINTENANCE) and request.tenant_id in scope.tenant_ids:
        return
    deny(scope, "cancel", "maintenance request", request.property_id)


async def _notify_tenant(
    db: AsyncSession, request: MaintenanceRequest, note: str | None = None
) -> None:
    tenant = await db.get(Tenant, request.tenant_id)
    unit = await db.get(Unit, request.unit_id)
    enqueue_notification(
        db,
        NotificationKind.MAINTENANCE_STATUS_CHANGED,
        tenant.email,
        tenant.full_name,
        {
            "request_id": request.id,
            "status": request.status,
            "unit_number": unit.unit_number,
            "description": request.description,
            "note": note,
        },
    )


async def _transition(
    db: AsyncSession,
    request: MaintenanceRequest,
    target: MaintenanceStatus,
    note: str | None = None,
) -> MaintenanceRequest:
    """Apply ``target`` to a locked request, notify, and commit."""
    ensure_transition(request, target)
    previous = request.status
    request.status = target
    if target == MaintenanceStatus.COMPLETED:
        request.completed_at = utc_now()
    await _notify_tenant(db, request, note)
    await commit_or_conflict(db, "MaintenanceRequest", request.id)
    logger.info(
        "Maintenance request transitioned",
        extra={
            "request_id": request.id,
            "from": previous.value,
            "to": target.value,
        },
    )
    return request


async def submit_request(
    db: AsyncSession, scope: AccessScope, data: MaintenanceRequestCreate
) -> MaintenanceRequest:
    """File a request for a tenant's unit; it starts OPEN."""
    require_capability(
        scope,
        Capability.SUBMIT_MAINTENANCE,
        action="submit",
        resource="maintenance request",
    )
    tenant_id = data.tenant_id
    if tenant_id is None:
        if len(scope.tenant_ids) != 1:
            raise ValidationError(
                "tenant_id is required", field="tenant_id", value=None
            )
        (tenant_id,) = scope.tenant_ids

    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant", tenant_id)
    ensure_in_scope(
        scope,
        tenant.property_id,
        tenant_id=tenant.id,
        action="submit",
        resource="maintenance request",
    )

    request = await crud.create_request(
        db,
        property_id=tenant.property_id,
        unit_id=tenant.unit_id,
        tenant_id=tenant.id,
        description=data.description,
        priority=data.priority,
    )

    property_obj = await db.get(Property, tenant.property_id)
    landlord = await db.get(User, property_obj.owner_user_id)
    if landlord is not None:
        unit = await db.get(Unit, tenant.unit_id)
        enqueue_notification(
            db,
            NotificationKind.MAINTENANCE_STATUS_CHANGED,
            landlord.email,
            landlord.full_name,
            {
                "request_id": request.id,
                "status": request.status,
                "unit_number": unit.unit_number,
                "description": request.description,
                "note": f"Submitted by {tenant.full_name}",
            },
        )
    await db.commit()

    logger.info(
        "Maintenance request submitted",
        extra={"request_id": request.id, "tenant_id": tenant.id},
    )
    return request


async def get_request(
    db: AsyncSession, scope: AccessScope, request_id: int
) -> MaintenanceRequest:
    request = await _get_request_or_404(db, request_id)
    ensure_in_scope(
        scope,
        request.property_id,
        tenant_id=request.tenant_id,
        staff_visible=True,
        action="view",
        resource="maintenance request",
    )
    return request


async def list_requests(
    db: AsyncSession,
    scope: AccessScope,
    skip: int = 0,
    limit: int = 20,
    status: MaintenanceStatus | None = None,
    priority: MaintenancePriority | None = None,
    unit_id: int | None = None,
    staff_id: int | None = None,
) -> tuple[list[MaintenanceRequest], int]:
    return await crud.get_requests(
        db,
        criterion=scope_filter(
            scope,
            MaintenanceRequest.property_id,
            MaintenanceRequest.tenant_id,
            staff_visible=True,
        ),
        skip=skip,
        limit=limit,
        status=status,
        priority=priority,
        unit_id=unit_id,
        staff_id=staff_id,
    )


async def assign_request(
    db: AsyncSession,
    scope: AccessScope,
    request_id: int,
    staff_id: int,
    scheduled_for: datetime | None = None,
) -> MaintenanceRequest:
    """OPEN -> ASSIGNED to a staff member of the same property."""
    request = await _get_request_or_404(db, request_id)
    ensure_manages(
        scope,
        request.property_id,
        Capability.MANAGE_MAINTENANCE,
        action="assign",
        resource="maintenance request",
    )
    staff = await db.get(Staff, staff_id)
    if staff is None:
        raise NotFoundError("Staff", staff_id)
    if staff.property_id != request.property_id:
        raise ValidationError(
            "Staff member does not work at this property",
            field="staff_id",
            value=staff_id,
        )

    async with hold("maintenance", request.id):
        await db.refresh(request, with_for_update=True)
        ensure_transition(request, MaintenanceStatus.ASSIGNED)
        request.staff_id = staff.id
        request.scheduled_for = scheduled_for
        note = f"Assigned to {staff.full_name}"
        if scheduled_for is not None:
            note = f"{note}, scheduled for {scheduled_for.isoformat()}"
        return await _transition(db, request, MaintenanceStatus.ASSIGNED, note)


async def start_request(
    db: AsyncSession, scope: AccessScope, request_id: int
) -> MaintenanceRequest:
    """ASSIGNED -> IN_PROGRESS."""
    request = await _get_request_or_404(db, request_id)
    _ensure_can_work(scope, request, "start")
    async with hold("maintenance", request.id):
        await db.refresh(request, with_for_update=True)
        return await _transition(db, request, MaintenanceStatus.IN_PROGRESS)


async def complete_request(
    db: AsyncSession, scope: AccessScope, request_id: int
) -> MaintenanceRequest:
    """IN_PROGRESS -> COMPLETED."""
    request = await _get_request_or_404(db, request_id)
    _ensure_can_work(scope, request, "complete")
    async with hold("maintenance", request.id):
        await db.refresh(request, with_for_update=True)
        return await _transition(db, request, MaintenanceStatus.COMPLETED)


async def cancel_request(
    db: AsyncSession, scope: AccessScope, request_id: int, reason: str | None = None
) -> MaintenanceRequest:
    """OPEN or ASSIGNED -> CANCELLED; started work cannot be cancelled."""
    request = await _get_request_or_404(db, request_id)
    _ensure_can_cancel(scope, request)
    async with hold("maintenance", request.id):
        await db.refresh(request, with_for_update=True)
        ensure_transition(request, MaintenanceStatus.CANCELLED)
        request.cancellation_reason = reason
        return await _transition(db, request, MaintenanceStatus.CANCELLED, reason)
