"""Maintenance request API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ..access_control import CurrentScope
from ..commons import BaseResponse, PaginatedResponse
from . import services
from .models import MaintenancePriority, MaintenanceStatus
from .schemas import (
    MaintenanceAssign,
    MaintenanceCancel,
    MaintenanceRequestCreate,
    MaintenanceRequestResponse,
)

router = APIRouter(prefix="/maintenance-requests", tags=["Maintenance"])


@router.get(
    "", response_model=BaseResponse[PaginatedResponse[MaintenanceRequestResponse]]
)
async def list_requests(
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: MaintenanceStatus | None = Query(None),
    priority: MaintenancePriority | None = Query(None),
    unit_id: int | None = Query(None),
    staff_id: int | None = Query(None),
):
    """Get maintenance requests visible to the caller."""
    requests, total = await services.list_requests(
        db,
        scope,
        skip=(page - 1) * page_size,
        limit=page_size,
        status=status,
        priority=priority,
        unit_id=unit_id,
        staff_id=staff_id,
    )
    return BaseResponse(
        success=True,
        data=PaginatedResponse.from_items(
            items=[MaintenanceRequestResponse.model_validate(r) for r in requests],
            total=total,
            page=page,
            page_size=page_size,
        ),
    )


@router.get("/{request_id}", response_model=BaseResponse[MaintenanceRequestResponse])
async def get_request(
    request_id: int,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    request = await services.get_request(db, scope, request_id)
    return BaseResponse(
        success=True, data=MaintenanceRequestResponse.model_validate(request)
    )


@router.post(
    "", response_model=BaseResponse[MaintenanceRequestResponse], status_code=201
)
async def submit_request(
    data: MaintenanceRequestCreate,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    request = await services.submit_request(db, scope, data)
    return BaseResponse(
        success=True,
        message="Maintenance request submitted",
        data=MaintenanceRequestResponse.model_validate(request),
    )


@router.post(
    "/{request_id}/assign", response_model=BaseResponse[MaintenanceRequestResponse]
)
async def assign_request(
    request_id: int,
    data: MaintenanceAssign,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    request = await services.assign_request(
        db, scope, request_id, data.staff_id, data.scheduled_for
    )
    return BaseResponse(
        success=True,
        message="Maintenance request assigned",
        data=MaintenanceRequestResponse.model_validate(request),
    )


@router.post(
    "/{request_id}/start", response_model=BaseResponse[MaintenanceRequestResponse]
)
async def start_request(
    request_id: int,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    request = await services.start_request(db, scope, request_id)
    return BaseResponse(
        success=True,
        message="Work started",
        data=MaintenanceRequestResponse.model_validate(request),
    )


@router.post(
    "/{request_id}/complete", response_model=BaseResponse[MaintenanceRequestResponse]
)
async def complete_request(
    request_id: int,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    request = await services.complete_request(db, scope, request_id)
    return BaseResponse(
        success=True,
        message="Maintenance request completed",
        data=MaintenanceRequestResponse.model_validate(request),
    )


@router.post(
    "/{request_id}/cancel", response_model=BaseResponse[MaintenanceRequestResponse]
)
async def cancel_request(
    request_id: int,
    data: MaintenanceCancel,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    request = await services.cancel_request(db, scope, request_id, data.reason)
    return BaseResponse(
        success=True,
        message="Maintenance request cancelled",
        data=MaintenanceRequestResponse.model_validate(request),
    )
