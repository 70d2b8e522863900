"""Lease and ledger API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ..access_control import CurrentScope
from ..commons import BaseResponse, PaginatedResponse
from . import services
from .models import LeaseStatus
from .schemas import (
    AccrualRequest,
    AccrualResponse,
    AdjustmentCreate,
    LeaseApplicationCreate,
    LeaseDenyRequest,
    LeaseRenewRequest,
    LeaseResponse,
    LeaseTerminateRequest,
    LedgerEntryResponse,
    LedgerSummary,
)

router = APIRouter(prefix="/leases", tags=["Leases"])


# ----- Leases -----


@router.get("", response_model=BaseResponse[PaginatedResponse[LeaseResponse]])
async def list_leases(
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: LeaseStatus | None = Query(None),
    tenant_id: int | None = Query(None),
):
    """Get leases visible to the caller."""
    leases, total = await services.list_leases(
        db,
        scope,
        skip=(page - 1) * page_size,
        limit=page_size,
        status=status,
        tenant_id=tenant_id,
    )
    return BaseResponse(
        success=True,
        data=PaginatedResponse.from_items(
            items=[LeaseResponse.model_validate(lease) for lease in leases],
            total=total,
            page=page,
            page_size=page_size,
        ),
    )


@router.get("/{lease_id}", response_model=BaseResponse[LeaseResponse])
async def get_lease(
    lease_id: int,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    lease = await services.get_lease(db, scope, lease_id)
    return BaseResponse(success=True, data=LeaseResponse.model_validate(lease))


@router.post("", response_model=BaseResponse[LeaseResponse], status_code=201)
async def submit_application(
    data: LeaseApplicationCreate,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Submit a rental application (creates a pending lease)."""
    lease = await services.submit_application(db, scope, data)
    return BaseResponse(
        success=True,
        message="Application submitted",
        data=LeaseResponse.model_validate(lease),
    )


@router.post("/{lease_id}/activate", response_model=BaseResponse[LeaseResponse])
async def activate_lease(
    lease_id: int,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Approve a pending lease once its deposit is paid."""
    lease = await services.activate_lease(db, scope, lease_id)
    return BaseResponse(
        success=True,
        message="Lease activated",
        data=LeaseResponse.model_validate(lease),
    )


@router.post("/{lease_id}/deny", response_model=BaseResponse[LeaseResponse])
async def deny_application(
    lease_id: int,
    data: LeaseDenyRequest,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    lease = await services.deny_application(db, scope, lease_id, data.reason)
    return BaseResponse(
        success=True,
        message="Application denied",
        data=LeaseResponse.model_validate(lease),
    )


@router.post("/{lease_id}/terminate", response_model=BaseResponse[LeaseResponse])
async def terminate_lease(
    lease_id: int,
    data: LeaseTerminateRequest,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    lease = await services.terminate_lease(db, scope, lease_id, data.reason)
    return BaseResponse(
        success=True,
        message="Lease terminated",
        data=LeaseResponse.model_validate(lease),
    )


@router.post("/{lease_id}/renew", response_model=BaseResponse[LeaseResponse])
async def renew_lease(
    lease_id: int,
    data: LeaseRenewRequest,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    lease = await services.renew_lease(db, scope, lease_id, data.new_end_date)
    return BaseResponse(
        success=True,
        message="Lease renewed",
        data=LeaseResponse.model_validate(lease),
    )


# ----- Ledger -----


@router.get("/{lease_id}/ledger", response_model=BaseResponse[LedgerSummary])
async def get_ledger_summary(
    lease_id: int,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get the balance, overdue amount and outstanding deposit of a lease."""
    summary = await services.get_ledger_summary(db, scope, lease_id)
    return BaseResponse(success=True, data=summary)


@router.get(
    "/{lease_id}/ledger/entries",
    response_model=BaseResponse[list[LedgerEntryResponse]],
)
async def list_ledger_entries(
    lease_id: int,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    entries = await services.list_ledger_entries(db, scope, lease_id)
    return BaseResponse(
        success=True,
        data=[LedgerEntryResponse.model_validate(entry) for entry in entries],
    )


@router.post(
    "/{lease_id}/ledger/accruals", response_model=BaseResponse[AccrualResponse]
)
async def accrue_rent(
    lease_id: int,
    data: AccrualRequest,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Charge a month of rent; repeating the call for a month is a no-op."""
    result = await services.accrue_monthly_charge(db, scope, lease_id, data.period)
    return BaseResponse(
        success=True,
        message="Rent accrued" if result.created else "Rent already accrued",
        data=result,
    )


@router.post(
    "/{lease_id}/ledger/adjustments",
    response_model=BaseResponse[LedgerEntryResponse],
    status_code=201,
)
async def post_adjustment(
    lease_id: int,
    data: AdjustmentCreate,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    entry = await services.post_ledger_adjustment(db, scope, lease_id, data)
    return BaseResponse(
        success=True,
        message="Adjustment posted",
        data=LedgerEntryResponse.model_validate(entry),
    )
