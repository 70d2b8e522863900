"""Operator routes for notification delivery."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ..access_control import Capability, CurrentScope, require_capability
from ..commons import BaseResponse
from . import services
from .schemas import NotificationJobResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/failed", response_model=BaseResponse[list[NotificationJobResponse]])
async def list_failed_notifications(
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """List notifications that exhausted their delivery attempts."""
    require_capability(
        scope, Capability.OPERATE_NOTIFICATIONS, action="list", resource="notifications"
    )
    jobs = await services.list_failed_jobs(
        db, skip=(page - 1) * page_size, limit=page_size
    )
    return BaseResponse(
        success=True,
        data=[NotificationJobResponse.model_validate(job) for job in jobs],
    )


@router.post("/{job_id}/retry", response_model=BaseResponse[NotificationJobResponse])
async def retry_notification(
    job_id: int,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Requeue a failed notification."""
    require_capability(
        scope, Capability.OPERATE_NOTIFICATIONS, action="retry", resource="notification"
    )
    job = await services.retry_job(db, job_id)
    return BaseResponse(
        success=True,
        message="Notification requeued",
        data=NotificationJobResponse.model_validate(job),
    )
