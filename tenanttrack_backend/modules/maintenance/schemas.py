"""Maintenance request schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from .models import MaintenancePriority, MaintenanceStatus


class MaintenanceRequestCreate(BaseModel):
    """Submit a request; ``tenant_id`` is required when filed on a tenant's behalf."""

    description: str = Field(..., min_length=1, max_length=5000)
    priority: MaintenancePriority = MaintenancePriority.MEDIUM
    tenant_id: int | None = None


class MaintenanceAssign(BaseModel):
    staff_id: int
    scheduled_for: datetime | None = None


class MaintenanceCancel(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class MaintenanceRequestResponse(BaseModel):
    id: int
    property_id: int
    unit_id: int
    tenant_id: int
    staff_id: int | None = None
    description: str
    priority: MaintenancePriority
    status: MaintenanceStatus
    requested_at: datetime
    scheduled_for: datetime | None = None
    completed_at: datetime | None = None
    cancellation_reason: str | None = None
    updated_at: datetime

    class Config:
        from_attributes = True
