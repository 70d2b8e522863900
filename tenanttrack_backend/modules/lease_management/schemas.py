"""Lease and ledger schemas."""

import re
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from .models import LeaseStatus, LedgerEntryType

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# ----- Lease Schemas -----


class LeaseApplicationCreate(BaseModel):
    """Schema for submitting a rental application."""

    tenant_id: int
    start_date: date
    end_date: date
    rent: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    deposit: Decimal = Field(
        default=Decimal("0.00"), ge=0, max_digits=12, decimal_places=2
    )


class LeaseDenyRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class LeaseTerminateRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class LeaseRenewRequest(BaseModel):
    new_end_date: date


class LeaseResponse(BaseModel):
    id: int
    tenant_id: int
    unit_id: int
    property_id: int
    start_date: date
    end_date: date
    rent: Decimal
    deposit: Decimal
    status: LeaseStatus
    termination_reason: str | None = None
    activated_at: datetime | None = None
    terminated_at: datetime | None = None
    renewal_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ----- Ledger Schemas -----


class LedgerEntryResponse(BaseModel):
    id: int
    lease_id: int
    entry_type: LedgerEntryType
    amount: Decimal
    period: str | None = None
    due_date: date | None = None
    payment_id: int | None = None
    description: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerSummary(BaseModel):
    """Balance view of a lease.

    ``balance`` is clamped at zero for display; ``signed_balance`` keeps the
    raw value (negative when the tenant is in credit).
    """

    lease_id: int
    total_charges: Decimal
    total_credits: Decimal
    signed_balance: Decimal
    balance: Decimal
    overdue: Decimal
    deposit_outstanding: Decimal
    as_of: date


class AccrualRequest(BaseModel):
    period: str | None = Field(None, description="Billing month as YYYY-MM")

    @field_validator("period")
    @classmethod
    def validate_period(cls, value: str | None) -> str | None:
        if value is not None and not PERIOD_PATTERN.match(value):
            raise ValueError("period must be formatted as YYYY-MM")
        return value


class AccrualResponse(BaseModel):
    lease_id: int
    period: str
    amount: Decimal
    created: bool
    entry_id: int


class AdjustmentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=255)


class BatchAccrualReport(BaseModel):
    period: str
    created: int = 0
    skipped: int = 0
    failed: int = 0
