"""Payment schemas."""

import enum
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from .models import PaymentStatus


class PaymentInitiate(BaseModel):
    lease_id: int
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class PaymentResponse(BaseModel):
    id: int
    lease_id: int
    tenant_id: int
    property_id: int
    amount: Decimal
    currency: str
    gateway_reference: str
    status: PaymentStatus
    failure_reason: str | None = None
    confirmed_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentInitiateResponse(BaseModel):
    payment: PaymentResponse
    client_secret: str | None = None


class ConfirmationOutcome(str, enum.Enum):
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    FAILED = "failed"
    PROCESSING = "processing"


class ConfirmationResult(BaseModel):
    """Result of reconciling a gateway status into a payment.

    ``applied`` is true only for the call that moved money into the ledger.
    """

    payment: PaymentResponse
    outcome: ConfirmationOutcome
    lease_activated: bool = False

    @property
    def applied(self) -> bool:
        return self.outcome == ConfirmationOutcome.CONFIRMED


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str
    outcome: str | None = None
