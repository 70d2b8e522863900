"""Payment API routes, including the gateway webhook."""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...database import get_db
from ..access_control import CurrentScope
from ..commons import BaseResponse, PaginatedResponse
from . import services
from .dependencies import get_payment_gateway
from .gateway import PaymentGateway, construct_stripe_event
from .models import PaymentStatus
from .schemas import (
    ConfirmationResult,
    PaymentInitiate,
    PaymentInitiateResponse,
    PaymentResponse,
    WebhookAck,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post(
    "", response_model=BaseResponse[PaymentInitiateResponse], status_code=201
)
async def initiate_payment(
    data: PaymentInitiate,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
):
    """Start a rent or deposit payment; returns the gateway client secret."""
    payment, handle = await services.initiate_payment(db, scope, gateway, data)
    return BaseResponse(
        success=True,
        message="Payment initiated",
        data=PaymentInitiateResponse(
            payment=PaymentResponse.model_validate(payment),
            client_secret=handle.client_secret,
        ),
    )


@router.post(
    "/{gateway_reference}/confirm", response_model=BaseResponse[ConfirmationResult]
)
async def confirm_payment(
    gateway_reference: str,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
):
    """Confirm a payment after the client completes it with the gateway."""
    result = await services.confirm_from_client(db, scope, gateway, gateway_reference)
    return BaseResponse(success=True, message=f"Payment {result.outcome.value}", data=result)


@router.get("", response_model=BaseResponse[PaginatedResponse[PaymentResponse]])
async def list_payments(
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: PaymentStatus | None = Query(None),
    lease_id: int | None = Query(None),
):
    payments, total = await services.list_payments(
        db,
        scope,
        skip=(page - 1) * page_size,
        limit=page_size,
        status=status,
        lease_id=lease_id,
    )
    return BaseResponse(
        success=True,
        data=PaginatedResponse.from_items(
            items=[PaymentResponse.model_validate(payment) for payment in payments],
            total=total,
            page=page,
            page_size=page_size,
        ),
    )


@router.get("/{gateway_reference}", response_model=BaseResponse[PaymentResponse])
async def get_payment(
    gateway_reference: str,
    scope: CurrentScope,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    payment = await services.get_payment(db, scope, gateway_reference)
    return BaseResponse(success=True, data=PaymentResponse.model_validate(payment))


@router.post("/webhooks/stripe", response_model=BaseResponse[WebhookAck])
async def stripe_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
):
    """Receive signed Stripe events; unauthenticated but signature-checked."""
    payload = await request.body()
    event = construct_stripe_event(
        payload,
        stripe_signature,
        settings.stripe_webhook_secret,
        settings.stripe_webhook_tolerance_seconds,
    )
    outcome = await services.handle_stripe_event(db, event)
    return BaseResponse(
        success=True,
        data=WebhookAck(event_type=event.get("type", ""), outcome=outcome),
    )
