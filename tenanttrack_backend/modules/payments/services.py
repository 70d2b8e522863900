"""Payment confirmation protocol.

A payment is created PENDING when the gateway hands out a reference, and is
reconciled into the ledger exactly once, however many times and through
whichever channel (client callback, webhook) its outcome is reported.
Confirmation for a payment serializes on its lease: in-process lock, then a
row lock, then the optimistic version check at commit.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ...config import settings
from ...core.exceptions import (
    AlreadyFailedError,
    ConcurrentUpdateError,
    InvalidLedgerStateError,
    NotFoundError,
    UnknownPaymentError,
    ValidationError,
)
from ...core.locks import hold
from ...core.logging import get_logger
from ...core.utils import to_money, utc_now
from ...database import commit_or_conflict
from ..access_control import (
    SYSTEM_SCOPE,
    AccessScope,
    Capability,
    ensure_in_scope,
    require_capability,
    scope_filter,
)
from ..lease_management import ledger
from ..lease_management.models import Lease, LeaseStatus
from ..lease_management.services import try_activate_lease
from ..notifications.models import NotificationKind
from ..notifications.services import enqueue_notification
from ..tenant_management.models import Tenant
from . import crud
from .gateway import GatewayHandle, GatewayStatus, PaymentGateway
from .models import Payment, PaymentStatus
from .schemas import (
    ConfirmationOutcome,
    ConfirmationResult,
    PaymentInitiate,
    PaymentResponse,
)

logger = get_logger("payments.services")


def _result(
    payment: Payment, outcome: ConfirmationOutcome, lease_activated: bool = False
) -> ConfirmationResult:
    return ConfirmationResult(
        payment=PaymentResponse.model_validate(payment),
        outcome=outcome,
        lease_activated=lease_activated,
    )


async def initiate_payment(
    db: AsyncSession,
    scope: AccessScope,
    gateway: PaymentGateway,
    data: PaymentInitiate,
) -> tuple[Payment, GatewayHandle]:
    """Open a gateway payment for a lease and record it as PENDING.

    Nothing is written when the gateway is unreachable, so the whole call is
    safe to retry.
    """
    lease = await db.get(Lease, data.lease_id)
    if lease is None:
        raise NotFoundError("Lease", data.lease_id)
    require_capability(scope, Capability.PAY_RENT, action="pay", resource="rent")
    ensure_in_scope(
        scope, lease.property_id, tenant_id=lease.tenant_id, action="pay", resource="lease"
    )

    amount = to_money(data.amount)
    if amount > settings.payment_max_amount:
        raise ValidationError(
            f"Amount exceeds the maximum of {settings.payment_max_amount}",
            field="amount",
            value=amount,
        )
    await ledger.ensure_accepts_payment(db, lease)
    if lease.status == LeaseStatus.PENDING:
        deposit_due = await ledger.deposit_outstanding(db, lease)
        in_flight = await crud.get_pending_total(db, lease.id)
        if in_flight >= deposit_due:
            raise InvalidLedgerStateError(
                "Pending payments already cover the deposit due",
                {"lease_id": lease.id, "pending": str(in_flight)},
            )

    handle = await gateway.create_payment(
        amount,
        settings.stripe_currency,
        {"lease_id": str(lease.id), "tenant_id": str(lease.tenant_id)},
    )
    payment = await crud.create_payment(
        db,
        lease_id=lease.id,
        tenant_id=lease.tenant_id,
        property_id=lease.property_id,
        amount=amount,
        currency=settings.stripe_currency,
        gateway_reference=handle.reference,
        initiated_by_user_id=scope.user_id,
    )
    await db.commit()

    logger.info(
        "Payment initiated",
        extra={
            "payment_id": payment.id,
            "lease_id": lease.id,
            "reference": handle.reference,
            "amount": str(amount),
        },
    )
    return payment, handle


async def _apply_gateway_status(
    db: AsyncSession,
    payment: Payment,
    gateway_status: GatewayStatus,
    failure_reason: str | None,
) -> ConfirmationResult:
    """Apply one gateway report to a freshly locked payment."""
    if payment.status == PaymentStatus.CONFIRMED:
        logger.info(
            "Payment confirmation replayed",
            extra={"reference": payment.gateway_reference, "reported": gateway_status.value},
        )
        return _result(payment, ConfirmationOutcome.ALREADY_CONFIRMED)

    if payment.status == PaymentStatus.FAILED:
        raise AlreadyFailedError(payment.gateway_reference)

    if gateway_status == GatewayStatus.PROCESSING:
        return _result(payment, ConfirmationOutcome.PROCESSING)

    if gateway_status == GatewayStatus.FAILED:
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = failure_reason or "Declined by payment gateway"
        logger.info(
            "Payment failed",
            extra={"reference": payment.gateway_reference, "reason": payment.failure_reason},
        )
        return _result(payment, ConfirmationOutcome.FAILED)

    lease = await db.get(Lease, payment.lease_id)
    await db.refresh(lease, with_for_update=True)

    payment.status = PaymentStatus.CONFIRMED
    payment.confirmed_at = utc_now()
    payment.failure_reason = None
    await ledger.post_payment(db, lease, payment)

    activated = False
    if lease.status == LeaseStatus.PENDING:
        activated = await try_activate_lease(db, lease)

    summary = await ledger.summarize(db, lease)
    tenant = await db.get(Tenant, payment.tenant_id)
    enqueue_notification(
        db,
        NotificationKind.PAYMENT_RECEIVED,
        tenant.email,
        tenant.full_name,
        {
            "amount": payment.amount,
            "currency": payment.currency,
            "gateway_reference": payment.gateway_reference,
            "balance": summary.balance,
        },
    )
    logger.info(
        "Payment confirmed",
        extra={
            "reference": payment.gateway_reference,
            "lease_id": lease.id,
            "amount": str(payment.amount),
            "lease_activated": activated,
        },
    )
    return _result(payment, ConfirmationOutcome.CONFIRMED, activated)


async def confirm_payment(
    db: AsyncSession,
    scope: AccessScope,
    gateway_reference: str,
    gateway_status: GatewayStatus,
    failure_reason: str | None = None,
) -> ConfirmationResult:
    """Reconcile a reported gateway outcome; safe to call any number of times."""
    payment = await crud.get_payment_by_reference(db, gateway_reference)
    if payment is None:
        raise UnknownPaymentError(gateway_reference)
    ensure_in_scope(
        scope,
        payment.property_id,
        tenant_id=payment.tenant_id,
        action="confirm",
        resource="payment",
    )

    async with hold("lease", payment.lease_id):
        await db.refresh(payment, with_for_update=True)
        try:
            result = await _apply_gateway_status(
                db, payment, gateway_status, failure_reason
            )
            await db.commit()
        except StaleDataError as exc:
            await db.rollback()
            await db.refresh(payment)
            if payment.status == PaymentStatus.CONFIRMED:
                return _result(payment, ConfirmationOutcome.ALREADY_CONFIRMED)
            raise ConcurrentUpdateError(
                f"Payment '{gateway_reference}' was modified concurrently; retry",
                {"gateway_reference": gateway_reference},
            ) from exc
        except Exception:
            await db.rollback()
            raise
    return result


async def confirm_from_client(
    db: AsyncSession,
    scope: AccessScope,
    gateway: PaymentGateway,
    gateway_reference: str,
) -> ConfirmationResult:
    """Confirm after the client's callback, trusting only the gateway's status."""
    payment = await crud.get_payment_by_reference(db, gateway_reference)
    if payment is None:
        raise UnknownPaymentError(gateway_reference)
    ensure_in_scope(
        scope,
        payment.property_id,
        tenant_id=payment.tenant_id,
        action="confirm",
        resource="payment",
    )

    reported = await gateway.retrieve_status(gateway_reference)
    return await confirm_payment(
        db, scope, gateway_reference, reported.status, reported.failure_reason
    )


STRIPE_EVENT_STATUSES = {
    "payment_intent.succeeded": GatewayStatus.SUCCEEDED,
    "payment_intent.payment_failed": GatewayStatus.FAILED,
    "payment_intent.canceled": GatewayStatus.FAILED,
}


async def handle_stripe_event(db: AsyncSession, event: dict[str, Any]) -> str | None:
    """Route a verified Stripe event into the confirmation protocol.

    Events for unknown references, already-failed payments and payments the
    lease can no longer take are acknowledged so the gateway stops
    redelivering them. The last case needs an operator: the gateway holds the
    money but the ledger does not.
    """
    event_type = event.get("type", "")
    gateway_status = STRIPE_EVENT_STATUSES.get(event_type)
    if gateway_status is None:
        logger.info("Ignoring Stripe event", extra={"event_type": event_type})
        return None

    intent = (event.get("data") or {}).get("object") or {}
    reference = intent.get("id")
    if not reference:
        raise ValidationError("Stripe event has no payment intent id")

    failure_reason = None
    if gateway_status == GatewayStatus.FAILED:
        last_error = intent.get("last_payment_error") or {}
        failure_reason = last_error.get("message") or intent.get("cancellation_reason")

    try:
        result = await confirm_payment(
            db, SYSTEM_SCOPE, reference, gateway_status, failure_reason
        )
    except UnknownPaymentError:
        logger.warning("Stripe event for unknown payment", extra={"reference": reference})
        return "unknown_payment"
    except AlreadyFailedError:
        logger.warning(
            "Stripe event for already failed payment", extra={"reference": reference}
        )
        return "already_failed"
    except InvalidLedgerStateError as exc:
        logger.error(
            "Gateway success could not be reconciled",
            extra={"reference": reference, "reason": exc.message},
        )
        return "unreconciled"
    return result.outcome.value


async def get_payment(
    db: AsyncSession, scope: AccessScope, gateway_reference: str
) -> Payment:
    payment = await crud.get_payment_by_reference(db, gateway_reference)
    if payment is None:
        raise UnknownPaymentError(gateway_reference)
    ensure_in_scope(
        scope, payment.property_id, tenant_id=payment.tenant_id, action="view", resource="payment"
    )
    return payment


async def list_payments(
    db: AsyncSession,
    scope: AccessScope,
    skip: int = 0,
    limit: int = 20,
    status: PaymentStatus | None = None,
    lease_id: int | None = None,
) -> tuple[list[Payment], int]:
    return await crud.get_payments(
        db,
        criterion=scope_filter(scope, Payment.property_id, Payment.tenant_id),
        skip=skip,
        limit=limit,
        status=status,
        lease_id=lease_id,
    )


async def expire_stale_payments(db: AsyncSession, now: datetime | None = None) -> int:
    """Mark long-pending payments EXPIRED; their money state is unknown."""
    now = now or utc_now()
    cutoff = now - timedelta(hours=settings.payment_pending_timeout_hours)
    expired = 0
    for payment_id, lease_id in await crud.get_stale_pending_payments(db, cutoff):
        async with hold("lease", lease_id):
            payment = await db.get(Payment, payment_id)
            await db.refresh(payment, with_for_update=True)
            if payment.status != PaymentStatus.PENDING:
                await db.rollback()
                continue
            payment.status = PaymentStatus.EXPIRED
            try:
                await commit_or_conflict(db, "Payment", payment.gateway_reference)
            except ConcurrentUpdateError:
                continue
            expired += 1
            logger.info(
                "Payment expired",
                extra={"payment_id": payment_id, "reference": payment.gateway_reference},
            )
    return expired
