"""Payment gateway collaborator.

The engine only needs two calls from the gateway: create a payment handle and
read back a payment's status. Completion also arrives via signed webhooks.
"""

import asyncio
import enum
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

import stripe
from pydantic import BaseModel

from ...config import settings
from ...core.exceptions import ExternalUnavailableError, ValidationError
from ...core.logging import get_logger

logger = get_logger("payments.gateway")


class GatewayStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PROCESSING = "processing"


class GatewayHandle(BaseModel):
    """What the client needs to complete the charge with the gateway."""

    reference: str
    client_secret: str | None = None


class GatewayResult(BaseModel):
    reference: str
    status: GatewayStatus
    failure_reason: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    async def create_payment(
        self, amount: Decimal, currency: str, metadata: dict[str, str]
    ) -> GatewayHandle:
        """Create a gateway-side payment; raise ExternalUnavailableError if unreachable."""

    @abstractmethod
    async def retrieve_status(self, reference: str) -> GatewayResult:
        """Read the gateway's current view of a payment."""


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


def stripe_intent_result(intent: dict[str, Any]) -> GatewayResult:
    """Map a Stripe PaymentIntent onto a gateway status."""
    status = intent.get("status")
    last_error = intent.get("last_payment_error") or {}

    if status == "succeeded":
        return GatewayResult(reference=intent["id"], status=GatewayStatus.SUCCEEDED)
    if status == "canceled":
        reason = intent.get("cancellation_reason") or "canceled"
        return GatewayResult(
            reference=intent["id"],
            status=GatewayStatus.FAILED,
            failure_reason=f"Payment canceled: {reason}",
        )
    if status == "requires_payment_method" and last_error:
        return GatewayResult(
            reference=intent["id"],
            status=GatewayStatus.FAILED,
            failure_reason=last_error.get("message") or "Payment declined",
        )
    return GatewayResult(reference=intent["id"], status=GatewayStatus.PROCESSING)


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntents through the stripe SDK.

    The SDK is synchronous, so each call runs in a worker thread.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self.secret_key = secret_key or settings.stripe_secret_key
        self.timeout_seconds = timeout_seconds or settings.stripe_timeout_seconds
        # The SDK keeps its HTTP client module-wide
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout_seconds)

    async def _call(self, operation: str, method, *args, **params) -> Any:
        try:
            return await asyncio.to_thread(
                method, *args, api_key=self.secret_key, **params
            )
        except (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError) as exc:
            raise ExternalUnavailableError(
                "stripe", operation, details={"error": exc.user_message}
            ) from exc
        except (stripe.InvalidRequestError, stripe.CardError) as exc:
            logger.warning(
                "Stripe rejected request",
                extra={"operation": operation, "status_code": exc.http_status},
            )
            raise ValidationError(exc.user_message or "Payment request rejected") from exc
        except stripe.StripeError as exc:
            logger.error(
                "Stripe call failed",
                extra={"operation": operation, "status_code": exc.http_status},
            )
            raise ExternalUnavailableError(
                "stripe", operation, details={"error": exc.user_message}
            ) from exc

    async def create_payment(
        self, amount: Decimal, currency: str, metadata: dict[str, str]
    ) -> GatewayHandle:
        intent = await self._call(
            "create_payment",
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=currency,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
        logger.info(
            "Stripe payment intent created",
            extra={"reference": intent["id"], "amount": str(amount)},
        )
        return GatewayHandle(
            reference=intent["id"], client_secret=intent.get("client_secret")
        )

    async def retrieve_status(self, reference: str) -> GatewayResult:
        intent = await self._call(
            "retrieve_status", stripe.PaymentIntent.retrieve, reference
        )
        return stripe_intent_result(intent)


# ----- Webhooks -----


def construct_stripe_event(
    payload: bytes,
    signature_header: str | None,
    secret: str,
    tolerance_seconds: int,
) -> stripe.Event:
    """Verify a ``Stripe-Signature`` header and parse the event it signs."""
    if not signature_header or not secret:
        raise ValidationError("Missing webhook signature", field="Stripe-Signature")
    try:
        return stripe.Webhook.construct_event(
            payload, signature_header, secret, tolerance=tolerance_seconds
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("Rejected Stripe webhook", extra={"reason": exc.user_message})
        raise ValidationError(
            "Invalid webhook signature", field="Stripe-Signature"
        ) from exc
    except ValueError as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc
