"""Stripe gateway client and webhook event construction."""

import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
import stripe

from tenanttrack_backend.core.exceptions import ExternalUnavailableError, ValidationError
from tenanttrack_backend.modules.payments.gateway import (
    GatewayStatus,
    StripeGateway,
    construct_stripe_event,
    stripe_intent_result,
    to_minor_units,
)

SECRET = "whsec_unit"


def sign(body: bytes, timestamp: int | None = None, secret: str = SECRET) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway(secret_key="sk_test_unit", timeout_seconds=2)


class TestStripeGateway:
    async def test_create_payment_sends_minor_units(self, gateway, monkeypatch):
        seen = {}

        def create(**params):
            seen.update(params)
            return {"id": "pi_123", "client_secret": "pi_123_secret_abc"}

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)

        handle = await gateway.create_payment(Decimal("700.00"), "usd", {"lease_id": "9"})

        assert handle.reference == "pi_123"
        assert handle.client_secret == "pi_123_secret_abc"
        assert seen["api_key"] == "sk_test_unit"
        assert seen["amount"] == 70000
        assert seen["currency"] == "usd"
        assert seen["metadata"] == {"lease_id": "9"}

    async def test_server_error_is_unavailable(self, gateway, monkeypatch):
        def create(**params):
            raise stripe.APIError("Service unavailable", http_status=503)

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        with pytest.raises(ExternalUnavailableError):
            await gateway.create_payment(Decimal("1.00"), "usd", {})

    async def test_connection_error_is_unavailable(self, gateway, monkeypatch):
        def retrieve(reference, **params):
            raise stripe.APIConnectionError("Connection refused")

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)
        with pytest.raises(ExternalUnavailableError):
            await gateway.retrieve_status("pi_1")

    async def test_rejected_request_is_validation_error(self, gateway, monkeypatch):
        def create(**params):
            raise stripe.InvalidRequestError(
                "Amount must be at least 50 cents", "amount", http_status=400
            )

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        with pytest.raises(ValidationError, match="at least 50 cents"):
            await gateway.create_payment(Decimal("0.10"), "usd", {})

    async def test_retrieve_status(self, gateway, monkeypatch):
        seen = {}

        def retrieve(reference, **params):
            seen["reference"] = reference
            seen["api_key"] = params["api_key"]
            return {"id": reference, "status": "succeeded"}

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)
        result = await gateway.retrieve_status("pi_9")

        assert result.status == GatewayStatus.SUCCEEDED
        assert seen == {"reference": "pi_9", "api_key": "sk_test_unit"}

class TestIntentMapping:
    def test_declined_intent_fails(self):
        result = stripe_intent_result(
            {
                "id": "pi_1",
                "status": "requires_payment_method",
                "last_payment_error": {"message": "Your card was declined."},
            }
        )
        assert result.status == GatewayStatus.FAILED
        assert result.failure_reason == "Your card was declined."

    def test_canceled_intent_fails(self):
        result = stripe_intent_result(
            {"id": "pi_1", "status": "canceled", "cancellation_reason": "abandoned"}
        )
        assert result.status == GatewayStatus.FAILED
        assert "abandoned" in result.failure_reason

    @pytest.mark.parametrize(
        "status", ["processing", "requires_action", "requires_payment_method"]
    )
    def test_unsettled_intent_is_processing(self, status):
        result = stripe_intent_result({"id": "pi_1", "status": status})
        assert result.status == GatewayStatus.PROCESSING

    def test_minor_units(self):
        assert to_minor_units(Decimal("950.00")) == 95000
        assert to_minor_units(Decimal("0.05")) == 5


class TestWebhookEvent:
    body = json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "object": "payment_intent"}},
        }
    ).encode()

    def test_valid_signature(self):
        event = construct_stripe_event(self.body, sign(self.body), SECRET, 300)
        assert event["type"] == "payment_intent.succeeded"
        assert event["data"]["object"]["id"] == "pi_1"

    def test_tampered_body(self):
        header = sign(self.body)
        with pytest.raises(ValidationError):
            construct_stripe_event(self.body + b" ", header, SECRET, 300)

    def test_wrong_secret(self):
        header = sign(self.body, secret="whsec_other")
        with pytest.raises(ValidationError):
            construct_stripe_event(self.body, header, SECRET, 300)

    def test_stale_timestamp(self):
        header = sign(self.body, int(time.time()) - 301)
        with pytest.raises(ValidationError):
            construct_stripe_event(self.body, header, SECRET, 300)

    @pytest.mark.parametrize("header", [None, "", "t=abc,v1=00", "v1=00", "t=1000"])
    def test_missing_or_malformed_header(self, header):
        with pytest.raises(ValidationError):
            construct_stripe_event(self.body, header, SECRET, 300)

    def test_missing_secret(self):
        with pytest.raises(ValidationError):
            construct_stripe_event(self.body, sign(self.body), "", 300)

    def test_signed_body_that_is_not_json(self):
        body = b"not json"
        with pytest.raises(ValidationError, match="not valid JSON"):
            construct_stripe_event(body, sign(body), SECRET, 300)
