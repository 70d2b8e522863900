"""HTTP surface: envelopes, authentication and the Stripe webhook."""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from decimal import Decimal

from tenanttrack_backend.config import settings
from tenanttrack_backend.core.utils import utc_today

from .conftest import auth_headers

API = settings.api_prefix


def stripe_headers(body: bytes, secret: str = "whsec_test") -> dict[str, str]:
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256
    ).hexdigest()
    return {"Stripe-Signature": f"t={timestamp},v1={digest}", "Content-Type": "application/json"}


async def submit_application(client, world) -> dict:
    start = utc_today()
    res = await client.post(
        f"{API}/leases",
        json={
            "tenant_id": world.tenant_id,
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=365)).isoformat(),
            "rent": "950.00",
            "deposit": "700.00",
        },
        headers=auth_headers(world.tenant_user_id, "tenant"),
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]


async def initiate_deposit(client, world, lease_id: int) -> dict:
    res = await client.post(
        f"{API}/payments",
        json={"lease_id": lease_id, "amount": "700.00"},
        headers=auth_headers(world.tenant_user_id, "tenant"),
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]


class TestEnvelope:
    async def test_health(self, client):
        res = await client.get(f"{API}/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"

    async def test_missing_token(self, client, world):
        res = await client.get(f"{API}/leases")
        assert res.status_code == 401
        body = res.json()
        assert body["success"] is False
        assert body["code"] == "AUTHENTICATION_FAILED"

    async def test_garbage_token(self, client, world):
        res = await client.get(
            f"{API}/leases", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert res.status_code == 401

    async def test_scope_endpoint(self, client, world):
        res = await client.get(
            f"{API}/me/scope", headers=auth_headers(world.landlord_id, "landlord")
        )
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["owned_property_ids"] == [world.property_id]
        assert "manage_leases" in data["capabilities"]

    async def test_not_found(self, client, world):
        res = await client.get(
            f"{API}/leases/9999", headers=auth_headers(world.landlord_id, "landlord")
        )
        assert res.status_code == 404
        assert res.json()["code"] == "NOT_FOUND"

    async def test_forbidden_and_conflict(self, client, world):
        lease = await submit_application(client, world)
        url = f"{API}/leases/{lease['id']}"

        res = await client.get(url, headers=auth_headers(world.other_tenant_user_id, "tenant"))
        assert res.status_code == 403
        assert res.json()["code"] == "FORBIDDEN"

        landlord = auth_headers(world.landlord_id, "landlord")
        first = await client.post(f"{url}/deny", json={"reason": "Incomplete"}, headers=landlord)
        second = await client.post(f"{url}/deny", json={"reason": "Again"}, headers=landlord)
        assert first.status_code == 200
        assert first.json()["data"]["status"] == "denied"
        assert second.status_code == 409
        assert second.json()["code"] == "INVALID_TRANSITION"


class TestLeaseRoutes:
    async def test_listing_is_scoped(self, client, world):
        await submit_application(client, world)

        own = await client.get(
            f"{API}/leases", headers=auth_headers(world.landlord_id, "landlord")
        )
        other = await client.get(
            f"{API}/leases", headers=auth_headers(world.other_landlord_id, "landlord")
        )

        assert own.json()["data"]["total"] == 1
        assert other.json()["data"]["total"] == 0
        assert other.json()["data"]["items"] == []

    async def test_deposit_payment_activates_lease(self, client, world):
        lease = await submit_application(client, world)
        tenant = auth_headers(world.tenant_user_id, "tenant")

        initiated = await initiate_deposit(client, world, lease["id"])
        assert initiated["payment"]["status"] == "pending"
        assert initiated["client_secret"] == "pi_test_1_secret"

        res = await client.post(f"{API}/payments/pi_test_1/confirm", headers=tenant)
        assert res.status_code == 200, res.text
        result = res.json()["data"]
        assert result["outcome"] == "confirmed"
        assert result["lease_activated"] is True

        replay = await client.post(f"{API}/payments/pi_test_1/confirm", headers=tenant)
        assert replay.json()["data"]["outcome"] == "already_confirmed"

        ledger = await client.get(f"{API}/leases/{lease['id']}/ledger", headers=tenant)
        assert Decimal(ledger.json()["data"]["balance"]) == 0
        current = await client.get(f"{API}/leases/{lease['id']}", headers=tenant)
        assert current.json()["data"]["status"] == "active"

    async def test_gateway_outage_is_503(self, client, world, gateway):
        lease = await submit_application(client, world)
        gateway.unavailable = True

        res = await client.post(
            f"{API}/payments",
            json={"lease_id": lease["id"], "amount": "700.00"},
            headers=auth_headers(world.tenant_user_id, "tenant"),
        )

        assert res.status_code == 503
        assert res.json()["code"] == "EXTERNAL_UNAVAILABLE"


class TestStripeWebhook:
    async def test_signed_event_confirms_payment(self, client, world):
        lease = await submit_application(client, world)
        await initiate_deposit(client, world, lease["id"])
        body = json.dumps(
            {
                "id": "evt_1",
                "type": "payment_intent.succeeded",
                "data": {"object": {"id": "pi_test_1", "status": "succeeded"}},
            }
        ).encode()

        res = await client.post(
            f"{API}/payments/webhooks/stripe", content=body, headers=stripe_headers(body)
        )
        again = await client.post(
            f"{API}/payments/webhooks/stripe", content=body, headers=stripe_headers(body)
        )

        assert res.status_code == 200, res.text
        assert res.json()["data"] == {
            "received": True,
            "event_type": "payment_intent.succeeded",
            "outcome": "confirmed",
        }
        assert again.json()["data"]["outcome"] == "already_confirmed"

    async def test_bad_signature_is_rejected(self, client, world):
        body = b'{"type": "payment_intent.succeeded"}'
        res = await client.post(
            f"{API}/payments/webhooks/stripe",
            content=body,
            headers=stripe_headers(body, secret="whsec_wrong"),
        )
        assert res.status_code == 400
        assert res.json()["code"] == "VALIDATION_ERROR"

    async def test_unsigned_request_is_rejected(self, client, world):
        res = await client.post(
            f"{API}/payments/webhooks/stripe", content=b"{}"
        )
        assert res.status_code == 400


class TestMaintenanceRoutes:
    async def test_submit_and_assign(self, client, world):
        res = await client.post(
            f"{API}/maintenance-requests",
            json={"description": "Radiator is cold", "priority": "high"},
            headers=auth_headers(world.tenant_user_id, "tenant"),
        )
        assert res.status_code == 201, res.text
        request_id = res.json()["data"]["id"]

        res = await client.post(
            f"{API}/maintenance-requests/{request_id}/assign",
            json={"staff_id": world.staff_id},
            headers=auth_headers(world.landlord_id, "landlord"),
        )
        assert res.status_code == 200, res.text
        assert res.json()["data"]["status"] == "assigned"

        res = await client.post(
            f"{API}/maintenance-requests/{request_id}/complete",
            headers=auth_headers(world.staff_user_id, "staff"),
        )
        assert res.status_code == 409


class TestNotificationRoutes:
    async def test_failed_listing_requires_operator(self, client, world):
        tenant = await client.get(
            f"{API}/notifications/failed",
            headers=auth_headers(world.tenant_user_id, "tenant"),
        )
        admin = await client.get(
            f"{API}/notifications/failed", headers=auth_headers(world.admin_id, "admin")
        )

        assert tenant.status_code == 403
        assert admin.status_code == 200
        assert admin.json()["data"] == []
