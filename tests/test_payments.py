"""Exactly-once payment confirmation."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tenanttrack_backend.core.exceptions import (
    AlreadyFailedError,
    ExternalUnavailableError,
    ForbiddenError,
    InvalidLedgerStateError,
    UnknownPaymentError,
    ValidationError,
)
from tenanttrack_backend.core.utils import utc_now
from tenanttrack_backend.modules.auth.models import RoleName
from tenanttrack_backend.modules.lease_management import ledger
from tenanttrack_backend.modules.lease_management.models import (
    Lease,
    LeaseStatus,
    LedgerEntry,
    LedgerEntryType,
)
from tenanttrack_backend.modules.lease_management.services import (
    deny_application,
    terminate_lease,
)
from tenanttrack_backend.modules.notifications.models import (
    NotificationJob,
    NotificationKind,
)
from tenanttrack_backend.modules.payments import services
from tenanttrack_backend.modules.payments.gateway import GatewayStatus
from tenanttrack_backend.modules.payments.models import Payment, PaymentStatus
from tenanttrack_backend.modules.payments.schemas import (
    ConfirmationOutcome,
    PaymentInitiate,
)
from tenanttrack_backend.modules.property_management.models import Unit, UnitStatus

from .conftest import apply_for_lease, scope_for


async def start_deposit_payment(db, world, gateway, amount="700.00"):
    lease = await apply_for_lease(db, world)
    scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
    payment, handle = await services.initiate_payment(
        db, scope, gateway, PaymentInitiate(lease_id=lease.id, amount=Decimal(amount))
    )
    return lease, payment, scope


async def payment_credits(db, lease_id) -> int:
    result = await db.execute(
        select(func.count(LedgerEntry.id)).where(
            LedgerEntry.lease_id == lease_id,
            LedgerEntry.entry_type == LedgerEntryType.PAYMENT,
        )
    )
    return result.scalar_one()


class TestInitiate:
    async def test_creates_pending_payment(self, db, world, gateway):
        lease, payment, _ = await start_deposit_payment(db, world, gateway)

        assert payment.status == PaymentStatus.PENDING
        assert payment.gateway_reference == "pi_test_1"
        assert payment.amount == Decimal("700.00")
        amount, currency, metadata = gateway.created[0]
        assert amount == Decimal("700.00")
        assert metadata["lease_id"] == str(lease.id)

    async def test_gateway_outage_writes_nothing(self, db, world, gateway):
        lease = await apply_for_lease(db, world)
        scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
        gateway.unavailable = True

        with pytest.raises(ExternalUnavailableError):
            await services.initiate_payment(
                db, scope, gateway, PaymentInitiate(lease_id=lease.id, amount=Decimal("700"))
            )
        count = await db.execute(select(func.count(Payment.id)))
        assert count.scalar_one() == 0

    async def test_amount_cap(self, db, world, gateway):
        lease = await apply_for_lease(db, world)
        scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
        with pytest.raises(ValidationError):
            await services.initiate_payment(
                db,
                scope,
                gateway,
                PaymentInitiate(lease_id=lease.id, amount=Decimal("100000.01")),
            )

    async def test_only_the_tenant_pays(self, db, world, gateway):
        lease = await apply_for_lease(db, world)
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        neighbour = await scope_for(db, world.other_tenant_user_id, RoleName.TENANT)
        data = PaymentInitiate(lease_id=lease.id, amount=Decimal("700.00"))

        with pytest.raises(ForbiddenError):
            await services.initiate_payment(db, landlord, gateway, data)
        with pytest.raises(ForbiddenError):
            await services.initiate_payment(db, neighbour, gateway, data)

    async def test_pending_lease_without_deposit_rejects_payment(self, db, world, gateway):
        lease = await apply_for_lease(db, world, deposit="0.00")
        scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
        with pytest.raises(InvalidLedgerStateError):
            await services.initiate_payment(
                db, scope, gateway, PaymentInitiate(lease_id=lease.id, amount=Decimal("10"))
            )

    async def test_denied_lease_rejects_payment(self, db, world, gateway):
        lease = await apply_for_lease(db, world)
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        await deny_application(db, landlord, lease.id)
        scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
        with pytest.raises(InvalidLedgerStateError):
            await services.initiate_payment(
                db, scope, gateway, PaymentInitiate(lease_id=lease.id, amount=Decimal("700"))
            )
    async def test_pending_payments_covering_deposit_block_another(
        self, db, world, gateway
    ):
        lease, _, scope = await start_deposit_payment(db, world, gateway)

        with pytest.raises(InvalidLedgerStateError, match="already cover"):
            await services.initiate_payment(
                db, scope, gateway, PaymentInitiate(lease_id=lease.id, amount=Decimal("700"))
            )
        assert len(gateway.created) == 1

    async def test_partial_pending_payment_leaves_room_for_rest(self, db, world, gateway):
        lease, _, scope = await start_deposit_payment(db, world, gateway, amount="300.00")

        payment, _ = await services.initiate_payment(
            db, scope, gateway, PaymentInitiate(lease_id=lease.id, amount=Decimal("400"))
        )
        assert payment.status == PaymentStatus.PENDING
        assert len(gateway.created) == 2


class TestConfirm:
    async def test_deposit_payment_activates_lease(self, db, world, gateway, today):
        lease, payment, scope = await start_deposit_payment(db, world, gateway)

        result = await services.confirm_from_client(
            db, scope, gateway, payment.gateway_reference
        )

        assert result.outcome == ConfirmationOutcome.CONFIRMED
        assert result.applied
        assert result.lease_activated
        assert result.payment.status == PaymentStatus.CONFIRMED

        lease = await db.get(Lease, lease.id)
        await db.refresh(lease)
        assert lease.status == LeaseStatus.ACTIVE
        unit = await db.get(Unit, world.unit_id)
        await db.refresh(unit)
        assert unit.status == UnitStatus.RENTED
        assert (await ledger.summarize(db, lease, today)).balance == Decimal("0.00")

        kinds = (await db.execute(select(NotificationJob.kind))).scalars().all()
        assert NotificationKind.PAYMENT_RECEIVED in kinds
        assert NotificationKind.LEASE_CONFIRMED in kinds

    async def test_replayed_confirmation_posts_once(self, db, world, gateway, today):
        lease, payment, scope = await start_deposit_payment(db, world, gateway)
        await services.confirm_payment(
            db, scope, payment.gateway_reference, GatewayStatus.SUCCEEDED
        )

        again = await services.confirm_payment(
            db, scope, payment.gateway_reference, GatewayStatus.SUCCEEDED
        )

        assert again.outcome == ConfirmationOutcome.ALREADY_CONFIRMED
        assert not again.applied
        assert await payment_credits(db, lease.id) == 1
        summary = await ledger.summarize(db, lease, today)
        assert summary.signed_balance == Decimal("0.00")

    async def test_concurrent_confirmations_post_once(
        self, session_factory, world, gateway
    ):
        async with session_factory() as db:
            lease, payment, scope = await start_deposit_payment(db, world, gateway)
        reference = payment.gateway_reference

        async def confirm():
            async with session_factory() as db:
                return await services.confirm_payment(
                    db, scope, reference, GatewayStatus.SUCCEEDED
                )

        results = await asyncio.gather(confirm(), confirm())

        outcomes = sorted(result.outcome.value for result in results)
        assert outcomes == ["already_confirmed", "confirmed"]
        async with session_factory() as db:
            assert await payment_credits(db, lease.id) == 1

    async def test_gateway_failure_marks_payment_failed(self, db, world, gateway, today):
        lease, payment, scope = await start_deposit_payment(db, world, gateway)
        reference = payment.gateway_reference
        gateway.statuses[reference] = GatewayStatus.FAILED
        gateway.failure_reasons[reference] = "Card declined"

        result = await services.confirm_from_client(db, scope, gateway, reference)

        assert result.outcome == ConfirmationOutcome.FAILED
        assert result.payment.failure_reason == "Card declined"
        assert await payment_credits(db, lease.id) == 0
        assert (await ledger.summarize(db, lease, today)).balance == Decimal("700.00")

        with pytest.raises(AlreadyFailedError):
            await services.confirm_payment(db, scope, reference, GatewayStatus.SUCCEEDED)

    async def test_processing_leaves_payment_pending(self, db, world, gateway):
        _, payment, scope = await start_deposit_payment(db, world, gateway)
        gateway.statuses[payment.gateway_reference] = GatewayStatus.PROCESSING

        result = await services.confirm_from_client(
            db, scope, gateway, payment.gateway_reference
        )

        assert result.outcome == ConfirmationOutcome.PROCESSING
        assert result.payment.status == PaymentStatus.PENDING

    async def test_unknown_reference(self, db, world, gateway):
        scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
        with pytest.raises(UnknownPaymentError):
            await services.confirm_payment(db, scope, "pi_missing", GatewayStatus.SUCCEEDED)

    async def test_confirmation_checks_scope(self, db, world, gateway):
        _, payment, _ = await start_deposit_payment(db, world, gateway)
        neighbour = await scope_for(db, world.other_tenant_user_id, RoleName.TENANT)
        with pytest.raises(ForbiddenError):
            await services.confirm_payment(
                db, neighbour, payment.gateway_reference, GatewayStatus.SUCCEEDED
            )


class TestExpiry:
    async def test_stale_payments_expire_and_can_still_confirm(self, db, world, gateway):
        lease, payment, scope = await start_deposit_payment(db, world, gateway)

        assert await services.expire_stale_payments(db, utc_now()) == 0
        later = utc_now() + timedelta(hours=49)
        assert await services.expire_stale_payments(db, later) == 1

        await db.refresh(payment)
        assert payment.status == PaymentStatus.EXPIRED

        result = await services.confirm_payment(
            db, scope, payment.gateway_reference, GatewayStatus.SUCCEEDED
        )
        assert result.outcome == ConfirmationOutcome.CONFIRMED
        assert await payment_credits(db, lease.id) == 1

    async def test_sweep_releases_settled_payment(self, db, world, gateway, monkeypatch):
        lease, payment, scope = await start_deposit_payment(db, world, gateway)
        await services.confirm_payment(
            db, scope, payment.gateway_reference, GatewayStatus.SUCCEEDED
        )

        async def stale(db, cutoff):
            return [(payment.id, lease.id)]

        monkeypatch.setattr(services.crud, "get_stale_pending_payments", stale)

        assert await services.expire_stale_payments(db, utc_now()) == 0
        assert not db.in_transaction()
        await db.refresh(payment)
        assert payment.status == PaymentStatus.CONFIRMED


class TestStripeEvents:
    def _event(self, event_type, reference, **intent):
        return {
            "id": "evt_1",
            "type": event_type,
            "data": {"object": {"id": reference, "object": "payment_intent", **intent}},
        }

    async def test_succeeded_event_confirms(self, db, world, gateway):
        lease, payment, _ = await start_deposit_payment(db, world, gateway)

        outcome = await services.handle_stripe_event(
            db, self._event("payment_intent.succeeded", payment.gateway_reference)
        )
        replay = await services.handle_stripe_event(
            db, self._event("payment_intent.succeeded", payment.gateway_reference)
        )

        assert outcome == "confirmed"
        assert replay == "already_confirmed"
        assert await payment_credits(db, lease.id) == 1

    async def test_failed_event_then_redelivery(self, db, world, gateway):
        _, payment, _ = await start_deposit_payment(db, world, gateway)
        event = self._event(
            "payment_intent.payment_failed",
            payment.gateway_reference,
            last_payment_error={"message": "Insufficient funds"},
        )

        assert await services.handle_stripe_event(db, event) == "failed"
        assert await services.handle_stripe_event(db, event) == "already_failed"

        await db.refresh(payment)
        assert payment.failure_reason == "Insufficient funds"
    async def test_success_after_termination_is_acknowledged(self, db, world, gateway):
        lease, deposit, scope = await start_deposit_payment(db, world, gateway)
        await services.handle_stripe_event(
            db, self._event("payment_intent.succeeded", deposit.gateway_reference)
        )
        rent, _ = await services.initiate_payment(
            db, scope, gateway, PaymentInitiate(lease_id=lease.id, amount=Decimal("950"))
        )
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        await terminate_lease(db, landlord, lease.id, "Moved out")

        outcome = await services.handle_stripe_event(
            db, self._event("payment_intent.succeeded", rent.gateway_reference)
        )

        assert outcome == "unreconciled"
        await db.refresh(rent)
        assert rent.status == PaymentStatus.PENDING
        assert await payment_credits(db, lease.id) == 1

    async def test_unknown_reference_is_acknowledged(self, db, world):
        outcome = await services.handle_stripe_event(
            db, self._event("payment_intent.succeeded", "pi_elsewhere")
        )
        assert outcome == "unknown_payment"

    async def test_unrelated_event_ignored(self, db, world):
        outcome = await services.handle_stripe_event(
            db, self._event("customer.created", "cus_1")
        )
        assert outcome is None
