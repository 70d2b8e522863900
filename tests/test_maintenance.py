"""Maintenance request workflow."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from tenanttrack_backend.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from tenanttrack_backend.core.utils import utc_now
from tenanttrack_backend.modules.auth.models import RoleName
from tenanttrack_backend.modules.maintenance import services
from tenanttrack_backend.modules.maintenance.models import (
    MaintenancePriority,
    MaintenanceStatus,
)
from tenanttrack_backend.modules.maintenance.schemas import MaintenanceRequestCreate
from tenanttrack_backend.modules.notifications.models import (
    NotificationJob,
    NotificationKind,
)

from .conftest import scope_for


async def submit(db, world, description="Kitchen tap drips"):
    scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
    return await services.submit_request(
        db,
        scope,
        MaintenanceRequestCreate(description=description, priority=MaintenancePriority.HIGH),
    )


async def recipients(db) -> list[str]:
    result = await db.execute(
        select(NotificationJob.recipient_email)
        .where(NotificationJob.kind == NotificationKind.MAINTENANCE_STATUS_CHANGED)
        .order_by(NotificationJob.id)
    )
    return list(result.scalars().all())


class TestSubmit:
    async def test_tenant_submits_for_own_unit(self, db, world):
        request = await submit(db, world)

        assert request.status == MaintenanceStatus.OPEN
        assert request.unit_id == world.unit_id
        assert request.tenant_id == world.tenant_id
        assert request.property_id == world.property_id
        assert request.priority == MaintenancePriority.HIGH
        assert await recipients(db) == ["landlord@example.com"]

    async def test_tenant_cannot_file_for_a_neighbour(self, db, world):
        scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
        with pytest.raises(ForbiddenError):
            await services.submit_request(
                db,
                scope,
                MaintenanceRequestCreate(
                    description="Broken window", tenant_id=world.other_tenant_id
                ),
            )

    async def test_landlord_must_name_the_tenant(self, db, world):
        scope = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        with pytest.raises(ValidationError):
            await services.submit_request(
                db, scope, MaintenanceRequestCreate(description="Hallway light out")
            )

        request = await services.submit_request(
            db,
            scope,
            MaintenanceRequestCreate(
                description="Hallway light out", tenant_id=world.tenant_id
            ),
        )
        assert request.status == MaintenanceStatus.OPEN

    async def test_staff_cannot_submit(self, db, world):
        scope = await scope_for(db, world.staff_user_id, RoleName.STAFF)
        with pytest.raises(ForbiddenError):
            await services.submit_request(
                db,
                scope,
                MaintenanceRequestCreate(description="Leak", tenant_id=world.tenant_id),
            )


class TestWorkflow:
    async def test_full_lifecycle(self, db, world):
        request = await submit(db, world)
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        staff = await scope_for(db, world.staff_user_id, RoleName.STAFF)
        visit = utc_now() + timedelta(days=2)

        request = await services.assign_request(
            db, landlord, request.id, world.staff_id, scheduled_for=visit
        )
        assert request.status == MaintenanceStatus.ASSIGNED
        assert request.staff_id == world.staff_id
        assert request.scheduled_for is not None

        request = await services.start_request(db, staff, request.id)
        assert request.status == MaintenanceStatus.IN_PROGRESS
        assert request.completed_at is None

        request = await services.complete_request(db, staff, request.id)
        assert request.status == MaintenanceStatus.COMPLETED
        assert request.completed_at is not None

        assert await recipients(db) == [
            "landlord@example.com",
            "tenant@example.com",
            "tenant@example.com",
            "tenant@example.com",
        ]

        with pytest.raises(InvalidTransitionError):
            await services.cancel_request(db, landlord, request.id, "Too late")

    async def test_skipping_a_step_is_rejected(self, db, world):
        request = await submit(db, world)
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)

        with pytest.raises(InvalidTransitionError):
            await services.start_request(db, landlord, request.id)
        with pytest.raises(InvalidTransitionError):
            await services.complete_request(db, landlord, request.id)

    async def test_staff_from_another_property_cannot_be_assigned(self, db, world):
        request = await submit(db, world)
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)

        with pytest.raises(ValidationError):
            await services.assign_request(db, landlord, request.id, world.other_staff_id)
        with pytest.raises(NotFoundError):
            await services.assign_request(db, landlord, request.id, 9999)

        await db.refresh(request)
        assert request.status == MaintenanceStatus.OPEN
        assert request.staff_id is None

    async def test_only_the_owner_assigns(self, db, world):
        request = await submit(db, world)
        other_landlord = await scope_for(db, world.other_landlord_id, RoleName.LANDLORD)
        staff = await scope_for(db, world.staff_user_id, RoleName.STAFF)

        for scope in (other_landlord, staff):
            with pytest.raises(ForbiddenError):
                await services.assign_request(db, scope, request.id, world.staff_id)

    async def test_unassigned_staff_cannot_work_the_request(self, db, world):
        request = await submit(db, world)
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        await services.assign_request(db, landlord, request.id, world.staff_id)
        outsider = await scope_for(db, world.other_staff_user_id, RoleName.STAFF)

        with pytest.raises(ForbiddenError):
            await services.start_request(db, outsider, request.id)


class TestCancel:
    async def test_tenant_cancels_own_open_request(self, db, world):
        request = await submit(db, world)
        tenant = await scope_for(db, world.tenant_user_id, RoleName.TENANT)

        request = await services.cancel_request(db, tenant, request.id, "Fixed it myself")

        assert request.status == MaintenanceStatus.CANCELLED
        assert request.cancellation_reason == "Fixed it myself"

    async def test_assigned_request_can_be_cancelled(self, db, world):
        request = await submit(db, world)
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        await services.assign_request(db, landlord, request.id, world.staff_id)

        request = await services.cancel_request(db, landlord, request.id)
        assert request.status == MaintenanceStatus.CANCELLED

    async def test_work_in_progress_cannot_be_cancelled(self, db, world):
        request = await submit(db, world)
        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        await services.assign_request(db, landlord, request.id, world.staff_id)
        await services.start_request(db, landlord, request.id)

        with pytest.raises(InvalidTransitionError):
            await services.cancel_request(db, landlord, request.id)

    async def test_staff_cannot_cancel(self, db, world):
        request = await submit(db, world)
        staff = await scope_for(db, world.staff_user_id, RoleName.STAFF)
        with pytest.raises(ForbiddenError):
            await services.cancel_request(db, staff, request.id)


class TestListing:
    async def test_scope_limits_listing(self, db, world):
        await submit(db, world)
        await submit(db, world, "Heating is off")

        landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
        other_landlord = await scope_for(db, world.other_landlord_id, RoleName.LANDLORD)
        neighbour = await scope_for(db, world.other_tenant_user_id, RoleName.TENANT)

        _, total = await services.list_requests(db, landlord)
        assert total == 2
        for scope in (other_landlord, neighbour):
            items, total = await services.list_requests(db, scope)
            assert items == []
            assert total == 0

        open_items, _ = await services.list_requests(
            db, landlord, status=MaintenanceStatus.OPEN
        )
        assert len(open_items) == 2

    async def test_get_outside_scope_is_forbidden(self, db, world):
        request = await submit(db, world)
        neighbour = await scope_for(db, world.other_tenant_user_id, RoleName.TENANT)
        with pytest.raises(ForbiddenError):
            await services.get_request(db, neighbour, request.id)

    async def test_staff_read_requests_at_their_property(self, db, world):
        request = await submit(db, world)
        staff = await scope_for(db, world.staff_user_id, RoleName.STAFF)

        assert (await services.get_request(db, staff, request.id)).id == request.id
        requests, total = await services.list_requests(db, staff)
        assert total == 1
        assert requests[0].id == request.id


class TestConcurrentTransitions:
    async def test_concurrent_starts_apply_once(self, session_factory, world):
        async with session_factory() as db:
            request = await submit(db, world)
            landlord = await scope_for(db, world.landlord_id, RoleName.LANDLORD)
            staff = await scope_for(db, world.staff_user_id, RoleName.STAFF)
            await services.assign_request(db, landlord, request.id, world.staff_id)

        async def start():
            async with session_factory() as db:
                return await services.start_request(db, staff, request.id)

        results = await asyncio.gather(start(), start(), return_exceptions=True)

        started = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, InvalidTransitionError)]
        assert len(started) == 1
        assert len(rejected) == 1
        assert started[0].status == MaintenanceStatus.IN_PROGRESS
        async with session_factory() as db:
            assert await recipients(db) == [
                "landlord@example.com",
                "tenant@example.com",
                "tenant@example.com",
            ]
