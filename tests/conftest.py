"""Shared fixtures: a throwaway SQLite database, a seeded portfolio and fakes
for the payment gateway and SMTP server."""

import os
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

# Settings are read at import time, so point CONFIG at the test file first.
os.environ["CONFIG"] = str(
    Path(__file__).resolve().parent.parent / "resources" / "config" / "test.yaml"
)

import httpx  # noqa: E402
import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tenanttrack_backend.config import settings  # noqa: E402
from tenanttrack_backend.core.exceptions import ExternalUnavailableError  # noqa: E402
from tenanttrack_backend.core.utils import utc_today  # noqa: E402
from tenanttrack_backend.database import Base, get_db  # noqa: E402
from tenanttrack_backend.modules.access_control import resolve_scope  # noqa: E402
from tenanttrack_backend.modules.auth import models as auth_models  # noqa: E402, F401
from tenanttrack_backend.modules.auth.crud import create_user  # noqa: E402
from tenanttrack_backend.modules.auth.models import RoleName  # noqa: E402
from tenanttrack_backend.modules.auth.schemas import Principal  # noqa: E402
from tenanttrack_backend.modules.lease_management import (  # noqa: E402, F401
    models as lease_models,
)
from tenanttrack_backend.modules.lease_management.schemas import (  # noqa: E402
    LeaseApplicationCreate,
)
from tenanttrack_backend.modules.lease_management.services import (  # noqa: E402
    submit_application,
)
from tenanttrack_backend.modules.maintenance import (  # noqa: E402, F401
    models as maintenance_models,
)
from tenanttrack_backend.modules.notifications import (  # noqa: E402, F401
    models as notification_models,
)
from tenanttrack_backend.modules.notifications.email_client import (  # noqa: E402
    EmailClient,
)
from tenanttrack_backend.modules.payments import models as payment_models  # noqa: E402, F401
from tenanttrack_backend.modules.payments.gateway import (  # noqa: E402
    GatewayHandle,
    GatewayResult,
    GatewayStatus,
    PaymentGateway,
)
from tenanttrack_backend.modules.property_management.crud import (  # noqa: E402
    create_property,
    create_staff,
    create_unit,
)
from tenanttrack_backend.modules.tenant_management.crud import (  # noqa: E402
    create_tenant,
)


class FakeGateway(PaymentGateway):
    """In-memory gateway; tests set the status each reference reports."""

    def __init__(self):
        self.created: list[tuple[Decimal, str, dict]] = []
        self.statuses: dict[str, GatewayStatus] = {}
        self.failure_reasons: dict[str, str] = {}
        self.unavailable = False

    async def create_payment(self, amount, currency, metadata):
        if self.unavailable:
            raise ExternalUnavailableError("stripe", "create_payment")
        self.created.append((amount, currency, metadata))
        reference = f"pi_test_{len(self.created)}"
        return GatewayHandle(reference=reference, client_secret=f"{reference}_secret")

    async def retrieve_status(self, reference):
        if self.unavailable:
            raise ExternalUnavailableError("stripe", "retrieve_status")
        return GatewayResult(
            reference=reference,
            status=self.statuses.get(reference, GatewayStatus.SUCCEEDED),
            failure_reason=self.failure_reasons.get(reference),
        )


class RecordingEmailClient(EmailClient):
    """Renders real templates but records messages instead of sending them."""

    def __init__(self):
        super().__init__(hostname="localhost", port=1025, use_tls=False)
        self.sent: list[dict] = []
        self.errors: list[Exception] = []

    async def send(self, to_email, to_name, subject, html):
        if self.errors:
            raise self.errors.pop(0)
        self.sent.append(
            {"to_email": to_email, "to_name": to_name, "subject": subject, "html": html}
        )


def make_token(user_id: int, *roles: str, email: str | None = None) -> str:
    payload = {"sub": str(user_id), "roles": list(roles), "type": "access"}
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def auth_headers(user_id: int, *roles: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, *roles)}"}


async def scope_for(db: AsyncSession, user_id: int, *roles: RoleName):
    return await resolve_scope(db, Principal(id=user_id, roles=frozenset(roles)))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tenanttrack.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def email_client():
    return RecordingEmailClient()


@pytest_asyncio.fixture
async def world(session_factory):
    """Two landlords with one property each.

    The first property has two units, a staff member and a tenant with a
    portal login; the second has one unit and a tenant of its own.
    """
    async with session_factory() as db:
        landlord = await create_user(db, "landlord@example.com", "Lena", "Landlord")
        other_landlord = await create_user(db, "other@example.com", "Otto", "Owner")
        staff_user = await create_user(db, "staff@example.com", "Sam", "Fixer")
        other_staff_user = await create_user(db, "handy@example.com", "Hal", "Handy")
        tenant_user = await create_user(db, "tenant@example.com", "Tara", "Tenant")
        other_tenant_user = await create_user(db, "neighbour@example.com", "Nina", "Next")
        admin = await create_user(db, "admin@example.com", "Ada", "Admin")

        prop = await create_property(db, landlord.id, "Maple Court", "12 Maple Street")
        other_prop = await create_property(
            db, other_landlord.id, "Oak House", "3 Oak Road"
        )
        unit = await create_unit(db, prop.id, "1A", Decimal("950.00"))
        spare_unit = await create_unit(db, prop.id, "2B", Decimal("1250.00"))
        other_unit = await create_unit(db, other_prop.id, "9", Decimal("800.00"))

        staff = await create_staff(
            db, prop.id, staff_user.id, "Sam", "Fixer", email="staff@example.com"
        )
        other_staff = await create_staff(db, other_prop.id, other_staff_user.id, "Hal")
        tenant = await create_tenant(
            db, unit, "Tara", "tenant@example.com", "Tenant", user_id=tenant_user.id
        )
        other_tenant = await create_tenant(
            db,
            other_unit,
            "Nina",
            "neighbour@example.com",
            "Next",
            user_id=other_tenant_user.id,
        )
        await db.commit()

        return SimpleNamespace(
            landlord_id=landlord.id,
            other_landlord_id=other_landlord.id,
            staff_user_id=staff_user.id,
            other_staff_user_id=other_staff_user.id,
            tenant_user_id=tenant_user.id,
            other_tenant_user_id=other_tenant_user.id,
            admin_id=admin.id,
            property_id=prop.id,
            other_property_id=other_prop.id,
            unit_id=unit.id,
            spare_unit_id=spare_unit.id,
            other_unit_id=other_unit.id,
            staff_id=staff.id,
            other_staff_id=other_staff.id,
            tenant_id=tenant.id,
            other_tenant_id=other_tenant.id,
        )


@pytest.fixture
def today() -> date:
    return utc_today()


async def apply_for_lease(
    db: AsyncSession,
    world,
    rent: str = "950.00",
    deposit: str = "700.00",
    start: date | None = None,
    months: int = 12,
):
    """Submit an application for the world's tenant as that tenant."""
    start = start or utc_today()
    scope = await scope_for(db, world.tenant_user_id, RoleName.TENANT)
    return await submit_application(
        db,
        scope,
        LeaseApplicationCreate(
            tenant_id=world.tenant_id,
            start_date=start,
            end_date=start + timedelta(days=30 * months),
            rent=Decimal(rent),
            deposit=Decimal(deposit),
        ),
    )


@pytest_asyncio.fixture
async def client(session_factory, gateway):
    from tenanttrack_backend.main import app
    from tenanttrack_backend.modules.payments.dependencies import get_payment_gateway

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
