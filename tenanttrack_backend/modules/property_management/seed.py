"""Seed data for a local development portfolio.

One landlord with one property, two units, a staff member and a tenant
login, so every role can be exercised against a fresh database.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.crud import create_user, get_user_by_email
from ..auth.models import User
from ..tenant_management.crud import create_tenant
from .crud import create_property, create_staff, create_unit
from .models import Property

DEMO_PORTFOLIO = {
    "landlord": {
        "email": "landlord@example.com",
        "first_name": "Lena",
        "last_name": "Landlord",
    },
    "property": {
        "name": "Maple Court",
        "address": "12 Maple Street",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
    },
    "units": [
        {"unit_number": "1A", "rent": Decimal("950.00"), "bedrooms": 1},
        {"unit_number": "2B", "rent": Decimal("1250.00"), "bedrooms": 2},
    ],
    "staff": {
        "email": "staff@example.com",
        "first_name": "Sam",
        "last_name": "Fixer",
        "position": "Maintenance",
    },
    "tenant": {
        "email": "tenant@example.com",
        "first_name": "Tara",
        "last_name": "Tenant",
        "phone_number": "555-0100",
    },
}


async def _user_for(
    db: AsyncSession, email: str, first_name: str, last_name: str | None = None
) -> User:
    # Logins may already exist from the identity provider.
    user = await get_user_by_email(db, email)
    if user is not None:
        return user
    return await create_user(db, email, first_name, last_name)


async def seed_demo_portfolio(db: AsyncSession) -> int:
    """Seed the demo portfolio.

    Returns:
        Number of properties created (0 if already seeded)
    """
    # Check if a property already exists
    result = await db.execute(select(Property).limit(1))
    if result.scalar_one_or_none() is not None:
        return 0

    landlord = await _user_for(db, **DEMO_PORTFOLIO["landlord"])
    property_obj = await create_property(
        db, owner_user_id=landlord.id, **DEMO_PORTFOLIO["property"]
    )
    units = [
        await create_unit(db, property_id=property_obj.id, **unit_data)
        for unit_data in DEMO_PORTFOLIO["units"]
    ]

    staff_data = DEMO_PORTFOLIO["staff"]
    staff_user = await _user_for(
        db,
        email=staff_data["email"],
        first_name=staff_data["first_name"],
        last_name=staff_data["last_name"],
    )
    await create_staff(db, property_id=property_obj.id, user_id=staff_user.id, **staff_data)

    tenant_data = DEMO_PORTFOLIO["tenant"]
    tenant_user = await _user_for(
        db,
        email=tenant_data["email"],
        first_name=tenant_data["first_name"],
        last_name=tenant_data["last_name"],
    )
    await create_tenant(db, unit=units[0], user_id=tenant_user.id, **tenant_data)

    await db.flush()
    return 1
