"""CRUD operations for tenant management module."""

from sqlalchemy.ext.asyncio import AsyncSession

from ..property_management.models import Unit
from .models import Tenant


async def create_tenant(
    db: AsyncSession,
    unit: Unit,
    first_name: str,
    email: str,
    last_name: str | None = None,
    phone_number: str | None = None,
    user_id: int | None = None,
) -> Tenant:
    """Create a tenant for a unit, caching the unit's property."""
    tenant = Tenant(
        unit_id=unit.id,
        property_id=unit.property_id,
        user_id=user_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone_number=phone_number,
    )
    db.add(tenant)
    await db.flush()
    return tenant
