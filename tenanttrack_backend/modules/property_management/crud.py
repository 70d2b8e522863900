"""CRUD operations for property management module."""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from .models import Property, Staff, Unit, UnitStatus

# ----- Property CRUD -----


async def create_property(
    db: AsyncSession,
    owner_user_id: int,
    name: str,
    address: str,
    city: str | None = None,
    state: str | None = None,
    zip_code: str | None = None,
) -> Property:
    property_obj = Property(
        owner_user_id=owner_user_id,
        name=name,
        address=address,
        city=city,
        state=state,
        zip_code=zip_code,
    )
    db.add(property_obj)
    await db.flush()
    return property_obj


# ----- Unit CRUD -----


async def create_unit(
    db: AsyncSession,
    property_id: int,
    unit_number: str,
    rent: Decimal,
    bedrooms: int = 1,
    bathrooms: int = 1,
    square_feet: int | None = None,
    status: UnitStatus = UnitStatus.AVAILABLE,
) -> Unit:
    unit = Unit(
        property_id=property_id,
        unit_number=unit_number,
        rent=rent,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        square_feet=square_feet,
        status=status,
    )
    db.add(unit)
    await db.flush()
    return unit


# ----- Staff CRUD -----


async def create_staff(
    db: AsyncSession,
    property_id: int,
    user_id: int,
    first_name: str,
    last_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    position: str | None = None,
) -> Staff:
    staff = Staff(
        property_id=property_id,
        user_id=user_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
        position=position,
    )
    db.add(staff)
    await db.flush()
    return staff
