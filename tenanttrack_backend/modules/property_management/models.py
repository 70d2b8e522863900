"""Property, unit and staff models for TenantTrack.

Property is the root of the authorization tree: every other record resolves
to exactly one owning property and through it to one landlord.
"""

import enum
from decimal import Decimal

from sqlalchemy import Enum, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from ...core.exceptions import ValidationError
from ...database import Base, PropertyScoped, TimestampMixin


class UnitStatus(str, enum.Enum):
    """Unit status values."""

    AVAILABLE = "available"
    RENTED = "rented"
    MAINTENANCE = "maintenance"


class Property(TimestampMixin, Base):
    """A building owned by exactly one landlord."""

    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(120), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    owner_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )

    @validates("owner_user_id")
    def _validate_owner(self, key: str, value: int) -> int:
        # Ownership is fixed once assigned.
        current = self.__dict__.get(key)
        if current is not None and current != value:
            raise ValidationError(
                "Property owner cannot be changed", field=key, value=value
            )
        return value

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name={self.name})>"


class Unit(PropertyScoped, TimestampMixin, Base):
    """A rentable unit within a property."""

    __tablename__ = "units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bedrooms: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    bathrooms: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    square_feet: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[UnitStatus] = mapped_column(
        Enum(UnitStatus), nullable=False, default=UnitStatus.AVAILABLE
    )

    __table_args__ = (
        Index("ix_units_number", "property_id", "unit_number", unique=True),
    )

    def __repr__(self) -> str:
        return f"<Unit(id={self.id}, number={self.unit_number}, status={self.status})>"


class Staff(PropertyScoped, TimestampMixin, Base):
    """A staff member working at one property under one user login."""

    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    position: Mapped[str | None] = mapped_column(String(120), nullable=True)

    @property
    def full_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name

    def __repr__(self) -> str:
        return f"<Staff(id={self.id}, property_id={self.property_id})>"
