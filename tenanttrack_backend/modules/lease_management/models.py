"""Lease and ledger models for TenantTrack."""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ...database import Base, PropertyScoped, TimestampMixin


class LeaseStatus(str, enum.Enum):
    """Lease lifecycle states."""

    PENDING = "pending"
    ACTIVE = "active"
    TERMINATED = "terminated"
    EXPIRED = "expired"
    DENIED = "denied"


# Allowed moves; anything else is an invalid transition.
LEASE_TRANSITIONS: dict[LeaseStatus, frozenset[LeaseStatus]] = {
    LeaseStatus.PENDING: frozenset({LeaseStatus.ACTIVE, LeaseStatus.DENIED}),
    LeaseStatus.ACTIVE: frozenset({LeaseStatus.TERMINATED, LeaseStatus.EXPIRED}),
    LeaseStatus.TERMINATED: frozenset(),
    LeaseStatus.EXPIRED: frozenset(),
    LeaseStatus.DENIED: frozenset(),
}

OPEN_LEASE_STATUSES = (LeaseStatus.PENDING, LeaseStatus.ACTIVE)
CLOSED_LEASE_STATUSES = (LeaseStatus.TERMINATED, LeaseStatus.EXPIRED)


class LedgerEntryType(str, enum.Enum):
    DEPOSIT_CHARGE = "deposit_charge"
    RENT_CHARGE = "rent_charge"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"


CHARGE_TYPES = (LedgerEntryType.DEPOSIT_CHARGE, LedgerEntryType.RENT_CHARGE)
CREDIT_TYPES = (LedgerEntryType.PAYMENT, LedgerEntryType.ADJUSTMENT)

DEPOSIT_PERIOD = "deposit"


class Lease(PropertyScoped, TimestampMixin, Base):
    """A tenant's lease on a unit.

    ``unit_id`` and ``property_id`` are cached from the tenant at application
    time. ``version`` guards concurrent transitions.
    """

    __tablename__ = "leases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tenants.id"), nullable=False, index=True
    )
    unit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("units.id"), nullable=False, index=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    rent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    deposit: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    status: Mapped[LeaseStatus] = mapped_column(
        Enum(LeaseStatus), nullable=False, default=LeaseStatus.PENDING
    )
    termination_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    terminated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    renewal_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_leases_dates"),
        CheckConstraint("rent > 0", name="ck_leases_rent_positive"),
        CheckConstraint("deposit >= 0", name="ck_leases_deposit_non_negative"),
        Index("ix_leases_status", "status"),
        Index("ix_leases_unit_status", "unit_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Lease(id={self.id}, status={self.status})>"


class LedgerEntry(PropertyScoped, TimestampMixin, Base):
    """A single charge or credit against a lease.

    Rent charges are unique per (lease, period) and payment credits are unique
    per payment, which makes accrual and posting idempotent at the database.
    """

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lease_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leases.id"), nullable=False, index=True
    )
    entry_type: Mapped[LedgerEntryType] = mapped_column(
        Enum(LedgerEntryType), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    period: Mapped[str | None] = mapped_column(String(16), nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("payments.id"), nullable=True, unique=True
    )
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "lease_id", "entry_type", "period", name="uq_ledger_entries_period"
        ),
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )

    @property
    def is_charge(self) -> bool:
        return self.entry_type in CHARGE_TYPES

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, lease_id={self.lease_id}, "
            f"type={self.entry_type}, amount={self.amount})>"
        )
