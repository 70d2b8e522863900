"""Initial schema for TenantTrack

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates all tables for:
- Auth (users)
- Property Management (properties, units, staff)
- Tenant Management (tenants)
- Leases and ledger (leases, payments, ledger_entries)
- Maintenance (maintenance_requests)
- Notifications (notification_jobs)
"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _property_fk() -> sa.Column:
    return sa.Column(
        "property_id",
        sa.Integer(),
        sa.ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


def upgrade() -> None:
    """Create all tables."""

    # users - profile mirror of the authentication service
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(120), nullable=False),
        sa.Column("last_name", sa.String(120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    # =====================
    # PROPERTY MANAGEMENT
    # =====================

    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=False),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("state", sa.String(120), nullable=True),
        sa.Column("zip_code", sa.String(20), nullable=True),
        sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _property_fk(),
        sa.Column("unit_number", sa.String(50), nullable=False),
        sa.Column("bedrooms", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("bathrooms", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("square_feet", sa.Integer(), nullable=True),
        sa.Column("rent", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "status",
            sa.Enum("AVAILABLE", "RENTED", "MAINTENANCE", name="unitstatus"),
            nullable=False,
            server_default="AVAILABLE",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_units_number", "units", ["property_id", "unit_number"], unique=True)

    op.create_table(
        "staff",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _property_fk(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("first_name", sa.String(120), nullable=False),
        sa.Column("last_name", sa.String(120), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("position", sa.String(120), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    # =====================
    # TENANT MANAGEMENT
    # =====================

    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _property_fk(),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id"), nullable=False, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True, index=True),
        sa.Column("first_name", sa.String(120), nullable=False),
        sa.Column("last_name", sa.String(120), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    # =====================
    # LEASES AND LEDGER
    # =====================

    op.create_table(
        "leases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _property_fk(),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False, index=True),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id"), nullable=False, index=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("rent", sa.Numeric(12, 2), nullable=False),
        sa.Column("deposit", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column(
            "status",
            sa.Enum("PENDING", "ACTIVE", "TERMINATED", "EXPIRED", "DENIED", name="leasestatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("termination_reason", sa.Text(), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("terminated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("renewal_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("start_date <= end_date", name="ck_leases_dates"),
        sa.CheckConstraint("rent > 0", name="ck_leases_rent_positive"),
        sa.CheckConstraint("deposit >= 0", name="ck_leases_deposit_non_negative"),
    )
    op.create_index("ix_leases_status", "leases", ["status"])
    op.create_index("ix_leases_unit_status", "leases", ["unit_id", "status"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _property_fk(),
        sa.Column("lease_id", sa.Integer(), sa.ForeignKey("leases.id"), nullable=False, index=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("gateway_reference", sa.String(255), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "CONFIRMED", "FAILED", "EXPIRED", name="paymentstatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("initiated_by_user_id", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("gateway_reference"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_status_created", "payments", ["status", "created_at"])

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _property_fk(),
        sa.Column("lease_id", sa.Integer(), sa.ForeignKey("leases.id"), nullable=False, index=True),
        sa.Column(
            "entry_type",
            sa.Enum("DEPOSIT_CHARGE", "RENT_CHARGE", "PAYMENT", "ADJUSTMENT", name="ledgerentrytype"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("period", sa.String(16), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_id"),
        sa.UniqueConstraint("lease_id", "entry_type", "period", name="uq_ledger_entries_period"),
        sa.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )

    # =====================
    # MAINTENANCE
    # =====================

    op.create_table(
        "maintenance_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _property_fk(),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id"), nullable=False, index=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False, index=True),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("staff.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "priority",
            sa.Enum("LOW", "MEDIUM", "HIGH", name="maintenancepriority"),
            nullable=False,
            server_default="MEDIUM",
        ),
        sa.Column(
            "status",
            sa.Enum("OPEN", "ASSIGNED", "IN_PROGRESS", "COMPLETED", "CANCELLED", name="maintenancestatus"),
            nullable=False,
            server_default="OPEN",
        ),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_maintenance_requests_property_status",
        "maintenance_requests",
        ["property_id", "status"],
    )

    # =====================
    # NOTIFICATION OUTBOX
    # =====================

    op.create_table(
        "notification_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "kind",
            sa.Enum(
                "VERIFICATION",
                "APPLICATION_SUBMITTED",
                "APPLICATION_APPROVED",
                "APPLICATION_DENIED",
                "LEASE_CONFIRMED",
                "PAYMENT_RECEIVED",
                "MAINTENANCE_STATUS_CHANGED",
                name="notificationkind",
            ),
            nullable=False,
        ),
        sa.Column("recipient_email", sa.String(255), nullable=False),
        sa.Column("recipient_name", sa.String(255), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "SENT", "FAILED", name="notificationstatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_jobs_due", "notification_jobs", ["status", "next_attempt_at"])


def downgrade() -> None:
    """Drop all tables in reverse order."""

    op.drop_table("notification_jobs")
    op.drop_table("maintenance_requests")
    op.drop_table("ledger_entries")
    op.drop_table("payments")
    op.drop_table("leases")
    op.drop_table("tenants")
    op.drop_table("staff")
    op.drop_table("units")
    op.drop_table("properties")
    op.drop_table("users")
