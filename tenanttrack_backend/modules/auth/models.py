"""User model for TenantTrack.

Login identities are owned by the authentication service; this table only
mirrors the profile fields the engine needs for notifications.
"""

import enum

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ...database import Base, TimestampMixin


class RoleName(str, enum.Enum):
    """Role labels carried in the bearer token."""

    ADMIN = "admin"
    LANDLORD = "landlord"
    TENANT = "tenant"
    STAFF = "staff"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def full_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
