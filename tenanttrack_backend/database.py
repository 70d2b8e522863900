"""
Database configuration for the TenantTrack backend.

Every record that belongs to a property carries a cached ``property_id`` so
authorization scope checks never have to walk relationships.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Integer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Mapped, declarative_base, declared_attr, mapped_column
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.sql import func

from .config import settings
from .core.exceptions import ConcurrentUpdateError
from .core.utils import utc_now

logger = logging.getLogger(__name__)

# Create async engine with SSL support for MySQL
connect_args = {}
if settings.database_url.startswith("mysql+asyncmy"):
    connect_args = {
        "ssl": {
            "ssl_check_hostname": settings.database_ssl_check_hostname,
            "ssl_verify_cert": settings.database_ssl_verify_cert,
            "ssl_verify_identity": settings.database_ssl_verify_identity,
        },
    }

engine = create_async_engine(
    settings.database_url,
    echo=settings.app_debug,
    future=True,
    connect_args=connect_args,
    pool_pre_ping=True,
    pool_recycle=3600,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Base class
Base = declarative_base()


class TimestampMixin:
    """Mixin to add created and updated timestamps to models.

    Values are also set client-side so they are readable right after a flush
    without another round trip.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
    )


class PropertyScoped:
    """Mixin for records that resolve to exactly one owning property.

    The property id is cached on the row at creation time; it is the only
    value the scope resolver compares against.
    """

    @declared_attr
    def property_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer,
            ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Initialize database tables (development only; use Alembic elsewhere)."""
    from .modules.auth import models as auth_models  # noqa: F401
    from .modules.lease_management import models as lease_models  # noqa: F401
    from .modules.maintenance import models as maintenance_models  # noqa: F401
    from .modules.notifications import models as notification_models  # noqa: F401
    from .modules.payments import models as payment_models  # noqa: F401
    from .modules.property_management import models as property_models  # noqa: F401
    from .modules.tenant_management import models as tenant_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def commit_or_conflict(
    db: AsyncSession, resource_type: str, identifier: Any
) -> None:
    """Commit, turning a lost optimistic-lock race into ConcurrentUpdateError."""
    try:
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        logger.warning(
            "Concurrent update detected",
            extra={"resource_type": resource_type, "identifier": identifier},
        )
        raise ConcurrentUpdateError(
            f"{resource_type} '{identifier}' was modified concurrently; retry",
            {"resource_type": resource_type, "identifier": identifier},
        ) from exc
