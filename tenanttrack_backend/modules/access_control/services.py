"""Authorization scope resolution.

Every service operation calls ``resolve_scope`` (through the router
dependency) and then one of the checks below before reading or mutating a
record. No other module inspects role labels.
"""

from sqlalchemy import ColumnElement, false, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.exceptions import ForbiddenError
from ...core.logging import get_logger
from ..auth.models import RoleName
from ..auth.schemas import Principal
from ..property_management.models import Property, Staff
from ..tenant_management.models import Tenant
from .models import ROLE_CAPABILITIES, Capability
from .schemas import AccessScope

logger = get_logger("access_control")


async def resolve_scope(db: AsyncSession, principal: Principal) -> AccessScope:
    """Compute the properties and capabilities available to ``principal``.

    Multiple roles union their scopes.
    """
    capabilities: set[Capability] = set()
    for role in principal.roles:
        capabilities |= ROLE_CAPABILITIES[role]

    owned: set[int] = set()
    staff_properties: set[int] = set()
    staff_ids: set[int] = set()
    tenant_properties: set[int] = set()
    tenant_ids: set[int] = set()

    if RoleName.LANDLORD in principal.roles:
        result = await db.execute(
            select(Property.id).where(Property.owner_user_id == principal.id)
        )
        owned = set(result.scalars().all())

    if RoleName.STAFF in principal.roles:
        result = await db.execute(
            select(Staff.id, Staff.property_id).where(Staff.user_id == principal.id)
        )
        for staff_id, property_id in result.all():
            staff_ids.add(staff_id)
            staff_properties.add(property_id)

    if RoleName.TENANT in principal.roles:
        result = await db.execute(
            select(Tenant.id, Tenant.property_id).where(Tenant.user_id == principal.id)
        )
        for tenant_id, property_id in result.all():
            tenant_ids.add(tenant_id)
            tenant_properties.add(property_id)

    return AccessScope(
        user_id=principal.id,
        is_admin=RoleName.ADMIN in principal.roles,
        owned_property_ids=frozenset(owned),
        staff_property_ids=frozenset(staff_properties),
        tenant_property_ids=frozenset(tenant_properties),
        tenant_ids=frozenset(tenant_ids),
        staff_ids=frozenset(staff_ids),
        capabilities=frozenset(capabilities),
    )


def deny(scope: AccessScope, action: str, resource: str, property_id: int | None):
    logger.warning(
        "Access denied",
        extra={
            "user_id": scope.user_id,
            "action": action,
            "resource": resource,
            "property_id": property_id,
        },
    )
    raise ForbiddenError(action, resource)


def require_capability(
    scope: AccessScope, *capabilities: Capability, action: str, resource: str
) -> None:
    """Raise ForbiddenError unless the scope holds any of ``capabilities``."""
    if not any(scope.can(capability) for capability in capabilities):
        deny(scope, action, resource, None)


def ensure_in_scope(
    scope: AccessScope,
    property_id: int,
    *,
    tenant_id: int | None = None,
    staff_visible: bool = False,
    action: str = "access",
    resource: str = "resource",
) -> None:
    """Raise ForbiddenError unless the record at ``property_id`` is visible.

    Landlords see every record of their properties. Staff see their
    property's records only when ``staff_visible`` is set (maintenance
    requests). A tenant sees only records that belong to one of their own
    tenant rows.
    """
    if scope.is_admin:
        return
    if property_id in scope.owned_property_ids:
        return
    if staff_visible and property_id in scope.staff_property_ids:
        return
    if (
        property_id in scope.tenant_property_ids
        and tenant_id is not None
        and tenant_id in scope.tenant_ids
    ):
        return
    deny(scope, action, resource, property_id)


def ensure_manages(
    scope: AccessScope,
    property_id: int,
    capability: Capability,
    *,
    action: str,
    resource: str,
) -> None:
    """Raise ForbiddenError unless the scope may manage ``property_id``."""
    if scope.manages(property_id) and scope.can(capability):
        return
    deny(scope, action, resource, property_id)


def scope_filter(
    scope: AccessScope,
    property_column: ColumnElement,
    tenant_column: ColumnElement | None = None,
    staff_visible: bool = False,
) -> ColumnElement[bool]:
    """SQL criterion restricting a listing to the records ``scope`` can read."""
    if scope.is_admin:
        return true()

    clauses = []
    managed = scope.owned_property_ids
    if staff_visible:
        managed = managed | scope.staff_property_ids
    if managed:
        clauses.append(property_column.in_(managed))
    if tenant_column is not None and scope.tenant_ids:
        clauses.append(tenant_column.in_(scope.tenant_ids))
    if not clauses:
        return false()
    return or_(*clauses)
