"""Access control schemas."""

from pydantic import BaseModel, Field

from .models import Capability


class AccessScope(BaseModel):
    """Everything a principal may act on.

    ``property_ids`` is the union of every property reachable through any of
    the principal's roles. Tenant-reached properties are further restricted
    to the principal's own tenant records.
    """

    user_id: int | None = None
    is_admin: bool = False
    owned_property_ids: frozenset[int] = Field(default_factory=frozenset)
    staff_property_ids: frozenset[int] = Field(default_factory=frozenset)
    tenant_property_ids: frozenset[int] = Field(default_factory=frozenset)
    tenant_ids: frozenset[int] = Field(default_factory=frozenset)
    staff_ids: frozenset[int] = Field(default_factory=frozenset)
    capabilities: frozenset[Capability] = Field(default_factory=frozenset)

    class Config:
        frozen = True

    @property
    def property_ids(self) -> frozenset[int]:
        return self.owned_property_ids | self.staff_property_ids | self.tenant_property_ids

    def manages(self, property_id: int) -> bool:
        """True for admins and the landlord owning ``property_id``."""
        return self.is_admin or property_id in self.owned_property_ids

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


# Scope for scheduled jobs and signature-verified gateway callbacks.
SYSTEM_SCOPE = AccessScope(is_admin=True, capabilities=frozenset(Capability))


class ScopeResponse(BaseModel):
    user_id: int | None
    is_admin: bool
    property_ids: list[int]
    owned_property_ids: list[int]
    staff_property_ids: list[int]
    tenant_property_ids: list[int]
    tenant_ids: list[int]
    capabilities: list[Capability]
