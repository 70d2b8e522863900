"""Authorization scope resolution for TenantTrack."""

from .dependencies import CurrentScope, get_current_scope
from .models import ROLE_CAPABILITIES, Capability
from .routers import router
from .schemas import SYSTEM_SCOPE, AccessScope
from .services import (
    deny,
    ensure_in_scope,
    ensure_manages,
    require_capability,
    resolve_scope,
    scope_filter,
)

__all__ = [
    "AccessScope",
    "Capability",
    "ROLE_CAPABILITIES",
    "SYSTEM_SCOPE",
    "CurrentScope",
    "get_current_scope",
    "router",
    "deny",
    "ensure_in_scope",
    "ensure_manages",
    "require_capability",
    "resolve_scope",
    "scope_filter",
]
