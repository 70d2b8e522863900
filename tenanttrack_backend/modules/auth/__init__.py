"""Authentication module for TenantTrack."""

from .dependencies import CurrentPrincipal, get_current_principal
from .models import RoleName, User
from .schemas import Principal

__all__ = [
    "User",
    "RoleName",
    "Principal",
    "get_current_principal",
    "CurrentPrincipal",
]
