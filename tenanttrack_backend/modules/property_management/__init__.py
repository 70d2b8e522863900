"""Property management module for TenantTrack."""

from .models import Property, Staff, Unit, UnitStatus

__all__ = [
    "Property",
    "Staff",
    "Unit",
    "UnitStatus",
]
