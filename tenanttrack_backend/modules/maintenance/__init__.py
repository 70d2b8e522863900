"""Maintenance request workflow."""

from .models import MaintenancePriority, MaintenanceRequest, MaintenanceStatus
from .routers import router

__all__ = [
    "MaintenancePriority",
    "MaintenanceRequest",
    "MaintenanceStatus",
    "router",
]
