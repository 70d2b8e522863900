"""Lease lifecycle and rent ledger for TenantTrack."""

from .models import Lease, LeaseStatus, LedgerEntry, LedgerEntryType
from .routers import router

__all__ = [
    "Lease",
    "LeaseStatus",
    "LedgerEntry",
    "LedgerEntryType",
    "router",
]
