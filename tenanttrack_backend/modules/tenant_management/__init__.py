"""Tenant management module for TenantTrack."""

from .models import Tenant

__all__ = ["Tenant"]
