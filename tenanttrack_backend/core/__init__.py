"""Core infrastructure for the TenantTrack backend."""

from .exceptions import (
    AlreadyFailedError,
    AuthenticationError,
    ConcurrentUpdateError,
    ExternalUnavailableError,
    ForbiddenError,
    InvalidLedgerStateError,
    InvalidTransitionError,
    NotFoundError,
    TenantTrackException,
    UnknownPaymentError,
    ValidationError,
)
from .locks import hold
from .utils import billing_period, period_start, to_money, utc_now, utc_today

__all__ = [
    "TenantTrackException",
    "AlreadyFailedError",
    "AuthenticationError",
    "ConcurrentUpdateError",
    "ExternalUnavailableError",
    "ForbiddenError",
    "InvalidLedgerStateError",
    "InvalidTransitionError",
    "NotFoundError",
    "UnknownPaymentError",
    "ValidationError",
    "hold",
    "billing_period",
    "period_start",
    "to_money",
    "utc_now",
    "utc_today",
]
