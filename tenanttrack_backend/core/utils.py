"""Common utilities for the TenantTrack backend."""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Get the current UTC calendar date."""
    return utc_now().date()


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize a monetary value to cents.

    Floats are rejected so rounding drift cannot enter the ledger.
    """
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats")
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def billing_period(day: date) -> str:
    """Return the ``YYYY-MM`` accrual period containing ``day``."""
    return f"{day.year:04d}-{day.month:02d}"


def period_start(period: str) -> date:
    """Return the first day of a ``YYYY-MM`` period."""
    year, month = period.split("-")
    return date(int(year), int(month), 1)
