"""Payment gateway dependency."""

from functools import lru_cache

from .gateway import PaymentGateway, StripeGateway


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return StripeGateway()
