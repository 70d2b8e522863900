"""Payments and the payment gateway collaborator.

Only models and the gateway are exported here; the ledger imports this
package, so services and routers are imported from their submodules.
"""

from .gateway import GatewayHandle, GatewayResult, GatewayStatus, PaymentGateway
from .models import Payment, PaymentStatus

__all__ = [
    "GatewayHandle",
    "GatewayResult",
    "GatewayStatus",
    "Payment",
    "PaymentGateway",
    "PaymentStatus",
]
