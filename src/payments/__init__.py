"""Payments module.

Provides:
- Checkout orders and gateway verification
- Payment lifecycle (pending, completed, failed, refunded)
- Payment-to-enrollment bridge (idempotent per gateway order id)
"""

from .models import (
    PAYMENTS_TABLES_CQL,
    Payment,
    PaymentApplication,
    PaymentStatus,
    PaymentType,
)


__all__ = [
    "PAYMENTS_TABLES_CQL",
    "Payment",
    "PaymentApplication",
    "PaymentStatus",
    "PaymentType",
]
