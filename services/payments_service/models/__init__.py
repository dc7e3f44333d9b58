"""Payments Service models package."""

from services.payments_service.models.core import Payment
from services.payments_service.models.enums import (
    PAYMENT_LIFECYCLE,
    PaymentMethod,
    PaymentStatus,
)

__all__ = [
    "PAYMENT_LIFECYCLE",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
]
