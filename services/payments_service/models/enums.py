"""Enum definitions for payments service models."""

import enum

from libs.common.state_machine import Lifecycle
from services.store_service.models.enums import PaymentMethod, enum_values


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


PAYMENT_LIFECYCLE = Lifecycle(
    "payment",
    {
        PaymentStatus.PENDING: {PaymentStatus.SUCCESS, PaymentStatus.FAILED},
        PaymentStatus.SUCCESS: set(),
        PaymentStatus.FAILED: set(),
    },
)

__all__ = ["PAYMENT_LIFECYCLE", "PaymentMethod", "PaymentStatus", "enum_values"]
