"""Payments Service schemas package."""

from services.payments_service.schemas.main import (
    CallbackAck,
    InitiatePaymentResponse,
    ManualConfirmRequest,
    PaymentResponse,
    PaymentStatusResponse,
)

__all__ = [
    "CallbackAck",
    "InitiatePaymentResponse",
    "ManualConfirmRequest",
    "PaymentResponse",
    "PaymentStatusResponse",
]
