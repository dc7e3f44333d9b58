import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.payments_service.models import PaymentMethod, PaymentStatus
from services.store_service.models import OrderStatus


class PaymentResponse(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID
    payment_method: PaymentMethod
    gateway: Optional[str] = None
    status: PaymentStatus
    amount: Decimal
    currency: str
    external_ref: Optional[str] = None
    payment_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentStatusResponse(BaseModel):
    """Polling view of an order's settlement."""

    order_id: uuid.UUID
    order_number: str
    order_status: OrderStatus
    # PENDING until a payment exists
    payment_status: PaymentStatus
    payment_url: Optional[str] = None


class InitiatePaymentResponse(BaseModel):
    order_id: uuid.UUID
    order_number: str
    payment_status: PaymentStatus
    payment_url: Optional[str] = None


class CallbackAck(BaseModel):
    received: bool = True
    outcome: str


class ManualConfirmRequest(BaseModel):
    external_ref: Optional[str] = Field(default=None, max_length=128)
