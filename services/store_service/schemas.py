"""Pydantic schemas for the Store Service."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from services.store_service.models import OrderStatus, PaymentMethod

# ============================================================================
# PRODUCT
# ============================================================================


class ProductSnapshot(BaseModel):
    id: uuid.UUID
    name: str
    price: Decimal
    stock: int

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# CART
# ============================================================================


class CartItemCreate(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(default=1, ge=1, le=999)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1, le=999)


class CartLineView(BaseModel):
    product_id: uuid.UUID
    quantity: int
    # None when the product was deleted after being added
    product: Optional[ProductSnapshot] = None
    in_stock: bool = False
    line_total: Optional[Decimal] = None


class CartView(BaseModel):
    id: Optional[uuid.UUID] = None
    member_auth_id: Optional[str] = None
    session_id: Optional[str] = None
    items: list[CartLineView] = []
    subtotal: Decimal = Decimal("0")
    warnings: list[str] = []
    updated_at: Optional[datetime] = None

    @property
    def quantities(self) -> dict[uuid.UUID, int]:
        return {item.product_id: item.quantity for item in self.items}


# ============================================================================
# CHECKOUT
# ============================================================================


class AddressIn(BaseModel):
    street_address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)


class CustomerDetails(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone_number: str = Field(..., min_length=1, max_length=50)
    national_id: Optional[str] = Field(default=None, max_length=50)
    date_of_birth: Optional[date] = None
    billing_address: AddressIn
    shipping_address: AddressIn


class CheckoutRequest(CustomerDetails):
    payment_method: PaymentMethod


# ============================================================================
# ORDERS
# ============================================================================


class OrderItemResponse(BaseModel):
    product_id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    status: OrderStatus
    payment_method: PaymentMethod
    total: Decimal
    currency: str
    full_name: str
    email: str
    phone_number: str
    billing_address: dict
    shipping_address: dict
    items: list[OrderItemResponse] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CheckoutResponse(BaseModel):
    order: OrderResponse
    payment_url: Optional[str] = None
    message: str
