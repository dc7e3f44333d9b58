"""Store Service models package."""

from services.store_service.models.catalog import Product
from services.store_service.models.commerce import Cart, CartItem, Order, OrderItem
from services.store_service.models.enums import (
    ORDER_LIFECYCLE,
    OrderStatus,
    PaymentMethod,
)

__all__ = [
    "Cart",
    "CartItem",
    "ORDER_LIFECYCLE",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "Product",
]
