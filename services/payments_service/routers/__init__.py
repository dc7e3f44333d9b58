"""Routers package."""

from services.payments_service.routers.admin import router as admin_router
from services.payments_service.routers.callbacks import router as callbacks_router
from services.payments_service.routers.orders import router as orders_router

__all__ = [
    "admin_router",
    "callbacks_router",
    "orders_router",
]
