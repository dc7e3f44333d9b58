"""FastAPI application for the Payments Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.payments_service.routers import (
    admin_router,
    callbacks_router,
    orders_router,
)


def create_app() -> FastAPI:
    """Create and configure the Payments Service FastAPI app."""
    app = FastAPI(
        title="Payments Service",
        version="0.1.0",
        description="Payment initiation and gateway callbacks for store orders.",
    )
    add_observability_middleware(app, service="payments")
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "payments"}

    app.include_router(callbacks_router)
    app.include_router(orders_router)
    app.include_router(admin_router)

    return app


app = create_app()
