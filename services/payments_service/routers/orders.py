"""Customer-facing payment endpoints: status polling and initiation retry."""

import uuid

from fastapi import APIRouter, Depends
from libs.auth.dependencies import get_owner_identity
from libs.auth.models import OwnerIdentity
from libs.db.session import get_async_db
from services.payments_service.gateways.registry import (
    GatewayRegistry,
    get_gateway_registry,
)
from services.payments_service.schemas import (
    InitiatePaymentResponse,
    PaymentStatusResponse,
)
from services.payments_service.services import orchestrator
from services.store_service.services import order_engine
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/orders/{order_id}/status", response_model=PaymentStatusResponse)
async def get_payment_status(
    order_id: uuid.UUID,
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
):
    """Poll the payment status of one of the caller's orders."""
    view = await orchestrator.get_payment_status(db, order_id, identity)
    return PaymentStatusResponse(
        order_id=view.order.id,
        order_number=view.order.order_number,
        order_status=view.order.status,
        payment_status=view.payment_status,
        payment_url=view.payment_url,
    )


@router.post("/orders/{order_id}/initiate", response_model=InitiatePaymentResponse)
async def retry_payment_initiation(
    order_id: uuid.UUID,
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """Start payment for an order whose initiation failed at checkout."""
    order = await order_engine.get_order(db, order_id, identity)
    payment = await orchestrator.initiate_payment(
        db,
        order,
        order.payment_method,
        orchestrator.customer_from_order(order),
        registry,
    )
    return InitiatePaymentResponse(
        order_id=order.id,
        order_number=order.order_number,
        payment_status=payment.status,
        payment_url=payment.payment_url,
    )
