"""Store orders router: checkout and order history."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_owner_identity
from libs.auth.models import OwnerIdentity
from libs.db.session import get_async_db
from services.payments_service.gateways.registry import (
    GatewayRegistry,
    get_gateway_registry,
)
from services.payments_service.services import orchestrator
from services.store_service.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    OrderResponse,
)
from services.store_service.services import order_engine
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post(
    "/checkout", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED
)
async def checkout(
    request: CheckoutRequest,
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """Place an order from the cart, then start its payment.

    The order is committed before the gateway is called. If initiation fails
    the client gets a 502 carrying the order number and can retry through
    the payments service.
    """
    order = await order_engine.create_order(db, identity, request)
    payment = await orchestrator.initiate_payment(
        db,
        order,
        request.payment_method,
        orchestrator.customer_from_order(order),
        registry,
    )

    if payment.payment_url:
        message = "Order placed. Complete your payment to confirm it."
    else:
        message = "Order placed. Payment will be collected on delivery."

    return CheckoutResponse(
        order=OrderResponse.model_validate(order),
        payment_url=payment.payment_url,
        message=message,
    )


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", response_model=list[OrderResponse])
async def list_my_orders(
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's orders, newest first."""
    return await order_engine.list_orders(db, identity)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
):
    """Get one of the caller's orders."""
    return await order_engine.get_order(db, order_id, identity)
