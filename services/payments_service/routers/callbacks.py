"""Gateway callback endpoint (no auth; each gateway verifies its signature)."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from libs.db.session import get_async_db
from services.payments_service.gateways.registry import (
    GatewayRegistry,
    get_gateway_registry,
)
from services.payments_service.schemas import CallbackAck
from services.payments_service.services import orchestrator
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/callbacks/{gateway}", response_model=CallbackAck)
async def gateway_callback(
    gateway: str,
    request: Request,
    x_signature: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_async_db),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """
    Receive an asynchronous payment result.

    Replays are acknowledged without side effects so the gateway stops retrying.
    """
    raw = await request.body()
    result = await orchestrator.handle_callback(db, registry, gateway, raw, x_signature)
    return CallbackAck(outcome=result.outcome)
