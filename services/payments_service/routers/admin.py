"""Admin payment endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.payments_service.schemas import ManualConfirmRequest, PaymentResponse
from services.payments_service.services import orchestrator
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments/admin", tags=["payments-admin"])
logger = get_logger(__name__)


@router.post("/orders/{order_id}/confirm", response_model=PaymentResponse)
async def confirm_order_payment(
    order_id: uuid.UUID,
    payload: Optional[ManualConfirmRequest] = Body(default=None),
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Admin: mark an order as paid (cash collected, or test flows).
    """
    external_ref = payload.external_ref if payload else None
    payment = await orchestrator.confirm_payment_manually(db, order_id, external_ref)
    logger.info("Admin %s confirmed payment for order %s", admin.user_id, order_id)
    return payment
