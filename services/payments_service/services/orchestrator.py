"""Payment orchestration for store orders.

Starts payments through the gateway chosen by the order's payment method,
and applies provider callbacks to the Payment and Order records. Callback
handling is idempotent: a replay that reaches the status already recorded is
acknowledged without touching anything.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Optional

from libs.auth.models import OwnerIdentity
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.errors import (
    GatewayError,
    IllegalTransitionError,
    NotFoundError,
    PaymentAlreadyExistsError,
    SignatureError,
)
from libs.common.logging import get_logger
from libs.db.session import run_bounded
from services.payments_service.gateways.base import (
    CallbackResult,
    CustomerInfo,
    PaymentGateway,
)
from services.payments_service.gateways.registry import GatewayRegistry
from services.payments_service.models import (
    PAYMENT_LIFECYCLE,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from services.store_service.models import ORDER_LIFECYCLE, Order, OrderStatus
from services.store_service.services.order_engine import find_order, get_order
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

OUTCOME_APPLIED = "applied"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_IGNORED = "ignored"


@dataclass
class CallbackOutcome:
    outcome: str
    order_id: Optional[uuid.UUID] = None
    payment_status: Optional[PaymentStatus] = None


@dataclass
class PaymentStatusView:
    order: Order
    payment: Optional[Payment]

    @property
    def payment_status(self) -> PaymentStatus:
        return self.payment.status if self.payment else PaymentStatus.PENDING

    @property
    def payment_url(self) -> Optional[str]:
        return self.payment.payment_url if self.payment else None


def customer_from_order(order: Order) -> CustomerInfo:
    return CustomerInfo(
        full_name=order.full_name,
        email=order.email,
        phone_number=order.phone_number,
    )


async def get_payment_for_order(
    db: AsyncSession, order_id: uuid.UUID
) -> Optional[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ============================================================================
# INITIATION
# ============================================================================


async def initiate_payment(
    db: AsyncSession,
    order: Order,
    method: PaymentMethod,
    customer: CustomerInfo,
    registry: GatewayRegistry,
) -> Payment:
    """Create the order's payment, calling the provider when one is involved.

    If the provider fails, GatewayError propagates and no payment row is
    written. The order and its stock reservation are left as they are; the
    customer can retry initiation later.
    """
    if await get_payment_for_order(db, order.id) is not None:
        raise PaymentAlreadyExistsError(
            f"Order {order.order_number} already has a payment",
            order_id=str(order.id),
        )

    payment = Payment(
        order_id=order.id,
        payment_method=method,
        status=PaymentStatus.PENDING,
        amount=order.total,
        currency=order.currency,
    )

    gateway = registry.for_method(method)
    if gateway is not None:
        settings = get_settings()
        callback_url = f"{settings.APP_URL}/payments/callbacks/{gateway.name}"
        return_url = f"{settings.FRONTEND_URL}/checkout/success?orderId={order.id}"
        try:
            result = await gateway.initiate(
                order.total, order.order_number, customer, callback_url, return_url
            )
        except GatewayError as e:
            e.context.update(order_id=str(order.id), order_number=order.order_number)
            logger.error(
                "Payment initiation via %s failed for order %s: %s",
                gateway.name,
                order.order_number,
                e,
            )
            raise

        payment.gateway = gateway.name
        payment.external_ref = result.external_ref
        payment.payment_url = result.payment_url
        payment.callback_url = callback_url

    order_id, order_number = order.id, order.order_number
    db.add(payment)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise PaymentAlreadyExistsError(
            f"Order {order_number} already has a payment",
            order_id=str(order_id),
        ) from e

    logger.info(
        "Initiated %s payment for order %s (gateway=%s)",
        method.value,
        order_number,
        payment.gateway or "none",
    )
    return payment


# ============================================================================
# CALLBACKS
# ============================================================================


async def handle_callback(
    db: AsyncSession,
    registry: GatewayRegistry,
    gateway_name: str,
    raw_payload: bytes,
    signature: Optional[str],
) -> CallbackOutcome:
    """Authenticate a provider callback and apply it.

    Raises NotFoundError for an unknown gateway, SignatureError for an
    unauthenticated payload, and IllegalTransitionError when the callback
    contradicts a terminal status already recorded. The database work runs
    within the same time bounds as checkout and raises
    TransactionTimeoutError when they are exceeded.
    """
    gateway = registry.by_name(gateway_name)
    try:
        result = gateway.verify_callback(raw_payload, signature)
    except SignatureError as e:
        logger.warning("Rejected %s callback: %s", gateway_name, e)
        raise

    return await run_bounded(
        db,
        lambda: _apply_callback(db, gateway, result),
        "Callback transaction",
        gateway=gateway_name,
        order_ref=result.order_ref,
    )


async def _apply_callback(
    db: AsyncSession, gateway: PaymentGateway, result: CallbackResult
) -> CallbackOutcome:
    gateway_name = gateway.name
    order = await _find_order_by_number(db, result.order_ref)
    if order is None:
        logger.warning(
            "%s callback for unknown order %s ignored", gateway_name, result.order_ref
        )
        return CallbackOutcome(OUTCOME_IGNORED)

    payment = await get_payment_for_order(db, order.id)
    if payment is None or payment.gateway != gateway.name:
        logger.warning(
            "%s callback for order %s has no matching payment; ignored",
            gateway_name,
            order.order_number,
        )
        return CallbackOutcome(OUTCOME_IGNORED, order_id=order.id)

    target = result.status
    if payment.status == target:
        logger.info(
            "Duplicate %s callback for order %s (%s)",
            gateway_name,
            order.order_number,
            target.value,
        )
        return CallbackOutcome(OUTCOME_DUPLICATE, order.id, payment.status)
    PAYMENT_LIFECYCLE.ensure(payment.status, target)

    if result.amount is not None and result.amount != payment.amount:
        logger.error(
            "Amount mismatch on %s callback for order %s: expected %s, got %s",
            gateway_name,
            order.order_number,
            payment.amount,
            result.amount,
        )
        return CallbackOutcome(OUTCOME_IGNORED, order.id, payment.status)

    outcome = await _settle(
        db,
        payment,
        order,
        target,
        external_ref=result.external_ref,
        gateway_response=result.payload,
    )
    logger.info(
        "Payment %s for order %s via %s (%s)",
        target.value,
        order.order_number,
        gateway_name,
        outcome,
    )
    return CallbackOutcome(outcome, order.id, target)


async def _find_order_by_number(db: AsyncSession, order_number: str) -> Optional[Order]:
    result = await db.execute(select(Order).where(Order.order_number == order_number))
    return result.scalar_one_or_none()


async def _settle(
    db: AsyncSession,
    payment: Payment,
    order: Order,
    target: PaymentStatus,
    external_ref: Optional[str] = None,
    gateway_response: Optional[dict] = None,
) -> str:
    """Move a PENDING payment to ``target`` and confirm the order on SUCCESS.

    Both writes are conditional on the current status, so of two concurrent
    callbacks only one applies; the other re-reads and reports a duplicate.
    """
    now = utc_now()
    values = {"status": target, "updated_at": now}
    if target == PaymentStatus.SUCCESS:
        values["paid_at"] = now
    if external_ref:
        values["external_ref"] = external_ref
    if gateway_response is not None:
        values["gateway_response"] = gateway_response

    applied = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(**values)
    )
    if applied.rowcount != 1:
        current = await get_payment_for_order(db, payment.order_id)
        if current is not None and current.status == target:
            return OUTCOME_DUPLICATE
        raise IllegalTransitionError(
            "payment", current.status if current else PaymentStatus.PENDING, target
        )

    if target == PaymentStatus.SUCCESS and order.status != OrderStatus.CONFIRMED:
        ORDER_LIFECYCLE.ensure(order.status, OrderStatus.CONFIRMED)
        await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING)
            .values(status=OrderStatus.CONFIRMED, updated_at=now)
        )

    await db.commit()
    return OUTCOME_APPLIED


# ============================================================================
# MANUAL CONFIRMATION
# ============================================================================


async def confirm_payment_manually(
    db: AsyncSession, order_id: uuid.UUID, external_ref: Optional[str] = None
) -> Payment:
    """Mark an order as paid without a provider callback.

    Used for cash collected on delivery and for test flows. Creates the
    payment if the order has none yet. Confirming twice is harmless.
    """
    order = await find_order(db, order_id)
    if order is None:
        raise NotFoundError("Order not found", order_id=str(order_id))

    order_number = order.order_number
    reference = external_ref or f"MANUAL-{int(time.time() * 1000)}"
    payment = await get_payment_for_order(db, order.id)

    if payment is None:
        now = utc_now()
        payment = Payment(
            order_id=order.id,
            payment_method=order.payment_method,
            status=PaymentStatus.SUCCESS,
            amount=order.total,
            currency=order.currency,
            external_ref=reference,
            gateway_response={"manual": True, "external_ref": external_ref},
            paid_at=now,
        )
        db.add(payment)
        if order.status != OrderStatus.CONFIRMED:
            ORDER_LIFECYCLE.ensure(order.status, OrderStatus.CONFIRMED)
            order.status = OrderStatus.CONFIRMED
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise PaymentAlreadyExistsError(
                f"Order {order_number} already has a payment",
                order_id=str(order_id),
            ) from e
    elif payment.status != PaymentStatus.SUCCESS:
        PAYMENT_LIFECYCLE.ensure(payment.status, PaymentStatus.SUCCESS)
        await _settle(
            db,
            payment,
            order,
            PaymentStatus.SUCCESS,
            external_ref=reference,
            gateway_response={"manual": True, "external_ref": external_ref},
        )

    logger.info("Payment for order %s confirmed manually", order_number)
    return await get_payment_for_order(db, order_id)


# ============================================================================
# STATUS
# ============================================================================


async def get_payment_status(
    db: AsyncSession, order_id: uuid.UUID, identity: OwnerIdentity
) -> PaymentStatusView:
    """Payment and order status for the order's owner."""
    order = await get_order(db, order_id, identity)
    payment = await get_payment_for_order(db, order.id)
    return PaymentStatusView(order=order, payment=payment)
