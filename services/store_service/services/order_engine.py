"""Order transaction engine.

Turns an owner's cart into an order in a single database transaction:
validate, price, take stock with a conditional decrement, insert the order
snapshot and clear the cart. Either all of it commits or none of it does.
"""

import uuid
from decimal import Decimal
from typing import Optional

from libs.auth.models import OwnerIdentity
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.errors import (
    InsufficientStockError,
    NotFoundError,
    OrderNumberCollisionError,
    StockChangedError,
    ValidationError,
)
from libs.common.logging import get_logger
from libs.db.session import run_bounded
from services.store_service.models import (
    CartItem,
    Order,
    OrderItem,
    OrderStatus,
    Product,
)
from services.store_service.schemas import CheckoutRequest
from services.store_service.services import products as product_store
from services.store_service.services.cart_store import get_cart, owner_clause
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 2


# ============================================================================
# CREATE
# ============================================================================


async def create_order(
    db: AsyncSession, identity: OwnerIdentity, details: CheckoutRequest
) -> Order:
    """Place an order for everything in the owner's cart.

    Raises ValidationError for an empty cart, a ConflictError subclass when
    stock is short or changes underneath us, and TransactionTimeoutError when
    the transaction cannot start or finish within the configured bounds.
    The session is rolled back on every failure.
    """
    order = await run_bounded(
        db,
        lambda: _place_order(db, identity, details),
        "Order transaction",
        owner=str(identity),
    )

    logger.info(
        "Created order %s for %s: %d items, total %s %s",
        order.order_number,
        identity,
        len(order.items),
        order.total,
        order.currency,
    )
    return order


async def _place_order(
    db: AsyncSession, identity: OwnerIdentity, details: CheckoutRequest
) -> Order:
    cart = await get_cart(db, identity)
    if cart is None or not cart.items:
        raise ValidationError("Cart is empty", owner=str(identity))

    # Lines whose product was deleted are skipped.
    products = await product_store.get_products(
        db, (item.product_id for item in cart.items)
    )
    lines = [
        (item, products[item.product_id])
        for item in cart.items
        if item.product_id in products
    ]
    if not lines:
        raise ValidationError(
            "None of the products in your cart are available anymore",
            owner=str(identity),
        )

    _check_stock(lines)

    total = sum(
        (product.price * item.quantity for item, product in lines), Decimal("0")
    )

    # Stock rows are locked in product id order, never in cart order.
    for item, product in sorted(lines, key=lambda line: line[1].id):
        taken = await product_store.decrement_stock(db, product.id, item.quantity)
        if not taken:
            logger.info(
                "Stock for product %s changed during checkout for %s",
                product.id,
                identity,
            )
            raise StockChangedError(
                f"Stock for '{product.name}' changed during checkout. "
                "Please review your cart and try again.",
                product_id=str(product.id),
            )

    order = await _insert_order(db, identity, details, lines, total)

    # Clear the cart but keep the row for the owner's next purchase.
    cart.items.clear()
    cart.updated_at = utc_now()

    await db.commit()
    return order


def _check_stock(lines: list[tuple[CartItem, Product]]) -> None:
    short = [(item, product) for item, product in lines if item.quantity > product.stock]
    if not short:
        return
    names = ", ".join(
        f"'{product.name}' ({product.stock} left, {item.quantity} requested)"
        for item, product in short
    )
    raise InsufficientStockError(
        f"Not enough stock for {names}",
        products=[str(product.id) for _, product in short],
    )


async def _insert_order(
    db: AsyncSession,
    identity: OwnerIdentity,
    details: CheckoutRequest,
    lines: list[tuple[CartItem, Product]],
    total: Decimal,
) -> Order:
    """Insert the order snapshot, regenerating the number once on collision."""
    currency = get_settings().CURRENCY

    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        order = Order(
            order_number=Order.generate_order_number(),
            member_auth_id=identity.user_id,
            session_id=identity.session_token,
            status=OrderStatus.PENDING,
            payment_method=details.payment_method,
            total=total,
            currency=currency,
            full_name=details.full_name,
            email=details.email,
            phone_number=details.phone_number,
            national_id=details.national_id,
            date_of_birth=details.date_of_birth,
            billing_address=details.billing_address.model_dump(),
            shipping_address=details.shipping_address.model_dump(),
            items=[
                OrderItem(
                    product_id=product.id,
                    position=position,
                    product_name=product.name,
                    quantity=item.quantity,
                    unit_price=product.price,
                    line_total=product.price * item.quantity,
                )
                for position, (item, product) in enumerate(lines)
            ],
        )
        try:
            async with db.begin_nested():
                db.add(order)
        except IntegrityError:
            logger.warning(
                "Order number %s already taken (attempt %d)",
                order.order_number,
                attempt,
            )
            continue
        return order

    raise OrderNumberCollisionError(
        "Could not allocate an order number. Please try again."
    )


# ============================================================================
# READ
# ============================================================================


def readable_by(identity: OwnerIdentity):
    """WHERE clause for orders the owner may read, including a linked guest session."""
    clause = owner_clause(Order, identity)
    if identity.linked_session_token:
        return or_(clause, Order.session_id == identity.linked_session_token)
    return clause


async def get_order(
    db: AsyncSession, order_id: uuid.UUID, identity: OwnerIdentity
) -> Order:
    """Fetch one of the owner's orders.

    An order belonging to someone else is reported exactly like a missing one.
    """
    order = await find_order(db, order_id, identity)
    if order is None:
        raise NotFoundError("Order not found", order_id=str(order_id))
    return order


async def find_order(
    db: AsyncSession, order_id: uuid.UUID, identity: Optional[OwnerIdentity] = None
) -> Optional[Order]:
    query = (
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
        .execution_options(populate_existing=True)
    )
    if identity is not None:
        query = query.where(readable_by(identity))
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_orders(db: AsyncSession, identity: OwnerIdentity) -> list[Order]:
    """All of the owner's orders, newest first."""
    result = await db.execute(
        select(Order)
        .where(readable_by(identity))
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc())
    )
    return list(result.scalars().all())
