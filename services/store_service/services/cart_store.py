"""Cart store: one cart per owner (user or guest session).

Stock checks here are advisory. They produce warnings on the cart view but
never block; stock is only enforced by the order engine at checkout.
"""

import uuid
from decimal import Decimal
from typing import Optional

from libs.auth.models import OwnerIdentity
from libs.common.datetime_utils import utc_now
from libs.common.errors import ConflictError, NotFoundError
from libs.common.logging import get_logger
from services.store_service.models import Cart, CartItem, Product
from services.store_service.schemas import CartLineView, CartView, ProductSnapshot
from services.store_service.services.products import get_product, get_products
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


def owner_clause(model, identity: OwnerIdentity):
    """WHERE clause selecting rows of ``model`` owned by ``identity``."""
    if identity.user_id:
        return model.member_auth_id == identity.user_id
    return model.session_id == identity.session_token


def _find_line(cart: Cart, product_id: uuid.UUID) -> Optional[CartItem]:
    return next((item for item in cart.items if item.product_id == product_id), None)


def _soft_stock_check(product: Product, quantity: int) -> list[str]:
    if product.stock >= quantity:
        return []
    logger.info(
        "Cart quantity %d exceeds stock %d for product %s",
        quantity,
        product.stock,
        product.id,
    )
    return [
        f"Only {product.stock} of '{product.name}' currently available; "
        f"availability is confirmed at checkout."
    ]


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Cart was modified concurrently, please retry") from e


# ============================================================================
# LOOKUP
# ============================================================================


async def get_cart(db: AsyncSession, identity: OwnerIdentity) -> Optional[Cart]:
    result = await db.execute(
        select(Cart)
        .where(owner_clause(Cart, identity))
        .options(selectinload(Cart.items))
    )
    return result.scalar_one_or_none()


async def get_or_create_cart(db: AsyncSession, identity: OwnerIdentity) -> Cart:
    """Return the owner's cart, creating it lazily.

    The new row is flushed inside a savepoint so that losing a creation race
    to a concurrent request for the same owner falls back to the winner's
    cart instead of failing the outer transaction.
    """
    cart = await get_cart(db, identity)
    if cart:
        return cart

    cart = Cart(
        member_auth_id=identity.user_id,
        session_id=identity.session_token,
        items=[],
    )
    try:
        async with db.begin_nested():
            db.add(cart)
    except IntegrityError:
        cart = await get_cart(db, identity)
        if cart is None:
            raise
        return cart

    logger.info("Created cart %s for %s", cart.id, identity)
    return cart


# ============================================================================
# MUTATIONS
# ============================================================================


async def add_item(
    db: AsyncSession,
    identity: OwnerIdentity,
    product_id: uuid.UUID,
    quantity: int,
) -> CartView:
    """Add ``quantity`` units of a product, summing with an existing line."""
    product = await get_product(db, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=str(product_id))

    cart = await get_or_create_cart(db, identity)
    item = _find_line(cart, product_id)
    new_quantity = (item.quantity if item else 0) + quantity
    warnings = _soft_stock_check(product, new_quantity)

    if item:
        item.quantity = new_quantity
    else:
        cart.items.append(CartItem(product_id=product_id, quantity=quantity))
    cart.updated_at = utc_now()

    await _commit(db)
    return await get_view(db, identity, warnings=warnings)


async def set_item_quantity(
    db: AsyncSession,
    identity: OwnerIdentity,
    product_id: uuid.UUID,
    quantity: int,
) -> CartView:
    """Replace the quantity of an existing line.

    If the product has been deleted since it was added, the line is dropped.
    """
    cart = await get_cart(db, identity)
    item = _find_line(cart, product_id) if cart else None
    if item is None:
        raise NotFoundError(
            f"Product {product_id} not found in cart", product_id=str(product_id)
        )

    product = await get_product(db, product_id)
    if product is None:
        cart.items.remove(item)
        warnings = ["This product is no longer available and was removed from your cart."]
    else:
        warnings = _soft_stock_check(product, quantity)
        item.quantity = quantity
    cart.updated_at = utc_now()

    await _commit(db)
    return await get_view(db, identity, warnings=warnings)


async def remove_item(
    db: AsyncSession, identity: OwnerIdentity, product_id: uuid.UUID
) -> CartView:
    cart = await get_cart(db, identity)
    item = _find_line(cart, product_id) if cart else None
    if item is None:
        raise NotFoundError(
            f"Product {product_id} not found in cart", product_id=str(product_id)
        )

    cart.items.remove(item)
    cart.updated_at = utc_now()
    await _commit(db)
    return await get_view(db, identity)


async def merge_guest_into_user(
    db: AsyncSession, session_token: str, user_id: str
) -> CartView:
    """Fold a guest cart into the user's cart at login/registration.

    Quantities of the same product are summed and the guest cart is deleted.
    Without a guest cart this is a no-op, so repeated calls are harmless.
    """
    user_identity = OwnerIdentity.for_user(user_id)
    guest_cart = await get_cart(db, OwnerIdentity.for_guest(session_token))
    if guest_cart is None:
        return await get_view(db, user_identity)

    user_cart = await get_or_create_cart(db, user_identity)
    lines = {item.product_id: item for item in user_cart.items}
    for guest_item in guest_cart.items:
        existing = lines.get(guest_item.product_id)
        if existing:
            existing.quantity += guest_item.quantity
        else:
            new_item = CartItem(
                product_id=guest_item.product_id, quantity=guest_item.quantity
            )
            user_cart.items.append(new_item)
            lines[guest_item.product_id] = new_item
    user_cart.updated_at = utc_now()

    merged = len(guest_cart.items)
    await db.delete(guest_cart)
    await _commit(db)

    logger.info(
        "Merged guest cart %s (%d lines) into cart %s for user %s",
        guest_cart.id,
        merged,
        user_cart.id,
        user_id,
    )
    return await get_view(db, user_identity)


# ============================================================================
# VIEW
# ============================================================================


async def get_view(
    db: AsyncSession,
    identity: OwnerIdentity,
    warnings: Optional[list[str]] = None,
) -> CartView:
    """Cart contents enriched with live product data.

    Lines whose product was deleted are kept with ``product=None`` so the
    customer can see what disappeared. Does not create a cart.
    """
    cart = await get_cart(db, identity)
    if cart is None:
        return CartView(
            member_auth_id=identity.user_id,
            session_id=identity.session_token,
            warnings=warnings or [],
        )

    products = await get_products(db, (item.product_id for item in cart.items))
    lines = []
    subtotal = Decimal("0")
    for item in cart.items:
        product = products.get(item.product_id)
        if product is None:
            lines.append(CartLineView(product_id=item.product_id, quantity=item.quantity))
            continue

        line_total = product.price * item.quantity
        subtotal += line_total
        lines.append(
            CartLineView(
                product_id=item.product_id,
                quantity=item.quantity,
                product=ProductSnapshot.model_validate(product),
                in_stock=product.stock >= item.quantity,
                line_total=line_total,
            )
        )

    return CartView(
        id=cart.id,
        member_auth_id=cart.member_auth_id,
        session_id=cart.session_id,
        items=lines,
        subtotal=subtotal,
        warnings=warnings or [],
        updated_at=cart.updated_at,
    )
