"""Store cart router: cart operations for members and guests."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from libs.auth.dependencies import get_current_user, get_guest_token, get_owner_identity
from libs.auth.models import AuthUser, OwnerIdentity
from libs.common.errors import ValidationError
from libs.db.session import get_async_db
from services.store_service.schemas import CartItemCreate, CartItemUpdate, CartView
from services.store_service.services import cart_store
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


# ============================================================================
# CART ENDPOINTS
# ============================================================================


@router.get("/cart", response_model=CartView)
async def get_cart(
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
):
    """Get the current cart. An owner without a cart gets an empty one."""
    return await cart_store.get_view(db, identity)


@router.post("/cart/items", response_model=CartView)
async def add_to_cart(
    item_data: CartItemCreate,
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
):
    """Add item to cart, or bump the quantity if it is already there."""
    return await cart_store.add_item(
        db, identity, item_data.product_id, item_data.quantity
    )


@router.patch("/cart/items/{product_id}", response_model=CartView)
async def update_cart_item(
    product_id: uuid.UUID,
    update_data: CartItemUpdate,
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
):
    """Update cart item quantity."""
    return await cart_store.set_item_quantity(
        db, identity, product_id, update_data.quantity
    )


@router.delete("/cart/items/{product_id}", response_model=CartView)
async def remove_cart_item(
    product_id: uuid.UUID,
    identity: OwnerIdentity = Depends(get_owner_identity),
    db: AsyncSession = Depends(get_async_db),
):
    """Remove item from cart."""
    return await cart_store.remove_item(db, identity, product_id)


@router.post("/cart/merge", response_model=CartView)
async def merge_guest_cart(
    current_user: AuthUser = Depends(get_current_user),
    guest_token: Optional[str] = Depends(get_guest_token),
    db: AsyncSession = Depends(get_async_db),
):
    """Merge the guest cart identified by X-Guest-Token into the member's cart.

    Called by the identity service right after login or registration.
    """
    if not guest_token:
        raise ValidationError("A valid X-Guest-Token header is required to merge")
    return await cart_store.merge_guest_into_user(db, guest_token, current_user.user_id)
