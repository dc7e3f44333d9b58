"""Product read model: lookups plus the conditional stock decrement."""

import uuid
from typing import Iterable, Optional

from services.store_service.models import Product
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession


async def get_product(db: AsyncSession, product_id: uuid.UUID) -> Optional[Product]:
    result = await db.execute(select(Product).where(Product.id == product_id))
    return result.scalar_one_or_none()


async def get_products(
    db: AsyncSession, product_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, Product]:
    """Return live products keyed by id. Deleted ids are simply absent."""
    ids = list(set(product_ids))
    if not ids:
        return {}
    # populate_existing: stock must reflect the database, not the identity map
    result = await db.execute(
        select(Product)
        .where(Product.id.in_(ids))
        .execution_options(populate_existing=True)
    )
    return {product.id: product for product in result.scalars().all()}


async def decrement_stock(
    db: AsyncSession, product_id: uuid.UUID, quantity: int
) -> bool:
    """Take ``quantity`` units if, at write time, at least that many remain.

    Returns False when the guarded UPDATE matched no row, i.e. a concurrent
    purchase got there first (or the product is gone).
    """
    result = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
    )
    return result.rowcount == 1
