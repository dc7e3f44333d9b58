"""Product read model.

Products are owned by the catalog service. This service reads id, price and
stock, and writes nothing but the conditional stock decrement.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import CheckConstraint, DateTime, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Product(Base):
    """Catalog products (price and stock only matter here)."""

    __tablename__ = "store_products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stock: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="non_negative_stock"),
        CheckConstraint("price >= 0", name="non_negative_price"),
    )

    def __repr__(self):
        return f"<Product {self.id} price={self.price} stock={self.stock}>"
