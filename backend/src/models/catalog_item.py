"""
Crawled catalog item data model.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.src.core.database import Base

ITEM_STATUS_NEW = "new"
ITEM_STATUS_OLD = "old"


class CatalogItem(Base):
    """One in-stock color/size variant of a product, as last observed."""

    __tablename__ = "crawled_products"
    __table_args__ = (
        Index("idx_crawled_products_category_id", "category", "id"),
        Index("idx_crawled_products_code", "code"),
    )

    # Synthetic row id
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Product identification
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    code: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    sku_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Variant
    color: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    size: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    # Pricing
    price: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    min_price: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    origin_price: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    # Observation
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(8), nullable=False, default=ITEM_STATUS_NEW)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<CatalogItem(id={self.id}, code={self.code}, color={self.color}, "
            f"size={self.size}, stock={self.stock}, status={self.status})>"
        )
