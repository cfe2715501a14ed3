"""
Pydantic schemas for catalog items, crawls and product stock lookups.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from backend.src.core.categories import parse_category
from backend.src.models.base import BaseModel


class CatalogItemData(BaseModel):
    """One in-stock variant as observed upstream in a single cycle."""

    product_id: str = Field(..., description="Retailer product id")
    code: str = Field(default="", description="6-digit catalog code")
    name: str = Field(default="", description="Product name")
    color: str = Field(default="", description="Color (style) label")
    size: str = Field(default="", description="Size label")
    price: float = Field(default=0, description="Current variant price")
    min_price: float = Field(default=0, description="Lowest price across variants")
    origin_price: float = Field(default=0, description="List price")
    stock: int = Field(default=0, ge=0, description="Units available")
    category: str = Field(..., description="Catalog category value")
    sku_id: Optional[str] = Field(None, description="Retailer SKU id")

    def to_row(self) -> dict:
        """Column values for a CatalogItem insert or update."""
        return self.model_dump()


class VariantStock(BaseModel):
    """Stock for one color/size variant of a searched product."""

    sku_id: Optional[str] = None
    color: str = ""
    size: str = ""
    price: float = 0
    stock: int = 0


class ProductStock(BaseModel):
    """Search result for one product with its variants."""

    product_id: str
    code: str
    name: str = ""
    category: Optional[str] = None
    min_price: float = 0
    origin_price: float = 0
    image_url: Optional[str] = None
    variants: List[VariantStock] = Field(default_factory=list)


class ProductStockResponse(BaseModel):
    """Response for a 6-digit code lookup."""

    code: str
    products: List[ProductStock] = Field(default_factory=list)


class CrawlRequest(BaseModel):
    """Request schema for a manual crawl."""

    category: Optional[str] = Field(
        None,
        description="Category to crawl (WOMEN, MEN, KIDS, BABY); all when omitted",
    )

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: Optional[str]) -> Optional[str]:
        """Normalize the category to its enum value."""
        if v is None or v == "":
            return None
        return parse_category(v).value


class CrawlResponse(BaseModel):
    """Response schema for a manual crawl."""

    success: bool = True
    total_found: int = Field(..., ge=0)
    new_items: int = Field(..., ge=0)
    sold_out_items: int = Field(..., ge=0)
    categories: List[str] = Field(default_factory=list)


class CatalogItemResponse(BaseModel):
    """One row of the reconciled catalog store."""

    id: int
    product_id: str
    code: str
    sku_id: Optional[str] = None
    name: str
    color: str
    size: str
    price: float
    min_price: float
    origin_price: float
    stock: int
    category: str
    status: str
    created_at: datetime
    updated_at: datetime


class CatalogItemListResponse(BaseModel):
    """Reconciled catalog rows matching a browse filter."""

    total: int = Field(..., ge=0)
    items: List[CatalogItemResponse] = Field(default_factory=list)


# Export
__all__ = [
    "CatalogItemData",
    "VariantStock",
    "ProductStock",
    "ProductStockResponse",
    "CrawlRequest",
    "CrawlResponse",
    "CatalogItemResponse",
    "CatalogItemListResponse",
]
