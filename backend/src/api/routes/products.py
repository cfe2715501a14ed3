"""
Product stock lookup API endpoint.
"""

import re

from fastapi import APIRouter, Depends

from backend.src.api.deps import get_catalog_fetcher
from backend.src.api.schemas.catalog_schemas import ProductStockResponse
from backend.src.core.auth import require_read
from backend.src.core.exceptions import ResourceNotFoundError, ValidationError
from backend.src.services.catalog_fetcher import CatalogFetcher

router = APIRouter(prefix="/v1/products", tags=["Products"])

_CODE = re.compile(r"^\d{6}$")


@router.get(
    "/{code}/stock",
    response_model=ProductStockResponse,
    summary="Look up products and variant stock by 6-digit code",
    dependencies=[Depends(require_read)],
)
async def get_product_stock(
    code: str,
    fetcher: CatalogFetcher = Depends(get_catalog_fetcher),
) -> ProductStockResponse:
    """
    Search the catalog by 6-digit code and return per-variant stock.

    Raises:
        ValidationError: If the code is not 6 digits
        ResourceNotFoundError: If no product matches
    """
    if not _CODE.match(code):
        raise ValidationError(message="Product code must be 6 digits")

    products = await fetcher.search_by_code(code)
    if not products:
        raise ResourceNotFoundError("Product", code)

    return ProductStockResponse(code=code, products=products)


# Export router
__all__ = ["router"]
