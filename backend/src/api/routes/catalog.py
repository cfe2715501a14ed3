"""
Reconciled catalog browse API endpoint.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.api.schemas.catalog_schemas import CatalogItemListResponse, CatalogItemResponse
from backend.src.core.auth import require_read
from backend.src.core.categories import parse_category
from backend.src.core.database import get_db
from backend.src.core.exceptions import ValidationError
from backend.src.services.reconciliation import reconciliation_service

router = APIRouter(prefix="/v1/catalog-items", tags=["Catalog"])


@router.get(
    "",
    response_model=CatalogItemListResponse,
    summary="Browse the reconciled in-stock catalog",
    dependencies=[Depends(require_read)],
)
async def list_catalog_items(
    category: Optional[str] = Query(None, description="Category value or label; all when omitted"),
    code: Optional[str] = Query(None, max_length=32, description="Substring of the catalog code"),
    db: AsyncSession = Depends(get_db),
) -> CatalogItemListResponse:
    """
    Every persisted variant matching the filters, newest first.

    Raises:
        ValidationError: If the category is unknown
    """
    category_value = None
    if category:
        try:
            category_value = parse_category(category).value
        except ValueError as e:
            raise ValidationError(message=str(e))

    rows = await reconciliation_service.browse(db, category=category_value, code=code or None)
    return CatalogItemListResponse(
        total=len(rows),
        items=[CatalogItemResponse.model_validate(row) for row in rows],
    )


# Export router
__all__ = ["router"]
