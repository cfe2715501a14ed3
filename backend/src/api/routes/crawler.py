"""
Manual crawl API endpoint.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.api.deps import get_crawl_service
from backend.src.api.schemas.catalog_schemas import CrawlRequest, CrawlResponse
from backend.src.core.auth import AuthenticatedUser, require_admin
from backend.src.core.categories import Category
from backend.src.core.database import get_db
from backend.src.core.logging import get_logger
from backend.src.services.crawl_service import CrawlService

logger = get_logger(__name__)

router = APIRouter(prefix="/v1/crawl", tags=["Crawler"])


@router.post(
    "",
    response_model=CrawlResponse,
    status_code=status.HTTP_200_OK,
    summary="Run a crawl now",
)
async def run_crawl(
    request: Optional[CrawlRequest] = None,
    user: AuthenticatedUser = Depends(require_admin),
    crawl_service: CrawlService = Depends(get_crawl_service),
    db: AsyncSession = Depends(get_db),
) -> CrawlResponse:
    """
    Crawl one category, or the whole catalog when no category is given.

    The request blocks until fetch, reconciliation and dispatch finish.

    Raises:
        CrawlError: If the listing configuration is unavailable (502)
    """
    category = Category(request.category) if request and request.category else None

    logger.info(
        "Manual crawl requested",
        extra={"user_id": user.user_id, "category": category.value if category else None},
    )

    summary = await crawl_service.run_crawl(db, category=category, triggered_by="manual")

    return CrawlResponse(
        success=True,
        total_found=summary.total_found,
        new_items=summary.new_items,
        sold_out_items=summary.sold_out_items,
        categories=summary.categories,
    )


# Export router
__all__ = ["router"]
