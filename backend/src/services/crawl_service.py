"""
Crawl pipeline: fetch, reconcile, dispatch.

Each reconciled category gets a CrawlExecutionLog row that is opened as
``running`` and closed with the cycle's counters.
"""

import time
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.api.schemas.catalog_schemas import CatalogItemData
from backend.src.core.categories import Category
from backend.src.core.exceptions import CrawlError, DatabaseError
from backend.src.core.logging import get_logger
from backend.src.models.crawl_log import (
    CRAWL_STATUS_FAILED,
    CRAWL_STATUS_PARTIAL,
    CRAWL_STATUS_RUNNING,
    CRAWL_STATUS_SUCCESS,
    CrawlExecutionLog,
)
from backend.src.services.catalog_fetcher import CatalogFetcher
from backend.src.services.notification_dispatcher import NotificationDispatcher
from backend.src.services.reconciliation import (
    ReconciliationResult,
    ReconciliationService,
    reconciliation_service,
)

logger = get_logger(__name__)


class CrawlSummary:
    """Aggregate outcome of one crawl request."""

    def __init__(self):
        self.total_found = 0
        self.new_items = 0
        self.sold_out_items = 0
        self.failed_batches = 0
        self.categories: List[str] = []
        self.results: Dict[str, ReconciliationResult] = {}

    def add(self, result: ReconciliationResult) -> None:
        self.results[result.category] = result
        self.categories.append(result.category)
        self.total_found += result.total_found
        self.new_items += len(result.new_items)
        self.sold_out_items += len(result.sold_out_items)
        self.failed_batches += result.failed_batches

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CrawlSummary(categories={self.categories}, total_found={self.total_found}, "
            f"new={self.new_items}, sold_out={self.sold_out_items})>"
        )


class CrawlService:
    """
    Runs crawl cycles for one category or for the whole catalog.

    A whole-catalog run fetches once and classifies every product by its
    own category text before reconciling each category separately.
    """

    def __init__(
        self,
        fetcher: CatalogFetcher,
        dispatcher: NotificationDispatcher,
        reconciler: Optional[ReconciliationService] = None,
    ):
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.reconciler = reconciler or reconciliation_service

    async def _open_log(self, category: Category, triggered_by: str, db: AsyncSession) -> int:
        crawl_log = CrawlExecutionLog(
            category=category.value,
            status=CRAWL_STATUS_RUNNING,
            triggered_by=triggered_by,
            started_at=datetime.utcnow(),
        )
        db.add(crawl_log)
        await db.commit()
        return crawl_log.id

    async def _close_log(self, log_id: int, started: float, db: AsyncSession, **values) -> None:
        # Reconciliation may roll back the session; write through a statement
        await db.execute(
            update(CrawlExecutionLog)
            .where(CrawlExecutionLog.id == log_id)
            .values(
                completed_at=datetime.utcnow(),
                duration_seconds=int(time.monotonic() - started),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    async def run_crawl(
        self,
        db: AsyncSession,
        category: Optional[Category] = None,
        triggered_by: str = "manual",
    ) -> CrawlSummary:
        """
        Run one crawl cycle.

        Args:
            db: Database session
            category: Category to crawl, or None for every category
            triggered_by: "manual" or "scheduled"

        Returns:
            CrawlSummary across reconciled categories

        Raises:
            CrawlError: If the listing configuration cannot be fetched
            DatabaseError: If reconciling any category failed; the other
                categories are still reconciled and every log is closed
        """
        categories = [category] if category is not None else list(Category)
        started = time.monotonic()
        log_ids = {cat: await self._open_log(cat, triggered_by, db) for cat in categories}

        logger.info(
            "Starting crawl",
            extra={
                "categories": [cat.value for cat in categories],
                "triggered_by": triggered_by,
            },
        )

        try:
            codes = await self.fetcher.fetch_candidate_codes(category)
            items = await self.fetcher.fetch_catalog_items(codes, category)
        except CrawlError as e:
            for log_id in log_ids.values():
                await self._close_log(
                    log_id,
                    started,
                    db,
                    status=CRAWL_STATUS_FAILED,
                    error_details={"error": e.message, **e.details},
                )
            logger.error(
                "Crawl aborted, listing unavailable",
                extra={"categories": [cat.value for cat in categories], "error": e.message},
            )
            raise
        except Exception as e:
            for log_id in log_ids.values():
                await self._close_log(
                    log_id, started, db, status=CRAWL_STATUS_FAILED, error_details={"error": str(e)}
                )
            raise

        by_category: Dict[Category, List[CatalogItemData]] = {cat: [] for cat in categories}
        for item in items:
            item_category = Category(item.category)
            if item_category in by_category:
                by_category[item_category].append(item)

        summary = CrawlSummary()
        open_logs = dict(log_ids)
        failures: Dict[str, str] = {}
        try:
            for cat in categories:
                try:
                    result = await self.reconciler.reconcile(cat, by_category[cat], db)
                except Exception as e:
                    await db.rollback()
                    failures[cat.value] = str(e)
                    logger.error(
                        "Reconciliation failed",
                        extra={"category": cat.value, "error": str(e)},
                        exc_info=True,
                    )
                    await self._close_log(
                        open_logs[cat],
                        started,
                        db,
                        status=CRAWL_STATUS_FAILED,
                        items_found=len(by_category[cat]),
                        error_details={"error": str(e)},
                    )
                    del open_logs[cat]
                    continue

                summary.add(result)

                error_details = None
                try:
                    await self.dispatcher.dispatch_new_arrivals(cat, result.new_items, db)
                except Exception as e:
                    await db.rollback()
                    error_details = {"dispatch_error": str(e)}
                    logger.error(
                        "New-arrival dispatch failed",
                        extra={"category": cat.value, "error": str(e)},
                        exc_info=True,
                    )

                await self._close_log(
                    open_logs[cat],
                    started,
                    db,
                    status=CRAWL_STATUS_PARTIAL if result.failed_batches else CRAWL_STATUS_SUCCESS,
                    items_found=result.total_found,
                    new_count=len(result.new_items),
                    sold_out_count=len(result.sold_out_items),
                    failed_batches=result.failed_batches,
                    error_details=error_details,
                )
                del open_logs[cat]
        finally:
            # No log may stay "running" once this cycle is over
            if open_logs:
                await db.rollback()
                for log_id in open_logs.values():
                    await self._close_log(
                        log_id,
                        started,
                        db,
                        status=CRAWL_STATUS_FAILED,
                        error_details={"error": "Crawl interrupted"},
                    )

        if failures:
            raise DatabaseError(
                message=f"Reconciliation failed for {', '.join(sorted(failures))}",
                original_error=RuntimeError("; ".join(failures.values())),
            )

        logger.info(
            "Crawl completed",
            extra={
                "categories": summary.categories,
                "triggered_by": triggered_by,
                "total_found": summary.total_found,
                "new_items": summary.new_items,
                "sold_out_items": summary.sold_out_items,
                "failed_batches": summary.failed_batches,
                "duration_seconds": round(time.monotonic() - started, 2),
            },
        )
        return summary


# Export
__all__ = ["CrawlService", "CrawlSummary"]
