"""Tests for the crawl pipeline."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from backend.src.core.categories import Category
from backend.src.core.exceptions import CrawlError, DatabaseError
from backend.src.models.catalog_item import CatalogItem
from backend.src.models.crawl_log import (
    CRAWL_STATUS_FAILED,
    CRAWL_STATUS_SUCCESS,
    CrawlExecutionLog,
)
from backend.src.models.push_subscription import PushSubscription
from backend.src.services.crawl_service import CrawlService
from backend.src.services.notification_dispatcher import NotificationDispatcher
from backend.src.services.reconciliation import ReconciliationService

from conftest import FakeFetcher, create_user, make_item


async def crawl_logs(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(CrawlExecutionLog).order_by(CrawlExecutionLog.id))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_category_crawl_reconciles_dispatches_and_logs(db, session_factory, transport):
    alice = await create_user(db)
    db.add(PushSubscription(user_id=alice.id, is_enabled=True, genders=["WOMEN"]))
    await db.commit()
    fetcher = FakeFetcher(
        items=[
            make_item(sku_id="w1", code="455123"),
            make_item(sku_id="w2", code="455123", size="L"),
            make_item(sku_id="m1", code="455777", category="MEN"),
        ]
    )
    service = CrawlService(fetcher, NotificationDispatcher(transport))

    summary = await service.run_crawl(db, category=Category.WOMEN)

    assert summary.categories == ["WOMEN"]
    assert (summary.total_found, summary.new_items, summary.sold_out_items) == (2, 2, 0)
    assert len(transport.sent) == 1

    logs = await crawl_logs(session_factory)
    assert len(logs) == 1
    assert logs[0].status == CRAWL_STATUS_SUCCESS
    assert (logs[0].items_found, logs[0].new_count, logs[0].triggered_by) == (2, 2, "manual")
    assert logs[0].completed_at is not None


@pytest.mark.asyncio
async def test_whole_catalog_crawl_splits_by_category(db, session_factory, transport):
    fetcher = FakeFetcher(
        items=[
            make_item(sku_id="w1"),
            make_item(sku_id="m1", category="MEN"),
            make_item(sku_id="k1", category="KIDS"),
        ]
    )
    service = CrawlService(fetcher, NotificationDispatcher(transport))

    summary = await service.run_crawl(db, triggered_by="scheduled")

    assert summary.categories == [c.value for c in Category]
    assert summary.total_found == 3
    assert summary.results["BABY"].total_found == 0
    assert fetcher.requested_categories == [None]

    async with session_factory() as session:
        rows = (await session.execute(select(CatalogItem))).scalars().all()
    assert sorted(row.category for row in rows) == ["KIDS", "MEN", "WOMEN"]
    assert len(await crawl_logs(session_factory)) == 4


@pytest.mark.asyncio
async def test_second_crawl_reports_sold_out(db, transport):
    fetcher = FakeFetcher(items=[make_item(sku_id="w1"), make_item(sku_id="w2")])
    service = CrawlService(fetcher, NotificationDispatcher(transport))
    await service.run_crawl(db, category=Category.WOMEN)

    fetcher.items = [make_item(sku_id="w2")]
    summary = await service.run_crawl(db, category=Category.WOMEN)

    assert (summary.total_found, summary.new_items, summary.sold_out_items) == (1, 0, 1)


@pytest.mark.asyncio
async def test_listing_failure_closes_logs_as_failed(db, session_factory, transport):
    fetcher = FakeFetcher()
    fetcher.listing_down = True
    service = CrawlService(fetcher, NotificationDispatcher(transport))

    with pytest.raises(CrawlError):
        await service.run_crawl(db, category=Category.MEN)

    logs = await crawl_logs(session_factory)
    assert [log.status for log in logs] == [CRAWL_STATUS_FAILED]
    assert logs[0].error_details["error"] == "Listing configuration unavailable"


@pytest.mark.asyncio
async def test_dispatch_failure_does_not_fail_the_crawl(db, session_factory):
    class ExplodingDispatcher:
        async def dispatch_new_arrivals(self, category, new_items, db):
            raise RuntimeError("dispatcher down")

    fetcher = FakeFetcher(items=[make_item(sku_id="w1")])
    service = CrawlService(fetcher, ExplodingDispatcher())

    summary = await service.run_crawl(db, category=Category.WOMEN)

    assert summary.new_items == 1
    logs = await crawl_logs(session_factory)
    assert logs[0].status == CRAWL_STATUS_SUCCESS
    assert logs[0].error_details == {"dispatch_error": "dispatcher down"}


class BrokenStoreReconciler(ReconciliationService):
    def __init__(self, broken_categories):
        super().__init__()
        self.broken_categories = broken_categories

    async def load_persisted(self, category, db):
        if category in self.broken_categories:
            raise OperationalError("SELECT crawled_products", {}, Exception("database is locked"))
        return await super().load_persisted(category, db)


@pytest.mark.asyncio
async def test_reconcile_failure_closes_log_as_failed(db, session_factory, transport):
    fetcher = FakeFetcher(items=[make_item(sku_id="w1")])
    service = CrawlService(
        fetcher, NotificationDispatcher(transport), reconciler=BrokenStoreReconciler({"WOMEN"})
    )

    with pytest.raises(DatabaseError):
        await service.run_crawl(db, category=Category.WOMEN)

    logs = await crawl_logs(session_factory)
    assert [log.status for log in logs] == [CRAWL_STATUS_FAILED]
    assert "database is locked" in logs[0].error_details["error"]
    assert logs[0].completed_at is not None


@pytest.mark.asyncio
async def test_reconcile_failure_does_not_block_other_categories(db, session_factory, transport):
    fetcher = FakeFetcher(items=[make_item(sku_id="w1"), make_item(sku_id="m1", category="MEN")])
    service = CrawlService(
        fetcher, NotificationDispatcher(transport), reconciler=BrokenStoreReconciler({"WOMEN"})
    )

    with pytest.raises(DatabaseError) as excinfo:
        await service.run_crawl(db)

    assert "WOMEN" in excinfo.value.message
    statuses = {log.category: log.status for log in await crawl_logs(session_factory)}
    assert statuses == {
        "WOMEN": CRAWL_STATUS_FAILED,
        "MEN": CRAWL_STATUS_SUCCESS,
        "KIDS": CRAWL_STATUS_SUCCESS,
        "BABY": CRAWL_STATUS_SUCCESS,
    }
    async with session_factory() as session:
        rows = (await session.execute(select(CatalogItem))).scalars().all()
    assert [row.category for row in rows] == ["MEN"]
