"""Tests for identity keys and category reconciliation."""

import pytest
from sqlalchemy import func, select, text

from backend.src.core.categories import Category
from backend.src.models.catalog_item import ITEM_STATUS_NEW, ITEM_STATUS_OLD, CatalogItem
from backend.src.services.reconciliation import ReconciliationService, identity_key

from conftest import make_item


async def seed_rows(db, items, status=ITEM_STATUS_OLD):
    for item in items:
        db.add(CatalogItem(**item.to_row(), status=status))
    await db.commit()


async def stored_rows(session_factory, category="WOMEN"):
    async with session_factory() as session:
        result = await session.execute(
            select(CatalogItem).where(CatalogItem.category == category).order_by(CatalogItem.id)
        )
        return list(result.scalars().all())


def test_identity_key_prefers_sku():
    a = make_item(sku_id=" SKU-1 ", color="A")
    b = make_item(sku_id="sku-1", color="B")
    assert identity_key(a) == identity_key(b) == "sku:sku-1"


def test_identity_key_falls_back_to_variant_triple():
    a = make_item(code="123456", color="09 Black", size="M")
    b = make_item(code="123456", color="09black", size=" m ")
    c = make_item(code="123456", color="09 Black", size="L")
    assert identity_key(a) == identity_key(b)
    assert identity_key(a) != identity_key(c)


@pytest.mark.asyncio
async def test_sold_out_variants_removed_and_survivors_flipped_to_old(db, session_factory):
    persisted = [
        make_item(code="123456", color="A", size="S"),
        make_item(code="123456", color="A", size="M"),
        make_item(code="123456", color="A", size="L"),
        make_item(code="123456", color="B", size="S"),
        make_item(code="123456", color="B", size="L"),
    ]
    await seed_rows(db, persisted, status=ITEM_STATUS_NEW)
    fresh = [
        make_item(code="123456", color="A", size="S", price=79),
        make_item(code="123456", color="A", size="M"),
        make_item(code="123456", color="B", size="S"),
    ]

    result = await ReconciliationService(batch_size=2).reconcile(Category.WOMEN, fresh, db)

    assert result.new_items == []
    assert len(result.existing_items) == 3
    assert sorted((r.color, r.size) for r in result.sold_out_items) == [("A", "L"), ("B", "L")]
    assert result.failed_batches == 0

    rows = await stored_rows(session_factory)
    assert sorted((r.color, r.size) for r in rows) == [("A", "M"), ("A", "S"), ("B", "S")]
    assert {r.status for r in rows} == {ITEM_STATUS_OLD}
    assert float(next(r for r in rows if (r.color, r.size) == ("A", "S")).price) == 79


@pytest.mark.asyncio
async def test_partition_and_idempotent_rerun(db, session_factory):
    await seed_rows(db, [make_item(sku_id="s1"), make_item(sku_id="s2")])
    fresh = [make_item(sku_id="s2"), make_item(sku_id="s3"), make_item(sku_id="s3")]
    service = ReconciliationService()

    first = await service.reconcile(Category.WOMEN, fresh, db)

    assert [identity_key(i) for i in first.new_items] == ["sku:s3"]
    assert [identity_key(i) for i in first.existing_items] == ["sku:s2"]
    assert [identity_key(r) for r in first.sold_out_items] == ["sku:s1"]

    rows = await stored_rows(session_factory)
    statuses = {r.sku_id: r.status for r in rows}
    assert statuses == {"s2": ITEM_STATUS_OLD, "s3": ITEM_STATUS_NEW}

    second = await service.reconcile(Category.WOMEN, fresh, db)

    assert second.new_items == []
    assert second.sold_out_items == []
    assert {r.sku_id: r.status for r in await stored_rows(session_factory)} == {
        "s2": ITEM_STATUS_OLD,
        "s3": ITEM_STATUS_OLD,
    }


@pytest.mark.asyncio
async def test_duplicate_persisted_rows_collapse_to_one(db, session_factory):
    await seed_rows(db, [make_item(sku_id="dup"), make_item(sku_id="dup")])

    result = await ReconciliationService().reconcile(Category.WOMEN, [make_item(sku_id="dup")], db)

    assert len(result.sold_out_items) == 1
    assert len(await stored_rows(session_factory)) == 1


@pytest.mark.asyncio
async def test_reconcile_is_scoped_to_category(db, session_factory):
    await seed_rows(db, [make_item(sku_id="m1", category="MEN")])

    result = await ReconciliationService().reconcile(Category.WOMEN, [], db)

    assert result.sold_out_items == []
    assert len(await stored_rows(session_factory, category="MEN")) == 1


@pytest.mark.asyncio
async def test_load_persisted_pages_through_all_rows(db):
    await seed_rows(db, [make_item(sku_id=f"s{i}") for i in range(7)])

    rows = await ReconciliationService(page_size=3).load_persisted("WOMEN", db)

    assert len(rows) == 7
    assert len({r.id for r in rows}) == 7


@pytest.mark.asyncio
async def test_browse_filters_by_category_and_code_across_pages(db):
    await seed_rows(
        db,
        [make_item(code="455123", sku_id=f"w{i}") for i in range(4)]
        + [make_item(code="455777", sku_id="w9")]
        + [make_item(code="455123", sku_id="m1", category="MEN")],
    )
    service = ReconciliationService(page_size=2)

    women = await service.browse(db, category="WOMEN")
    assert [row.sku_id for row in women] == ["w9", "w3", "w2", "w1", "w0"]

    by_code = await service.browse(db, code="5123")
    assert [row.sku_id for row in by_code] == ["m1", "w3", "w2", "w1", "w0"]

    assert [row.sku_id for row in await service.browse(db, category="MEN", code="123")] == ["m1"]
    assert await service.browse(db, code="999") == []


@pytest.mark.asyncio
async def test_failed_batch_is_rolled_back_and_counted(db):
    service = ReconciliationService()

    ok = await service._apply(db, text("INSERT INTO missing_table VALUES (1)"), None, "WOMEN", "insert", 1)

    assert ok is False
    count = await db.scalar(select(func.count()).select_from(CatalogItem))
    assert count == 0
