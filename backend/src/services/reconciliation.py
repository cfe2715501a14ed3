"""
Reconciliation of freshly fetched catalog items against the persisted store.

Partitions one category's fresh snapshot into new, existing and sold-out
variants, then applies deletes, inserts and updates in independently
committed batches.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.api.schemas.catalog_schemas import CatalogItemData
from backend.src.core.categories import Category
from backend.src.core.config import settings
from backend.src.core.logging import get_logger
from backend.src.models.catalog_item import ITEM_STATUS_NEW, ITEM_STATUS_OLD, CatalogItem

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _normalize(value: Optional[str]) -> str:
    return _WHITESPACE.sub("", value or "").lower()


def identity_key(item: Any) -> str:
    """
    Identity of a catalog variant.

    The normalized SKU id when present, otherwise the normalized
    (code, size, color) triple. Works for fresh items and persisted rows.
    """
    sku = _normalize(getattr(item, "sku_id", None))
    if sku:
        return f"sku:{sku}"
    return "var:{}|{}|{}".format(
        _normalize(item.code),
        _normalize(item.size),
        _normalize(item.color),
    )


class ReconciliationResult:
    """Outcome of reconciling one category."""

    def __init__(
        self,
        category: str,
        new_items: Optional[List[CatalogItemData]] = None,
        existing_items: Optional[List[CatalogItemData]] = None,
        sold_out_items: Optional[List[CatalogItem]] = None,
        failed_batches: int = 0,
    ):
        """
        Initialize reconciliation result.

        Args:
            category: Category value
            new_items: Fresh variants absent from the store
            existing_items: Fresh variants already persisted
            sold_out_items: Persisted rows absent from the fresh snapshot
            failed_batches: Mutation batches rolled back
        """
        self.category = category
        self.new_items = new_items or []
        self.existing_items = existing_items or []
        self.sold_out_items = sold_out_items or []
        self.failed_batches = failed_batches

    @property
    def total_found(self) -> int:
        return len(self.new_items) + len(self.existing_items)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReconciliationResult("
            f"category={self.category}, "
            f"new={len(self.new_items)}, "
            f"existing={len(self.existing_items)}, "
            f"sold_out={len(self.sold_out_items)}, "
            f"failed_batches={self.failed_batches})>"
        )


def _chunks(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class ReconciliationService:
    """
    Service that keeps the catalog store equal to the latest observation.

    After a fully successful run the store holds exactly one row per
    identity key of the fresh snapshot. A failing batch is rolled back on
    its own and the rows it covered converge on the next cycle.
    """

    def __init__(self, batch_size: Optional[int] = None, page_size: Optional[int] = None):
        self.batch_size = batch_size or settings.RECONCILE_BATCH_SIZE
        self.page_size = page_size or settings.RECONCILE_PAGE_SIZE

    async def _load_pages(
        self,
        db: AsyncSession,
        conditions: List[Any],
        detach: bool,
    ) -> List[CatalogItem]:
        rows: List[CatalogItem] = []
        last_id = 0

        while True:
            query = (
                select(CatalogItem)
                .where(*conditions, CatalogItem.id > last_id)
                .order_by(CatalogItem.id)
                .limit(self.page_size)
                .execution_options(populate_existing=True)
            )
            result = await db.execute(query)
            page = list(result.scalars().all())
            if detach:
                for row in page:
                    db.expunge(row)
            rows.extend(page)

            if len(page) < self.page_size:
                break
            last_id = page[-1].id

        return rows

    async def load_persisted(self, category: str, db: AsyncSession) -> List[CatalogItem]:
        """
        Load every persisted row of a category with keyset pagination.

        Rows are detached from the session so later bulk statements never
        touch stale identity-map state.
        """
        return await self._load_pages(db, [CatalogItem.category == category], detach=True)

    async def browse(
        self,
        db: AsyncSession,
        category: Optional[str] = None,
        code: Optional[str] = None,
    ) -> List[CatalogItem]:
        """
        Read the reconciled store, newest rows first.

        Args:
            db: Database session
            category: Only rows of this category value
            code: Case-insensitive substring of the catalog code

        Returns:
            Every matching row, loaded page by page
        """
        conditions: List[Any] = []
        if category:
            conditions.append(CatalogItem.category == category)
        if code:
            conditions.append(CatalogItem.code.ilike(f"%{code}%"))

        rows = await self._load_pages(db, conditions, detach=False)
        rows.reverse()
        return rows

    async def reconcile(
        self,
        category: Category | str,
        fresh_items: List[CatalogItemData],
        db: AsyncSession,
    ) -> ReconciliationResult:
        """
        Reconcile a category's fresh snapshot against the store.

        Args:
            category: Category being reconciled
            fresh_items: In-stock variants fetched this cycle
            db: Database session

        Returns:
            ReconciliationResult with the partition and failed batch count
        """
        category_value = category.value if isinstance(category, Category) else str(category)

        persisted = await self.load_persisted(category_value, db)

        old_map: Dict[str, CatalogItem] = {}
        duplicates: List[CatalogItem] = []
        for row in persisted:
            key = identity_key(row)
            if key in old_map:
                duplicates.append(row)
            else:
                old_map[key] = row

        new_map: Dict[str, CatalogItemData] = {}
        for item in fresh_items:
            new_map.setdefault(identity_key(item), item)

        new_items = [item for key, item in new_map.items() if key not in old_map]
        existing_items = [item for key, item in new_map.items() if key in old_map]
        sold_out_items = duplicates + [row for key, row in old_map.items() if key not in new_map]

        now = datetime.utcnow()
        failed_batches = 0

        # Deletes first so a reappearing variant never collides with its stale row
        sold_out_ids = [row.id for row in sold_out_items]
        for chunk in _chunks(sold_out_ids, self.batch_size):
            stmt = (
                delete(CatalogItem)
                .where(CatalogItem.id.in_(chunk))
                .execution_options(synchronize_session=False)
            )
            if not await self._apply(db, stmt, None, category_value, "delete", len(chunk)):
                failed_batches += 1

        insert_rows = [
            {
                **item.to_row(),
                "category": category_value,
                "status": ITEM_STATUS_NEW,
                "created_at": now,
                "updated_at": now,
            }
            for item in new_items
        ]
        for chunk in _chunks(insert_rows, self.batch_size):
            if not await self._apply(db, insert(CatalogItem), chunk, category_value, "insert", len(chunk)):
                failed_batches += 1

        update_rows: Dict[int, Dict[str, Any]] = {}
        for item in existing_items:
            row_id = old_map[identity_key(item)].id
            if row_id in update_rows:
                continue
            update_rows[row_id] = {
                **item.to_row(),
                "id": row_id,
                "category": category_value,
                "status": ITEM_STATUS_OLD,
                "updated_at": now,
            }
        for chunk in _chunks(list(update_rows.values()), self.batch_size):
            stmt = update(CatalogItem).execution_options(synchronize_session=False)
            if not await self._apply(db, stmt, chunk, category_value, "update", len(chunk)):
                failed_batches += 1

        result = ReconciliationResult(
            category=category_value,
            new_items=new_items,
            existing_items=existing_items,
            sold_out_items=sold_out_items,
            failed_batches=failed_batches,
        )

        logger.info(
            "Category reconciled",
            extra={
                "category": category_value,
                "persisted_count": len(persisted),
                "fresh_count": len(fresh_items),
                "new_count": len(new_items),
                "existing_count": len(existing_items),
                "sold_out_count": len(sold_out_items),
                "failed_batches": failed_batches,
            },
        )
        return result

    async def _apply(
        self,
        db: AsyncSession,
        stmt: Any,
        params: Optional[List[Dict[str, Any]]],
        category: str,
        operation: str,
        size: int,
    ) -> bool:
        """Execute and commit one batch; roll it back alone on failure."""
        try:
            if params is None:
                await db.execute(stmt)
            else:
                await db.execute(stmt, params)
            await db.commit()
            return True
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Reconciliation batch failed",
                extra={
                    "category": category,
                    "operation": operation,
                    "batch_size": size,
                    "error": str(e),
                },
            )
            return False


# Singleton instance
reconciliation_service = ReconciliationService()


async def reconcile(
    category: Category | str,
    fresh_items: List[CatalogItemData],
    db: AsyncSession,
) -> ReconciliationResult:
    """Reconcile with the default batch and page sizes."""
    return await reconciliation_service.reconcile(category, fresh_items, db)


# Export
__all__ = [
    "ReconciliationService",
    "ReconciliationResult",
    "identity_key",
    "reconcile",
    "reconciliation_service",
]
