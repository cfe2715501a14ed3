"""
New-arrival notification dispatcher.

Fans the NEW set of a reconciliation cycle out to subscribers of the
category, one push per (subscriber, product code).
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.api.schemas.catalog_schemas import CatalogItemData
from backend.src.core.categories import Category
from backend.src.core.config import settings
from backend.src.core.cron_utils import as_utc_naive
from backend.src.core.logging import get_logger
from backend.src.models.push_subscription import PushSubscription
from backend.src.models.user import User
from backend.src.services.push_transport import WxPushTransport

logger = get_logger(__name__)


class DispatchSummary:
    """Counters for one dispatch run."""

    def __init__(self, category: str):
        self.category = category
        self.subscribers_matched = 0
        self.pushes_sent = 0
        self.pushes_failed = 0
        self.skipped_throttled = 0
        self.skipped_no_recipient = 0

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DispatchSummary(category={self.category}, "
            f"matched={self.subscribers_matched}, sent={self.pushes_sent}, "
            f"failed={self.pushes_failed}, throttled={self.skipped_throttled}, "
            f"no_recipient={self.skipped_no_recipient})>"
        )


def group_by_code(items: List[CatalogItemData]) -> Dict[str, List[CatalogItemData]]:
    """Group items by product code, preserving first-seen order."""
    groups: Dict[str, List[CatalogItemData]] = {}
    for item in items:
        groups.setdefault(item.code or item.product_id, []).append(item)
    return groups


def format_new_arrival(code: str, items: List[CatalogItemData]) -> tuple[str, str]:
    """
    Build the title and body of a new-arrival push.

    Returns:
        Tuple of (title, body)
    """
    first = items[0]
    title = f"New arrival: {first.name} ({code})" if first.name else f"New arrival: {code}"
    lines = [f"{item.color} / {item.size}  ¥{item.price:g}" for item in items]
    return title, "\n".join(lines)


class NotificationDispatcher:
    """
    Service for notifying subscribers about newly in-stock variants.

    Delivery is best effort: a failed push is logged and skipped, never
    retried. A subscriber's throttle advances only when at least one push
    to them succeeded.
    """

    def __init__(self, transport: WxPushTransport):
        self.transport = transport

    async def _load_subscribers(self, category: str, db: AsyncSession) -> List[tuple]:
        query = (
            select(PushSubscription, User)
            .join(User, User.id == PushSubscription.user_id)
            .where(PushSubscription.is_enabled.is_(True), User.is_active.is_(True))
            .order_by(PushSubscription.id)
        )
        result = await db.execute(query)
        return [(sub, user) for sub, user in result.all() if category in (sub.genders or [])]

    @staticmethod
    def is_throttled(subscription: PushSubscription, now: datetime) -> bool:
        last_push = as_utc_naive(subscription.last_push_time)
        if last_push is None:
            return False
        return last_push + timedelta(seconds=subscription.frequency_seconds) > now

    async def dispatch_new_arrivals(
        self,
        category: Category | str,
        new_items: List[CatalogItemData],
        db: AsyncSession,
        now: Optional[datetime] = None,
    ) -> DispatchSummary:
        """
        Push the NEW set of a cycle to every matching subscriber.

        Args:
            category: Reconciled category
            new_items: Variants first observed this cycle
            db: Database session
            now: Reference time (naive UTC), defaults to utcnow

        Returns:
            DispatchSummary with delivery counters
        """
        category_value = category.value if isinstance(category, Category) else str(category)
        summary = DispatchSummary(category_value)
        if not new_items:
            return summary

        now = now or datetime.utcnow()
        groups = group_by_code(new_items)
        subscribers = await self._load_subscribers(category_value, db)
        summary.subscribers_matched = len(subscribers)

        for subscription, user in subscribers:
            if not user.wx_user_id:
                summary.skipped_no_recipient += 1
                logger.info(
                    "Subscriber has no push recipient, skipping",
                    extra={"user_id": user.id, "category": category_value},
                )
                continue

            if self.is_throttled(subscription, now):
                summary.skipped_throttled += 1
                logger.debug(
                    "Subscriber throttled",
                    extra={"user_id": user.id, "category": category_value},
                )
                continue

            delivered = False
            for code, items in groups.items():
                title, body = format_new_arrival(code, items)
                link_url = settings.CATALOG_PRODUCT_PAGE_URL.format(product_id=items[0].product_id)
                result = await self.transport.send(user.wx_user_id, title, body, link_url)
                if result.success:
                    delivered = True
                    summary.pushes_sent += 1
                else:
                    summary.pushes_failed += 1
                    logger.warning(
                        "New-arrival push failed",
                        extra={"user_id": user.id, "code": code, "error": result.error},
                    )

            if delivered:
                subscription.last_push_time = now
                await db.commit()

        logger.info(
            "New arrivals dispatched",
            extra={
                "category": category_value,
                "new_item_count": len(new_items),
                "code_count": len(groups),
                "subscribers_matched": summary.subscribers_matched,
                "pushes_sent": summary.pushes_sent,
                "pushes_failed": summary.pushes_failed,
                "skipped_throttled": summary.skipped_throttled,
                "skipped_no_recipient": summary.skipped_no_recipient,
            },
        )
        return summary


# Export
__all__ = ["NotificationDispatcher", "DispatchSummary", "group_by_code", "format_new_arrival"]
