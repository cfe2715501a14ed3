"""
Back-in-stock push for a single favorited variant.

Resolves the recipient, enforces the per (user, product, variant)
throttle, sends and records the push.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.core.config import settings
from backend.src.core.cron_utils import as_utc_naive
from backend.src.core.exceptions import NotificationError
from backend.src.core.logging import get_logger
from backend.src.models.monitor_task import FavoriteMonitorTask
from backend.src.models.notification_log import NotificationLog
from backend.src.models.user import User
from backend.src.services.push_transport import WxPushTransport

logger = get_logger(__name__)


class NotifyOutcome:
    """Result of one notify attempt as seen by the monitor."""

    def __init__(
        self,
        success: bool,
        skipped: bool = False,
        remaining_minutes: Optional[int] = None,
        frequency_minutes: Optional[int] = None,
        message: Optional[str] = None,
    ):
        self.success = success
        self.skipped = skipped
        self.remaining_minutes = remaining_minutes
        self.frequency_minutes = frequency_minutes
        self.message = message

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<NotifyOutcome(success={self.success}, skipped={self.skipped}, "
            f"remaining_minutes={self.remaining_minutes})>"
        )


class FavoriteNotifyService:
    """
    Service for throttled back-in-stock pushes.

    The throttle window is the user's notify frequency (minutes). The
    task's last_push_time is authoritative; when it is unset, the latest
    NotificationLog row inside the window is used instead.
    """

    def __init__(self, transport: WxPushTransport):
        self.transport = transport

    async def _remaining_minutes(
        self,
        db: AsyncSession,
        user: User,
        task: Optional[FavoriteMonitorTask],
        product_id: str,
        color: str,
        size: str,
        frequency: int,
        now: datetime,
    ) -> Optional[int]:
        last_push = as_utc_naive(task.last_push_time) if task else None

        if last_push is None:
            window_start = now - timedelta(minutes=frequency)
            result = await db.execute(
                select(NotificationLog.timestamp)
                .where(
                    NotificationLog.user_id == user.id,
                    NotificationLog.product_id == product_id,
                    NotificationLog.color == color,
                    NotificationLog.size == size,
                    NotificationLog.timestamp >= window_start,
                )
                .order_by(NotificationLog.timestamp.desc())
                .limit(1)
            )
            last_push = as_utc_naive(result.scalar_one_or_none())

        if last_push is None:
            return None

        elapsed = (now - last_push).total_seconds() / 60
        if elapsed >= frequency:
            return None
        return math.ceil(frequency - elapsed)

    async def notify(
        self,
        db: AsyncSession,
        user_id: int,
        product_id: str,
        color: str,
        size: str,
        title: str,
        content: str,
        link_url: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> NotifyOutcome:
        """
        Send a back-in-stock push unless throttled.

        Args:
            db: Database session
            user_id: Recipient user
            product_id: Retailer product id
            color: Variant color
            size: Variant size
            title: Message title
            content: Message content
            link_url: Landing URL
            now: Reference time (naive UTC), defaults to utcnow

        Returns:
            NotifyOutcome

        Raises:
            NotificationError: If the user has no push recipient
        """
        now = now or datetime.utcnow()

        user = await db.get(User, user_id)
        if user is None or not user.wx_user_id:
            raise NotificationError(message="Recipient (wx_user_id) not found")

        frequency = user.notify_frequency_minutes or settings.DEFAULT_NOTIFY_FREQUENCY_MINUTES

        result = await db.execute(
            select(FavoriteMonitorTask).where(
                FavoriteMonitorTask.user_id == user_id,
                FavoriteMonitorTask.product_id == product_id,
                FavoriteMonitorTask.color == color,
                FavoriteMonitorTask.size == size,
            )
        )
        task = result.scalar_one_or_none()

        remaining = await self._remaining_minutes(
            db, user, task, product_id, color, size, frequency, now
        )
        if remaining is not None:
            logger.info(
                "Favorite push throttled",
                extra={
                    "user_id": user_id,
                    "product_id": product_id,
                    "remaining_minutes": remaining,
                },
            )
            return NotifyOutcome(
                success=True,
                skipped=True,
                remaining_minutes=remaining,
                frequency_minutes=frequency,
                message=f"Notification skipped due to rate limit ({remaining} mins remaining)",
            )

        push = await self.transport.send(user.wx_user_id, title, content, link_url)
        if not push.success:
            return NotifyOutcome(
                success=False,
                frequency_minutes=frequency,
                message=push.error or "Push failed",
            )

        if task is not None:
            task.last_push_time = now
        db.add(
            NotificationLog(
                user_id=user_id,
                product_id=product_id,
                color=color,
                size=size,
                timestamp=now,
            )
        )
        await db.commit()

        logger.info(
            "Favorite push sent",
            extra={"user_id": user_id, "product_id": product_id, "color": color, "size": size},
        )
        return NotifyOutcome(success=True, frequency_minutes=frequency, message="Push sent")


# Export
__all__ = ["FavoriteNotifyService", "NotifyOutcome"]
