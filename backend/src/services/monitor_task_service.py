"""
Persistence of favorite monitor tasks and their execution logs.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.core.config import settings
from backend.src.core.logging import get_logger
from backend.src.models.monitor_task import FavoriteMonitorTask
from backend.src.models.task_log import TaskExecutionLog, TaskLogStatus

logger = get_logger(__name__)


class MonitorTaskService:
    """Service for monitor task rows and the append-only task log."""

    async def get_task(
        self,
        db: AsyncSession,
        user_id: int,
        product_id: str,
        color: str,
        size: str,
    ) -> Optional[FavoriteMonitorTask]:
        result = await db.execute(
            select(FavoriteMonitorTask).where(
                FavoriteMonitorTask.user_id == user_id,
                FavoriteMonitorTask.product_id == product_id,
                FavoriteMonitorTask.color == color,
                FavoriteMonitorTask.size == size,
            )
        )
        return result.scalar_one_or_none()

    async def get_task_by_id(self, db: AsyncSession, task_id: int) -> Optional[FavoriteMonitorTask]:
        return await db.get(FavoriteMonitorTask, task_id)

    async def upsert_task(
        self,
        db: AsyncSession,
        user_id: int,
        product_id: str,
        color: str,
        size: str,
        frequency_seconds: int,
        is_active: bool,
        window_start: Optional[str] = None,
        window_end: Optional[str] = None,
        product_code: Optional[str] = None,
        product_name: Optional[str] = None,
        target_price: Optional[float] = None,
    ) -> FavoriteMonitorTask:
        """
        Create or update the task for a favorited variant.

        Args:
            db: Database session
            user_id: Owner
            product_id: Retailer product id
            color: Watched color
            size: Watched size
            frequency_seconds: Poll interval
            is_active: Desired running state
            window_start: Daily window start (HH:MM)
            window_end: Daily window end (HH:MM)
            product_code: Catalog code, kept if not given
            product_name: Product name, kept if not given
            target_price: Informational target price, kept if not given

        Returns:
            Persisted task
        """
        task = await self.get_task(db, user_id, product_id, color, size)
        if task is None:
            task = FavoriteMonitorTask(
                user_id=user_id,
                product_id=product_id,
                color=color,
                size=size,
            )
            db.add(task)

        task.frequency_seconds = frequency_seconds
        task.is_active = is_active
        task.window_start = window_start
        task.window_end = window_end
        if product_code is not None:
            task.product_code = product_code
        if product_name is not None:
            task.product_name = product_name
        if target_price is not None:
            task.target_price = target_price

        await db.commit()
        await db.refresh(task)

        logger.info(
            "Monitor task saved",
            extra={
                "task_id": task.id,
                "user_id": user_id,
                "product_id": product_id,
                "is_active": is_active,
                "frequency_seconds": frequency_seconds,
            },
        )
        return task

    async def set_active(self, db: AsyncSession, task_id: int, is_active: bool) -> None:
        task = await db.get(FavoriteMonitorTask, task_id)
        if task is None:
            return
        task.is_active = is_active
        await db.commit()

    async def list_active(self, db: AsyncSession) -> List[FavoriteMonitorTask]:
        result = await db.execute(
            select(FavoriteMonitorTask)
            .where(FavoriteMonitorTask.is_active.is_(True))
            .order_by(FavoriteMonitorTask.id)
        )
        return list(result.scalars().all())

    async def list_for_user(self, db: AsyncSession, user_id: int) -> List[FavoriteMonitorTask]:
        """Every task of a user, active or not, newest first."""
        result = await db.execute(
            select(FavoriteMonitorTask)
            .where(FavoriteMonitorTask.user_id == user_id)
            .order_by(FavoriteMonitorTask.created_at.desc(), FavoriteMonitorTask.id.desc())
        )
        return list(result.scalars().all())

    async def append_log(
        self,
        db: AsyncSession,
        task_id: int,
        status: TaskLogStatus,
        message: Optional[str] = None,
    ) -> TaskExecutionLog:
        entry = TaskExecutionLog(
            task_id=task_id,
            status=status.value,
            message=message,
            timestamp=datetime.utcnow(),
        )
        db.add(entry)
        await db.commit()
        return entry

    async def recent_logs(
        self,
        db: AsyncSession,
        task_id: int,
        limit: Optional[int] = None,
    ) -> List[TaskExecutionLog]:
        """Newest-first execution history of a task."""
        result = await db.execute(
            select(TaskExecutionLog)
            .where(TaskExecutionLog.task_id == task_id)
            .order_by(TaskExecutionLog.timestamp.desc(), TaskExecutionLog.id.desc())
            .limit(limit or settings.TASK_LOG_HISTORY_LIMIT)
        )
        return list(result.scalars().all())


# Singleton instance
monitor_task_service = MonitorTaskService()

# Export
__all__ = ["MonitorTaskService", "monitor_task_service"]
