"""
Admin operations on persisted crawler schedules.

Every mutation is validated before anything is written, then mirrored into
the live scheduler.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.core.categories import parse_category
from backend.src.core.config import settings
from backend.src.core.cron_utils import (
    as_utc_naive,
    interval_to_cron,
    validate_cron_expression,
)
from backend.src.core.exceptions import ResourceNotFoundError, ValidationError
from backend.src.core.logging import get_logger
from backend.src.models.schedule import CrawlerSchedule
from backend.src.services.schedule_manager import CrawlScheduleManager

logger = get_logger(__name__)


class ScheduleService:
    """Service for creating, toggling and deleting category schedules."""

    def __init__(self, manager: CrawlScheduleManager):
        self.manager = manager

    def _resolve_expression(
        self,
        cron_expression: Optional[str],
        interval_minutes: Optional[int],
    ) -> str:
        if interval_minutes is not None:
            if interval_minutes < settings.SCHEDULE_MIN_INTERVAL_MINUTES:
                raise ValidationError(
                    message=(
                        f"Interval must be at least "
                        f"{settings.SCHEDULE_MIN_INTERVAL_MINUTES} minutes"
                    )
                )
            return interval_to_cron(interval_minutes)

        if not cron_expression:
            raise ValidationError(message="Either cron_expression or interval_minutes is required")

        expression = " ".join(cron_expression.split())
        if not validate_cron_expression(expression):
            raise ValidationError(message=f"Invalid cron expression: {cron_expression}")
        return expression

    async def upsert_schedule(
        self,
        db: AsyncSession,
        category: Optional[str],
        is_enabled: bool = True,
        cron_expression: Optional[str] = None,
        interval_minutes: Optional[int] = None,
    ) -> CrawlerSchedule:
        """
        Create or update the schedule of a category.

        Args:
            db: Database session
            category: Category value or label
            is_enabled: Whether the timer should run
            cron_expression: 5-field recurrence expression
            interval_minutes: Convenience interval, takes precedence over the expression

        Returns:
            Persisted schedule

        Raises:
            ValidationError: If the category or recurrence is invalid (nothing is written)
        """
        if not category:
            raise ValidationError(message="Category is required")
        try:
            category_value = parse_category(category).value
        except ValueError as e:
            raise ValidationError(message=str(e))

        result = await db.execute(
            select(CrawlerSchedule).where(CrawlerSchedule.category == category_value)
        )
        schedule = result.scalar_one_or_none()

        if cron_expression is None and interval_minutes is None and schedule is not None:
            # Toggle only
            expression = schedule.cron_expression
        else:
            expression = self._resolve_expression(cron_expression, interval_minutes)

        if schedule is None:
            schedule = CrawlerSchedule(category=category_value)
            db.add(schedule)

        schedule.is_enabled = is_enabled
        schedule.cron_expression = expression
        if interval_minutes is not None or cron_expression is not None:
            schedule.interval_minutes = interval_minutes

        if is_enabled:
            self.manager.add_or_update_job(category_value, expression)
            next_run = self.manager.get_next_run_time(category_value)
            schedule.next_run_time = as_utc_naive(next_run)
        else:
            self.manager.remove_job(category_value)
            schedule.next_run_time = None

        await db.commit()
        await db.refresh(schedule)

        logger.info(
            "Crawler schedule saved",
            extra={
                "category": category_value,
                "is_enabled": is_enabled,
                "expression": expression,
            },
        )
        return schedule

    async def delete_schedule(self, db: AsyncSession, category: str) -> None:
        """
        Delete a category's schedule and its timer.

        Raises:
            ResourceNotFoundError: If the category has no schedule
        """
        try:
            category_value = parse_category(category).value
        except ValueError as e:
            raise ValidationError(message=str(e))

        result = await db.execute(
            select(CrawlerSchedule).where(CrawlerSchedule.category == category_value)
        )
        schedule = result.scalar_one_or_none()
        if schedule is None:
            raise ResourceNotFoundError("CrawlerSchedule", category_value)

        self.manager.remove_job(category_value)
        await db.delete(schedule)
        await db.commit()

        logger.info("Crawler schedule deleted", extra={"category": category_value})

    async def list_schedules(self, db: AsyncSession) -> List[CrawlerSchedule]:
        result = await db.execute(select(CrawlerSchedule).order_by(CrawlerSchedule.category))
        return list(result.scalars().all())


# Export
__all__ = ["ScheduleService"]
