"""
Crawl schedule manager.

Owns one AsyncIOScheduler with at most one cron job per category. The
manager is created once by the application lifespan and handed to the
routes that mutate schedules; nothing here is a module-level singleton.
"""

import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.core.categories import parse_category
from backend.src.core.config import settings
from backend.src.core.cron_utils import (
    as_utc_naive,
    build_cron_trigger,
    get_next_execution_times,
    scheduler_timezone,
)
from backend.src.core.database import AsyncSessionLocal
from backend.src.core.logging import get_logger, job_context
from backend.src.models.schedule import CrawlerSchedule
from backend.src.services.crawl_service import CrawlService

logger = get_logger(__name__)

JOB_PREFIX = "crawl:"


class ScheduledJob:
    """Live timer for one category."""

    def __init__(self, category: str, expression: str, next_run_time: Optional[datetime]):
        self.category = category
        self.expression = expression
        self.next_run_time = next_run_time

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ScheduledJob(category={self.category}, expression={self.expression}, "
            f"next_run_time={self.next_run_time})>"
        )


class ScheduledCrawlRunner:
    """
    Body of a scheduled crawl firing.

    Each firing opens its own session, runs the crawl pipeline and records
    the run on the schedule row. Every failure is caught and logged here so
    one firing can never affect another job.
    """

    def __init__(
        self,
        crawl_service: CrawlService,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    ):
        self.crawl_service = crawl_service
        self.session_factory = session_factory

    async def fire(self, category: str) -> None:
        """
        Run a scheduled crawl for one category.

        Args:
            category: Category value
        """
        with job_context(f"crawl-{category.lower()}"):
            await self._run(category)

    async def _run(self, category: str) -> None:
        logger.info("Scheduled crawl fired", extra={"category": category})

        try:
            async with self.session_factory() as db:
                summary = await self.crawl_service.run_crawl(
                    db,
                    category=parse_category(category),
                    triggered_by="scheduled",
                )
                logger.info(
                    "Scheduled crawl finished",
                    extra={
                        "category": category,
                        "total_found": summary.total_found,
                        "new_items": summary.new_items,
                        "sold_out_items": summary.sold_out_items,
                    },
                )
        except Exception as e:
            logger.error(
                "Scheduled crawl failed",
                extra={"category": category, "error": str(e)},
                exc_info=True,
            )

        try:
            async with self.session_factory() as db:
                await self._record_run(category, db)
        except Exception as e:
            logger.error(
                "Failed to record scheduled run",
                extra={"category": category, "error": str(e)},
                exc_info=True,
            )

    async def _record_run(self, category: str, db: AsyncSession) -> None:
        result = await db.execute(
            select(CrawlerSchedule.cron_expression).where(CrawlerSchedule.category == category)
        )
        expression = result.scalar_one_or_none()
        if expression is None:
            return

        upcoming = get_next_execution_times(expression, count=1)
        await db.execute(
            update(CrawlerSchedule)
            .where(CrawlerSchedule.category == category)
            .values(
                last_run_time=datetime.utcnow(),
                next_run_time=as_utc_naive(upcoming[0]) if upcoming else None,
            )
        )
        await db.commit()


class CrawlScheduleManager:
    """
    Registry of per-category crawl timers.

    Features:
    - One job per category (job id ``crawl:<CATEGORY>``), replaced in place
    - ``max_instances=1`` so an overlapping firing of the same category is skipped
    - Idempotent reload from persisted schedules
    """

    def __init__(
        self,
        runner: ScheduledCrawlRunner,
        scheduler: Optional[AsyncIOScheduler] = None,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    ):
        self.runner = runner
        self.scheduler = scheduler or AsyncIOScheduler(timezone=scheduler_timezone())
        self.session_factory = session_factory
        self._expressions: Dict[str, str] = {}

    @staticmethod
    def job_id(category: str) -> str:
        return f"{JOB_PREFIX}{category}"

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the underlying scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Crawl scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        """Stop the scheduler; in-flight firings are not awaited unless wait is set."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Crawl scheduler stopped")

    def add_or_update_job(self, category: str, expression: str) -> bool:
        """
        Install or replace the timer of a category.

        Args:
            category: Category value
            expression: 5-field cron expression

        Returns:
            True if the timer is installed, False if the expression is invalid
        """
        try:
            trigger = build_cron_trigger(expression, timezone=self.scheduler.timezone)
        except ValueError as e:
            logger.warning(
                "Rejected invalid cron expression",
                extra={"category": category, "expression": expression, "error": str(e)},
            )
            return False

        self.scheduler.add_job(
            self.runner.fire,
            trigger,
            args=[category],
            id=self.job_id(category),
            name=f"Crawl {category}",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=600,
            replace_existing=True,
        )
        self._expressions[category] = expression

        logger.info(
            "Crawl job scheduled",
            extra={
                "category": category,
                "expression": expression,
                "next_run_time": self.get_next_run_time(category),
            },
        )
        return True

    def remove_job(self, category: str) -> bool:
        """
        Remove the timer of a category.

        Returns:
            True if a timer existed
        """
        self._expressions.pop(category, None)
        try:
            self.scheduler.remove_job(self.job_id(category))
        except JobLookupError:
            return False
        logger.info("Crawl job removed", extra={"category": category})
        return True

    def has_job(self, category: str) -> bool:
        return self.scheduler.get_job(self.job_id(category)) is not None

    def get_next_run_time(self, category: str) -> Optional[datetime]:
        """Next fire time of a category's timer, or None if it has none."""
        job = self.scheduler.get_job(self.job_id(category))
        if job is None:
            return None
        # Jobs added before start() have no computed fire time yet
        next_run = getattr(job, "next_run_time", None)
        if next_run is None and category in self._expressions:
            upcoming = get_next_execution_times(self._expressions[category], count=1)
            next_run = upcoming[0] if upcoming else None
        return next_run

    def list_jobs(self) -> List[ScheduledJob]:
        jobs = []
        for job in self.scheduler.get_jobs():
            if not job.id.startswith(JOB_PREFIX):
                continue
            category = job.id[len(JOB_PREFIX) :]
            jobs.append(
                ScheduledJob(
                    category=category,
                    expression=self._expressions.get(category, ""),
                    next_run_time=self.get_next_run_time(category),
                )
            )
        return jobs

    async def load_from_persisted_schedules(self, db: AsyncSession) -> int:
        """
        Synchronize timers with the persisted schedules.

        Enabled schedules are installed (replacing any existing timer),
        timers without an enabled schedule are removed. Safe to call
        repeatedly.

        Returns:
            Number of timers installed
        """
        result = await db.execute(select(CrawlerSchedule).order_by(CrawlerSchedule.id))
        schedules = list(result.scalars().all())

        enabled = {s.category: s.cron_expression for s in schedules if s.is_enabled}
        loaded = 0
        for category, expression in enabled.items():
            if self.add_or_update_job(category, expression):
                loaded += 1

        for job in self.list_jobs():
            if job.category not in enabled:
                self.remove_job(job.category)

        logger.info(
            "Persisted crawl schedules loaded",
            extra={"schedule_count": len(schedules), "loaded": loaded},
        )
        return loaded

    async def load_after_delay(self, delay_seconds: Optional[float] = None) -> int:
        """
        Load persisted schedules after the startup delay.

        Failures are logged; the process keeps running without timers.
        """
        delay = settings.SCHEDULE_STARTUP_DELAY_SECONDS if delay_seconds is None else delay_seconds
        await asyncio.sleep(delay)
        try:
            async with self.session_factory() as db:
                return await self.load_from_persisted_schedules(db)
        except Exception as e:
            logger.error(
                "Startup schedule load failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            return 0


# Export
__all__ = ["CrawlScheduleManager", "ScheduledCrawlRunner", "ScheduledJob"]
