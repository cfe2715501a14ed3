"""
Per-favorite stock monitors.

Each active favorite task gets one FavoriteMonitor that polls the exact
variant on an interval, keeps a short rolling log in memory, and pushes a
throttled back-in-stock notification. All monitors share one scheduler
owned by the MonitorRegistry, separate from the crawl scheduler.
"""

from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, List, Optional, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.core.config import settings
from backend.src.core.cron_utils import scheduler_timezone
from backend.src.core.database import AsyncSessionLocal
from backend.src.core.exceptions import CrawlError, NotificationError
from backend.src.core.logging import get_logger, job_context
from backend.src.models.task_log import TaskLogStatus
from backend.src.services.catalog_fetcher import CatalogFetcher
from backend.src.services.favorite_notify_service import FavoriteNotifyService, NotifyOutcome
from backend.src.services.monitor_task_service import MonitorTaskService, monitor_task_service

logger = get_logger(__name__)

MonitorKey = Tuple[int, str, str, str]

OUTSIDE_WINDOW = "outside monitoring window"


def is_inside_window(now_hm: str, start: Optional[str], end: Optional[str]) -> bool:
    """
    Whether an HH:MM time falls inside a daily window.

    A window whose start is after its end wraps past midnight. Bounds are
    inclusive; no window means always inside.
    """
    if not start or not end:
        return True
    if start <= end:
        return start <= now_hm <= end
    return now_hm >= start or now_hm <= end


class MonitorState:
    """Mutable in-memory state of one monitor."""

    def __init__(self, log_size: Optional[int] = None):
        self.next_allowed_notify_at: Optional[datetime] = None
        self.is_running = False
        self.last_check_result: Optional[bool] = None
        self.logs: Deque[str] = deque(maxlen=log_size or settings.MONITOR_LOG_SIZE)

    def can_notify(self, now: datetime) -> bool:
        return self.next_allowed_notify_at is None or now >= self.next_allowed_notify_at

    def reset_throttle(self) -> None:
        """Allow a push on the next in-stock check."""
        self.next_allowed_notify_at = None

    def record_notify_outcome(self, outcome: NotifyOutcome, now: datetime) -> None:
        """
        Advance or reset the throttle from a notify outcome.

        Sent pushes wait the full frequency, throttled ones wait the reported
        remaining minutes (one minute when unknown), failures reset so the
        next in-stock check retries.
        """
        if not outcome.success:
            self.reset_throttle()
        elif outcome.skipped:
            if outcome.remaining_minutes:
                self.next_allowed_notify_at = now + timedelta(minutes=outcome.remaining_minutes)
            else:
                self.next_allowed_notify_at = now + timedelta(seconds=60)
        else:
            frequency = outcome.frequency_minutes or settings.DEFAULT_NOTIFY_FREQUENCY_MINUTES
            self.next_allowed_notify_at = now + timedelta(minutes=frequency)

    def add_log(self, message: str, collapse_repeats: bool = False) -> None:
        """
        Prepend a log line, keeping only the newest entries.

        Lines look like "HH:MM:SS - text". With collapse_repeats, a line is
        dropped when the newest entry carries the same text.
        """
        if collapse_repeats and self.logs:
            if self.logs[0].split(" - ", 1)[-1] == message.split(" - ", 1)[-1]:
                return
        self.logs.appendleft(message)


class FavoriteMonitor:
    """Polls one favorited variant and drives its notify path."""

    def __init__(
        self,
        user_id: int,
        product_id: str,
        color: str,
        size: str,
        fetcher: CatalogFetcher,
        notify_service: FavoriteNotifyService,
        scheduler: AsyncIOScheduler,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        task_service: MonitorTaskService = monitor_task_service,
        frequency_seconds: int = 60,
        window_start: Optional[str] = None,
        window_end: Optional[str] = None,
        product_code: Optional[str] = None,
        product_name: Optional[str] = None,
        target_price: Optional[float] = None,
        task_id: Optional[int] = None,
    ):
        self.user_id = user_id
        self.product_id = product_id
        self.color = color
        self.size = size
        self.fetcher = fetcher
        self.notify_service = notify_service
        self.scheduler = scheduler
        self.session_factory = session_factory
        self.task_service = task_service
        self.frequency_seconds = max(frequency_seconds, settings.MONITOR_MIN_INTERVAL_SECONDS)
        self.window_start = window_start
        self.window_end = window_end
        self.product_code = product_code
        self.product_name = product_name
        self.target_price = target_price
        self.task_id = task_id
        self.state = MonitorState()

    @property
    def key(self) -> MonitorKey:
        return (self.user_id, self.product_id, self.color, self.size)

    @property
    def job_id(self) -> str:
        return f"monitor:{self.user_id}:{self.product_id}:{self.color}:{self.size}"

    def configure(
        self,
        frequency_seconds: int,
        window_start: Optional[str],
        window_end: Optional[str],
    ) -> None:
        self.frequency_seconds = max(frequency_seconds, settings.MONITOR_MIN_INTERVAL_SECONDS)
        self.window_start = window_start
        self.window_end = window_end

    def _log_prefix(self) -> str:
        return datetime.now(scheduler_timezone()).strftime("%H:%M:%S")

    def _notification_text(self) -> Tuple[str, str]:
        name = self.product_name or self.product_id
        title = f"Back in stock: {name}"
        code = f"[{self.product_code}] " if self.product_code else ""
        content = (
            f"Your watched item {code}{name} ({self.color}/{self.size}) is back in stock!\n"
            f"Checked at: {self._log_prefix()}"
        )
        return title, content

    async def _append_task_log(self, db: AsyncSession, status: TaskLogStatus, message: str) -> None:
        if self.task_id is not None:
            await self.task_service.append_log(db, self.task_id, status, message)

    async def check(self) -> Optional[bool]:
        """
        Run one monitor tick.

        Returns:
            True/False for in stock/sold out, None when outside the window
            or when the stock query failed
        """
        local_now = datetime.now(scheduler_timezone())
        stamp = local_now.strftime("%H:%M:%S")

        if not is_inside_window(local_now.strftime("%H:%M"), self.window_start, self.window_end):
            self.state.add_log(
                f"{stamp} - {OUTSIDE_WINDOW} ({self.window_start}-{self.window_end})",
                collapse_repeats=True,
            )
            return None

        try:
            stock = await self.fetcher.fetch_variant_stock(self.product_id, self.color, self.size)
        except CrawlError as e:
            self.state.add_log(f"{stamp} - check failed: {e.message}")
            async with self.session_factory() as db:
                await self._append_task_log(db, TaskLogStatus.FAILURE, e.message)
            logger.warning(
                "Monitor stock check failed",
                extra={"job_id": self.job_id, "error": e.message},
            )
            return None

        in_stock = stock > 0
        self.state.last_check_result = in_stock
        status_text = f"in stock ({stock})" if in_stock else "sold out"
        self.state.add_log(f"{stamp} - {status_text}")

        async with self.session_factory() as db:
            await self._append_task_log(
                db,
                TaskLogStatus.SUCCESS if in_stock else TaskLogStatus.OUT_OF_STOCK,
                status_text,
            )

            if not in_stock:
                # Next in-stock observation may notify immediately
                self.state.reset_throttle()
                return False

            now = datetime.utcnow()
            if self.state.can_notify(now):
                await self._notify(db, now, stamp)

        return True

    async def _notify(self, db: AsyncSession, now: datetime, stamp: str) -> None:
        title, content = self._notification_text()
        link_url = settings.CATALOG_PRODUCT_PAGE_URL.format(product_id=self.product_id)

        try:
            outcome = await self.notify_service.notify(
                db,
                user_id=self.user_id,
                product_id=self.product_id,
                color=self.color,
                size=self.size,
                title=title,
                content=content,
                link_url=link_url,
                now=now,
            )
        except NotificationError as e:
            self.state.reset_throttle()
            self.state.add_log(f"{stamp} - [notify failed] {e.message}")
            await self._append_task_log(db, TaskLogStatus.NO_RECIPIENT, e.message)
            return

        self.state.record_notify_outcome(outcome, now)

        if not outcome.success:
            self.state.add_log(f"{stamp} - [notify failed] {outcome.message or 'unknown error'}")
        elif outcome.skipped:
            remaining = outcome.remaining_minutes if outcome.remaining_minutes is not None else "?"
            self.state.add_log(f"{stamp} - [throttled] {remaining} minutes remaining")
        else:
            self.state.add_log(f"{stamp} - [notified] push sent")
            await self._append_task_log(db, TaskLogStatus.NOTIFIED, "Push sent")

    async def run_tick(self) -> None:
        """Scheduler entry point; a failing tick never stops the monitor."""
        with job_context(f"monitor-{self.task_id}"):
            try:
                await self.check()
            except Exception as e:
                logger.error(
                    "Monitor tick failed",
                    extra={"job_id": self.job_id, "error": str(e)},
                    exc_info=True,
                )

    def install_job(self) -> None:
        self.scheduler.add_job(
            self.run_tick,
            IntervalTrigger(seconds=self.frequency_seconds),
            id=self.job_id,
            name=f"Monitor {self.product_id} {self.color}/{self.size}",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.state.is_running = True

    def remove_job(self) -> None:
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            pass
        self.state.is_running = False

    async def start(self) -> None:
        """Persist the task as active, then start polling."""
        async with self.session_factory() as db:
            task = await self.task_service.upsert_task(
                db,
                user_id=self.user_id,
                product_id=self.product_id,
                color=self.color,
                size=self.size,
                frequency_seconds=self.frequency_seconds,
                is_active=True,
                window_start=self.window_start,
                window_end=self.window_end,
                product_code=self.product_code,
                product_name=self.product_name,
                target_price=self.target_price,
            )
            self.task_id = task.id

        self.install_job()
        logger.info(
            "Monitor started",
            extra={
                "job_id": self.job_id,
                "task_id": self.task_id,
                "frequency_seconds": self.frequency_seconds,
            },
        )

    async def stop(self) -> None:
        """
        Persist the task as inactive, then stop polling.

        Polling stops even when the persist fails; the error still propagates
        so the caller can retry.
        """
        try:
            if self.task_id is not None:
                async with self.session_factory() as db:
                    await self.task_service.set_active(db, self.task_id, False)
        finally:
            self.remove_job()
        logger.info("Monitor stopped", extra={"job_id": self.job_id, "task_id": self.task_id})


class MonitorRegistry:
    """
    Owner of every running FavoriteMonitor.

    Created once by the application lifespan; monitors are keyed by
    (user_id, product_id, color, size).
    """

    def __init__(
        self,
        fetcher: CatalogFetcher,
        notify_service: FavoriteNotifyService,
        scheduler: Optional[AsyncIOScheduler] = None,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        task_service: MonitorTaskService = monitor_task_service,
    ):
        self.fetcher = fetcher
        self.notify_service = notify_service
        self.scheduler = scheduler or AsyncIOScheduler(timezone=scheduler_timezone())
        self.session_factory = session_factory
        self.task_service = task_service
        self._monitors: Dict[MonitorKey, FavoriteMonitor] = {}

    @property
    def running(self) -> bool:
        return self.scheduler.running

    @property
    def monitor_count(self) -> int:
        return len(self._monitors)

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Monitor scheduler started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        for monitor in self._monitors.values():
            monitor.state.is_running = False
        logger.info("Monitor scheduler stopped", extra={"monitor_count": len(self._monitors)})

    def _build(self, user_id: int, product_id: str, color: str, size: str, **options) -> FavoriteMonitor:
        return FavoriteMonitor(
            user_id=user_id,
            product_id=product_id,
            color=color,
            size=size,
            fetcher=self.fetcher,
            notify_service=self.notify_service,
            scheduler=self.scheduler,
            session_factory=self.session_factory,
            task_service=self.task_service,
            **options,
        )

    async def start_monitor(
        self,
        user_id: int,
        product_id: str,
        color: str,
        size: str,
        frequency_seconds: int = 60,
        window_start: Optional[str] = None,
        window_end: Optional[str] = None,
        product_code: Optional[str] = None,
        product_name: Optional[str] = None,
        target_price: Optional[float] = None,
    ) -> FavoriteMonitor:
        """
        Start or reconfigure the monitor of a variant.

        Returns:
            The running monitor
        """
        key = (user_id, product_id, color, size)
        monitor = self._monitors.get(key)
        if monitor is None:
            monitor = self._build(
                user_id,
                product_id,
                color,
                size,
                frequency_seconds=frequency_seconds,
                window_start=window_start,
                window_end=window_end,
                product_code=product_code,
                product_name=product_name,
                target_price=target_price,
            )
            self._monitors[key] = monitor
        else:
            monitor.configure(frequency_seconds, window_start, window_end)
            monitor.product_code = product_code or monitor.product_code
            monitor.product_name = product_name or monitor.product_name
            monitor.target_price = target_price if target_price is not None else monitor.target_price

        await monitor.start()
        return monitor

    async def stop_monitor(self, user_id: int, product_id: str, color: str, size: str) -> bool:
        """
        Stop the monitor of a variant.

        A persisted task without a live monitor is still marked inactive.

        Returns:
            True if a live monitor or an active task was stopped
        """
        key = (user_id, product_id, color, size)
        monitor = self._monitors.get(key)
        if monitor is not None:
            # Stays registered until the task is persisted inactive
            await monitor.stop()
            self._monitors.pop(key, None)
            return True

        async with self.session_factory() as db:
            task = await self.task_service.get_task(db, user_id, product_id, color, size)
            if task is None or not task.is_active:
                return False
            await self.task_service.set_active(db, task.id, False)
        return True

    def get(self, user_id: int, product_id: str, color: str, size: str) -> Optional[FavoriteMonitor]:
        return self._monitors.get((user_id, product_id, color, size))

    def list_for_user(self, user_id: int) -> List[FavoriteMonitor]:
        return [monitor for key, monitor in self._monitors.items() if key[0] == user_id]

    async def restore_active(self, db: AsyncSession) -> int:
        """
        Re-create monitors for every task persisted as active.

        Returns:
            Number of monitors restored
        """
        tasks = await self.task_service.list_active(db)
        for task in tasks:
            key = (task.user_id, task.product_id, task.color, task.size)
            if key in self._monitors:
                continue
            monitor = self._build(
                task.user_id,
                task.product_id,
                task.color,
                task.size,
                frequency_seconds=task.frequency_seconds,
                window_start=task.window_start,
                window_end=task.window_end,
                product_code=task.product_code,
                product_name=task.product_name,
                target_price=float(task.target_price) if task.target_price is not None else None,
                task_id=task.id,
            )
            monitor.install_job()
            self._monitors[key] = monitor

        logger.info("Active monitors restored", extra={"monitor_count": len(tasks)})
        return len(tasks)


# Export
__all__ = ["FavoriteMonitor", "MonitorRegistry", "MonitorState", "is_inside_window"]
