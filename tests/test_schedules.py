"""Tests for the crawl schedule manager, runner and admin schedule service."""

from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select

from backend.src.core.categories import Category
from backend.src.core.exceptions import ResourceNotFoundError, ValidationError
from backend.src.core.logging import request_id_ctx
from backend.src.models.schedule import CrawlerSchedule
from backend.src.services.crawl_service import CrawlSummary
from backend.src.services.schedule_manager import CrawlScheduleManager, ScheduledCrawlRunner
from backend.src.services.schedule_service import ScheduleService


class RecordingRunner:
    def __init__(self):
        self.fired = []

    async def fire(self, category):
        self.fired.append(category)


class RecordingCrawlService:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def run_crawl(self, db, category=None, triggered_by="manual"):
        self.calls.append((category, triggered_by))
        if self.fail:
            raise RuntimeError("upstream exploded")
        return CrawlSummary()


@pytest_asyncio.fixture
async def manager(session_factory):
    scheduler = AsyncIOScheduler(timezone=ZoneInfo("Asia/Shanghai"))
    manager = CrawlScheduleManager(RecordingRunner(), scheduler=scheduler, session_factory=session_factory)
    manager.start()
    yield manager
    manager.shutdown()


async def get_schedule(session_factory, category):
    async with session_factory() as session:
        result = await session.execute(
            select(CrawlerSchedule).where(CrawlerSchedule.category == category)
        )
        return result.scalar_one_or_none()


@pytest.mark.asyncio
async def test_add_replace_and_remove_job(manager):
    assert manager.add_or_update_job("WOMEN", "*/30 * * * *")
    assert manager.add_or_update_job("WOMEN", "0 * * * *")

    jobs = manager.list_jobs()
    assert [(job.category, job.expression) for job in jobs] == [("WOMEN", "0 * * * *")]
    assert manager.get_next_run_time("WOMEN").minute == 0

    assert manager.remove_job("WOMEN")
    assert not manager.has_job("WOMEN")
    assert not manager.remove_job("WOMEN")


@pytest.mark.asyncio
async def test_invalid_expression_has_no_side_effects(manager):
    manager.add_or_update_job("MEN", "*/30 * * * *")

    assert not manager.add_or_update_job("MEN", "every now and then")

    assert [job.expression for job in manager.list_jobs()] == ["*/30 * * * *"]


@pytest.mark.asyncio
async def test_load_from_persisted_schedules_is_idempotent(db, manager):
    db.add_all(
        [
            CrawlerSchedule(category="WOMEN", is_enabled=True, cron_expression="*/30 * * * *"),
            CrawlerSchedule(category="MEN", is_enabled=False, cron_expression="0 * * * *"),
        ]
    )
    await db.commit()
    manager.add_or_update_job("KIDS", "0 */2 * * *")

    assert await manager.load_from_persisted_schedules(db) == 1
    assert await manager.load_from_persisted_schedules(db) == 1

    assert [job.category for job in manager.list_jobs()] == ["WOMEN"]


@pytest.mark.asyncio
async def test_load_after_delay(db, manager):
    db.add(CrawlerSchedule(category="BABY", is_enabled=True, cron_expression="0 8 * * *"))
    await db.commit()

    assert await manager.load_after_delay(0) == 1
    assert manager.has_job("BABY")


@pytest.mark.asyncio
async def test_runner_records_run_on_schedule(db, session_factory):
    db.add(CrawlerSchedule(category="WOMEN", is_enabled=True, cron_expression="*/15 * * * *"))
    await db.commit()
    crawl_service = RecordingCrawlService()

    await ScheduledCrawlRunner(crawl_service, session_factory=session_factory).fire("WOMEN")

    assert crawl_service.calls == [(Category.WOMEN, "scheduled")]
    schedule = await get_schedule(session_factory, "WOMEN")
    assert schedule.last_run_time is not None
    assert schedule.next_run_time is not None


@pytest.mark.asyncio
async def test_runner_swallows_crawl_failures(db, session_factory):
    db.add(CrawlerSchedule(category="MEN", is_enabled=True, cron_expression="*/15 * * * *"))
    await db.commit()

    await ScheduledCrawlRunner(RecordingCrawlService(fail=True), session_factory=session_factory).fire("MEN")

    schedule = await get_schedule(session_factory, "MEN")
    assert schedule.last_run_time is not None


@pytest.mark.asyncio
async def test_upsert_with_interval_installs_timer(db, manager):
    service = ScheduleService(manager)

    schedule = await service.upsert_schedule(db, "women", interval_minutes=30)

    assert schedule.category == "WOMEN"
    assert schedule.cron_expression == "*/30 * * * *"
    assert schedule.interval_minutes == 30
    assert schedule.next_run_time is not None
    assert manager.has_job("WOMEN")


@pytest.mark.asyncio
async def test_disable_removes_timer_and_keeps_expression(db, manager):
    service = ScheduleService(manager)
    await service.upsert_schedule(db, "MEN", cron_expression="0 9 * * 1-5")

    schedule = await service.upsert_schedule(db, "MEN", is_enabled=False)

    assert not schedule.is_enabled
    assert schedule.cron_expression == "0 9 * * 1-5"
    assert schedule.next_run_time is None
    assert not manager.has_job("MEN")

    await service.upsert_schedule(db, "MEN", is_enabled=True)
    assert manager.has_job("MEN")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "category, options",
    [
        (None, {"interval_minutes": 30}),
        ("PETS", {"interval_minutes": 30}),
        ("WOMEN", {"interval_minutes": 10}),
        ("WOMEN", {"cron_expression": "61 * * * *"}),
        ("WOMEN", {}),
    ],
)
async def test_invalid_upserts_write_nothing(db, manager, session_factory, category, options):
    service = ScheduleService(manager)

    with pytest.raises(ValidationError):
        await service.upsert_schedule(db, category, **options)

    assert await get_schedule(session_factory, "WOMEN") is None
    assert manager.list_jobs() == []


@pytest.mark.asyncio
async def test_delete_schedule(db, manager, session_factory):
    service = ScheduleService(manager)
    await service.upsert_schedule(db, "KIDS", interval_minutes=60)

    await service.delete_schedule(db, "KIDS")

    assert await get_schedule(session_factory, "KIDS") is None
    assert not manager.has_job("KIDS")
    with pytest.raises(ResourceNotFoundError):
        await service.delete_schedule(db, "KIDS")


@pytest.mark.asyncio
async def test_runner_tags_logs_with_a_job_correlation_id(db, session_factory):
    seen = []

    class CorrelationCrawlService(RecordingCrawlService):
        async def run_crawl(self, db, category=None, triggered_by="manual"):
            seen.append(request_id_ctx.get())
            return await super().run_crawl(db, category, triggered_by)

    await ScheduledCrawlRunner(CorrelationCrawlService(), session_factory=session_factory).fire("KIDS")

    assert seen[0].startswith("crawl-kids-")
    assert request_id_ctx.get() is None
