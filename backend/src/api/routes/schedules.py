"""
Crawler schedule management API endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.api.deps import get_schedule_manager, get_schedule_service
from backend.src.api.schemas.schedule_schemas import (
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleUpsertRequest,
)
from backend.src.core.auth import require_admin
from backend.src.core.cron_utils import describe_cron, get_next_execution_times
from backend.src.core.database import get_db
from backend.src.models.schedule import CrawlerSchedule
from backend.src.services.schedule_manager import CrawlScheduleManager
from backend.src.services.schedule_service import ScheduleService

router = APIRouter(
    prefix="/v1/crawler-schedules",
    tags=["Crawler Schedules"],
    dependencies=[Depends(require_admin)],
)


def to_schedule_response(
    schedule: CrawlerSchedule,
    manager: CrawlScheduleManager,
) -> ScheduleResponse:
    """Combine a persisted schedule with its live timer state."""
    is_scheduled = manager.has_job(schedule.category)
    return ScheduleResponse(
        id=schedule.id,
        category=schedule.category,
        is_enabled=schedule.is_enabled,
        cron_expression=schedule.cron_expression,
        interval_minutes=schedule.interval_minutes,
        description=describe_cron(schedule.cron_expression),
        last_run_time=schedule.last_run_time,
        next_run_time=manager.get_next_run_time(schedule.category) or schedule.next_run_time,
        is_scheduled=is_scheduled,
        upcoming_runs=get_next_execution_times(schedule.cron_expression) if is_scheduled else [],
    )


@router.get(
    "",
    response_model=ScheduleListResponse,
    summary="List crawler schedules",
)
async def list_schedules(
    service: ScheduleService = Depends(get_schedule_service),
    manager: CrawlScheduleManager = Depends(get_schedule_manager),
    db: AsyncSession = Depends(get_db),
) -> ScheduleListResponse:
    schedules = await service.list_schedules(db)
    return ScheduleListResponse(
        schedules=[to_schedule_response(schedule, manager) for schedule in schedules]
    )


@router.post(
    "",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Create, update, enable or disable a category schedule",
)
async def upsert_schedule(
    request: ScheduleUpsertRequest,
    service: ScheduleService = Depends(get_schedule_service),
    manager: CrawlScheduleManager = Depends(get_schedule_manager),
    db: AsyncSession = Depends(get_db),
) -> ScheduleResponse:
    """
    Upsert the schedule of one category.

    ``interval_minutes`` (at least 15) takes precedence over
    ``cron_expression``. Enabling installs or replaces the live timer,
    disabling removes it.

    Raises:
        ValidationError: Missing category or invalid recurrence (422)
    """
    schedule = await service.upsert_schedule(
        db,
        category=request.category,
        is_enabled=request.is_enabled,
        cron_expression=request.cron_expression,
        interval_minutes=request.interval_minutes,
    )
    return to_schedule_response(schedule, manager)


@router.delete(
    "/{category}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a category schedule",
)
async def delete_schedule(
    category: str,
    service: ScheduleService = Depends(get_schedule_service),
    db: AsyncSession = Depends(get_db),
) -> None:
    await service.delete_schedule(db, category)


# Export router
__all__ = ["router"]
