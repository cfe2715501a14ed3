"""
Per-favorite monitor API endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.api.deps import get_monitor_registry
from backend.src.api.schemas.monitor_schemas import (
    MonitorListResponse,
    MonitorStartRequest,
    MonitorStatus,
    MonitorStopRequest,
    TaskLogEntry,
    TaskLogListResponse,
)
from backend.src.core.auth import AuthenticatedUser, require_read, require_write
from backend.src.core.database import get_db
from backend.src.core.exceptions import ResourceNotFoundError
from backend.src.models.base import SuccessResponse
from backend.src.services.favorite_monitor import FavoriteMonitor, MonitorRegistry
from backend.src.services.monitor_task_service import monitor_task_service

router = APIRouter(prefix="/v1/monitors", tags=["Monitors"])


def to_monitor_status(monitor: FavoriteMonitor) -> MonitorStatus:
    return MonitorStatus(
        task_id=monitor.task_id,
        product_id=monitor.product_id,
        color=monitor.color,
        size=monitor.size,
        frequency_seconds=monitor.frequency_seconds,
        window_start=monitor.window_start,
        window_end=monitor.window_end,
        is_running=monitor.state.is_running,
        last_check_result=monitor.state.last_check_result,
        next_allowed_notify_at=monitor.state.next_allowed_notify_at,
        logs=list(monitor.state.logs),
    )


@router.post(
    "/start",
    response_model=MonitorStatus,
    status_code=status.HTTP_200_OK,
    summary="Start or reconfigure a favorite monitor",
)
async def start_monitor(
    request: MonitorStartRequest,
    user: AuthenticatedUser = Depends(require_write),
    registry: MonitorRegistry = Depends(get_monitor_registry),
) -> MonitorStatus:
    """
    Persist the favorite task as active and start polling it.

    Intervals below the minimum are raised to it.
    """
    monitor = await registry.start_monitor(
        user_id=user.user_id,
        product_id=request.product_id,
        color=request.color,
        size=request.size,
        frequency_seconds=request.frequency_seconds,
        window_start=request.window_start,
        window_end=request.window_end,
        product_code=request.product_code,
        product_name=request.product_name,
        target_price=request.target_price,
    )
    return to_monitor_status(monitor)


@router.post(
    "/stop",
    response_model=SuccessResponse,
    summary="Stop a favorite monitor",
)
async def stop_monitor(
    request: MonitorStopRequest,
    user: AuthenticatedUser = Depends(require_write),
    registry: MonitorRegistry = Depends(get_monitor_registry),
) -> SuccessResponse:
    stopped = await registry.stop_monitor(
        user.user_id, request.product_id, request.color, request.size
    )
    if not stopped:
        raise ResourceNotFoundError("Monitor", request.product_id)
    return SuccessResponse(message="Monitor stopped")


@router.get(
    "",
    response_model=MonitorListResponse,
    summary="List the caller's monitors",
)
async def list_monitors(
    user: AuthenticatedUser = Depends(require_read),
    registry: MonitorRegistry = Depends(get_monitor_registry),
) -> MonitorListResponse:
    return MonitorListResponse(
        monitors=[to_monitor_status(m) for m in registry.list_for_user(user.user_id)]
    )


@router.get(
    "/{task_id}/logs",
    response_model=TaskLogListResponse,
    summary="Execution history of a monitor task",
)
async def get_task_logs(
    task_id: int,
    user: AuthenticatedUser = Depends(require_read),
    db: AsyncSession = Depends(get_db),
) -> TaskLogListResponse:
    task = await monitor_task_service.get_task_by_id(db, task_id)
    if task is None or (task.user_id != user.user_id and not user.is_admin):
        raise ResourceNotFoundError("MonitorTask", str(task_id))

    logs = await monitor_task_service.recent_logs(db, task_id)
    return TaskLogListResponse(
        task_id=task_id,
        logs=[TaskLogEntry.model_validate(entry) for entry in logs],
    )


# Export router
__all__ = ["router"]
