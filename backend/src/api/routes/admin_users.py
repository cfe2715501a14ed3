"""
Admin endpoints for per-user push settings and monitor tasks.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.api.schemas.monitor_schemas import (
    MonitorTaskListResponse,
    MonitorTaskResponse,
    PushSettings,
    PushSettingsUpdateRequest,
    UserResponse,
    UserUpdateRequest,
)
from backend.src.core.auth import require_admin
from backend.src.core.database import get_db
from backend.src.core.exceptions import ResourceNotFoundError
from backend.src.core.logging import get_logger
from backend.src.models.push_subscription import PushSubscription
from backend.src.models.user import User
from backend.src.services.monitor_task_service import monitor_task_service

logger = get_logger(__name__)

router = APIRouter(
    prefix="/v1/admin/users",
    tags=["Admin Users"],
    dependencies=[Depends(require_admin)],
)


async def _get_user(user_id: int, db: AsyncSession) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise ResourceNotFoundError("User", str(user_id))
    return user


async def _get_subscription(user_id: int, db: AsyncSession):
    result = await db.execute(select(PushSubscription).where(PushSubscription.user_id == user_id))
    return result.scalar_one_or_none()


def _to_push_settings(user_id: int, subscription) -> PushSettings:
    if subscription is None:
        return PushSettings(user_id=user_id)
    return PushSettings(
        user_id=user_id,
        is_enabled=subscription.is_enabled,
        channel=subscription.channel,
        frequency_seconds=subscription.frequency_seconds,
        genders=list(subscription.genders or []),
        last_push_time=subscription.last_push_time,
    )


@router.get(
    "/{user_id}/push-settings",
    response_model=PushSettings,
    summary="Get a user's new-arrival push settings",
)
async def get_push_settings(user_id: int, db: AsyncSession = Depends(get_db)) -> PushSettings:
    await _get_user(user_id, db)
    return _to_push_settings(user_id, await _get_subscription(user_id, db))


@router.put(
    "/{user_id}/push-settings",
    response_model=PushSettings,
    summary="Replace a user's new-arrival push settings",
)
async def update_push_settings(
    user_id: int,
    request: PushSettingsUpdateRequest,
    db: AsyncSession = Depends(get_db),
) -> PushSettings:
    await _get_user(user_id, db)

    subscription = await _get_subscription(user_id, db)
    if subscription is None:
        subscription = PushSubscription(user_id=user_id)
        db.add(subscription)

    subscription.is_enabled = request.is_enabled
    subscription.frequency_seconds = request.frequency_seconds
    subscription.genders = request.genders

    await db.commit()
    await db.refresh(subscription)

    logger.info(
        "Push settings updated",
        extra={
            "user_id": user_id,
            "is_enabled": request.is_enabled,
            "genders": request.genders,
        },
    )
    return _to_push_settings(user_id, subscription)


@router.patch(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update a user's push recipient or favorite push frequency",
)
async def update_user(
    user_id: int,
    request: UserUpdateRequest,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await _get_user(user_id, db)

    updates = request.model_dump(exclude_unset=True)
    for field, value in updates.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)

    logger.info("User updated", extra={"user_id": user_id, "fields": sorted(updates)})
    return UserResponse.model_validate(user)


@router.get(
    "/{user_id}/tasks",
    response_model=MonitorTaskListResponse,
    summary="List a user's favorite monitor tasks",
)
async def list_user_tasks(user_id: int, db: AsyncSession = Depends(get_db)) -> MonitorTaskListResponse:
    await _get_user(user_id, db)
    tasks = await monitor_task_service.list_for_user(db, user_id)
    return MonitorTaskListResponse(
        tasks=[MonitorTaskResponse.model_validate(task) for task in tasks]
    )


# Export router
__all__ = ["router"]
