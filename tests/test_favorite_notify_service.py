"""Tests for throttled back-in-stock pushes."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from backend.src.core.exceptions import NotificationError
from backend.src.models.notification_log import NotificationLog
from backend.src.services.favorite_notify_service import FavoriteNotifyService
from backend.src.services.monitor_task_service import MonitorTaskService

from conftest import FakeTransport, create_user

T0 = datetime(2026, 10, 19, 9, 0)


async def notify(service, db, user, now):
    return await service.notify(
        db,
        user_id=user.id,
        product_id="u0000000455123",
        color="09 BLACK",
        size="M",
        title="Back in stock",
        content="Your watched item is back in stock!",
        now=now,
    )


@pytest.mark.asyncio
async def test_missing_recipient_raises(db, transport):
    user = await create_user(db, wx_user_id=None)

    with pytest.raises(NotificationError):
        await notify(FavoriteNotifyService(transport), db, user, T0)

    assert transport.sent == []


@pytest.mark.asyncio
async def test_throttle_window_from_notification_log(db, transport):
    user = await create_user(db, notify_frequency_minutes=60)
    service = FavoriteNotifyService(transport)

    sent = await notify(service, db, user, T0)
    assert sent.success and not sent.skipped
    assert sent.frequency_minutes == 60

    throttled = await notify(service, db, user, T0 + timedelta(minutes=59))
    assert throttled.success and throttled.skipped
    assert throttled.remaining_minutes == 1

    again = await notify(service, db, user, T0 + timedelta(minutes=61))
    assert again.success and not again.skipped

    assert len(transport.sent) == 2
    count = await db.scalar(select(func.count()).select_from(NotificationLog))
    assert count == 2


@pytest.mark.asyncio
async def test_task_last_push_time_is_authoritative(db, transport):
    user = await create_user(db, notify_frequency_minutes=30)
    task = await MonitorTaskService().upsert_task(
        db,
        user_id=user.id,
        product_id="u0000000455123",
        color="09 BLACK",
        size="M",
        frequency_seconds=60,
        is_active=True,
    )
    service = FavoriteNotifyService(transport)

    await notify(service, db, user, T0)
    await db.refresh(task)
    assert task.last_push_time == T0

    throttled = await notify(service, db, user, T0 + timedelta(minutes=10))
    assert throttled.skipped
    assert throttled.remaining_minutes == 20


@pytest.mark.asyncio
async def test_transport_failure_is_not_recorded(db):
    user = await create_user(db)
    service = FavoriteNotifyService(FakeTransport(succeed=False))

    outcome = await notify(service, db, user, T0)

    assert not outcome.success
    assert outcome.message == "relay unavailable"
    count = await db.scalar(select(func.count()).select_from(NotificationLog))
    assert count == 0
