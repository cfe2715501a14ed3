"""Tests for new-arrival dispatch."""

from datetime import datetime, timedelta

import pytest

from backend.src.core.categories import Category
from backend.src.models.push_subscription import PushSubscription
from backend.src.services.notification_dispatcher import (
    NotificationDispatcher,
    format_new_arrival,
    group_by_code,
)

from conftest import FakeTransport, create_user, make_item

NOW = datetime(2026, 10, 19, 12, 0)


async def subscribe(db, user, genders, last_push_time=None, frequency_seconds=3600, is_enabled=True):
    subscription = PushSubscription(
        user_id=user.id,
        is_enabled=is_enabled,
        genders=genders,
        frequency_seconds=frequency_seconds,
        last_push_time=last_push_time,
    )
    db.add(subscription)
    await db.commit()
    return subscription


def new_items():
    return [
        make_item(code="455123", color="09 BLACK", size="M"),
        make_item(code="455123", color="09 BLACK", size="L"),
        make_item(code="455777", color="00 WHITE", size="S", name="Oxford Shirt", price=149),
    ]


def test_group_by_code_preserves_order():
    groups = group_by_code(new_items())
    assert list(groups) == ["455123", "455777"]
    assert len(groups["455123"]) == 2


def test_format_new_arrival_lists_variants():
    title, body = format_new_arrival("455777", group_by_code(new_items())["455777"])
    assert title == "New arrival: Oxford Shirt (455777)"
    assert body == "00 WHITE / S  ¥149"


@pytest.mark.asyncio
async def test_one_push_per_subscriber_and_code(db, transport):
    alice = await create_user(db, "alice", wx_user_id="wx-alice")
    bob = await create_user(db, "bob", wx_user_id="wx-bob")
    await subscribe(db, alice, ["WOMEN"])
    await subscribe(db, bob, ["MEN"])

    summary = await NotificationDispatcher(transport).dispatch_new_arrivals(
        Category.WOMEN, new_items(), db, now=NOW
    )

    assert summary.subscribers_matched == 1
    assert summary.pushes_sent == 2
    assert [push["recipient"] for push in transport.sent] == ["wx-alice", "wx-alice"]
    assert transport.sent[0]["link_url"].endswith("u0000000455123")


@pytest.mark.asyncio
async def test_successful_push_advances_throttle(db, transport):
    alice = await create_user(db)
    subscription = await subscribe(db, alice, ["WOMEN"])
    dispatcher = NotificationDispatcher(transport)

    await dispatcher.dispatch_new_arrivals(Category.WOMEN, new_items(), db, now=NOW)
    await db.refresh(subscription)
    assert subscription.last_push_time == NOW

    summary = await dispatcher.dispatch_new_arrivals(
        Category.WOMEN, new_items(), db, now=NOW + timedelta(minutes=30)
    )
    assert summary.skipped_throttled == 1
    assert len(transport.sent) == 2

    summary = await dispatcher.dispatch_new_arrivals(
        Category.WOMEN, new_items(), db, now=NOW + timedelta(minutes=61)
    )
    assert summary.pushes_sent == 2


@pytest.mark.asyncio
async def test_subscriber_without_recipient_is_skipped(db, transport):
    carol = await create_user(db, "carol", wx_user_id=None)
    await subscribe(db, carol, ["WOMEN"])

    summary = await NotificationDispatcher(transport).dispatch_new_arrivals(
        Category.WOMEN, new_items(), db, now=NOW
    )

    assert summary.skipped_no_recipient == 1
    assert transport.sent == []


@pytest.mark.asyncio
async def test_failed_pushes_do_not_advance_throttle(db):
    alice = await create_user(db)
    subscription = await subscribe(db, alice, ["WOMEN"])
    transport = FakeTransport(succeed=False)

    summary = await NotificationDispatcher(transport).dispatch_new_arrivals(
        Category.WOMEN, new_items(), db, now=NOW
    )

    assert summary.pushes_failed == 2
    await db.refresh(subscription)
    assert subscription.last_push_time is None


@pytest.mark.asyncio
async def test_disabled_subscription_and_empty_new_set(db, transport):
    alice = await create_user(db)
    await subscribe(db, alice, ["WOMEN"], is_enabled=False)
    dispatcher = NotificationDispatcher(transport)

    disabled = await dispatcher.dispatch_new_arrivals(Category.WOMEN, new_items(), db, now=NOW)
    empty = await dispatcher.dispatch_new_arrivals(Category.WOMEN, [], db, now=NOW)

    assert disabled.subscribers_matched == 0
    assert empty.subscribers_matched == 0
    assert transport.sent == []
