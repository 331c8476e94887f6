"""Dashboard aggregation."""

from datetime import datetime, timedelta, timezone

import pytest

from app.credits.ledger import make_entry, make_reset_entry
from app.dashboard.aggregator import get_dashboard_data, safe_time_until_reset


@pytest.mark.asyncio
async def test_stale_user_sees_post_reset_state(manager, make_user, clock):
    day_start = datetime(2024, 3, 10, tzinfo=timezone.utc)
    history = [
        make_reset_entry(clock.now - timedelta(hours=30), 10, 4, 0),
        make_entry("text-to-image", -5, day_start - timedelta(hours=1), "late night"),
        make_entry("text-to-image", -2, day_start + timedelta(hours=10), "morning"),
        make_entry("remove-background", -1, day_start + timedelta(hours=11), "cutout"),
    ]
    user_id = await make_user(
        credits=2,
        last_reset=clock.now - timedelta(hours=30),
        reset_count=1,
        history=history,
        imagesGenerated=7,
        imagesEdited=1,
    )

    data = await get_dashboard_data(manager, user_id)

    assert data["user"]["credits"] == 10
    assert data["user"]["dailyCreditResetCount"] == 2
    assert data["creditInfo"]["currentCredits"] == 10
    assert data["creditInfo"]["dailyLimit"] == 10
    assert data["creditInfo"]["todaysUsage"] == 3
    assert data["creditInfo"]["remainingToday"] == 7
    assert data["creditInfo"]["timeUntilReset"]["hours"] == 24
    assert data["creditInfo"]["timeUntilReset"]["canReset"] is False

    # The reset that just ran is the newest activity
    recent = data["recentActivity"]
    assert recent["all"][0]["operation"] == "daily-reset"
    assert recent["all"][0]["timestamp"] == clock.now
    assert len(recent["creditResets"]) == 2
    assert [e["description"] for e in recent["imageGenerations"]] == ["morning", "late night"]
    assert [e["description"] for e in recent["backgroundRemovals"]] == ["cutout"]

    assert data["statistics"]["totalImagesGenerated"] == 7
    assert data["statistics"]["totalImagesEdited"] == 1
    assert data["statistics"]["totalCreditResets"] == 2


@pytest.mark.asyncio
async def test_remaining_today_never_negative(manager, make_user, clock):
    user_id = await make_user(credits=20, last_reset=clock.now - timedelta(hours=1))
    for _ in range(3):
        await manager.use_credits(user_id, 5)
    clock.advance(minutes=1)

    data = await get_dashboard_data(manager, user_id)

    assert data["creditInfo"]["todaysUsage"] == 15
    assert data["creditInfo"]["remainingToday"] == 0


@pytest.mark.asyncio
async def test_recent_activity_is_capped(manager, make_user, clock):
    user_id = await make_user(credits=100, last_reset=clock.now - timedelta(hours=1))
    for _ in range(12):
        clock.advance(seconds=1)
        await manager.use_credits(user_id, 1, operation="text-to-image")

    data = await get_dashboard_data(manager, user_id)

    assert len(data["recentActivity"]["all"]) == 10
    assert len(data["recentActivity"]["imageGenerations"]) == 5


@pytest.mark.asyncio
async def test_usage_day_follows_configured_timezone(manager, make_user, clock):
    # 15:00 UTC is 10:00 in New York on 2024-03-10; local midnight is 05:00 UTC
    user_id = await make_user(
        credits=10,
        last_reset=clock.now - timedelta(hours=1),
        history=[
            make_entry("text-to-image", -2, datetime(2024, 3, 10, 3, 0, tzinfo=timezone.utc), "before"),
            make_entry("text-to-image", -1, datetime(2024, 3, 10, 6, 0, tzinfo=timezone.utc), "after"),
        ],
    )

    utc_view = await get_dashboard_data(manager, user_id)
    ny_view = await get_dashboard_data(manager, user_id, "America/New_York")

    assert utc_view["creditInfo"]["todaysUsage"] == 3
    assert ny_view["creditInfo"]["todaysUsage"] == 1


def test_bad_reset_timestamp_reports_unknown(clock):
    result = safe_time_until_reset({"_id": "x", "lastCreditReset": "not-a-date"}, clock.now)

    assert result == {"hours": None, "minutes": None, "canReset": False, "unknown": True}


@pytest.mark.asyncio
async def test_busy_day_usage_is_not_capped_by_recent_activity_read(manager, make_user, clock):
    clock.now = datetime(2024, 3, 10, 1, 0, tzinfo=timezone.utc)
    user_id = await make_user(credits=1000, last_reset=clock.now - timedelta(minutes=30))
    for _ in range(250):
        clock.advance(seconds=10)
        await manager.use_credits(user_id, 1, operation="text-to-image")
    clock.advance(minutes=1)

    data = await get_dashboard_data(manager, user_id)

    assert data["creditInfo"]["todaysUsage"] == 250
    assert data["creditInfo"]["remainingToday"] == 0
    assert len(data["recentActivity"]["all"]) == 10
