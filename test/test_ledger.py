"""Ledger entry construction, ordering and replay."""

from datetime import datetime, timedelta, timezone

from app.credits.ledger import (
    first_reset_index,
    make_entry,
    make_reset_entry,
    newest_first,
    replay_balance,
    todays_usage,
)

T = datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)


def test_reset_entry_shape():
    entry = make_reset_entry(T, 10, 3, 4)

    assert entry["operation"] == "daily-reset"
    assert entry["amount"] == 10
    assert entry["timestamp"] == T
    assert entry["description"] == "Daily credit reset - 2024-03-10"
    assert entry["metadata"] == {"resetType": "daily", "previousCredits": 3, "resetCount": 5}


def test_plain_entry_omits_empty_metadata():
    entry = make_entry("text-to-image", -1, T, "Generated an image")
    assert "metadata" not in entry


def test_newest_first_orders_by_timestamp():
    entries = [
        make_entry("grant", 5, T - timedelta(hours=2), "a"),
        make_entry("text-to-image", -1, T, "b"),
        make_entry("text-to-image", -1, T - timedelta(hours=1), "c"),
    ]
    assert [e["description"] for e in newest_first(entries)] == ["b", "c", "a"]


def test_newest_first_ties_keep_latest_append_first():
    entries = [make_entry("grant", 1, T, "first"), make_entry("grant", 1, T, "second")]
    assert [e["description"] for e in newest_first(entries)] == ["second", "first"]


def test_replay_resets_set_the_balance():
    entries = [
        make_entry("text-to-image", -3, T - timedelta(days=2), "spend"),
        make_reset_entry(T - timedelta(days=1), 10, 7, 0),
        make_entry("text-to-image", -4, T - timedelta(hours=20), "spend"),
        make_entry("grant", 5, T - timedelta(hours=10), "grant"),
    ]
    assert replay_balance(10, entries) == 11


def test_replay_without_entries_is_initial():
    assert replay_balance(10, []) == 10


def test_todays_usage_counts_only_spends_inside_the_day():
    day_start = datetime(2024, 3, 10, tzinfo=timezone.utc)
    entries = [
        make_entry("text-to-image", -2, day_start - timedelta(minutes=1), "yesterday"),
        make_entry("text-to-image", -1, day_start, "midnight"),
        make_entry("remove-background", -3, T - timedelta(hours=1), "today"),
        make_entry("grant", 5, T - timedelta(hours=1), "not a spend"),
        make_reset_entry(day_start + timedelta(hours=1), 10, 0, 0),
    ]
    assert todays_usage(entries, day_start, T) == 4


def test_first_reset_index():
    entries = [
        make_entry("text-to-image", -1, T, "spend"),
        make_reset_entry(T, 10, 9, 0),
        make_reset_entry(T, 10, 10, 1),
    ]
    assert first_reset_index(entries) == 1
    assert first_reset_index(entries[:1]) is None
