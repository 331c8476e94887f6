"""
Credit ledger entries
Construction, ordering and replay of creditHistory records
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from config import CREDIT_OPERATIONS
from app.credits.models import LedgerEntry
from app.credits.policy import as_utc

DAILY_RESET = CREDIT_OPERATIONS["daily_reset"]


def make_entry(
    operation: str,
    amount: int,
    timestamp: datetime,
    description: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> dict:
    entry = LedgerEntry(
        operation=operation,
        amount=amount,
        timestamp=timestamp,
        description=description,
        metadata=metadata or None,
    )
    return entry.model_dump(exclude_none=True)


def make_reset_entry(now: datetime, daily_amount: int, previous_credits: int, previous_count: int) -> dict:
    return make_entry(
        DAILY_RESET,
        daily_amount,
        now,
        f"Daily credit reset - {now.date().isoformat()}",
        {
            "resetType": "daily",
            "previousCredits": previous_credits,
            "resetCount": previous_count + 1,
        },
    )


def newest_first(entries: Iterable[dict]) -> List[dict]:
    """Sort by timestamp descending; ties keep reverse append order."""
    indexed = list(enumerate(entries))
    indexed.sort(key=lambda pair: (as_utc(pair[1]["timestamp"]), pair[0]), reverse=True)
    return [entry for _, entry in indexed]


def replay_balance(initial_credits: int, entries: Iterable[dict]) -> int:
    """
    Rebuild a balance from its ledger, oldest entry first.
    Daily resets set the balance; every other entry adds its amount.
    """
    balance = initial_credits
    for entry in entries:
        if entry.get("operation") == DAILY_RESET:
            balance = entry["amount"]
        else:
            balance += entry["amount"]
    return balance


def first_reset_index(entries: List[dict]) -> Optional[int]:
    """Position of the oldest daily reset in append-ordered entries"""
    for index, entry in enumerate(entries):
        if entry.get("operation") == DAILY_RESET:
            return index
    return None


def todays_usage(entries: Iterable[dict], day_start: datetime, now: datetime) -> int:
    """Credits spent in [day_start, now)"""
    start = as_utc(day_start)
    end = as_utc(now)
    return sum(
        abs(entry["amount"])
        for entry in entries
        if entry.get("amount", 0) < 0 and start <= as_utc(entry["timestamp"]) < end
    )
