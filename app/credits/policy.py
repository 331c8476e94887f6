"""
Daily credit reset policy
Pure time arithmetic: no I/O, the current instant is always passed in
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config import CREDIT_RESET_WINDOW


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """MongoDB hands back naive datetimes unless tz_aware is set; they are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def needs_reset(user: dict, now: datetime) -> bool:
    """
    Decide whether a user's daily credits are due for a reset

    Args:
        user: User credit record
        now: Current instant

    Returns:
        True if the account was never reset or the last reset is at least
        one full window old
    """
    last_reset = user.get("lastCreditReset")
    if not last_reset:
        return True

    return as_utc(now) - as_utc(last_reset) >= CREDIT_RESET_WINDOW


def reset_cutoff(now: datetime) -> datetime:
    """Latest lastCreditReset value that still makes a user due at `now`"""
    return as_utc(now) - CREDIT_RESET_WINDOW


def time_until_reset(last_reset: Optional[datetime], now: datetime) -> dict:
    """
    Remaining time before the next reset becomes due

    Returns:
        {"hours", "minutes", "canReset"} plus "nextResetTime" while waiting
    """
    if not last_reset:
        return {"hours": 0, "minutes": 0, "canReset": True}

    next_reset = as_utc(last_reset) + CREDIT_RESET_WINDOW
    remaining = next_reset - as_utc(now)

    if remaining <= timedelta(0):
        return {"hours": 0, "minutes": 0, "canReset": True}

    total_minutes = int(remaining.total_seconds() // 60)
    return {
        "hours": total_minutes // 60,
        "minutes": total_minutes % 60,
        "canReset": False,
        "nextResetTime": next_reset,
    }


def unknown_time_until_reset() -> dict:
    return {"hours": None, "minutes": None, "canReset": False, "unknown": True}


def local_midnight(now: datetime, tz_name: str = "UTC") -> datetime:
    """Start of the calendar day containing `now` in the given timezone, as UTC"""
    local_now = as_utc(now).astimezone(ZoneInfo(tz_name))
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)
