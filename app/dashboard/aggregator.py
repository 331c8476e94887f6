"""
Dashboard Aggregator
Day-scoped credit usage derived from the ledger
"""
import logging

from config import settings, CREDIT_OPERATIONS, DASHBOARD_HISTORY_SCAN_LIMIT
from app.credits.ledger import todays_usage
from app.credits.manager import CreditManager
from app.credits.policy import local_midnight, time_until_reset, unknown_time_until_reset

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10
RECENT_PER_KIND_LIMIT = 5
RECENT_RESETS_LIMIT = 3


def safe_time_until_reset(user: dict, now) -> dict:
    """Timing problems show as "unknown" instead of failing the dashboard"""
    try:
        return time_until_reset(user.get("lastCreditReset"), now)
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Could not compute time until reset for user {user.get('_id')}: {str(e)}")
        return unknown_time_until_reset()


async def get_dashboard_data(manager: CreditManager, user_id: str, tz_name: str = None) -> dict:
    """
    Aggregate the dashboard view for one user

    The lazy reset runs first so the balance shown is never stale, and the
    ledger is read afterwards so a reset that just happened is included.
    Recent activity comes from the newest entries; today's usage reads
    every entry since local midnight.
    """
    user = await manager.check_and_reset_credits(user_id)
    history = await manager.get_credit_history(user_id, DASHBOARD_HISTORY_SCAN_LIMIT)
    now = manager.clock()

    daily_limit = manager.daily_amount
    day_start = local_midnight(now, tz_name or settings.DASHBOARD_TIMEZONE)
    # Read by timestamp so a busy day is counted in full
    todays_entries = await manager.get_history_since(user_id, day_start)
    used_today = todays_usage(todays_entries, day_start, now)

    def of_kind(operation: str, limit: int):
        return [entry for entry in history if entry.get("operation") == operation][:limit]

    return {
        "user": {
            "id": str(user["_id"]),
            "displayName": user.get("displayName"),
            "email": user.get("email"),
            "credits": user.get("credits", 0),
            "imagesGenerated": user.get("imagesGenerated", 0),
            "imagesEdited": user.get("imagesEdited", 0),
            "lastCreditReset": user.get("lastCreditReset"),
            "dailyCreditResetCount": user.get("dailyCreditResetCount", 0),
        },
        "creditInfo": {
            "currentCredits": user.get("credits", 0),
            "dailyLimit": daily_limit,
            "todaysUsage": used_today,
            "remainingToday": max(0, daily_limit - used_today),
            "timeUntilReset": safe_time_until_reset(user, now),
        },
        "recentActivity": {
            "all": history[:RECENT_ACTIVITY_LIMIT],
            "imageGenerations": of_kind(CREDIT_OPERATIONS["text_to_image"], RECENT_PER_KIND_LIMIT),
            "backgroundRemovals": of_kind(CREDIT_OPERATIONS["remove_background"], RECENT_PER_KIND_LIMIT),
            "creditResets": of_kind(CREDIT_OPERATIONS["daily_reset"], RECENT_RESETS_LIMIT),
        },
        "statistics": {
            "totalImagesGenerated": user.get("imagesGenerated", 0),
            "totalImagesEdited": user.get("imagesEdited", 0),
            "totalCreditResets": user.get("dailyCreditResetCount", 0),
            "memberSince": user.get("createdAt"),
        },
    }
