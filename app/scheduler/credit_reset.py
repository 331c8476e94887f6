"""
Batch Daily Credit Reset
Sweeps every account whose last reset is a full window old and runs the
same reset executor the request path uses
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from config import settings
from app.credits.manager import CreditManager
from app.credits.policy import reset_cutoff

logger = logging.getLogger(__name__)


async def batch_reset_all_users(manager: CreditManager, item_timeout: float = None) -> dict:
    """
    Reset credits for all eligible users

    A failing or slow user is counted and skipped; it never aborts the batch.

    Args:
        manager: Credit manager bound to a store
        item_timeout: Seconds allowed per user reset

    Returns:
        {totalCandidates, resetCount, errorCount, timestamp, durationSeconds}
    """
    if item_timeout is None:
        item_timeout = settings.BATCH_RESET_ITEM_TIMEOUT_SECONDS

    started = time.monotonic()
    now = manager.clock()
    candidates = await manager.store.find_reset_candidate_ids(reset_cutoff(now))

    logger.info(f"[CREDIT RESET] Found {len(candidates)} users needing reset")

    reset_count = 0
    error_count = 0

    for user_id in candidates:
        try:
            await asyncio.wait_for(manager.reset_credits(user_id), timeout=item_timeout)
            reset_count += 1
        except asyncio.TimeoutError:
            error_count += 1
            logger.error(f"[CREDIT RESET] Timed out resetting user {user_id} after {item_timeout}s")
        except Exception as e:
            error_count += 1
            logger.error(f"[CREDIT RESET] Failed to reset credits for user {user_id}: {str(e)}")

    duration = time.monotonic() - started
    logger.info(
        f"[CREDIT RESET] Batch completed in {duration:.2f}s. "
        f"Reset: {reset_count}, Errors: {error_count}"
    )

    return {
        "totalCandidates": len(candidates),
        "resetCount": reset_count,
        "errorCount": error_count,
        "timestamp": now,
        "durationSeconds": round(duration, 3),
    }


class CreditResetJob:
    """
    Idle -> Running -> Idle. A trigger that arrives while running is
    skipped, not queued. The flag only guards a single scheduler instance.
    """

    def __init__(
        self,
        manager_factory: Callable[[], Awaitable[CreditManager]],
        item_timeout: float = None,
    ):
        self.manager_factory = manager_factory
        self.item_timeout = item_timeout
        self._running = False
        self.last_result: Optional[dict] = None
        self.last_trigger: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self, trigger: str = "scheduled") -> Optional[dict]:
        """
        Run one batch reset

        Returns:
            Batch summary, or None when a run was already in progress
        """
        if self._running:
            logger.warning(f"[CREDIT RESET] Job already running, skipping {trigger} trigger")
            return None

        self._running = True
        try:
            logger.info(f"[CREDIT RESET] Starting {trigger} credit reset job...")
            manager = await self.manager_factory()
            result = await batch_reset_all_users(manager, self.item_timeout)
            self.last_result = result
            self.last_trigger = trigger
            return result
        finally:
            self._running = False
