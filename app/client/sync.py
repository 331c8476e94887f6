"""
Optimistic profile sync
Apply edits locally at once, then reconcile with the server through a
queue that keeps at most one write in flight
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from app.client.api import PromptPixClient
from app.credits.exceptions import ThrottledError

logger = logging.getLogger(__name__)


class ProfileSyncQueue:
    """
    Edits made while a write is in flight are coalesced into the next one.
    Whatever the server returns replaces the confirmed record; edits still
    pending stay layered on top of it in the local view.
    """

    def __init__(
        self,
        client: PromptPixClient,
        profile: Dict[str, Any],
        max_throttle_retries: int = 5,
    ):
        self.client = client
        self.confirmed: Dict[str, Any] = dict(profile)
        self.local: Dict[str, Any] = dict(profile)
        self.max_throttle_retries = max_throttle_retries
        self.last_error: Optional[Exception] = None
        self.writes_sent = 0
        self._pending: Dict[str, Any] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> Dict[str, Any]:
        return dict(self._pending)

    def apply(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update the local view now and schedule a reconciling write"""
        self.local.update(fields)
        self._pending.update(fields)
        if not self.in_flight:
            self._task = asyncio.create_task(self._flush())
        return dict(self.local)

    async def drain(self) -> Dict[str, Any]:
        """Wait until every queued edit has been written or given up on"""
        while self.in_flight:
            await self._task
        return dict(self.local)

    async def _flush(self) -> None:
        throttle_retries = 0

        while self._pending:
            batch = self._pending
            self._pending = {}

            try:
                self.writes_sent += 1
                server_user = await self.client.update_me(batch)
            except ThrottledError as e:
                # Put the batch back underneath anything newer, then back off
                self._pending = {**batch, **self._pending}
                throttle_retries += 1
                if throttle_retries > self.max_throttle_retries:
                    logger.warning("Profile sync giving up after repeated throttling")
                    self.last_error = e
                    self._pending = {}
                    self.local = dict(self.confirmed)
                    return
                await asyncio.sleep(e.retry_after_ms / 1000.0)
                continue
            except Exception as e:
                logger.error(f"Profile sync write failed: {str(e)}")
                self.last_error = e
                self.local = {**self.confirmed, **self._pending}
                continue

            throttle_retries = 0
            self.last_error = None
            self.confirmed = dict(server_user)
            self.local = {**self.confirmed, **self._pending}
