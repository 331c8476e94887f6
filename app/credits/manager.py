"""
Credit Management System
Handles daily resets, credit consumption, grants and ledger queries
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from config import (
    settings,
    CREDIT_OPERATIONS,
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    AUDIT_HISTORY_LIMIT,
    RESERVED_OPERATIONS,
)
from app.credits.exceptions import (
    InsufficientCreditsError,
    InvalidAmountError,
    InvalidOperationError,
    UserNotFoundError,
)
from app.credits.ledger import first_reset_index, make_entry, make_reset_entry, newest_first, replay_balance
from app.credits.policy import needs_reset, time_until_reset, utc_now
from app.credits.store import CreditStore

logger = logging.getLogger(__name__)

# Attempts at the reset compare-and-set before giving up on a contended record
MAX_RESET_ATTEMPTS = 5


def validate_amount(amount) -> int:
    """Amounts must be positive integers (bools are rejected)"""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


class CreditManager:
    """Manages user credits and daily resets"""

    def __init__(
        self,
        store: CreditStore,
        daily_amount: int = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.daily_amount = daily_amount if daily_amount is not None else settings.DAILY_CREDIT_AMOUNT
        self.clock = clock

    async def _load(self, user_id: str) -> dict:
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def reset_credits(self, user_id: str) -> dict:
        """
        Reset a user's credits to the daily allotment if a reset is due

        The due check is repeated here rather than trusted from the caller, and
        the write only lands if the record still matches what was read. Losing
        that race means another request reset (or spent) first, so the record
        is re-read and re-evaluated.

        Args:
            user_id: User ID

        Returns:
            The user record, updated or unchanged

        Raises:
            UserNotFoundError: If the user does not exist
        """
        for _ in range(MAX_RESET_ATTEMPTS):
            user = await self._load(user_id)
            now = self.clock()

            if not needs_reset(user, now):
                return user

            previous_credits = user.get("credits")
            entry = make_reset_entry(
                now,
                self.daily_amount,
                previous_credits if previous_credits is not None else 0,
                user.get("dailyCreditResetCount", 0),
            )
            updated = await self.store.compare_and_reset(
                user_id,
                previous_credits,
                user.get("lastCreditReset"),
                self.daily_amount,
                now,
                entry,
            )
            if updated is not None:
                logger.info(
                    f"Daily credit reset completed for user {user_id}. "
                    f"Credits set to {self.daily_amount}"
                )
                return updated

            logger.debug(f"Reset compare-and-set lost for user {user_id}, re-reading")

        # Still contended: report the current record rather than forcing a write
        logger.warning(f"Reset for user {user_id} gave up after {MAX_RESET_ATTEMPTS} attempts")
        return await self._load(user_id)

    async def check_and_reset_credits(self, user_id: str) -> dict:
        """Lazy reset used by request handlers before touching credits"""
        user = await self._load(user_id)
        if needs_reset(user, self.clock()):
            return await self.reset_credits(user_id)
        return user

    async def use_credits(
        self,
        user_id: str,
        amount: int,
        operation: str = None,
        description: str = None,
    ) -> dict:
        """
        Deduct credits from user

        Args:
            user_id: User ID
            amount: Credits to deduct
            operation: Ledger tag (text-to-image, remove-background, ...)
            description: Human readable reason

        Returns:
            Updated user record

        Raises:
            InvalidAmountError: amount is not a positive integer
            InvalidOperationError: operation is a server-only ledger tag
            InsufficientCreditsError: balance is below amount; nothing is written
            UserNotFoundError: If the user does not exist
        """
        validate_amount(amount)
        operation = operation or CREDIT_OPERATIONS["credit_usage"]
        if operation in RESERVED_OPERATIONS:
            raise InvalidOperationError(operation)
        now = self.clock()
        entry = make_entry(
            operation,
            -amount,
            now,
            description or f"Used {amount} credits for {operation}",
        )

        updated = await self.store.debit(user_id, amount, entry, now)
        if updated is not None:
            logger.info(f"Deducted {amount} credits from user {user_id} for {operation}")
            return updated

        user = await self._load(user_id)
        available = user.get("credits", 0)
        logger.warning(f"Insufficient credits for user {user_id}: required {amount}, available {available}")
        raise InsufficientCreditsError(amount, available, user_id)

    async def add_credits(
        self,
        user_id: str,
        amount: int,
        description: str = None,
        operation: str = None,
    ) -> dict:
        """Grant credits to a user and record the grant"""
        validate_amount(amount)
        now = self.clock()
        entry = make_entry(
            operation or CREDIT_OPERATIONS["grant"],
            amount,
            now,
            description if description is not None else f"Added {amount} credits",
        )

        updated = await self.store.credit(user_id, amount, entry, now)
        if updated is None:
            raise UserNotFoundError(user_id)

        logger.info(f"Added {amount} credits to user {user_id}")
        return updated

    async def get_credit_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[dict]:
        """Ledger entries newest first, at most `limit` of them"""
        limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
        history = await self.store.get_history_slice(user_id, limit)
        if history is None:
            raise UserNotFoundError(user_id)
        return newest_first(history)[:limit]

    async def get_history_since(self, user_id: str, since: datetime) -> List[dict]:
        """Every ledger entry from `since` on, newest first, without a count cap"""
        history = await self.store.get_history_since(user_id, since)
        if history is None:
            raise UserNotFoundError(user_id)
        return newest_first(history)

    async def get_credit_status(self, user_id: str) -> dict:
        user = await self.check_and_reset_credits(user_id)
        return {
            "credits": user.get("credits", 0),
            "lastReset": user.get("lastCreditReset"),
            "resetCount": user.get("dailyCreditResetCount", 0),
            "timeUntilReset": time_until_reset(user.get("lastCreditReset"), self.clock()),
            "dailyLimit": self.daily_amount,
        }

    async def audit_user_ledger(self, user_id: str, initial_credits: Optional[int] = None) -> dict:
        """
        Replay the ledger and compare it with the stored balance.
        Admin-only; this is the one path that reads the whole history.

        When the ledger is longer than the audit read, replay starts at the
        oldest daily reset still inside the read, since a reset fixes the
        balance regardless of what came before. With no reset in range the
        result is inconclusive and `consistent` is None.
        """
        user = await self._load(user_id)
        if initial_credits is None:
            initial_credits = settings.SIGNUP_BONUS_CREDITS

        entries = await self.store.get_history_slice(user_id, AUDIT_HISTORY_LIMIT)
        entries = entries or []
        truncated = len(entries) >= AUDIT_HISTORY_LIMIT
        stored = user.get("credits", 0)

        if truncated:
            anchor = first_reset_index(entries)
            if anchor is None:
                logger.warning(
                    f"[AUDIT] Ledger for user {user_id} exceeds {AUDIT_HISTORY_LIMIT} entries "
                    f"with no daily reset in range; audit inconclusive"
                )
                replayed = None
            else:
                replayed = replay_balance(0, entries[anchor:])
        else:
            replayed = replay_balance(initial_credits, entries)

        consistent = None if replayed is None else replayed == stored
        if consistent is False:
            logger.warning(f"[AUDIT] Ledger drift for user {user_id}: stored {stored}, replayed {replayed}")

        return {
            "userId": str(user["_id"]),
            "storedCredits": stored,
            "replayedCredits": replayed,
            "initialCredits": initial_credits,
            "entryCount": len(entries),
            "truncated": truncated,
            "consistent": consistent,
        }
