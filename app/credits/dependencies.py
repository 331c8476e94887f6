"""
FastAPI dependencies for the credit system
"""
import logging
from typing import Optional

from fastapi import Depends

from config import settings
from app.cache.throttle import ThrottleStore, TTLThrottleStore
from app.credits.exceptions import StorageFailureError
from app.credits.manager import CreditManager
from app.credits.store import CreditStore, InMemoryCreditStore, MongoCreditStore
from app.database.connection import get_database

logger = logging.getLogger(__name__)

_memory_store: Optional[InMemoryCreditStore] = None
_profile_throttle: Optional[ThrottleStore] = None


async def get_credit_store() -> CreditStore:
    """Store selected by CREDIT_STORE_BACKEND"""
    global _memory_store
    if settings.CREDIT_STORE_BACKEND == "memory":
        if _memory_store is None:
            logger.warning("[WARN] Using in-memory credit store - data is lost on restart")
            _memory_store = InMemoryCreditStore()
        return _memory_store

    try:
        db = await get_database()
    except RuntimeError as e:
        raise StorageFailureError("connect", str(e)) from e
    return MongoCreditStore(db)


async def get_credit_manager(store: CreditStore = Depends(get_credit_store)) -> CreditManager:
    return CreditManager(store)


def get_profile_throttle() -> ThrottleStore:
    global _profile_throttle
    if _profile_throttle is None:
        _profile_throttle = TTLThrottleStore(
            settings.PROFILE_UPDATE_THROTTLE_MS,
            maxsize=settings.PROFILE_THROTTLE_MAX_KEYS,
        )
    return _profile_throttle
