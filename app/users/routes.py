"""
User Profile
Current user record and allow-listed profile updates
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from app.auth.jwt_handler import get_current_user_id
from app.cache.throttle import ThrottleStore
from app.credits.dependencies import get_credit_manager, get_profile_throttle
from app.credits.exceptions import ThrottledError, UserNotFoundError
from app.credits.manager import CreditManager
from app.utils.serializers import serialize_user
from config import PROFILE_UPDATABLE_FIELDS

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["Users"])


def filter_profile_fields(body: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only fields users may edit; credit fields never pass"""
    return {key: value for key, value in body.items() if key in PROFILE_UPDATABLE_FIELDS}


@router.get("/me")
async def get_me(
    user_id: str = Depends(get_current_user_id),
    manager: CreditManager = Depends(get_credit_manager)
):
    """Complete user record, with any due daily reset applied first"""
    user = await manager.check_and_reset_credits(user_id)
    return {"status": "success", "data": {"user": serialize_user(user)}}


@router.patch("/updateMe")
async def update_me(
    body: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    manager: CreditManager = Depends(get_credit_manager),
    throttle: ThrottleStore = Depends(get_profile_throttle)
):
    """Update profile fields, at most once per throttle window per user"""
    if not await throttle.try_acquire(user_id):
        logger.info(f"Profile update throttled for user {user_id}")
        raise ThrottledError(throttle.window_ms)

    fields = filter_profile_fields(body)
    if not fields:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    for counter in ("imagesGenerated", "imagesEdited"):
        if counter in fields:
            value = fields[counter]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise HTTPException(status_code=400, detail=f"{counter} must be a non-negative integer")

    user = await manager.store.update_profile(user_id, fields, manager.clock())
    if user is None:
        raise UserNotFoundError(user_id)

    return {"status": "success", "data": {"user": serialize_user(user)}}
