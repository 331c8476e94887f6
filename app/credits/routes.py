"""
Credits Management
Grant, consume, history and status endpoints for the signed-in user
"""
import logging
from fastapi import APIRouter, Depends, Query

from app.auth.jwt_handler import get_current_user_id
from app.credits.dependencies import get_credit_manager
from app.credits.manager import CreditManager
from app.credits.models import AddCreditsRequest, UseCreditsRequest
from app.utils.serializers import serialize_entries, serialize_object_id, serialize_user
from config import DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["Credits"])


@router.post("/addCredits")
async def add_credits(
    data: AddCreditsRequest,
    user_id: str = Depends(get_current_user_id),
    manager: CreditManager = Depends(get_credit_manager)
):
    """Grant credits to the current user"""
    await manager.check_and_reset_credits(user_id)
    user = await manager.add_credits(user_id, data.amount, data.description)
    return {"status": "success", "data": {"user": serialize_user(user)}}


@router.post("/useCredits")
async def use_credits(
    data: UseCreditsRequest,
    user_id: str = Depends(get_current_user_id),
    manager: CreditManager = Depends(get_credit_manager)
):
    """Spend credits; 400 with required/available counts when short"""
    await manager.check_and_reset_credits(user_id)
    user = await manager.use_credits(user_id, data.amount, data.operation, data.description)
    return {"status": "success", "data": {"user": serialize_user(user)}}


@router.get("/creditHistory")
async def get_credit_history(
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    user_id: str = Depends(get_current_user_id),
    manager: CreditManager = Depends(get_credit_manager)
):
    """Ledger entries, newest first"""
    history = await manager.get_credit_history(user_id, limit)
    return {"status": "success", "data": {"history": serialize_entries(history)}}


@router.get("/creditStatus")
async def get_credit_status(
    user_id: str = Depends(get_current_user_id),
    manager: CreditManager = Depends(get_credit_manager)
):
    """Balance, reset counters and time until the next reset"""
    credit_status = await manager.get_credit_status(user_id)
    return {"status": "success", "data": serialize_object_id(credit_status)}
