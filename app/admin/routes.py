"""
Admin Credit Operations
Manual batch reset, scheduler status, ledger audit and manual adjustments
"""
import logging
from fastapi import APIRouter, HTTPException, Depends

from app.admin.middleware import require_admin
from app.credits.dependencies import get_credit_manager
from app.credits.manager import CreditManager
from app.credits.models import AddCreditsRequest
from app.scheduler.tasks import get_job_status, manual_credit_reset
from app.utils.serializers import serialize_object_id, serialize_user
from config import CREDIT_OPERATIONS

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.post("/credits/reset")
async def trigger_credit_reset(admin_id: str = Depends(require_admin)):
    """Run the batch reset now; 409 if a run is already in progress"""
    logger.info(f"Manual credit reset triggered by admin {admin_id}")

    result = await manual_credit_reset()
    if result is None:
        raise HTTPException(status_code=409, detail="Credit reset job is already running")

    return {"status": "success", "data": serialize_object_id(result)}


@router.get("/jobs/status")
async def jobs_status(admin_id: str = Depends(require_admin)):
    return {"status": "success", "data": serialize_object_id(get_job_status())}


@router.get("/users/{user_id}/credits/audit")
async def audit_user_credits(
    user_id: str,
    admin_id: str = Depends(require_admin),
    manager: CreditManager = Depends(get_credit_manager)
):
    """Replay a user's ledger against the stored balance"""
    report = await manager.audit_user_ledger(user_id)
    return {"status": "success", "data": report}


@router.post("/users/{user_id}/credits")
async def adjust_user_credits(
    user_id: str,
    data: AddCreditsRequest,
    admin_id: str = Depends(require_admin),
    manager: CreditManager = Depends(get_credit_manager)
):
    """Grant credits to any user as a manual adjustment"""
    description = data.description or f"Manual adjustment of {data.amount} credits by admin {admin_id}"
    user = await manager.add_credits(
        user_id,
        data.amount,
        description,
        operation=CREDIT_OPERATIONS["manual_adjustment"],
    )
    logger.info(f"Admin {admin_id} granted {data.amount} credits to user {user_id}")
    return {"status": "success", "data": {"user": serialize_user(user)}}
