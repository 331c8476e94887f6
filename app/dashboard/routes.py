"""
User Dashboard
Credit overview, recent activity and statistics
"""
import logging
from fastapi import APIRouter, Depends

from app.auth.jwt_handler import get_current_user_id
from app.credits.dependencies import get_credit_manager
from app.credits.manager import CreditManager
from app.dashboard.aggregator import get_dashboard_data
from app.utils.serializers import serialize_object_id

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["Dashboard"])


@router.get("/dashboard")
async def get_dashboard(
    user_id: str = Depends(get_current_user_id),
    manager: CreditManager = Depends(get_credit_manager)
):
    """Get user's dashboard overview"""
    data = await get_dashboard_data(manager, user_id)
    return {"status": "success", "data": serialize_object_id(data)}
