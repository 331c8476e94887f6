"""
Admin Authorization Middleware
Verify user is admin before allowing access
"""
from fastapi import HTTPException, Depends
import logging

from app.auth.jwt_handler import get_current_user_id
from app.credits.dependencies import get_credit_store
from app.credits.store import CreditStore

logger = logging.getLogger(__name__)


async def require_admin(
    user_id: str = Depends(get_current_user_id),
    store: CreditStore = Depends(get_credit_store)
) -> str:
    """
    Verify user is admin
    Returns user_id if admin, raises HTTPException otherwise
    """
    user = await store.get_user(user_id)

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if not user.get("isAdmin", False):
        logger.warning(f"Non-admin user {user_id} attempted admin access")
        raise HTTPException(
            status_code=403,
            detail="Admin access required"
        )

    return user_id
