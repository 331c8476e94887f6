"""
Email/Password Authentication
Signup opens a credit record; login runs the lazy daily reset
"""
from fastapi import APIRouter, HTTPException, Depends, status
from pydantic import BaseModel, EmailStr, field_validator
from pymongo.errors import DuplicateKeyError
import logging

from app.auth.jwt_handler import create_access_token
from app.auth.password_handler import PasswordHandler
from app.credits.dependencies import get_credit_manager
from app.credits.manager import CreditManager
from app.credits.policy import utc_now
from app.utils.serializers import serialize_user
from config import settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["Authentication"])


class SignupRequest(BaseModel):
    """User signup request"""
    email: EmailStr
    password: str
    displayName: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters long')
        return v

    @field_validator('displayName')
    @classmethod
    def validate_display_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError('Display name must be at least 2 characters long')
        return v


class LoginRequest(BaseModel):
    """User login request"""
    email: EmailStr
    password: str


def new_user_document(email: str, password_hash: str, display_name: str) -> dict:
    """Fresh account: signup bonus, never reset, empty ledger"""
    now = utc_now()
    return {
        "email": email,
        "passwordHash": password_hash,
        "displayName": display_name,
        "profilePicture": None,
        "bio": "",
        "imagesGenerated": 0,
        "imagesEdited": 0,
        "isAdmin": False,
        "credits": settings.SIGNUP_BONUS_CREDITS,
        "lastCreditReset": None,
        "dailyCreditResetCount": 0,
        "creditHistory": [],
        "createdAt": now,
        "updatedAt": now,
    }


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    data: SignupRequest,
    manager: CreditManager = Depends(get_credit_manager)
):
    """Register with email and password"""
    store = manager.store

    if await store.find_user_by_email(data.email):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    document = new_user_document(
        data.email,
        PasswordHandler.hash_password(data.password),
        data.displayName,
    )

    try:
        user = await store.insert_user(document)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user_id = str(user["_id"])
    logger.info(f"New user registered: {user['email']} (ID: {user_id})")

    return {
        "status": "success",
        "token": create_access_token(user_id),
        "data": {"user": serialize_user(user)}
    }


@router.post("/login")
async def login(
    data: LoginRequest,
    manager: CreditManager = Depends(get_credit_manager)
):
    """Login with email and password, returns a bearer token"""
    user = await manager.store.find_user_by_email(data.email)

    if not user or not user.get("passwordHash") or \
            not PasswordHandler.verify_password(data.password, user["passwordHash"]):
        raise HTTPException(status_code=401, detail="Incorrect email or password")

    user_id = str(user["_id"])
    user = await manager.check_and_reset_credits(user_id)

    logger.info(f"User logged in: {user['email']} (ID: {user_id})")

    return {
        "status": "success",
        "token": create_access_token(user_id),
        "data": {"user": serialize_user(user)}
    }
