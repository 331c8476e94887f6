"""
Application Configuration & Credit Constants
Environment-driven settings for the PromptPix credits backend
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List
from datetime import timedelta
from functools import lru_cache
import os
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_FILE = BASE_DIR / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=True)


class Settings(BaseSettings):
    """Application settings with explicit defaults"""

    # Environment
    DEBUG: bool = Field(default=False, validation_alias="DEBUG")
    API_URL: str = Field(default="http://localhost:5001", validation_alias="API_URL")
    FRONTEND_URL: str = Field(default="http://localhost:5173", validation_alias="FRONTEND_URL")
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_FILE: str = Field(default="app.log", validation_alias="LOG_FILE")

    # Storage
    MONGODB_URI: str = Field(default="mongodb://localhost:27017", validation_alias="MONGODB_URI")
    DATABASE_NAME: str = Field(default="promptpix", validation_alias="DATABASE_NAME")
    # "mongo" in production, "memory" for local development without a database
    CREDIT_STORE_BACKEND: str = Field(default="mongo", validation_alias="CREDIT_STORE_BACKEND")

    # JWT
    JWT_SECRET_KEY: str = Field(default="your-secret-key-change-this", validation_alias="JWT_SECRET_KEY")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # Credits
    DAILY_CREDIT_AMOUNT: int = Field(default=10, validation_alias="DAILY_CREDIT_AMOUNT")
    SIGNUP_BONUS_CREDITS: int = Field(default=10, validation_alias="SIGNUP_BONUS_CREDITS")
    CREDIT_RESET_CRON_HOUR: int = Field(default=0, validation_alias="CREDIT_RESET_CRON_HOUR")
    CREDIT_RESET_CRON_MINUTE: int = Field(default=0, validation_alias="CREDIT_RESET_CRON_MINUTE")
    BATCH_RESET_ITEM_TIMEOUT_SECONDS: float = Field(default=10.0, validation_alias="BATCH_RESET_ITEM_TIMEOUT_SECONDS")
    DASHBOARD_TIMEZONE: str = Field(default="UTC", validation_alias="DASHBOARD_TIMEZONE")

    # Profile updates
    PROFILE_UPDATE_THROTTLE_MS: int = Field(default=500, validation_alias="PROFILE_UPDATE_THROTTLE_MS")
    PROFILE_THROTTLE_MAX_KEYS: int = 10000

    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        if self.DEBUG:
            return ["*"]
        origins = [self.FRONTEND_URL]
        if self.API_URL:
            origins.append(self.API_URL)
        return origins

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        populate_by_name = True
        extra = "ignore"


# Rolling window between two resets of the same account. Not configurable.
CREDIT_RESET_WINDOW = timedelta(hours=24)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200
AUDIT_HISTORY_LIMIT = 100000

# Newest ledger entries read for the dashboard's recent activity lists
DASHBOARD_HISTORY_SCAN_LIMIT = 200

# Conventional ledger operation tags
CREDIT_OPERATIONS = {
    "text_to_image": "text-to-image",
    "remove_background": "remove-background",
    "daily_reset": "daily-reset",
    "grant": "grant",
    "manual_adjustment": "manual-adjustment",
    "credit_usage": "credit-usage",
}

# Tags written only by the server; spends may not claim them
RESERVED_OPERATIONS = (
    CREDIT_OPERATIONS["daily_reset"],
    CREDIT_OPERATIONS["grant"],
    CREDIT_OPERATIONS["manual_adjustment"],
)

# Profile fields a user may change through PATCH /api/users/updateMe
PROFILE_UPDATABLE_FIELDS = (
    "displayName",
    "profilePicture",
    "bio",
    "imagesGenerated",
    "imagesEdited",
)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()


def validate_settings():
    """Validate critical settings are configured"""
    errors = []

    if settings.CREDIT_STORE_BACKEND not in ("mongo", "memory"):
        errors.append(f"CREDIT_STORE_BACKEND must be 'mongo' or 'memory', got '{settings.CREDIT_STORE_BACKEND}'")
    if settings.CREDIT_STORE_BACKEND == "mongo" and not settings.MONGODB_URI:
        errors.append("MONGODB_URI is not properly configured")
    if not settings.JWT_SECRET_KEY or settings.JWT_SECRET_KEY == "your-secret-key-change-this":
        errors.append("JWT_SECRET_KEY is not set or using default")
    if settings.DAILY_CREDIT_AMOUNT <= 0:
        errors.append("DAILY_CREDIT_AMOUNT must be positive")
    if not 0 <= settings.CREDIT_RESET_CRON_HOUR <= 23 or not 0 <= settings.CREDIT_RESET_CRON_MINUTE <= 59:
        errors.append("CREDIT_RESET_CRON_HOUR/MINUTE out of range")

    if errors:
        print("\n⚠️  CONFIGURATION ERRORS:")
        for error in errors:
            print(f"   ❌ {error}")
        print("\n")
    else:
        print("✅ All critical settings configured\n")

    return len(errors) == 0


# Auto-validate on import (only in non-test environments)
if __name__ != "__main__" and os.getenv("PYTEST_CURRENT_TEST") is None:
    validate_settings()
