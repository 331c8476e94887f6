"""
MongoDB Connection
Async connection management using Motor, with retry and health monitoring
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    OperationFailure,
    DuplicateKeyError
)
import logging
from typing import Optional
import asyncio
from datetime import datetime, timedelta, timezone

from config import settings

logger = logging.getLogger(__name__)


class MongoDBManager:
    """Singleton MongoDB connection manager with health monitoring"""

    _instance: Optional['MongoDBManager'] = None
    _lock = asyncio.Lock()

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._is_connected: bool = False
        self._connection_attempts: int = 0
        self._last_health_check: Optional[datetime] = None
        self._health_check_interval: int = 30  # seconds

    @classmethod
    async def get_instance(cls) -> 'MongoDBManager':
        """Get or create singleton instance"""
        if cls._instance is None:
            async with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def is_connected(self) -> bool:
        return self._is_connected and self.client is not None

    async def connect(self, retries: int = 3, retry_delay: int = 2) -> None:
        """
        Establish connection to MongoDB with exponential backoff

        Args:
            retries: Number of connection attempts
            retry_delay: Base delay between retries in seconds

        Raises:
            ConnectionFailure: If all connection attempts fail
        """
        if self.is_connected:
            logger.info("[OK] MongoDB already connected")
            return

        last_error: Optional[Exception] = None

        for attempt in range(1, retries + 1):
            try:
                logger.info(f"[ATTEMPT {attempt}/{retries}] MongoDB connection...")

                self.client = AsyncIOMotorClient(
                    settings.MONGODB_URI,
                    serverSelectionTimeoutMS=10000,
                    connectTimeoutMS=15000,
                    socketTimeoutMS=20000,
                    maxPoolSize=50,
                    minPoolSize=5,
                    retryWrites=True,
                    retryReads=True,
                    tz_aware=True,
                    appname="PromptPixCredits"
                )

                await asyncio.wait_for(
                    self.client.admin.command('ping'),
                    timeout=10.0
                )

                self.database = self.client[settings.DATABASE_NAME]
                await self._create_indexes()

                self._is_connected = True
                self._connection_attempts = 0
                self._last_health_check = datetime.now(timezone.utc)

                logger.info(f"[OK] MongoDB connected to '{settings.DATABASE_NAME}'")
                return

            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                last_error = e
                self._connection_attempts += 1
                logger.error(f"[FAIL] Connection attempt {attempt} failed: {str(e)}")

                if attempt < retries:
                    wait_time = retry_delay * (2 ** (attempt - 1))
                    logger.info(f"[RETRY] Waiting {wait_time}s before retry...")
                    await asyncio.sleep(wait_time)

            except asyncio.TimeoutError as e:
                last_error = e
                self._connection_attempts += 1
                logger.error(f"[TIMEOUT] Connection timeout on attempt {attempt}")

                if attempt < retries:
                    await asyncio.sleep(retry_delay * attempt)

        self._is_connected = False
        error_msg = f"Failed to connect to MongoDB after {retries} attempts"
        logger.critical(error_msg)
        raise ConnectionFailure(f"{error_msg}: {last_error}")

    async def disconnect(self) -> None:
        """Close MongoDB connection"""
        if self.client:
            self.client.close()
            self._is_connected = False
            self.client = None
            self.database = None
            logger.info("MongoDB connection closed")

    async def get_database(self) -> AsyncIOMotorDatabase:
        """
        Get MongoDB database instance

        Raises:
            RuntimeError: If database not initialized
        """
        if not self.is_connected or self.database is None:
            raise RuntimeError("Database not initialized. Call connect() first.")

        await self._periodic_health_check()
        return self.database

    async def _periodic_health_check(self) -> None:
        if self._last_health_check is None:
            return

        if datetime.now(timezone.utc) - self._last_health_check > timedelta(seconds=self._health_check_interval):
            try:
                await asyncio.wait_for(self.client.admin.command('ping'), timeout=3.0)
                self._last_health_check = datetime.now(timezone.utc)
            except Exception as e:
                # Next get_database() call reconnects
                logger.warning(f"Health check failed: {str(e)}")
                self._is_connected = False

    async def _create_indexes(self) -> None:
        """
        Create indexes used by the credit system

        Raises:
            OperationFailure: If the unique email index cannot be built
        """
        db = self.database

        try:
            await db.users.create_index("email", unique=True)
        except DuplicateKeyError:
            logger.warning("[WARN] Duplicate email found during user index creation")
            raise OperationFailure("Critical users.email index failed to create")

        # Batch reset sweep filters on lastCreditReset
        await db.users.create_index("lastCreditReset")
        logger.info("[OK] Database indexes created/verified successfully")

    async def health_check(self) -> dict:
        try:
            if not self.is_connected:
                return {"status": "disconnected", "error": "Database not connected"}

            await asyncio.wait_for(self.client.admin.command('ping'), timeout=3.0)
            users = await self.database.users.count_documents({})

            return {
                "status": "healthy",
                "database": settings.DATABASE_NAME,
                "connection_attempts": self._connection_attempts,
                "last_health_check": self._last_health_check.isoformat() if self._last_health_check else None,
                "collections": {"users": users}
            }

        except asyncio.TimeoutError:
            logger.error("Health check timeout")
            return {"status": "unhealthy", "error": "Database ping timeout"}

        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            return {"status": "unhealthy", "error": str(e)}


_manager: Optional[MongoDBManager] = None


async def connect_to_mongo(retries: int = 3) -> None:
    global _manager
    if _manager is None:
        _manager = await MongoDBManager.get_instance()

    if not _manager.is_connected:
        await _manager.connect(retries=retries)


async def close_mongo_connection() -> None:
    if _manager:
        await _manager.disconnect()


async def get_database() -> AsyncIOMotorDatabase:
    """Get database instance, connecting on demand"""
    global _manager

    if _manager is None:
        _manager = await MongoDBManager.get_instance()

    if not _manager.is_connected:
        logger.warning("[WARN] Database not connected, attempting connection...")
        try:
            await _manager.connect(retries=3)
        except Exception as e:
            logger.error(f"[FAIL] Failed to establish database connection: {str(e)}")
            raise RuntimeError("Database connection failed") from e

    return await _manager.get_database()


async def check_database_health() -> dict:
    global _manager

    if settings.CREDIT_STORE_BACKEND == "memory":
        return {"status": "healthy", "backend": "memory"}

    if _manager is None:
        _manager = await MongoDBManager.get_instance()

    if not _manager.is_connected:
        try:
            await _manager.connect(retries=1)
        except Exception as e:
            logger.error(f"[FAIL] Database health check failed: {str(e)}")
            return {
                "status": "not_initialized",
                "error": "Database not connected",
                "details": str(e)
            }

    return await _manager.health_check()
