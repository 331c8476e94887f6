"""
Credit Store backends
Every balance mutation is a single conditional update on one user document,
so the balance change and its ledger entry land together or not at all
"""
import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson.objectid import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.credits.exceptions import StorageFailureError
from app.credits.policy import as_utc

logger = logging.getLogger(__name__)

# Ledger is read through get_history_slice only
USER_PROJECTION = {"creditHistory": 0}


class CreditStore(ABC):
    """Persistence contract for user credit records"""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def insert_user(self, document: dict) -> dict:
        """Insert a new user; raises DuplicateKeyError on a taken email"""

    @abstractmethod
    async def update_profile(self, user_id: str, fields: Dict[str, Any], now: datetime) -> Optional[dict]:
        ...

    @abstractmethod
    async def compare_and_reset(
        self,
        user_id: str,
        expected_credits: Optional[int],
        expected_last_reset: Optional[datetime],
        credits: int,
        now: datetime,
        entry: dict,
    ) -> Optional[dict]:
        """
        Apply a reset only if credits and lastCreditReset still hold the
        values the caller read. Returns the updated user, or None when the
        record changed underneath (or vanished).
        """

    @abstractmethod
    async def debit(self, user_id: str, amount: int, entry: dict, now: datetime) -> Optional[dict]:
        """Decrement only if credits >= amount. None when the guard fails."""

    @abstractmethod
    async def credit(self, user_id: str, amount: int, entry: dict, now: datetime) -> Optional[dict]:
        ...

    @abstractmethod
    async def get_history_slice(self, user_id: str, limit: int) -> Optional[List[dict]]:
        """Last `limit` ledger entries in append order, None if the user is missing"""

    @abstractmethod
    async def get_history_since(self, user_id: str, since: datetime) -> Optional[List[dict]]:
        """Every ledger entry stamped at or after `since`, None if the user is missing"""

    @abstractmethod
    async def find_reset_candidate_ids(self, cutoff: datetime) -> List[str]:
        """Ids of users never reset or last reset at or before `cutoff`"""


def _to_object_id(user_id: str) -> Optional[ObjectId]:
    if isinstance(user_id, ObjectId):
        return user_id
    if not user_id or not ObjectId.is_valid(user_id):
        return None
    return ObjectId(user_id)


class MongoCreditStore(CreditStore):
    """Credit records stored on the `users` collection"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.users = db.users

    async def _run(self, operation: str, coro):
        try:
            return await coro
        except DuplicateKeyError:
            raise
        except PyMongoError as e:
            logger.error(f"[FAIL] MongoDB {operation} failed: {str(e)}")
            raise StorageFailureError(operation, str(e)) from e

    async def get_user(self, user_id: str) -> Optional[dict]:
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        return await self._run("get_user", self.users.find_one({"_id": oid}, USER_PROJECTION))

    async def find_user_by_email(self, email: str) -> Optional[dict]:
        return await self._run(
            "find_user_by_email",
            self.users.find_one({"email": email.lower()}, USER_PROJECTION),
        )

    async def insert_user(self, document: dict) -> dict:
        document = dict(document)
        document["email"] = document["email"].lower()
        result = await self._run("insert_user", self.users.insert_one(document))
        document["_id"] = result.inserted_id
        document.pop("creditHistory", None)
        return document

    async def update_profile(self, user_id: str, fields: Dict[str, Any], now: datetime) -> Optional[dict]:
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        return await self._run(
            "update_profile",
            self.users.find_one_and_update(
                {"_id": oid},
                {"$set": {**fields, "updatedAt": now}},
                projection=USER_PROJECTION,
                return_document=ReturnDocument.AFTER,
            ),
        )

    async def compare_and_reset(self, user_id, expected_credits, expected_last_reset, credits, now, entry):
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        # {"field": None} also matches a missing field
        query = {
            "_id": oid,
            "credits": expected_credits,
            "lastCreditReset": expected_last_reset,
        }
        return await self._run(
            "reset_credits",
            self.users.find_one_and_update(
                query,
                {
                    "$set": {"credits": credits, "lastCreditReset": now, "updatedAt": now},
                    "$inc": {"dailyCreditResetCount": 1},
                    "$push": {"creditHistory": entry},
                },
                projection=USER_PROJECTION,
                return_document=ReturnDocument.AFTER,
            ),
        )

    async def debit(self, user_id: str, amount: int, entry: dict, now: datetime) -> Optional[dict]:
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        return await self._run(
            "use_credits",
            self.users.find_one_and_update(
                {"_id": oid, "credits": {"$gte": amount}},
                {
                    "$inc": {"credits": -amount},
                    "$set": {"updatedAt": now},
                    "$push": {"creditHistory": entry},
                },
                projection=USER_PROJECTION,
                return_document=ReturnDocument.AFTER,
            ),
        )

    async def credit(self, user_id: str, amount: int, entry: dict, now: datetime) -> Optional[dict]:
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        return await self._run(
            "add_credits",
            self.users.find_one_and_update(
                {"_id": oid},
                {
                    "$inc": {"credits": amount},
                    "$set": {"updatedAt": now},
                    "$push": {"creditHistory": entry},
                },
                projection=USER_PROJECTION,
                return_document=ReturnDocument.AFTER,
            ),
        )

    async def get_history_slice(self, user_id: str, limit: int) -> Optional[List[dict]]:
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        doc = await self._run(
            "get_credit_history",
            self.users.find_one({"_id": oid}, {"creditHistory": {"$slice": -limit}}),
        )
        if doc is None:
            return None
        return doc.get("creditHistory", [])

    async def get_history_since(self, user_id: str, since: datetime) -> Optional[List[dict]]:
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        pipeline = [
            {"$match": {"_id": oid}},
            {
                "$project": {
                    "creditHistory": {
                        "$filter": {
                            "input": {"$ifNull": ["$creditHistory", []]},
                            "as": "entry",
                            "cond": {"$gte": ["$$entry.timestamp", since]},
                        }
                    }
                }
            },
        ]
        try:
            docs = [doc async for doc in self.users.aggregate(pipeline)]
        except PyMongoError as e:
            logger.error(f"[FAIL] MongoDB get_history_since failed: {str(e)}")
            raise StorageFailureError("get_history_since", str(e)) from e
        if not docs:
            return None
        return docs[0].get("creditHistory", [])

    async def find_reset_candidate_ids(self, cutoff: datetime) -> List[str]:
        cursor = self.users.find(
            {
                "$or": [
                    {"lastCreditReset": {"$lte": cutoff}},
                    {"lastCreditReset": None},
                ]
            },
            {"_id": 1},
        )
        try:
            return [str(doc["_id"]) async for doc in cursor]
        except PyMongoError as e:
            logger.error(f"[FAIL] MongoDB find_reset_candidates failed: {str(e)}")
            raise StorageFailureError("find_reset_candidates", str(e)) from e


class InMemoryCreditStore(CreditStore):
    """
    Process-local credit records for development without MongoDB.
    A single lock serializes every mutation.
    """

    def __init__(self):
        self._users: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _public(document: Optional[dict]) -> Optional[dict]:
        if document is None:
            return None
        result = copy.deepcopy(document)
        result.pop("creditHistory", None)
        return result

    async def get_user(self, user_id: str) -> Optional[dict]:
        return self._public(self._users.get(str(user_id)))

    async def find_user_by_email(self, email: str) -> Optional[dict]:
        email = email.lower()
        for document in self._users.values():
            if document.get("email") == email:
                return self._public(document)
        return None

    async def insert_user(self, document: dict) -> dict:
        async with self._lock:
            document = copy.deepcopy(document)
            document["email"] = document["email"].lower()
            if any(u.get("email") == document["email"] for u in self._users.values()):
                raise DuplicateKeyError(f"E11000 duplicate key error: email {document['email']}")
            document.setdefault("_id", ObjectId())
            document.setdefault("creditHistory", [])
            self._users[str(document["_id"])] = document
            return self._public(document)

    async def update_profile(self, user_id: str, fields: Dict[str, Any], now: datetime) -> Optional[dict]:
        async with self._lock:
            document = self._users.get(str(user_id))
            if document is None:
                return None
            document.update(copy.deepcopy(fields))
            document["updatedAt"] = now
            return self._public(document)

    async def compare_and_reset(self, user_id, expected_credits, expected_last_reset, credits, now, entry):
        async with self._lock:
            document = self._users.get(str(user_id))
            if document is None:
                return None
            if document.get("credits") != expected_credits:
                return None
            current = document.get("lastCreditReset")
            if (current is None) != (expected_last_reset is None):
                return None
            if current is not None and as_utc(current) != as_utc(expected_last_reset):
                return None

            document["credits"] = credits
            document["lastCreditReset"] = now
            document["updatedAt"] = now
            document["dailyCreditResetCount"] = document.get("dailyCreditResetCount", 0) + 1
            document.setdefault("creditHistory", []).append(copy.deepcopy(entry))
            return self._public(document)

    async def debit(self, user_id: str, amount: int, entry: dict, now: datetime) -> Optional[dict]:
        async with self._lock:
            document = self._users.get(str(user_id))
            if document is None or document.get("credits", 0) < amount:
                return None
            document["credits"] -= amount
            document["updatedAt"] = now
            document.setdefault("creditHistory", []).append(copy.deepcopy(entry))
            return self._public(document)

    async def credit(self, user_id: str, amount: int, entry: dict, now: datetime) -> Optional[dict]:
        async with self._lock:
            document = self._users.get(str(user_id))
            if document is None:
                return None
            document["credits"] = document.get("credits", 0) + amount
            document["updatedAt"] = now
            document.setdefault("creditHistory", []).append(copy.deepcopy(entry))
            return self._public(document)

    async def get_history_slice(self, user_id: str, limit: int) -> Optional[List[dict]]:
        document = self._users.get(str(user_id))
        if document is None:
            return None
        history = document.get("creditHistory", [])
        return copy.deepcopy(history[-limit:]) if limit > 0 else []

    async def get_history_since(self, user_id: str, since: datetime) -> Optional[List[dict]]:
        document = self._users.get(str(user_id))
        if document is None:
            return None
        start = as_utc(since)
        return [
            copy.deepcopy(entry)
            for entry in document.get("creditHistory", [])
            if as_utc(entry["timestamp"]) >= start
        ]

    async def find_reset_candidate_ids(self, cutoff: datetime) -> List[str]:
        return [
            user_id
            for user_id, document in self._users.items()
            if document.get("lastCreditReset") is None
            or as_utc(document["lastCreditReset"]) <= as_utc(cutoff)
        ]
