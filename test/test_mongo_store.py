"""MongoCreditStore query shapes, checked against a mocked collection."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson.objectid import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from app.credits.exceptions import StorageFailureError
from app.credits.store import USER_PROJECTION, MongoCreditStore

NOW = datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)
USER_ID = "65f0a1b2c3d4e5f601234567"
OID = ObjectId(USER_ID)


class FakeCursor:
    def __init__(self, docs, error=None):
        self._docs = list(docs)
        self._error = error

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._error is not None:
            raise self._error
        if not self._docs:
            raise StopAsyncIteration
        return self._docs.pop(0)


@pytest.fixture
def users():
    collection = MagicMock()
    collection.find_one = AsyncMock()
    collection.find_one_and_update = AsyncMock()
    collection.insert_one = AsyncMock()
    return collection


@pytest.fixture
def mongo_store(users):
    db = MagicMock()
    db.users = users
    return MongoCreditStore(db)


@pytest.mark.asyncio
async def test_get_user_excludes_history(mongo_store, users):
    users.find_one.return_value = {"_id": OID, "credits": 3}

    user = await mongo_store.get_user(USER_ID)

    assert user["credits"] == 3
    users.find_one.assert_awaited_once_with({"_id": OID}, USER_PROJECTION)


@pytest.mark.asyncio
async def test_invalid_id_is_not_found_without_query(mongo_store, users):
    assert await mongo_store.get_user("not-an-id") is None
    assert await mongo_store.debit("not-an-id", 1, {}, NOW) is None
    users.find_one.assert_not_awaited()
    users.find_one_and_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_compare_and_reset_is_conditional(mongo_store, users):
    last = datetime(2024, 3, 9, 10, 0, tzinfo=timezone.utc)
    entry = {"operation": "daily-reset", "amount": 10}
    users.find_one_and_update.return_value = {"_id": OID, "credits": 10}

    await mongo_store.compare_and_reset(USER_ID, 3, last, 10, NOW, entry)

    query, update = users.find_one_and_update.await_args.args
    assert query == {"_id": OID, "credits": 3, "lastCreditReset": last}
    assert update["$set"] == {"credits": 10, "lastCreditReset": NOW, "updatedAt": NOW}
    assert update["$inc"] == {"dailyCreditResetCount": 1}
    assert update["$push"] == {"creditHistory": entry}
    assert users.find_one_and_update.await_args.kwargs["return_document"] == ReturnDocument.AFTER


@pytest.mark.asyncio
async def test_debit_guards_on_balance(mongo_store, users):
    entry = {"operation": "text-to-image", "amount": -2}
    users.find_one_and_update.return_value = None

    result = await mongo_store.debit(USER_ID, 2, entry, NOW)

    assert result is None
    query, update = users.find_one_and_update.await_args.args
    assert query == {"_id": OID, "credits": {"$gte": 2}}
    assert update["$inc"] == {"credits": -2}
    assert update["$push"] == {"creditHistory": entry}


@pytest.mark.asyncio
async def test_credit_increments(mongo_store, users):
    users.find_one_and_update.return_value = {"_id": OID, "credits": 8}

    await mongo_store.credit(USER_ID, 5, {"amount": 5}, NOW)

    query, update = users.find_one_and_update.await_args.args
    assert query == {"_id": OID}
    assert update["$inc"] == {"credits": 5}


@pytest.mark.asyncio
async def test_history_slice_uses_projection(mongo_store, users):
    users.find_one.return_value = {"_id": OID, "creditHistory": [{"amount": -1}]}

    history = await mongo_store.get_history_slice(USER_ID, 25)

    assert history == [{"amount": -1}]
    users.find_one.assert_awaited_once_with({"_id": OID}, {"creditHistory": {"$slice": -25}})


@pytest.mark.asyncio
async def test_history_slice_missing_user(mongo_store, users):
    users.find_one.return_value = None
    assert await mongo_store.get_history_slice(USER_ID, 25) is None


@pytest.mark.asyncio
async def test_driver_errors_become_storage_failures(mongo_store, users):
    users.find_one_and_update.side_effect = ServerSelectionTimeoutError("no primary")

    with pytest.raises(StorageFailureError) as excinfo:
        await mongo_store.debit(USER_ID, 1, {}, NOW)

    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_duplicate_email_propagates(mongo_store, users):
    users.insert_one.side_effect = DuplicateKeyError("E11000")

    with pytest.raises(DuplicateKeyError):
        await mongo_store.insert_user({"email": "A@Example.com"})


@pytest.mark.asyncio
async def test_insert_lowercases_email(mongo_store, users):
    users.insert_one.return_value = MagicMock(inserted_id=OID)

    user = await mongo_store.insert_user({"email": "A@Example.com", "creditHistory": []})

    assert user["_id"] == OID
    assert user["email"] == "a@example.com"
    assert "creditHistory" not in user
    assert users.insert_one.await_args.args[0]["email"] == "a@example.com"


@pytest.mark.asyncio
async def test_reset_candidates_query(mongo_store, users):
    other = ObjectId()
    users.find = MagicMock(return_value=FakeCursor([{"_id": OID}, {"_id": other}]))
    cutoff = datetime(2024, 3, 9, 15, 0, tzinfo=timezone.utc)

    ids = await mongo_store.find_reset_candidate_ids(cutoff)

    assert ids == [USER_ID, str(other)]
    query, projection = users.find.call_args.args
    assert query == {"$or": [{"lastCreditReset": {"$lte": cutoff}}, {"lastCreditReset": None}]}
    assert projection == {"_id": 1}


@pytest.mark.asyncio
async def test_reset_candidates_cursor_failure(mongo_store, users):
    users.find = MagicMock(return_value=FakeCursor([], error=ServerSelectionTimeoutError("down")))

    with pytest.raises(StorageFailureError):
        await mongo_store.find_reset_candidate_ids(NOW)


@pytest.mark.asyncio
async def test_history_since_filters_in_the_database(mongo_store, users):
    since = datetime(2024, 3, 10, 0, 0, tzinfo=timezone.utc)
    users.aggregate = MagicMock(return_value=FakeCursor([{"_id": OID, "creditHistory": [{"amount": -1}]}]))

    history = await mongo_store.get_history_since(USER_ID, since)

    assert history == [{"amount": -1}]
    pipeline = users.aggregate.call_args.args[0]
    assert pipeline[0] == {"$match": {"_id": OID}}
    history_filter = pipeline[1]["$project"]["creditHistory"]["$filter"]
    assert history_filter["cond"] == {"$gte": ["$$entry.timestamp", since]}


@pytest.mark.asyncio
async def test_history_since_missing_user(mongo_store, users):
    users.aggregate = MagicMock(return_value=FakeCursor([]))

    assert await mongo_store.get_history_since(USER_ID, NOW) is None


@pytest.mark.asyncio
async def test_history_since_driver_failure(mongo_store, users):
    users.aggregate = MagicMock(return_value=FakeCursor([], error=ServerSelectionTimeoutError("down")))

    with pytest.raises(StorageFailureError):
        await mongo_store.get_history_since(USER_ID, NOW)
