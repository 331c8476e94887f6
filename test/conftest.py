"""Shared fixtures for the credit system tests."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CREDIT_STORE_BACKEND", "memory")
os.environ.setdefault("LOG_FILE", "")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.auth.jwt_handler import create_access_token
from app.cache.throttle import TTLThrottleStore
from app.credits.dependencies import get_credit_manager, get_credit_store, get_profile_throttle
from app.credits.manager import CreditManager
from app.credits.store import InMemoryCreditStore


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTimer:
    """Monotonic timer stand-in for TTLCache."""

    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def clock():
    # 15:00 UTC so "today" has room on both sides of midnight
    return FixedClock(datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryCreditStore()


@pytest.fixture
def manager(store, clock):
    return CreditManager(store, daily_amount=10, clock=clock)


@pytest.fixture
def make_user(store, clock):
    """Insert a user with the given credit state and return its id."""

    counter = {"n": 0}

    async def _make_user(credits=10, last_reset=None, reset_count=0, history=None, **extra):
        counter["n"] += 1
        document = {
            "email": f"user{counter['n']}@example.com",
            "displayName": f"User {counter['n']}",
            "passwordHash": "not-a-real-hash",
            "isAdmin": False,
            "imagesGenerated": 0,
            "imagesEdited": 0,
            "credits": credits,
            "lastCreditReset": last_reset,
            "dailyCreditResetCount": reset_count,
            "creditHistory": list(history or []),
            "createdAt": clock.now - timedelta(days=30),
            "updatedAt": clock.now - timedelta(days=30),
        }
        document.update(extra)
        user = await store.insert_user(document)
        return str(user["_id"])

    return _make_user


@pytest.fixture
def throttle_timer():
    return FakeTimer()


@pytest.fixture
def profile_throttle(throttle_timer):
    return TTLThrottleStore(500, timer=throttle_timer)


@pytest.fixture
def test_app(store, manager, profile_throttle):
    from main import app

    async def _store():
        return store

    async def _manager():
        return manager

    app.dependency_overrides[get_credit_store] = _store
    app.dependency_overrides[get_credit_manager] = _manager
    app.dependency_overrides[get_profile_throttle] = lambda: profile_throttle
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}
