"""Pytest configuration and fixtures."""

import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from eventthreads.storage.facade import Storage
from eventthreads.storage.models import UserModel
from eventthreads.threads import (
    AdminProjection,
    MembershipEngine,
    ThreadRegistry,
    UserContext,
)

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def storage():
    """Storage backed by a throwaway SQLite file."""
    with tempfile.TemporaryDirectory() as temp_dir:
        db_path = Path(temp_dir) / "test.db"
        store = Storage(f"sqlite:///{db_path}")
        await store.initialize()
        yield store
        await store.close()


@pytest.fixture
def registry(storage, clock):
    return ThreadRegistry(storage, clock=clock)


@pytest.fixture
def engine(registry):
    return MembershipEngine(registry)


@pytest.fixture
def admin_projection(registry):
    return AdminProjection(registry)


@pytest.fixture
def make_user(storage, clock):
    """Register a user and return its caller context."""

    async def _make_user(username: str, is_admin: bool = False) -> UserContext:
        user = UserModel(
            user_id=f"{username}-id",
            username=username,
            is_admin=is_admin,
            created_at=clock(),
        )
        await storage.users.create_user(user)
        return UserContext.from_user(user)

    return _make_user


@pytest.fixture
async def creator(make_user):
    return await make_user("carol")


@pytest.fixture
async def alice(make_user):
    return await make_user("alice")


@pytest.fixture
async def bob(make_user):
    return await make_user("bob")


@pytest.fixture
async def admin_user(make_user):
    return await make_user("root", is_admin=True)


@pytest.fixture
def thread_fields():
    return {
        "title": "Pickup football",
        "description": "Casual game, all levels",
        "location": "Riverside park",
        "tags": ["sport", "outdoor"],
        "duration_hours": 2,
    }
