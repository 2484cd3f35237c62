"""Shared pytest fixtures for database-backed service tests."""

from __future__ import annotations

import asyncio
import os

os.environ.setdefault("APP_ENV", "test")

import uuid
from datetime import date
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from neoclip.config import Settings
from neoclip.models import Base, User
from neoclip.models.enums import Tier


class _AsyncSessionWrapper:
    def __init__(self, sync_session) -> None:
        self._sync = sync_session

    async def execute(self, *args, **kwargs):
        return self._sync.execute(*args, **kwargs)

    async def get(self, *args, **kwargs):
        return self._sync.get(*args, **kwargs)

    def add(self, obj) -> None:
        self._sync.add(obj)

    def add_all(self, objs) -> None:
        self._sync.add_all(objs)

    async def flush(self) -> None:
        self._sync.flush()

    async def commit(self) -> None:
        self._sync.commit()

    async def rollback(self) -> None:
        self._sync.rollback()

    async def refresh(self, obj) -> None:
        self._sync.refresh(obj)

    async def close(self) -> None:
        self._sync.close()


class _InterleavingSessionWrapper(_AsyncSessionWrapper):
    """Hands control back to the event loop before every statement.

    The plain wrapper never suspends, so tasks gathered against it run one after
    another. This one lets them interleave between a read and the write after it.
    """

    async def execute(self, *args, **kwargs):
        await asyncio.sleep(0)
        return self._sync.execute(*args, **kwargs)

    async def commit(self) -> None:
        await asyncio.sleep(0)
        self._sync.commit()


def _sqlite_session(wrapper):
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sync_session = SessionLocal()
    try:
        yield wrapper(sync_session)
    finally:
        sync_session.close()
        engine.dispose()


@pytest.fixture
def session():
    yield from _sqlite_session(_AsyncSessionWrapper)


@pytest.fixture
def interleaved_session():
    yield from _sqlite_session(_InterleavingSessionWrapper)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        APP_ENV="test",
        REPLICATE_API_KEY="r8-test",
        FAL_KEY="fal-test",
        PIAPI_KEY="piapi-test",
        PROVIDER_RETRY_DELAY_SECONDS=0,
        PROVIDER_TIMEOUT_SECONDS=5,
    )


async def make_user(
    session,
    tier: Tier = Tier.FREE,
    free_used: int = 0,
    paid_used: int = 0,
    resets_at: Optional[date] = None,
) -> User:
    user = User(id=uuid.uuid4(), tier=tier.value, free_used=free_used, paid_used=paid_used)
    if resets_at is not None:
        user.resets_at = resets_at
    session.add(user)
    await session.commit()
    return user


async def counters(session, user_id: uuid.UUID) -> tuple:
    result = await session.execute(
        select(User.free_used, User.paid_used, User.resets_at, User.total_generated).where(User.id == user_id)
    )
    return tuple(result.one())


@pytest_asyncio.fixture
async def user(session) -> User:
    return await make_user(session)
