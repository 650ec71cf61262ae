"""Pytest configuration and shared fixtures."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from idgen.adapters.persistence.database import Base
from idgen.adapters.persistence.models import CounterRecordModel  # noqa: F401 — register table
from tests.fakes import FakeCounterStore


@pytest.fixture
def store():
    return FakeCounterStore()


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ids.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return async_sessionmaker(sqlite_engine, expire_on_commit=False)
