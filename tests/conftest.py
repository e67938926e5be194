"""Shared pytest fixtures for brickORM unit and integration tests."""
from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest

from brickorm.database.manager import DatabaseManager
from brickorm.database.sqlite import SQLiteAdapter
from brickorm.testing import RecordingAdapter
from tests.fixtures import load_ddl


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_manager() -> Iterator[None]:
    """Every test starts without an adapter and with the default config."""
    DatabaseManager.reset()
    yield
    DatabaseManager.reset()


@pytest.fixture()
def db() -> RecordingAdapter:
    """A recording adapter registered on the manager (SQLite grammar)."""
    adapter = RecordingAdapter()
    DatabaseManager().set_database(adapter)
    return adapter


@pytest.fixture()
def pg_db() -> RecordingAdapter:
    """A recording adapter registered on the manager (Postgres grammar)."""
    adapter = RecordingAdapter(grammar="postgres")
    DatabaseManager().set_database(adapter)
    return adapter


@pytest.fixture()
async def sqlite_db() -> AsyncIterator[SQLiteAdapter]:
    """An in-memory SQLite database with the sample schema."""
    adapter = await SQLiteAdapter(":memory:").connect()
    await adapter.execute_script(load_ddl())
    DatabaseManager().set_database(adapter)
    yield adapter
    await adapter.close()
