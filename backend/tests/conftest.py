"""Shared fixtures: a throwaway SQLite database per test."""
import os
import tempfile

# Must be set before pulsewatch.database creates its engine
_DATA_DIR = tempfile.mkdtemp(prefix="pulsewatch-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DATA_DIR, 'test.db')}"
os.environ["DATA_PATH"] = _DATA_DIR
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest_asyncio

from pulsewatch import models  # noqa: F401
from pulsewatch.database import Base, engine


@pytest_asyncio.fixture
async def db():
    """Fresh tables per test; pooled connections are dropped afterwards."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

