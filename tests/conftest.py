"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from tests.factories.requests import ok_response
from windowguard.core.rate_limit.options import reset_defaults
from windowguard.core.rate_limit.stores.memory import MemoryStore


@pytest.fixture(autouse=True)
def restore_default_options() -> Generator[None, None, None]:
    """Undo configure_defaults() calls made by a test."""
    yield
    reset_defaults()


@pytest.fixture
def memory_store() -> MemoryStore:
    """Provide an empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def call_next() -> AsyncMock:
    """Downstream handler answering 200."""
    return AsyncMock(return_value=ok_response())


@pytest.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()
