"""Integration tests for the SQL rate limit store on SQLite."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import inspect

from windowguard.core.errors import ConfigurationError
from windowguard.core.rate_limit.options import RateLimitOptions
from windowguard.core.rate_limit.stores.base import AbuseEvent, WindowState
from windowguard.core.rate_limit.stores.models import (
    RateLimitAbuse,
    RateLimitWindow,
    models_for,
)
from windowguard.core.rate_limit.stores.sql import SqlStore


pytestmark = pytest.mark.integration


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms / 1000


NOW_MS = 1_700_000_000_000


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def store(sqlite_engine, clock) -> SqlStore:
    store = SqlStore(sqlite_engine, clock=clock)
    await store.setup()
    return store


@pytest.fixture
def options() -> RateLimitOptions:
    return RateLimitOptions(interval=1000)


def abuse_event(key: str = "global::10.0.0.1") -> AbuseEvent:
    return AbuseEvent(
        key=key,
        prefix="global",
        interval=1000,
        max=1,
        address="10.0.0.1",
    )


class TestSqlStoreConstruction:
    """Tests for dialect support."""

    def test_unsupported_dialect(self):
        """Dialects without ON CONFLICT support are rejected."""
        engine = MagicMock()
        engine.dialect.name = "mysql"

        with pytest.raises(ConfigurationError):
            SqlStore(engine)

    @pytest.mark.asyncio
    async def test_setup_is_idempotent(self, store):
        """setup can run on every startup."""
        await store.setup()


class TestSqlStoreWindows:
    """Tests for window counters."""

    @pytest.mark.asyncio
    async def test_increment_creates_window(self, store, options):
        """The first increment opens a window."""
        state = await store.increment("k", options, 1)

        assert state == WindowState(counter=1, window_end=NOW_MS + 1000)

    @pytest.mark.asyncio
    async def test_increment_returns_post_increment_value(self, store, options):
        """Each call sees its own increment."""
        await store.increment("k", options, 2)
        state = await store.increment("k", options, 3)

        assert state == WindowState(counter=5, window_end=NOW_MS + 1000)

    @pytest.mark.asyncio
    async def test_window_renews_after_expiry(self, store, clock, options):
        """An ended window is replaced."""
        await store.increment("k", options, 4)
        clock.advance(1000)

        state = await store.increment("k", options, 1)

        assert state == WindowState(counter=1, window_end=NOW_MS + 2000)

    @pytest.mark.asyncio
    async def test_purge_expired(self, store, clock, options):
        """Expired windows are deleted in bulk."""
        await store.increment("a", options, 1)
        await store.increment("b", options, 1)
        clock.advance(1000)

        assert await store.purge_expired() == 2
        assert await store.get("a") is None

    @pytest.mark.asyncio
    async def test_decrement(self, store, options):
        """Weight is given back to a live window."""
        await store.increment("k", options, 3)

        await store.decrement("k", options, 1)

        assert (await store.get("k")).counter == 2

    @pytest.mark.asyncio
    async def test_decrement_clamps_at_zero(self, store, options):
        """The counter never goes negative."""
        await store.increment("k", options, 1)

        await store.decrement("k", options, 4)

        assert (await store.get("k")).counter == 0

    @pytest.mark.asyncio
    async def test_decrement_missing_key_is_noop(self, store, options):
        """Decrement never creates a window."""
        await store.decrement("k", options, 1)

        assert await store.get("k") is None


class TestSqlStoreAbuse:
    """Tests for abuse records."""

    @pytest.mark.asyncio
    async def test_one_record_per_window(self, store, options):
        """Repeated violations increment a single record."""
        await store.increment("global::10.0.0.1", options, 2)

        await store.record_abuse(abuse_event())
        await store.record_abuse(abuse_event())

        records = await store.list_abuses("global::10.0.0.1")
        assert len(records) == 1
        assert records[0].hit_count == 2
        assert records[0].window_end == NOW_MS + 1000
        assert records[0].address == "10.0.0.1"
        assert records[0].prefix == "global"

    @pytest.mark.asyncio
    async def test_new_window_new_record(self, store, clock, options):
        """Each exceeded window gets its own record."""
        await store.increment("global::10.0.0.1", options, 2)
        await store.record_abuse(abuse_event())
        clock.advance(1000)
        await store.increment("global::10.0.0.1", options, 2)
        await store.record_abuse(abuse_event())

        records = await store.list_abuses("global::10.0.0.1")
        assert [r.window_end for r in records] == [NOW_MS + 1000, NOW_MS + 2000]
        assert [r.hit_count for r in records] == [1, 1]

    @pytest.mark.asyncio
    async def test_no_live_window_is_noop(self, store):
        """Nothing is recorded without a live window."""
        await store.record_abuse(abuse_event())

        assert await store.list_abuses("global::10.0.0.1") == []


class TestSqlStoreTableNames:
    """Tests for configurable table names."""

    def test_default_names_use_shared_models(self):
        """The default names map onto the package models."""
        assert models_for("rate_limits", "rate_limit_abuses") == (
            RateLimitWindow,
            RateLimitAbuse,
        )

    def test_models_are_reused_per_name(self):
        """The same names always give the same models."""
        first = models_for("api_limits", "api_limit_abuses")

        assert models_for("api_limits", "api_limit_abuses") == first
        assert first[0].__tablename__ == "api_limits"
        assert first[1].__tablename__ == "api_limit_abuses"

    @pytest.mark.asyncio
    async def test_custom_tables(self, sqlite_engine, clock, options):
        """Windows and abuse records go to the configured tables."""
        store = SqlStore(
            sqlite_engine,
            table_name="api_limits",
            abuse_table_name="api_limit_abuses",
            clock=clock,
        )
        await store.setup()

        await store.increment("global::10.0.0.1", options, 1)
        state = await store.increment("global::10.0.0.1", options, 1)
        await store.record_abuse(abuse_event())
        await store.record_abuse(abuse_event())

        async with sqlite_engine.connect() as conn:
            tables = await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).get_table_names()
            )
        assert set(tables) == {"api_limits", "api_limit_abuses"}
        assert state == WindowState(counter=2, window_end=NOW_MS + 1000)
        records = await store.list_abuses("global::10.0.0.1")
        assert [r.hit_count for r in records] == [2]

    @pytest.mark.asyncio
    async def test_stores_on_one_engine_are_independent(
        self, sqlite_engine, clock, options
    ):
        """Stores with different tables keep separate counters."""
        default = SqlStore(sqlite_engine, clock=clock)
        custom = SqlStore(
            sqlite_engine,
            table_name="api_limits",
            abuse_table_name="api_limit_abuses",
            clock=clock,
        )
        await default.setup()
        await custom.setup()

        await default.increment("k", options, 3)
        state = await custom.increment("k", options, 1)

        assert state.counter == 1
        assert await default.get("k") == WindowState(
            counter=3, window_end=NOW_MS + 1000
        )
