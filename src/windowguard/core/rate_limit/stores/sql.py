"""SQLAlchemy rate limit store.

Increments use a find-or-create (``INSERT ... ON CONFLICT DO NOTHING``)
followed by an atomic ``UPDATE ... SET counter = counter + :weight
RETURNING``, so the returned counter is the value the database holds after
this call's own increment, without a separate read.
"""

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine

from windowguard.core.constants import RATE_LIMIT_ABUSE_TABLE, RATE_LIMIT_TABLE
from windowguard.core.database.session import create_session_factory
from windowguard.core.duration import to_ms
from windowguard.core.errors import ConfigurationError
from windowguard.core.logging import hash_key
from windowguard.core.rate_limit.stores.base import AbuseEvent, Store, WindowState
from windowguard.core.rate_limit.stores.models import models_for


if TYPE_CHECKING:
    from windowguard.core.rate_limit.options import RateLimitOptions


logger = structlog.get_logger()

# Dialects with INSERT ... ON CONFLICT and UPDATE ... RETURNING
_UPSERT_INSERTS: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlStore(Store):
    """Store persisting windows and abuse history in a relational database.

    Supports the PostgreSQL and SQLite dialects.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        table_name: str = RATE_LIMIT_TABLE,
        abuse_table_name: str = RATE_LIMIT_ABUSE_TABLE,
        purge_on_increment: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            engine: Async SQLAlchemy engine
            table_name: Table holding the windows
            abuse_table_name: Table holding the abuse records
            purge_on_increment: Delete expired windows on every increment.
                Disable when ``purge_expired`` runs from a background job.
            clock: Time source returning UNIX time in seconds

        Raises:
            ConfigurationError: If the engine's dialect is not supported
        """
        dialect = engine.dialect.name
        if dialect not in _UPSERT_INSERTS:
            raise ConfigurationError(
                f"SqlStore does not support the {dialect!r} dialect",
                details={"supported": sorted(_UPSERT_INSERTS)},
            )
        self.engine = engine
        self._insert = _UPSERT_INSERTS[dialect]
        self._session_factory = create_session_factory(engine)
        self._purge_on_increment = purge_on_increment
        self.clock = clock
        self.windows, self.abuses = models_for(table_name, abuse_table_name)

    async def setup(self) -> None:
        """Create the rate limit tables if they don't exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(
                self.windows.metadata.create_all,
                tables=[self.windows.__table__, self.abuses.__table__],
            )

    async def close(self) -> None:
        await self.engine.dispose()

    async def purge_expired(self) -> int:
        """Delete every window whose end has passed.

        Returns:
            Number of deleted rows
        """
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(self.windows)
                .where(self.windows.window_end <= self.now_ms())
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0
        return deleted

    async def increment(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> WindowState:
        now = self.now_ms()
        async with self._session_factory() as session, session.begin():
            if self._purge_on_increment:
                await session.execute(
                    delete(self.windows)
                    .where(self.windows.window_end <= now)
                    .execution_options(synchronize_session=False)
                )
            else:
                await session.execute(
                    delete(self.windows)
                    .where(
                        self.windows.key == key,
                        self.windows.window_end <= now,
                    )
                    .execution_options(synchronize_session=False)
                )

            await session.execute(
                self._insert(self.windows)
                .values(
                    key=key,
                    counter=0,
                    window_end=now + to_ms(options.interval),
                )
                .on_conflict_do_nothing(index_elements=["key"])
            )
            result = await session.execute(
                update(self.windows)
                .where(self.windows.key == key)
                .values(counter=self.windows.counter + weight)
                .returning(self.windows.counter, self.windows.window_end)
                .execution_options(synchronize_session=False)
            )
            counter, window_end = result.one()

        return WindowState(counter=counter, window_end=window_end)

    async def decrement(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(self.windows)
                .where(
                    self.windows.key == key,
                    self.windows.window_end > self.now_ms(),
                )
                .values(
                    counter=case(
                        (self.windows.counter > weight, self.windows.counter - weight),
                        else_=0,
                    )
                )
                .execution_options(synchronize_session=False)
            )

    async def get(self, key: str) -> WindowState | None:
        """Return the live window for a key, if any."""
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(self.windows.counter, self.windows.window_end).where(
                        self.windows.key == key,
                        self.windows.window_end > self.now_ms(),
                    )
                )
            ).one_or_none()
        if row is None:
            return None
        return WindowState(counter=row.counter, window_end=row.window_end)

    async def record_abuse(self, event: AbuseEvent) -> None:
        async with self._session_factory() as session, session.begin():
            window_end = await session.scalar(
                select(self.windows.window_end).where(
                    self.windows.key == event.key,
                    self.windows.window_end > self.now_ms(),
                )
            )
            if window_end is None:
                return

            # Concurrent first violations collapse onto the unique constraint
            await session.execute(
                self._insert(self.abuses)
                .values(
                    key=event.key,
                    prefix=event.prefix,
                    interval=event.interval,
                    max=event.max,
                    hit_count=0,
                    identity=event.identity,
                    address=event.address,
                    window_end=window_end,
                )
                .on_conflict_do_nothing(index_elements=["key", "window_end"])
            )
            await session.execute(
                update(self.abuses)
                .where(
                    self.abuses.key == event.key,
                    self.abuses.window_end == window_end,
                )
                .values(
                    hit_count=self.abuses.hit_count + 1,
                    updated_at=func.now(),
                )
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "rate_limit_abuse_recorded",
            key_hash=hash_key(event.key),
            window_end=window_end,
        )

    async def list_abuses(self, key: str) -> list[Any]:
        """Return the abuse history of a caller key, oldest window first."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(self.abuses)
                .where(self.abuses.key == key)
                .order_by(self.abuses.window_end)
            )
            return list(result.all())
