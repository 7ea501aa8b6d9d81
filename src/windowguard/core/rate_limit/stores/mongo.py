"""MongoDB rate limit store.

Built on PyMongo's async API. Increments are a single ``find_one_and_update``
upsert combining ``$setOnInsert`` for the window end with ``$inc`` for the
counter, and return the document as it is after the update.
"""

import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from windowguard.core.duration import to_ms
from windowguard.core.logging import hash_key
from windowguard.core.rate_limit.stores.base import AbuseEvent, Store, WindowState


if TYPE_CHECKING:
    from pymongo.asynchronous.database import AsyncDatabase

    from windowguard.core.rate_limit.options import RateLimitOptions


logger = structlog.get_logger()


class MongoStore(Store):
    """Store persisting windows and abuse history in MongoDB collections."""

    def __init__(
        self,
        database: "AsyncDatabase[dict[str, Any]]",
        *,
        collection_name: str = "rate_limits",
        abuse_collection_name: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            database: Async PyMongo database
            collection_name: Collection holding the windows
            abuse_collection_name: Collection holding abuse records
                (default: ``{collection_name}_abuses``)
            clock: Time source returning UNIX time in seconds
        """
        self.database = database
        self.windows = database[collection_name]
        self.abuses = database[abuse_collection_name or f"{collection_name}_abuses"]
        self.clock = clock

    async def setup(self) -> None:
        """Create the unique indexes the store relies on."""
        await self.windows.create_index([("key", ASCENDING)], unique=True)
        await self.windows.create_index([("window_end", ASCENDING)])
        await self.abuses.create_index(
            [("key", ASCENDING), ("window_end", ASCENDING)],
            unique=True,
        )

    async def close(self) -> None:
        await self.database.client.close()

    async def increment(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> WindowState:
        now = self.now_ms()
        await self.windows.delete_many({"window_end": {"$lte": now}})

        query = {"key": key}
        changes = {
            "$setOnInsert": {"window_end": now + to_ms(options.interval)},
            "$inc": {"counter": weight},
        }
        try:
            document = await self.windows.find_one_and_update(
                query,
                changes,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Another caller inserted the window first; it now exists
            document = await self.windows.find_one_and_update(
                query,
                changes,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )

        return WindowState(
            counter=int(document["counter"]),
            window_end=int(document["window_end"]),
        )

    async def decrement(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> None:
        await self.windows.update_one(
            {
                "key": key,
                "window_end": {"$gt": self.now_ms()},
            },
            # Clamped at zero
            [{"$set": {"counter": {"$max": [{"$subtract": ["$counter", weight]}, 0]}}}],
        )

    async def record_abuse(self, event: AbuseEvent) -> None:
        window = await self.windows.find_one(
            {"key": event.key, "window_end": {"$gt": self.now_ms()}}
        )
        if window is None:
            return

        window_end = int(window["window_end"])
        now = datetime.now(timezone.utc)
        query = {"key": event.key, "window_end": window_end}
        try:
            await self.abuses.update_one(
                query,
                {
                    "$setOnInsert": {
                        "prefix": event.prefix,
                        "interval": event.interval,
                        "max": event.max,
                        "identity": event.identity,
                        "address": event.address,
                        "created_at": now,
                    },
                    "$inc": {"hit_count": 1},
                    "$set": {"updated_at": now},
                },
                upsert=True,
            )
        except DuplicateKeyError:
            logger.debug("rate_limit_abuse_race_ignored", key_hash=hash_key(event.key))
            await self.abuses.update_one(
                query,
                {"$inc": {"hit_count": 1}, "$set": {"updated_at": now}},
            )

        logger.info(
            "rate_limit_abuse_recorded",
            key_hash=hash_key(event.key),
            window_end=window_end,
        )
