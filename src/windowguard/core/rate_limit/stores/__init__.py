"""Rate limit stores.

``MemoryStore`` has no dependencies. ``SqlStore``, ``MongoStore`` and
``RedisStore`` live in their own modules so their drivers are only imported
when used.
"""

from windowguard.core.rate_limit.stores.base import AbuseEvent, Store, WindowState
from windowguard.core.rate_limit.stores.factory import create_store
from windowguard.core.rate_limit.stores.memory import MemoryStore


__all__ = [
    "AbuseEvent",
    "MemoryStore",
    "Store",
    "WindowState",
    "create_store",
]
