"""Store factory.

Builds the store selected by ``settings.rate_limit_store``. Backend modules
are imported lazily so that deployments only need the driver they use.
"""

from windowguard.config import Settings, settings as default_settings
from windowguard.core.errors import ConfigurationError
from windowguard.core.rate_limit.stores.base import Store
from windowguard.core.rate_limit.stores.memory import MemoryStore


def create_store(settings: Settings | None = None) -> Store:
    """Create the configured rate limit store.

    Args:
        settings: Application settings (default: global settings)

    Returns:
        Store instance

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    cfg = settings or default_settings
    backend = cfg.rate_limit_store

    if backend == "memory":
        return MemoryStore()

    if backend == "redis":
        from windowguard.core.rate_limit.stores.redis import RedisStore

        return RedisStore(abuse_ttl_seconds=cfg.rate_limit_abuse_ttl_seconds)

    if backend == "sql":
        from windowguard.core.database.session import create_engine
        from windowguard.core.rate_limit.stores.sql import SqlStore

        return SqlStore(
            create_engine(cfg.database_url, echo=cfg.database_echo),
            table_name=cfg.rate_limit_table_name,
            abuse_table_name=cfg.rate_limit_abuse_table_name,
        )

    if backend == "mongodb":
        from pymongo import AsyncMongoClient

        from windowguard.core.rate_limit.stores.mongo import MongoStore

        client: AsyncMongoClient = AsyncMongoClient(cfg.mongodb_url)  # type: ignore[type-arg]
        return MongoStore(
            client[cfg.mongodb_database],
            collection_name=cfg.rate_limit_table_name,
            abuse_collection_name=cfg.rate_limit_abuse_table_name,
        )

    raise ConfigurationError(
        f"Unknown rate limit store {backend!r}",
        details={"store": backend},
    )
