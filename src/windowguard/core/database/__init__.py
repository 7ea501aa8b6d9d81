"""Database layer - engine construction, base models, and mixins."""

from windowguard.core.database.base import Base, TimestampMixin, UUIDMixin
from windowguard.core.database.session import create_engine, create_session_factory


__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "create_engine",
    "create_session_factory",
]
