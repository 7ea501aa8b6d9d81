"""Rate limit database models.

Window ends are stored as UNIX epoch milliseconds so that the
``(key, window_end)`` abuse bucket compares exactly across dialects.

``RateLimitWindow`` and ``RateLimitAbuse`` map the default tables on the
shared ``Base``. Stores configured with other table names get their own pair
of models from ``models_for``, on a separate declarative base.
"""

from functools import lru_cache
from typing import Any

from sqlalchemy import BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from windowguard.core.constants import (
    MAX_IPV6_LENGTH,
    MAX_KEY_LENGTH,
    RATE_LIMIT_ABUSE_TABLE,
    RATE_LIMIT_TABLE,
)
from windowguard.core.database.base import Base, TimestampMixin, UUIDMixin


def build_models(
    table_name: str,
    abuse_table_name: str,
    base: type[DeclarativeBase],
) -> tuple[type[Any], type[Any]]:
    """Declare the window and abuse models on a declarative base.

    Args:
        table_name: Table holding one window per caller key
        abuse_table_name: Table holding one abuse record per key and window
        base: Declarative base owning the tables

    Returns:
        The window model and the abuse model
    """

    class RateLimitWindow(base):  # type: ignore[valid-type,misc]
        """Current window counter for one caller key.

        Attributes:
            key: Caller key (prefix + separator + identity)
            counter: Accumulated weight within the window
            window_end: Window expiry, epoch milliseconds
        """

        __tablename__ = table_name

        key: Mapped[str] = mapped_column(
            String(MAX_KEY_LENGTH),
            primary_key=True,
        )
        counter: Mapped[int] = mapped_column(
            Integer,
            nullable=False,
            default=0,
        )
        window_end: Mapped[int] = mapped_column(
            BigInteger,
            nullable=False,
            index=True,
        )

        def __repr__(self) -> str:
            return (
                f"<RateLimitWindow(key={self.key}, counter={self.counter}, "
                f"window_end={self.window_end})>"
            )

    class RateLimitAbuse(base, UUIDMixin, TimestampMixin):  # type: ignore[valid-type,misc]
        """One record per caller key and exceeded window.

        Attributes:
            key: Caller key that exceeded the limit
            prefix: Key prefix of the limiter
            interval: Window length in milliseconds
            max: The limit that was exceeded
            hit_count: Rejected requests within the window
            identity: Resolved caller identity
            address: Client IP address
            window_end: End of the exceeded window, epoch milliseconds
        """

        __tablename__ = abuse_table_name
        __table_args__ = (
            UniqueConstraint(
                "key", "window_end", name=f"uq_{abuse_table_name}_key_window_end"
            ),
        )

        key: Mapped[str] = mapped_column(
            String(MAX_KEY_LENGTH),
            nullable=False,
        )
        prefix: Mapped[str | None] = mapped_column(
            String(MAX_KEY_LENGTH),
            nullable=True,
        )
        interval: Mapped[int] = mapped_column(
            BigInteger,
            nullable=False,
        )
        max: Mapped[int] = mapped_column(
            Integer,
            nullable=False,
        )
        hit_count: Mapped[int] = mapped_column(
            Integer,
            nullable=False,
            default=0,
        )
        identity: Mapped[str | None] = mapped_column(
            String(MAX_KEY_LENGTH),
            nullable=True,
        )
        address: Mapped[str | None] = mapped_column(
            String(MAX_IPV6_LENGTH),
            nullable=True,
        )
        window_end: Mapped[int] = mapped_column(
            BigInteger,
            nullable=False,
        )

        def __repr__(self) -> str:
            return (
                f"<RateLimitAbuse(key={self.key}, window_end={self.window_end}, "
                f"hit_count={self.hit_count})>"
            )

    return RateLimitWindow, RateLimitAbuse


RateLimitWindow, RateLimitAbuse = build_models(RATE_LIMIT_TABLE, RATE_LIMIT_ABUSE_TABLE, Base)


@lru_cache
def models_for(table_name: str, abuse_table_name: str) -> tuple[type[Any], type[Any]]:
    """Return the models mapping the given table names.

    Repeated calls with the same names return the same classes.
    """
    if (table_name, abuse_table_name) == (RATE_LIMIT_TABLE, RATE_LIMIT_ABUSE_TABLE):
        return RateLimitWindow, RateLimitAbuse

    class CustomTableBase(DeclarativeBase):
        pass

    return build_models(table_name, abuse_table_name, CustomTableBase)
