"""Rate limit store interface.

The engine depends on this abstraction only, so storage backends can be
swapped (memory, SQL, MongoDB, Redis) without touching request handling.

Every backend must make same-key increments atomic: two concurrent
increments for one key are both reflected in the counter. A plain
read-increment-write without a database-level atomic update is a defect.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from windowguard.core.rate_limit.options import RateLimitOptions


@dataclass(frozen=True)
class WindowState:
    """Snapshot of a key's window after an increment.

    Attributes:
        counter: Accumulated weight within the window
        window_end: Window expiry as UNIX epoch milliseconds
    """

    counter: int
    window_end: int


@dataclass(frozen=True)
class AbuseEvent:
    """A caller exceeding its limit, as handed to ``Store.record_abuse``.

    Attributes:
        key: Caller key that exceeded the limit
        prefix: Key prefix of the limiter
        interval: Window length in milliseconds
        max: The limit that was exceeded
        address: Network address of the caller
        identity: Resolved caller identity, if any
    """

    key: str
    prefix: str | None
    interval: int
    max: int
    address: str | None = None
    identity: str | None = None


class Store(ABC):
    """Interface for rate limit stores.

    Window ends are computed from ``clock``; the engine reads the same clock
    when it reports how long a rejected caller has to wait.
    """

    clock: Callable[[], float] = staticmethod(time.time)

    def now_ms(self) -> int:
        """Current UNIX time in milliseconds according to ``clock``."""
        return int(self.clock() * 1000)

    @abstractmethod
    async def increment(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> WindowState:
        """Add weight to the key's window counter.

        Creates the window with ``window_end = now + interval`` when the key
        has no live window.

        Args:
            key: Caller key
            options: Resolved limiter options (interval is read from here)
            weight: Amount to add

        Returns:
            Post-increment counter and window end
        """
        raise NotImplementedError

    @abstractmethod
    async def decrement(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> None:
        """Subtract weight from the key's live window counter.

        Never creates or revives a window; a missing key is a no-op.

        Args:
            key: Caller key
            options: Resolved limiter options
            weight: Amount to subtract
        """
        raise NotImplementedError

    @abstractmethod
    async def record_abuse(self, event: AbuseEvent) -> None:
        """Record that a caller exceeded its limit in the current window.

        Find-or-create the abuse record for ``(event.key, window_end)`` and
        increment its hit count. No-op when the key has no live window.

        Args:
            event: Abuse details
        """
        raise NotImplementedError

    async def setup(self) -> None:
        """Prepare backing storage (tables, indexes). Optional."""

    async def close(self) -> None:
        """Release connections held by the store. Optional."""
