"""In-process rate limit store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- State belongs to the instance; pass the same instance to several limiters
  to make them share counters.
- Thread-safe: uses a lock around shared state.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from windowguard.core.duration import to_ms
from windowguard.core.rate_limit.stores.base import AbuseEvent, Store, WindowState


if TYPE_CHECKING:
    from windowguard.core.rate_limit.options import RateLimitOptions


@dataclass
class _Window:
    counter: int
    window_end: int


class MemoryStore(Store):
    """Store keeping one window per key in a dictionary.

    Expired windows are swept lazily before each increment, so the table only
    holds keys that were active within the last interval.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds
        """
        self.clock = clock
        self._lock = threading.RLock()
        self._windows: dict[str, _Window] = {}

    def _sweep(self, now: int) -> None:
        """Evict every window whose end has passed."""
        expired = [key for key, w in self._windows.items() if w.window_end <= now]
        for key in expired:
            del self._windows[key]

    async def increment(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> WindowState:
        now = self.now_ms()
        with self._lock:
            self._sweep(now)
            window = self._windows.get(key)
            if window is None:
                window = _Window(counter=0, window_end=now + to_ms(options.interval))
                self._windows[key] = window
            window.counter += weight
            return WindowState(counter=window.counter, window_end=window.window_end)

    async def decrement(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> None:
        now = self.now_ms()
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return
            if window.window_end <= now:
                del self._windows[key]
                return
            window.counter = max(window.counter - weight, 0)

    async def record_abuse(self, event: AbuseEvent) -> None:
        # Abuse history is only kept by durable stores.
        return None

    def get(self, key: str) -> WindowState | None:
        """Return the live window for a key, if any."""
        now = self.now_ms()
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.window_end <= now:
                return None
            return WindowState(counter=window.counter, window_end=window.window_end)

    def clear(self) -> None:
        """Drop every window."""
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
