"""Rate limiter options.

``RateLimitOptions`` is the configuration snapshot a limiter resolves once at
construction. Each override hook may be a plain function or a coroutine
function; when a hook is None the documented default applies:

- ``key_generator(request) -> str``: default ``prefix + separator + identity``
- ``skip(request) -> bool``: default never skip
- ``get_identity(request) -> str | None``: default None (network address is used)
- ``get_identity_from_key(key) -> str | None``: default split on the separator
- ``handler(request) -> Response``: default JSON ``{"message": ...}`` response
- ``on_limit_reached(request) -> None``: default ``store.record_abuse(...)``
- ``weight(request) -> int``: default 1
"""

import dataclasses
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from starlette.requests import Request
from starlette.responses import Response

from windowguard.core.constants import (
    DEFAULT_INTERVAL_MS,
    DEFAULT_MAX,
    DEFAULT_MESSAGE,
    DEFAULT_PREFIX_KEY,
    DEFAULT_PREFIX_KEY_SEPARATOR,
    DEFAULT_STATUS_CODE,
    DEFAULT_TIME_WAIT_MS,
)
from windowguard.core.duration import Duration


if TYPE_CHECKING:
    from windowguard.config import Settings
    from windowguard.core.rate_limit.stores.base import Store


T = TypeVar("T")
MaybeAwaitable = T | Awaitable[T]

KeyGenerator = Callable[[Request], MaybeAwaitable[str]]
SkipPredicate = Callable[[Request], MaybeAwaitable[bool]]
IdentityResolver = Callable[[Request], MaybeAwaitable[Any]]
IdentityFromKey = Callable[[str], str | None]
LimitHandler = Callable[[Request], MaybeAwaitable[Response]]
LimitReachedHook = Callable[[Request], MaybeAwaitable[None]]
WeightFunction = Callable[[Request], MaybeAwaitable[int]]


@dataclass(frozen=True)
class RateLimitOptions:
    """Configuration of a rate limiter.

    Attributes:
        interval: Window length (milliseconds or unit mapping)
        max: Requests allowed per window before rejecting; 0 disables rejection
        delay_after: Requests allowed per window before delaying; 0 disables delay
        time_wait: Delay added per request above ``delay_after``
        message: Body message of the default rejection response
        status_code: Status code of the default rejection response
        headers: Emit X-RateLimit-* and Retry-After headers
        skip_failed_requests: Give back the weight of responses with status >= 400
        prefix_key: Prefix of every caller key
        prefix_key_separator: Separator between prefix and identity
        store: Counter store; a new MemoryStore per limiter when None
        whitelist: Identities that are never limited
        trusted_proxies: Peers allowed to set X-Forwarded-For
    """

    interval: Duration = DEFAULT_INTERVAL_MS
    max: int = DEFAULT_MAX
    delay_after: int = 0
    time_wait: Duration = DEFAULT_TIME_WAIT_MS
    message: str = DEFAULT_MESSAGE
    status_code: int = DEFAULT_STATUS_CODE
    headers: bool = True
    skip_failed_requests: bool = False
    prefix_key: str = DEFAULT_PREFIX_KEY
    prefix_key_separator: str = DEFAULT_PREFIX_KEY_SEPARATOR
    store: "Store | None" = None
    whitelist: frozenset[str] = field(default_factory=frozenset)
    trusted_proxies: frozenset[str] = field(default_factory=frozenset)

    key_generator: KeyGenerator | None = None
    skip: SkipPredicate | None = None
    get_identity: IdentityResolver | None = None
    get_identity_from_key: IdentityFromKey | None = None
    handler: LimitHandler | None = None
    on_limit_reached: LimitReachedHook | None = None
    weight: WeightFunction | None = None

    def __post_init__(self) -> None:
        # Accept any iterable for the sets
        object.__setattr__(self, "whitelist", _string_set(self.whitelist))
        object.__setattr__(self, "trusted_proxies", _string_set(self.trusted_proxies))

    def replace(self, **changes: Any) -> "RateLimitOptions":
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "RateLimitOptions":
        """Build options from application settings.

        Args:
            settings: Application settings
            **overrides: Fields taking precedence over settings

        Returns:
            Options instance
        """
        values: dict[str, Any] = {
            "interval": settings.rate_limit_interval_ms,
            "max": settings.rate_limit_max,
            "delay_after": settings.rate_limit_delay_after,
            "time_wait": settings.rate_limit_time_wait_ms,
            "message": settings.rate_limit_message,
            "status_code": settings.rate_limit_status_code,
            "headers": settings.rate_limit_headers,
            "skip_failed_requests": settings.rate_limit_skip_failed_requests,
            "prefix_key": settings.rate_limit_prefix_key,
            "prefix_key_separator": settings.rate_limit_prefix_key_separator,
            "whitelist": settings.rate_limit_whitelist,
            "trusted_proxies": settings.trusted_proxies,
        }
        values.update(overrides)
        return cls(**values)


def _string_set(values: Iterable[Any] | None) -> frozenset[str]:
    if not values:
        return frozenset()
    if isinstance(values, str):
        return frozenset({values})
    return frozenset(str(value) for value in values)


_default_options = RateLimitOptions()


def get_default_options() -> RateLimitOptions:
    """Return the options new limiters start from."""
    return _default_options


def configure_defaults(**changes: Any) -> RateLimitOptions:
    """Replace fields of the instance-wide default options.

    Only limiters constructed afterwards see the change.

    Example:
        configure_defaults(max=100, interval={"min": 15})
    """
    global _default_options
    _default_options = _default_options.replace(**changes)
    return _default_options


def reset_defaults() -> RateLimitOptions:
    """Restore the built-in default options."""
    global _default_options
    _default_options = RateLimitOptions()
    return _default_options
