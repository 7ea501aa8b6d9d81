"""windowguard - request rate limiting for ASGI applications."""

from windowguard.core.duration import to_ms
from windowguard.core.errors import (
    ConfigurationError,
    InvalidUnitError,
    RateLimitExceededError,
    WindowGuardError,
)
from windowguard.core.rate_limit import (
    RateLimit,
    RateLimitMiddleware,
    RateLimitOptions,
    RateLimitResult,
    configure_defaults,
    conventional_identity,
    get_default_options,
    rate_limit,
    reset_defaults,
)
from windowguard.core.rate_limit.stores import (
    AbuseEvent,
    MemoryStore,
    Store,
    WindowState,
    create_store,
)


__version__ = "0.1.0"

__all__ = [
    "AbuseEvent",
    "ConfigurationError",
    "InvalidUnitError",
    "MemoryStore",
    "RateLimit",
    "RateLimitExceededError",
    "RateLimitMiddleware",
    "RateLimitOptions",
    "RateLimitResult",
    "Store",
    "WindowGuardError",
    "WindowState",
    "configure_defaults",
    "conventional_identity",
    "create_store",
    "get_default_options",
    "rate_limit",
    "reset_defaults",
    "to_ms",
]
