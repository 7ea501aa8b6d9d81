"""Error types raised by the rate limiter and its stores."""

from windowguard.core.errors.exceptions import (
    ConfigurationError,
    InvalidUnitError,
    RateLimitExceededError,
    WindowGuardError,
)
from windowguard.core.errors.handlers import (
    raise_rate_limit_exceeded,
    register_exception_handlers,
)


__all__ = [
    "ConfigurationError",
    "InvalidUnitError",
    "RateLimitExceededError",
    "WindowGuardError",
    "raise_rate_limit_exceeded",
    "register_exception_handlers",
]
