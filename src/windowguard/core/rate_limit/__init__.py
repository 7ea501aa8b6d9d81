"""Fixed window rate limiting with pluggable stores.

Provides per-user and per-IP rate limiting with configurable limits,
graduated delays and abuse recording.
"""

from windowguard.core.rate_limit.decorators import rate_limit
from windowguard.core.rate_limit.engine import RateLimit, RateLimitResult
from windowguard.core.rate_limit.identity import client_address, conventional_identity
from windowguard.core.rate_limit.middleware import RateLimitMiddleware
from windowguard.core.rate_limit.options import (
    RateLimitOptions,
    configure_defaults,
    get_default_options,
    reset_defaults,
)


__all__ = [
    "RateLimit",
    "RateLimitMiddleware",
    "RateLimitOptions",
    "RateLimitResult",
    "client_address",
    "configure_defaults",
    "conventional_identity",
    "get_default_options",
    "rate_limit",
    "reset_defaults",
]
