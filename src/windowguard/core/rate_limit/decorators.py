"""Rate limiting decorator for per-route configuration.

Allows setting custom rate limits on individual endpoints, in addition to
any limiter installed as middleware.
"""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from starlette.requests import Request

from windowguard.core.errors import ConfigurationError
from windowguard.core.rate_limit.engine import RateLimit


P = ParamSpec("P")
T = TypeVar("T")


def rate_limit(
    limiter: RateLimit | None = None,
    **options: Any,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[Any]]]:
    """Decorator to apply a rate limit to a route.

    The endpoint must take the ``Request`` as an argument; endpoints without
    one are called without limiting. Rate limit headers are only added when
    the endpoint returns a ``Response``.

    Args:
        limiter: Limiter to apply; built from ``options`` when omitted
        **options: RateLimitOptions fields for a new limiter

    Returns:
        Decorated function with rate limiting

    Raises:
        ConfigurationError: If both a limiter and options are given

    Example:
        @router.post("/ai/generate")
        @rate_limit(max=10, interval={"min": 1}, prefix_key="generate")
        async def generate(request: Request):
            ...
    """
    if limiter is not None and options:
        raise ConfigurationError(
            "Pass either a limiter or limiter options, not both",
            details={"options": sorted(options)},
        )
    instance = limiter if limiter is not None else RateLimit(**options)

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[Any]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
            request = _find_request(args, kwargs)
            if request is None:
                return await func(*args, **kwargs)

            async def call_next(_request: Request) -> T:
                return await func(*args, **kwargs)

            return await instance.dispatch(request, call_next)

        wrapper.limiter = instance  # type: ignore[attr-defined]
        return wrapper

    return decorator


def _find_request(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Request | None:
    for arg in args:
        if isinstance(arg, Request):
            return arg
    request = kwargs.get("request")
    if isinstance(request, Request):
        return request
    return None
