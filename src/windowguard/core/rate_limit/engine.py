"""Rate limit decision engine.

``RateLimit`` decides, per request, whether to pass it through, delay it or
reject it:

1. skip predicate
2. caller key derivation (``prefix + separator + identity``)
3. whitelist check (no store call for whitelisted identities)
4. weight resolution
5. store increment, result published on ``request.state.rate_limit``
6. threshold check, abuse recording and rejection
7. compensation of failed requests
8. graduated delay

``RateLimit.dispatch`` has the signature of an HTTP middleware, so it can be
used with ``RateLimitMiddleware``, ``@app.middleware("http")`` or the
``rate_limit`` route decorator.
"""

import asyncio
import inspect
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from windowguard.core.constants import FAILED_STATUS_THRESHOLD
from windowguard.core.duration import Duration, to_ms
from windowguard.core.errors import ConfigurationError
from windowguard.core.logging import hash_key
from windowguard.core.rate_limit.identity import client_address
from windowguard.core.rate_limit.options import RateLimitOptions, get_default_options
from windowguard.core.rate_limit.stores.base import AbuseEvent, Store
from windowguard.core.rate_limit.stores.memory import MemoryStore


logger = structlog.get_logger()

CallNext = Callable[[Request], Awaitable[Any]]


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed
        key: Caller key (None when the request was skipped)
        weight: Weight added to the counter
        limit: Configured maximum
        current: Counter after this request (None when not counted)
        remaining: Requests left in the window
        reset: Window end, UNIX epoch seconds rounded up
        retry_after: Seconds until the window resets, when rejected
        delay_ms: Delay applied before passing the request through
    """

    allowed: bool
    key: str | None = None
    weight: int = 0
    limit: int | None = None
    current: int | None = None
    remaining: int | None = None
    reset: int | None = None
    retry_after: int | None = None
    delay_ms: int = 0

    @property
    def counted(self) -> bool:
        """Whether the request was added to a window counter."""
        return self.current is not None


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class RateLimit:
    """Per-caller rate limiter over a pluggable store.

    Example:
        limiter = RateLimit(max=100, interval={"min": 15}, store=RedisStore())
        app.add_middleware(RateLimitMiddleware, limiter=limiter)
    """

    def __init__(self, options: RateLimitOptions | None = None, **overrides: Any) -> None:
        """Initialize the limiter.

        Args:
            options: Base options (default: the instance-wide defaults)
            **overrides: Option fields replacing those of ``options``

        Raises:
            ConfigurationError: If the store is not a Store, the key separator
                is empty, or a duration is invalid
        """
        base = options if options is not None else get_default_options()
        if overrides:
            base = base.replace(**overrides)

        if not base.prefix_key_separator:
            raise ConfigurationError(
                "prefix_key_separator must not be empty",
                details={"prefix_key": base.prefix_key},
            )

        store = base.store if base.store is not None else MemoryStore()
        if not isinstance(store, Store):
            raise ConfigurationError(
                "The store is not valid.",
                details={"store": type(store).__name__},
            )

        self.options = base.replace(
            interval=to_ms(base.interval),
            time_wait=to_ms(base.time_wait),
            store=store,
        )
        self.store: Store = store

    @staticmethod
    def time_to_ms(duration: Duration) -> int:
        """Convert a duration to milliseconds."""
        return to_ms(duration)

    async def should_skip(self, request: Request) -> bool:
        if self.options.skip is not None:
            return bool(await _resolve(self.options.skip(request)))
        return False

    async def get_identity(self, request: Request) -> Any:
        """Resolve the caller identity; None means anonymous."""
        if self.options.get_identity is not None:
            return await _resolve(self.options.get_identity(request))
        return None

    def client_address(self, request: Request) -> str:
        return client_address(request, self.options.trusted_proxies)

    async def key_generator(self, request: Request) -> str:
        """Build the caller key for a request."""
        if self.options.key_generator is not None:
            return str(await _resolve(self.options.key_generator(request)))

        identity = await self.get_identity(request)
        if not identity:
            identity = self.client_address(request)
        return f"{self.options.prefix_key}{self.options.prefix_key_separator}{identity}"

    def get_identity_from_key(self, key: str) -> str | None:
        """Recover the identity segment of a caller key."""
        if self.options.get_identity_from_key is not None:
            return self.options.get_identity_from_key(key)

        parts = key.split(self.options.prefix_key_separator, 1)
        if len(parts) < 2:
            return None
        return parts[1]

    def is_whitelisted(self, key: str) -> bool:
        if not self.options.whitelist:
            return False
        identity = self.get_identity_from_key(key)
        if identity:
            return str(identity) in self.options.whitelist
        return False

    async def get_weight(self, request: Request) -> int:
        if self.options.weight is not None:
            return int(await _resolve(self.options.weight(request)))
        return 1

    async def on_limit_reached(self, request: Request, key: str) -> None:
        """Run the limit-reached hook, or record an abuse event."""
        if self.options.on_limit_reached is not None:
            await _resolve(self.options.on_limit_reached(request))
            return

        identity = await self.get_identity(request)
        await self.store.record_abuse(
            AbuseEvent(
                key=key,
                prefix=self.options.prefix_key,
                interval=to_ms(self.options.interval),
                max=self.options.max,
                address=self.client_address(request),
                identity=str(identity) if identity else None,
            )
        )

    async def handle_limit(self, request: Request, result: RateLimitResult) -> Response:
        """Build the response for a rejected request."""
        if self.options.handler is not None:
            return await _resolve(self.options.handler(request))

        headers: dict[str, str] = {}
        if self.options.headers and result.retry_after is not None:
            headers["Retry-After"] = str(result.retry_after)
        return JSONResponse(
            status_code=self.options.status_code,
            content={"message": self.options.message},
            headers=headers or None,
        )

    def rate_limit_headers(self, result: RateLimitResult) -> dict[str, str]:
        """Headers describing the caller's window, empty when disabled."""
        if not self.options.headers or not result.counted:
            return {}
        return {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset),
        }

    def _with_headers(self, response: Any, result: RateLimitResult) -> Any:
        if isinstance(response, Response):
            for name, value in self.rate_limit_headers(result).items():
                response.headers[name] = value
        return response

    async def hit(self, request: Request) -> RateLimitResult:
        """Count a request and decide whether it may proceed.

        Records abuse when the limit is exceeded. Does not sleep; the delay
        to apply is returned in ``delay_ms``.

        Args:
            request: HTTP request

        Returns:
            The decision, also stored on ``request.state.rate_limit`` when the
            request was counted
        """
        if await self.should_skip(request):
            return RateLimitResult(allowed=True)

        key = await self.key_generator(request)
        if self.is_whitelisted(key):
            return RateLimitResult(allowed=True, key=key)

        weight = await self.get_weight(request)
        state = await self.store.increment(key, self.options, weight)

        opts = self.options
        limit = opts.max
        current = state.counter
        remaining = max(limit - current, 0)
        reset = math.ceil(state.window_end / 1000)

        if limit and current > limit:
            retry_after = max(math.ceil((state.window_end - self.store.now_ms()) / 1000), 0)
            result = RateLimitResult(
                allowed=False,
                key=key,
                weight=weight,
                limit=limit,
                current=current,
                remaining=remaining,
                reset=reset,
                retry_after=retry_after,
            )
            request.state.rate_limit = result
            logger.warning(
                "rate_limit_exceeded",
                key_hash=hash_key(key),
                limit=limit,
                current=current,
                retry_after_s=retry_after,
            )
            await self.on_limit_reached(request, key)
            return result

        delay_ms = 0
        if opts.delay_after and opts.time_wait and current > opts.delay_after:
            delay_ms = (current - opts.delay_after) * to_ms(opts.time_wait)

        result = RateLimitResult(
            allowed=True,
            key=key,
            weight=weight,
            limit=limit,
            current=current,
            remaining=remaining,
            reset=reset,
            delay_ms=delay_ms,
        )
        request.state.rate_limit = result
        return result

    async def compensate(self, result: RateLimitResult) -> None:
        """Give back the weight of a counted request."""
        if result.key is None or not result.counted:
            return
        await self.store.decrement(result.key, self.options, result.weight)
        logger.debug(
            "rate_limit_compensated",
            key_hash=hash_key(result.key),
            weight=result.weight,
        )

    async def wait(self, ms: int) -> None:
        """Suspend the current request only."""
        await asyncio.sleep(ms / 1000)

    async def dispatch(self, request: Request, call_next: CallNext) -> Any:
        """Apply the rate limit around a downstream handler.

        Args:
            request: HTTP request
            call_next: Downstream handler

        Returns:
            The downstream response, or the rejection response
        """
        result = await self.hit(request)

        if not result.allowed:
            response = await self.handle_limit(request, result)
            return self._with_headers(response, result)

        if result.delay_ms:
            logger.debug(
                "rate_limit_delayed",
                key_hash=hash_key(result.key or ""),
                delay_ms=result.delay_ms,
            )
            await self.wait(result.delay_ms)

        if not (self.options.skip_failed_requests and result.counted):
            response = await call_next(request)
            return self._with_headers(response, result)

        try:
            response = await call_next(request)
        except Exception:
            await self.compensate(result)
            raise

        status_code = getattr(response, "status_code", None)
        if status_code is not None and status_code >= FAILED_STATUS_THRESHOLD:
            await self.compensate(result)

        return self._with_headers(response, result)
