"""Rate limiting middleware for global request limits.

Applies a ``RateLimit`` to every request of an ASGI application and adds the
standard rate limit headers to responses.
"""

from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from windowguard.core.rate_limit.engine import RateLimit


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware that applies a rate limiter to all requests.

    Example:
        app.add_middleware(RateLimitMiddleware, max=100, interval={"min": 1})
        app.add_middleware(RateLimitMiddleware, limiter=shared_limiter)
    """

    def __init__(self, app: Any, limiter: RateLimit | None = None, **options: Any) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application
            limiter: Limiter to apply; built from ``options`` when omitted
            **options: RateLimitOptions fields for a new limiter
        """
        super().__init__(app)
        self.limiter = limiter if limiter is not None else RateLimit(**options)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request and apply rate limiting.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/handler in chain

        Returns:
            Response with rate limit headers
        """
        response: Response = await self.limiter.dispatch(request, call_next)
        return response
