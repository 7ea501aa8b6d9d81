"""Tests for the rate_limit route decorator."""

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from tests.factories.requests import make_request
from windowguard.core.errors import ConfigurationError
from windowguard.core.rate_limit.decorators import rate_limit
from windowguard.core.rate_limit.engine import RateLimit
from windowguard.core.rate_limit.stores.memory import MemoryStore


class TestRateLimitDecorator:
    """Tests for @rate_limit."""

    def test_limiter_and_options_are_exclusive(self):
        """Passing both a limiter and options is a configuration error."""
        with pytest.raises(ConfigurationError):
            rate_limit(RateLimit(), max=3)

    def test_exposes_limiter(self):
        """The wrapped endpoint exposes its limiter."""
        limiter = RateLimit()

        @rate_limit(limiter)
        async def endpoint(request: Request):
            return "ok"

        assert endpoint.limiter is limiter
        assert endpoint.__name__ == "endpoint"

    @pytest.mark.asyncio
    async def test_limits_direct_calls(self):
        """The request is found among positional arguments."""
        store = MemoryStore()

        @rate_limit(store=store, max=1)
        async def endpoint(request: Request):
            return JSONResponse({"status": "ok"})

        first = await endpoint(make_request())
        second = await endpoint(make_request())

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "1"
        assert second.status_code == 429

    @pytest.mark.asyncio
    async def test_without_request_is_not_limited(self):
        """Endpoints called without a request pass straight through."""

        @rate_limit(max=1)
        async def endpoint(value: int):
            return value * 2

        assert [await endpoint(2) for _ in range(3)] == [4, 4, 4]

    @pytest.mark.asyncio
    async def test_route_limits(self):
        """Each decorated route has its own limit."""
        app = FastAPI()

        @app.get("/strict")
        @rate_limit(max=1, prefix_key="strict")
        async def strict(request: Request):
            return {"status": "ok"}

        @app.get("/loose")
        @rate_limit(max=3, prefix_key="loose")
        async def loose(request: Request):
            return {"status": "ok"}

        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            strict_codes = [(await client.get("/strict")).status_code for _ in range(2)]
            loose_codes = [(await client.get("/loose")).status_code for _ in range(4)]

        assert strict_codes == [200, 429]
        assert loose_codes == [200, 200, 200, 429]

    @pytest.mark.asyncio
    async def test_rejection_body(self):
        """Rejected route calls get the limiter's response."""
        app = FastAPI()

        @app.post("/generate")
        @rate_limit(max=1, message="Generation quota exceeded")
        async def generate(request: Request):
            return {"status": "ok"}

        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            await client.post("/generate")
            response = await client.post("/generate")

        assert response.status_code == 429
        assert response.json() == {"message": "Generation quota exceeded"}
