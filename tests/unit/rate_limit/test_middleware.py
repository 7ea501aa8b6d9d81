"""Tests for the rate limiting middleware."""

import pytest
from fastapi import FastAPI, HTTPException, Request
from httpx import ASGITransport, AsyncClient

from windowguard.core.constants import DEFAULT_MESSAGE
from windowguard.core.rate_limit.engine import RateLimit
from windowguard.core.rate_limit.middleware import RateLimitMiddleware
from windowguard.core.rate_limit.stores.memory import MemoryStore


def build_app(**middleware_options) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, **middleware_options)

    @app.get("/items")
    async def items(request: Request):
        return {"remaining": request.state.rate_limit.remaining}

    @app.get("/other")
    async def other():
        return {"status": "ok"}

    return app


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware."""

    @pytest.fixture
    def store(self) -> MemoryStore:
        return MemoryStore()

    @pytest.fixture
    async def client(self, store):
        """Client for an app limited to two requests per window."""
        app = build_app(store=store, max=2)
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            yield client

    @pytest.mark.asyncio
    async def test_allows_until_limit(self, client):
        """Requests within the limit pass with headers."""
        first = await client.get("/items")
        second = await client.get("/items")

        assert first.status_code == 200
        assert first.json() == {"remaining": 1}
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert second.headers["X-RateLimit-Remaining"] == "0"

    @pytest.mark.asyncio
    async def test_rejects_over_limit(self, client):
        """The third request is rejected with 429."""
        for _ in range(2):
            await client.get("/items")

        response = await client.get("/items")

        assert response.status_code == 429
        assert response.json() == {"message": DEFAULT_MESSAGE}
        assert "Retry-After" in response.headers
        assert response.headers["X-RateLimit-Remaining"] == "0"

    @pytest.mark.asyncio
    async def test_counts_are_shared_across_routes(self, client, store):
        """The middleware limits the caller, not the route."""
        await client.get("/items")
        await client.get("/other")

        response = await client.get("/items")

        assert response.status_code == 429
        assert store.get("global::127.0.0.1").counter == 3

    @pytest.mark.asyncio
    async def test_uses_given_limiter(self, store):
        """A prebuilt limiter is applied as-is."""
        limiter = RateLimit(store=store, max=1, prefix_key="mw")
        app = build_app(limiter=limiter)

        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            first = await client.get("/items")
            second = await client.get("/items")

        assert first.status_code == 200
        assert second.status_code == 429
        assert store.get("mw::127.0.0.1").counter == 2

    @pytest.mark.asyncio
    async def test_failed_requests_are_not_counted(self, store):
        """skip_failed_requests gives back 4xx and 5xx responses."""
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, store=store, max=1, skip_failed_requests=True)

        @app.get("/missing")
        async def missing():
            raise HTTPException(status_code=404, detail="missing")

        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            responses = [await client.get("/missing") for _ in range(3)]

        assert [r.status_code for r in responses] == [404, 404, 404]
        assert store.get("global::127.0.0.1").counter == 0
