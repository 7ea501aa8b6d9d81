"""Tests for caller identity helpers."""

from types import SimpleNamespace

import pytest

from tests.factories.requests import make_request
from windowguard.core.rate_limit.engine import RateLimit
from windowguard.core.rate_limit.identity import client_address, conventional_identity


class TestClientAddress:
    """Tests for client_address."""

    def test_peer_address(self):
        """The direct peer is the client by default."""
        assert client_address(make_request(client_host="10.1.2.3")) == "10.1.2.3"

    def test_unknown_without_client(self):
        """Requests without a peer resolve to 'unknown'."""
        assert client_address(make_request(client_host=None)) == "unknown"

    def test_forwarded_for_ignored_from_untrusted_peer(self):
        """Untrusted peers cannot choose their address."""
        request = make_request(
            client_host="10.1.2.3",
            headers={"X-Forwarded-For": "203.0.113.7"},
        )

        assert client_address(request) == "10.1.2.3"

    def test_forwarded_for_from_trusted_proxy(self):
        """The first forwarded address is used behind a trusted proxy."""
        request = make_request(
            client_host="10.0.0.254",
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )

        assert client_address(request, {"10.0.0.254"}) == "203.0.113.7"

    def test_trusted_proxy_without_header(self):
        """A trusted proxy without the header is the client itself."""
        request = make_request(client_host="10.0.0.254")

        assert client_address(request, {"10.0.0.254"}) == "10.0.0.254"

    @pytest.mark.asyncio
    async def test_limiter_uses_trusted_proxies(self):
        """Limiters key forwarded callers by their original address."""
        limiter = RateLimit(trusted_proxies=["10.0.0.254"])
        request = make_request(
            client_host="10.0.0.254",
            headers={"X-Forwarded-For": "198.51.100.4"},
        )

        assert await limiter.key_generator(request) == "global::198.51.100.4"


class TestConventionalIdentity:
    """Tests for conventional_identity."""

    def test_anonymous(self):
        """Nothing is found on a bare request."""
        assert conventional_identity(make_request()) is None

    def test_state_user_object(self):
        """request.state.user attributes are probed first."""
        request = make_request(user=SimpleNamespace(id=12), user_id=99)

        assert conventional_identity(request) == 12

    def test_state_user_mapping(self):
        """Mappings are probed by key."""
        request = make_request(user={"userId": "abc"})

        assert conventional_identity(request) == "abc"

    def test_field_order(self):
        """id wins over the other identifier names."""
        request = make_request(user={"user_id": 5, "id": 4})

        assert conventional_identity(request) == 4

    def test_scope_user(self):
        """The authenticated scope user is probed after state.user."""
        request = make_request()
        request.scope["user"] = SimpleNamespace(id_user=77)

        assert conventional_identity(request) == 77

    def test_capitalised_state_user(self):
        """request.state.User is probed."""
        request = make_request(User={"idUser": 3})

        assert conventional_identity(request) == 3

    def test_state_fields(self):
        """Identifiers set directly on request.state are found last."""
        request = make_request(user_id=8)

        assert conventional_identity(request) == 8

    def test_falsy_values_are_skipped(self):
        """Empty identifiers fall through to later candidates."""
        request = make_request(user={"id": 0}, user_id=15)

        assert conventional_identity(request) == 15

    @pytest.mark.asyncio
    async def test_as_limiter_identity(self):
        """conventional_identity plugs into get_identity."""
        limiter = RateLimit(get_identity=conventional_identity)

        key = await limiter.key_generator(make_request(user={"id": 21}))

        assert key == "global::21"
