"""Caller identity helpers.

The limiter only knows the network address of a caller. Applications that
authenticate users pass ``get_identity`` to limit per user instead;
``conventional_identity`` covers apps that keep the user on the request in
one of the usual places.
"""

from collections.abc import Collection, Mapping
from typing import Any

from starlette.requests import Request

from windowguard.core.constants import IDENTITY_FIELDS


def client_address(
    request: Request, trusted_proxies: Collection[str] = ()
) -> str:
    """Extract the client IP address from a request.

    X-Forwarded-For is only honoured when the direct peer is a trusted proxy,
    otherwise any client could pick its own rate limit bucket.

    Args:
        request: HTTP request
        trusted_proxies: Peer addresses allowed to set X-Forwarded-For

    Returns:
        Client IP address, or "unknown"
    """
    peer = request.client.host if request.client else None

    if peer and peer in trusted_proxies:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # The first address in the chain is the original client
            return forwarded_for.split(",")[0].strip()

    return peer or "unknown"


def _lookup(container: Any, name: str) -> Any:
    if isinstance(container, Mapping):
        return container.get(name)
    return getattr(container, name, None)


def _request_user(request: Request) -> Any:
    # request.user asserts when AuthenticationMiddleware is not installed
    if "user" in request.scope:
        return request.scope["user"]
    return None


def conventional_identity(request: Request) -> Any:
    """Find a user identifier on the request.

    Probes ``id``, ``userId``, ``user_id``, ``idUser`` and ``id_user`` on, in
    order: ``request.state.user``, the authenticated ``request.user``,
    ``request.state.User`` and ``request.state``.

    Args:
        request: HTTP request

    Returns:
        The first truthy identifier found, or None
    """
    state = request.state
    containers = (
        getattr(state, "user", None),
        _request_user(request),
        getattr(state, "User", None),
        state,
    )
    for container in containers:
        if container is None:
            continue
        for name in IDENTITY_FIELDS:
            value = _lookup(container, name)
            if value:
                return value
    return None
