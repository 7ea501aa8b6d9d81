"""RFC 7807 Problem Details exception handlers.

Renders ``WindowGuardError`` raised from route handlers, for instance by a
limiter whose ``handler`` is ``raise_rate_limit_exceeded``.

See: https://tools.ietf.org/html/rfc7807
"""

from typing import TYPE_CHECKING, Any, NoReturn, cast

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from windowguard.config import settings
from windowguard.core.errors.exceptions import RateLimitExceededError, WindowGuardError


if TYPE_CHECKING:
    from starlette.types import ExceptionHandler


logger = structlog.get_logger()


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
    """

    type: str
    title: str
    status: int
    detail: str
    instance: str | None = None

    model_config = {"extra": "allow"}


def _get_error_type_uri(error_code: str) -> str:
    """Generate a URI for the error type, or about:blank without docs."""
    if settings.error_docs_base_url:
        return f"{settings.error_docs_base_url}/errors/{error_code}"
    return "about:blank"


def raise_rate_limit_exceeded(request: Request) -> NoReturn:
    """Limiter ``handler`` that raises instead of building a response.

    Example:
        @rate_limit(max=10, handler=raise_rate_limit_exceeded)
        async def generate(request: Request): ...
    """
    result = getattr(request.state, "rate_limit", None)
    details: dict[str, Any] = {}
    if result is not None and result.retry_after is not None:
        details["retry_after"] = result.retry_after
    raise RateLimitExceededError(details=details)


async def windowguard_exception_handler(
    request: Request, exc: WindowGuardError
) -> JSONResponse:
    """Convert WindowGuardError subclasses to Problem Details responses."""
    logger.warning(
        "windowguard_exception",
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        path=str(request.url.path),
    )

    content: dict[str, Any] = ProblemDetail(
        type=_get_error_type_uri(exc.error_code),
        title=exc.error_code.replace("_", " ").title(),
        status=exc.status_code,
        detail=exc.message,
        instance=str(request.url.path),
    ).model_dump(exclude_none=True)

    for key, value in exc.details.items():
        if key not in content:
            content[key] = value

    headers = None
    if exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS and "retry_after" in exc.details:
        headers = {"Retry-After": str(exc.details["retry_after"])}

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the windowguard exception handlers with a FastAPI app."""
    app.add_exception_handler(
        WindowGuardError, cast("ExceptionHandler", windowguard_exception_handler)
    )
