"""Domain exceptions for the package.

Configuration problems are raised eagerly, when a rate limiter or a store is
built, never at the first request.
"""

from typing import Any


class WindowGuardError(Exception):
    """Base exception for all windowguard errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        status_code: HTTP status code when surfaced in a response
        details: Additional error details
    """

    message: str = "An unexpected error occurred"
    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(WindowGuardError):
    """Raised when a rate limiter or store is configured incorrectly.

    Example:
        raise ConfigurationError("The store is not valid.", details={"store": "dict"})
    """

    message = "Invalid configuration"
    error_code = "configuration_error"


class InvalidUnitError(ConfigurationError):
    """Raised when a duration mapping contains an unknown unit.

    Example:
        raise InvalidUnitError(unit="minutes", allowed=["ms", "sec", "min"])
    """

    message = "Invalid duration unit"
    error_code = "invalid_duration_unit"

    def __init__(
        self,
        message: str | None = None,
        unit: str | None = None,
        allowed: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if unit is not None:
            details["unit"] = unit
        if allowed:
            details["allowed"] = allowed
        if message is None and unit is not None:
            message = f"Invalid key {unit!r}, allowed keys: {', '.join(allowed or [])}"
        super().__init__(message=message, details=details, **kwargs)


class RateLimitExceededError(WindowGuardError):
    """Raised when rate limit is exceeded.

    The engine answers rejected requests itself; custom handlers may raise this
    instead and let the application's exception handlers render it.

    Example:
        raise RateLimitExceededError(details={"retry_after": 60})
    """

    message = "Rate limit exceeded"
    error_code = "rate_limit_exceeded"
    status_code = 429
