"""Duration resolution.

Durations are accepted either as a plain millisecond count or as a mapping of
unit name to count, e.g. ``{"hour": 2, "min": 3}``.
"""

from collections.abc import Mapping

from windowguard.core.constants import (
    MS_PER_DAY,
    MS_PER_HOUR,
    MS_PER_MINUTE,
    MS_PER_MONTH,
    MS_PER_SECOND,
    MS_PER_WEEK,
    MS_PER_YEAR,
)
from windowguard.core.errors import ConfigurationError, InvalidUnitError


Duration = int | Mapping[str, int | float]

UNIT_MS: dict[str, int] = {
    "ms": 1,
    "sec": MS_PER_SECOND,
    "min": MS_PER_MINUTE,
    "hour": MS_PER_HOUR,
    "day": MS_PER_DAY,
    "week": MS_PER_WEEK,
    "month": MS_PER_MONTH,
    "year": MS_PER_YEAR,
}


def to_ms(duration: Duration) -> int:
    """Convert a duration to milliseconds.

    Units with a non-positive count contribute nothing. An integer is
    returned unchanged, so resolving twice is harmless.

    Args:
        duration: Millisecond count or mapping of unit name to count

    Returns:
        Total duration in milliseconds

    Raises:
        InvalidUnitError: If the mapping contains an unknown unit
        ConfigurationError: If the value is neither an int nor a mapping
    """
    if isinstance(duration, bool):
        raise ConfigurationError(
            "Duration must be milliseconds or a unit mapping",
            details={"value": duration},
        )
    if isinstance(duration, int):
        return duration
    if not isinstance(duration, Mapping):
        raise ConfigurationError(
            "Duration must be milliseconds or a unit mapping",
            details={"value": repr(duration)},
        )

    total = 0
    for unit, count in duration.items():
        if unit not in UNIT_MS:
            raise InvalidUnitError(unit=unit, allowed=list(UNIT_MS))
        if count > 0:
            total += count * UNIT_MS[unit]
    return int(total)
