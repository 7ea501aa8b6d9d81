"""Application-wide constants.

This module defines constants used throughout the package
to avoid magic numbers and ensure consistency.
"""

# Duration units in milliseconds
MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR
MS_PER_WEEK = 7 * MS_PER_DAY
MS_PER_MONTH = 2_628_000_000  # 30.4375 days
MS_PER_YEAR = 12 * MS_PER_MONTH

# Rate limit defaults
DEFAULT_INTERVAL_MS = MS_PER_MINUTE
DEFAULT_TIME_WAIT_MS = MS_PER_SECOND
DEFAULT_MAX = 5
DEFAULT_MESSAGE = "Too many requests, please try again later."
DEFAULT_STATUS_CODE = 429  # Too Many Requests (RFC 6585)
DEFAULT_PREFIX_KEY = "global"
DEFAULT_PREFIX_KEY_SEPARATOR = "::"

# Status codes at or above this value count as failed requests
FAILED_STATUS_THRESHOLD = 400

# Identity fields probed by the conventional identity resolver, in order
IDENTITY_FIELDS = ("id", "userId", "user_id", "idUser", "id_user")

# Store backends selectable from settings
STORE_BACKENDS = frozenset({"memory", "redis", "sql", "mongodb"})

# Persistence
RATE_LIMIT_TABLE = "rate_limits"
RATE_LIMIT_ABUSE_TABLE = "rate_limit_abuses"
MAX_KEY_LENGTH = 255
MAX_IPV6_LENGTH = 45
REDIS_ABUSE_PREFIX = "abuse:"

# Log hashing
KEY_HASH_LENGTH = 16
