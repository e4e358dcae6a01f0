"""Error taxonomy for the polling engine.

Per-target fetch errors (``FetchError`` subclasses) are raised by fetchers
and absorbed by the fetch pool, which turns them into ``UNKNOWN`` statuses.
Only ``ConfigurationError`` is ever raised past the engine boundary.
"""

from __future__ import annotations


class CdMenuError(RuntimeError):
    """Base class for all cdmenu errors."""


class ConfigurationError(CdMenuError, ValueError):
    """Raised when the engine cannot run because it is not configured.

    Covers missing credentials, an empty target list, and poll intervals
    below the configured floor.
    """


# ---------------------------------------------------------------------------
# Per-target fetch errors
# ---------------------------------------------------------------------------


class FetchError(CdMenuError):
    """A single target's fetch failed.  Never fatal to a tick."""

    category: str = "fetch"


class TransportError(FetchError):
    """Network failure, timeout, or an unexpected HTTP status."""

    category = "transport"


class AuthenticationError(FetchError):
    """The remote API rejected the credentials (HTTP 401/403)."""

    category = "authentication"

    def __init__(self, message: str = "Authentication failed - check username and app password") -> None:
        super().__init__(message)


class RateLimitError(FetchError):
    """The remote API asked us to slow down (HTTP 429)."""

    category = "rate_limited"

    def __init__(
        self,
        message: str = "Rate limited - please wait before retrying",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class NotFoundError(FetchError):
    """The repository or pipeline resource does not exist (HTTP 404)."""

    category = "not_found"


class MalformedResponseError(FetchError):
    """The remote API answered with a payload we could not parse."""

    category = "malformed_response"
