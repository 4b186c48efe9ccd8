"""Exception hierarchy for GitHub Watchdog."""

from typing import Optional


class WatchdogError(Exception):
    """Base class for all GitHub Watchdog errors."""


class ConfigError(WatchdogError):
    """Raised when configuration is missing or invalid."""


class TransportError(WatchdogError):
    """
    Non-quota network or HTTP failure.

    A failed content check abandons the unit of work; the crawl continues.

    Attributes:
        status_code: HTTP status, or None for network-level failures
        url: Request URL, when known
    """

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class NotFoundError(TransportError):
    """The requested resource does not exist (HTTP 404)."""

    def __init__(self, url: Optional[str] = None):
        super().__init__(f"Resource not found: {url}", status_code=404, url=url)


class DecodeError(WatchdogError):
    """Malformed or unexpected response shape."""


class QuotaExceeded(WatchdogError):
    """
    The remote quota is exhausted and no retry hint was given.

    Terminal for the current crawl invocation.

    Attributes:
        budget: Budget class that ran out ("core" or "search")
        reset_at: UNIX timestamp when the budget resets, if known
    """

    def __init__(self, budget: str, reset_at: Optional[int] = None, message: Optional[str] = None):
        detail = message or f"{budget} API quota exhausted"
        if reset_at:
            detail += f" (resets at {reset_at})"
        super().__init__(detail)
        self.budget = budget
        self.reset_at = reset_at


class PersistenceError(WatchdogError):
    """A ledger read or write failed."""
