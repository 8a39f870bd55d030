"""Explorer client exceptions."""

from payout_tracker.errors import PayoutTrackerError


class ExplorerError(PayoutTrackerError):
    """Base exception for explorer client errors."""


class ExplorerTransientError(ExplorerError):
    """Raised for retryable errors (timeouts, 5xx, unrecognized responses)."""


class ExplorerRateLimitError(ExplorerTransientError):
    """Raised when the explorer reports a rate limit (HTTP 429 or message)."""


class ExplorerInvalidKeyError(ExplorerError):
    """Raised when the explorer rejects the API key. Never retried."""


class CircuitOpenError(ExplorerError):
    """Raised when calls are refused because the circuit is open."""
