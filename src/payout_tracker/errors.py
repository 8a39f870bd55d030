"""Exception hierarchy shared across the payout tracker."""

from __future__ import annotations


class PayoutTrackerError(Exception):
    """Base exception for payout tracker errors."""


class MissingCredentialError(PayoutTrackerError):
    """Raised when a required credential is not configured."""


class BackfillError(PayoutTrackerError):
    """Raised when a historical backfill cannot complete.

    No month bucket is written for a failed run.
    """

    def __init__(self, subject: str, message: str) -> None:
        super().__init__(f"Backfill failed for {subject}: {message}")
        self.subject = subject
