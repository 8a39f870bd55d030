"""Explorer module - resilient access to the block explorer account API."""

from payout_tracker.explorer.circuit import CircuitBreaker, CircuitState
from payout_tracker.explorer.client import ExplorerClient
from payout_tracker.explorer.errors import (
    CircuitOpenError,
    ExplorerError,
    ExplorerInvalidKeyError,
    ExplorerRateLimitError,
    ExplorerTransientError,
)
from payout_tracker.explorer.models import (
    ExplorerEmpty,
    ExplorerInvalidCredential,
    ExplorerOk,
    ExplorerRateLimited,
    ExplorerResult,
    ExplorerUnknown,
    RawTransfer,
    TransferKind,
    decode_response,
)
from payout_tracker.explorer.usage import UsageTracker

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ExplorerClient",
    "ExplorerEmpty",
    "ExplorerError",
    "ExplorerInvalidCredential",
    "ExplorerInvalidKeyError",
    "ExplorerOk",
    "ExplorerRateLimitError",
    "ExplorerRateLimited",
    "ExplorerResult",
    "ExplorerTransientError",
    "ExplorerUnknown",
    "RawTransfer",
    "TransferKind",
    "UsageTracker",
    "decode_response",
]
