"""Data models for normalized payouts."""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    """Lower-case an EVM address, rejecting anything malformed."""
    candidate = address.strip()
    if not _ADDRESS_RE.match(candidate):
        raise ValueError(f"Invalid wallet address: {address!r}")
    return candidate.lower()


class Direction(str, Enum):
    """Which side of a transfer must be a tracked wallet."""

    OUTGOING = "outgoing"  # firm pays out: `from` is tracked
    INCOMING = "incoming"  # trader receives: `to` is tracked


class SubjectKind(str, Enum):
    FIRM = "firm"
    TRADER = "trader"


@dataclass(frozen=True)
class TrackedWallet:
    """An address watched on behalf of a firm or trader."""

    address: str
    subject_id: str
    subject_kind: SubjectKind

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", self.address.lower())


@dataclass(frozen=True)
class PayoutRecord:
    """A normalized, USD-valued payout.

    `subject` is the firm id (firm side) or the wallet address (trader side).
    """

    tx_hash: str
    subject: str
    amount_usd: Decimal
    payment_method: str
    timestamp: datetime
    from_address: str
    to_address: str
    token: str
    block_number: int

    def to_archive_dict(self) -> dict[str, Any]:
        """JSON-safe form stored in month buckets."""
        return {
            "tx_hash": self.tx_hash,
            "timestamp": self.timestamp.isoformat(),
            "amount": float(self.amount_usd),
            "payment_method": self.payment_method,
            "token": self.token,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "block_number": self.block_number,
        }
