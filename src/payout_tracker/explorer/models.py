"""Data models for the explorer module."""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

NATIVE_SYMBOL = "ETH"
NATIVE_DECIMALS = 18
DEFAULT_TOKEN_DECIMALS = 18

_EMPTY_MARKERS = ("no transactions found", "no token transfers found", "no records found")
_RATE_LIMIT_MARKERS = ("rate limit",)
_INVALID_KEY_MARKERS = ("invalid api key", "missing/invalid api key", "missing api key")


class TransferKind(str, Enum):
    """Transfer history endpoints exposed by the explorer."""

    NATIVE = "native"
    TOKEN = "token"

    @property
    def action(self) -> str:
        """The `action` query parameter for this kind."""
        return "txlist" if self is TransferKind.NATIVE else "tokentx"


@dataclass(frozen=True)
class RawTransfer:
    """A single transfer as reported by the explorer, decoded once.

    `value` is the integer amount in base units (wei for native ETH).
    """

    kind: TransferKind
    tx_hash: str
    block_number: int
    timestamp: datetime
    from_address: str
    to_address: str
    value: Decimal
    token_symbol: str
    token_decimals: int
    contract_address: str | None = None
    is_error: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any], kind: TransferKind) -> "RawTransfer":
        """Create a RawTransfer from an explorer result item.

        Raises:
            KeyError, ValueError, InvalidOperation: If a required field is
                missing or malformed.
        """
        if kind is TransferKind.NATIVE:
            symbol = NATIVE_SYMBOL
            decimals = NATIVE_DECIMALS
            contract = None
        else:
            symbol = str(data.get("tokenSymbol") or "").strip()
            decimals = _parse_decimals(data.get("tokenDecimal"))
            contract = str(data["contractAddress"]).lower() if data.get("contractAddress") else None

        return cls(
            kind=kind,
            tx_hash=str(data["hash"]).lower(),
            block_number=int(data["blockNumber"]),
            timestamp=datetime.fromtimestamp(int(data["timeStamp"]), tz=UTC),
            from_address=str(data.get("from") or "").lower(),
            to_address=str(data.get("to") or "").lower(),
            value=Decimal(str(data.get("value") or "0")),
            token_symbol=symbol,
            token_decimals=decimals,
            contract_address=contract,
            is_error=str(data.get("isError", "0")) == "1",
        )

    @property
    def identity(self) -> tuple[str, str, str, str, str]:
        """Key that identifies this transfer within a history walk.

        A single transaction can carry several token transfers, so the hash
        alone is not enough.
        """
        return (self.tx_hash, self.from_address, self.to_address, self.token_symbol, str(self.value))


def _parse_decimals(raw: object) -> int:
    try:
        decimals = int(str(raw))
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_DECIMALS
    if decimals < 0 or decimals > 36:
        return DEFAULT_TOKEN_DECIMALS
    return decimals


@dataclass(frozen=True)
class ExplorerOk:
    transfers: tuple[RawTransfer, ...]


@dataclass(frozen=True)
class ExplorerEmpty:
    pass


@dataclass(frozen=True)
class ExplorerRateLimited:
    message: str


@dataclass(frozen=True)
class ExplorerInvalidCredential:
    message: str


@dataclass(frozen=True)
class ExplorerUnknown:
    message: str


ExplorerResult = ExplorerOk | ExplorerEmpty | ExplorerRateLimited | ExplorerInvalidCredential | ExplorerUnknown


def decode_response(payload: Any, kind: TransferKind) -> ExplorerResult:
    """Classify an explorer JSON body.

    The explorer signals "nothing found" with `status="0"`, the same status
    it uses for real errors, so the message text decides.
    """
    if not isinstance(payload, dict):
        return ExplorerUnknown(f"unexpected payload type {type(payload).__name__}")

    status = str(payload.get("status", ""))
    message = str(payload.get("message", ""))
    result = payload.get("result")

    if status == "1" and isinstance(result, list):
        try:
            transfers = tuple(RawTransfer.from_dict(item, kind) for item in result)
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            return ExplorerUnknown(f"malformed transfer record: {e}")
        return ExplorerOk(transfers)

    detail = result if isinstance(result, str) else ""
    text = f"{message} {detail}".strip()
    lowered = text.lower()

    if any(marker in lowered for marker in _EMPTY_MARKERS):
        return ExplorerEmpty()
    if status == "0" and isinstance(result, list) and not result and message.upper() != "NOTOK":
        return ExplorerEmpty()
    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return ExplorerRateLimited(text)
    if any(marker in lowered for marker in _INVALID_KEY_MARKERS):
        return ExplorerInvalidCredential(text)
    return ExplorerUnknown(text or f"status={status!r}")
