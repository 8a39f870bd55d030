"""Turn raw explorer transfers into USD-valued payout records."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from payout_tracker.explorer.models import RawTransfer, TransferKind
from payout_tracker.payouts.models import Direction, PayoutRecord
from payout_tracker.payouts.pricing import (
    NATIVE_TOKEN,
    SUPPORTED_TOKENS,
    PricingProvider,
    StaticPriceTable,
    payment_method_for,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_PAYOUT_USD = Decimal("10")
CENTS = Decimal("0.01")


class TransferNormalizer:
    """Filters and values raw transfers.

    A transfer becomes a payout when:
    - it is native ETH or a supported token,
    - the tracked wallet sits on the side given by the direction,
    - it happened at or after `since` (when given),
    - its USD value is at least the minimum.

    The threshold is applied to the exact value; amounts are rounded to
    cents only afterwards.
    """

    def __init__(
        self,
        pricing: PricingProvider | None = None,
        *,
        min_usd: Decimal = DEFAULT_MIN_PAYOUT_USD,
        supported_tokens: Iterable[str] = SUPPORTED_TOKENS,
    ) -> None:
        self._pricing = pricing or StaticPriceTable()
        self._min_usd = min_usd
        self._supported_tokens = frozenset(t.upper() for t in supported_tokens)

    @property
    def min_usd(self) -> Decimal:
        return self._min_usd

    def normalize(
        self,
        native: Sequence[RawTransfer],
        token: Sequence[RawTransfer],
        *,
        direction: Direction,
        wallets: Iterable[str],
        subject: str,
        since: datetime | None = None,
    ) -> list[PayoutRecord]:
        """Normalize native and token transfers for one subject.

        Output order is not meaningful; duplicates by tx_hash may remain
        (see `dedupe_by_tx_hash`).
        """
        tracked = frozenset(w.lower() for w in wallets)
        records: list[PayoutRecord] = []
        dropped = 0

        for raw in (*native, *token):
            record = self._to_record(raw, direction=direction, tracked=tracked, subject=subject, since=since)
            if record is None:
                dropped += 1
                continue
            records.append(record)

        logger.debug(
            "Normalized %d payouts for %s (%d transfers dropped)",
            len(records),
            subject,
            dropped,
        )
        return records

    def usd_value(self, raw: RawTransfer) -> Decimal | None:
        """Exact USD value of a transfer, or None when it cannot be priced."""
        symbol = self._symbol_of(raw)
        if symbol is None:
            return None
        price = self._pricing.price_of(symbol)
        if price is None:
            return None
        units = raw.value / (Decimal(10) ** raw.token_decimals)
        return units * price

    def _symbol_of(self, raw: RawTransfer) -> str | None:
        if raw.kind is TransferKind.NATIVE:
            return NATIVE_TOKEN
        symbol = raw.token_symbol.upper()
        if symbol not in self._supported_tokens:
            return None
        return symbol

    def _to_record(
        self,
        raw: RawTransfer,
        *,
        direction: Direction,
        tracked: frozenset[str],
        subject: str,
        since: datetime | None,
    ) -> PayoutRecord | None:
        if raw.is_error:
            return None

        side = raw.from_address if direction is Direction.OUTGOING else raw.to_address
        if side not in tracked:
            return None

        if since is not None and raw.timestamp < since:
            return None

        symbol = self._symbol_of(raw)
        if symbol is None:
            return None
        value = self.usd_value(raw)
        if value is None or value < self._min_usd:
            return None

        return PayoutRecord(
            tx_hash=raw.tx_hash,
            subject=subject,
            amount_usd=value.quantize(CENTS, rounding=ROUND_HALF_UP),
            payment_method=payment_method_for(symbol),
            timestamp=raw.timestamp,
            from_address=raw.from_address,
            to_address=raw.to_address,
            token=symbol,
            block_number=raw.block_number,
        )


def dedupe_by_tx_hash(records: Iterable[PayoutRecord]) -> list[PayoutRecord]:
    """Collapse records sharing a tx_hash; the last occurrence wins."""
    by_hash: dict[str, PayoutRecord] = {}
    for record in records:
        by_hash[record.tx_hash] = record
    return list(by_hash.values())
