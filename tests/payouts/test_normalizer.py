"""Tests for transfer normalization."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from payout_tracker.payouts.models import Direction
from payout_tracker.payouts.normalizer import TransferNormalizer, dedupe_by_tx_hash
from payout_tracker.payouts.pricing import StaticPriceTable

FIRM = "0xf00000000000000000000000000000000000000f"
TRADER = "0xa00000000000000000000000000000000000000a"
STRANGER = "0xc00000000000000000000000000000000000000c"
WHEN = datetime(2025, 3, 15, 10, 0, tzinfo=UTC)


@pytest.fixture
def normalizer() -> TransferNormalizer:
    return TransferNormalizer()


class TestDirection:
    def test_outgoing_keeps_transfers_from_tracked_wallet(self, normalizer, make_transfer) -> None:
        paid = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="0.01")
        received = make_transfer("0x2", from_address=TRADER, to_address=FIRM, timestamp=WHEN, value="0.01")

        records = normalizer.normalize([paid, received], [], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme")

        assert [r.tx_hash for r in records] == ["0x1"]
        assert records[0].subject == "acme"

    def test_incoming_keeps_transfers_to_tracked_wallet(self, normalizer, make_transfer) -> None:
        paid = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="20", symbol="USDC", decimals=6)
        sent = make_transfer("0x2", from_address=TRADER, to_address=STRANGER, timestamp=WHEN, value="20", symbol="USDC", decimals=6)

        records = normalizer.normalize([], [paid, sent], direction=Direction.INCOMING, wallets=[TRADER], subject=TRADER)

        assert [r.tx_hash for r in records] == ["0x1"]

    def test_address_match_is_case_insensitive(self, normalizer, make_transfer) -> None:
        paid = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="0.01")

        records = normalizer.normalize([paid], [], direction=Direction.OUTGOING, wallets=[FIRM.upper().replace("0X", "0x")], subject="acme")

        assert len(records) == 1


class TestValuation:
    def test_native_priced_in_usd(self, normalizer, make_transfer) -> None:
        transfer = make_transfer("0x1", from_address=STRANGER, to_address=TRADER, timestamp=WHEN, value="2")

        [record] = normalizer.normalize([transfer], [], direction=Direction.INCOMING, wallets=[TRADER], subject=TRADER)

        assert record.amount_usd == Decimal("5000.00")
        assert record.token == "ETH"
        assert record.payment_method == "crypto"

    def test_risepay_maps_to_rise_method(self, normalizer, make_transfer) -> None:
        transfer = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="150", symbol="RISEPAY")

        [record] = normalizer.normalize([], [transfer], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme")

        assert record.payment_method == "rise"
        assert record.amount_usd == Decimal("150.00")

    def test_minimum_value_boundary(self, normalizer, make_transfer) -> None:
        below = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="9.99", symbol="USDC", decimals=6)
        exact = make_transfer("0x2", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="10.00", symbol="USDC", decimals=6)

        records = normalizer.normalize([], [below, exact], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme")

        assert [r.tx_hash for r in records] == ["0x2"]
        assert records[0].amount_usd == Decimal("10.00")

    def test_threshold_applies_before_rounding(self, normalizer, make_transfer) -> None:
        # 9.995 rounds to 10.00 but is still below the minimum.
        almost = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="9.995", symbol="USDC", decimals=6)

        assert normalizer.normalize([], [almost], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme") == []

    def test_amount_rounded_half_up_to_cents(self, normalizer, make_transfer) -> None:
        transfer = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="12.345", symbol="USDT", decimals=6)

        [record] = normalizer.normalize([], [transfer], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme")

        assert record.amount_usd == Decimal("12.35")

    def test_injected_pricing_provider(self, make_transfer) -> None:
        normalizer = TransferNormalizer(StaticPriceTable(eth_usd=Decimal("3000")), min_usd=Decimal("0"))
        transfer = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="0.5")

        [record] = normalizer.normalize([transfer], [], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme")

        assert record.amount_usd == Decimal("1500.00")


class TestDrops:
    def test_unsupported_token_dropped(self, normalizer, make_transfer) -> None:
        spam = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="1000", symbol="SCAM")

        assert normalizer.normalize([], [spam], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme") == []

    def test_failed_transaction_dropped(self, normalizer, make_transfer) -> None:
        failed = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="1", is_error=True)

        assert normalizer.normalize([failed], [], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme") == []

    def test_since_filters_old_transfers(self, normalizer, make_transfer) -> None:
        old = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN - timedelta(hours=25), value="1")
        edge = make_transfer("0x2", from_address=FIRM, to_address=TRADER, timestamp=WHEN - timedelta(hours=24), value="1")

        records = normalizer.normalize(
            [old, edge],
            [],
            direction=Direction.OUTGOING,
            wallets=[FIRM],
            subject="acme",
            since=WHEN - timedelta(hours=24),
        )

        assert [r.tx_hash for r in records] == ["0x2"]

    def test_example_wallet_scenario(self, normalizer, make_transfer) -> None:
        """2 ETH is kept as $5000; a $5 USDC transfer is dropped."""
        eth = make_transfer("0xeth", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="2")
        small = make_transfer("0xusdc", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="5", symbol="USDC", decimals=6)

        records = normalizer.normalize(
            [eth],
            [small],
            direction=Direction.INCOMING,
            wallets=[TRADER],
            subject=TRADER,
            since=WHEN - timedelta(hours=24),
        )

        assert len(records) == 1
        assert records[0].amount_usd == Decimal("5000.00")
        assert records[0].payment_method == "crypto"


def test_dedupe_keeps_last_occurrence(make_transfer) -> None:
    normalizer = TransferNormalizer()
    first = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="20", symbol="USDC", decimals=6)
    second = make_transfer("0x1", from_address=FIRM, to_address=TRADER, timestamp=WHEN, value="30", symbol="USDC", decimals=6)

    records = normalizer.normalize([], [first, second], direction=Direction.OUTGOING, wallets=[FIRM], subject="acme")
    unique = dedupe_by_tx_hash(records)

    assert len(records) == 2
    assert len(unique) == 1
    assert unique[0].amount_usd == Decimal("30.00")
