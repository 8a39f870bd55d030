"""Tests for archive/live overlap validation."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from payout_tracker.payouts.aggregation import build_month_bucket
from payout_tracker.payouts.models import PayoutRecord, SubjectKind
from payout_tracker.storage.repos import FirmPayoutRepository, MonthArchiveRepository
from payout_tracker.sync.validation import month_bounds, validate_month_overlap


def payout(tx_hash: str, day: int, month: int = 3) -> PayoutRecord:
    return PayoutRecord(
        tx_hash=tx_hash,
        subject="acme",
        amount_usd=Decimal("100.00"),
        payment_method="crypto",
        timestamp=datetime(2025, month, day, 12, 0, tzinfo=UTC),
        from_address="0xffffffffffffffffffffffffffffffffffffffff",
        to_address="0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa",
        token="USDC",
        block_number=day,
    )


def test_month_bounds() -> None:
    assert month_bounds("2025-03") == (
        datetime(2025, 3, 1, tzinfo=UTC),
        datetime(2025, 4, 1, tzinfo=UTC),
    )
    assert month_bounds("2024-12")[1] == datetime(2025, 1, 1, tzinfo=UTC)


class TestValidateMonthOverlap:
    @pytest.mark.asyncio
    async def test_reports_missing_hashes(self, db) -> None:
        archived = [payout("0x1", 1), payout("0x2", 2)]
        async with db.get_async_session() as session:
            await MonthArchiveRepository(session).upsert_months(
                SubjectKind.FIRM, "acme", [build_month_bucket("2025-03", archived)]
            )
            await FirmPayoutRepository(session).upsert_many(
                [payout("0x2", 2), payout("0x3", 14), payout("0x9", 1, month=4)]
            )

        report = await validate_month_overlap(db, "acme", "2025-03")

        assert report.archive_count == 2
        assert report.live_count == 2
        assert report.missing_in_archive == ["0x3"]
        assert report.missing_in_live == ["0x1"]
        assert report.match_rate == pytest.approx(0.5)
        assert report.is_consistent is False
        assert report.to_dict()["matchRate"] == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_no_live_rows(self, db) -> None:
        report = await validate_month_overlap(db, "acme", "2025-03")

        assert report.live_count == 0
        assert report.match_rate is None
        assert report.is_consistent is True
