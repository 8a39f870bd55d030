"""Month bucket aggregation for the historical archive."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from payout_tracker.payouts.models import PayoutRecord
from payout_tracker.payouts.pricing import PAYMENT_METHODS

CENTS = Decimal("0.01")


def _money(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def year_month_of(record: PayoutRecord) -> str:
    """UTC calendar month key, e.g. "2025-01"."""
    return record.timestamp.astimezone(UTC).strftime("%Y-%m")


def group_by_month(records: Iterable[PayoutRecord]) -> dict[str, list[PayoutRecord]]:
    """Group records by UTC calendar month, months in ascending order."""
    grouped: dict[str, list[PayoutRecord]] = defaultdict(list)
    for record in records:
        grouped[year_month_of(record)].append(record)
    return {month: grouped[month] for month in sorted(grouped)}


@dataclass(frozen=True)
class MonthSummary:
    total_payouts: Decimal
    payout_count: int
    largest_payout: Decimal
    avg_payout: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPayouts": _money(self.total_payouts),
            "payoutCount": self.payout_count,
            "largestPayout": _money(self.largest_payout),
            "avgPayout": _money(self.avg_payout),
        }


@dataclass(frozen=True)
class DailyBucket:
    date: str
    total: Decimal
    count: int
    by_method: dict[str, Decimal]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "date": self.date,
            "total": _money(self.total),
            "count": self.count,
        }
        for method in PAYMENT_METHODS:
            data[method] = _money(self.by_method.get(method, Decimal("0")))
        return data


@dataclass(frozen=True)
class MonthBucket:
    """One month of payouts for one subject.

    The summary and daily buckets are always derived from `transactions`.
    """

    year_month: str
    summary: MonthSummary
    daily_buckets: tuple[DailyBucket, ...]
    transactions: tuple[PayoutRecord, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "dailyBuckets": [bucket.to_dict() for bucket in self.daily_buckets],
            "transactions": [tx.to_archive_dict() for tx in self.transactions],
        }


def build_month_bucket(year_month: str, records: Iterable[PayoutRecord]) -> MonthBucket:
    """Build the archive bucket for one month.

    Raises:
        ValueError: If there are no records or a record is outside the month.
    """
    by_hash: dict[str, PayoutRecord] = {}
    for record in records:
        if year_month_of(record) != year_month:
            raise ValueError(f"Payout {record.tx_hash} does not belong to {year_month}")
        by_hash[record.tx_hash] = record
    if not by_hash:
        raise ValueError(f"No payouts for {year_month}")

    transactions = tuple(sorted(by_hash.values(), key=lambda r: (r.timestamp, r.tx_hash), reverse=True))

    total = sum((r.amount_usd for r in transactions), Decimal("0"))
    summary = MonthSummary(
        total_payouts=total,
        payout_count=len(transactions),
        largest_payout=max(r.amount_usd for r in transactions),
        avg_payout=total / len(transactions),
    )

    days: dict[str, list[PayoutRecord]] = defaultdict(list)
    for record in transactions:
        days[record.timestamp.astimezone(UTC).strftime("%Y-%m-%d")].append(record)

    daily: list[DailyBucket] = []
    for day in sorted(days):
        day_records = days[day]
        by_method: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for record in day_records:
            by_method[record.payment_method] += record.amount_usd
        daily.append(
            DailyBucket(
                date=day,
                total=sum((r.amount_usd for r in day_records), Decimal("0")),
                count=len(day_records),
                by_method=dict(by_method),
            )
        )

    return MonthBucket(
        year_month=year_month,
        summary=summary,
        daily_buckets=tuple(daily),
        transactions=transactions,
    )
