"""Full-history backfill into the month archive.

The backfill walks the complete transfer history of a wallet (or of all
wallets of a firm), groups the payouts by UTC month and writes one archive
row per month. All fetching happens before the first write, and every month
is written in a single transaction, so a failed run leaves the archive as it
was.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal

from payout_tracker.errors import BackfillError, MissingCredentialError
from payout_tracker.explorer.models import RawTransfer, TransferKind
from payout_tracker.payouts.aggregation import MonthBucket, build_month_bucket, group_by_month
from payout_tracker.payouts.models import Direction, PayoutRecord, SubjectKind
from payout_tracker.payouts.normalizer import TransferNormalizer, dedupe_by_tx_hash
from payout_tracker.storage.database import DatabaseManager
from payout_tracker.storage.repos import FirmRepository, MonthArchiveRepository, TraderProfileRepository
from payout_tracker.sync.base import ClockFn, TransferSource, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackfillResult:
    subject: str
    months_written: int
    payouts: int
    total_usd: Decimal
    duration_seconds: float

    def to_dict(self) -> dict[str, object]:
        return {
            "subject": self.subject,
            "monthsWritten": self.months_written,
            "payouts": self.payouts,
            "totalUsd": float(self.total_usd),
            "durationSeconds": round(self.duration_seconds, 3),
        }


class HistoricalBackfill:
    """Builds month buckets from complete wallet history."""

    def __init__(
        self,
        explorer: TransferSource,
        db: DatabaseManager,
        normalizer: TransferNormalizer | None = None,
        *,
        clock: ClockFn = utcnow,
    ) -> None:
        self._explorer = explorer
        self._db = db
        self._normalizer = normalizer or TransferNormalizer()
        self._clock = clock

    async def backfill(self, address: str) -> BackfillResult:
        """Backfill incoming payouts of a trader wallet.

        Raises:
            MissingCredentialError: No explorer API key.
            BackfillError: Any fetch or write failure; nothing is written.
        """
        address = address.lower()
        started = time.monotonic()
        self._require_credentials()

        try:
            native, token = await self._fetch_all([address])
            records = self._normalize(native, token, Direction.INCOMING, [address], address)
            buckets = self._build_buckets(records)
            async with self._db.get_async_session() as session:
                written = await MonthArchiveRepository(session).upsert_months(
                    SubjectKind.TRADER, address, buckets
                )
                await TraderProfileRepository(session).mark_backfilled(address, self._clock())
        except Exception as e:
            logger.error("Backfill failed for %s: %s", address, e)
            raise BackfillError(address, str(e)) from e

        return self._result(address, written, records, started)

    async def backfill_firm(self, firm_id: str) -> BackfillResult:
        """Backfill outgoing payouts across all wallets of a firm.

        Raises:
            MissingCredentialError: No explorer API key.
            BackfillError: Unknown firm, or any fetch or write failure.
        """
        started = time.monotonic()
        self._require_credentials()

        try:
            async with self._db.get_async_session() as session:
                firm = await FirmRepository(session).get(firm_id)
        except Exception as e:
            logger.error("Backfill failed for firm %s: %s", firm_id, e)
            raise BackfillError(firm_id, str(e)) from e
        if firm is None:
            raise BackfillError(firm_id, "unknown firm")
        if not firm.wallets:
            raise BackfillError(firm_id, "firm has no wallets")

        try:
            native, token = await self._fetch_all(list(firm.wallets))
            records = self._normalize(native, token, Direction.OUTGOING, firm.wallets, firm.id)
            buckets = self._build_buckets(records)
            async with self._db.get_async_session() as session:
                written = await MonthArchiveRepository(session).upsert_months(
                    SubjectKind.FIRM, firm.id, buckets
                )
        except Exception as e:
            logger.error("Backfill failed for firm %s: %s", firm_id, e)
            raise BackfillError(firm_id, str(e)) from e

        return self._result(firm.id, written, records, started)

    def _require_credentials(self) -> None:
        if not self._explorer.has_api_key:
            raise MissingCredentialError("EXPLORER_API_KEY is not configured; refusing to backfill")

    async def _fetch_all(self, addresses: list[str]) -> tuple[list[RawTransfer], list[RawTransfer]]:
        native: list[RawTransfer] = []
        token: list[RawTransfer] = []
        for address in addresses:
            native.extend(await self._explorer.fetch_history(address, TransferKind.NATIVE))
            token.extend(await self._explorer.fetch_history(address, TransferKind.TOKEN))
        return native, token

    def _normalize(
        self,
        native: list[RawTransfer],
        token: list[RawTransfer],
        direction: Direction,
        wallets: list[str] | tuple[str, ...],
        subject: str,
    ) -> list[PayoutRecord]:
        return dedupe_by_tx_hash(
            self._normalizer.normalize(
                native,
                token,
                direction=direction,
                wallets=wallets,
                subject=subject,
            )
        )

    @staticmethod
    def _build_buckets(records: list[PayoutRecord]) -> list[MonthBucket]:
        return [build_month_bucket(month, month_records) for month, month_records in group_by_month(records).items()]

    @staticmethod
    def _result(subject: str, written: int, records: list[PayoutRecord], started: float) -> BackfillResult:
        total = sum((r.amount_usd for r in records), Decimal("0"))
        result = BackfillResult(
            subject=subject,
            months_written=written,
            payouts=len(records),
            total_usd=total,
            duration_seconds=time.monotonic() - started,
        )
        logger.info(
            "Backfill for %s: %d payouts across %d months ($%s)",
            subject,
            result.payouts,
            result.months_written,
            total,
        )
        return result
