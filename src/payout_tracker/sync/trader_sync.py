"""Live payout sync for trader wallets (incoming transfers)."""

from __future__ import annotations

import logging
import time
from typing import Any

from payout_tracker.payouts.models import Direction
from payout_tracker.payouts.normalizer import TransferNormalizer, dedupe_by_tx_hash
from payout_tracker.storage.database import DatabaseManager
from payout_tracker.storage.repos import TraderPayoutRepository, TraderProfileRepository
from payout_tracker.sync.base import (
    LiveSyncBase,
    SyncFailure,
    SyncPhase,
    SyncSummary,
    is_connection_lost,
    TransferSource,
    WalletSyncResult,
)
from payout_tracker.sync.retention import RetentionSweeper

logger = logging.getLogger(__name__)


class TraderPayoutSync(LiveSyncBase):
    """Sweeps every trader profile with a linked wallet."""

    def __init__(
        self,
        explorer: TransferSource,
        db: DatabaseManager,
        normalizer: TransferNormalizer | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(explorer, db, normalizer, **kwargs)
        self._sweeper = RetentionSweeper(self._db, TraderPayoutRepository, clock=self._clock)

    async def sync_wallet(self, address: str) -> WalletSyncResult:
        """Sync the recent incoming payouts of one wallet."""
        address = address.lower()
        native, token = await self._fetch_wallet(address)

        self._phase = SyncPhase.NORMALIZING
        records = dedupe_by_tx_hash(
            self._normalizer.normalize(
                native,
                token,
                direction=Direction.INCOMING,
                wallets=[address],
                subject=address,
                since=self._window_start(),
            )
        )
        if not records:
            return WalletSyncResult(subject=address, new_payouts=0)

        self._phase = SyncPhase.UPSERTING
        async with self._db.get_async_session() as session:
            written = await TraderPayoutRepository(session).upsert_many(records)

        logger.info("Wallet %s: %d payouts upserted", address, written)
        return WalletSyncResult(
            subject=address,
            new_payouts=written,
            latest=max(records, key=lambda r: r.timestamp),
        )

    async def sync_all_traders_realtime(self) -> SyncSummary:
        """Sweep every linked trader wallet, then sweep old rows.

        Raises:
            MissingCredentialError: No explorer API key (nothing is touched).
        """
        self._require_credentials()
        started = time.monotonic()

        async with self._db.get_async_session() as session:
            wallets = await TraderProfileRepository(session).list_linked_wallets()

        total = 0
        errors: list[SyncFailure] = []
        try:
            for index, address in enumerate(wallets):
                await self._pause_between_subjects(index)
                try:
                    result = await self.sync_wallet(address)
                    total += result.new_payouts
                except Exception as e:
                    if is_connection_lost(e):
                        raise
                    logger.error("Trader sync failed for %s: %s", address, e)
                    errors.append(SyncFailure(subject=address, error=str(e)))

            self._phase = SyncPhase.SWEEPING
            deleted = await self._sweeper.sweep(self._retention_hours)
        finally:
            self._phase = SyncPhase.IDLE

        summary = SyncSummary(
            wallets=len(wallets),
            total_new_payouts=total,
            errors=errors,
            duration_seconds=time.monotonic() - started,
            deleted=deleted,
        )
        self._log_summary("Trader", summary)
        return summary
