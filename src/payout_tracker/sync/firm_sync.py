"""Live payout sync for trading firms.

A firm pays out from one or more wallets. Each sweep fetches the recent
history of every firm wallet, keeps outgoing transfers from the last
live window, upserts them into `recent_payouts` and moves the firm's
last-payout pointer forward.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from payout_tracker.explorer.models import RawTransfer
from payout_tracker.payouts.models import Direction
from payout_tracker.payouts.normalizer import TransferNormalizer, dedupe_by_tx_hash
from payout_tracker.storage.database import DatabaseManager
from payout_tracker.storage.repos import FirmDTO, FirmPayoutRepository, FirmRepository
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


class FirmPayoutSync(LiveSyncBase):
    """Sweeps all tracked firms."""

    def __init__(
        self,
        explorer: TransferSource,
        db: DatabaseManager,
        normalizer: TransferNormalizer | None = None,
        *,
        inter_address_delay_seconds: float = 0.5,
        **kwargs: Any,
    ) -> None:
        super().__init__(explorer, db, normalizer, **kwargs)
        self._inter_address_delay_seconds = inter_address_delay_seconds
        self._sweeper = RetentionSweeper(self._db, FirmPayoutRepository, clock=self._clock)

    async def sync_firm(self, firm: FirmDTO | str) -> WalletSyncResult:
        """Sync one firm across all of its wallets.

        Raises:
            ValueError: If the firm id is unknown.
        """
        if isinstance(firm, str):
            async with self._db.get_async_session() as session:
                loaded = await FirmRepository(session).get(firm)
            if loaded is None:
                raise ValueError(f"Unknown firm: {firm}")
            firm = loaded

        native: list[RawTransfer] = []
        token: list[RawTransfer] = []
        for index, address in enumerate(firm.wallets):
            if index > 0 and self._inter_address_delay_seconds > 0:
                await self._sleep(self._inter_address_delay_seconds)
            wallet_native, wallet_token = await self._fetch_wallet(address)
            native.extend(wallet_native)
            token.extend(wallet_token)

        self._phase = SyncPhase.NORMALIZING
        records = dedupe_by_tx_hash(
            self._normalizer.normalize(
                native,
                token,
                direction=Direction.OUTGOING,
                wallets=firm.wallets,
                subject=firm.id,
                since=self._window_start(),
            )
        )
        if not records:
            logger.debug("No new payouts for firm %s", firm.id)
            return WalletSyncResult(subject=firm.id, new_payouts=0)

        self._phase = SyncPhase.UPSERTING
        latest = max(records, key=lambda r: r.timestamp)
        async with self._db.get_async_session() as session:
            written = await FirmPayoutRepository(session).upsert_many(records)
            advanced = await FirmRepository(session).update_last_payout(
                firm.id, latest, synced_at=self._clock()
            )

        logger.info(
            "Firm %s: %d payouts upserted%s",
            firm.id,
            written,
            " (last payout advanced)" if advanced else "",
        )
        return WalletSyncResult(subject=firm.id, new_payouts=written, latest=latest)

    async def sync_all_firms(self) -> SyncSummary:
        """Sweep every firm with at least one wallet, then sweep old rows.

        Raises:
            MissingCredentialError: No explorer API key (nothing is touched).
        """
        self._require_credentials()
        started = time.monotonic()

        async with self._db.get_async_session() as session:
            firms = await FirmRepository(session).list_tracked()

        total = 0
        errors: list[SyncFailure] = []
        try:
            for index, firm in enumerate(firms):
                await self._pause_between_subjects(index)
                try:
                    result = await self.sync_firm(firm)
                    total += result.new_payouts
                except Exception as e:
                    if is_connection_lost(e):
                        raise
                    logger.error("Firm sync failed for %s: %s", firm.id, e)
                    errors.append(SyncFailure(subject=firm.id, error=str(e)))

            self._phase = SyncPhase.SWEEPING
            deleted = await self._sweeper.sweep(self._retention_hours)
        finally:
            self._phase = SyncPhase.IDLE

        summary = SyncSummary(
            wallets=len(firms),
            total_new_payouts=total,
            errors=errors,
            duration_seconds=time.monotonic() - started,
            deleted=deleted,
        )
        self._log_summary("Firm", summary)
        return summary
