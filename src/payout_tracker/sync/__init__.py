"""Sync module - live sweeps, retention, backfill and scheduling."""

from payout_tracker.sync.backfill import BackfillResult, HistoricalBackfill
from payout_tracker.sync.base import (
    LiveSyncBase,
    SyncFailure,
    SyncPhase,
    SyncSummary,
    TransferSource,
    WalletSyncResult,
)
from payout_tracker.sync.firm_sync import FirmPayoutSync
from payout_tracker.sync.queue import BackfillJob, BackfillQueue, BackfillWorker, link_trader_wallet
from payout_tracker.sync.retention import RetentionSweeper
from payout_tracker.sync.scheduler import SchedulerState, SchedulerStats, SyncScheduler
from payout_tracker.sync.trader_sync import TraderPayoutSync
from payout_tracker.sync.validation import OverlapReport, month_bounds, validate_month_overlap

__all__ = [
    "BackfillJob",
    "BackfillQueue",
    "BackfillResult",
    "BackfillWorker",
    "FirmPayoutSync",
    "HistoricalBackfill",
    "LiveSyncBase",
    "OverlapReport",
    "RetentionSweeper",
    "SchedulerState",
    "SchedulerStats",
    "SyncFailure",
    "SyncPhase",
    "SyncScheduler",
    "SyncSummary",
    "TraderPayoutSync",
    "TransferSource",
    "WalletSyncResult",
    "link_trader_wallet",
    "month_bounds",
    "validate_month_overlap",
]
