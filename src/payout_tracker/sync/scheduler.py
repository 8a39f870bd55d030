"""Interval scheduler for the live sweeps.

Runs the firm sweep and the trader sweep back to back on a fixed interval
until stopped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from payout_tracker.errors import MissingCredentialError
from payout_tracker.sync.base import SyncSummary
from payout_tracker.sync.firm_sync import FirmPayoutSync
from payout_tracker.sync.trader_sync import TraderPayoutSync

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Scheduler lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    started_at: datetime | None = None
    ticks: int = 0
    payouts_synced: int = 0
    degraded_sweeps: int = 0
    failed_sweeps: int = 0
    last_tick_at: datetime | None = None
    last_error: str | None = None


class SyncScheduler:
    """Runs live sweeps every `interval_seconds`.

    A sweep that raises is logged and counted; the next tick still runs.
    A missing API key stops the scheduler.

    Example:
        ```python
        scheduler = SyncScheduler(firm_sync, trader_sync, interval_seconds=300)
        await scheduler.run()
        ```
    """

    def __init__(
        self,
        firm_sync: FirmPayoutSync,
        trader_sync: TraderPayoutSync,
        *,
        interval_seconds: float = 300,
    ) -> None:
        self._firm_sync = firm_sync
        self._trader_sync = trader_sync
        self._interval_seconds = interval_seconds
        self._state = SchedulerState.STOPPED
        self._stats = SchedulerStats()
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    async def start(self) -> None:
        """Start the tick loop in the background.

        Raises:
            RuntimeError: If the scheduler is already running.
        """
        if self._state != SchedulerState.STOPPED:
            raise RuntimeError(f"Cannot start scheduler in state {self._state}")

        self._state = SchedulerState.STARTING
        self._stop_event = asyncio.Event()
        self._stats.started_at = datetime.now(UTC)
        self._task = asyncio.create_task(self._loop())
        self._state = SchedulerState.RUNNING
        logger.info("Sync scheduler started (interval=%.0fs)", self._interval_seconds)

    async def stop(self) -> None:
        """Stop after the current tick finishes."""
        if self._state == SchedulerState.STOPPED:
            return

        self._state = SchedulerState.STOPPING
        if self._stop_event:
            self._stop_event.set()
        if self._task is not None and not self._task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None

        self._state = SchedulerState.STOPPED
        logger.info("Sync scheduler stopped after %d ticks", self._stats.ticks)

    async def run(self) -> None:
        """Start and block until stopped or the loop ends."""
        await self.start()
        try:
            if self._task is not None:
                await self._task
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def tick(self) -> list[SyncSummary]:
        """Run one firm sweep and one trader sweep."""
        summaries: list[SyncSummary] = []
        for name, sweep in (
            ("firm", self._firm_sync.sync_all_firms),
            ("trader", self._trader_sync.sync_all_traders_realtime),
        ):
            try:
                summary = await sweep()
            except MissingCredentialError:
                raise
            except Exception as e:
                self._stats.failed_sweeps += 1
                self._stats.last_error = str(e)
                logger.error("Scheduled %s sweep failed: %s", name, e)
                continue
            summaries.append(summary)
            self._stats.payouts_synced += summary.total_new_payouts
            if summary.degraded:
                self._stats.degraded_sweeps += 1

        self._stats.ticks += 1
        self._stats.last_tick_at = datetime.now(UTC)
        return summaries

    async def _loop(self) -> None:
        if not self._stop_event:
            return
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except MissingCredentialError as e:
                self._state = SchedulerState.ERROR
                self._stats.last_error = str(e)
                logger.error("Stopping scheduler: %s", e)
                raise
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
                break
            except TimeoutError:
                pass

    async def __aenter__(self) -> SyncScheduler:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
