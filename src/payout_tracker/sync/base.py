"""Shared pieces of the live sync orchestrators."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Protocol

from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError

from payout_tracker.errors import MissingCredentialError
from payout_tracker.explorer.models import RawTransfer, TransferKind
from payout_tracker.payouts.models import PayoutRecord
from payout_tracker.payouts.normalizer import TransferNormalizer
from payout_tracker.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_connection_lost(exc: BaseException) -> bool:
    """True when the store connection itself is gone, not just one statement.

    Lock timeouts, deadlocks and constraint errors are per-subject failures;
    only a dropped or invalidated connection aborts a sweep.
    """
    if isinstance(exc, (DisconnectionError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class TransferSource(Protocol):
    """What the orchestrators need from the explorer client."""

    @property
    def has_api_key(self) -> bool: ...

    async def get_native_transactions(self, address: str) -> list[RawTransfer]: ...

    async def get_token_transfers(self, address: str) -> list[RawTransfer]: ...

    async def fetch_history(self, address: str, kind: TransferKind) -> list[RawTransfer]: ...


class SyncPhase(str, Enum):
    """Where a sweep currently is; nothing is carried between runs."""

    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    UPSERTING = "upserting"
    SWEEPING = "sweeping"


@dataclass(frozen=True)
class SyncFailure:
    """A wallet (or firm) whose unit of work failed during a sweep."""

    subject: str
    error: str

    def to_dict(self) -> dict[str, str]:
        # Firm sweeps report the firm id under "wallet" too.
        return {"subject": self.subject, "wallet": self.subject, "error": self.error}


@dataclass(frozen=True)
class WalletSyncResult:
    subject: str
    new_payouts: int
    latest: PayoutRecord | None = None


@dataclass
class SyncSummary:
    """Outcome of a full sweep.

    A summary with errors is still a completed run, just a degraded one.
    """

    wallets: int
    total_new_payouts: int
    errors: list[SyncFailure] = field(default_factory=list)
    duration_seconds: float = 0.0
    deleted: int = 0

    @property
    def degraded(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallets": self.wallets,
            "totalNewPayouts": self.total_new_payouts,
            "errors": [e.to_dict() for e in self.errors],
            "durationSeconds": round(self.duration_seconds, 3),
            "deleted": self.deleted,
            "degraded": self.degraded,
        }


class LiveSyncBase:
    """Fetch → normalize → upsert plumbing shared by firm and trader sync."""

    def __init__(
        self,
        explorer: TransferSource,
        db: DatabaseManager,
        normalizer: TransferNormalizer | None = None,
        *,
        live_window_hours: float = 24,
        retention_hours: float = 24,
        inter_wallet_delay_seconds: float = 1.0,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = utcnow,
    ) -> None:
        self._explorer = explorer
        self._db = db
        self._normalizer = normalizer or TransferNormalizer()
        self._live_window = timedelta(hours=live_window_hours)
        self._retention_hours = retention_hours
        self._inter_wallet_delay_seconds = inter_wallet_delay_seconds
        self._sleep = sleep
        self._clock = clock
        self._phase = SyncPhase.IDLE

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    def _require_credentials(self) -> None:
        if not self._explorer.has_api_key:
            raise MissingCredentialError("EXPLORER_API_KEY is not configured; refusing to sync")

    def _window_start(self) -> datetime:
        return self._clock() - self._live_window

    async def _fetch_wallet(self, address: str) -> tuple[list[RawTransfer], list[RawTransfer]]:
        self._phase = SyncPhase.FETCHING
        native = await self._explorer.get_native_transactions(address)
        token = await self._explorer.get_token_transfers(address)
        logger.debug(
            "Fetched %d native and %d token transfers for %s",
            len(native),
            len(token),
            address,
        )
        return native, token

    async def _pause_between_subjects(self, index: int) -> None:
        if index > 0 and self._inter_wallet_delay_seconds > 0:
            await self._sleep(self._inter_wallet_delay_seconds)

    def _log_summary(self, kind: str, summary: SyncSummary) -> None:
        if summary.degraded:
            logger.warning(
                "%s sync completed with %d errors: %d wallets, %d payouts, %d swept in %.1fs",
                kind,
                len(summary.errors),
                summary.wallets,
                summary.total_new_payouts,
                summary.deleted,
                summary.duration_seconds,
            )
        else:
            logger.info(
                "%s sync completed: %d wallets, %d payouts, %d swept in %.1fs",
                kind,
                summary.wallets,
                summary.total_new_payouts,
                summary.deleted,
                summary.duration_seconds,
            )
