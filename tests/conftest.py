"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from payout_tracker.explorer.models import RawTransfer, TransferKind
from payout_tracker.storage.database import DatabaseManager, init_async_db


class FakeExplorer:
    """In-memory stand-in for ExplorerClient keyed by address."""

    def __init__(self, api_key: str = "test-key") -> None:
        self.api_key = api_key
        self.native: dict[str, list[RawTransfer]] = {}
        self.token: dict[str, list[RawTransfer]] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    async def get_native_transactions(self, address: str) -> list[RawTransfer]:
        self.calls.append(("native", address))
        self._raise_if_failing(address)
        return list(self.native.get(address, []))

    async def get_token_transfers(self, address: str) -> list[RawTransfer]:
        self.calls.append(("token", address))
        self._raise_if_failing(address)
        return list(self.token.get(address, []))

    async def fetch_history(self, address: str, kind: TransferKind) -> list[RawTransfer]:
        self.calls.append((f"history:{kind.value}", address))
        self._raise_if_failing(address)
        source = self.native if kind is TransferKind.NATIVE else self.token
        return list(source.get(address, []))

    def _raise_if_failing(self, address: str) -> None:
        error = self.failures.get(address)
        if error is not None:
            raise error


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def now() -> datetime:
    """Fixed "current time" used by clocks in sync tests."""
    return datetime(2025, 3, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_transfer() -> Callable[..., RawTransfer]:
    """Factory for RawTransfer values.

    Native transfers take `value` in ETH, token transfers in whole tokens;
    both are scaled to base units.
    """

    def _make(
        tx_hash: str,
        *,
        from_address: str,
        to_address: str,
        timestamp: datetime,
        value: str = "1",
        symbol: str = "ETH",
        decimals: int = 18,
        block_number: int = 100,
        is_error: bool = False,
    ) -> RawTransfer:
        kind = TransferKind.NATIVE if symbol == "ETH" else TransferKind.TOKEN
        return RawTransfer(
            kind=kind,
            tx_hash=tx_hash,
            block_number=block_number,
            timestamp=timestamp,
            from_address=from_address.lower(),
            to_address=to_address.lower(),
            value=Decimal(value) * (Decimal(10) ** decimals),
            token_symbol=symbol,
            token_decimals=decimals,
            is_error=is_error,
        )

    return _make


@pytest.fixture
def fake_explorer() -> FakeExplorer:
    return FakeExplorer()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
async def db(tmp_path: Path) -> AsyncIterator[DatabaseManager]:
    """DatabaseManager over a file-backed SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payouts.db'}", echo=False)
    await init_async_db(engine)
    manager = DatabaseManager.from_engine(engine)
    yield manager
    await manager.dispose_async()
