"""Async client for the Etherscan V2 compatible account API with retry logic."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

import httpx

from payout_tracker.config import ExplorerSettings
from payout_tracker.explorer.circuit import CircuitBreaker
from payout_tracker.explorer.errors import (
    ExplorerError,
    ExplorerInvalidKeyError,
    ExplorerRateLimitError,
    ExplorerTransientError,
)
from payout_tracker.explorer.models import (
    ExplorerEmpty,
    ExplorerInvalidCredential,
    ExplorerOk,
    ExplorerRateLimited,
    RawTransfer,
    TransferKind,
    decode_response,
)
from payout_tracker.explorer.usage import UsageTracker

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.etherscan.io/v2/api"
DEFAULT_CHAIN_ID = 42161
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_SCHEDULE = (1.0, 2.0, 4.0)
DEFAULT_BACKOFF_MAX_SECONDS = 30.0
DEFAULT_PAGE_SIZE = 1000
DEFAULT_PAGE_DELAY_SECONDS = 0.5
# page * offset may not exceed this on a single startblock query.
MAX_RESULT_WINDOW = 10_000

SleepFn = Callable[[float], Awaitable[None]]


class ExplorerClient:
    """Fetches wallet transfer history from the explorer.

    Every logical fetch is retried on transient failures (timeouts, network
    errors, rate limits, 5xx and unrecognized responses) following a fixed
    backoff schedule. A rejected API key fails immediately. An empty history
    is returned as an empty list, never as an error.

    Example:
        >>> async with ExplorerClient(api_key="KEY") as client:
        ...     txs = await client.get_native_transactions("0xabc...")
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        chain_id: int = DEFAULT_CHAIN_ID,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_schedule: tuple[float, ...] = DEFAULT_BACKOFF_SCHEDULE,
        backoff_max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_delay_seconds: float = DEFAULT_PAGE_DELAY_SECONDS,
        circuit_breaker: CircuitBreaker | None = None,
        usage_tracker: UsageTracker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the explorer client.

        Args:
            api_key: Explorer API key. May be None; callers check
                `has_api_key` before starting work.
            base_url: Explorer API endpoint.
            chain_id: Chain to query (`chainid` parameter).
            timeout_seconds: Per-attempt request timeout.
            max_retries: Retries after the first attempt.
            backoff_schedule: Delay before each retry; the last value repeats.
            backoff_max_seconds: Cap for a single delay.
            page_size: Records per page when walking full history.
            page_delay_seconds: Pause between history pages.
            circuit_breaker: Optional breaker shared across fetches.
            usage_tracker: Optional daily call counter.
            transport: Optional httpx transport (used by tests).
            sleep: Coroutine used for every pause.
        """
        if not backoff_schedule:
            raise ValueError("backoff_schedule must not be empty")
        self._api_key = api_key or ""
        self._base_url = base_url
        self._chain_id = chain_id
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._backoff_schedule = tuple(backoff_schedule)
        self._backoff_max_seconds = backoff_max_seconds
        self._page_size = page_size
        self._page_delay_seconds = page_delay_seconds
        self._circuit = circuit_breaker or CircuitBreaker()
        self._usage = usage_tracker or UsageTracker()
        self._sleep = sleep
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

        logger.info(
            "Initialized ExplorerClient with base_url=%s, chain_id=%d, max_retries=%d",
            base_url,
            chain_id,
            max_retries,
        )

    @classmethod
    def from_settings(cls, settings: ExplorerSettings, **kwargs: Any) -> ExplorerClient:
        """Build a client from ExplorerSettings; kwargs override."""
        options: dict[str, Any] = {
            "api_key": settings.api_key.get_secret_value() if settings.api_key else None,
            "base_url": settings.base_url,
            "chain_id": settings.chain_id,
            "timeout_seconds": settings.timeout_seconds,
            "max_retries": settings.max_retries,
            "backoff_schedule": settings.backoff_schedule_seconds,
            "backoff_max_seconds": settings.backoff_max_seconds,
            "page_size": settings.page_size,
            "page_delay_seconds": settings.page_delay_seconds,
            "circuit_breaker": CircuitBreaker(
                failure_threshold=settings.circuit_failure_threshold,
                reset_seconds=settings.circuit_reset_seconds,
            ),
            "usage_tracker": UsageTracker(settings.daily_limit),
        }
        options.update(kwargs)
        return cls(**options)

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key.strip())

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit

    @property
    def usage(self) -> UsageTracker:
        return self._usage

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ExplorerClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def get_native_transactions(self, address: str) -> list[RawTransfer]:
        """Most recent native (ETH) transactions for an address, newest first."""
        return await self.fetch(address, TransferKind.NATIVE)

    async def get_token_transfers(self, address: str) -> list[RawTransfer]:
        """Most recent ERC-20 token transfers for an address, newest first."""
        return await self.fetch(address, TransferKind.TOKEN)

    async def fetch(
        self,
        address: str,
        kind: TransferKind,
        *,
        start_block: int | None = None,
        page: int | None = None,
        offset: int | None = None,
        sort: str = "desc",
    ) -> list[RawTransfer]:
        """Fetch one page of transfers for an address.

        Raises:
            ExplorerInvalidKeyError: The API key was rejected (no retry).
            ExplorerTransientError: Retries exhausted; the last error.
            CircuitOpenError: Too many recent failures.
        """
        params: dict[str, str | int] = {
            "chainid": self._chain_id,
            "module": "account",
            "action": kind.action,
            "address": address,
            "sort": sort,
            "apikey": self._api_key,
        }
        if start_block is not None:
            params["startblock"] = start_block
        if page is not None:
            params["page"] = page
        if offset is not None:
            params["offset"] = offset

        self._circuit.before_call()
        try:
            transfers = await self._fetch_with_retry(address, kind, params)
        except ExplorerInvalidKeyError:
            raise
        except ExplorerError:
            self._circuit.record_failure()
            raise
        self._circuit.record_success()
        return transfers

    async def fetch_history(self, address: str, kind: TransferKind) -> list[RawTransfer]:
        """Walk the complete transfer history of an address, oldest first.

        Pages are requested in ascending block order with a `startblock`
        cursor. The cursor restarts at the last block seen, so transfers in
        that block are fetched twice and de-duplicated here. A block holding
        more than a full page is read with `page=2..` at the same cursor
        until the result window runs out.
        """
        seen: set[tuple[str, str, str, str, str]] = set()
        history: list[RawTransfer] = []
        start_block = 0
        page = 1
        pages = 0

        while True:
            if pages > 0 and self._page_delay_seconds > 0:
                await self._sleep(self._page_delay_seconds)

            batch = await self.fetch(
                address,
                kind,
                start_block=start_block,
                page=page,
                offset=self._page_size,
                sort="asc",
            )
            pages += 1

            for transfer in batch:
                if transfer.identity in seen:
                    continue
                seen.add(transfer.identity)
                history.append(transfer)

            if len(batch) < self._page_size:
                break

            last_block = max(t.block_number for t in batch)
            if last_block > start_block:
                start_block = last_block
                page = 1
            elif (page + 1) * self._page_size <= MAX_RESULT_WINDOW:
                page += 1
            else:
                logger.warning(
                    "Block %d for %s has more than %d %s transfers; skipping ahead",
                    last_block,
                    address,
                    MAX_RESULT_WINDOW,
                    kind.value,
                )
                start_block = last_block + 1
                page = 1

        logger.debug(
            "Fetched %d %s transfers for %s in %d pages",
            len(history),
            kind.value,
            address,
            pages,
        )
        return history

    def backoff_delay(self, retry_index: int) -> float:
        """Delay before retry number `retry_index` (0-based)."""
        schedule = self._backoff_schedule
        delay = schedule[min(retry_index, len(schedule) - 1)]
        return min(delay, self._backoff_max_seconds)

    async def _fetch_with_retry(
        self,
        address: str,
        kind: TransferKind,
        params: dict[str, str | int],
    ) -> list[RawTransfer]:
        attempts = self._max_retries + 1
        attempt = 0
        while True:
            try:
                return await self._request_once(kind, params)
            except ExplorerTransientError as e:
                if attempt >= self._max_retries:
                    logger.error(
                        "All %d attempts failed for %s %s: %s",
                        attempts,
                        kind.action,
                        address,
                        e,
                    )
                    raise
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Attempt %d/%d for %s %s failed: %s. Retrying in %.1f seconds...",
                    attempt + 1,
                    attempts,
                    kind.action,
                    address,
                    e,
                    delay,
                )
                attempt += 1
                await self._sleep(delay)

    async def _request_once(
        self,
        kind: TransferKind,
        params: dict[str, str | int],
    ) -> list[RawTransfer]:
        self._usage.record_call()
        try:
            response = await self._client.get(self._base_url, params=params)
        except httpx.TimeoutException as e:
            raise ExplorerTransientError(f"timed out after {self._timeout_seconds:.0f}s") from e
        except httpx.HTTPError as e:
            raise ExplorerTransientError(f"network error: {e}") from e

        if response.status_code == 429:
            raise ExplorerRateLimitError("HTTP 429 Too Many Requests")
        if response.status_code >= 400:
            raise ExplorerTransientError(f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ExplorerTransientError("response body is not JSON") from e

        result = decode_response(payload, kind)
        if isinstance(result, ExplorerOk):
            return list(result.transfers)
        if isinstance(result, ExplorerEmpty):
            return []
        if isinstance(result, ExplorerRateLimited):
            raise ExplorerRateLimitError(result.message)
        if isinstance(result, ExplorerInvalidCredential):
            raise ExplorerInvalidKeyError(result.message)
        raise ExplorerTransientError(f"unrecognized explorer response: {result.message}")
