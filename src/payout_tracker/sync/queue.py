"""Redis-backed handoff of backfill jobs.

Linking a wallet enqueues a job instead of starting a detached task; a
worker drains the queue and runs the backfill, so every backfill goes
through the same entry point and failed jobs are retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis

from payout_tracker.errors import MissingCredentialError
from payout_tracker.payouts.models import SubjectKind
from payout_tracker.storage.database import DatabaseManager
from payout_tracker.storage.repos import TraderProfileDTO, TraderProfileRepository
from payout_tracker.sync.backfill import BackfillResult, HistoricalBackfill

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_KEY = "payout_tracker:backfill_jobs"


@dataclass(frozen=True)
class BackfillJob:
    """A pending backfill for a trader wallet or a firm."""

    subject_kind: SubjectKind
    subject_id: str
    requested_at: datetime
    attempts: int = 0

    def to_json(self) -> str:
        data = asdict(self)
        data["subject_kind"] = self.subject_kind.value
        data["requested_at"] = self.requested_at.isoformat()
        return json.dumps(data, sort_keys=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> BackfillJob:
        data: dict[str, Any] = json.loads(raw)
        return cls(
            subject_kind=SubjectKind(data["subject_kind"]),
            subject_id=str(data["subject_id"]),
            requested_at=datetime.fromisoformat(data["requested_at"]),
            attempts=int(data.get("attempts", 0)),
        )

    @classmethod
    def for_trader(cls, address: str) -> BackfillJob:
        return cls(SubjectKind.TRADER, address.lower(), datetime.now(UTC))

    @classmethod
    def for_firm(cls, firm_id: str) -> BackfillJob:
        return cls(SubjectKind.FIRM, firm_id, datetime.now(UTC))


class BackfillQueue:
    """FIFO list of backfill jobs (LPUSH / BRPOP)."""

    def __init__(self, redis: Redis, key: str = DEFAULT_QUEUE_KEY) -> None:
        self._redis = redis
        self._key = key

    async def enqueue(self, job: BackfillJob) -> None:
        await self._redis.lpush(self._key, job.to_json())
        logger.info("Enqueued %s backfill for %s", job.subject_kind.value, job.subject_id)

    async def dequeue(self, timeout: int = 5) -> BackfillJob | None:
        item = await self._redis.brpop([self._key], timeout=timeout)
        if item is None:
            return None
        _, raw = item
        try:
            return BackfillJob.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Dropping malformed backfill job %r: %s", raw, e)
            return None

    async def size(self) -> int:
        return int(await self._redis.llen(self._key))


class BackfillWorker:
    """Runs queued backfills one at a time."""

    def __init__(
        self,
        queue: BackfillQueue,
        backfill: HistoricalBackfill,
        *,
        max_attempts: int = 3,
        dequeue_timeout: int = 5,
    ) -> None:
        self._queue = queue
        self._backfill = backfill
        self._max_attempts = max_attempts
        self._dequeue_timeout = dequeue_timeout
        self._stop_event = asyncio.Event()
        self.jobs_completed = 0
        self.jobs_failed = 0

    async def process_one(self) -> BackfillResult | None:
        """Take one job off the queue and run it.

        Returns the result, or None when the queue was empty or the job
        failed. A failed job is re-queued with one more attempt until
        `max_attempts` is reached.

        Raises:
            MissingCredentialError: The job is put back and the worker
                should stop.
        """
        job = await self._queue.dequeue(timeout=self._dequeue_timeout)
        if job is None:
            return None

        try:
            if job.subject_kind is SubjectKind.TRADER:
                result = await self._backfill.backfill(job.subject_id)
            else:
                result = await self._backfill.backfill_firm(job.subject_id)
        except MissingCredentialError:
            await self._queue.enqueue(job)
            raise
        except Exception as e:
            # The job is already off the queue; put it back or drop it here.
            attempts = job.attempts + 1
            self.jobs_failed += 1
            if attempts < self._max_attempts:
                logger.warning(
                    "Backfill attempt %d/%d for %s failed: %s. Re-queued.",
                    attempts,
                    self._max_attempts,
                    job.subject_id,
                    e,
                )
                await self._queue.enqueue(replace(job, attempts=attempts))
            else:
                logger.error(
                    "Backfill for %s failed after %d attempts, dropping job: %s",
                    job.subject_id,
                    attempts,
                    e,
                )
            return None

        self.jobs_completed += 1
        return result

    async def run(self) -> None:
        """Drain the queue until stop() is called."""
        logger.info("Backfill worker started")
        while not self._stop_event.is_set():
            await self.process_one()
        logger.info(
            "Backfill worker stopped (%d completed, %d failed)",
            self.jobs_completed,
            self.jobs_failed,
        )

    def stop(self) -> None:
        self._stop_event.set()


async def link_trader_wallet(
    db: DatabaseManager,
    queue: BackfillQueue,
    profile_id: int,
    address: str,
) -> TraderProfileDTO:
    """Link a wallet to a trader profile and queue its backfill."""
    async with db.get_async_session() as session:
        profile = await TraderProfileRepository(session).link_wallet(profile_id, address)
    if profile.wallet_address is not None:
        await queue.enqueue(BackfillJob.for_trader(profile.wallet_address))
    return profile
