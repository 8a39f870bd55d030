"""Age-based cleanup of the live payout tables."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from payout_tracker.storage.database import DatabaseManager
from payout_tracker.storage.repos import LivePayoutRepository

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes live payouts older than a horizon.

    Only the live table of the bound repository is touched; the month
    archive is never swept.
    """

    def __init__(
        self,
        db: DatabaseManager,
        repository: type[LivePayoutRepository],
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._db = db
        self._repository = repository
        self._clock = clock

    async def sweep(self, horizon_hours: float) -> int:
        """Delete rows with timestamp < now - horizon_hours.

        Returns:
            Number of rows deleted.
        """
        if horizon_hours <= 0:
            raise ValueError("horizon_hours must be > 0")
        cutoff = self._clock() - timedelta(hours=horizon_hours)
        async with self._db.get_async_session() as session:
            deleted = await self._repository(session).delete_older_than(cutoff)
        logger.info(
            "Swept %d rows older than %s from %s",
            deleted,
            cutoff.isoformat(),
            self._repository.model.__tablename__,
        )
        return deleted
