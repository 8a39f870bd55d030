"""Daily explorer call accounting."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 100_000
WARNING_THRESHOLDS = (0.80, 0.90, 0.95)


def _utc_today() -> date:
    return datetime.now(UTC).date()


class UsageTracker:
    """Counts HTTP attempts per UTC day against the explorer's daily quota.

    Logs a warning once each time usage crosses 80%, 90% and 95% of the
    limit. Counting never blocks a call.
    """

    def __init__(
        self,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        *,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._daily_limit = daily_limit
        self._today = today
        self._day = today()
        self._calls = 0
        self._warned: set[float] = set()

    @property
    def calls_today(self) -> int:
        self._roll_day()
        return self._calls

    @property
    def usage_ratio(self) -> float:
        return self.calls_today / self._daily_limit

    def record_call(self) -> None:
        self._roll_day()
        self._calls += 1
        ratio = self._calls / self._daily_limit
        for threshold in WARNING_THRESHOLDS:
            if ratio >= threshold and threshold not in self._warned:
                self._warned.add(threshold)
                logger.warning(
                    "Explorer usage at %.0f%% of daily limit (%d/%d calls)",
                    threshold * 100,
                    self._calls,
                    self._daily_limit,
                )

    def _roll_day(self) -> None:
        today = self._today()
        if today != self._day:
            self._day = today
            self._calls = 0
            self._warned.clear()
