"""Consistency check between the month archive and the live window."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from payout_tracker.payouts.models import SubjectKind
from payout_tracker.storage.database import DatabaseManager
from payout_tracker.storage.repos import FirmPayoutRepository, MonthArchiveRepository

logger = logging.getLogger(__name__)


@dataclass
class OverlapReport:
    """How well a month's archive agrees with the live rows of that month."""

    firm_id: str
    year_month: str
    archive_count: int
    live_count: int
    missing_in_archive: list[str] = field(default_factory=list)
    missing_in_live: list[str] = field(default_factory=list)

    @property
    def match_rate(self) -> float | None:
        """Share of live payouts also present in the archive."""
        if self.live_count == 0:
            return None
        matched = self.live_count - len(self.missing_in_archive)
        return matched / self.live_count

    @property
    def is_consistent(self) -> bool:
        return not self.missing_in_archive

    def to_dict(self) -> dict[str, object]:
        return {
            "firmId": self.firm_id,
            "yearMonth": self.year_month,
            "archiveCount": self.archive_count,
            "liveCount": self.live_count,
            "missingInArchive": self.missing_in_archive,
            "missingInLive": self.missing_in_live,
            "matchRate": self.match_rate,
        }


def month_bounds(year_month: str) -> tuple[datetime, datetime]:
    """[start, end) of a UTC calendar month given as YYYY-MM."""
    start = datetime.strptime(year_month, "%Y-%m").replace(tzinfo=UTC)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


async def validate_month_overlap(db: DatabaseManager, firm_id: str, year_month: str) -> OverlapReport:
    """Compare archived and live payout hashes for one firm month.

    The live window is short, so `missing_in_live` is expected for most of
    the month; `missing_in_archive` means the archive is stale.
    """
    start, end = month_bounds(year_month)
    async with db.get_async_session() as session:
        archive = await MonthArchiveRepository(session).get(SubjectKind.FIRM, firm_id, year_month)
        live = await FirmPayoutRepository(session).list_for_subject(firm_id, since=start, until=end)

    archive_hashes = {tx["tx_hash"] for tx in archive.data.get("transactions", [])} if archive else set()
    live_hashes = {record.tx_hash for record in live}

    report = OverlapReport(
        firm_id=firm_id,
        year_month=year_month,
        archive_count=len(archive_hashes),
        live_count=len(live_hashes),
        missing_in_archive=sorted(live_hashes - archive_hashes),
        missing_in_live=sorted(archive_hashes - live_hashes),
    )
    if report.missing_in_archive:
        logger.warning(
            "Archive for %s %s is missing %d live payouts",
            firm_id,
            year_month,
            len(report.missing_in_archive),
        )
    return report
