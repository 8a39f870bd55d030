"""Storage layer - Database schemas and repositories."""

from payout_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from payout_tracker.storage.models import (
    Base,
    FirmModel,
    FirmWalletModel,
    PayoutMonthArchiveModel,
    RecentPayoutModel,
    TraderProfileModel,
    TraderRecentPayoutModel,
)
from payout_tracker.storage.repos import (
    FirmDTO,
    FirmPayoutRepository,
    FirmRepository,
    LivePayoutRepository,
    MonthArchiveDTO,
    MonthArchiveRepository,
    TraderPayoutRepository,
    TraderProfileDTO,
    TraderProfileRepository,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "FirmDTO",
    "FirmModel",
    "FirmPayoutRepository",
    "FirmRepository",
    "FirmWalletModel",
    "LivePayoutRepository",
    "MonthArchiveDTO",
    "MonthArchiveRepository",
    "PayoutMonthArchiveModel",
    "RecentPayoutModel",
    "TraderPayoutRepository",
    "TraderProfileDTO",
    "TraderProfileModel",
    "TraderProfileRepository",
    "TraderRecentPayoutModel",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
