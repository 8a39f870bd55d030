"""Repository pattern implementations for data access.

This module provides data access for firms, trader profiles, the live
payout window and the month archive.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar

import sqlalchemy as sa
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from payout_tracker.payouts.aggregation import MonthBucket
from payout_tracker.payouts.models import PayoutRecord, SubjectKind, normalize_address
from payout_tracker.payouts.normalizer import dedupe_by_tx_hash
from payout_tracker.storage.models import (
    FirmModel,
    FirmWalletModel,
    PayoutMonthArchiveModel,
    RecentPayoutModel,
    TraderProfileModel,
    TraderRecentPayoutModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Rows per INSERT statement; keeps bound parameters under SQLite's limit.
UPSERT_CHUNK_SIZE = 500

_PAYOUT_UPDATE_COLUMNS = (
    "amount",
    "payment_method",
    "timestamp",
    "from_address",
    "to_address",
    "token",
    "block_number",
)


def _insert_for(session: AsyncSession) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT."""
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass
class FirmDTO:
    """Data transfer object for firms and their wallets."""

    id: str
    name: str
    wallets: tuple[str, ...] = ()
    last_payout_at: datetime | None = None
    last_payout_amount: Decimal | None = None
    last_payout_tx_hash: str | None = None
    last_payout_method: str | None = None
    last_synced_at: datetime | None = None

    @classmethod
    def from_model(cls, model: FirmModel, wallets: Sequence[str] = ()) -> FirmDTO:
        return cls(
            id=model.id,
            name=model.name,
            wallets=tuple(wallets),
            last_payout_at=_as_utc(model.last_payout_at) if model.last_payout_at else None,
            last_payout_amount=model.last_payout_amount,
            last_payout_tx_hash=model.last_payout_tx_hash,
            last_payout_method=model.last_payout_method,
            last_synced_at=_as_utc(model.last_synced_at) if model.last_synced_at else None,
        )


class FirmRepository:
    """Repository for firms, their payout wallets and the last-payout pointer."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_firm(self, firm_id: str, name: str) -> FirmDTO:
        existing = await self.session.get(FirmModel, firm_id)
        if existing is None:
            existing = FirmModel(id=firm_id, name=name)
            self.session.add(existing)
        else:
            existing.name = name
        await self.session.flush()
        return FirmDTO.from_model(existing, await self._wallets_of(firm_id))

    async def get(self, firm_id: str) -> FirmDTO | None:
        model = await self.session.get(FirmModel, firm_id, populate_existing=True)
        if model is None:
            return None
        return FirmDTO.from_model(model, await self._wallets_of(firm_id))

    async def add_wallet(self, firm_id: str, address: str) -> None:
        """Link a payout wallet to a firm (no-op if already linked)."""
        address = normalize_address(address)
        if await self.session.get(FirmModel, firm_id) is None:
            raise ValueError(f"Unknown firm: {firm_id}")
        stmt = _insert_for(self.session)(FirmWalletModel).values(
            firm_id=firm_id, address=address, created_at=datetime.now(UTC)
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["firm_id", "address"])
        await self.session.execute(stmt)
        await self.session.flush()

    async def remove_wallet(self, firm_id: str, address: str) -> bool:
        result = await self.session.execute(
            delete(FirmWalletModel).where(
                FirmWalletModel.firm_id == firm_id,
                FirmWalletModel.address == address.lower(),
            )
        )
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]

    async def list_tracked(self) -> list[FirmDTO]:
        """Firms with at least one payout wallet, ordered by id."""
        result = await self.session.execute(
            select(FirmModel, FirmWalletModel.address)
            .join(FirmWalletModel, FirmWalletModel.firm_id == FirmModel.id)
            .order_by(FirmModel.id, FirmWalletModel.address)
            .execution_options(populate_existing=True)
        )
        firms: dict[str, FirmModel] = {}
        wallets: dict[str, list[str]] = {}
        for firm, address in result.all():
            firms.setdefault(firm.id, firm)
            wallets.setdefault(firm.id, []).append(address)
        return [FirmDTO.from_model(firms[fid], wallets[fid]) for fid in firms]

    async def update_last_payout(
        self,
        firm_id: str,
        payout: PayoutRecord,
        *,
        synced_at: datetime,
    ) -> bool:
        """Move the last-payout pointer forward.

        The pointer only changes when `payout` is strictly newer than the
        stored one; `last_synced_at` is refreshed either way.

        Returns:
            True if the pointer advanced.
        """
        result = await self.session.execute(
            update(FirmModel)
            .where(
                FirmModel.id == firm_id,
                sa.or_(
                    FirmModel.last_payout_at.is_(None),
                    FirmModel.last_payout_at < payout.timestamp,
                ),
            )
            .values(
                last_payout_at=payout.timestamp,
                last_payout_amount=payout.amount_usd,
                last_payout_tx_hash=payout.tx_hash,
                last_payout_method=payout.payment_method,
                last_synced_at=synced_at,
            )
            .execution_options(synchronize_session=False)
        )
        advanced = (result.rowcount or 0) > 0  # type: ignore[attr-defined]
        if not advanced:
            await self.touch_synced(firm_id, synced_at)
        await self.session.flush()
        return advanced

    async def touch_synced(self, firm_id: str, synced_at: datetime) -> None:
        await self.session.execute(
            update(FirmModel).where(FirmModel.id == firm_id).values(last_synced_at=synced_at)
        )

    async def _wallets_of(self, firm_id: str) -> list[str]:
        result = await self.session.execute(
            select(FirmWalletModel.address)
            .where(FirmWalletModel.firm_id == firm_id)
            .order_by(FirmWalletModel.address)
        )
        return [row[0] for row in result.all()]


@dataclass
class TraderProfileDTO:
    id: int
    handle: str
    wallet_address: str | None = None
    backfilled_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TraderProfileModel) -> TraderProfileDTO:
        return cls(
            id=model.id,
            handle=model.handle,
            wallet_address=model.wallet_address,
            backfilled_at=_as_utc(model.backfilled_at) if model.backfilled_at else None,
        )


class TraderProfileRepository:
    """Repository for trader profiles and their linked payout wallets."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, handle: str, wallet_address: str | None = None) -> TraderProfileDTO:
        model = TraderProfileModel(
            handle=handle,
            wallet_address=normalize_address(wallet_address) if wallet_address else None,
        )
        self.session.add(model)
        await self.session.flush()
        return TraderProfileDTO.from_model(model)

    async def get(self, profile_id: int) -> TraderProfileDTO | None:
        model = await self.session.get(TraderProfileModel, profile_id)
        return TraderProfileDTO.from_model(model) if model else None

    async def get_by_wallet(self, address: str) -> TraderProfileDTO | None:
        result = await self.session.execute(
            select(TraderProfileModel).where(TraderProfileModel.wallet_address == address.lower())
        )
        model = result.scalar_one_or_none()
        return TraderProfileDTO.from_model(model) if model else None

    async def list_linked_wallets(self) -> list[str]:
        result = await self.session.execute(
            select(TraderProfileModel.wallet_address)
            .where(TraderProfileModel.wallet_address.is_not(None))
            .order_by(TraderProfileModel.id)
        )
        return [row[0] for row in result.all()]

    async def link_wallet(self, profile_id: int, address: str) -> TraderProfileDTO:
        """Attach a wallet to a profile, clearing any previous backfill stamp."""
        model = await self.session.get(TraderProfileModel, profile_id)
        if model is None:
            raise ValueError(f"Unknown trader profile: {profile_id}")
        normalized = normalize_address(address)
        if model.wallet_address != normalized:
            model.wallet_address = normalized
            model.backfilled_at = None
        await self.session.flush()
        return TraderProfileDTO.from_model(model)

    async def unlink_wallet(self, profile_id: int) -> bool:
        model = await self.session.get(TraderProfileModel, profile_id)
        if model is None or model.wallet_address is None:
            return False
        model.wallet_address = None
        model.backfilled_at = None
        await self.session.flush()
        return True

    async def mark_backfilled(self, address: str, at: datetime) -> bool:
        result = await self.session.execute(
            update(TraderProfileModel)
            .where(TraderProfileModel.wallet_address == address.lower())
            .values(backfilled_at=at)
        )
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]


class LivePayoutRepository:
    """Shared upsert/sweep logic for the live payout tables.

    Rows are keyed by tx_hash; writing the same payout again replaces every
    non-key field, so repeated sweeps converge.
    """

    model: ClassVar[type[RecentPayoutModel] | type[TraderRecentPayoutModel]]
    subject_column: ClassVar[str]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _row(self, record: PayoutRecord, now: datetime) -> dict[str, Any]:
        return {
            "tx_hash": record.tx_hash,
            self.subject_column: record.subject,
            "amount": record.amount_usd,
            "payment_method": record.payment_method,
            "timestamp": record.timestamp,
            "from_address": record.from_address,
            "to_address": record.to_address,
            "token": record.token,
            "block_number": record.block_number,
            "created_at": now,
            "updated_at": now,
        }

    async def upsert_many(self, records: Sequence[PayoutRecord]) -> int:
        """Insert or replace payouts by tx_hash.

        Returns:
            Number of distinct payouts written.
        """
        unique = dedupe_by_tx_hash(records)
        if not unique:
            return 0

        now = datetime.now(UTC)
        insert_fn = _insert_for(self.session)
        for start in range(0, len(unique), UPSERT_CHUNK_SIZE):
            chunk = unique[start : start + UPSERT_CHUNK_SIZE]
            stmt = insert_fn(self.model).values([self._row(r, now) for r in chunk])
            set_ = {column: stmt.excluded[column] for column in (self.subject_column, *_PAYOUT_UPDATE_COLUMNS)}
            set_["updated_at"] = now
            stmt = stmt.on_conflict_do_update(index_elements=["tx_hash"], set_=set_)
            await self.session.execute(stmt)
        await self.session.flush()
        return len(unique)

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(self.model)
            .where(self.model.timestamp < cutoff)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def get(self, tx_hash: str) -> PayoutRecord | None:
        model = await self.session.get(self.model, tx_hash.lower(), populate_existing=True)
        return self._to_record(model) if model else None

    async def list_for_subject(
        self,
        subject: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[PayoutRecord]:
        """Payouts for one subject, newest first, within [since, until)."""
        subject_col = getattr(self.model, self.subject_column)
        stmt = select(self.model).where(subject_col == subject)
        if since is not None:
            stmt = stmt.where(self.model.timestamp >= since)
        if until is not None:
            stmt = stmt.where(self.model.timestamp < until)
        stmt = stmt.order_by(self.model.timestamp.desc()).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return [self._to_record(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(select(sa.func.count()).select_from(self.model))
        return int(result.scalar_one())

    def _to_record(self, model: RecentPayoutModel | TraderRecentPayoutModel) -> PayoutRecord:
        return PayoutRecord(
            tx_hash=model.tx_hash,
            subject=getattr(model, self.subject_column),
            amount_usd=Decimal(model.amount),
            payment_method=model.payment_method,
            timestamp=_as_utc(model.timestamp),
            from_address=model.from_address,
            to_address=model.to_address,
            token=model.token,
            block_number=model.block_number,
        )


class FirmPayoutRepository(LivePayoutRepository):
    model = RecentPayoutModel
    subject_column = "firm_id"


class TraderPayoutRepository(LivePayoutRepository):
    model = TraderRecentPayoutModel
    subject_column = "wallet_address"


@dataclass
class MonthArchiveDTO:
    subject_kind: str
    subject_id: str
    year_month: str
    data: dict[str, Any]
    payout_count: int
    total_usd: Decimal
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: PayoutMonthArchiveModel) -> MonthArchiveDTO:
        return cls(
            subject_kind=model.subject_kind,
            subject_id=model.subject_id,
            year_month=model.year_month,
            data=model.data,
            payout_count=model.payout_count,
            total_usd=Decimal(model.total_usd),
            updated_at=_as_utc(model.updated_at) if model.updated_at else None,
        )


class MonthArchiveRepository:
    """Repository for month-bucketed historical payouts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_months(
        self,
        subject_kind: SubjectKind,
        subject_id: str,
        buckets: Sequence[MonthBucket],
    ) -> int:
        """Replace the stored months for a subject with the given buckets.

        Months not present in `buckets` are left untouched.
        """
        if not buckets:
            return 0
        now = datetime.now(UTC)
        rows = [
            {
                "subject_kind": subject_kind.value,
                "subject_id": subject_id,
                "year_month": bucket.year_month,
                "data": bucket.to_dict(),
                "payout_count": bucket.summary.payout_count,
                "total_usd": bucket.summary.total_payouts,
                "updated_at": now,
            }
            for bucket in buckets
        ]
        stmt = _insert_for(self.session)(PayoutMonthArchiveModel).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["subject_kind", "subject_id", "year_month"],
            set_={
                "data": stmt.excluded["data"],
                "payout_count": stmt.excluded["payout_count"],
                "total_usd": stmt.excluded["total_usd"],
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)

    async def get(self, subject_kind: SubjectKind, subject_id: str, year_month: str) -> MonthArchiveDTO | None:
        model = await self.session.get(
            PayoutMonthArchiveModel,
            (subject_kind.value, subject_id, year_month),
            populate_existing=True,
        )
        return MonthArchiveDTO.from_model(model) if model else None

    async def list_months(self, subject_kind: SubjectKind, subject_id: str) -> list[str]:
        result = await self.session.execute(
            select(PayoutMonthArchiveModel.year_month)
            .where(
                PayoutMonthArchiveModel.subject_kind == subject_kind.value,
                PayoutMonthArchiveModel.subject_id == subject_id,
            )
            .order_by(PayoutMonthArchiveModel.year_month)
        )
        return [row[0] for row in result.all()]
