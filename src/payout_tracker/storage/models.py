"""SQLAlchemy models for persistent storage.

This module defines the database schema for tracked firms and traders,
the rolling live payout window and the month-bucketed payout archive.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class FirmModel(Base):
    """A trading firm whose payout wallets are tracked."""

    __tablename__ = "firms"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Pointer to the newest payout seen; only ever moves forward.
    last_payout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_payout_amount: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)
    last_payout_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    last_payout_method: Mapped[str | None] = mapped_column(String(16), nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class FirmWalletModel(Base):
    """Payout wallet owned by a firm."""

    __tablename__ = "firm_wallets"

    firm_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("firms.id", ondelete="CASCADE"), primary_key=True
    )
    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (Index("idx_firm_wallets_address", "address"),)


class TraderProfileModel(Base):
    """A trader profile, optionally linked to a payout wallet."""

    __tablename__ = "trader_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    handle: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    wallet_address: Mapped[str | None] = mapped_column(String(42), nullable=True, unique=True)
    backfilled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class RecentPayoutModel(Base):
    """Firm-side live payout window (rolling, swept by age)."""

    __tablename__ = "recent_payouts"

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    firm_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    from_address: Mapped[str] = mapped_column(String(42), nullable=False)
    to_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(16), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_recent_payouts_firm_ts", "firm_id", "timestamp"),
        Index("idx_recent_payouts_ts", "timestamp"),
    )


class TraderRecentPayoutModel(Base):
    """Trader-side live payout window (rolling, swept by age)."""

    __tablename__ = "recent_trader_payouts"

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    from_address: Mapped[str] = mapped_column(String(42), nullable=False)
    to_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(16), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_recent_trader_payouts_wallet_ts", "wallet_address", "timestamp"),
        Index("idx_recent_trader_payouts_ts", "timestamp"),
    )


class PayoutMonthArchiveModel(Base):
    """One month of historical payouts for a firm or trader wallet."""

    __tablename__ = "payout_month_archives"

    subject_kind: Mapped[str] = mapped_column(String(8), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    year_month: Mapped[str] = mapped_column(String(7), primary_key=True)

    # {summary, dailyBuckets, transactions}
    data: Mapped[dict[str, Any]] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    payout_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_usd: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (Index("idx_payout_month_archives_subject", "subject_kind", "subject_id"),)
