"""Initial payout tracker schema.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _payout_columns(subject_column: sa.Column) -> list[sa.Column]:
    return [
        sa.Column("tx_hash", sa.String(66), nullable=False),
        subject_column,
        sa.Column("amount", sa.Numeric(20, 2), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("from_address", sa.String(42), nullable=False),
        sa.Column("to_address", sa.String(42), nullable=False),
        sa.Column("token", sa.String(16), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("tx_hash"),
    ]


def upgrade() -> None:
    op.create_table(
        "firms",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("last_payout_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payout_amount", sa.Numeric(20, 2), nullable=True),
        sa.Column("last_payout_tx_hash", sa.String(66), nullable=True),
        sa.Column("last_payout_method", sa.String(16), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "firm_wallets",
        sa.Column("firm_id", sa.String(64), nullable=False),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("firm_id", "address"),
    )
    op.create_index("idx_firm_wallets_address", "firm_wallets", ["address"])

    op.create_table(
        "trader_profiles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("handle", sa.String(100), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=True),
        sa.Column("backfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("handle"),
        sa.UniqueConstraint("wallet_address"),
    )

    op.create_table(
        "recent_payouts",
        *_payout_columns(sa.Column("firm_id", sa.String(64), nullable=False)),
    )
    op.create_index("idx_recent_payouts_firm_ts", "recent_payouts", ["firm_id", "timestamp"])
    op.create_index("idx_recent_payouts_ts", "recent_payouts", ["timestamp"])

    op.create_table(
        "recent_trader_payouts",
        *_payout_columns(sa.Column("wallet_address", sa.String(42), nullable=False)),
    )
    op.create_index(
        "idx_recent_trader_payouts_wallet_ts",
        "recent_trader_payouts",
        ["wallet_address", "timestamp"],
    )
    op.create_index("idx_recent_trader_payouts_ts", "recent_trader_payouts", ["timestamp"])

    op.create_table(
        "payout_month_archives",
        sa.Column("subject_kind", sa.String(8), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("year_month", sa.String(7), nullable=False),
        sa.Column("data", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=False),
        sa.Column("payout_count", sa.Integer(), nullable=False),
        sa.Column("total_usd", sa.Numeric(20, 2), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("subject_kind", "subject_id", "year_month"),
    )
    op.create_index(
        "idx_payout_month_archives_subject",
        "payout_month_archives",
        ["subject_kind", "subject_id"],
    )


def downgrade() -> None:
    op.drop_index("idx_payout_month_archives_subject", table_name="payout_month_archives")
    op.drop_table("payout_month_archives")
    op.drop_index("idx_recent_trader_payouts_ts", table_name="recent_trader_payouts")
    op.drop_index("idx_recent_trader_payouts_wallet_ts", table_name="recent_trader_payouts")
    op.drop_table("recent_trader_payouts")
    op.drop_index("idx_recent_payouts_ts", table_name="recent_payouts")
    op.drop_index("idx_recent_payouts_firm_ts", table_name="recent_payouts")
    op.drop_table("recent_payouts")
    op.drop_table("trader_profiles")
    op.drop_index("idx_firm_wallets_address", table_name="firm_wallets")
    op.drop_table("firm_wallets")
    op.drop_table("firms")
