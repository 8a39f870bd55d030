"""Tests for storage repositories."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from payout_tracker.payouts.aggregation import build_month_bucket
from payout_tracker.payouts.models import PayoutRecord, SubjectKind
from payout_tracker.storage.database import DatabaseManager
from payout_tracker.storage.repos import (
    FirmPayoutRepository,
    FirmRepository,
    MonthArchiveRepository,
    TraderPayoutRepository,
    TraderProfileRepository,
)

FIRM_WALLET = "0xf00000000000000000000000000000000000000f"
SECOND_WALLET = "0xe00000000000000000000000000000000000000e"
TRADER_WALLET = "0xa00000000000000000000000000000000000000a"
WHEN = datetime(2025, 3, 15, 10, 0, tzinfo=UTC)


def payout(tx_hash: str, subject: str, when: datetime = WHEN, amount: str = "100.00") -> PayoutRecord:
    return PayoutRecord(
        tx_hash=tx_hash,
        subject=subject,
        amount_usd=Decimal(amount),
        payment_method="crypto",
        timestamp=when,
        from_address=FIRM_WALLET,
        to_address=TRADER_WALLET,
        token="USDC",
        block_number=42,
    )


# ============================================================================
# FirmRepository Tests
# ============================================================================


class TestFirmRepository:
    """Tests for FirmRepository."""

    @pytest.mark.asyncio
    async def test_upsert_and_wallets(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = FirmRepository(session)
            await repo.upsert_firm("acme", "Acme")
            await repo.add_wallet("acme", FIRM_WALLET.upper().replace("0X", "0x"))
            await repo.add_wallet("acme", FIRM_WALLET)
            await repo.add_wallet("acme", SECOND_WALLET)
            await repo.upsert_firm("acme", "Acme Funding")

        async with db.get_async_session() as session:
            firm = await FirmRepository(session).get("acme")

        assert firm is not None
        assert firm.name == "Acme Funding"
        assert firm.wallets == (SECOND_WALLET, FIRM_WALLET)

    @pytest.mark.asyncio
    async def test_add_wallet_unknown_firm(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            with pytest.raises(ValueError, match="Unknown firm"):
                await FirmRepository(session).add_wallet("ghost", FIRM_WALLET)

    @pytest.mark.asyncio
    async def test_list_tracked_skips_firms_without_wallets(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = FirmRepository(session)
            await repo.upsert_firm("acme", "Acme")
            await repo.upsert_firm("empty", "No Wallets")
            await repo.add_wallet("acme", FIRM_WALLET)

        async with db.get_async_session() as session:
            firms = await FirmRepository(session).list_tracked()

        assert [f.id for f in firms] == ["acme"]
        assert firms[0].wallets == (FIRM_WALLET,)

    @pytest.mark.asyncio
    async def test_remove_wallet(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = FirmRepository(session)
            await repo.upsert_firm("acme", "Acme")
            await repo.add_wallet("acme", FIRM_WALLET)
            assert await repo.remove_wallet("acme", FIRM_WALLET) is True
            assert await repo.remove_wallet("acme", FIRM_WALLET) is False

    @pytest.mark.asyncio
    async def test_last_payout_pointer_is_monotonic(self, db: DatabaseManager) -> None:
        synced_first = WHEN + timedelta(minutes=5)
        synced_second = WHEN + timedelta(minutes=10)
        newer = payout("0xnew", "acme", when=WHEN, amount="500.00")
        older = payout("0xold", "acme", when=WHEN - timedelta(hours=2), amount="900.00")

        async with db.get_async_session() as session:
            repo = FirmRepository(session)
            await repo.upsert_firm("acme", "Acme")
            assert await repo.update_last_payout("acme", newer, synced_at=synced_first) is True

        async with db.get_async_session() as session:
            assert await FirmRepository(session).update_last_payout("acme", older, synced_at=synced_second) is False

        async with db.get_async_session() as session:
            firm = await FirmRepository(session).get("acme")

        assert firm is not None
        assert firm.last_payout_tx_hash == "0xnew"
        assert firm.last_payout_amount == Decimal("500.00")
        assert firm.last_payout_at == WHEN
        assert firm.last_synced_at == synced_second

    @pytest.mark.asyncio
    async def test_equal_timestamp_does_not_move_pointer(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = FirmRepository(session)
            await repo.upsert_firm("acme", "Acme")
            await repo.update_last_payout("acme", payout("0x1", "acme"), synced_at=WHEN)
            assert await repo.update_last_payout("acme", payout("0x2", "acme"), synced_at=WHEN) is False


# ============================================================================
# TraderProfileRepository Tests
# ============================================================================


class TestTraderProfileRepository:
    """Tests for TraderProfileRepository."""

    @pytest.mark.asyncio
    async def test_link_wallet_resets_backfill_stamp(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = TraderProfileRepository(session)
            profile = await repo.create("alice", TRADER_WALLET)
            await repo.mark_backfilled(TRADER_WALLET, WHEN)

        async with db.get_async_session() as session:
            stamped = await TraderProfileRepository(session).get_by_wallet(TRADER_WALLET)
        assert stamped is not None
        assert stamped.backfilled_at == WHEN

        async with db.get_async_session() as session:
            relinked = await TraderProfileRepository(session).link_wallet(profile.id, SECOND_WALLET)

        assert relinked.wallet_address == SECOND_WALLET
        assert relinked.backfilled_at is None

    @pytest.mark.asyncio
    async def test_link_wallet_unknown_profile(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            with pytest.raises(ValueError, match="Unknown trader profile"):
                await TraderProfileRepository(session).link_wallet(999, TRADER_WALLET)

    @pytest.mark.asyncio
    async def test_list_linked_wallets(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = TraderProfileRepository(session)
            await repo.create("alice", TRADER_WALLET)
            bob = await repo.create("bob")
            await repo.create("carol", SECOND_WALLET)
            assert await repo.unlink_wallet(bob.id) is False

        async with db.get_async_session() as session:
            wallets = await TraderProfileRepository(session).list_linked_wallets()

        assert wallets == [TRADER_WALLET, SECOND_WALLET]


# ============================================================================
# Live payout repository Tests
# ============================================================================


class TestLivePayoutRepositories:
    """Tests for the firm and trader live tables."""

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, db: DatabaseManager) -> None:
        records = [payout("0x1", "acme"), payout("0x2", "acme", amount="250.00")]

        for _ in range(2):
            async with db.get_async_session() as session:
                assert await FirmPayoutRepository(session).upsert_many(records) == 2

        async with db.get_async_session() as session:
            repo = FirmPayoutRepository(session)
            assert await repo.count() == 2
            stored = await repo.get("0x2")

        assert stored == records[1]

    @pytest.mark.asyncio
    async def test_upsert_replaces_non_key_fields(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            await FirmPayoutRepository(session).upsert_many([payout("0x1", "acme", amount="100.00")])
        async with db.get_async_session() as session:
            await FirmPayoutRepository(session).upsert_many([payout("0x1", "acme", amount="120.00")])

        async with db.get_async_session() as session:
            stored = await FirmPayoutRepository(session).get("0x1")

        assert stored is not None
        assert stored.amount_usd == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_upsert_empty_batch(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            assert await TraderPayoutRepository(session).upsert_many([]) == 0

    @pytest.mark.asyncio
    async def test_firm_and_trader_tables_are_separate(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            await FirmPayoutRepository(session).upsert_many([payout("0x1", "acme")])
            await TraderPayoutRepository(session).upsert_many([payout("0x1", TRADER_WALLET)])

        async with db.get_async_session() as session:
            firm_rows = await FirmPayoutRepository(session).list_for_subject("acme")
            trader_rows = await TraderPayoutRepository(session).list_for_subject(TRADER_WALLET)

        assert [r.subject for r in firm_rows] == ["acme"]
        assert [r.subject for r in trader_rows] == [TRADER_WALLET]

    @pytest.mark.asyncio
    async def test_list_for_subject_window_newest_first(self, db: DatabaseManager) -> None:
        records = [
            payout("0x1", "acme", when=WHEN - timedelta(days=40)),
            payout("0x2", "acme", when=WHEN - timedelta(hours=3)),
            payout("0x3", "acme", when=WHEN),
        ]
        async with db.get_async_session() as session:
            await FirmPayoutRepository(session).upsert_many(records)

        async with db.get_async_session() as session:
            recent = await FirmPayoutRepository(session).list_for_subject(
                "acme", since=WHEN - timedelta(days=1), until=WHEN + timedelta(seconds=1)
            )

        assert [r.tx_hash for r in recent] == ["0x3", "0x2"]

    @pytest.mark.asyncio
    async def test_delete_older_than(self, db: DatabaseManager) -> None:
        records = [
            payout("0x1", "acme", when=WHEN - timedelta(hours=30)),
            payout("0x2", "acme", when=WHEN - timedelta(hours=1)),
        ]
        async with db.get_async_session() as session:
            await FirmPayoutRepository(session).upsert_many(records)

        async with db.get_async_session() as session:
            deleted = await FirmPayoutRepository(session).delete_older_than(WHEN - timedelta(hours=24))

        async with db.get_async_session() as session:
            remaining = await FirmPayoutRepository(session).list_for_subject("acme")

        assert deleted == 1
        assert [r.tx_hash for r in remaining] == ["0x2"]


# ============================================================================
# MonthArchiveRepository Tests
# ============================================================================


class TestMonthArchiveRepository:
    """Tests for MonthArchiveRepository."""

    @pytest.mark.asyncio
    async def test_upsert_months_replaces_bucket(self, db: DatabaseManager) -> None:
        first = build_month_bucket("2025-03", [payout("0x1", TRADER_WALLET)])
        second = build_month_bucket(
            "2025-03",
            [payout("0x1", TRADER_WALLET), payout("0x2", TRADER_WALLET, amount="50.00")],
        )

        async with db.get_async_session() as session:
            await MonthArchiveRepository(session).upsert_months(SubjectKind.TRADER, TRADER_WALLET, [first])
        async with db.get_async_session() as session:
            await MonthArchiveRepository(session).upsert_months(SubjectKind.TRADER, TRADER_WALLET, [second])

        async with db.get_async_session() as session:
            repo = MonthArchiveRepository(session)
            stored = await repo.get(SubjectKind.TRADER, TRADER_WALLET, "2025-03")
            months = await repo.list_months(SubjectKind.TRADER, TRADER_WALLET)

        assert stored is not None
        assert stored.payout_count == 2
        assert stored.total_usd == Decimal("150.00")
        assert stored.data == second.to_dict()
        assert months == ["2025-03"]

    @pytest.mark.asyncio
    async def test_subjects_do_not_collide(self, db: DatabaseManager) -> None:
        bucket = build_month_bucket("2025-03", [payout("0x1", "acme")])

        async with db.get_async_session() as session:
            repo = MonthArchiveRepository(session)
            await repo.upsert_months(SubjectKind.FIRM, "acme", [bucket])
            assert await repo.upsert_months(SubjectKind.TRADER, "acme", []) == 0

        async with db.get_async_session() as session:
            assert await MonthArchiveRepository(session).get(SubjectKind.TRADER, "acme", "2025-03") is None
