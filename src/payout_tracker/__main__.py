"""Command line entry point: `python -m payout_tracker <command>`."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Sequence
from typing import Any

from redis.asyncio import Redis

from payout_tracker.config import Settings, get_settings
from payout_tracker.explorer.client import ExplorerClient
from payout_tracker.payouts.normalizer import TransferNormalizer
from payout_tracker.payouts.pricing import StaticPriceTable
from payout_tracker.storage.database import DatabaseManager
from payout_tracker.storage.repos import FirmPayoutRepository, FirmRepository, TraderPayoutRepository
from payout_tracker.sync.backfill import HistoricalBackfill
from payout_tracker.sync.firm_sync import FirmPayoutSync
from payout_tracker.sync.queue import BackfillJob, BackfillQueue, BackfillWorker, link_trader_wallet
from payout_tracker.sync.retention import RetentionSweeper
from payout_tracker.sync.scheduler import SyncScheduler
from payout_tracker.sync.trader_sync import TraderPayoutSync
from payout_tracker.sync.validation import validate_month_overlap

logger = logging.getLogger("payout_tracker")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="payout_tracker", description="On-chain payout tracker")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables (local/dev; use alembic in production)")
    sub.add_parser("sync-firms", help="Run one live sweep over all firms")
    sub.add_parser("sync-traders", help="Run one live sweep over all linked trader wallets")

    p = sub.add_parser("sync-firm", help="Sync a single firm")
    p.add_argument("firm_id")

    p = sub.add_parser("sync-wallet", help="Sync a single trader wallet")
    p.add_argument("address")

    p = sub.add_parser("backfill", help="Backfill full history of a trader wallet")
    p.add_argument("address")

    p = sub.add_parser("backfill-firm", help="Backfill full history of a firm")
    p.add_argument("firm_id")

    p = sub.add_parser("sweep", help="Delete live payouts older than the retention horizon")
    p.add_argument("--hours", type=float, default=None, help="Horizon in hours (default: SYNC_RETENTION_HOURS)")
    p.add_argument("--side", choices=("firm", "trader", "both"), default="both")

    sub.add_parser("run", help="Run live sweeps on SYNC_INTERVAL_SECONDS until interrupted")
    sub.add_parser("worker", help="Drain the backfill queue until interrupted")

    p = sub.add_parser("enqueue-backfill", help="Queue a backfill job")
    target = p.add_mutually_exclusive_group(required=True)
    target.add_argument("--address", help="Trader wallet address")
    target.add_argument("--firm", help="Firm id")

    p = sub.add_parser("add-firm", help="Create or rename a firm and attach wallets")
    p.add_argument("firm_id")
    p.add_argument("name")
    p.add_argument("--wallet", action="append", default=[], help="Payout wallet (repeatable)")

    p = sub.add_parser("link-wallet", help="Link a wallet to a trader profile and queue its backfill")
    p.add_argument("profile_id", type=int)
    p.add_argument("address")

    p = sub.add_parser("validate-overlap", help="Compare a firm month archive with the live window")
    p.add_argument("firm_id")
    p.add_argument("year_month", help="YYYY-MM")

    return parser


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _build_normalizer(settings: Settings) -> TransferNormalizer:
    return TransferNormalizer(
        StaticPriceTable.from_settings(settings.pricing),
        min_usd=settings.sync.min_payout_usd,
        supported_tokens=settings.pricing.supported_tokens,
    )


def _sync_options(settings: Settings) -> dict[str, Any]:
    return {
        "live_window_hours": settings.sync.live_window_hours,
        "retention_hours": settings.sync.retention_hours,
        "inter_wallet_delay_seconds": settings.sync.inter_wallet_delay_seconds,
    }


async def _run_command(args: argparse.Namespace, settings: Settings) -> int:
    db = DatabaseManager(settings.database.url)
    explorer = ExplorerClient.from_settings(settings.explorer)
    normalizer = _build_normalizer(settings)
    redis: Redis | None = None

    firm_sync = FirmPayoutSync(
        explorer,
        db,
        normalizer,
        inter_address_delay_seconds=settings.sync.inter_address_delay_seconds,
        **_sync_options(settings),
    )
    trader_sync = TraderPayoutSync(explorer, db, normalizer, **_sync_options(settings))
    backfill = HistoricalBackfill(explorer, db, normalizer)

    try:
        command = args.command
        if command == "init-db":
            await db.init_schema_async()
        elif command == "sync-firms":
            _print_json((await firm_sync.sync_all_firms()).to_dict())
        elif command == "sync-traders":
            _print_json((await trader_sync.sync_all_traders_realtime()).to_dict())
        elif command == "sync-firm":
            result = await firm_sync.sync_firm(args.firm_id)
            _print_json({"firmId": result.subject, "newPayouts": result.new_payouts})
        elif command == "sync-wallet":
            result = await trader_sync.sync_wallet(args.address)
            _print_json({"wallet": result.subject, "newPayouts": result.new_payouts})
        elif command == "backfill":
            _print_json((await backfill.backfill(args.address)).to_dict())
        elif command == "backfill-firm":
            _print_json((await backfill.backfill_firm(args.firm_id)).to_dict())
        elif command == "sweep":
            hours = args.hours if args.hours is not None else settings.sync.retention_hours
            deleted: dict[str, int] = {}
            if args.side in ("firm", "both"):
                deleted["firm"] = await RetentionSweeper(db, FirmPayoutRepository).sweep(hours)
            if args.side in ("trader", "both"):
                deleted["trader"] = await RetentionSweeper(db, TraderPayoutRepository).sweep(hours)
            _print_json({"deleted": deleted, "horizonHours": hours})
        elif command == "run":
            scheduler = SyncScheduler(firm_sync, trader_sync, interval_seconds=settings.sync.interval_seconds)
            _install_stop_handler(scheduler.stop)
            await scheduler.run()
        elif command in ("worker", "enqueue-backfill", "link-wallet"):
            redis = Redis.from_url(settings.redis.url)
            queue = BackfillQueue(redis, settings.backfill.queue_key)
            if command == "worker":
                worker = BackfillWorker(
                    queue,
                    backfill,
                    max_attempts=settings.backfill.max_attempts,
                    dequeue_timeout=settings.backfill.dequeue_timeout_seconds,
                )
                _install_stop_handler(worker.stop)
                await worker.run()
            elif command == "enqueue-backfill":
                job = BackfillJob.for_firm(args.firm) if args.firm else BackfillJob.for_trader(args.address)
                await queue.enqueue(job)
                _print_json({"queued": job.subject_id, "pending": await queue.size()})
            else:
                profile = await link_trader_wallet(db, queue, args.profile_id, args.address)
                _print_json({"profileId": profile.id, "wallet": profile.wallet_address})
        elif command == "add-firm":
            async with db.get_async_session() as session:
                repo = FirmRepository(session)
                await repo.upsert_firm(args.firm_id, args.name)
                for wallet in args.wallet:
                    await repo.add_wallet(args.firm_id, wallet)
                firm = await repo.get(args.firm_id)
            _print_json({"firmId": args.firm_id, "wallets": list(firm.wallets) if firm else []})
        elif command == "validate-overlap":
            report = await validate_month_overlap(db, args.firm_id, args.year_month)
            _print_json(report.to_dict())
        else:  # pragma: no cover - argparse rejects unknown commands
            raise ValueError(f"Unknown command: {command}")
    finally:
        await explorer.close()
        if redis is not None:
            await redis.aclose()
        await db.dispose_async()
    return 0


def _install_stop_handler(stop: Any) -> None:
    loop = asyncio.get_running_loop()

    def _request_stop() -> None:
        logger.info("Shutdown requested")
        result = stop()
        if asyncio.iscoroutine(result):
            loop.create_task(result)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            logger.debug("Signal handler for %s not installed", sig)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs full request URLs, which carry the API key.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    settings.validate_requirements(command=args.command)
    logger.debug("Settings: %s", settings.redacted_summary())

    return asyncio.run(_run_command(args, settings))


if __name__ == "__main__":
    sys.exit(main())
