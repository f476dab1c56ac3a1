"""Command line entry point.

    python -m polymarket_signal_tracker run [--dry-run]
    python -m polymarket_signal_tracker rank [--limit 20]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from polymarket_signal_tracker.config import Settings, get_settings
from polymarket_signal_tracker.signals.aggregation import MarketSignalService
from polymarket_signal_tracker.storage.database import DatabaseManager
from polymarket_signal_tracker.worker import EnrichmentWorker, rank_stored_markets

logger = logging.getLogger("polymarket_signal_tracker")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket-signal-tracker",
        description="Enrich Polymarket trades and rank markets by top-trader confidence",
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="consume the live trade feed (default)")
    run.add_argument("--dry-run", action="store_true", help="do not publish events to Redis")

    rank = sub.add_parser("rank", help="print the strongest market signals as JSON")
    rank.add_argument("--limit", type=int, default=20, help="number of outcomes to print")
    rank.add_argument("--window-hours", type=int, default=None, help="override the signal window")
    return parser


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run_worker(settings: Settings, *, dry_run: bool) -> None:
    worker = EnrichmentWorker(settings, dry_run=dry_run or None)
    await worker.run()


async def print_rankings(settings: Settings, *, limit: int, window_hours: int | None) -> None:
    service = MarketSignalService(
        window_hours=window_hours or settings.signal.window_hours,
        top_trader_max_rank=settings.signal.top_trader_max_rank,
    )
    db = DatabaseManager(settings.database.url)
    try:
        scored = await rank_stored_markets(db, service, max_trades=settings.signal.max_trades)
    finally:
        await db.dispose_async()
    print(json.dumps([s.to_dict() for s in scored[:limit]], indent=2))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    logger.info("Configuration: %s", settings.redacted_summary())

    try:
        if args.command == "rank":
            asyncio.run(print_rankings(settings, limit=args.limit, window_hours=args.window_hours))
        else:
            asyncio.run(run_worker(settings, dry_run=getattr(args, "dry_run", False)))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
