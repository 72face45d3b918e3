#!/usr/bin/env python3
"""CLI entry point for foreground reconciliation.

Usage:
    # Reconcile every non-deleted account over the default range
    python scripts/run_reconcile.py --all

    # Reconcile specific accounts over a range
    python scripts/run_reconcile.py --accounts 123 456 --start 2024-12-01 --end 2024-12-07
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

import aiohttp

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from adsync_core.services import build_services, close_services
from adsync_core.sync.config import SyncConfig
from adsync_core.sync.worker import ReconcileBatch, ReconcileJob


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _parse_date(value: str):
    return datetime.strptime(value, "%Y-%m-%d").date()


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="adsync foreground reconciliation")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--accounts", nargs="+", help="Account ids to reconcile")
    target.add_argument("--all", action="store_true", help="Reconcile every account")
    parser.add_argument("--start", type=_parse_date, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=_parse_date, help="End date (YYYY-MM-DD)")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    config = SyncConfig.from_env()
    timeout = aiohttp.ClientTimeout(total=300, connect=30)

    async with aiohttp.ClientSession(timeout=timeout) as session:
        services = build_services(config, session)
        try:
            date_range = services.engine.resolve_range(args.start, args.end)
            if args.all:
                account_ids = [a.account_id for a in services.registry.list_accounts()]
            else:
                account_ids = args.accounts

            batch = ReconcileBatch.create(
                ReconcileJob(account_id=account_id, date_range=date_range)
                for account_id in account_ids
            )
            report = await services.worker.run_batch(batch)
        finally:
            close_services(services)

    print(f"Batch {report.batch_id} ({date_range})")
    for outcome in report.outcomes:
        line = (
            f"  {outcome.account_id}: {outcome.status.value} "
            f"synced={len(outcome.synced_dates)} failed={len(outcome.failed_dates)}"
        )
        if outcome.error:
            line += f" error={outcome.error}"
        print(line)

    return 0 if all(o.status.value != "failed" for o in report.outcomes) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
