#!/usr/bin/env python3
"""
Standalone runner for automatic roster sync.

Runs the sync engine on its schedule without the HTTP API, or performs a
single sync and exits.

Usage:
    python run_scheduler.py                       # Automatic sync until stopped
    python run_scheduler.py --once --season 1 --week 5
    python run_scheduler.py --audit               # Integrity audit and exit
"""
import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import asdict
from datetime import timedelta
from typing import Optional

from league_sync.core.config import settings
from league_sync.core.database import SessionLocal, init_db
from league_sync.core.logging import configure_logging
from league_sync.services.container import ServiceContainer, build_services, load_conference_targets
from league_sync.services.sync.types import SyncConfiguration

configure_logging(level=settings.LOG_LEVEL, json_output=False)
logger = logging.getLogger(__name__)


class SchedulerRunner:
    """Keeps automatic sync running until SIGINT/SIGTERM."""

    def __init__(self, services: ServiceContainer):
        self.services = services
        self.shutdown = asyncio.Event()

    async def run(self, season_id: int, week: int, interval: Optional[timedelta]) -> int:
        targets = await load_conference_targets(self.services.store, season_id)
        if not targets:
            logger.error(f"❌ No active conferences for season {season_id}")
            return 1

        self.services.scheduler.start()
        self.services.engine.start_automatic_sync(
            SyncConfiguration(conferences=targets, season_id=season_id, week=week),
            interval,
        )
        self.services.roster_status.start_background_refresh(self.services.scheduler, targets)
        logger.info("✅ Automatic sync running; press Ctrl+C to stop")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        await self.shutdown.wait()
        await self.services.aclose()
        logger.info("✅ Scheduler runner stopped")
        return 0

    def _set_shutdown(self) -> None:
        logger.info("⏹️  Shutdown signal received")
        self.services.engine.force_stop()
        self.shutdown.set()


async def run_once(services: ServiceContainer, season_id: int, week: int) -> int:
    targets = await load_conference_targets(services.store, season_id)
    if not targets:
        logger.error(f"❌ No active conferences for season {season_id}")
        return 1
    try:
        result = await services.engine.full_sync(
            SyncConfiguration(conferences=targets, season_id=season_id, week=week)
        )
    finally:
        await services.aclose()
    print(f"{'✅' if result.success else '⚠️'} {result.records_processed} records, "
          f"{len(result.errors)} errors, {result.api_calls} API calls, {result.duration:.0f}ms")
    for error in result.errors[:20]:
        print(f"   • {error}")
    return 0 if result.success else 2


async def run_audit(services: ServiceContainer) -> int:
    try:
        report = await services.integrity().audit()
    finally:
        await services.aclose()
    for key, value in asdict(report).items():
        print(f"{key}: {value}")
    return 1 if report.has_issues else 0


def main() -> int:
    parser = argparse.ArgumentParser(description='Run league roster sync')
    parser.add_argument('--season', type=int, default=settings.CURRENT_SEASON_ID, help='Season id to sync')
    parser.add_argument('--week', type=int, default=settings.CURRENT_WEEK, help='Week to sync')
    parser.add_argument('--interval', type=int, default=None, metavar='MINUTES', help='Automatic sync interval')
    parser.add_argument('--once', action='store_true', help='Run a single sync and exit')
    parser.add_argument('--audit', action='store_true', help='Run an integrity audit and exit')
    args = parser.parse_args()

    init_db()
    services = build_services(SessionLocal())

    if args.audit:
        return asyncio.run(run_audit(services))

    if args.season is None:
        parser.error("--season is required when CURRENT_SEASON_ID is not configured")

    if args.once:
        return asyncio.run(run_once(services, args.season, args.week))

    interval = timedelta(minutes=args.interval) if args.interval else None
    try:
        return asyncio.run(SchedulerRunner(services).run(args.season, args.week, interval))
    except KeyboardInterrupt:
        logger.info("🛑 Received interrupt, shutting down...")
        return 0


if __name__ == '__main__':
    sys.exit(main())
