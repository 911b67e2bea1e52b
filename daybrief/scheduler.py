#!/usr/bin/env python3
"""
daybrief daemon - runs the daily triggers and calendar alerts.

Runs as a long-lived process that coordinates:
- Morning briefing + digest (configurable time)
- Evening summary notice (configurable time)
- Calendar alerts (periodic)
- Due-task reminders (periodic)
- Live stream heartbeat (periodic)

Adapters are loaded from DAYBRIEF_ADAPTERS ("package.module:factory"); the
factory must return a daybrief.adapters.Adapters bundle.

Usage:
    daybrief                   Run the daemon
    daybrief --briefing-now    Print the morning briefing and exit
    daybrief --evening-now     Print the evening summary and exit
    daybrief --test-calendar   Run one calendar alert pass and exit
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from daybrief.adapters import load_adapters
from daybrief.config import Settings, load_settings
from daybrief.errors import DaybriefError
from daybrief.service import BriefingService
from daybrief.summary import format_evening, format_morning

logger = logging.getLogger("scheduler")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: Settings, verbose: bool = False):
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    handlers = [logging.FileHandler(settings.log_dir / "daybrief.log", mode="a")]
    if verbose:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT, handlers=handlers)


async def run_daemon(service: BriefingService, stop_event: Optional[asyncio.Event] = None):
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform / outside the main thread
            pass

    service.start()
    try:
        await stop_event.wait()
        logger.info("Stop requested")
    finally:
        await service.stop()


async def _briefing_now(service: BriefingService) -> str:
    snapshot = await service.refresh_session("cli")
    return format_morning(snapshot)


async def _evening_now(service: BriefingService) -> str:
    snapshot = await service.refresh_session("cli-evening")
    s = service.settings
    return await format_evening(
        snapshot,
        service.adapters.calendar,
        traffic=service.adapters.traffic,
        work_address=s.work_address,
        home_address=s.home_address,
    )


async def _test_calendar(service: BriefingService) -> str:
    active = await service.alerts.tick()
    await service.alerts.drain()
    return f"Calendar check complete: {active} events in the alert window."


def main(argv=None) -> int:
    """Entry point with CLI flags."""
    parser = argparse.ArgumentParser(description="daybrief - daily briefing and calendar alerts")
    parser.add_argument("--briefing-now", action="store_true", help="Print the morning briefing now")
    parser.add_argument("--evening-now", action="store_true", help="Print the evening summary now")
    parser.add_argument("--test-calendar", action="store_true", help="Run one calendar alert pass")
    parser.add_argument("--verbose", "-v", action="store_true", help="Also log to the console")
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except DaybriefError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    setup_logging(settings, args.verbose)

    if not settings.adapters:
        print("Error: DAYBRIEF_ADAPTERS is not set (expected 'module:factory').", file=sys.stderr)
        return 2
    try:
        adapters = load_adapters(settings.adapters)
    except DaybriefError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    service = BriefingService(adapters, settings)

    if args.briefing_now:
        print(asyncio.run(_briefing_now(service)))
        return 0
    if args.evening_now:
        print(asyncio.run(_evening_now(service)))
        return 0
    if args.test_calendar:
        print(asyncio.run(_test_calendar(service)))
        return 0

    try:
        asyncio.run(run_daemon(service))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    return 0


if __name__ == "__main__":
    sys.exit(main())
