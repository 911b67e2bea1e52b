#!/usr/bin/env python3
"""
Daily Triggers - morning digest and evening summary on a cron schedule.

Both times are HH:MM settings turned into daily cron expressions; an invalid
value falls back to the default time. Rescheduling replaces the running jobs
in place, no restart needed.

Uses APScheduler's AsyncIOScheduler, so jobs run on the service's event loop.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from daybrief.adapters import DigestSender
from daybrief.cache import SessionCache
from daybrief.config import DEFAULT_EVENING_TIME, DEFAULT_MORNING_TIME, time_to_cron
from daybrief.models import AlertKind, Snapshot
from daybrief.notify_channels import NotificationBus

logger = logging.getLogger("daily_triggers")

MORNING_JOB = "morning_briefing"
EVENING_JOB = "evening_summary"
MORNING_SESSION = "cron-user"
EVENING_SESSION = "cron-user-evening"


class DailyTriggers:
    """Owns the two daily jobs and what they do when they fire."""

    def __init__(
        self,
        build: Callable[[], Awaitable[Snapshot]],
        sessions: SessionCache,
        bus: NotificationBus,
        digest: Optional[DigestSender] = None,
        timezone: str = "UTC",
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.build = build
        self.sessions = sessions
        self.bus = bus
        self.digest = digest
        self.timezone = timezone
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        self._expressions: Dict[str, str] = {}

    # ---- Jobs ----

    async def run_morning(self) -> bool:
        """Build, cache, send the digest, and announce it. Returns True if sent."""
        logger.info("Running morning briefing...")
        try:
            snapshot = await self.build()
            self.sessions.set(MORNING_SESSION, snapshot)
            if self.digest is None:
                logger.info("No digest sender configured, briefing cached only")
                return False
            result = await self.digest.send(snapshot)
            if not result.success:
                logger.error(f"Digest send failed: {result.error}")
                return False
            await self.bus.push_notification(
                AlertKind.DIGEST_READY,
                "Morning digest sent",
                f"Your daily briefing has been delivered (id {result.delivery_id}).",
            )
            logger.info("Morning briefing sent successfully")
            return True
        except Exception as e:
            logger.error(f"Morning briefing failed: {e}")
            return False

    async def run_evening(self) -> bool:
        """Build, cache, and tell clients the evening summary is ready."""
        logger.info("Running evening summary...")
        try:
            snapshot = await self.build()
            self.sessions.set(EVENING_SESSION, snapshot)
            await self.bus.push_notification(
                AlertKind.EVENING_READY,
                "Evening briefing ready",
                "Tap to see your evening summary",
            )
            logger.info("Evening summary cached")
            return True
        except Exception as e:
            logger.error(f"Evening summary failed: {e}")
            return False

    # ---- Scheduling ----

    def _add(self, name: str, expression: str, func: Callable[[], Awaitable[bool]]):
        trigger = CronTrigger.from_crontab(expression, timezone=self.timezone)
        self.scheduler.add_job(func, trigger=trigger, id=name, name=name, replace_existing=True)
        self._expressions[name] = expression
        logger.info(f"Scheduled {name}: {expression} ({self.timezone})")

    def schedule(self, morning_time: Optional[str], evening_time: Optional[str]):
        """(Re)install both jobs. Existing jobs with the same ids are replaced."""
        self._add(MORNING_JOB, time_to_cron(morning_time, DEFAULT_MORNING_TIME, "morning_time"), self.run_morning)
        self._add(EVENING_JOB, time_to_cron(evening_time, DEFAULT_EVENING_TIME, "evening_time"), self.run_evening)

    def reschedule(self, morning_time: Optional[str], evening_time: Optional[str]):
        logger.info(f"Rescheduling daily triggers: morning={morning_time}, evening={evening_time}")
        self.schedule(morning_time, evening_time)

    def expressions(self) -> Dict[str, str]:
        return dict(self._expressions)

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Daily triggers started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Daily triggers stopped")
