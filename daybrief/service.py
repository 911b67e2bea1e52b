#!/usr/bin/env python3
"""
BriefingService - the single owner of daybrief's runtime state.

Holds the aggregator, both snapshot caches, the notification bus, the alert
scheduler with its tracker state, and the daily triggers. Everything that
mutates shared state goes through one instance on one event loop.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from daybrief.adapters import Adapters
from daybrief.aggregator import BriefingAggregator
from daybrief.alert_scheduler import AlertScheduler
from daybrief.cache import DashboardCache, SessionCache
from daybrief.config import Settings
from daybrief.daily_triggers import DailyTriggers
from daybrief.models import Alert, AlertKind, GpsFix, Snapshot
from daybrief.notify_channels import NotificationBus, PushRegistrationStore, Subscriber, TelegramPush
from daybrief.tracker_state import TrackerState

logger = logging.getLogger("service")


class BriefingService:
    """Produced interface of daybrief."""

    def __init__(self, adapters: Adapters, settings: Optional[Settings] = None,
                 bus: Optional[NotificationBus] = None, clock=None):
        self.settings = settings or Settings()
        self.adapters = adapters
        tz = ZoneInfo(self.settings.timezone)
        self._clock = clock or (lambda: datetime.now(tz))

        self.aggregator = BriefingAggregator(
            adapters,
            news_topics=self.settings.news_topics,
            task_limit=self.settings.task_limit,
            clock=self._clock,
        )
        self.sessions = SessionCache(clock=self._clock)
        self.dashboard = DashboardCache(self.aggregator.aggregate, clock=self._clock)

        if bus is None:
            store = sender = None
            if self.settings.push_enabled:
                store = PushRegistrationStore(self.settings.push_store)
                sender = TelegramPush(self.settings.telegram_bot_token)
            bus = NotificationBus(store=store, sender=sender)
        self.bus = bus

        self.state = TrackerState()
        self.alerts = AlertScheduler(
            adapters.calendar,
            self.bus,
            state=self.state,
            traffic=adapters.traffic,
            tasks=adapters.tasks,
            email=adapters.email,
            vip_senders=self.settings.vip_senders,
            home_address=self.settings.home_address,
            poll_seconds=self.settings.poll_seconds,
            timezone=self.settings.timezone,
            clock=self._clock,
        )
        self.triggers = DailyTriggers(
            self.build_snapshot,
            self.sessions,
            self.bus,
            digest=adapters.digest,
            timezone=self.settings.timezone,
        )
        self._heartbeat: Optional[asyncio.Task] = None

    # ---- Snapshots ----

    async def build_snapshot(self) -> Snapshot:
        return await self.aggregator.aggregate()

    async def refresh_session(self, session_id: str) -> Snapshot:
        """Manual request: rebuild and overwrite one session's snapshot."""
        snapshot = await self.build_snapshot()
        self.sessions.set(session_id, snapshot)
        return snapshot

    def session_snapshot(self, session_id: str) -> Optional[Snapshot]:
        return self.sessions.get(session_id)

    async def get_cached_snapshot(self, force: bool = False) -> Snapshot:
        if force:
            self.invalidate_cache()
        return await self.dashboard.get_or_refresh()

    def invalidate_cache(self):
        self.dashboard.invalidate()

    def dashboard_fetched_at(self) -> Optional[datetime]:
        return self.dashboard.fetched_at

    # ---- Notifications ----

    async def subscribe(self, handle: Subscriber) -> bool:
        return await self.bus.subscribe(handle)

    def unsubscribe(self, handle: Subscriber):
        self.bus.unsubscribe(handle)

    async def push_notification(self, kind: AlertKind, title: str, body: str) -> Alert:
        return await self.bus.push_notification(kind, title, body)

    def add_push_registration(self, registration: str) -> bool:
        if self.bus.store is None:
            logger.warning("Out-of-band push not configured (set TELEGRAM_BOT_TOKEN)")
            return False
        self.bus.store.add(registration)
        return True

    def update_location(self, lat: float, lng: float):
        self.state.update_location(GpsFix(lat, lng, self._clock()))

    def set_vip_senders(self, senders: List[str]):
        self.alerts.set_vip_senders(senders)
        self.settings.vip_senders = list(self.alerts.vip_senders)

    # ---- Background work ----

    def start_alert_scheduler(self) -> List[asyncio.Task]:
        return self.alerts.start()

    def start_daily_triggers(self):
        self.triggers.schedule(self.settings.morning_time, self.settings.evening_time)
        self.triggers.start()

    def reschedule_daily_triggers(self, morning_time: Optional[str], evening_time: Optional[str]):
        if morning_time:
            self.settings.morning_time = morning_time
        if evening_time:
            self.settings.evening_time = evening_time
        self.triggers.reschedule(self.settings.morning_time, self.settings.evening_time)

    def start(self):
        """Start triggers, alert polling and the stream heartbeat."""
        logger.info("=" * 60)
        logger.info("DAYBRIEF STARTING")
        logger.info("=" * 60)
        logger.info(f"Morning briefing: {self.settings.morning_time}")
        logger.info(f"Evening summary: {self.settings.evening_time}")
        logger.info(f"Calendar alerts: every {self.alerts.poll_seconds}s")
        logger.info(f"VIP senders: {len(self.alerts.vip_senders)}")
        logger.info(f"Out-of-band push: {'on' if self.bus.push_enabled else 'off'}")
        logger.info("=" * 60)
        self.start_daily_triggers()
        self.start_alert_scheduler()
        if self._heartbeat is None:
            self._heartbeat = asyncio.ensure_future(self.bus.run_heartbeat(self.settings.heartbeat_seconds))

    async def stop(self):
        self.triggers.stop()
        await self.alerts.stop()
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            await asyncio.gather(self._heartbeat, return_exceptions=True)
            self._heartbeat = None
        logger.info("daybrief stopped")
