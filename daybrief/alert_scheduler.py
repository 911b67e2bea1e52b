#!/usr/bin/env python3
"""
Alert Scheduler - fires calendar alerts before events.

Polls today's events straight from the calendar adapter on a fixed interval
(never from the snapshot cache, so edits show up immediately) and sends:
- a departure alert for located events, timed from a live traffic estimate
- a "starting in ~15 minutes" alert
- a "starting now" alert
Each kind fires once per event.

Also checks open tasks every 15 minutes and sends one summary per day of
tasks due today or earlier (not before 08:00 local time).

With VIP senders configured, checks unread mail every 5 minutes and alerts
once for each new message whose sender matches one of them.

Configuration (see daybrief.config):
    DAYBRIEF_POLL_SECONDS - Calendar poll interval (default: 60, floor: 15)
    DAYBRIEF_TIMEZONE     - Local timezone
    HOME_ADDRESS          - Fallback origin for departure alerts
    VIP_SENDERS           - Sender fragments that trigger VIP email alerts
"""

import asyncio
import logging
import re
from collections import OrderedDict
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, List, Optional, Sequence, Set
from zoneinfo import ZoneInfo

from daybrief.adapters import CalendarAdapter, EmailAdapter, TaskAdapter, TrafficAdapter
from daybrief.config import MIN_POLL_SECONDS, normalize_senders
from daybrief.models import Alert, AlertKind, CalendarEvent, Email, Task, TrafficEstimate
from daybrief.notify_channels import NotificationBus
from daybrief.tracker_state import TrackerState, lead_minutes

logger = logging.getLogger("alert_scheduler")

# Active window relative to an event's start (minutes)
PAST_LIMIT = -5
FUTURE_LIMIT = 120
LEAD_WARNING_WINDOW = (13, 16)   # (exclusive, inclusive]
STARTING_NOW_WINDOW = (-2, 2)    # (exclusive, inclusive]
DEPARTURE_WINDOW_MINUTES = 2

TASK_CHECK_SECONDS = 15 * 60
TASK_FIRST_CHECK_SECONDS = 30
TASK_REMINDER_EARLIEST = time(8, 0)
TASK_LOOKAHEAD_LIMIT = 50

VIP_CHECK_SECONDS = 5 * 60
VIP_FIRST_CHECK_SECONDS = 10
VIP_KEY_LIFETIME = timedelta(days=1)

_WEEKDAY_PREFIX = re.compile(r"^[A-Za-z]+,\s*")
_DISPLAY_FORMATS = ("%b %d %I:%M %p %Y", "%B %d %I:%M %p %Y", "%b %d %H:%M %Y")


def parse_display_time(display: str, now: datetime) -> Optional[datetime]:
    """Best-effort parse of "Mon, Feb 24 at 9:00 AM", assuming ``now``'s year.

    Returns None when the string does not match a known format.
    """
    if not display:
        return None
    cleaned = _WEEKDAY_PREFIX.sub("", display.strip()).replace(" at ", " ")
    candidate = f"{cleaned} {now.year}"
    for fmt in _DISPLAY_FORMATS:
        try:
            parsed = datetime.strptime(candidate, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=now.tzinfo)
    return None


def resolve_start(event: CalendarEvent, now: datetime, tz: tzinfo) -> Optional[datetime]:
    """Machine-readable start if present, else the parsed display string."""
    if event.start_at is not None:
        if event.start_at.tzinfo is None:
            return event.start_at.replace(tzinfo=tz)
        return event.start_at.astimezone(tz)
    return parse_display_time(event.start, now)


def minutes_until(start: datetime, now: datetime) -> float:
    return (start - now).total_seconds() / 60


def sender_name(from_field: str) -> str:
    """Display name from 'Name <addr>' format."""
    if "<" in from_field:
        name = from_field.split("<")[0].strip().strip('"')
        if name:
            return name
    return from_field


def _with_location(event: CalendarEvent) -> str:
    return f"{event.title} @ {event.location}" if event.location else event.title


class AlertScheduler:
    """Polls the calendar and fires de-duplicated alerts through the bus."""

    def __init__(
        self,
        calendar: CalendarAdapter,
        bus: NotificationBus,
        state: Optional[TrackerState] = None,
        traffic: Optional[TrafficAdapter] = None,
        tasks: Optional[TaskAdapter] = None,
        email: Optional[EmailAdapter] = None,
        vip_senders: Sequence[str] = (),
        home_address: str = "",
        poll_seconds: int = 60,
        timezone: str = "UTC",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.calendar = calendar
        self.bus = bus
        self.state = state or TrackerState()
        self.traffic = traffic
        self.tasks = tasks
        self.email = email
        self.vip_senders = normalize_senders(vip_senders)
        self.last_seen_email_id: Optional[str] = None
        self.home_address = home_address
        self.poll_seconds = max(MIN_POLL_SECONDS, poll_seconds)
        self.tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._lookups: Set[asyncio.Task] = set()
        self._loops: List[asyncio.Task] = []

    # ---- Firing ----

    async def _fire(self, event_id: str, kind: AlertKind, expires_at: datetime, title: str, body: str) -> bool:
        if self.state.is_fired(event_id, kind):
            return False
        self.state.mark_fired(event_id, kind, expires_at)
        logger.info(f"Firing {kind.value} alert for {event_id}: {title}")
        await self.bus.broadcast(Alert(kind=kind, title=title, body=body, related_event_id=event_id))
        return True

    async def _maybe_fire_departure(self, event: CalendarEvent, start: datetime, estimate: TrafficEstimate) -> bool:
        if self.state.is_fired(event.event_id, AlertKind.DEPARTURE):
            return False
        lead = lead_minutes(estimate)
        fire_at = start - timedelta(minutes=lead)
        since = (self._clock() - fire_at).total_seconds() / 60
        if not 0 <= since <= DEPARTURE_WINDOW_MINUTES:
            return False
        leave_in = round(lead - estimate.traffic_aware_minutes)
        return await self._fire(
            event.event_id,
            AlertKind.DEPARTURE,
            start - timedelta(minutes=PAST_LIMIT),
            f"Depart soon for {event.title}",
            f"{estimate.summary}\nLeave in ~{leave_in} min to arrive on time.",
        )

    # ---- Traffic ----

    async def _lookup_traffic(self, event: CalendarEvent, start: datetime):
        """Fetch a traffic estimate once, cache it, and check the window right away."""
        try:
            origin = self.state.origin(self._clock(), self.home_address)
            estimate = await self.traffic.live_drive_duration(origin, event.location)
        except Exception as e:
            logger.error(f"Traffic lookup failed for {event.event_id}: {e}")
            self.state.store_estimate(event.event_id, None)
            return
        self.state.store_estimate(event.event_id, estimate)
        if estimate is None:
            logger.info(f"No traffic estimate for {event.title}, skipping departure alert")
            return
        logger.info(f"Departure lead for {event.title}: {lead_minutes(estimate)} min")
        try:
            await self._maybe_fire_departure(event, start, estimate)
        except Exception as e:
            logger.error(f"Departure alert failed for {event.event_id}: {e}")

    async def _check_departure(self, event: CalendarEvent, start: datetime, expires_at: datetime):
        if not self.state.is_traffic_checked(event.event_id):
            self.state.mark_traffic_checked(event.event_id, expires_at)
            task = asyncio.ensure_future(self._lookup_traffic(event, start))
            self._lookups.add(task)
            task.add_done_callback(self._lookups.discard)
            return
        estimate = self.state.estimate_for(event.event_id)
        if estimate is not None:
            await self._maybe_fire_departure(event, start, estimate)

    async def drain(self):
        """Wait for traffic lookups spawned by earlier ticks."""
        while self._lookups:
            await asyncio.gather(*list(self._lookups), return_exceptions=True)

    # ---- Calendar tick ----

    async def tick(self) -> int:
        """One calendar pass. Returns the number of events in the active window."""
        events = await self.calendar.events_for_day(1)
        now = self._clock()
        active = 0

        for event in events:
            if not event.event_id:
                continue
            start = resolve_start(event, now, self.tz)
            if start is None:
                continue
            diff = minutes_until(start, now)
            if diff < PAST_LIMIT or diff > FUTURE_LIMIT:
                continue
            active += 1
            expires_at = start - timedelta(minutes=PAST_LIMIT)

            if event.location and self.home_address and self.traffic is not None:
                await self._check_departure(event, start, expires_at)

            low, high = LEAD_WARNING_WINDOW
            if low < diff <= high:
                await self._fire(event.event_id, AlertKind.LEAD_WARNING, expires_at,
                                 "Starting in ~15 min", _with_location(event))

            low, high = STARTING_NOW_WINDOW
            if low < diff <= high:
                await self._fire(event.event_id, AlertKind.STARTING_NOW, expires_at,
                                 "Starting now", _with_location(event))

        self.state.expire(now)
        self.state.enforce_bound()
        return active

    async def safe_tick(self):
        try:
            await self.tick()
        except Exception as e:
            logger.error(f"Calendar alert check error: {e}")

    # ---- Task reminders ----

    async def check_due_tasks(self) -> bool:
        """Send today's due-task summary once per day."""
        if self.tasks is None:
            return False
        now = self._clock()
        if now.time() < TASK_REMINDER_EARLIEST:
            return False
        key = f"task-due-summary-{now.date().isoformat()}"
        if self.state.is_fired(key, AlertKind.TASK_REMINDER):
            return False

        tasks: List[Task] = await self.tasks.open_tasks(TASK_LOOKAHEAD_LIMIT)
        due_now = [t for t in tasks if t.due is not None and not t.completed and t.due.date() <= now.date()]
        if not due_now:
            return False

        by_list: "OrderedDict[str, List[str]]" = OrderedDict()
        for task in due_now:
            by_list.setdefault(task.list_title or "Tasks", []).append(task.title)
        lines = []
        for list_title, titles in by_list.items():
            extra = f" +{len(titles) - 3} more" if len(titles) > 3 else ""
            lines.append(f"{list_title}: {', '.join(titles[:3])}{extra}")

        midnight = datetime.combine(now.date() + timedelta(days=1), time(0, 0), tzinfo=now.tzinfo)
        plural = "s" if len(due_now) > 1 else ""
        return await self._fire(key, AlertKind.TASK_REMINDER, midnight,
                                f"{len(due_now)} task{plural} due today", "\n".join(lines))

    async def safe_check_tasks(self):
        try:
            await self.check_due_tasks()
        except Exception as e:
            logger.error(f"Task reminder check error: {e}")

    # ---- VIP email ----

    def set_vip_senders(self, senders: Sequence[str]):
        self.vip_senders = normalize_senders(senders)
        logger.info(f"VIP senders updated: {len(self.vip_senders)} configured")

    def _new_since_last_check(self, emails: List[Email]) -> List[Email]:
        if self.last_seen_email_id is None:
            return emails
        for i, email in enumerate(emails):
            if email.id == self.last_seen_email_id:
                return emails[:i]
        # Watermark fell out of the unread list, so nothing counts as new
        return []

    async def check_vip_emails(self) -> int:
        """Alert on new unread mail from VIP senders. Returns the number of alerts fired."""
        if not self.vip_senders or self.email is None:
            return 0
        emails = await self.email.unread_across_accounts()
        if not emails:
            return 0
        new = self._new_since_last_check(emails)
        self.last_seen_email_id = emails[0].id

        expires_at = self._clock() + VIP_KEY_LIFETIME
        fired = 0
        for email in new:
            sender = email.sender.lower()
            if not any(vip in sender for vip in self.vip_senders):
                continue
            if await self._fire(f"vip-email-{email.id}", AlertKind.VIP_EMAIL, expires_at,
                                f"VIP email from {sender_name(email.sender)}", email.subject):
                fired += 1
        return fired

    async def safe_check_vip_emails(self):
        try:
            await self.check_vip_emails()
        except Exception as e:
            logger.error(f"VIP email check error: {e}")

    # ---- Loops ----

    async def _calendar_loop(self, sleep: Callable = asyncio.sleep):
        logger.info(f"Calendar alerts started: every {self.poll_seconds}s")
        while True:
            await sleep(self.poll_seconds)
            await self.safe_tick()

    async def _task_loop(self, sleep: Callable = asyncio.sleep):
        await sleep(TASK_FIRST_CHECK_SECONDS)
        while True:
            await self.safe_check_tasks()
            await sleep(TASK_CHECK_SECONDS)

    async def _vip_loop(self, sleep: Callable = asyncio.sleep):
        await sleep(VIP_FIRST_CHECK_SECONDS)
        while True:
            await self.safe_check_vip_emails()
            await sleep(VIP_CHECK_SECONDS)

    def start(self) -> List[asyncio.Task]:
        """Start the polling loops on the running event loop. Idempotent."""
        if self._loops:
            return self._loops
        self._loops = [asyncio.ensure_future(self._calendar_loop())]
        if self.tasks is not None:
            self._loops.append(asyncio.ensure_future(self._task_loop()))
        if self.email is not None:
            self._loops.append(asyncio.ensure_future(self._vip_loop()))
        return self._loops

    async def stop(self):
        for task in self._loops + list(self._lookups):
            task.cancel()
        await asyncio.gather(*self._loops, *self._lookups, return_exceptions=True)
        self._loops = []
