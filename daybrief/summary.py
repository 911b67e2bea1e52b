#!/usr/bin/env python3
"""
Briefing text - plain-text morning briefing and evening summary.

The morning briefing is rendered entirely from a Snapshot. The evening summary
also looks ahead: tomorrow's events come from the calendar adapter and the
commute home from the traffic adapter. Either lookup degrades to a fallback
line if it fails.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from daybrief.adapters import CalendarAdapter, TrafficAdapter
from daybrief.models import CalendarEvent, Snapshot, Task, UsageStats

logger = logging.getLogger("summary")


def _event_line(event: CalendarEvent) -> str:
    span = f"{event.start}-{event.end}" if event.end else event.start
    where = f" @ {event.location}" if event.location else ""
    return f"  {span}  {event.title}{where}"


def _task_line(task: Task) -> str:
    due = f" (due {task.due.strftime('%b %d')})" if task.due else ""
    return f"  - {task.title}{due}"


def _usage_line(usage: Optional[UsageStats]) -> str:
    if usage is None:
        return "  No usage data yet."
    return (f"  {usage.total_tokens:,} tokens across {usage.calls} calls, "
            f"est. cost ${usage.estimated_cost_usd:.4f}")


def format_morning(snapshot: Snapshot, greeting: str = "Good morning") -> str:
    """Render the morning briefing."""
    day_name = (snapshot.generated_at or datetime.now()).strftime("%A, %B %d")

    weather = snapshot.weather
    if weather:
        weather_section = (f"  {weather.location}: {weather.condition}, {weather.temperature_f:.0f}F "
                           f"(H {weather.high:.0f} / L {weather.low:.0f}), "
                           f"{weather.precip_chance}% chance of rain")
    else:
        weather_section = "  Weather unavailable."

    calendar = "\n".join(_event_line(e) for e in snapshot.calendar) or "  No events today."

    important = "\n".join(
        f"  ! [{e.account}] {e.subject}\n    From: {e.sender}" for e in snapshot.important_emails
    ) or "  None."

    emails = "\n".join(
        f"  - [{e.account}] {e.subject} ({e.sender})" for e in snapshot.emails[:8]
    ) or "  Inbox is clear."

    tasks = "\n".join(_task_line(t) for t in snapshot.tasks) or "  No tasks."

    news_lines = []
    for result in snapshot.news:
        news_lines.append(f"  {result.topic}:")
        if result.articles:
            news_lines.extend(f"    - {a.title} <{a.url}>" for a in result.articles)
        else:
            news_lines.append("    No articles found.")
    news = "\n".join(news_lines) or "  No news loaded."

    briefing = f"""{greeting}! Here's your briefing for {day_name}.

WEATHER:
{weather_section}

CALENDAR:
{calendar}

IMPORTANT EMAILS ({len(snapshot.important_emails)}):
{important}

UNREAD EMAILS ({len(snapshot.emails)} total):
{emails}

TASKS ({len(snapshot.tasks)}):
{tasks}

NEWS:
{news}

LLM USAGE TODAY:
{_usage_line(snapshot.usage)}"""

    if snapshot.suggestions:
        briefing += "\n\nHEADS UP:\n" + "\n".join(f"  * {s}" for s in snapshot.suggestions)

    if snapshot.packages:
        briefing += "\n\nPACKAGES:\n" + "\n".join(
            f"  {p.carrier} {p.tracking_number}" + (" (arriving today)" if p.arriving_today else "")
            for p in snapshot.packages
        )

    return briefing


async def _tomorrow_section(calendar: CalendarAdapter, now: datetime) -> str:
    start = datetime.combine(now.date() + timedelta(days=1), time(0, 0), tzinfo=now.tzinfo)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    try:
        events = await calendar.events_in_range(start, end)
    except Exception as e:
        logger.error(f"Failed to get tomorrow's events: {e}")
        return "  Unable to load tomorrow's calendar."
    return "\n".join(_event_line(e) for e in events) or "  Nothing scheduled."


async def _commute_section(traffic: Optional[TrafficAdapter], work: str, home: str) -> Optional[str]:
    if traffic is None or not work or not home:
        return None
    try:
        estimate = await traffic.live_drive_duration(work, home)
    except Exception as e:
        logger.error(f"Commute lookup failed: {e}")
        return None
    if estimate is None:
        return None
    marker = "HEAVY" if estimate.heavy else "clear"
    delay = f" (+{estimate.delay_minutes} min delay)" if estimate.delay_minutes > 0 else ""
    return f"  [{marker}] {estimate.summary}\n  Drive: {estimate.traffic_aware_minutes} min{delay}"


async def format_evening(
    snapshot: Snapshot,
    calendar: CalendarAdapter,
    traffic: Optional[TrafficAdapter] = None,
    work_address: str = "",
    home_address: str = "",
    now: Optional[datetime] = None,
) -> str:
    """Render the end-of-day summary."""
    now = now or datetime.now().astimezone()
    tomorrow_name = (now + timedelta(days=1)).strftime("%A, %B %d")

    parts = [f"Good evening! Here's your end-of-day summary for {now.strftime('%A, %B %d')}."]

    commute = await _commute_section(traffic, work_address, home_address)
    if commute:
        parts.append(f"\nCOMMUTE HOME:\n{commute}")

    parts.append(f"\nTOMORROW ({tomorrow_name}):\n{await _tomorrow_section(calendar, now)}")

    open_tasks = [t for t in snapshot.tasks if not t.completed]
    tasks = "\n".join(_task_line(t) for t in open_tasks) or "  All tasks complete!"
    parts.append(f"\nOPEN TASKS:\n{tasks}")
    parts.append(f"\nLLM USAGE TODAY:\n{_usage_line(snapshot.usage)}")

    return "\n".join(parts)
