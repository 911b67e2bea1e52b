#!/usr/bin/env python3
"""
Proactive analysis - advisory strings derived from a snapshot.

Pure: no I/O, never raises on well-formed snapshots. Rules run in a fixed
order and each one appends independently.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from daybrief.models import Snapshot, Task

ESTIMATED_MEETING_LENGTH = timedelta(minutes=60)
BACK_TO_BACK_GAP = timedelta(minutes=5)
TRAVEL_BUFFER = timedelta(minutes=30)
OVERDUE_AFTER = timedelta(days=3)
RAIN_THRESHOLD = 60
HEAVY_DAY_EVENTS = 4
VIDEO_CALL_MARKERS = ("zoom", "teams", "meet")


def _aligned(now: datetime, other: datetime) -> datetime:
    """Return ``now`` comparable with ``other`` (both naive or both aware)."""
    if other.tzinfo is None:
        return now.replace(tzinfo=None) if now.tzinfo else now
    if now.tzinfo is None:
        return now.astimezone(other.tzinfo)
    return now


def _is_overdue(task: Task, now: datetime) -> bool:
    if task.due is None or task.completed:
        return False
    return _aligned(now, task.due) - task.due > OVERDUE_AFTER


def _is_in_person(location: str) -> bool:
    lowered = location.lower()
    return bool(location) and not any(marker in lowered for marker in VIDEO_CALL_MARKERS)


def analyze(snapshot: Snapshot, now: Optional[datetime] = None) -> List[str]:
    """Return actionable suggestions for the day in ``snapshot``."""
    now = now or datetime.now().astimezone()
    suggestions: List[str] = []
    events = list(snapshot.calendar)

    # Back-to-back meetings: no true end time, assume an hour
    for a, b in zip(events, events[1:]):
        if a.start_at is None or b.start_at is None:
            continue
        a_end = a.start_at + ESTIMATED_MEETING_LENGTH
        if a_end < b.start_at and b.start_at - a_end < BACK_TO_BACK_GAP:
            suggestions.append(f'Back-to-back meetings: "{a.title}" runs into "{b.title}" with little buffer.')

    # Located events right after another event
    for i, ev in enumerate(events):
        if not ev.location or ev.start_at is None or i == 0:
            continue
        prior = events[i - 1]
        if prior.start_at is None:
            continue
        prior_end = prior.start_at + ESTIMATED_MEETING_LENGTH
        if ev.start_at - prior_end < TRAVEL_BUFFER:
            suggestions.append(
                f'"{ev.title}" is at {ev.location}, you may need travel time after "{prior.title}".'
            )

    overdue = [t for t in snapshot.tasks if _is_overdue(t, now)]
    if overdue:
        titles = ", ".join(f'"{t.title}"' for t in overdue[:3])
        plural = "s" if len(overdue) > 1 else ""
        more = " and more" if len(overdue) > 3 else ""
        suggestions.append(f"{len(overdue)} overdue task{plural}: {titles}{more}.")

    weather = snapshot.weather
    if weather is not None and weather.precip_chance >= RAIN_THRESHOLD:
        in_person = [e for e in events if _is_in_person(e.location)]
        if in_person:
            suggestions.append(
                f'{weather.precip_chance}% chance of rain, "{in_person[0].title}" is at an '
                f"in-person location. Consider an umbrella."
            )

    if len(events) >= HEAVY_DAY_EVENTS:
        suggestions.append(
            f"Heavy meeting day: {len(events)} events on your calendar. Block focus time if possible."
        )

    return suggestions
