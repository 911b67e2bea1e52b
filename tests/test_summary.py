from datetime import datetime, timedelta

import pytest

from daybrief.models import CalendarEvent, Email, PackageInfo, Snapshot, Task, TrafficEstimate, UsageStats
from daybrief.summary import format_evening, format_morning

from tests.fakes import T0, UTC, FakeCalendar, FakeTraffic, sample_weather


def _snapshot(**kwargs):
    base = dict(
        calendar=(CalendarEvent("a", "Standup", start="9:00 AM", end="9:15 AM", location="Room 4"),),
        emails=(
            Email("1", "Quarterly review", "boss@example.com", account="work", is_important=True),
            Email("2", "Newsletter", "news@example.com", account="personal"),
        ),
        tasks=(Task("t1", "File expenses", due=datetime(2026, 3, 12)),),
        weather=sample_weather(precip=20),
        usage=UsageStats("2026-03-10", total_tokens=12345, calls=7, estimated_cost_usd=0.0123),
        generated_at=T0,
    )
    base.update(kwargs)
    base["important_emails"] = tuple(e for e in base["emails"] if e.is_important)
    return Snapshot(**base)


def test_morning_sections():
    text = format_morning(_snapshot())

    assert text.startswith("Good morning! Here's your briefing for Tuesday, March 10.")
    assert "Orlando: Cloudy, 72F (H 80 / L 65), 20% chance of rain" in text
    assert "  9:00 AM-9:15 AM  Standup @ Room 4" in text
    assert "IMPORTANT EMAILS (1):\n  ! [work] Quarterly review" in text
    assert "UNREAD EMAILS (2 total):" in text
    assert "  - File expenses (due Mar 12)" in text
    assert "12,345 tokens across 7 calls" in text
    assert "HEADS UP" not in text
    assert "PACKAGES" not in text


def test_morning_with_missing_sources_and_extras():
    parcel = PackageInfo("1Z999AA10123456784", "UPS", "https://example.com", arriving_today=True)
    text = format_morning(_snapshot(
        calendar=(), emails=(), tasks=(), weather=None, usage=None,
        suggestions=("Heavy meeting day: 5 events on your calendar.",),
        packages=(parcel,),
    ))

    assert "Weather unavailable." in text
    assert "No events today." in text
    assert "Inbox is clear." in text
    assert "No usage data yet." in text
    assert "HEADS UP:\n  * Heavy meeting day" in text
    assert "PACKAGES:\n  UPS 1Z999AA10123456784 (arriving today)" in text


@pytest.mark.asyncio
async def test_evening_with_commute_and_tomorrow():
    calendar = FakeCalendar()
    calendar.range_events = [CalendarEvent("b", "Dentist", start="10:00 AM")]
    traffic = FakeTraffic(TrafficEstimate.from_minutes(20, 35))
    now = datetime(2026, 3, 10, 17, 0, tzinfo=UTC)

    text = await format_evening(_snapshot(), calendar, traffic=traffic,
                                work_address="HQ", home_address="Home", now=now)

    assert "COMMUTE HOME:\n  [HEAVY] 20 min drive, 35 min with current traffic (+15 min delay)" in text
    assert "  Drive: 35 min (+15 min delay)" in text
    assert "TOMORROW (Wednesday, March 11):\n  10:00 AM  Dentist" in text
    assert "OPEN TASKS:\n  - File expenses" in text
    assert traffic.calls == [("HQ", "Home")]
    start, end = calendar.range_calls[0]
    assert start == datetime(2026, 3, 11, tzinfo=UTC)
    assert end - start < timedelta(days=1)


@pytest.mark.asyncio
async def test_evening_fallbacks():
    calendar = FakeCalendar(error=RuntimeError("calendar down"))
    snapshot = _snapshot(tasks=(Task("t1", "Done already", status="completed"),))

    text = await format_evening(snapshot, calendar, traffic=FakeTraffic(error=TimeoutError()),
                                work_address="HQ", home_address="Home", now=T0)

    assert "COMMUTE HOME" not in text
    assert "Unable to load tomorrow's calendar." in text
    assert "All tasks complete!" in text


@pytest.mark.asyncio
async def test_evening_empty_tomorrow_without_traffic():
    text = await format_evening(_snapshot(), FakeCalendar(), now=T0)
    assert "Nothing scheduled." in text
    assert "COMMUTE HOME" not in text
