import pytest

from daybrief.cache import SessionCache
from daybrief.config import time_to_cron
from daybrief.daily_triggers import EVENING_JOB, EVENING_SESSION, MORNING_JOB, MORNING_SESSION, DailyTriggers
from daybrief.models import DigestResult, Snapshot
from daybrief.notify_channels import NotificationBus

from tests.fakes import T0, FakeClock, FakeDigest, RecordingSubscriber


async def _build():
    return Snapshot(generated_at=T0)


async def _broken_build():
    raise RuntimeError("aggregation exploded")


async def _triggers(build=_build, digest=None):
    bus = NotificationBus()
    sub = RecordingSubscriber()
    await bus.subscribe(sub)
    sessions = SessionCache(clock=FakeClock())
    return DailyTriggers(build, sessions, bus, digest=digest), sessions, sub


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("07:00", "0 7 * * *"),
        ("7:05", "5 7 * * *"),
        ("17:45", "45 17 * * *"),
        ("25:00", "0 7 * * *"),
        ("7am", "0 7 * * *"),
        (None, "0 7 * * *"),
        (1020, "0 17 * * *"),
    ],
)
def test_time_to_cron(raw, expected):
    assert time_to_cron(raw, "07:00") == expected


@pytest.mark.asyncio
async def test_morning_caches_sends_and_announces():
    digest = FakeDigest()
    triggers, sessions, sub = await _triggers(digest=digest)

    assert await triggers.run_morning()

    assert sessions.get(MORNING_SESSION).generated_at == T0
    assert len(digest.sent) == 1
    assert sub.events() == ["ping", "notification"]
    assert '"digest_ready"' in sub.frames[-1][1]


@pytest.mark.asyncio
async def test_morning_digest_failure_is_not_announced():
    digest = FakeDigest(DigestResult(False, error="SMTP refused"))
    triggers, sessions, sub = await _triggers(digest=digest)

    assert not await triggers.run_morning()
    assert MORNING_SESSION in sessions
    assert sub.events() == ["ping"]


@pytest.mark.asyncio
async def test_morning_without_digest_sender_only_caches():
    triggers, sessions, sub = await _triggers()
    assert not await triggers.run_morning()
    assert MORNING_SESSION in sessions


@pytest.mark.asyncio
async def test_build_failure_is_logged_not_raised():
    triggers, sessions, sub = await _triggers(build=_broken_build, digest=FakeDigest())
    assert not await triggers.run_morning()
    assert not await triggers.run_evening()
    assert len(sessions) == 0


@pytest.mark.asyncio
async def test_evening_caches_and_announces():
    triggers, sessions, sub = await _triggers()

    assert await triggers.run_evening()

    assert EVENING_SESSION in sessions
    assert '"Evening briefing ready"' in sub.frames[-1][1]


@pytest.mark.asyncio
async def test_reschedule_replaces_running_jobs():
    triggers, _, _ = await _triggers()
    triggers.schedule("07:00", "17:00")
    triggers.start()
    try:
        triggers.reschedule("08:30", "bogus")

        jobs = triggers.scheduler.get_jobs()
        assert len(jobs) == 2
        morning = str(triggers.scheduler.get_job(MORNING_JOB).trigger)
        assert "hour='8'" in morning and "minute='30'" in morning
        evening = str(triggers.scheduler.get_job(EVENING_JOB).trigger)
        assert "hour='17'" in evening
        assert triggers.expressions() == {MORNING_JOB: "30 8 * * *", EVENING_JOB: "0 17 * * *"}
    finally:
        triggers.stop()
    assert not triggers.scheduler.running
