import asyncio
import json

import pytest

from daybrief.errors import DeliveryError
from daybrief.models import Alert, AlertKind
from daybrief.notify_channels import (
    KIND_LABELS,
    MAX_MESSAGE_LENGTH,
    NotificationBus,
    PushRegistrationStore,
    QueueSubscriber,
    classify_telegram_failure,
    format_frame,
    format_push_text,
)

from tests.fakes import FakePushSender, RecordingSubscriber


def _alert(kind=AlertKind.LEAD_WARNING, body="Standup @ Room 4"):
    return Alert(kind=kind, title="Starting in ~15 min", body=body, related_event_id="evt-1")


def test_every_alert_kind_has_a_label():
    assert set(KIND_LABELS) == set(AlertKind)


def test_format_frame():
    assert format_frame("ping", "connected") == "event: ping\ndata: connected\n\n"


def test_push_text_is_labelled_and_truncated():
    assert format_push_text(_alert()) == "[Upcoming] Starting in ~15 min\n\nStandup @ Room 4"
    long_text = format_push_text(_alert(body="x" * 5000))
    assert len(long_text) <= MAX_MESSAGE_LENGTH
    assert long_text.endswith("...(truncated)")


def test_classify_telegram_failure():
    assert classify_telegram_failure(403, "Forbidden: bot was blocked by the user").gone
    assert classify_telegram_failure(400, "Bad Request: chat not found").gone
    assert not classify_telegram_failure(400, "Bad Request: message is too long").gone
    err = classify_telegram_failure(429, "Too Many Requests")
    assert isinstance(err, DeliveryError)
    assert err.status == 429 and not err.gone


@pytest.mark.asyncio
async def test_subscribe_sends_connected_ping():
    bus = NotificationBus()
    sub = RecordingSubscriber()

    assert await bus.subscribe(sub)
    assert sub.frames == [("ping", "connected")]
    assert bus.subscriber_count == 1


@pytest.mark.asyncio
async def test_broadcast_reaches_live_subscribers():
    bus = NotificationBus()
    a, b = RecordingSubscriber(), RecordingSubscriber()
    await bus.subscribe(a)
    await bus.subscribe(b)

    alert = _alert()
    counts = await bus.broadcast(alert)

    assert counts == {"live": 2, "push": 0}
    for sub in (a, b):
        name, data = sub.frames[-1]
        assert name == "notification"
        payload = json.loads(data)
        assert payload["id"] == alert.id
        assert payload["type"] == "lead_warning"
        assert payload["eventId"] == "evt-1"


@pytest.mark.asyncio
async def test_failed_write_drops_subscriber():
    bus = NotificationBus()
    good = RecordingSubscriber()
    await bus.subscribe(good)
    flaky = RecordingSubscriber()
    await bus.subscribe(flaky)
    flaky.fail = True

    counts = await bus.broadcast(_alert())

    assert counts["live"] == 1
    assert bus.subscriber_count == 1
    await bus.heartbeat()
    assert good.events() == ["ping", "notification", "ping"]


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = NotificationBus()
    sub = RecordingSubscriber()
    await bus.subscribe(sub)
    bus.unsubscribe(sub)
    await bus.broadcast(_alert())
    assert sub.events() == ["ping"]


@pytest.mark.asyncio
async def test_push_prunes_gone_registrations(tmp_path):
    store = PushRegistrationStore(tmp_path / "push.json")
    store.save(["111", "222", "333", "444"])
    sender = FakePushSender(errors={
        "222": classify_telegram_failure(403, "Forbidden: bot was blocked by the user"),
        "333": classify_telegram_failure(400, "Bad Request: chat not found"),
        "444": classify_telegram_failure(502, "Bad Gateway"),
    })
    bus = NotificationBus(store=store, sender=sender)

    counts = await bus.broadcast(_alert())

    assert counts == {"live": 0, "push": 1}
    assert sender.delivered == [("111", "[Upcoming] Starting in ~15 min\n\nStandup @ Room 4")]
    assert store.load() == ["111", "444"]


@pytest.mark.asyncio
async def test_push_sent_without_live_subscribers(tmp_path):
    store = PushRegistrationStore(tmp_path / "push.json")
    store.add("111")
    sender = FakePushSender()
    bus = NotificationBus(store=store, sender=sender)

    alert = await bus.push_notification(AlertKind.DIGEST_READY, "Morning digest sent", "Check your inbox")

    assert alert.kind is AlertKind.DIGEST_READY
    assert sender.delivered == [("111", "[Digest] Morning digest sent\n\nCheck your inbox")]


@pytest.mark.asyncio
async def test_push_notification_ids_are_unique():
    bus = NotificationBus()
    first = await bus.push_notification(AlertKind.EVENING_READY, "Evening briefing ready", "")
    second = await bus.push_notification(AlertKind.EVENING_READY, "Evening briefing ready", "")
    assert first.id != second.id


def test_registration_store_roundtrip_and_dedupe(tmp_path):
    store = PushRegistrationStore(tmp_path / "state" / "push.json")
    assert store.load() == []

    store.add("111")
    store.add("222")
    store.add("111")

    assert store.load() == ["222", "111"]
    assert store.remove(["222", "999"]) == 1
    assert store.load() == ["111"]
    assert not (tmp_path / "state" / "push.tmp").exists()


def test_corrupt_store_loads_empty(tmp_path):
    path = tmp_path / "push.json"
    path.write_text("{not json")
    assert PushRegistrationStore(path).load() == []


@pytest.mark.asyncio
async def test_queue_subscriber_streams_until_closed():
    handle = QueueSubscriber()
    bus = NotificationBus()
    await bus.subscribe(handle)
    await bus.broadcast(_alert())
    handle.close()

    frames = [frame async for frame in handle.frames()]

    assert frames[0] == "event: ping\ndata: connected\n\n"
    assert frames[1].startswith("event: notification\ndata: {")
    assert len(frames) == 2

    await bus.heartbeat()
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_queue_subscriber_dropped_and_closed_when_full():
    handle = QueueSubscriber(maxsize=1)
    bus = NotificationBus()
    await bus.subscribe(handle)

    await bus.heartbeat()

    assert bus.subscriber_count == 0
    assert handle.closed
    # the stream ends instead of waiting for frames that will never come
    frames = await asyncio.wait_for(_collect(handle), timeout=1)
    assert frames == []


async def _collect(handle):
    return [frame async for frame in handle.frames()]


def test_close_is_idempotent():
    handle = QueueSubscriber(maxsize=2)
    handle.close()
    handle.close()
    assert handle._queue.qsize() == 1


@pytest.mark.asyncio
async def test_cancelled_push_is_not_counted_as_delivered(tmp_path):
    store = PushRegistrationStore(tmp_path / "push.json")
    store.save(["111", "222"])
    sender = FakePushSender(errors={"222": asyncio.CancelledError()})
    bus = NotificationBus(store=store, sender=sender)

    counts = await bus.broadcast(_alert())

    assert counts == {"live": 0, "push": 1}
    assert store.load() == ["111", "222"]
