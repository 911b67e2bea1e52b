#!/usr/bin/env python3
"""
Notification Channels - alert fan-out.

Two kinds of delivery:
- Live stream subscribers (one per open browser tab / client connection).
  Each gets server-sent-event frames; a failed write drops the subscriber.
- Out-of-band push to durable registrations (Telegram chat ids). Sent even
  when no client is connected. Registrations the remote side reports as gone
  are pruned from the store.

Credentials are loaded from the environment via daybrief.config:
    TELEGRAM_BOT_TOKEN   - enables out-of-band push
    DAYBRIEF_PUSH_STORE  - JSON file holding the registered chat ids
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set

import aiohttp

from daybrief.errors import DeliveryError
from daybrief.models import Alert, AlertKind

logger = logging.getLogger("notify_channels")

MAX_MESSAGE_LENGTH = 4000

# Every AlertKind must have an entry; format_push_text raises otherwise.
KIND_LABELS: Dict[AlertKind, str] = {
    AlertKind.LEAD_WARNING: "Upcoming",
    AlertKind.STARTING_NOW: "Now",
    AlertKind.DEPARTURE: "Leave soon",
    AlertKind.DIGEST_READY: "Digest",
    AlertKind.EVENING_READY: "Evening",
    AlertKind.TASK_REMINDER: "Tasks",
    AlertKind.VIP_EMAIL: "VIP",
}


def format_frame(event: str, data: str) -> str:
    """Server-sent-event wire frame."""
    return f"event: {event}\ndata: {data}\n\n"


def format_push_text(alert: Alert) -> str:
    label = KIND_LABELS.get(alert.kind)
    if label is None:
        raise ValueError(f"Unhandled alert kind: {alert.kind}")
    text = f"[{label}] {alert.title}\n\n{alert.body}"
    if len(text) > MAX_MESSAGE_LENGTH:
        text = text[:MAX_MESSAGE_LENGTH - 20] + "\n\n...(truncated)"
    return text


# ============================================
# LIVE SUBSCRIBERS
# ============================================


class Subscriber(Protocol):
    async def send(self, event: str, data: str) -> None: ...


class QueueSubscriber:
    """A live stream handle backed by an asyncio.Queue.

    A web layer drains ``frames()`` into its response body; ``close()`` ends
    the stream. Writes after close raise, which drops the handle from the bus.
    """

    def __init__(self, maxsize: int = 100):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def send(self, event: str, data: str) -> None:
        if self.closed:
            raise ConnectionError("subscriber closed")
        # A client that stopped reading is as good as disconnected
        self._queue.put_nowait(format_frame(event, data))

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def frames(self):
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


# ============================================
# DURABLE PUSH REGISTRATIONS
# ============================================


class PushRegistrationStore:
    """Chat ids persisted to a JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[str]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return [str(r) for r in data.get("registrations", [])]
        except (json.JSONDecodeError, IOError, AttributeError) as e:
            logger.error(f"Could not load push registrations, using none: {e}")
            return []

    def save(self, registrations: Iterable[str]):
        """Atomically save via temp file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.path.with_suffix(".tmp")
        try:
            with open(tmp_file, "w") as f:
                json.dump({"registrations": list(registrations)}, f, indent=2)
            os.replace(str(tmp_file), str(self.path))
        except IOError as e:
            logger.error(f"Push registration save failed: {e}")

    def add(self, registration: str):
        current = [r for r in self.load() if r != registration]
        current.append(registration)
        self.save(current)

    def remove(self, dead: Iterable[str]) -> int:
        dead = set(dead)
        if not dead:
            return 0
        current = self.load()
        kept = [r for r in current if r not in dead]
        self.save(kept)
        return len(current) - len(kept)


class PushSender(Protocol):
    async def deliver(self, registration: str, text: str) -> None: ...


def classify_telegram_failure(status: int, body: str) -> DeliveryError:
    """403 (bot blocked / kicked) and 400 "chat not found" mean the chat is gone."""
    lowered = body.lower()
    gone = status == 403 or (status == 400 and "chat not found" in lowered)
    return DeliveryError(f"Telegram error: {status} - {body[:200]}", status=status, gone=gone)


class TelegramPush:
    """Out-of-band push through the Telegram Bot API."""

    def __init__(self, bot_token: str, timeout: float = 10):
        self.url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def deliver(self, registration: str, text: str) -> None:
        payload = {"chat_id": registration, "text": text}
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(self.url, json=payload) as resp:
                if resp.status == 200:
                    return
                body = await resp.text()
                raise classify_telegram_failure(resp.status, body)


# ============================================
# BUS
# ============================================


class NotificationBus:
    """Delivers alerts to live subscribers and push registrations."""

    def __init__(
        self,
        store: Optional[PushRegistrationStore] = None,
        sender: Optional[PushSender] = None,
    ):
        self._subscribers: Set[Subscriber] = set()
        self.store = store
        self.sender = sender

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def push_enabled(self) -> bool:
        return self.store is not None and self.sender is not None

    async def subscribe(self, handle: Subscriber) -> bool:
        """Register a live handle and tell it it is connected."""
        self._subscribers.add(handle)
        return await self._write(handle, "ping", "connected")

    def unsubscribe(self, handle: Subscriber):
        self._subscribers.discard(handle)

    async def _write(self, handle: Subscriber, event: str, data: str) -> bool:
        try:
            await handle.send(event, data)
            return True
        except Exception as e:
            logger.debug(f"Dropping subscriber after failed write: {e}")
            self._subscribers.discard(handle)
            close = getattr(handle, "close", None)
            if close is not None:
                close()
            return False

    async def _push_all(self, alert: Alert) -> int:
        registrations = self.store.load()
        if not registrations:
            return 0
        text = format_push_text(alert)
        results = await asyncio.gather(
            *(self.sender.deliver(r, text) for r in registrations),
            return_exceptions=True,
        )
        dead = []
        delivered = 0
        for registration, result in zip(registrations, results):
            if isinstance(result, DeliveryError) and result.gone:
                dead.append(registration)
            elif isinstance(result, BaseException):
                logger.error(f"Push send failed for {registration}: {result}")
            else:
                delivered += 1
        if dead:
            removed = self.store.remove(dead)
            logger.info(f"Pruned {removed} expired push registrations")
        return delivered

    async def broadcast(self, alert: Alert) -> Dict[str, int]:
        """Send ``alert`` everywhere. Never raises for delivery failures."""
        format_push_text(alert)  # unknown kinds fail here, before anything is sent
        payload = json.dumps(alert.to_dict())
        for handle in list(self._subscribers):
            await self._write(handle, "notification", payload)

        pushed = 0
        if self.push_enabled:
            pushed = await self._push_all(alert)

        logger.info(f"Notification sent (live: {len(self._subscribers)}, push: {pushed}): {alert.title}")
        return {"live": len(self._subscribers), "push": pushed}

    async def push_notification(self, kind: AlertKind, title: str, body: str,
                                related_event_id: Optional[str] = None) -> Alert:
        """Externally triggered notification with a fresh id and timestamp."""
        alert = Alert(kind=kind, title=title, body=body, related_event_id=related_event_id)
        await self.broadcast(alert)
        return alert

    async def heartbeat(self):
        """Ping every live subscriber; keeps connections open through proxies."""
        for handle in list(self._subscribers):
            await self._write(handle, "ping", "heartbeat")

    async def run_heartbeat(self, interval: float = 30, sleep: Callable = asyncio.sleep):
        logger.info(f"Heartbeat started: every {interval}s")
        while True:
            await sleep(interval)
            try:
                await self.heartbeat()
            except Exception as e:
                logger.error(f"Heartbeat error: {e}")
