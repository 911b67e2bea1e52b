#!/usr/bin/env python3
"""
Snapshot caches.

SessionCache keeps one snapshot per session/user id for the whole day so a
conversation or a scheduled job keeps referring to the same data. It never
expires; only an explicit trigger (morning, evening, manual request)
overwrites an entry.

DashboardCache is a single global entry with a short TTL. Concurrent misses
share one in-flight aggregation instead of each starting their own.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional

from daybrief.models import Snapshot

logger = logging.getLogger("cache")

DASHBOARD_TTL = timedelta(minutes=5)


@dataclass(frozen=True)
class CacheEntry:
    data: Snapshot
    fetched_at: datetime


class SessionCache:
    """Unbounded per-session snapshot store."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock

    def set(self, session_id: str, snapshot: Snapshot):
        self._entries[session_id] = CacheEntry(snapshot, self._clock())

    def get(self, session_id: str) -> Optional[Snapshot]:
        entry = self._entries.get(session_id)
        return entry.data if entry else None

    def entry(self, session_id: str) -> Optional[CacheEntry]:
        return self._entries.get(session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class DashboardCache:
    """TTL cache with single-flight refresh.

    Invariants:
      * at most one refresh task exists at a time
      * the in-flight marker is cleared whether the refresh succeeds or fails
      * a failed refresh leaves the previous entry untouched
    """

    def __init__(
        self,
        build: Callable[[], Awaitable[Snapshot]],
        ttl: timedelta = DASHBOARD_TTL,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._build = build
        self.ttl = ttl
        self._clock = clock
        self._entry: Optional[CacheEntry] = None
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def fetched_at(self) -> Optional[datetime]:
        return self._entry.fetched_at if self._entry else None

    @property
    def refreshing(self) -> bool:
        return self._in_flight is not None

    def invalidate(self):
        """Drop the current entry so the next call refetches."""
        self._entry = None

    def _fresh(self) -> bool:
        return self._entry is not None and self._clock() - self._entry.fetched_at < self.ttl

    async def _refresh(self) -> Snapshot:
        try:
            data = await self._build()
            self._entry = CacheEntry(data, self._clock())
            logger.info("Dashboard snapshot refreshed")
            return data
        except Exception as e:
            logger.error(f"Dashboard refresh failed: {e}")
            raise
        finally:
            self._in_flight = None

    async def get_or_refresh(self) -> Snapshot:
        if self._fresh():
            return self._entry.data
        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._refresh())
        # shield: a cancelled waiter must not cancel the refresh other waiters share
        return await asyncio.shield(self._in_flight)
