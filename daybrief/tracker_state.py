#!/usr/bin/env python3
"""
Tracker State - in-memory state for the alert scheduler.

Tracks:
- Fired alert keys (event_id, kind) so each alert is delivered once
- Traffic-checked events so the route lookup runs once per event
- Cached traffic estimates so later ticks can re-check the departure window
- The last GPS fix reported by a mobile client

Every key carries an expiry (normally the end of its event's active window)
and is dropped once that passes. The hard size bound is only a backstop.

Owned by a single AlertScheduler running on one event loop; nothing here
is shared across threads.
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

from daybrief.models import AlertKind, GpsFix, TrafficEstimate

logger = logging.getLogger("tracker_state")

MAX_TRACKED_KEYS = 500

FiredKey = Tuple[str, AlertKind]


def lead_minutes(estimate: TrafficEstimate) -> int:
    """Minutes before start to send the departure alert: drive time + 10, at least 20."""
    return max(20, estimate.traffic_aware_minutes + 10)


class TrackerState:
    """Dedup, traffic and location state for alerting."""

    def __init__(self, max_keys: int = MAX_TRACKED_KEYS):
        self.max_keys = max_keys
        self._fired: Dict[FiredKey, datetime] = {}          # key -> expires_at
        self._traffic_checked: Dict[str, datetime] = {}     # event_id -> expires_at
        self._estimates: Dict[str, Optional[TrafficEstimate]] = {}  # None = unavailable
        self._gps: Optional[GpsFix] = None

    def __len__(self) -> int:
        return len(self._fired) + len(self._traffic_checked)

    # --- Fired alerts ---

    def is_fired(self, event_id: str, kind: AlertKind) -> bool:
        return (event_id, kind) in self._fired

    def mark_fired(self, event_id: str, kind: AlertKind, expires_at: datetime):
        self._fired[(event_id, kind)] = expires_at

    # --- Traffic lookups ---

    def is_traffic_checked(self, event_id: str) -> bool:
        return event_id in self._traffic_checked

    def mark_traffic_checked(self, event_id: str, expires_at: datetime):
        self._traffic_checked[event_id] = expires_at

    def store_estimate(self, event_id: str, estimate: Optional[TrafficEstimate]):
        if event_id in self._traffic_checked:
            self._estimates[event_id] = estimate

    def estimate_for(self, event_id: str) -> Optional[TrafficEstimate]:
        return self._estimates.get(event_id)

    # --- Location ---

    def update_location(self, fix: GpsFix):
        self._gps = fix

    def origin(self, now: datetime, fallback: str) -> str:
        """Fresh GPS coordinates as "lat,lng" if we have them, else ``fallback``."""
        if self._gps is not None and self._gps.is_fresh(now):
            return self._gps.as_origin()
        return fallback

    # --- Housekeeping ---

    def expire(self, now: datetime) -> int:
        """Drop keys whose active window has passed. Returns how many went."""
        stale_fired = [k for k, exp in self._fired.items() if exp < now]
        for key in stale_fired:
            del self._fired[key]
        stale_events = [eid for eid, exp in self._traffic_checked.items() if exp < now]
        for eid in stale_events:
            del self._traffic_checked[eid]
            self._estimates.pop(eid, None)
        return len(stale_fired) + len(stale_events)

    def enforce_bound(self) -> bool:
        """Clear everything if still over the size bound after expiry."""
        if len(self) <= self.max_keys:
            return False
        logger.warning(f"Tracked alert keys exceeded {self.max_keys} ({len(self)}), clearing")
        self._fired.clear()
        self._traffic_checked.clear()
        self._estimates.clear()
        return True
