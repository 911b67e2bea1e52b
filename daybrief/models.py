#!/usr/bin/env python3
"""
Data models shared across daybrief.

Adapters hand back these types, the aggregator folds them into a frozen
Snapshot, and the alert side speaks in Alert / GpsFix / TrafficEstimate.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Generic, Optional, Tuple, TypeVar

T = TypeVar("T")

GPS_FRESH_FOR = timedelta(hours=2)


# ============================================
# SOURCE DATA
# ============================================


@dataclass(frozen=True)
class CalendarEvent:
    """A calendar entry.

    ``start`` is the human display string (e.g. "Mon, Feb 24 at 9:00 AM");
    ``start_at`` is the machine-readable start when the calendar provides one.
    """

    event_id: str
    title: str
    start: str = ""
    end: str = ""
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    location: str = ""
    description: str = ""


@dataclass(frozen=True)
class Email:
    id: str
    subject: str
    sender: str
    snippet: str = ""
    date: str = ""
    account: str = ""
    is_important: bool = False
    labels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    status: str = "needsAction"  # or "completed"
    due: Optional[datetime] = None
    notes: str = ""
    list_id: str = ""
    list_title: str = ""

    @property
    def completed(self) -> bool:
        return self.status == "completed"


@dataclass(frozen=True)
class PlannedBlock:
    """A prioritized work item from the planner source."""

    name: str
    priority: int
    estimated_minutes: int = 30


@dataclass(frozen=True)
class HourlyForecast:
    time: str
    temp_f: float
    precip_chance: int
    condition: str


@dataclass(frozen=True)
class WeatherReport:
    location: str
    condition: str
    temperature_f: float
    high: float
    low: float
    precip_chance: int = 0
    feels_like_f: Optional[float] = None
    humidity: Optional[int] = None
    wind_mph: Optional[float] = None
    sunrise: str = ""
    sunset: str = ""
    hourly: Tuple[HourlyForecast, ...] = ()


@dataclass(frozen=True)
class NewsArticle:
    title: str
    url: str
    source: str = ""
    published_at: str = ""
    description: str = ""


@dataclass(frozen=True)
class NewsResult:
    topic: str
    articles: Tuple[NewsArticle, ...] = ()


@dataclass(frozen=True)
class UsageStats:
    date: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    calls: int = 0
    estimated_cost_usd: float = 0.0


@dataclass(frozen=True)
class PackageInfo:
    tracking_number: str
    carrier: str  # UPS, FedEx, USPS, Amazon, Unknown
    tracking_url: str
    email_subject: str = ""
    email_from: str = ""
    email_date: str = ""
    arriving_today: bool = False


@dataclass(frozen=True)
class TrafficEstimate:
    free_flow_minutes: int
    traffic_aware_minutes: int
    delay_minutes: int = 0
    heavy: bool = False
    summary: str = ""

    @classmethod
    def from_minutes(cls, free_flow: int, traffic_aware: int) -> "TrafficEstimate":
        """Build an estimate the way the routes summary reads it: >5 min delay is heavy."""
        delay = max(0, traffic_aware - free_flow)
        heavy = delay > 5
        if heavy:
            summary = f"{free_flow} min drive, {traffic_aware} min with current traffic (+{delay} min delay)"
        elif delay > 0:
            summary = f"{free_flow} min drive, ~{traffic_aware} min with traffic"
        else:
            summary = f"{free_flow} min drive, traffic is clear"
        return cls(free_flow, traffic_aware, delay, heavy, summary)


@dataclass(frozen=True)
class DigestResult:
    success: bool
    delivery_id: Optional[str] = None
    error: Optional[str] = None


# ============================================
# SNAPSHOT
# ============================================


@dataclass(frozen=True)
class Snapshot:
    """One immutable aggregation of the user's day.

    Every field defaults to an empty value so a missing source never shows up
    as None where a collection is expected.
    """

    calendar: Tuple[CalendarEvent, ...] = ()
    emails: Tuple[Email, ...] = ()
    important_emails: Tuple[Email, ...] = ()
    news: Tuple[NewsResult, ...] = ()
    weather: Optional[WeatherReport] = None
    tasks: Tuple[Task, ...] = ()
    planner: Tuple[PlannedBlock, ...] = ()
    usage: Optional[UsageStats] = None
    suggestions: Tuple[str, ...] = ()
    packages: Tuple[PackageInfo, ...] = ()
    generated_at: Optional[datetime] = None


# ============================================
# RESULTS
# ============================================


@dataclass(frozen=True)
class SourceResult(Generic[T]):
    """Outcome of one adapter call: a value, or the isolated error."""

    source: str
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def value_or(self, default: T) -> T:
        return self.value if self.ok and self.value is not None else default


# ============================================
# ALERTS
# ============================================


class AlertKind(Enum):
    LEAD_WARNING = "lead_warning"
    STARTING_NOW = "starting_now"
    DEPARTURE = "departure"
    DIGEST_READY = "digest_ready"
    EVENING_READY = "evening_ready"
    TASK_REMINDER = "task_reminder"
    VIP_EMAIL = "vip_email"


@dataclass(frozen=True)
class Alert:
    kind: AlertKind
    title: str
    body: str
    related_event_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind.value,
            "title": self.title,
            "body": self.body,
            "eventId": self.related_event_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class GpsFix:
    lat: float
    lng: float
    captured_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now - self.captured_at <= GPS_FRESH_FOR

    def as_origin(self) -> str:
        return f"{self.lat},{self.lng}"
