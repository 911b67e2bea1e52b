#!/usr/bin/env python3
"""
Collaborator interfaces consumed by daybrief.

Concrete Gmail / Calendar / Tasks / weather / news / maps clients live outside
this package. Anything that satisfies these protocols can be plugged into an
Adapters bundle; the daemon loads one from DAYBRIEF_ADAPTERS ("module:factory").
"""

import importlib
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Sequence

from daybrief.errors import ConfigError
from daybrief.models import (
    CalendarEvent,
    DigestResult,
    Email,
    NewsResult,
    PackageInfo,
    PlannedBlock,
    Snapshot,
    Task,
    TrafficEstimate,
    UsageStats,
    WeatherReport,
)


class CalendarAdapter(Protocol):
    async def events_for_day(self, days_ahead: int = 1) -> List[CalendarEvent]: ...

    async def events_in_range(self, start: datetime, end: datetime) -> List[CalendarEvent]: ...


class EmailAdapter(Protocol):
    async def unread_across_accounts(self) -> List[Email]: ...


class TaskAdapter(Protocol):
    async def open_tasks(self, limit: int = 30) -> List[Task]: ...


class PlannerAdapter(Protocol):
    async def planned_blocks(self) -> List[PlannedBlock]: ...


class WeatherAdapter(Protocol):
    async def forecast(self) -> Optional[WeatherReport]: ...


class NewsAdapter(Protocol):
    async def search_by_topics(self, topics: Sequence[str]) -> List[NewsResult]: ...


class UsageAdapter(Protocol):
    def usage_today(self) -> Optional[UsageStats]: ...


class PackageAdapter(Protocol):
    async def scan_for_packages(self) -> List[PackageInfo]: ...


class TrafficAdapter(Protocol):
    async def live_drive_duration(self, origin: str, destination: str) -> Optional[TrafficEstimate]: ...


class DigestSender(Protocol):
    async def send(self, snapshot: Snapshot) -> DigestResult: ...


@dataclass
class Adapters:
    """The full set of collaborators a BriefingService needs."""

    calendar: CalendarAdapter
    email: EmailAdapter
    tasks: TaskAdapter
    planner: PlannerAdapter
    weather: WeatherAdapter
    news: NewsAdapter
    usage: UsageAdapter
    packages: Optional[PackageAdapter] = None
    traffic: Optional[TrafficAdapter] = None
    digest: Optional[DigestSender] = None


def load_adapters(path: str) -> Adapters:
    """Import "package.module:factory" and call the factory."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Adapter path must look like 'module:factory', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Could not import adapter module {module_name}: {e}") from e
    factory: Optional[Callable[[], Adapters]] = getattr(module, attr, None)
    if factory is None:
        raise ConfigError(f"{module_name} has no attribute {attr}")
    adapters = factory()
    if not isinstance(adapters, Adapters):
        raise ConfigError(f"{path} returned {type(adapters).__name__}, expected Adapters")
    return adapters
