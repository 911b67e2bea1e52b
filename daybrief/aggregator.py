#!/usr/bin/env python3
"""
Briefing Aggregator - fans out to every data source and folds the results
into one immutable Snapshot.

Each source is guarded on its own: a failing adapter is logged and contributes
an empty value, it never aborts the rest of the briefing. Timeouts are the
adapters' business, not ours.
"""

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Sequence, Union

from daybrief.adapters import Adapters
from daybrief.analyzer import analyze
from daybrief.errors import AdapterError
from daybrief.models import Email, Snapshot, SourceResult
from daybrief.packages import EmailPackageScanner

logger = logging.getLogger("aggregator")


async def guarded(source: str, call: Callable[[], Union[Awaitable[Any], Any]]) -> SourceResult:
    """Run one adapter call and capture its outcome as a SourceResult."""
    try:
        value = call()
        if asyncio.iscoroutine(value) or isinstance(value, asyncio.Future):
            value = await value
        return SourceResult(source, value=value)
    except Exception as e:
        logger.error(f"{source} fetch failed: {e}")
        return SourceResult(source, error=AdapterError(source, e))


def filter_important(emails: Sequence[Email]) -> List[Email]:
    return [e for e in emails if e.is_important]


class BriefingAggregator:
    """Builds Snapshots from an Adapters bundle."""

    def __init__(
        self,
        adapters: Adapters,
        news_topics: Sequence[str] = (),
        task_limit: int = 30,
        clock: Callable[[], datetime] = lambda: datetime.now().astimezone(),
    ):
        self.adapters = adapters
        self.news_topics = list(news_topics)
        self.task_limit = task_limit
        self._clock = clock
        # Without a dedicated package source, scan unread mail for tracking numbers
        self.packages = adapters.packages
        if self.packages is None:
            self.packages = EmailPackageScanner(adapters.email, clock=clock)

    async def _suggest(self, partial: Snapshot) -> List[str]:
        return analyze(partial, now=self._clock())

    async def _packages(self) -> SourceResult:
        return await guarded("packages", self.packages.scan_for_packages)

    async def aggregate(self) -> Snapshot:
        """Fetch every source concurrently and return the day's Snapshot."""
        logger.info("Fetching briefing data...")
        a = self.adapters

        calendar, planner, emails, news, weather, tasks = await asyncio.gather(
            guarded("calendar", lambda: a.calendar.events_for_day(1)),
            guarded("planner", a.planner.planned_blocks),
            guarded("email", a.email.unread_across_accounts),
            guarded("news", lambda: a.news.search_by_topics(self.news_topics)),
            guarded("weather", a.weather.forecast),
            guarded("tasks", lambda: a.tasks.open_tasks(self.task_limit)),
        )
        usage = await guarded("usage", a.usage.usage_today)

        email_list = emails.value_or([])
        partial = Snapshot(
            calendar=tuple(calendar.value_or([])),
            planner=tuple(sorted(planner.value_or([]), key=lambda b: b.priority)),
            emails=tuple(email_list),
            important_emails=tuple(filter_important(email_list)),
            news=tuple(news.value_or([])),
            weather=weather.value if weather.ok else None,
            tasks=tuple(tasks.value_or([])),
            usage=usage.value if usage.ok else None,
        )

        suggestions, packages = await asyncio.gather(self._suggest(partial), self._packages())

        failed = [r.source for r in (calendar, planner, emails, news, weather, tasks, usage, packages) if not r.ok]
        if failed:
            logger.warning(f"Briefing built with missing sources: {', '.join(failed)}")

        return dataclasses.replace(
            partial,
            suggestions=tuple(suggestions),
            packages=tuple(packages.value_or([])),
            generated_at=self._clock(),
        )
