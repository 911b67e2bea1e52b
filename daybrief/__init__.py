"""
daybrief - daily briefing aggregation and proactive calendar alerts.

Builds one consistent snapshot of the day (calendar, mail, tasks, weather,
news, usage) from pluggable data sources, caches it for dashboards and
conversations, and runs a background loop that fires traffic-aware calendar
alerts exactly once per condition.
"""

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = ["__version__", "__license__"]
