#!/usr/bin/env python3
"""
Settings for daybrief.

All settings come from environment variables, optionally layered on top of a
YAML settings file named by DAYBRIEF_CONFIG (environment wins).

Configuration (environment variables):
    DAYBRIEF_CONFIG            - Optional YAML settings file
    DAYBRIEF_POLL_SECONDS      - Calendar alert poll interval (default: 60, floor: 15)
    DAYBRIEF_MORNING_TIME      - Morning digest time HH:MM (default: "07:00")
    DAYBRIEF_EVENING_TIME      - Evening summary time HH:MM (default: "17:00")
    DAYBRIEF_TIMEZONE          - Local timezone (default: "America/New_York")
    HOME_ADDRESS               - Origin for departure alerts (optional)
    WORK_ADDRESS               - Origin for the evening commute estimate (optional)
    DAYBRIEF_NEWS_TOPICS       - Comma separated news topics
    DAYBRIEF_TASK_LIMIT        - Max open tasks to fetch (default: 30)
    DAYBRIEF_HEARTBEAT_SECONDS - Live stream keepalive interval (default: 30)
    VIP_SENDERS                - Comma separated sender fragments for VIP email alerts
    TELEGRAM_BOT_TOKEN         - Enables out-of-band push (optional)
    DAYBRIEF_PUSH_STORE        - Push registration JSON file
    DAYBRIEF_LOG_DIR           - Directory for log files (default: ./logs)
    DAYBRIEF_ADAPTERS          - "module:factory" returning the adapter bundle
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import yaml

from daybrief.errors import ConfigError

logger = logging.getLogger("config")

MIN_POLL_SECONDS = 15
DEFAULT_POLL_SECONDS = 60
DEFAULT_MORNING_TIME = "07:00"
DEFAULT_EVENING_TIME = "17:00"
DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_NEWS_TOPICS = ["technology", "business", "world"]

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")

# YAML key -> environment variable
_ENV_KEYS = {
    "poll_seconds": "DAYBRIEF_POLL_SECONDS",
    "morning_time": "DAYBRIEF_MORNING_TIME",
    "evening_time": "DAYBRIEF_EVENING_TIME",
    "timezone": "DAYBRIEF_TIMEZONE",
    "home_address": "HOME_ADDRESS",
    "work_address": "WORK_ADDRESS",
    "news_topics": "DAYBRIEF_NEWS_TOPICS",
    "task_limit": "DAYBRIEF_TASK_LIMIT",
    "heartbeat_seconds": "DAYBRIEF_HEARTBEAT_SECONDS",
    "vip_senders": "VIP_SENDERS",
    "telegram_bot_token": "TELEGRAM_BOT_TOKEN",
    "push_store": "DAYBRIEF_PUSH_STORE",
    "log_dir": "DAYBRIEF_LOG_DIR",
    "adapters": "DAYBRIEF_ADAPTERS",
}


def parse_hhmm(raw: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse "H:MM" / "HH:MM" into (hour, minute), or None if invalid."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        # YAML 1.1 reads an unquoted 17:00 as the sexagesimal int 1020
        raw = "%d:%02d" % divmod(raw, 60)
    if not raw:
        return None
    match = _HHMM.match(str(raw).strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return hour, minute
    return None


def time_to_cron(raw: Optional[str], default: str, name: str = "time") -> str:
    """Convert an HH:MM setting to a daily cron expression "M H * * *".

    Invalid values log a warning and fall back to ``default``.
    """
    parsed = parse_hhmm(raw)
    if parsed is None:
        if raw:
            logger.warning(f"Invalid {name}={raw!r}, expected HH:MM, using default {default}")
        parsed = parse_hhmm(default)
    hour, minute = parsed
    return f"{minute} {hour} * * *"


def normalize_senders(raw) -> List[str]:
    """Comma string or list -> trimmed, lowercased, non-empty sender fragments."""
    if isinstance(raw, str):
        raw = raw.split(",")
    return [str(s).strip().lower() for s in raw or () if str(s).strip()]


@dataclass
class Settings:
    poll_seconds: int = DEFAULT_POLL_SECONDS
    morning_time: str = DEFAULT_MORNING_TIME
    evening_time: str = DEFAULT_EVENING_TIME
    timezone: str = DEFAULT_TIMEZONE
    home_address: str = ""
    work_address: str = ""
    news_topics: List[str] = field(default_factory=lambda: list(DEFAULT_NEWS_TOPICS))
    task_limit: int = 30
    heartbeat_seconds: int = 30
    vip_senders: List[str] = field(default_factory=list)
    telegram_bot_token: str = ""
    push_store: Path = Path("data") / "push-registrations.json"
    log_dir: Path = Path("logs")
    adapters: str = ""

    def __post_init__(self):
        if self.poll_seconds < MIN_POLL_SECONDS:
            logger.warning(f"Poll interval {self.poll_seconds}s below floor, using {MIN_POLL_SECONDS}s")
            self.poll_seconds = MIN_POLL_SECONDS

    @property
    def push_enabled(self) -> bool:
        return bool(self.telegram_bot_token)


def _read_file(path: Path) -> Dict:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read settings file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    unknown = set(data) - set(_ENV_KEYS)
    if unknown:
        logger.warning(f"Ignoring unknown settings keys: {', '.join(sorted(unknown))}")
    return {k: v for k, v in data.items() if k in _ENV_KEYS}


def _as_int(name: str, value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name}={value!r}, using default {default}")
        return default


def _as_time(name: str, value, default: str) -> str:
    """Normalize an HH:MM setting, falling back to ``default`` when invalid."""
    parsed = parse_hhmm(value)
    if parsed is None:
        if value is not None:
            logger.warning(f"Invalid {name}={value!r}, using default {default}")
        return default
    return "%02d:%02d" % parsed


def load_settings(env: Optional[Mapping[str, str]] = None, path: Optional[Path] = None) -> Settings:
    """Build Settings from an optional YAML file overlaid with environment variables."""
    env = os.environ if env is None else env
    raw: Dict = {}

    config_path = path or (Path(env["DAYBRIEF_CONFIG"]) if env.get("DAYBRIEF_CONFIG") else None)
    if config_path is not None:
        raw.update(_read_file(config_path))

    for key, var in _ENV_KEYS.items():
        if env.get(var):
            raw[key] = env[var]

    topics = raw.get("news_topics", DEFAULT_NEWS_TOPICS)
    if isinstance(topics, str):
        topics = [t.strip() for t in topics.split(",") if t.strip()]

    morning = _as_time("morning_time", raw.get("morning_time"), DEFAULT_MORNING_TIME)
    evening = _as_time("evening_time", raw.get("evening_time"), DEFAULT_EVENING_TIME)

    settings = Settings(
        poll_seconds=_as_int("poll_seconds", raw.get("poll_seconds", DEFAULT_POLL_SECONDS), DEFAULT_POLL_SECONDS),
        morning_time=morning,
        evening_time=evening,
        timezone=str(raw.get("timezone", DEFAULT_TIMEZONE)),
        home_address=str(raw.get("home_address", "")),
        work_address=str(raw.get("work_address", "")),
        news_topics=list(topics),
        task_limit=_as_int("task_limit", raw.get("task_limit", 30), 30),
        heartbeat_seconds=_as_int("heartbeat_seconds", raw.get("heartbeat_seconds", 30), 30),
        vip_senders=normalize_senders(raw.get("vip_senders", ())),
        telegram_bot_token=str(raw.get("telegram_bot_token", "")),
        adapters=str(raw.get("adapters", "")),
    )
    if raw.get("push_store"):
        settings.push_store = Path(raw["push_store"])
    if raw.get("log_dir"):
        settings.log_dir = Path(raw["log_dir"])
    return settings
