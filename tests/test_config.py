from pathlib import Path

import pytest

from daybrief.config import MIN_POLL_SECONDS, Settings, load_settings, parse_hhmm
from daybrief.errors import ConfigError


def test_defaults():
    settings = load_settings(env={})

    assert settings.poll_seconds == 60
    assert settings.morning_time == "07:00"
    assert settings.evening_time == "17:00"
    assert settings.news_topics == ["technology", "business", "world"]
    assert not settings.push_enabled


def test_environment_overrides():
    settings = load_settings(env={
        "DAYBRIEF_POLL_SECONDS": "30",
        "DAYBRIEF_MORNING_TIME": "6:45",
        "DAYBRIEF_NEWS_TOPICS": "ai, space ,",
        "HOME_ADDRESS": "1 Home St",
        "TELEGRAM_BOT_TOKEN": "123:abc",
        "DAYBRIEF_PUSH_STORE": "/tmp/push.json",
    })

    assert settings.poll_seconds == 30
    assert settings.morning_time == "06:45"
    assert settings.news_topics == ["ai", "space"]
    assert settings.home_address == "1 Home St"
    assert settings.push_enabled
    assert settings.push_store == Path("/tmp/push.json")


def test_poll_interval_floor():
    assert load_settings(env={"DAYBRIEF_POLL_SECONDS": "5"}).poll_seconds == MIN_POLL_SECONDS
    assert Settings(poll_seconds=1).poll_seconds == MIN_POLL_SECONDS


def test_invalid_values_fall_back():
    settings = load_settings(env={
        "DAYBRIEF_MORNING_TIME": "25:00",
        "DAYBRIEF_EVENING_TIME": "late",
        "DAYBRIEF_TASK_LIMIT": "lots",
    })

    assert settings.morning_time == "07:00"
    assert settings.evening_time == "17:00"
    assert settings.task_limit == 30


def test_yaml_file_with_env_on_top(tmp_path):
    path = tmp_path / "daybrief.yaml"
    path.write_text(
        "poll_seconds: 90\n"
        "evening_time: 18:30\n"
        "timezone: Europe/Berlin\n"
        "news_topics: [science, markets]\n"
        "unknown_key: 1\n"
    )

    settings = load_settings(env={"DAYBRIEF_CONFIG": str(path), "DAYBRIEF_POLL_SECONDS": "20"})

    assert settings.poll_seconds == 20
    assert settings.evening_time == "18:30"
    assert settings.timezone == "Europe/Berlin"
    assert settings.news_topics == ["science", "markets"]


def test_vip_senders_from_env_and_yaml(tmp_path):
    assert load_settings(env={}).vip_senders == []

    settings = load_settings(env={"VIP_SENDERS": " Boss@Example.com, ,ceo "})
    assert settings.vip_senders == ["boss@example.com", "ceo"]

    path = tmp_path / "daybrief.yaml"
    path.write_text("vip_senders: [Alice, '  ']\n")
    assert load_settings(env={"DAYBRIEF_CONFIG": str(path)}).vip_senders == ["alice"]


def test_yaml_must_be_a_mapping(tmp_path):
    path = tmp_path / "daybrief.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_settings(env={}, path=path)


def test_missing_yaml_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(env={}, path=tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "raw, expected",
    [("9:00", (9, 0)), ("23:59", (23, 59)), ("24:00", None), ("9:60", None), ("", None), (570, (9, 30))],
)
def test_parse_hhmm(raw, expected):
    assert parse_hhmm(raw) == expected
