import importlib
import os, sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from planner.config import Settings

ENV_KEYS = [
    "PLANNER_DB_PATH",
    "PLANNER_TIMEZONE",
    "APP_BASE_URL",
    "GEMINI_API_KEY",
    "GOOGLE_MAPS_API_KEY",
    "SLACK_BOT_TOKEN",
    "SLACK_APP_TOKEN",
    "AVAILABILITY_WINDOW_DAYS",
    "PORT",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_from_env_reads_values(monkeypatch):
    monkeypatch.setenv("PLANNER_DB_PATH", "/tmp/x.db")
    monkeypatch.setenv("PLANNER_TIMEZONE", "Asia/Tokyo")
    monkeypatch.setenv("APP_BASE_URL", "https://plan.example.com/")
    monkeypatch.setenv("GEMINI_API_KEY", "g")
    monkeypatch.setenv("AVAILABILITY_WINDOW_DAYS", "14")
    monkeypatch.setenv("PORT", "not-a-port")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    s = Settings.from_env(dotenv=False)

    assert s.db_path == "/tmp/x.db"
    assert s.timezone == "Asia/Tokyo"
    assert s.gemini_api_key == "g"
    assert s.availability_window_days == 14
    assert s.port == 8000
    assert s.log_level == "DEBUG"
    assert s.join_url("abc") == "https://plan.example.com/join/abc"


def test_missing_and_require():
    s = Settings.from_env(dotenv=False)
    assert s.missing("gemini_api_key", "timezone") == ["gemini_api_key"]
    with pytest.raises(RuntimeError):
        s.require("gemini_api_key")


def test_main_exits_when_keys_are_missing(monkeypatch):
    monkeypatch.setattr("planner.config.load_dotenv", lambda *a, **k: False)
    main = importlib.reload(importlib.import_module("main"))
    assert main.main(["web"]) == 1
    monkeypatch.setenv("GEMINI_API_KEY", "g")
    assert main.main(["slack"]) == 1
