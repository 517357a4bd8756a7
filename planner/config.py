"""Process-wide configuration, read once from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gemini-2.5-flash-lite"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Settings shared by the stores, collaborators and surfaces."""

    db_path: str = "data/planner.db"
    timezone: str = "UTC"
    app_base_url: str = "http://localhost:8000"
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    google_maps_api_key: Optional[str] = None
    slack_bot_token: Optional[str] = None
    slack_app_token: Optional[str] = None
    availability_window_days: int = 7
    activity_cache_ttl: int = 60 * 60
    default_duration_minutes: int = 120
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        env = os.environ
        return cls(
            db_path=env.get("PLANNER_DB_PATH", "data/planner.db"),
            timezone=env.get("PLANNER_TIMEZONE", "UTC"),
            app_base_url=env.get("APP_BASE_URL", "http://localhost:8000").rstrip("/"),
            gemini_api_key=env.get("GEMINI_API_KEY") or None,
            gemini_model=env.get("GEMINI_MODEL", DEFAULT_MODEL),
            google_maps_api_key=env.get("GOOGLE_MAPS_API_KEY") or None,
            slack_bot_token=env.get("SLACK_BOT_TOKEN") or None,
            slack_app_token=env.get("SLACK_APP_TOKEN") or None,
            availability_window_days=_int_env("AVAILABILITY_WINDOW_DAYS", 7),
            activity_cache_ttl=_int_env("ACTIVITY_CACHE_TTL", 60 * 60),
            port=_int_env("PORT", 8000),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def missing(self, *fields: str) -> List[str]:
        """Names of the given settings that are unset or empty."""
        return [f for f in fields if not getattr(self, f)]

    def require(self, *fields: str) -> None:
        missing = self.missing(*fields)
        if missing:
            raise RuntimeError(f"Missing settings: {', '.join(missing)}")

    def join_url(self, share_link: str) -> str:
        return f"{self.app_base_url}/join/{share_link}"
