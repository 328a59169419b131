"""
Centralised settings for the timeline pipeline (env-first, code-light).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from crawler.infra.http import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


@dataclass
class TimelineSettings:
    db_path: Path
    accounts_path: Path
    account_delay: float
    feed_entry_limit: int
    max_workers: int
    user_agent: str
    feed_timeout: int
    api_timeout: int
    page_timeout: int
    news_url: str
    team_url: str
    events_url: str
    schedule_minutes: int
    official_schedule_minutes: int


def _int_from_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except Exception:
        logger.warning("Invalid int value for %s=%s; using default %s", key, raw, default)
        return default


def _float_from_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = float(raw)
        return value if value >= 0 else default
    except Exception:
        logger.warning("Invalid float value for %s=%s; using default %s", key, raw, default)
        return default


def load_settings() -> TimelineSettings:
    return TimelineSettings(
        db_path=Path(os.getenv("TIMELINE_DB_PATH") or "data/timeline.db"),
        accounts_path=Path(os.getenv("TIMELINE_ACCOUNTS_PATH") or "config/accounts.yaml"),
        account_delay=_float_from_env("TIMELINE_ACCOUNT_DELAY", 0.4),
        feed_entry_limit=_int_from_env("TIMELINE_FEED_LIMIT", 20),
        max_workers=_int_from_env("TIMELINE_MAX_WORKERS", 1),
        user_agent=os.getenv("TIMELINE_USER_AGENT") or DEFAULT_USER_AGENT,
        feed_timeout=_int_from_env("TIMELINE_FEED_TIMEOUT", 15),
        api_timeout=_int_from_env("TIMELINE_API_TIMEOUT", 20),
        page_timeout=_int_from_env("TIMELINE_PAGE_TIMEOUT", 10),
        news_url=os.getenv("TIMELINE_NEWS_URL") or "https://new-kokumin.jp/news",
        team_url=os.getenv("TIMELINE_TEAM_URL") or "https://team.new-kokumin.jp",
        events_url=os.getenv("TIMELINE_EVENTS_URL") or "https://team.new-kokumin.jp/evinfo/",
        schedule_minutes=_int_from_env("TIMELINE_SCHEDULE_MINUTES", 30),
        official_schedule_minutes=_int_from_env("TIMELINE_OFFICIAL_SCHEDULE_MINUTES", 180),
    )
