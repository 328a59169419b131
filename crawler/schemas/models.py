"""
Pydantic models for canonical crawler outputs.
Every adapter, whatever its upstream shape, emits these records.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class Platform(str, Enum):
    TWITTER = "twitter"
    YOUTUBE = "youtube"
    NOTE = "note"
    NICONICO = "niconico"


PLATFORM_ALIASES = {
    "x": "twitter",
    "x2": "twitter2",
    "nicovideo": "niconico",
}


def normalize_platform(raw: Optional[str]) -> str:
    key = (raw or "").strip().lower()
    return PLATFORM_ALIASES.get(key, key)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScrapedPost(BaseModel):
    platform: str
    external_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    thumbnail_url: Optional[str] = None
    media_urls: List[str] = []
    url: str
    published_at: datetime = Field(default_factory=_utcnow)

    @field_validator("platform", mode="before")
    @classmethod
    def _normalize_platform(cls, value: str) -> str:
        key = normalize_platform(value)
        if not key:
            raise ValueError("platform must not be empty")
        return key

    @field_validator("url", mode="before")
    @classmethod
    def _require_url(cls, value: str) -> str:
        url = (value or "").strip()
        if not url:
            raise ValueError("url must not be empty")
        return url

    @field_validator("external_id", "thumbnail_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("published_at", mode="before")
    @classmethod
    def _default_now(cls, value):
        return value or _utcnow()

    def dedup_key(self) -> Tuple[str, str, str]:
        if self.external_id:
            return ("id", self.platform, self.external_id)
        return ("url", self.platform, self.url)


class ScrapedArticle(BaseModel):
    title: str
    url: str
    category: str = "party_hq"
    published_at: Optional[datetime] = None
    content: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _trim_title(cls, value: str) -> str:
        return (value or "").strip()[:200]


class ScrapedEvent(BaseModel):
    title: str
    url: str
    category: str = "other"
    event_date: Optional[date] = None
    description: Optional[str] = None
    location: Optional[str] = None
    prefecture: Optional[str] = None
    registration_required: bool = False
    thumbnail_url: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _trim_title(cls, value: str) -> str:
        return (value or "").strip()[:200]
