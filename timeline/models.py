"""
Core data structures shared by the timeline pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from crawler.schemas.models import normalize_platform


class AccountGroup(str, Enum):
    OFFICIAL = "official"
    PREFECTURAL = "prefectural"
    POLITICIAN = "politician"


@dataclass
class SourceAccount:
    """
    One configured social account. Only `last_scraped_at` is ever written back by the pipeline.
    """

    id: str
    platform: str
    account_handle: str = ""
    account_url: str = ""
    rss_url: Optional[str] = None
    rss_feed_id: Optional[str] = None
    scraping_url: Optional[str] = None
    is_active: bool = True
    last_scraped_at: Optional[datetime] = None
    entity_id: Optional[str] = None
    group: str = AccountGroup.POLITICIAN.value
    prefecture: Optional[str] = None

    def __post_init__(self) -> None:
        self.id = str(self.id)
        self.platform = normalize_platform(self.platform)

    @property
    def label(self) -> str:
        handle = self.account_handle or self.account_url or self.id
        return f"{self.platform}(@{handle})"

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "SourceAccount":
        return cls(
            id=str(row["id"]),
            platform=row.get("platform") or "",
            account_handle=row.get("account_handle") or "",
            account_url=row.get("account_url") or "",
            rss_url=row.get("rss_url") or None,
            rss_feed_id=row.get("rss_feed_id") or None,
            scraping_url=row.get("scraping_url") or None,
            is_active=bool(row.get("is_active", True)),
            last_scraped_at=row.get("last_scraped_at"),
            entity_id=row.get("entity_id") or None,
            group=row.get("group") or AccountGroup.POLITICIAN.value,
            prefecture=row.get("prefecture") or None,
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "group": self.group,
            "entity_id": self.entity_id,
            "platform": self.platform,
            "account_handle": self.account_handle,
            "account_url": self.account_url,
            "rss_url": self.rss_url,
            "rss_feed_id": self.rss_feed_id,
            "scraping_url": self.scraping_url,
            "prefecture": self.prefecture,
            "is_active": self.is_active,
        }


@dataclass
class AccountResult:
    account_id: str
    label: str
    fetched: int = 0
    inserted: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Summary:
    success: bool
    message: str
    count: int = 0
    results: List[AccountResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "count": self.count,
            "results": [
                {
                    "account_id": r.account_id,
                    "label": r.label,
                    "fetched": r.fetched,
                    "inserted": r.inserted,
                    "error": r.error,
                }
                for r in self.results
            ],
        }


@dataclass
class HealthStatus:
    name: str
    healthy: bool
    last_error: Optional[str] = None
    last_success: Optional[datetime] = None
    items_last_fetch: int = 0
    latency_ms: Optional[float] = None
    extra: Dict[str, str] = field(default_factory=dict)
