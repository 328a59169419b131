"""
Shared helpers for RSS/Atom ingestion.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")


@dataclass
class FeedEntry:
    title: str
    link: str
    published_at: Optional[datetime] = None
    summary: str = ""
    entry_id: str = ""
    thumbnail_url: Optional[str] = None
    extras: Dict[str, str] = field(default_factory=dict)


def looks_like_feed(text: Optional[str]) -> bool:
    if not text:
        return False
    return "<rss" in text or "<feed" in text or "<rdf:RDF" in text


def parse_feed_entries(feed_content: bytes | str, limit: int = 20) -> List[FeedEntry]:
    """Parse up to `limit` entries; a malformed entry is logged and skipped."""
    feed = feedparser.parse(feed_content)
    items: List[FeedEntry] = []
    for entry in list(getattr(feed, "entries", []))[:limit]:
        try:
            items.append(_to_feed_entry(entry))
        except Exception as exc:
            logger.warning("Skipping malformed feed entry: %s", exc)
    return items


def _to_feed_entry(entry: Any) -> FeedEntry:
    summary = entry.get("summary") or entry.get("description") or ""
    published_at = _parse_datetime(entry.get("published_parsed") or entry.get("updated_parsed"))
    extras: Dict[str, str] = {}
    if entry.get("yt_videoid"):
        extras["yt_videoid"] = entry.get("yt_videoid")
    return FeedEntry(
        title=entry.get("title") or "",
        link=(entry.get("link") or "").strip(),
        published_at=published_at,
        summary=summary,
        entry_id=entry.get("id") or "",
        thumbnail_url=extract_thumbnail(entry),
        extras=extras,
    )


def extract_thumbnail(entry: Any) -> Optional[str]:
    """
    Best-effort thumbnail, in order: media:content/media:thumbnail, image enclosure,
    first <img> in the title or body.
    """
    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key) or []:
            url = media.get("url") if isinstance(media, dict) else None
            if url:
                return url

    for enclosure in entry.get("enclosures") or []:
        mime = (enclosure.get("type") or "").lower()
        href = enclosure.get("href") or enclosure.get("url")
        if href and mime in IMAGE_TYPES:
            return href

    bodies = [entry.get("title") or "", entry.get("summary") or entry.get("description") or ""]
    bodies.extend(block.get("value", "") for block in entry.get("content") or [])
    for body in bodies:
        src = first_image_src(body)
        if src:
            return src
    return None


def first_image_src(html: str) -> Optional[str]:
    if not html or "<img" not in html.lower():
        return None
    soup = BeautifulSoup(html, "lxml")
    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src")
        if src:
            return src.strip()
        srcset = img.get("srcset")
        if srcset:
            first = srcset.split(",")[0].strip().split(" ")[0]
            if first:
                return first
    return None


def _parse_datetime(struct_time) -> Optional[datetime]:
    if not struct_time:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc)


def parse_iso(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        dt = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        if not dt.tzinfo:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except Exception:
        return None
