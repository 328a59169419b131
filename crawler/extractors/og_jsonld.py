"""
Utilities for extracting metadata from OpenGraph + JSON-LD blocks.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Dict, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

LEAD_SELECTORS = (
    ".article-content",
    ".post-content",
    ".entry-content",
    ".content",
    "main p",
    "article p",
    ".text p",
    "p",
)


def _meta(soup: BeautifulSoup, selector: str) -> Optional[str]:
    tag = soup.select_one(selector)
    if tag and tag.has_attr("content"):
        value = tag["content"].strip()
        return value or None
    return None


def parse_metadata(html: str, base_url: Optional[str] = None) -> Dict[str, Optional[str]]:
    soup = BeautifulSoup(html or "", "lxml")
    data: Dict[str, Optional[str]] = {
        "title": None,
        "summary": None,
        "image": None,
        "published_at": None,
    }

    data["title"] = _meta(soup, 'meta[property="og:title"]')
    data["summary"] = _meta(soup, 'meta[property="og:description"], meta[name="description"]')
    data["image"] = (
        _meta(soup, 'meta[property="og:image"]')
        or _meta(soup, 'meta[name="og:image"]')
        or _meta(soup, 'meta[name="twitter:image"]')
        or _meta(soup, 'meta[name="twitter:image:src"]')
    )
    if not data["image"]:
        link_image = soup.select_one('link[rel="image_src"]')
        if link_image and link_image.get("href"):
            data["image"] = link_image["href"].strip()

    for tag in soup.select('script[type="application/ld+json"]'):
        try:
            payload = json.loads(tag.string or "{}")
        except json.JSONDecodeError:
            continue
        if isinstance(payload, list):
            candidates = [item for item in payload if isinstance(item, dict)]
        else:
            candidates = [payload] if isinstance(payload, dict) else []
        for candidate in candidates:
            if candidate.get("@type") in {"Article", "NewsArticle", "BlogPosting", "VideoObject"}:
                published = (
                    candidate.get("datePublished")
                    or candidate.get("uploadDate")
                    or candidate.get("dateModified")
                )
                if published:
                    data["published_at"] = _safe_iso(published)
                headline = candidate.get("headline") or candidate.get("name")
                if headline:
                    data["title"] = data["title"] or headline
                if not data["summary"]:
                    desc = candidate.get("description")
                    if isinstance(desc, str):
                        data["summary"] = desc.strip()
                break

    if not data["title"] and soup.title and soup.title.string:
        data["title"] = soup.title.string.strip() or None

    if data["image"] and base_url:
        data["image"] = urljoin(base_url, data["image"])
    return data


def first_image(html: str, base_url: Optional[str] = None) -> Optional[str]:
    soup = BeautifulSoup(html or "", "lxml")
    img = soup.find("img", src=True)
    if not img:
        return None
    src = img["src"].strip()
    return urljoin(base_url, src) if base_url else src


def lead_text(html: str, max_chars: int = 50) -> Optional[str]:
    """First meaningful block of body text, clipped to `max_chars` with an ellipsis."""
    soup = BeautifulSoup(html or "", "lxml")
    content = ""
    for selector in LEAD_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        content = element.get_text(strip=True)
        if len(content) > 10:
            break
    if len(content) > max_chars:
        return content[:max_chars] + "..."
    return content or None


def _safe_iso(value: str) -> Optional[str]:
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if not dt.tzinfo:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat()
    except Exception:
        return None
