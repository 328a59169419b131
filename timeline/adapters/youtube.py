"""
YouTube channels: the official Atom feed, with an HTML scan of `scraping_url` as the last resort.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from crawler.infra.http import HttpFetcher
from crawler.ingesters.rss_base import FeedEntry, parse_feed_entries
from crawler.schemas.models import ScrapedPost

from timeline.models import SourceAccount
from timeline.text import strip_tags

logger = logging.getLogger(__name__)

FEED_MARKER = "/feeds/videos.xml?channel_id="
FEED_TEMPLATE = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"
THUMBNAIL_TEMPLATE = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"
WATCH_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"

CHANNEL_QUERY = re.compile(r"[?&]channel_id=([^&#]+)")
CHANNEL_PATH = re.compile(r"/channel/(UC[^/?#]+)")
VIDEO_PARAM = re.compile(r"[?&]v=([^&#]+)")
RELATIVE_AGE = re.compile(r"(\d+)\s*(日|週間|か月|年)前")

HTML_LINK_SELECTORS = (
    'a[href*="/watch?v="]',
    "#contents ytd-video-renderer a",
    '.ytd-rich-item-renderer a[href*="/watch"]',
)

AGE_UNITS = {"日": 1, "週間": 7, "か月": 30, "年": 365}


def resolve_feed_url(account: SourceAccount) -> Optional[str]:
    """
    Stored feed URL first, then a channel id found in a `channel_id` query parameter,
    then a `/channel/UC...` path.
    """
    if account.rss_url and FEED_MARKER in account.rss_url:
        return account.rss_url
    candidates = [account.rss_url, account.account_url, account.scraping_url]
    for candidate in candidates:
        match = CHANNEL_QUERY.search(candidate or "")
        if match:
            return FEED_TEMPLATE.format(channel_id=match.group(1))
    for candidate in candidates:
        match = CHANNEL_PATH.search(candidate or "")
        if match:
            return FEED_TEMPLATE.format(channel_id=match.group(1))
    return None


def thumbnail_for(video_id: str) -> str:
    return THUMBNAIL_TEMPLATE.format(video_id=video_id)


def _video_id(entry: FeedEntry) -> Optional[str]:
    if entry.extras.get("yt_videoid"):
        return entry.extras["yt_videoid"]
    if entry.entry_id.startswith("yt:video:"):
        return entry.entry_id.split(":", 2)[2] or None
    match = VIDEO_PARAM.search(entry.link or "")
    return match.group(1) if match else None


class YouTubeRssAdapter:
    name = "youtube-rss"
    platforms = ("youtube", "iceage")

    def __init__(self, fetcher: Optional[HttpFetcher] = None, feed_entry_limit: int = 20, timeout: int = 15) -> None:
        self.fetcher = fetcher or HttpFetcher()
        self.feed_entry_limit = feed_entry_limit
        self.timeout = timeout

    def accepts(self, account: SourceAccount) -> bool:
        return account.platform in self.platforms and resolve_feed_url(account) is not None

    def fetch(self, account: SourceAccount) -> List[ScrapedPost]:
        feed_url = resolve_feed_url(account)
        if not feed_url:
            return []
        content = self.fetcher.get_text(feed_url, timeout=self.timeout)
        if not content:
            return []

        posts: List[ScrapedPost] = []
        for entry in parse_feed_entries(content, limit=self.feed_entry_limit):
            try:
                video_id = _video_id(entry)
                url = entry.link or (WATCH_TEMPLATE.format(video_id=video_id) if video_id else "")
                if not url:
                    continue
                thumbnail = thumbnail_for(video_id) if video_id else entry.thumbnail_url
                posts.append(
                    ScrapedPost(
                        platform=account.platform,
                        external_id=video_id,
                        title=strip_tags(entry.title) or None,
                        thumbnail_url=thumbnail,
                        media_urls=[thumbnail] if video_id else [],
                        url=url,
                        published_at=entry.published_at,
                    )
                )
            except Exception as exc:
                logger.warning("Skipping YouTube entry for %s: %s", account.label, exc)
        return posts


class YouTubeHtmlAdapter:
    """Scans a channel page for watch links. Only used when no channel id can be resolved."""

    name = "youtube-html"
    platforms = ("youtube", "iceage")

    def __init__(self, fetcher: Optional[HttpFetcher] = None, timeout: int = 15) -> None:
        self.fetcher = fetcher or HttpFetcher()
        self.timeout = timeout

    def accepts(self, account: SourceAccount) -> bool:
        return (
            account.platform in self.platforms
            and bool(account.scraping_url)
            and resolve_feed_url(account) is None
        )

    def fetch(self, account: SourceAccount) -> List[ScrapedPost]:
        if not account.scraping_url:
            return []
        html = self.fetcher.get_text(account.scraping_url, timeout=self.timeout)
        if not html:
            return []
        return self.parse_page(html, account)

    def parse_page(self, html: str, account: SourceAccount, now: Optional[datetime] = None) -> List[ScrapedPost]:
        now = now or datetime.now(timezone.utc)
        soup = BeautifulSoup(html, "lxml")
        seen = set()
        posts: List[ScrapedPost] = []
        for selector in HTML_LINK_SELECTORS:
            for link in soup.select(selector):
                href = link.get("href")
                if not href:
                    continue
                url = urljoin("https://www.youtube.com", href)
                if url in seen:
                    continue
                seen.add(url)
                match = VIDEO_PARAM.search(url)
                if not match:
                    continue
                video_id = match.group(1)

                container = link.find_parent(["ytd-video-renderer", "ytd-rich-item-renderer"]) or link.find_parent(
                    class_=["ytd-rich-item-renderer", "video-item"]
                )
                title = (link.get("title") or link.get_text(strip=True) or "").strip()
                if not title and container is not None:
                    heading = container.select_one("#video-title, .video-title, h3")
                    title = heading.get_text(strip=True) if heading else ""
                if len(title) < 5:
                    continue

                published_at = now
                if container is not None:
                    meta = container.select_one("#metadata-line, .metadata-line, .published-time")
                    published_at = parse_relative_age(meta.get_text(" ", strip=True) if meta else "", now) or now

                thumbnail = thumbnail_for(video_id)
                posts.append(
                    ScrapedPost(
                        platform=account.platform,
                        external_id=video_id,
                        title=title,
                        thumbnail_url=thumbnail,
                        media_urls=[thumbnail],
                        url=url,
                        published_at=published_at,
                    )
                )
        return posts


def parse_relative_age(text: str, now: datetime) -> Optional[datetime]:
    """'3日前' / '2週間前' / '1か月前' / '1年前' relative to `now`."""
    match = RELATIVE_AGE.search(text or "")
    if not match:
        return None
    amount, unit = int(match.group(1)), match.group(2)
    return now - timedelta(days=amount * AGE_UNITS[unit])
