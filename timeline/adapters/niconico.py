"""
Niconico users and channels through an ordered chain of strategies.

The first strategy that yields posts wins; later strategies are never tried.
Each strategy contains its own failures so a broken upstream only costs one tier.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from crawler.infra.http import HttpFetcher
from crawler.ingesters.rss_base import looks_like_feed, parse_feed_entries, parse_iso
from crawler.pipelines.dedupe import dedupe_posts
from crawler.schemas.models import ScrapedPost

from timeline.http_client import HttpClient
from timeline.models import SourceAccount
from timeline.rate_limiter import RateLimiter
from timeline.text import strip_tags

logger = logging.getLogger(__name__)

PLATFORM = "niconico"
USER_URL = re.compile(r"nicovideo\.jp/user/(\d+)")
CHANNEL_URL = re.compile(r"(?:nicochannel\.jp|ch\.nicovideo\.jp)/([^/?#]+)")
WATCH_ID = re.compile(r"/watch/([A-Za-z0-9_-]+)")
LIVE_ID = re.compile(r"/live/(lv\d+)")
ARTICLE_ID = re.compile(r"/articles/(?:news/)?([^/?#]+)")
BLOMAGA_ID = re.compile(r"/blomaga/ar(\d+)")

FEED_HEADERS = {"Accept": "application/rss+xml, application/xml, text/xml, application/atom+xml, */*"}
DETAIL_LIMITER_KEY = "niconico:detail"

FANCLUB_API = "https://nfc-api.nicochannel.jp/fc/fanclub_sites/{site_id}/{kind}"
LEGACY_CHANNEL_API = "https://nfc-api.nicochannel.jp/fc/video_pages/list"
SNAPSHOT_API = "https://api.search.nicovideo.jp/api/v2/snapshot/video/contents/search"


@dataclass(frozen=True)
class ChannelRef:
    kind: str  # "user" | "channel"
    value: str
    url: str


def parse_ref(account_url: Optional[str]) -> Optional[ChannelRef]:
    if not account_url:
        return None
    match = USER_URL.search(account_url)
    if match:
        return ChannelRef("user", match.group(1), account_url)
    match = CHANNEL_URL.search(account_url)
    if match:
        return ChannelRef("channel", match.group(1), account_url)
    return None


def parse_niconico_feed(content: str, limit: int = 20) -> List[ScrapedPost]:
    posts: List[ScrapedPost] = []
    for entry in parse_feed_entries(content, limit=limit):
        try:
            url = (entry.link or "").strip()
            title = strip_tags(entry.title)
            if not url or not title:
                continue
            match = WATCH_ID.search(url)
            thumbnail = entry.thumbnail_url
            posts.append(
                ScrapedPost(
                    platform=PLATFORM,
                    external_id=match.group(1) if match else None,
                    content=title[:200],
                    thumbnail_url=thumbnail,
                    media_urls=[thumbnail] if thumbnail else [],
                    url=url,
                    published_at=entry.published_at,
                )
            )
        except Exception as exc:
            logger.warning("Skipping Niconico feed entry: %s", exc)
    return posts


def _thumbnail(item: Dict[str, Any]) -> Optional[str]:
    thumb = item.get("thumbnail")
    if isinstance(thumb, dict) and thumb.get("url"):
        return thumb["url"]
    return item.get("thumbnail_url") or item.get("thumbnailUrl") or None


class NiconicoStrategy:
    name = "base"
    kinds: Tuple[str, ...] = ("channel",)

    def __init__(
        self,
        fetcher: HttpFetcher,
        client: HttpClient,
        limiter: Optional[RateLimiter] = None,
        feed_entry_limit: int = 20,
    ) -> None:
        self.fetcher = fetcher
        self.client = client
        self.limiter = limiter or RateLimiter()
        self.feed_entry_limit = feed_entry_limit

    def applies(self, ref: ChannelRef) -> bool:
        return ref.kind in self.kinds

    def run(self, ref: ChannelRef) -> List[ScrapedPost]:
        try:
            return self.attempt(ref)
        except Exception as exc:
            logger.warning("Niconico %s failed for %s: %s", self.name, ref.value, exc)
            return []

    def attempt(self, ref: ChannelRef) -> List[ScrapedPost]:
        raise NotImplementedError


class UserFeedStrategy(NiconicoStrategy):
    name = "user-feed"
    kinds = ("user",)

    def attempt(self, ref: ChannelRef) -> List[ScrapedPost]:
        url = f"https://www.nicovideo.jp/user/{ref.value}/video?rss=2.0"
        content = self.fetcher.get_text(url, headers=FEED_HEADERS)
        if not looks_like_feed(content):
            logger.info("Niconico user %s: no valid feed", ref.value)
            return []
        return parse_niconico_feed(content, self.feed_entry_limit)


class FanclubSiteIdResolver:
    """Finds the numeric fanclub site id embedded in a channel's public pages."""

    INITIAL_STATE = re.compile(r"window\.__INITIAL_STATE__\s*=\s*({[\s\S]+?});")
    DATA_ATTR = re.compile(r"""data-fanclub-site-id=["'](\d+)["']""")
    JS_VAR = re.compile(r"""fanclub_site_id["\s:]+(\d+)""")

    def __init__(self, fetcher: HttpFetcher) -> None:
        self.fetcher = fetcher

    @staticmethod
    def candidate_pages(channel_id: str) -> List[str]:
        return [
            f"https://nicochannel.jp/{channel_id}/video",
            f"https://nicochannel.jp/{channel_id}/live",
            f"https://nicochannel.jp/{channel_id}",
        ]

    def resolve(self, channel_id: str) -> Optional[str]:
        for page in self.candidate_pages(channel_id):
            html = self.fetcher.get_text(page)
            if not html:
                continue
            site_id = self.extract(html)
            if site_id:
                return site_id
        return None

    def extract(self, html: str) -> Optional[str]:
        match = self.INITIAL_STATE.search(html)
        if match:
            try:
                state = json.loads(match.group(1))
            except ValueError:
                state = {}
            fanclub = state.get("fanclubSite") if isinstance(state.get("fanclubSite"), dict) else {}
            site_id = (
                fanclub.get("fanclub_site_id")
                or state.get("fanclub_site_id")
                or state.get("fanclubSiteId")
                or state.get("siteId")
            )
            if site_id:
                return str(site_id)
        for pattern in (self.DATA_ATTR, self.JS_VAR):
            match = pattern.search(html)
            if match:
                return match.group(1)
        return None


class FanclubApiStrategy(NiconicoStrategy):
    name = "fanclub-api"

    # (api collection, public path, stub label, extra date field)
    SECTIONS = (
        ("video_pages", "video", "動画", None),
        ("live_pages", "live", "生放送", "opened_at"),
        ("article_pages", "articles/news", "記事", None),
    )

    def __init__(self, *args: Any, resolver: Optional[FanclubSiteIdResolver] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.resolver = resolver or FanclubSiteIdResolver(self.fetcher)

    def attempt(self, ref: ChannelRef) -> List[ScrapedPost]:
        site_id = self.resolver.resolve(ref.value)
        if not site_id:
            logger.info("Niconico channel %s: fanclub site id not found", ref.value)
            return []
        posts: List[ScrapedPost] = []
        for kind, path, label, extra_date in self.SECTIONS:
            try:
                posts.extend(self._section(ref.value, site_id, kind, path, label, extra_date))
            except Exception as exc:
                logger.warning("Niconico fanclub %s failed for %s: %s", kind, ref.value, exc)
        return dedupe_posts(posts)

    def _section(
        self,
        channel_id: str,
        site_id: str,
        kind: str,
        path: str,
        label: str,
        extra_date: Optional[str],
    ) -> List[ScrapedPost]:
        data = self.client.get(
            FANCLUB_API.format(site_id=site_id, kind=kind),
            params={"page": 1, "per_page": 30},
            headers={"Origin": "https://nicochannel.jp", "Referer": f"https://nicochannel.jp/{channel_id}/{path}"},
        )
        items = ((data or {}).get("data") or {}).get(kind) or []
        posts: List[ScrapedPost] = []
        for item in items:
            content_id = item.get("content_code") or item.get("id")
            if not content_id:
                continue
            content_id = str(content_id)
            published = item.get("published_at") or (item.get(extra_date) if extra_date else None) or item.get("created_at")
            thumbnail = _thumbnail(item)
            posts.append(
                ScrapedPost(
                    platform=PLATFORM,
                    external_id=content_id,
                    content=item.get("title") or f"{label} {content_id}",
                    thumbnail_url=thumbnail,
                    media_urls=[thumbnail] if thumbnail else [],
                    url=f"https://nicochannel.jp/{channel_id}/{path}/{content_id}",
                    published_at=parse_iso(published),
                )
            )
        return posts


class LegacyChannelApiStrategy(NiconicoStrategy):
    name = "legacy-channel-api"

    def attempt(self, ref: ChannelRef) -> List[ScrapedPost]:
        data = self.client.get(
            LEGACY_CHANNEL_API,
            params={"channel_id": ref.value, "page": 1, "per_page": 30},
            headers={"Origin": "https://ch.nicovideo.jp", "Referer": f"https://ch.nicovideo.jp/{ref.value}/video"},
        )
        items = ((data or {}).get("data") or {}).get("video_pages") or []
        posts: List[ScrapedPost] = []
        for item in items:
            content_id = item.get("content_id") or item.get("video_id")
            if not content_id:
                continue
            thumbnail = item.get("thumbnail_url") or None
            posts.append(
                ScrapedPost(
                    platform=PLATFORM,
                    external_id=str(content_id),
                    content=item.get("title") or f"動画 {content_id}",
                    thumbnail_url=thumbnail,
                    media_urls=[thumbnail] if thumbnail else [],
                    url=f"https://www.nicovideo.jp/watch/{content_id}",
                    published_at=parse_iso(item.get("released_at")),
                )
            )
        return posts


class SnapshotSearchStrategy(NiconicoStrategy):
    name = "snapshot-search"

    def queries(self, channel_id: str) -> List[Tuple[Dict[str, str], int]]:
        base = {
            "fields": "contentId,title,thumbnailUrl,startTime",
            "_sort": "-startTime",
            "_offset": "0",
            "_limit": "30",
            "_context": "apiguide",
        }
        return [
            (dict(base, q=f"ch:{channel_id}", targets="title"), 30),
            (dict(base, q=channel_id, targets="title,description,tags"), 10),
        ]

    def attempt(self, ref: ChannelRef) -> List[ScrapedPost]:
        for params, keep in self.queries(ref.value):
            try:
                posts = self._query(params, keep)
            except Exception as exc:
                logger.warning("Niconico snapshot query %s failed: %s", params["q"], exc)
                continue
            if posts:
                return posts
        return []

    def _query(self, params: Dict[str, str], keep: int) -> List[ScrapedPost]:
        data = self.client.get(SNAPSHOT_API, params=params)
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []
        return self._to_posts(items[:keep])

    @staticmethod
    def _to_posts(items: Iterable[Dict[str, Any]]) -> List[ScrapedPost]:
        posts: List[ScrapedPost] = []
        for item in items:
            video_id, title = item.get("contentId"), item.get("title")
            if not video_id or not title:
                continue
            thumbnail = item.get("thumbnailUrl") or None
            posts.append(
                ScrapedPost(
                    platform=PLATFORM,
                    external_id=video_id,
                    content=title,
                    thumbnail_url=thumbnail,
                    media_urls=[thumbnail] if thumbnail else [],
                    url=f"https://www.nicovideo.jp/watch/{video_id}",
                    published_at=parse_iso(item.get("startTime")),
                )
            )
        return posts


class ChannelFeedStrategy(NiconicoStrategy):
    name = "channel-feed"

    @staticmethod
    def feed_urls(channel_id: str) -> List[str]:
        return [
            f"https://nicochannel.jp/{channel_id}/video?rss=atom",
            f"https://nicochannel.jp/{channel_id}/video?rss=2.0",
            f"https://ch.nicovideo.jp/{channel_id}/video?rss=atom",
            f"https://ch.nicovideo.jp/{channel_id}/video?rss=2.0",
        ]

    def attempt(self, ref: ChannelRef) -> List[ScrapedPost]:
        for url in self.feed_urls(ref.value):
            content = self.fetcher.get_text(url, headers=FEED_HEADERS)
            if looks_like_feed(content):
                return parse_niconico_feed(content, self.feed_entry_limit)
        return []


class ChannelPageStrategy(NiconicoStrategy):
    """Scrapes the public video, live and article list pages (new and legacy domains)."""

    name = "channel-page"
    LINKS_PER_SECTION = 10
    DETAILED_PER_SECTION = 3

    def attempt(self, ref: ChannelRef) -> List[ScrapedPost]:
        posts: List[ScrapedPost] = []
        posts.extend(self._media_section(ref.value, "video"))
        posts.extend(self._media_section(ref.value, "lives"))
        posts.extend(self._article_section(ref.value))
        return dedupe_posts(posts)

    def _media_section(self, channel_id: str, section: str) -> List[ScrapedPost]:
        for page_url in (
            f"https://ch.nicovideo.jp/{channel_id}/{section}",
            f"https://nicochannel.jp/{channel_id}/{section}",
        ):
            html = self.fetcher.get_text(page_url)
            if not html:
                continue
            posts = self._media_posts(self.media_links(html))
            if posts:
                return posts
        logger.info("Niconico channel %s: nothing found in %s pages", channel_id, section)
        return []

    @staticmethod
    def media_links(html: str) -> List[str]:
        soup = BeautifulSoup(html, "lxml")
        links: List[str] = []
        for anchor in soup.select('a[href*="/watch/"], a[href*="/live/"]'):
            href = anchor["href"]
            if href.startswith("http"):
                links.append(href)
            elif "/watch/" in href:
                links.append(urljoin("https://www.nicovideo.jp", href))
            else:
                links.append(urljoin("https://live.nicovideo.jp", href))
        for node in soup.select('[data-href*="/watch/"], [data-href*="/live/"], [data-video-id]'):
            if node.get("data-href"):
                links.append(urljoin("https://www.nicovideo.jp", node["data-href"]))
            if node.get("data-video-id"):
                links.append(f"https://www.nicovideo.jp/watch/{node['data-video-id']}")
        return list(dict.fromkeys(links))

    def _media_posts(self, links: Sequence[str]) -> List[ScrapedPost]:
        posts: List[ScrapedPost] = []
        detailed = 0
        for url in links[: self.LINKS_PER_SECTION]:
            is_live = "/live/" in url
            match = (LIVE_ID if is_live else WATCH_ID).search(url)
            if not match:
                continue
            content_id = match.group(1)
            label = "生放送" if is_live else "動画"
            title, thumbnail = None, None
            if detailed < self.DETAILED_PER_SECTION:
                detailed += 1
                title, thumbnail = self._detail(url, ())
            posts.append(
                ScrapedPost(
                    platform=PLATFORM,
                    external_id=content_id,
                    content=title or f"{label} {content_id}",
                    thumbnail_url=thumbnail,
                    media_urls=[thumbnail] if thumbnail else [],
                    url=url,
                )
            )
        return posts

    def _article_section(self, channel_id: str) -> List[ScrapedPost]:
        for page_url in (
            f"https://ch.nicovideo.jp/{channel_id}/blomaga",
            f"https://ch.nicovideo.jp/{channel_id}/articles",
            f"https://nicochannel.jp/{channel_id}/articles/news",
        ):
            html = self.fetcher.get_text(page_url)
            if not html:
                continue
            posts = self._article_posts(self.article_links(html, page_url))
            if posts:
                return posts
        logger.info("Niconico channel %s: nothing found in article pages", channel_id)
        return []

    @staticmethod
    def article_links(html: str, page_url: str) -> List[str]:
        soup = BeautifulSoup(html, "lxml")
        links: List[str] = []
        for anchor in soup.select('a[href*="/articles/"], a[href*="/blomaga/"]'):
            url = urljoin(page_url, anchor["href"])
            listing = url.rstrip("/").endswith(("/articles", "/articles/news", "/blomaga"))
            if not listing:
                links.append(url)
        return list(dict.fromkeys(links))

    def _article_posts(self, links: Sequence[str]) -> List[ScrapedPost]:
        posts: List[ScrapedPost] = []
        detailed = 0
        for url in links[: self.LINKS_PER_SECTION]:
            match = ARTICLE_ID.search(url) or BLOMAGA_ID.search(url)
            if not match:
                continue
            article_id = match.group(1)
            title, thumbnail = None, None
            if detailed < self.DETAILED_PER_SECTION:
                detailed += 1
                title, thumbnail = self._detail(url, ("h1",))
            posts.append(
                ScrapedPost(
                    platform=PLATFORM,
                    external_id=f"article_{article_id}",
                    content=title or f"記事 {article_id}",
                    thumbnail_url=thumbnail,
                    media_urls=[thumbnail] if thumbnail else [],
                    url=url,
                )
            )
        return posts

    def _detail(self, url: str, headings: Tuple[str, ...]) -> Tuple[Optional[str], Optional[str]]:
        """(title, thumbnail) from a detail page; detail fetches are spaced by the limiter."""
        self.limiter.wait(DETAIL_LIMITER_KEY)
        html = self.fetcher.get_text(url, timeout=10)
        if not html:
            logger.info("Niconico detail page unavailable: %s", url)
            return None, None
        soup = BeautifulSoup(html, "lxml")
        title = _meta_content(soup, 'meta[property="og:title"]')
        for heading in headings:
            if title:
                break
            node = soup.find(heading)
            title = node.get_text(strip=True) if node else None
        if not title and soup.title and soup.title.string:
            title = soup.title.string.strip()
        thumbnail = _meta_content(soup, 'meta[property="og:image"]') or _meta_content(soup, 'meta[name="thumbnail"]')
        return title or None, thumbnail


def _meta_content(soup: BeautifulSoup, selector: str) -> Optional[str]:
    tag = soup.select_one(selector)
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


STRATEGY_ORDER = (
    UserFeedStrategy,
    FanclubApiStrategy,
    LegacyChannelApiStrategy,
    SnapshotSearchStrategy,
    ChannelFeedStrategy,
    ChannelPageStrategy,
)


class NiconicoAdapter:
    name = "niconico"
    platforms = ("niconico",)

    def __init__(
        self,
        fetcher: Optional[HttpFetcher] = None,
        client: Optional[HttpClient] = None,
        limiter: Optional[RateLimiter] = None,
        strategies: Optional[Sequence[NiconicoStrategy]] = None,
        feed_entry_limit: int = 20,
        detail_interval: float = 0.8,
    ) -> None:
        limiter = limiter or RateLimiter()
        limiter.configure(DETAIL_LIMITER_KEY, detail_interval)
        if strategies is None:
            fetcher = fetcher or HttpFetcher()
            client = client or HttpClient()
            strategies = [
                strategy_cls(fetcher, client, limiter, feed_entry_limit) for strategy_cls in STRATEGY_ORDER
            ]
        self.strategies = list(strategies)

    def accepts(self, account: SourceAccount) -> bool:
        return account.platform in self.platforms and parse_ref(account.account_url) is not None

    def fetch(self, account: SourceAccount) -> List[ScrapedPost]:
        ref = parse_ref(account.account_url)
        if ref is None:
            logger.error("Niconico: unsupported account URL %r for %s", account.account_url, account.label)
            return []
        for strategy in self.strategies:
            if not strategy.applies(ref):
                continue
            posts = strategy.run(ref)
            if posts:
                logger.info("Niconico %s: %s posts via %s", ref.value, len(posts), strategy.name)
                return posts
        logger.info("Niconico %s: every strategy came back empty", ref.value)
        return []
