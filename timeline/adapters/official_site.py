"""
Party web site: news releases, team updates and the "recently added" volunteer events.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, time, timezone
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from crawler.extractors.og_jsonld import first_image, lead_text, parse_metadata
from crawler.infra.http import HttpFetcher
from crawler.pipelines.dedupe import dedupe_by_url
from crawler.schemas.models import ScrapedArticle, ScrapedEvent

from timeline.classifiers import classify_category, classify_event_type, detect_prefecture, parse_date

logger = logging.getLogger(__name__)

NEWS_LINE = re.compile(r"(\d{4}\.\d{1,2}\.\d{1,2})\s+(\S+)\s*(.+)")
TEAM_SELECTORS = (
    'a[href*="/team/"]',
    'a[href*="/member/"]',
    'a[href*="/update/"]',
    ".team-list a",
    ".member-list a",
    ".update-list a",
)
RECENT_HEADING = "最近追加された情報"

NEWS_EXCLUDED_URLS = {
    "https://new-kokumin.jp/news",
    "https://new-kokumin.jp/",
    "https://new-kokumin.jp/news/business/kokuminseiji_dai3",
    "https://new-kokumin.jp/news/policy/20240328_1",
    "https://new-kokumin.jp/news/policy/20240926_1",
}
NEWS_EXCLUDED_TITLES = (
    "ニュースリリース",
    "トップ > ニュースリリース",
    "こくみん政治塾",
    "中小企業・非正規賃上げ応援10策",
    "医療制度改革",
)
EVENT_EXCLUDED_TITLES = ("イベント情報", "ボランティア情報", "トップ", "ホーム", "詳細", "申込み")

NEWS_MIN_TITLE = 10
OTHER_MIN_TITLE = 5
DESCRIPTION_LIMIT = 100


def _text(node: Optional[Tag]) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def _as_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class OfficialSiteAdapter:
    KINDS = ("news", "team", "events")

    def __init__(
        self,
        fetcher: Optional[HttpFetcher] = None,
        news_url: str = "https://new-kokumin.jp/news",
        team_url: str = "https://team.new-kokumin.jp",
        events_url: str = "https://team.new-kokumin.jp/evinfo/",
        timeout: int = 10,
    ) -> None:
        self.fetcher = fetcher or HttpFetcher()
        self.news_url = news_url
        self.team_url = team_url
        self.events_url = events_url
        self.timeout = timeout
        events_host = re.escape(urlparse(events_url).netloc)
        self._event_link = re.compile(rf"https?://{events_host}/(evinfo|event)/.+")

    def source_url(self, kind: str) -> str:
        return {"news": self.news_url, "team": self.team_url, "events": self.events_url}[kind]

    def fetch_page(self, kind: str) -> Optional[str]:
        return self.fetcher.get_text(self.source_url(kind), timeout=self.timeout)

    # -- listing pages ---------------------------------------------------

    def scan_news(self, html: str) -> List[ScrapedArticle]:
        """Links whose list row reads '<YYYY.MM.DD> <category> <title>'; rows without a date are skipped."""
        soup = BeautifulSoup(html or "", "lxml")
        articles: List[ScrapedArticle] = []
        seen = set()
        for link in soup.select("li a[href], div a[href]"):
            url = urljoin(self.news_url, link["href"])
            if url in NEWS_EXCLUDED_URLS or url in seen:
                continue
            seen.add(url)
            match = NEWS_LINE.search(_text(link.find_parent(["li", "div"])))
            if not match:
                continue
            date_text, category_text, title = match.groups()
            title = title.strip() or link.get_text(strip=True)
            if len(title) < NEWS_MIN_TITLE or any(bad in title for bad in NEWS_EXCLUDED_TITLES):
                continue
            published = parse_date(date_text)
            if published is None:
                continue
            articles.append(
                ScrapedArticle(
                    title=title,
                    url=url,
                    published_at=_as_datetime(published),
                    category=classify_category(category_text),
                )
            )
        return dedupe_by_url(articles)

    def scan_team(self, html: str, now: Optional[datetime] = None) -> List[ScrapedArticle]:
        now = now or datetime.now(timezone.utc)
        soup = BeautifulSoup(html or "", "lxml")
        articles: List[ScrapedArticle] = []
        seen = set()
        for selector in TEAM_SELECTORS:
            for link in soup.select(selector):
                if not link.get("href"):
                    continue
                url = urljoin(self.team_url, link["href"])
                if url in seen:
                    continue
                seen.add(url)
                title = link.get_text(strip=True) or _text(link.select_one("h1, h2, h3, h4, .title"))
                if not title:
                    card = link.find_parent(["article"]) or link.find_parent(class_=["team-item", "member-item"])
                    title = _text(card.select_one("h1, h2, h3, h4, .title")) if card is not None else ""
                if len(title) < OTHER_MIN_TITLE:
                    continue
                row = link.find_parent(["article", "li", "div"])
                date_node = row.select_one(".date, .published, time, .datetime") if row is not None else None
                published = parse_date(_text(date_node))
                articles.append(
                    ScrapedArticle(
                        title=title,
                        url=url,
                        published_at=_as_datetime(published) or now,
                        category="announcement",
                    )
                )
        return dedupe_by_url(articles)

    def scan_recent_events(self, html: str) -> List[ScrapedEvent]:
        """Only the block under the '最近追加された情報' heading; events need a parseable date."""
        soup = BeautifulSoup(html or "", "lxml")
        heading = next(
            (node for node in soup.find_all(["h1", "h2", "h3", "h4"]) if RECENT_HEADING in node.get_text()),
            None,
        )
        container = heading.parent if heading is not None else (soup.body or soup)
        scope = container.find(["ul", "ol", "div", "section"]) or container

        events: List[ScrapedEvent] = []
        seen = set()
        for link in scope.select("a[href]"):
            url = urljoin(self.events_url, link["href"])
            if url == self.events_url or not self._event_link.match(url) or url in seen:
                continue
            seen.add(url)
            row_text = _text(link.find_parent(["li", "div", "tr", "td"]))
            event_date = parse_date(row_text)
            if event_date is None:
                continue
            title = link.get_text(strip=True)
            if not title:
                row = link.find_parent(["li", "div", "tr"])
                title = _text(row.select_one("h1, h2, h3, h4, .title")) if row is not None else ""
            if len(title) < OTHER_MIN_TITLE or any(bad in title for bad in EVENT_EXCLUDED_TITLES):
                continue
            prefecture, location = detect_prefecture(row_text)
            events.append(
                ScrapedEvent(
                    title=title,
                    url=url,
                    event_date=event_date,
                    description=self._description(link, title),
                    location=location,
                    prefecture=prefecture,
                    category=classify_event_type(title, row_text),
                    registration_required="申込" in row_text or "登録" in row_text,
                )
            )
        return dedupe_by_url(events)

    @staticmethod
    def _description(link: Tag, title: str) -> Optional[str]:
        text = _text(link.find_parent(["li", "div"]))
        if text.startswith(title):
            text = text[len(title):].strip()
        if len(text) > DESCRIPTION_LIMIT:
            text = text[:DESCRIPTION_LIMIT] + "..."
        return text or None

    def scan(self, kind: str, html: str):
        if kind == "news":
            return self.scan_news(html)
        if kind == "team":
            return self.scan_team(html)
        if kind == "events":
            return self.scan_recent_events(html)
        raise ValueError(f"Unknown official page kind '{kind}'")

    # -- detail pages ----------------------------------------------------

    def _detail_html(self, url: str) -> Optional[str]:
        html = self.fetcher.get_text(url, timeout=self.timeout)
        if not html:
            logger.info("Detail page unavailable: %s", url)
        return html

    def _thumbnail(self, html: str, url: str) -> Optional[str]:
        return parse_metadata(html, base_url=url).get("image") or first_image(html, base_url=url)

    def enrich_article(self, article: ScrapedArticle) -> ScrapedArticle:
        """Lead paragraph and thumbnail from the article page; the listing data wins where present."""
        html = self._detail_html(article.url)
        if not html:
            return article
        updates = {"thumbnail_url": article.thumbnail_url or self._thumbnail(html, article.url)}
        if not article.content:
            updates["content"] = lead_text(html)
        return article.model_copy(update=updates)

    def enrich_event(self, event: ScrapedEvent) -> ScrapedEvent:
        if event.thumbnail_url:
            return event
        html = self._detail_html(event.url)
        if not html:
            return event
        return event.model_copy(update={"thumbnail_url": self._thumbnail(html, event.url)})
