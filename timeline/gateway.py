"""
Insert-if-absent persistence for scraped posts, official articles and events.
"""
from __future__ import annotations

import logging
from typing import Iterable, List

from crawler.pipelines.dedupe import dedupe_by_url
from crawler.pipelines.store import Store, events_table, news_table
from crawler.schemas.models import ScrapedArticle, ScrapedEvent, ScrapedPost

from timeline.models import SourceAccount
from utils.security import redact_secrets

logger = logging.getLogger(__name__)


class PersistenceGateway:
    def __init__(self, store: Store) -> None:
        self.store = store

    def upsert(self, posts: Iterable[ScrapedPost], account: SourceAccount) -> int:
        """
        Store the posts that are not known yet and return how many were inserted.
        Existing rows are never updated. A failing post is logged and skipped, and the
        account's last_scraped_at is stamped even when nothing new came in.
        """
        inserted = 0
        failed = 0
        for post in posts:
            try:
                if self.store.post_exists(post.dedup_key()):
                    continue
                if self.store.insert_post(post, account_id=account.id, entity_id=account.entity_id):
                    inserted += 1
            except Exception as exc:
                failed += 1
                logger.error("Failed to store %s post %s: %s", account.label, post.url, redact_secrets(str(exc)))
        if failed:
            logger.warning("%s: %s post(s) could not be stored", account.label, failed)
        try:
            self.store.mark_scraped(account.id)
        except Exception as exc:
            logger.error("Failed to stamp last_scraped_at for %s: %s", account.label, redact_secrets(str(exc)))
        return inserted

    def new_articles(self, articles: Iterable[ScrapedArticle]) -> List[ScrapedArticle]:
        unique = dedupe_by_url(articles)
        known = self.store.existing_urls(news_table.name, [article.url for article in unique])
        return [article for article in unique if article.url not in known]

    def new_events(self, events: Iterable[ScrapedEvent]) -> List[ScrapedEvent]:
        unique = dedupe_by_url(events)
        known = self.store.existing_urls(events_table.name, [event.url for event in unique])
        return [event for event in unique if event.url not in known]

    def insert_articles(self, articles: Iterable[ScrapedArticle]) -> int:
        inserted = 0
        for article in articles:
            try:
                if self.store.insert_article(article):
                    inserted += 1
            except Exception as exc:
                logger.error("Failed to store article %s: %s", article.url, redact_secrets(str(exc)))
        return inserted

    def insert_events(self, events: Iterable[ScrapedEvent]) -> int:
        inserted = 0
        for event in events:
            try:
                if self.store.insert_event(event):
                    inserted += 1
            except Exception as exc:
                logger.error("Failed to store event %s: %s", event.url, redact_secrets(str(exc)))
        return inserted
