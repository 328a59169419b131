"""
SQLite storage for scraped timeline records (insert-if-absent) and account settings.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from crawler.schemas.models import ScrapedArticle, ScrapedEvent, ScrapedPost

metadata = MetaData()

accounts_table = Table(
    "source_accounts",
    metadata,
    Column("id", String, primary_key=True),
    Column("group", String, nullable=False, default="politician"),
    Column("entity_id", String, nullable=True, index=True),
    Column("platform", String, nullable=False),
    Column("account_handle", String, nullable=True),
    Column("account_url", String, nullable=True),
    Column("rss_url", String, nullable=True),
    Column("rss_feed_id", String, nullable=True),
    Column("scraping_url", String, nullable=True),
    Column("prefecture", String, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_scraped_at", DateTime(timezone=True), nullable=True),
)

posts_table = Table(
    "sns_posts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", String, nullable=True, index=True),
    Column("entity_id", String, nullable=True, index=True),
    Column("platform", String, nullable=False),
    Column("post_id", String, nullable=True),
    Column("title", Text, nullable=True),
    Column("content", Text, nullable=True),
    Column("thumbnail_url", String, nullable=True),
    Column("media_urls", Text, nullable=True),
    Column("url", String, nullable=False),
    Column("published_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("platform", "post_id", name="uq_sns_posts_platform_post_id"),
)

# URL is the identity only for posts that carry no platform id.
Index(
    "uq_sns_posts_platform_url_without_id",
    posts_table.c.platform,
    posts_table.c.url,
    unique=True,
    sqlite_where=posts_table.c.post_id.is_(None),
    postgresql_where=posts_table.c.post_id.is_(None),
)

news_table = Table(
    "official_news",
    metadata,
    Column("url", String, primary_key=True),
    Column("title", String, nullable=False),
    Column("content", Text, nullable=True),
    Column("category", String, nullable=False, index=True),
    Column("thumbnail_url", String, nullable=True),
    Column("published_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

events_table = Table(
    "official_events",
    metadata,
    Column("url", String, primary_key=True),
    Column("title", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("event_date", Date, nullable=True),
    Column("location", String, nullable=True),
    Column("prefecture", String, nullable=True),
    Column("category", String, nullable=False, index=True),
    Column("registration_required", Boolean, nullable=False, default=False),
    Column("thumbnail_url", String, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

ACCOUNT_FIELDS = (
    "group",
    "entity_id",
    "platform",
    "account_handle",
    "account_url",
    "rss_url",
    "rss_feed_id",
    "scraping_url",
    "prefecture",
    "is_active",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Store:
    def __init__(self, db_path: str = "timeline.db") -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.engine: Engine = create_engine(f"sqlite:///{db_path}", future=True)
        metadata.create_all(self.engine)

    # -- posts -----------------------------------------------------------

    def post_exists(self, key: Tuple[str, str, str]) -> bool:
        kind, platform, value = key
        column = posts_table.c.post_id if kind == "id" else posts_table.c.url
        stmt = (
            select(posts_table.c.id)
            .where(posts_table.c.platform == platform, column == value)
            .limit(1)
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).first() is not None

    def insert_post(
        self,
        post: ScrapedPost,
        account_id: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> bool:
        """Insert one post; a unique-constraint hit means it already exists and returns False."""
        stmt = posts_table.insert().values(
            account_id=account_id,
            entity_id=entity_id,
            platform=post.platform,
            post_id=post.external_id,
            title=post.title,
            content=post.content,
            thumbnail_url=post.thumbnail_url,
            media_urls=json.dumps(post.media_urls, ensure_ascii=False),
            url=post.url,
            published_at=post.published_at,
            created_at=_utcnow(),
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
        except IntegrityError:
            return False
        return True

    def count_posts(self, platform: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(posts_table)
        if platform:
            stmt = stmt.where(posts_table.c.platform == platform)
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def list_posts(self, account_id: Optional[str] = None) -> List[Dict[str, Any]]:
        stmt = select(posts_table).order_by(posts_table.c.id)
        if account_id:
            stmt = stmt.where(posts_table.c.account_id == account_id)
        with self.engine.connect() as conn:
            rows = [dict(row._mapping) for row in conn.execute(stmt)]
        for row in rows:
            row["media_urls"] = json.loads(row["media_urls"] or "[]")
        return rows

    # -- accounts --------------------------------------------------------

    def upsert_account(self, record: Dict[str, Any]) -> None:
        values = {"id": str(record["id"])}
        values.update({name: record.get(name) for name in ACCOUNT_FIELDS})
        values["is_active"] = bool(record.get("is_active", True))
        values["group"] = values["group"] or "politician"
        stmt = insert(accounts_table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={name: stmt.excluded[name] for name in ACCOUNT_FIELDS},
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def list_accounts(
        self,
        *,
        active_only: bool = False,
        entity_id: Optional[str] = None,
        group: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(accounts_table).order_by(accounts_table.c.id)
        if active_only:
            stmt = stmt.where(accounts_table.c.is_active.is_(True))
        if entity_id is not None:
            stmt = stmt.where(accounts_table.c.entity_id == entity_id)
        if group is not None:
            stmt = stmt.where(accounts_table.c.group == group)
        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def get_account(self, account_id: str) -> Optional[Dict[str, Any]]:
        stmt = select(accounts_table).where(accounts_table.c.id == str(account_id))
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        return dict(row._mapping) if row else None

    def mark_scraped(self, account_id: str, when: Optional[datetime] = None) -> None:
        stmt = (
            update(accounts_table)
            .where(accounts_table.c.id == str(account_id))
            .values(last_scraped_at=when or _utcnow())
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    # -- official site ---------------------------------------------------

    def existing_urls(self, table_name: str, urls: Iterable[str]) -> Set[str]:
        table = news_table if table_name == news_table.name else events_table
        wanted = list(urls)
        if not wanted:
            return set()
        stmt = select(table.c.url).where(table.c.url.in_(wanted))
        with self.engine.connect() as conn:
            return {row[0] for row in conn.execute(stmt)}

    def insert_article(self, article: ScrapedArticle) -> bool:
        stmt = insert(news_table).values(
            url=article.url,
            title=article.title,
            content=article.content,
            category=article.category,
            thumbnail_url=article.thumbnail_url,
            published_at=article.published_at or _utcnow(),
            created_at=_utcnow(),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["url"])
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0

    def insert_event(self, event: ScrapedEvent) -> bool:
        stmt = insert(events_table).values(
            url=event.url,
            title=event.title,
            description=event.description,
            event_date=event.event_date,
            location=event.location,
            prefecture=event.prefecture,
            category=event.category,
            registration_required=event.registration_required,
            thumbnail_url=event.thumbnail_url,
            created_at=_utcnow(),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["url"])
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0
