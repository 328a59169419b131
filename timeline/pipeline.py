"""
High-level orchestration for the timeline pipeline.
"""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from crawler.infra.http import HttpFetcher
from crawler.pipelines.store import Store

from timeline.adapters.base import AdapterRegistry
from timeline.adapters.niconico import NiconicoAdapter
from timeline.adapters.note import NoteAdapter
from timeline.adapters.official_site import OfficialSiteAdapter
from timeline.adapters.twitter import TwitterRssAdapter
from timeline.adapters.youtube import YouTubeHtmlAdapter, YouTubeRssAdapter
from timeline.gateway import PersistenceGateway
from timeline.http_client import HttpClient
from timeline.models import AccountResult, HealthStatus, SourceAccount, Summary
from timeline.rate_limiter import RateLimiter
from timeline.settings import TimelineSettings, load_settings
from utils.security import redact_secrets

logger = logging.getLogger(__name__)

# Accounts of one family share upstream hosts and always run one after another.
PLATFORM_FAMILIES = {
    "twitter": "twitter",
    "twitter2": "twitter",
    "youtube": "youtube",
    "iceage": "youtube",
    "note": "note",
    "niconico": "niconico",
}

OFFICIAL_LABELS = {"news": "ニュース記事", "team": "チーム更新情報", "events": "イベント情報"}


class TimelinePipeline:
    def __init__(
        self,
        settings: Optional[TimelineSettings] = None,
        store: Optional[Store] = None,
        registry: Optional[AdapterRegistry] = None,
        official: Optional[OfficialSiteAdapter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or load_settings()
        self.store = store or Store(str(self.settings.db_path))
        self.gateway = PersistenceGateway(self.store)
        self.fetcher = HttpFetcher(user_agent=self.settings.user_agent, timeout=self.settings.feed_timeout)
        self.limiter = RateLimiter()
        self.registry = registry or self._build_registry()
        self.official = official or OfficialSiteAdapter(
            fetcher=self.fetcher,
            news_url=self.settings.news_url,
            team_url=self.settings.team_url,
            events_url=self.settings.events_url,
            timeout=self.settings.page_timeout,
        )
        self._sleep = sleep
        self._health: Dict[str, HealthStatus] = {}

    def _build_registry(self) -> AdapterRegistry:
        limit = self.settings.feed_entry_limit
        client = HttpClient(timeout=self.settings.api_timeout, user_agent=self.settings.user_agent)
        registry = AdapterRegistry()
        registry.register(TwitterRssAdapter(self.fetcher, feed_entry_limit=limit, timeout=self.settings.feed_timeout))
        registry.register(YouTubeRssAdapter(self.fetcher, feed_entry_limit=limit, timeout=self.settings.feed_timeout))
        registry.register(YouTubeHtmlAdapter(self.fetcher, timeout=self.settings.feed_timeout))
        registry.register(
            NoteAdapter(
                self.fetcher,
                limiter=self.limiter,
                feed_entry_limit=limit,
                feed_timeout=self.settings.feed_timeout,
                page_timeout=self.settings.page_timeout,
            )
        )
        registry.register(NiconicoAdapter(self.fetcher, client, limiter=self.limiter, feed_entry_limit=limit))
        return registry

    # -- social accounts -------------------------------------------------

    def list_accounts(self, *, entity_id: Optional[str] = None) -> List[SourceAccount]:
        return [SourceAccount.from_mapping(row) for row in self.store.list_accounts(entity_id=entity_id)]

    def run_all(self, accounts: Optional[Iterable[SourceAccount]] = None) -> Summary:
        """Scrape every active account (stored accounts when none are given) in order."""
        try:
            candidates = list(accounts) if accounts is not None else self.list_accounts()
            active = [account for account in candidates if account.is_active]
            if not active:
                return Summary(success=True, message="アクティブなSNSアカウントがありません", count=0)
            return self._summarize(self._run_accounts(active), scope="SNS投稿")
        except Exception as exc:
            logger.error("run_all failed: %s", redact_secrets(str(exc)))
            return Summary(success=False, message=f"SNS取得中にエラーが発生しました: {exc}", count=0)

    def run_for_entity(self, entity_id: str) -> Summary:
        try:
            active = [account for account in self.list_accounts(entity_id=entity_id) if account.is_active]
            if not active:
                return Summary(success=True, message=f"対象({entity_id})のアクティブなSNSアカウントがありません", count=0)
            return self._summarize(self._run_accounts(active), scope=f"対象({entity_id})のSNS投稿")
        except Exception as exc:
            logger.error("run_for_entity %s failed: %s", entity_id, redact_secrets(str(exc)))
            return Summary(success=False, message=f"SNS取得中にエラーが発生しました: {exc}", count=0)

    def run_one(self, account_id: str) -> Summary:
        try:
            row = self.store.get_account(account_id)
            if row is None:
                return Summary(success=False, message="指定されたSNSアカウントが見つかりません", count=0)
            account = SourceAccount.from_mapping(row)
            if not account.is_active:
                return Summary(success=False, message="このSNSアカウントは無効です", count=0)
            result = self._scrape_account(account)
        except Exception as exc:
            logger.error("run_one %s failed: %s", account_id, redact_secrets(str(exc)))
            return Summary(success=False, message=f"取得中にエラーが発生しました: {exc}", count=0)
        if result.error:
            return Summary(success=False, message=f"{result.label}: {result.error}", count=0, results=[result])
        return Summary(
            success=True,
            message=f"{result.label}から{result.fetched}件の投稿を取得し、{result.inserted}件を新規保存しました",
            count=result.inserted,
            results=[result],
        )

    def _run_accounts(self, accounts: List[SourceAccount]) -> List[AccountResult]:
        workers = self.settings.max_workers
        if workers <= 1:
            return self._run_sequence(accounts)

        families: "OrderedDict[str, List[int]]" = OrderedDict()
        for index, account in enumerate(accounts):
            family = PLATFORM_FAMILIES.get(account.platform, account.platform)
            families.setdefault(family, []).append(index)

        results: List[Optional[AccountResult]] = [None] * len(accounts)
        with ThreadPoolExecutor(max_workers=min(workers, len(families))) as executor:
            future_map = {
                executor.submit(self._run_sequence, [accounts[i] for i in indexes]): indexes
                for indexes in families.values()
            }
            for future in as_completed(future_map):
                for index, result in zip(future_map[future], future.result()):
                    results[index] = result
        return [result for result in results if result is not None]

    def _run_sequence(self, accounts: List[SourceAccount]) -> List[AccountResult]:
        results: List[AccountResult] = []
        for position, account in enumerate(accounts):
            if position:
                self._sleep(self.settings.account_delay)
            results.append(self._scrape_account(account))
        return results

    def _scrape_account(self, account: SourceAccount) -> AccountResult:
        result = AccountResult(account_id=account.id, label=account.label)
        start = time.time()
        adapter = self.registry.resolve(account)
        if adapter is None:
            result.error = f"{account.platform}の設定が不完全です"
            logger.warning("No adapter accepts %s (%s)", account.label, account.id)
        else:
            try:
                posts = adapter.fetch(account)
                result.fetched = len(posts)
                result.inserted = self.gateway.upsert(posts, account)
            except Exception as exc:
                result.error = redact_secrets(str(exc)) or exc.__class__.__name__
                logger.error("Error scraping %s: %s", account.label, result.error)
        self._record_health(account, result, latency_ms=(time.time() - start) * 1000)
        return result

    def _record_health(self, account: SourceAccount, result: AccountResult, *, latency_ms: float) -> None:
        previous = self._health.get(account.id)
        now = datetime.now(timezone.utc)
        self._health[account.id] = HealthStatus(
            name=account.label,
            healthy=result.ok,
            last_error=result.error,
            last_success=now if result.ok else (previous.last_success if previous else None),
            items_last_fetch=result.fetched,
            latency_ms=latency_ms,
            extra={"account_id": account.id, "inserted": str(result.inserted)},
        )

    @staticmethod
    def _summarize(results: List[AccountResult], *, scope: str) -> Summary:
        inserted = sum(result.inserted for result in results)
        fetched = sum(result.fetched for result in results)
        errors = [result for result in results if result.error]
        message = f"{scope}を合計 {inserted} 件保存しました（取得 {fetched} 件、{len(results)} アカウント）"
        if errors:
            message += "。エラー: " + ", ".join(f"{r.label}: {r.error}" for r in errors)
        return Summary(
            success=len(errors) < len(results),
            message=message,
            count=inserted,
            results=results,
        )

    # -- official site ---------------------------------------------------

    def run_official(self, kind: str) -> Summary:
        """Scan one official listing page and store the records that are new."""
        if kind not in OfficialSiteAdapter.KINDS:
            return Summary(success=False, message=f"不明な種別です: {kind}", count=0)
        label = OFFICIAL_LABELS[kind]
        try:
            html = self.official.fetch_page(kind)
            if html is None:
                return Summary(
                    success=False,
                    message=f"{label}のページを取得できませんでした: {self.official.source_url(kind)}",
                    count=0,
                )
            records = self.official.scan(kind, html)
            if kind == "events":
                fresh = [self.official.enrich_event(event) for event in self.gateway.new_events(records)]
                inserted = self.gateway.insert_events(fresh)
            else:
                fresh = [self.official.enrich_article(article) for article in self.gateway.new_articles(records)]
                inserted = self.gateway.insert_articles(fresh)
        except Exception as exc:
            logger.error("Official %s scan failed: %s", kind, redact_secrets(str(exc)))
            return Summary(success=False, message=f"{label}取得中にエラーが発生しました: {exc}", count=0)
        logger.info("Official %s: %s found, %s new, %s stored", kind, len(records), len(fresh), inserted)
        return Summary(
            success=True,
            message=f"{label} {inserted} 件を保存しました（検出 {len(records)} 件、未登録 {len(fresh)} 件）",
            count=inserted,
        )

    def get_health(self) -> List[HealthStatus]:
        return list(self._health.values())
