import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from crawler.pipelines.store import Store
from crawler.schemas.models import ScrapedArticle, ScrapedPost

from timeline.adapters.base import AdapterRegistry
from timeline.models import SourceAccount
from timeline.pipeline import TimelinePipeline
from timeline.settings import TimelineSettings


class StaticAdapter:
    name = "static"

    def __init__(self, platforms, posts_by_account=None, error=None):
        self.platforms = platforms
        self.posts_by_account = posts_by_account or {}
        self.error = error
        self.fetched = []

    def accepts(self, account):
        return bool(account.account_url)

    def fetch(self, account):
        self.fetched.append(account.id)
        if self.error is not None:
            raise self.error
        return list(self.posts_by_account.get(account.id, []))


def make_settings(tmp, **overrides):
    values = dict(
        db_path=Path(tmp) / "timeline.db",
        accounts_path=Path(tmp) / "accounts.yaml",
        account_delay=0.4,
        feed_entry_limit=20,
        max_workers=1,
        user_agent="test-agent",
        feed_timeout=5,
        api_timeout=5,
        page_timeout=5,
        news_url="https://new-kokumin.jp/news",
        team_url="https://team.new-kokumin.jp",
        events_url="https://team.new-kokumin.jp/evinfo/",
        schedule_minutes=30,
        official_schedule_minutes=180,
    )
    values.update(overrides)
    return TimelineSettings(**values)


def tweet(n):
    return ScrapedPost(platform="twitter", external_id=str(n), title=f"tweet {n}", url=f"https://x.com/a/status/{n}")


class PipelineTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = Store(os.path.join(self._tmp.name, "timeline.db"))
        self.sleep = MagicMock()

    def tearDown(self):
        self.store.engine.dispose()
        self._tmp.cleanup()

    def build(self, adapters, official=None, **overrides):
        registry = AdapterRegistry()
        for adapter in adapters:
            registry.register(adapter)
        return TimelinePipeline(
            settings=make_settings(self._tmp.name, **overrides),
            store=self.store,
            registry=registry,
            official=official or MagicMock(),
            sleep=self.sleep,
        )

    def add_account(self, account_id, platform="twitter", active=True, url="https://x.com/a", entity_id=None):
        account = SourceAccount(
            id=account_id, platform=platform, account_url=url, is_active=active, entity_id=entity_id
        )
        self.store.upsert_account(account.to_record())
        return account


class RunAllTests(PipelineTestCase):
    def test_inactive_accounts_are_skipped_and_delay_applied_between_accounts(self):
        adapter = StaticAdapter(("twitter",), {"a1": [tweet(1), tweet(2)], "a3": [tweet(3)]})
        pipeline = self.build([adapter])
        self.add_account("a1")
        self.add_account("a2", active=False)
        self.add_account("a3")
        self.add_account("a4")

        summary = pipeline.run_all()

        self.assertTrue(summary.success)
        self.assertEqual(summary.count, 3)
        self.assertEqual(adapter.fetched, ["a1", "a3", "a4"])
        self.assertEqual(self.sleep.call_count, 2)
        self.sleep.assert_called_with(0.4)
        self.assertIsNotNone(self.store.get_account("a4")["last_scraped_at"])
        self.assertIsNone(self.store.get_account("a2")["last_scraped_at"])

    def test_rerun_counts_only_new_posts(self):
        adapter = StaticAdapter(("twitter",), {"a1": [tweet(1), tweet(2)]})
        pipeline = self.build([adapter])
        self.add_account("a1")

        self.assertEqual(pipeline.run_all().count, 2)
        self.assertEqual(pipeline.run_all().count, 0)

    def test_no_active_accounts(self):
        pipeline = self.build([StaticAdapter(("twitter",))])
        self.add_account("a1", active=False)

        summary = pipeline.run_all()

        self.assertTrue(summary.success)
        self.assertEqual(summary.count, 0)
        self.assertEqual(summary.message, "アクティブなSNSアカウントがありません")

    def test_failing_account_does_not_stop_the_run(self):
        broken = StaticAdapter(("note",), error=RuntimeError("feed exploded"))
        working = StaticAdapter(("twitter",), {"a2": [tweet(7)]})
        pipeline = self.build([broken, working])
        self.add_account("a1", platform="note", url="https://note.com/a")
        self.add_account("a2")

        summary = pipeline.run_all()

        self.assertTrue(summary.success)
        self.assertEqual(summary.count, 1)
        self.assertIn("feed exploded", summary.message)
        health = {status.extra["account_id"]: status for status in pipeline.get_health()}
        self.assertFalse(health["a1"].healthy)
        self.assertTrue(health["a2"].healthy)

    def test_every_account_failing_is_a_failure(self):
        pipeline = self.build([StaticAdapter(("twitter",), error=RuntimeError("down"))])
        self.add_account("a1")

        self.assertFalse(pipeline.run_all().success)

    def test_unconfigured_account_reports_error(self):
        pipeline = self.build([StaticAdapter(("twitter",))])
        account = self.add_account("a1", url="")

        summary = pipeline.run_all([account])

        self.assertFalse(summary.success)
        self.assertEqual(summary.results[0].error, "twitterの設定が不完全です")

    def test_family_workers_keep_input_order(self):
        twitter = StaticAdapter(("twitter",), {"a1": [tweet(1)], "a3": [tweet(3)]})
        note = StaticAdapter(("note",), {})
        pipeline = self.build([twitter, note], max_workers=4)
        accounts = [
            self.add_account("a1"),
            self.add_account("a2", platform="note", url="https://note.com/a"),
            self.add_account("a3"),
        ]

        summary = pipeline.run_all(accounts)

        self.assertEqual([r.account_id for r in summary.results], ["a1", "a2", "a3"])
        self.assertEqual(summary.count, 2)
        self.assertEqual(self.sleep.call_count, 1)


class RunOneTests(PipelineTestCase):
    def test_not_found(self):
        summary = self.build([StaticAdapter(("twitter",))]).run_one("missing")

        self.assertFalse(summary.success)
        self.assertEqual(summary.message, "指定されたSNSアカウントが見つかりません")

    def test_inactive(self):
        pipeline = self.build([StaticAdapter(("twitter",))])
        self.add_account("a1", active=False)

        summary = pipeline.run_one("a1")

        self.assertFalse(summary.success)
        self.assertEqual(summary.message, "このSNSアカウントは無効です")

    def test_success(self):
        pipeline = self.build([StaticAdapter(("twitter",), {"a1": [tweet(1)]})])
        self.add_account("a1")

        summary = pipeline.run_one("a1")

        self.assertTrue(summary.success)
        self.assertEqual(summary.count, 1)
        self.sleep.assert_not_called()


class RunForEntityTests(PipelineTestCase):
    def test_only_entity_accounts(self):
        adapter = StaticAdapter(("twitter",), {"a1": [tweet(1)], "a2": [tweet(2)]})
        pipeline = self.build([adapter])
        self.add_account("a1", entity_id="p1")
        self.add_account("a2", entity_id="p2")

        summary = pipeline.run_for_entity("p1")

        self.assertEqual(adapter.fetched, ["a1"])
        self.assertEqual(summary.count, 1)

    def test_entity_without_accounts(self):
        summary = self.build([StaticAdapter(("twitter",))]).run_for_entity("nobody")
        self.assertTrue(summary.success)
        self.assertEqual(summary.count, 0)


class RunOfficialTests(PipelineTestCase):
    def test_news_stores_new_articles_once(self):
        official = MagicMock()
        official.fetch_page.return_value = "<html></html>"
        article = ScrapedArticle(title="新しい経済政策を発表しました", url="https://new-kokumin.jp/news/1")
        official.scan.return_value = [article]
        official.enrich_article.side_effect = lambda a: a
        pipeline = self.build([], official=official)

        self.assertEqual(pipeline.run_official("news").count, 1)
        second = pipeline.run_official("news")

        self.assertTrue(second.success)
        self.assertEqual(second.count, 0)
        official.enrich_article.assert_called_once()

    def test_unreachable_page(self):
        official = MagicMock()
        official.fetch_page.return_value = None
        official.source_url.return_value = "https://team.new-kokumin.jp/evinfo/"
        summary = self.build([], official=official).run_official("events")

        self.assertFalse(summary.success)
        self.assertIn("https://team.new-kokumin.jp/evinfo/", summary.message)

    def test_unknown_kind(self):
        self.assertFalse(self.build([]).run_official("blog").success)


if __name__ == "__main__":
    unittest.main()
