import os
import tempfile
import unittest
from datetime import date
from unittest.mock import MagicMock

from crawler.pipelines.store import Store
from crawler.schemas.models import ScrapedArticle, ScrapedEvent, ScrapedPost

from timeline.gateway import PersistenceGateway
from timeline.models import SourceAccount


def make_posts(count, platform="twitter"):
    return [
        ScrapedPost(
            platform=platform,
            external_id=str(1000 + i),
            title=f"post {i}",
            url=f"https://x.com/example/status/{1000 + i}",
        )
        for i in range(count)
    ]


class GatewayWithStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = Store(os.path.join(self._tmp.name, "timeline.db"))
        self.gateway = PersistenceGateway(self.store)
        self.account = SourceAccount(id="acc-1", platform="twitter", account_handle="example", entity_id="p1")
        self.store.upsert_account(self.account.to_record())

    def tearDown(self):
        self.store.engine.dispose()
        self._tmp.cleanup()

    def test_second_ingest_inserts_nothing(self):
        posts = make_posts(3)

        self.assertEqual(self.gateway.upsert(posts, self.account), 3)
        self.assertEqual(self.gateway.upsert(posts, self.account), 0)
        self.assertEqual(self.store.count_posts(), 3)

    def test_rows_carry_account_and_entity(self):
        self.gateway.upsert(make_posts(1), self.account)

        row = self.store.list_posts(account_id="acc-1")[0]
        self.assertEqual(row["entity_id"], "p1")
        self.assertEqual(row["post_id"], "1000")
        self.assertEqual(row["media_urls"], [])

    def test_posts_without_id_are_keyed_by_url(self):
        post = ScrapedPost(platform="note", content="memo", url="https://note.com/example/n/abc")
        other_platform = ScrapedPost(platform="youtube", title="same url", url="https://note.com/example/n/abc")

        self.assertEqual(self.gateway.upsert([post, post], self.account), 1)
        self.assertEqual(self.gateway.upsert([other_platform], self.account), 1)

    def test_last_scraped_is_stamped_even_without_new_posts(self):
        self.assertIsNone(self.store.get_account("acc-1")["last_scraped_at"])

        self.assertEqual(self.gateway.upsert([], self.account), 0)

        self.assertIsNotNone(self.store.get_account("acc-1")["last_scraped_at"])

    def test_official_records_only_new_urls(self):
        first = ScrapedArticle(title="記事タイトル一", url="https://new-kokumin.jp/news/1")
        second = ScrapedArticle(title="記事タイトル二", url="https://new-kokumin.jp/news/2")
        self.assertEqual(self.gateway.insert_articles([first]), 1)

        fresh = self.gateway.new_articles([first, second, second])

        self.assertEqual([a.url for a in fresh], ["https://new-kokumin.jp/news/2"])
        self.assertEqual(self.gateway.insert_articles([first]), 0)

    def test_events(self):
        event = ScrapedEvent(title="街頭演説", url="https://team.new-kokumin.jp/evinfo/1", event_date=date(2025, 3, 1))

        self.assertEqual(self.gateway.new_events([event]), [event])
        self.assertEqual(self.gateway.insert_events([event, event]), 1)
        self.assertEqual(self.gateway.new_events([event]), [])


class GatewayFailureTests(unittest.TestCase):
    def test_one_failing_post_does_not_block_the_rest(self):
        store = MagicMock()
        store.post_exists.return_value = False
        posts = make_posts(10)

        def insert_post(post, account_id=None, entity_id=None):
            if post.external_id == "1004":
                raise RuntimeError("disk full")
            return True

        store.insert_post.side_effect = insert_post
        account = SourceAccount(id="acc-1", platform="twitter")

        inserted = PersistenceGateway(store).upsert(posts, account)

        self.assertEqual(inserted, 9)
        self.assertEqual(store.insert_post.call_count, 10)
        store.mark_scraped.assert_called_once_with("acc-1")

    def test_stamp_failure_is_contained(self):
        store = MagicMock()
        store.post_exists.return_value = True
        store.mark_scraped.side_effect = RuntimeError("locked")

        self.assertEqual(PersistenceGateway(store).upsert(make_posts(2), SourceAccount(id="a", platform="note")), 0)
        store.insert_post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
