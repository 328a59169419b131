from datetime import datetime, timezone

from crawler.pipelines.store import Store
from crawler.schemas.models import ScrapedPost


def _store(tmp_path):
    return Store(str(tmp_path / "nested" / "timeline.db"))


def test_platform_and_post_id_are_unique(tmp_path):
    store = _store(tmp_path)
    post = ScrapedPost(platform="twitter", external_id="1", title="a", url="https://x.com/a/status/1")
    same_id_new_url = ScrapedPost(platform="twitter", external_id="1", title="b", url="https://x.com/b/status/1")
    other_platform = ScrapedPost(platform="twitter2", external_id="1", title="c", url="https://x.com/a/status/1")

    assert store.insert_post(post, account_id="acc")
    assert not store.insert_post(same_id_new_url, account_id="acc")
    assert store.insert_post(other_platform, account_id="acc")
    assert store.count_posts() == 2
    assert store.count_posts("twitter") == 1


def test_url_is_unique_only_without_post_id(tmp_path):
    store = _store(tmp_path)
    bare = ScrapedPost(platform="note", content="memo", url="https://note.com/a/n/x")
    with_id = ScrapedPost(platform="note", external_id="x", content="memo", url="https://note.com/a/n/x")

    assert store.insert_post(bare)
    assert not store.insert_post(bare)
    assert store.insert_post(with_id)
    assert store.post_exists(("url", "note", "https://note.com/a/n/x"))
    assert store.post_exists(("id", "note", "x"))
    assert not store.post_exists(("id", "note", "y"))


def test_media_urls_round_trip_as_list(tmp_path):
    store = _store(tmp_path)
    post = ScrapedPost(
        platform="youtube",
        external_id="v1",
        title="video",
        media_urls=["https://i.ytimg.com/vi/v1/hqdefault.jpg"],
        url="https://www.youtube.com/watch?v=v1",
    )
    store.insert_post(post, account_id="yt", entity_id="p1")

    rows = store.list_posts(account_id="yt")
    assert rows[0]["media_urls"] == ["https://i.ytimg.com/vi/v1/hqdefault.jpg"]
    assert rows[0]["entity_id"] == "p1"


def test_account_upsert_keeps_last_scraped(tmp_path):
    store = _store(tmp_path)
    record = {"id": 7, "platform": "note", "account_url": "https://note.com/a", "is_active": True}
    store.upsert_account(record)
    when = datetime(2025, 1, 1, tzinfo=timezone.utc)
    store.mark_scraped("7", when)

    store.upsert_account(dict(record, is_active=False, entity_id="p9"))

    row = store.get_account("7")
    assert row["is_active"] is False
    assert row["entity_id"] == "p9"
    assert row["group"] == "politician"
    assert row["last_scraped_at"].replace(tzinfo=timezone.utc) == when


def test_list_accounts_filters(tmp_path):
    store = _store(tmp_path)
    store.upsert_account({"id": "a", "platform": "twitter", "entity_id": "p1"})
    store.upsert_account({"id": "b", "platform": "note", "entity_id": "p2", "is_active": False})
    store.upsert_account({"id": "c", "platform": "youtube", "group": "official"})

    assert [row["id"] for row in store.list_accounts()] == ["a", "b", "c"]
    assert [row["id"] for row in store.list_accounts(active_only=True)] == ["a", "c"]
    assert [row["id"] for row in store.list_accounts(entity_id="p2")] == ["b"]
    assert [row["id"] for row in store.list_accounts(group="official")] == ["c"]
