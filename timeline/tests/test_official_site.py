import unittest
from datetime import date, datetime, timezone
from unittest.mock import MagicMock

from timeline.adapters.official_site import OfficialSiteAdapter

from crawler.schemas.models import ScrapedArticle, ScrapedEvent

NEWS_HTML = """
<html><body><ul class="news-list">
  <li><span class="date">2025.01.10</span> <span class="cat">政策</span>
      <a href="/news/policy/20250110_1">新しい経済政策パッケージを発表しました</a></li>
  <li><span>2024.03.28</span> <span>政策</span>
      <a href="https://new-kokumin.jp/news/policy/20240328_1">中小企業・非正規賃上げ応援10策について</a></li>
  <li><span>2025.01.11</span> <span>国会</span> <a href="/news/diet/short">短い</a></li>
  <li><a href="/news/index">お知らせ一覧ページへ移動します</a></li>
</ul></body></html>
"""

TEAM_HTML = """
<html><body><div class="team-list">
  <article><a href="/team/abc">ボランティア説明会のお知らせ</a><span class="date">2025.02.01</span></article>
  <article><a href="/team/def">短い</a></article>
  <article><a href="/update/ghi">活動報告を更新しました</a></article>
</div></body></html>
"""

EVENTS_HTML = """
<html><body>
<section><h2>注目のイベント</h2>
  <ul><li><a href="https://team.new-kokumin.jp/evinfo/old">古いイベントのお知らせ</a> 2025.01.01</li></ul>
</section>
<section><h2>最近追加された情報</h2>
  <ul>
    <li><a href="https://team.new-kokumin.jp/evinfo/123">駅前で街頭演説のお手伝い</a> 2025年3月1日 東京都 要申込</li>
    <li><a href="/evinfo/456">ポスター掲示ボランティア</a> 日付未定 全国</li>
    <li><a href="https://team.new-kokumin.jp/evinfo/">イベント一覧を見る</a> 2025.03.02</li>
    <li><a href="https://example.com/evinfo/789">外部サイトのイベント</a> 2025.03.03</li>
    <li><a href="/evinfo/999">詳細</a> 2025.03.04</li>
  </ul>
</section>
</body></html>
"""


class OfficialSiteScanTests(unittest.TestCase):
    def setUp(self):
        self.adapter = OfficialSiteAdapter(fetcher=MagicMock())

    def test_news_rows(self):
        articles = self.adapter.scan_news(NEWS_HTML)

        self.assertEqual(len(articles), 1)
        article = articles[0]
        self.assertEqual(article.url, "https://new-kokumin.jp/news/policy/20250110_1")
        self.assertEqual(article.title, "新しい経済政策パッケージを発表しました")
        self.assertEqual(article.category, "policy")
        self.assertEqual(article.published_at, datetime(2025, 1, 10, tzinfo=timezone.utc))

    def test_team_updates(self):
        now = datetime(2025, 3, 1, tzinfo=timezone.utc)
        articles = self.adapter.scan_team(TEAM_HTML, now=now)

        self.assertEqual([a.url for a in articles], [
            "https://team.new-kokumin.jp/team/abc",
            "https://team.new-kokumin.jp/update/ghi",
        ])
        self.assertEqual(articles[0].published_at, datetime(2025, 2, 1, tzinfo=timezone.utc))
        self.assertEqual(articles[1].published_at, now)
        self.assertTrue(all(a.category == "announcement" for a in articles))

    def test_recent_events_block_only(self):
        events = self.adapter.scan_recent_events(EVENTS_HTML)

        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertEqual(event.url, "https://team.new-kokumin.jp/evinfo/123")
        self.assertEqual(event.event_date, date(2025, 3, 1))
        self.assertEqual(event.prefecture, "13")
        self.assertEqual(event.location, "東京")
        self.assertEqual(event.category, "street_campaign_support")
        self.assertTrue(event.registration_required)
        self.assertEqual(event.description, "2025年3月1日 東京都 要申込")

    def test_long_description_is_truncated(self):
        html = (
            "<h2>最近追加された情報</h2><ul><li>"
            '<a href="/evinfo/1">タウンミーティング開催</a> 2025.04.01 ' + "あ" * 150 + "</li></ul>"
        )
        event = self.adapter.scan_recent_events(html)[0]
        self.assertTrue(event.description.endswith("..."))
        self.assertEqual(len(event.description), 103)
        self.assertEqual(event.prefecture, "48")

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            self.adapter.scan("blog", "")


class OfficialSiteEnrichTests(unittest.TestCase):
    def test_article_gets_thumbnail_and_lead(self):
        fetcher = MagicMock()
        fetcher.get_text.return_value = (
            '<html><head><meta property="og:image" content="/img/hero.png"></head>'
            '<body><div class="article-content">本文の最初の段落です。</div></body></html>'
        )
        adapter = OfficialSiteAdapter(fetcher=fetcher)
        article = ScrapedArticle(title="記事", url="https://new-kokumin.jp/news/policy/1")

        enriched = adapter.enrich_article(article)

        self.assertEqual(enriched.thumbnail_url, "https://new-kokumin.jp/img/hero.png")
        self.assertEqual(enriched.content, "本文の最初の段落です。")
        self.assertIsNone(article.thumbnail_url)

    def test_unavailable_detail_leaves_record_untouched(self):
        fetcher = MagicMock()
        fetcher.get_text.return_value = None
        adapter = OfficialSiteAdapter(fetcher=fetcher)
        event = ScrapedEvent(title="イベント", url="https://team.new-kokumin.jp/evinfo/1")

        self.assertIs(adapter.enrich_event(event), event)


if __name__ == "__main__":
    unittest.main()
