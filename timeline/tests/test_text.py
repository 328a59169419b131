import unittest
from unittest.mock import MagicMock

from timeline.text import SYNDICATION_URL, fetch_canonical_text, normalize, strip_tags


class NormalizeTests(unittest.TestCase):
    def test_decodes_entities(self):
        self.assertEqual(normalize("A &lt;b&gt; &amp; &quot;c&quot; &#39;d&#39;"), "A <b> & \"c\" 'd'")

    def test_strips_trailing_links_per_line(self):
        raw = "first line https://t.co/abc123\nsecond https://pic.twitter.com/xyz\nkeep https://t.co/in mid"
        self.assertEqual(normalize(raw), "first line\nsecond\nkeep https://t.co/in mid")

    def test_collapses_whitespace_and_blank_lines(self):
        raw = "  a   b\t\tc   \n\n\n\n\nd  "
        self.assertEqual(normalize(raw), "a b c\n\nd")

    def test_empty_input(self):
        self.assertEqual(normalize(""), "")
        self.assertEqual(normalize(None), "")

    def test_idempotent(self):
        samples = [
            "Some short text... https://t.co/abc123",
            "&amp;lt;tag&amp;gt;",
            "x https://t.co/a https://t.co/b",
            "a\n\n\n\nb   c\t \n",
            "plain",
            "  \n\n  ",
        ]
        for sample in samples:
            once = normalize(sample)
            self.assertEqual(normalize(once), once, sample)

    def test_double_encoded_entities_settle(self):
        self.assertEqual(normalize("&amp;lt;"), "<")


class StripTagsTests(unittest.TestCase):
    def test_removes_markup(self):
        self.assertEqual(strip_tags("<b>Hello</b> &amp; bye"), "Hello & bye")

    def test_plain_text_untouched(self):
        self.assertEqual(strip_tags("  plain  "), "plain")


class CanonicalTextTests(unittest.TestCase):
    def test_prefers_full_text(self):
        client = MagicMock()
        client.get.return_value = {"full_text": "Full sentence here.  https://t.co/zz", "text": "short"}

        self.assertEqual(fetch_canonical_text("123", client=client), "Full sentence here.")
        client.get.assert_called_once_with(SYNDICATION_URL, params={"id": "123", "lang": "ja"})

    def test_failure_returns_none(self):
        client = MagicMock()
        client.get.side_effect = RuntimeError("boom")
        self.assertIsNone(fetch_canonical_text("123", client=client))

        client = MagicMock()
        client.get.return_value = None
        self.assertIsNone(fetch_canonical_text("123", client=client))

    def test_missing_id(self):
        client = MagicMock()
        self.assertIsNone(fetch_canonical_text("", client=client))
        client.get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
