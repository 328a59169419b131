import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from timeline.config_loader import load_accounts, load_accounts_config
from timeline.settings import load_settings

ACCOUNTS_YAML = """
official:
  - id: off-x
    platform: x
    account_handle: kokumin_official
    rss_feed_id: ${TEST_TWITTER_FEED}
prefectural:
  - id: pref-tokyo-yt
    platform: youtube
    prefecture: "13"
    account_url: https://www.youtube.com/channel/UCtokyo
politician:
  - id: pol-1-note
    platform: note
    entity_id: p1
    account_url: https://note.com/example
    is_active: false
  - platform: niconico
    account_url: https://nicochannel.jp/missing-id
  - "not a mapping"
"""


class AccountsConfigTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "accounts.yaml"
        self.path.write_text(ACCOUNTS_YAML, encoding="utf-8")

    def tearDown(self):
        self._tmp.cleanup()

    def test_sections_become_groups(self):
        with patch.dict(os.environ, {"TEST_TWITTER_FEED": "FEED1"}):
            accounts = load_accounts(self.path)

        self.assertEqual([a.id for a in accounts], ["off-x", "pref-tokyo-yt", "pol-1-note"])
        official, prefectural, politician = accounts
        self.assertEqual(official.group, "official")
        self.assertEqual(official.platform, "twitter")
        self.assertEqual(official.rss_feed_id, "FEED1")
        self.assertEqual(prefectural.prefecture, "13")
        self.assertFalse(politician.is_active)
        self.assertEqual(politician.entity_id, "p1")

    def test_missing_env_var_expands_to_empty(self):
        with patch.dict(os.environ, {}, clear=True):
            config = load_accounts_config(self.path)
        self.assertEqual(config["official"][0]["rss_feed_id"], "")

    def test_missing_file(self):
        self.assertEqual(load_accounts(Path(self._tmp.name) / "nope.yaml"), [])


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings()
        self.assertEqual(settings.account_delay, 0.4)
        self.assertEqual(settings.feed_entry_limit, 20)
        self.assertEqual(settings.max_workers, 1)
        self.assertEqual(str(settings.db_path), os.path.join("data", "timeline.db"))

    def test_env_overrides_and_bad_values(self):
        env = {"TIMELINE_ACCOUNT_DELAY": "1.5", "TIMELINE_FEED_LIMIT": "abc", "TIMELINE_MAX_WORKERS": "4"}
        with patch.dict(os.environ, env, clear=True):
            settings = load_settings()
        self.assertEqual(settings.account_delay, 1.5)
        self.assertEqual(settings.feed_entry_limit, 20)
        self.assertEqual(settings.max_workers, 4)


if __name__ == "__main__":
    unittest.main()
