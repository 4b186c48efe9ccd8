import json
import unittest

from ghwatchdog.config import WatchdogConfig
from ghwatchdog.core.errors import QuotaExceeded
from ghwatchdog.core.models import AccountRecord, CrawlStatus
from ghwatchdog.main import GitHubWatchdog
from ghwatchdog.storage.ledger import Ledger

from support import FakeGitHubAPI, make_item, utc

ITEMS = [
    make_item("alice", "one", updated_at=utc(2025, 3, 3), size=50),
    make_item("mallory", "cheats", updated_at=utc(2025, 3, 2), size=50),
]


class GitHubWatchdogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = Ledger("sqlite://")
        self.config = WatchdogConfig(github_query="stars:>5", window_pause_seconds=0, max_concurrent=2)

    def tearDown(self) -> None:
        self.ledger.close()

    def test_completed_run_clears_checkpoint_and_reports(self) -> None:
        self.ledger.save_checkpoint("stars:>5", utc(2025, 4, 1))
        api = FakeGitHubAPI(ITEMS, honor_window=True)
        api.readmes["mallory/cheats"] = "# [Download link]\n# Password"
        engine = GitHubWatchdog(self.config, github_api=api, ledger=self.ledger)

        result = engine.run()

        self.assertEqual(result.status, CrawlStatus.DONE)
        self.assertEqual(api.queries[0], "stars:>5 pushed:<2025-04-01T00:00:00Z")
        self.assertIsNone(self.ledger.load_checkpoint("stars:>5"))
        self.assertGreaterEqual(api.calls["refresh_rate_limits"], 1)

        text = engine.generate_report(result)
        self.assertIn("Status: DONE", text)
        self.assertIn("Malicious repositories: 1", text)
        self.assertIn("mallory/cheats", text)

        payload = json.loads(engine.generate_report(result, format_str="json"))
        self.assertEqual(payload["status"], "done")
        self.assertEqual(payload["query"], "stars:>5")
        self.assertEqual(payload["flagged"], ["mallory/cheats"])

    def test_aborted_run_saves_checkpoint_for_next_run(self) -> None:
        api = FakeGitHubAPI(ITEMS, honor_window=True)
        api.errors["get_readme"] = QuotaExceeded("core", 1700000000)
        result = GitHubWatchdog(self.config, github_api=api, ledger=self.ledger).run()

        self.assertEqual(result.status, CrawlStatus.QUOTA_EXHAUSTED)
        self.assertEqual(self.ledger.load_checkpoint("stars:>5"), utc(2025, 3, 3, 0, 0, 1))

        retry = FakeGitHubAPI(ITEMS, honor_window=True)
        second = GitHubWatchdog(self.config, github_api=retry, ledger=self.ledger).run()
        self.assertEqual(second.status, CrawlStatus.DONE)
        self.assertEqual(retry.queries[0], "stars:>5 pushed:<2025-03-03T00:00:01Z")
        self.assertEqual(second.processed, 2)

    def test_previously_analyzed_accounts_are_not_refetched(self) -> None:
        self.ledger.record_account(
            AccountRecord("alice", utc(2020, 1, 1), 0, 0, 0, 0, suspicious=False)
        )
        api = FakeGitHubAPI([make_item("alice", "tiny", size=1)], honor_window=True)
        GitHubWatchdog(self.config, github_api=api, ledger=self.ledger).run()
        self.assertEqual(api.calls["get_user"], 0)

    def test_resume_can_be_disabled(self) -> None:
        self.ledger.save_checkpoint("stars:>5", utc(2025, 4, 1))
        self.config.resume = False
        api = FakeGitHubAPI(ITEMS, honor_window=True)
        GitHubWatchdog(self.config, github_api=api, ledger=self.ledger).run()
        self.assertEqual(api.queries[0], "stars:>5")


if __name__ == "__main__":
    unittest.main()
