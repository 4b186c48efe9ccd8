import threading
import unittest

from ghwatchdog.analyzers.account_analyzer import AccountAnalyzer
from ghwatchdog.core.errors import QuotaExceeded, TransportError
from ghwatchdog.core.models import WorkStatus
from ghwatchdog.crawler.worker import Worker
from ghwatchdog.storage.ledger import Ledger

from support import FakeGitHubAPI, make_item, make_repo, utc

LURE_README = "# [download link]\n# password"


class WorkerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.api = FakeGitHubAPI()
        self.ledger = Ledger("sqlite://")
        self.analyzer = AccountAnalyzer(self.api, now=lambda: utc(2025, 3, 1))
        self.worker = Worker(self.api, self.ledger, self.analyzer)

    def tearDown(self) -> None:
        self.ledger.close()

    def test_unchanged_repository_is_processed_once(self) -> None:
        self.api.add_account("alice", repos=[make_repo("repo", size=5)])
        item = make_item("alice", "repo", size=5)

        first = self.worker.process(item)
        calls_after_first = self.api.remote_calls
        second = self.worker.process(item)

        self.assertEqual(first.status, WorkStatus.PROCESSED)
        self.assertEqual(second.status, WorkStatus.SKIPPED)
        self.assertEqual(self.api.remote_calls, calls_after_first)
        self.assertEqual(self.ledger.count_repositories(), 1)

    def test_suspicious_owner_is_recorded_with_one_flag_per_rule(self) -> None:
        self.api.add_account(
            "fresh", created_at=utc(2025, 2, 27), repos=[make_repo(f"r{i}", size=0, stars=1) for i in range(20)]
        )
        outcome = self.worker.process(make_item("fresh", "r0", size=0))

        self.assertTrue(outcome.owner_suspicious)
        self.assertTrue(self.ledger.get_account("fresh").suspicious)
        rationales = [f["rationale"] for f in self.ledger.list_flags(entity_type="user")]
        self.assertEqual(len(rationales), 2)
        self.assertTrue(rationales[0].startswith("aged-high-empty: "))
        self.assertTrue(rationales[1].startswith("burst-new-account: "))
        # size 0 is below the content check threshold
        self.assertEqual(self.api.calls["get_readme"], 0)

    def test_large_repository_skips_account_analysis(self) -> None:
        self.worker.process(make_item("alice", "big", size=5000))
        self.assertEqual(self.api.calls["get_user"], 0)
        self.assertEqual(self.api.calls["get_readme"], 1)

    def test_already_analyzed_owner_is_not_recorded_again(self) -> None:
        self.api.add_account("alice", created_at=utc(2025, 2, 27), repos=[make_repo("a", size=1, stars=10)])
        self.worker.process(make_item("alice", "a", size=1))
        self.worker.process(make_item("alice", "b", size=1))
        self.assertEqual(self.api.calls["get_user"], 1)
        self.assertEqual(self.ledger.count_flags("user"), 1)

    def test_malicious_repository_is_flagged(self) -> None:
        self.api.readmes["mallory/cheats"] = LURE_README
        outcome = self.worker.process(make_item("mallory", "cheats", size=50))
        self.assertTrue(outcome.malicious)
        self.assertTrue(self.ledger.get_repository("mallory/cheats").malicious)
        self.assertEqual(len(self.ledger.list_flags(entity_type="repository", entity_id="mallory/cheats")), 1)

    def test_stargazers_of_malicious_repository(self) -> None:
        worker = Worker(self.api, self.ledger, self.analyzer, record_malicious_stargazers=True, max_stargazers=2)
        self.api.readmes["mallory/cheats"] = LURE_README
        self.api.stargazers["mallory/cheats"] = ["bot1", "bot2", "bot3"]
        worker.process(make_item("mallory", "cheats", size=50))
        flagged = {f["entity_id"] for f in self.ledger.list_flags(entity_type="user")}
        self.assertEqual(flagged, {"bot1", "bot2"})

    def test_transport_error_abandons_unit_without_recording(self) -> None:
        self.api.errors["get_readme"] = TransportError("boom", status_code=500)
        outcome = self.worker.process(make_item("alice", "big", size=500))
        self.assertEqual(outcome.status, WorkStatus.FAILED)
        self.assertIsNone(self.ledger.get_repository("alice/big"))

    def test_owner_failure_still_checks_content(self) -> None:
        self.api.errors["get_user"] = TransportError("bad gateway", status_code=502)
        self.api.readmes["mallory/tiny"] = LURE_README

        outcome = self.worker.process(make_item("mallory", "tiny", size=5))

        self.assertEqual(outcome.status, WorkStatus.PROCESSED)
        self.assertTrue(outcome.malicious)
        self.assertIn("bad gateway", outcome.error)
        self.assertEqual(self.api.calls["get_readme"], 1)
        self.assertTrue(self.ledger.get_repository("mallory/tiny").malicious)
        self.assertIsNone(self.ledger.get_account("mallory"))
        self.assertFalse(self.analyzer.was_analyzed("mallory"))

    def test_quota_exceeded_propagates(self) -> None:
        self.api.errors["get_readme"] = QuotaExceeded("core", 1700000000)
        with self.assertRaises(QuotaExceeded):
            self.worker.process(make_item("alice", "big", size=500))

    def test_stop_event_cancels_before_any_work(self) -> None:
        stop = threading.Event()
        stop.set()
        outcome = self.worker.process(make_item(), stop)
        self.assertEqual(outcome.status, WorkStatus.CANCELLED)
        self.assertEqual(self.api.remote_calls, 0)


if __name__ == "__main__":
    unittest.main()
