import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from ghwatchdog import cli
from ghwatchdog.core.models import CrawlResult, CrawlStatus


class FakeEngine:
    """Records the config it was built with and returns a canned result."""

    instances = []
    status = CrawlStatus.DONE
    raise_on_run = None

    def __init__(self, config):
        self.config = config
        FakeEngine.instances.append(self)

    def run(self):
        if FakeEngine.raise_on_run is not None:
            raise FakeEngine.raise_on_run
        return CrawlResult(status=FakeEngine.status)

    def generate_report(self, result, format_str="text"):
        return f"report:{format_str}:{result.status.value}"


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        FakeEngine.instances = []
        FakeEngine.status = CrawlStatus.DONE
        FakeEngine.raise_on_run = None
        self._tmp = tempfile.TemporaryDirectory()
        self._cwd = os.getcwd()
        os.chdir(self._tmp.name)
        env = patch.dict(os.environ, {}, clear=True)
        env.start()
        self.addCleanup(env.stop)
        engine = patch.object(cli, "GitHubWatchdog", FakeEngine)
        engine.start()
        self.addCleanup(engine.stop)

    def tearDown(self) -> None:
        os.chdir(self._cwd)
        self._tmp.cleanup()

    def test_flags_override_config(self) -> None:
        status = cli.main(
            ["-q", "topic:cheats", "-t", "ghp-flag", "--max-pages", "2", "--workers", "3",
             "--deadline", "5", "--database", "sqlite://", "--no-resume"]
        )
        self.assertEqual(status, 0)
        config = FakeEngine.instances[0].config
        self.assertEqual(config.github_query, "topic:cheats")
        self.assertEqual(config.github_token, "ghp-flag")
        self.assertEqual(config.max_pages, 2)
        self.assertEqual(config.max_concurrent, 3)
        self.assertEqual(config.deadline_minutes, 5)
        self.assertEqual(config.database_url, "sqlite://")
        self.assertFalse(config.resume)

    def test_report_is_written_to_file(self) -> None:
        out = Path(self._tmp.name) / "report.json"
        self.assertEqual(cli.main(["-f", "json", "-o", str(out)]), 0)
        self.assertEqual(out.read_text(encoding="utf-8"), "report:json:done")

    def test_exit_statuses(self) -> None:
        expected = {
            CrawlStatus.DONE: 0,
            CrawlStatus.DEADLINE_EXCEEDED: 0,
            CrawlStatus.QUOTA_EXHAUSTED: 75,
            CrawlStatus.FAILED: 1,
        }
        for status, code in expected.items():
            with self.subTest(status=status):
                FakeEngine.status = status
                self.assertEqual(cli.main(["-o", os.devnull]), code)

    def test_invalid_configuration_exits_2(self) -> None:
        self.assertEqual(cli.main(["--workers", "0"]), 2)
        self.assertEqual(cli.main(["-c", "missing.yaml"]), 2)
        self.assertEqual(FakeEngine.instances, [])

    def test_interrupt_exits_130(self) -> None:
        FakeEngine.raise_on_run = KeyboardInterrupt()
        self.assertEqual(cli.main([]), 130)

    def test_unexpected_error_exits_1(self) -> None:
        FakeEngine.raise_on_run = RuntimeError("disk on fire")
        self.assertEqual(cli.main([]), 1)


if __name__ == "__main__":
    unittest.main()
