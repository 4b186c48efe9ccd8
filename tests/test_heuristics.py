import datetime
import unittest

from ghwatchdog.analyzers.heuristics import (
    AgedHighEmptyRule,
    HeuristicEngine,
    HeuristicThresholds,
)
from ghwatchdog.core.models import AccountMetrics, HeuristicVerdict

DAY = datetime.timedelta(days=1)


def metrics(stars=0, empty=0, suspicious_empty=0, contributions=0, age=DAY):
    return AccountMetrics(
        total_stars=stars,
        low_content_count=empty,
        starred_low_content_count=suspicious_empty,
        recent_events=contributions,
        account_age=age,
    )


class HeuristicEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = HeuristicEngine()

    def fired(self, m):
        suspicious, verdicts = self.engine.evaluate(m)
        return suspicious, [v.name for v in verdicts if v.flag]

    def test_rule_table(self) -> None:
        cases = [
            ("aged account with many empty repos", metrics(stars=10, empty=20, contributions=999, age=5 * 365 * DAY),
             True, ["aged-high-empty"]),
            ("quiet new account", metrics(age=DAY), False, []),
            ("starred empty repos with little activity", metrics(suspicious_empty=5, contributions=5, stars=0, age=400 * DAY),
             True, ["low-activity-farmed"]),
            ("brand new account with stars", metrics(stars=10, age=2 * DAY), True, ["burst-new-account"]),
            ("just below every threshold", metrics(stars=9, empty=19, suspicious_empty=4, contributions=6, age=10 * DAY),
             False, []),
        ]
        for label, m, expected_suspicious, expected_rules in cases:
            with self.subTest(label):
                self.assertEqual(self.fired(m), (expected_suspicious, expected_rules))

    def test_every_rule_contributes_a_verdict(self) -> None:
        _, verdicts = self.engine.evaluate(metrics())
        self.assertEqual(
            [v.name for v in verdicts], ["aged-high-empty", "low-activity-farmed", "burst-new-account"]
        )

    def test_verdict_renders_as_flag_text(self) -> None:
        verdict = HeuristicVerdict("burst-new-account", True, "account is 2 days old with 10 total stars")
        self.assertEqual(str(verdict), "burst-new-account: account is 2 days old with 10 total stars")

    def test_thresholds_are_configurable(self) -> None:
        engine = HeuristicEngine(thresholds=HeuristicThresholds(burst_max_account_age_days=30))
        suspicious, _ = engine.evaluate(metrics(stars=10, age=20 * DAY))
        self.assertTrue(suspicious)

    def test_custom_rule_set(self) -> None:
        class AlwaysFlag:
            name = "always"

            def evaluate(self, m):
                return HeuristicVerdict(self.name, True, "test rule")

        engine = HeuristicEngine(rules=[AgedHighEmptyRule(HeuristicThresholds()), AlwaysFlag()])
        suspicious, verdicts = engine.evaluate(metrics())
        self.assertTrue(suspicious)
        self.assertEqual([v.name for v in verdicts], ["aged-high-empty", "always"])


if __name__ == "__main__":
    unittest.main()
