"""Account heuristics for detecting manufactured GitHub accounts."""

import datetime
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ghwatchdog.core.constants import (
    AGED_MIN_LOW_CONTENT_REPOS,
    AGED_MIN_TOTAL_STARS,
    BURST_MAX_ACCOUNT_AGE_DAYS,
    BURST_MIN_TOTAL_STARS,
    FARMED_MAX_RECENT_EVENTS,
    FARMED_MIN_STARRED_LOW_CONTENT,
)
from ghwatchdog.core.models import AccountMetrics, HeuristicVerdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeuristicThresholds:
    """Tunable limits for the built-in account rules."""

    aged_min_total_stars: int = AGED_MIN_TOTAL_STARS
    aged_min_low_content_repos: int = AGED_MIN_LOW_CONTENT_REPOS
    farmed_min_starred_low_content: int = FARMED_MIN_STARRED_LOW_CONTENT
    farmed_max_recent_events: int = FARMED_MAX_RECENT_EVENTS
    burst_min_total_stars: int = BURST_MIN_TOTAL_STARS
    burst_max_account_age_days: int = BURST_MAX_ACCOUNT_AGE_DAYS


class AgedHighEmptyRule:
    """Many stars spread over a large number of near-empty repositories."""

    name = "aged-high-empty"

    def __init__(self, thresholds: HeuristicThresholds):
        self.thresholds = thresholds

    def evaluate(self, metrics: AccountMetrics) -> HeuristicVerdict:
        t = self.thresholds
        flag = (
            metrics.total_stars >= t.aged_min_total_stars
            and metrics.low_content_count >= t.aged_min_low_content_repos
        )
        return HeuristicVerdict(
            self.name,
            flag,
            f"{metrics.total_stars} total stars across {metrics.low_content_count} low-content repositories",
        )


class LowActivityFarmedRule:
    """Starred low-content repositories on an account that does almost nothing."""

    name = "low-activity-farmed"

    def __init__(self, thresholds: HeuristicThresholds):
        self.thresholds = thresholds

    def evaluate(self, metrics: AccountMetrics) -> HeuristicVerdict:
        t = self.thresholds
        flag = (
            metrics.starred_low_content_count >= t.farmed_min_starred_low_content
            and metrics.recent_events <= t.farmed_max_recent_events
        )
        return HeuristicVerdict(
            self.name,
            flag,
            f"{metrics.starred_low_content_count} starred low-content repositories "
            f"with {metrics.recent_events} recent events",
        )


class BurstNewAccountRule:
    """A brand new account that already collected many stars."""

    name = "burst-new-account"

    def __init__(self, thresholds: HeuristicThresholds):
        self.thresholds = thresholds

    def evaluate(self, metrics: AccountMetrics) -> HeuristicVerdict:
        t = self.thresholds
        max_age = datetime.timedelta(days=t.burst_max_account_age_days)
        flag = metrics.account_age < max_age and metrics.total_stars >= t.burst_min_total_stars
        return HeuristicVerdict(
            self.name,
            flag,
            f"account is {metrics.account_age.days} days old with {metrics.total_stars} total stars",
        )


def default_rules(thresholds: Optional[HeuristicThresholds] = None) -> List:
    """The built-in rule set, in evaluation order."""
    thresholds = thresholds or HeuristicThresholds()
    return [
        AgedHighEmptyRule(thresholds),
        LowActivityFarmedRule(thresholds),
        BurstNewAccountRule(thresholds),
    ]


class HeuristicEngine:
    """
    Evaluates a batch of independent account rules.

    Every rule sees the same metrics and contributes one verdict; the account
    is suspicious when any rule fires.
    """

    def __init__(self, rules: Optional[Iterable] = None, thresholds: Optional[HeuristicThresholds] = None):
        self.rules = list(rules) if rules is not None else default_rules(thresholds)

    def evaluate(self, metrics: AccountMetrics) -> Tuple[bool, List[HeuristicVerdict]]:
        """
        Run every rule against ``metrics``.

        Returns:
            Tuple of (suspicious, verdicts of all rules)
        """
        verdicts = [rule.evaluate(metrics) for rule in self.rules]
        suspicious = any(v.flag for v in verdicts)
        if suspicious:
            logger.debug(f"Rules fired: {', '.join(v.name for v in verdicts if v.flag)}")
        return suspicious, verdicts
