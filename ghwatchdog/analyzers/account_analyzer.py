"""Per-account analysis with single-flight deduplication."""

import datetime
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from ghwatchdog.analyzers.heuristics import HeuristicEngine
from ghwatchdog.core.constants import ACTIVITY_WINDOW_DAYS, LOW_CONTENT_THRESHOLD, STARRED_THRESHOLD
from ghwatchdog.core.errors import DecodeError
from ghwatchdog.core.models import AccountMetrics, AccountRecord
from ghwatchdog.utils.date_utils import parse_github_datetime, utcnow
from ghwatchdog.utils.single_flight import SingleFlight

logger = logging.getLogger(__name__)


def compute_metrics(
    repos: List[Dict],
    recent_events: int,
    account_age: datetime.timedelta,
    low_content_threshold: int = LOW_CONTENT_THRESHOLD,
    starred_threshold: int = STARRED_THRESHOLD,
) -> AccountMetrics:
    """
    Aggregate an account's owned repositories into heuristic inputs.

    Args:
        repos: Owned repositories as ``{name, size, stargazers_count}`` dicts
        recent_events: Public events inside the activity window
        account_age: Time since the account was created
        low_content_threshold: Size below which a repository is low-content
        starred_threshold: Stars for a low-content repository to count as starred

    Returns:
        AccountMetrics: Aggregated metrics
    """
    total_stars = 0
    low_content = 0
    starred_low_content = 0
    for repo in repos:
        stars = repo["stargazers_count"]
        total_stars += stars
        if repo["size"] < low_content_threshold:
            low_content += 1
            if stars >= starred_threshold:
                starred_low_content += 1

    return AccountMetrics(
        total_stars=total_stars,
        low_content_count=low_content,
        starred_low_content_count=starred_low_content,
        recent_events=recent_events,
        account_age=account_age,
    )


class AccountAnalyzer:
    """
    Fetches an account's metrics and classifies it with the HeuristicEngine.

    Results are memoised for the lifetime of the analyzer (one crawl run), and
    concurrent requests for the same login share one fetch sequence.
    """

    def __init__(
        self,
        github_api,
        engine: Optional[HeuristicEngine] = None,
        low_content_threshold: int = LOW_CONTENT_THRESHOLD,
        starred_threshold: int = STARRED_THRESHOLD,
        activity_window_days: int = ACTIVITY_WINDOW_DAYS,
        now: Callable[[], datetime.datetime] = utcnow,
    ):
        """
        Initialize the analyzer.

        Args:
            github_api: GitHubAPI instance (or anything exposing the same methods)
            engine: Heuristic engine; the built-in rule set when omitted
            low_content_threshold: Size below which a repository is low-content
            starred_threshold: Stars for a low-content repository to count as starred
            activity_window_days: Length of the recent-activity window
            now: Clock returning an aware UTC datetime
        """
        self.github_api = github_api
        self.engine = engine or HeuristicEngine()
        self.low_content_threshold = low_content_threshold
        self.starred_threshold = starred_threshold
        self.activity_window = datetime.timedelta(days=activity_window_days)
        self._now = now

        self._flight = SingleFlight()
        self._lock = threading.Lock()
        self._records: Dict[str, AccountRecord] = {}
        self._known: Set[str] = set()

    def preload(self, logins: Iterable[str]) -> None:
        """Mark accounts recorded by earlier runs as already analyzed."""
        with self._lock:
            self._known.update(logins)
            count = len(self._known)
        logger.debug(f"Preloaded {count} previously analyzed accounts")

    def was_analyzed(self, login: str) -> bool:
        with self._lock:
            return login in self._known or login in self._records

    def get_record(self, login: str) -> Optional[AccountRecord]:
        with self._lock:
            return self._records.get(login)

    def analyze(self, login: str) -> Tuple[AccountRecord, bool]:
        """
        Analyze an account, at most once per run.

        Args:
            login: GitHub username

        Returns:
            Tuple of (record, fresh) where ``fresh`` is True only for the caller
            that performed the analysis

        Raises:
            TransportError, DecodeError, QuotaExceeded: From the underlying calls;
                every concurrent waiter receives the same exception
        """
        record = self.get_record(login)
        if record is not None:
            return record, False

        (record, ran), leader = self._flight.do(login, lambda: self._analyze_once(login))
        return record, leader and ran

    def _analyze_once(self, login: str) -> Tuple[AccountRecord, bool]:
        # A previous flight may have finished between the memo check and now
        record = self.get_record(login)
        if record is not None:
            return record, False

        logger.debug(f"Analyzing account {login}")
        profile = self.github_api.get_user(login)
        try:
            created_at = parse_github_datetime(profile.get("created_at"))
        except ValueError as e:
            raise DecodeError(f"Unparseable created_at for {login}: {e}") from e
        if created_at is None:
            raise DecodeError(f"Profile for {login} has no created_at")

        now = self._now()
        repos = self.github_api.list_user_repositories(login)
        if repos:
            recent_events = self.github_api.count_recent_events(login, now - self.activity_window)
        else:
            recent_events = 0

        metrics = compute_metrics(
            repos,
            recent_events,
            now - created_at,
            low_content_threshold=self.low_content_threshold,
            starred_threshold=self.starred_threshold,
        )
        suspicious, verdicts = self.engine.evaluate(metrics)

        logger.debug(
            f"User {login} details: account age {metrics.account_age.days}d, "
            f"total stars {metrics.total_stars}, low-content {metrics.low_content_count}, "
            f"starred low-content {metrics.starred_low_content_count}, "
            f"recent events {metrics.recent_events}"
        )

        record = AccountRecord(
            login=login,
            created_at=created_at,
            total_stars=metrics.total_stars,
            low_content_count=metrics.low_content_count,
            starred_low_content_count=metrics.starred_low_content_count,
            recent_events=metrics.recent_events,
            suspicious=suspicious,
            rationale=tuple(verdicts),
        )
        with self._lock:
            self._records[login] = record
        return record, True
