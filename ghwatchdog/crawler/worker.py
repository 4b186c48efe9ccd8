"""Processing of a single repository search result."""

import logging
import threading
from typing import Optional

from ghwatchdog.analyzers.account_analyzer import AccountAnalyzer
from ghwatchdog.analyzers.content_checker import RepositoryContentChecker
from ghwatchdog.core.constants import (
    CONTENT_CHECK_MIN_SIZE,
    ENTITY_REPOSITORY,
    ENTITY_USER,
    LOW_CONTENT_THRESHOLD,
)
from ghwatchdog.core.errors import DecodeError, PersistenceError, TransportError
from ghwatchdog.core.models import RepoItem, RepositoryRecord, WorkOutcome, WorkStatus
from ghwatchdog.storage.ledger import Ledger
from ghwatchdog.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class Worker:
    """
    Classifies one repository and its owner, then records the result.

    A single Worker instance is shared by all pool threads; it holds no
    per-item state.
    """

    def __init__(
        self,
        github_api,
        ledger: Ledger,
        account_analyzer: AccountAnalyzer,
        content_checker: Optional[RepositoryContentChecker] = None,
        low_content_threshold: int = LOW_CONTENT_THRESHOLD,
        content_check_min_size: int = CONTENT_CHECK_MIN_SIZE,
        record_malicious_stargazers: bool = False,
        max_stargazers: Optional[int] = None,
    ):
        self.github_api = github_api
        self.ledger = ledger
        self.account_analyzer = account_analyzer
        self.content_checker = content_checker or RepositoryContentChecker()
        self.low_content_threshold = low_content_threshold
        self.content_check_min_size = content_check_min_size
        self.record_malicious_stargazers = record_malicious_stargazers
        self.max_stargazers = max_stargazers

    def process(self, item: RepoItem, stop_event: Optional[threading.Event] = None) -> WorkOutcome:
        """
        Process one repository.

        Steps: skip already-processed repositories, analyze the owner of a
        low-content repository, check the repository content, then record it.
        The stop event is honoured before each step that talks to GitHub.

        Args:
            item: Search result to process
            stop_event: Set by the coordinator when the crawl is aborting

        Returns:
            WorkOutcome: What happened to the item

        Raises:
            QuotaExceeded: Propagated so the coordinator can abort the crawl
        """
        repo_id = item.repo_id

        if self._stopping(stop_event):
            return WorkOutcome(repo_id, WorkStatus.CANCELLED)

        try:
            if self.ledger.was_processed(repo_id, item.updated_at):
                logger.debug(f"Skipping {repo_id}: unchanged since last processed")
                return WorkOutcome(repo_id, WorkStatus.SKIPPED)
        except PersistenceError as e:
            # Unknown state: process it, recording is insert-if-absent
            logger.error(f"Ledger lookup failed for {repo_id}: {e}")

        owner_suspicious = False
        owner_error = None
        if item.size < self.low_content_threshold and not self.account_analyzer.was_analyzed(item.owner):
            try:
                owner_suspicious = self._analyze_owner(item.owner)
            except (TransportError, DecodeError) as e:
                # Not memoized, so a later repository of this owner retries it
                logger.warning(f"Could not analyze owner of {repo_id}: {e}")
                owner_error = str(e)

        try:
            malicious = False
            if item.size >= self.content_check_min_size:
                if self._stopping(stop_event):
                    return WorkOutcome(repo_id, WorkStatus.CANCELLED, owner_suspicious=owner_suspicious)
                malicious = self._check_content(item)
        except (TransportError, DecodeError) as e:
            logger.warning(f"Abandoning {repo_id}: {e}")
            return WorkOutcome(repo_id, WorkStatus.FAILED, error=str(e))

        record = RepositoryRecord(
            owner=item.owner,
            name=item.name,
            updated_at=item.updated_at,
            size=item.size,
            stargazers_count=item.stargazers_count,
            malicious=malicious,
            processed_at=utcnow(),
        )
        try:
            self.ledger.record_repository(record)
        except PersistenceError as e:
            logger.error(f"Failed to record {repo_id}: {e}")

        return WorkOutcome(
            repo_id,
            WorkStatus.PROCESSED,
            malicious=malicious,
            owner_suspicious=owner_suspicious,
            error=owner_error,
        )

    @staticmethod
    def _stopping(stop_event: Optional[threading.Event]) -> bool:
        return stop_event is not None and stop_event.is_set()

    def _analyze_owner(self, login: str) -> bool:
        """Analyze an account; only the analyzing caller writes its records."""
        record, fresh = self.account_analyzer.analyze(login)
        if not fresh:
            return False

        try:
            self.ledger.record_account(record)
            for verdict in record.fired:
                self.ledger.record_flag(ENTITY_USER, login, str(verdict))
        except PersistenceError as e:
            logger.error(f"Failed to record account {login}: {e}")

        if record.suspicious:
            rules = ", ".join(v.name for v in record.fired)
            logger.info(f"Flagged suspicious account {login} ({rules})")
        return record.suspicious

    def _check_content(self, item: RepoItem) -> bool:
        verdict = self.content_checker.check(self.github_api, item)
        if not verdict.flag:
            return False

        logger.info(f"Flagged malicious repository {item.repo_id} ({verdict})")
        try:
            self.ledger.record_flag(ENTITY_REPOSITORY, item.repo_id, str(verdict))
        except PersistenceError as e:
            logger.error(f"Failed to record flag for {item.repo_id}: {e}")

        if self.record_malicious_stargazers:
            self._flag_stargazers(item)
        return True

    def _flag_stargazers(self, item: RepoItem) -> None:
        try:
            stargazers = self.github_api.list_stargazers(item.owner, item.name, max_items=self.max_stargazers)
        except (TransportError, DecodeError) as e:
            # The repository verdict is already recorded; stargazers are best effort
            logger.warning(f"Could not list stargazers of {item.repo_id}: {e}")
            return
        rationale = f"starred malicious repository {item.repo_id}"
        try:
            for login in stargazers:
                self.ledger.record_flag(ENTITY_USER, login, rationale)
        except PersistenceError as e:
            logger.error(f"Failed to record stargazers of {item.repo_id}: {e}")
        logger.debug(f"Flagged {len(stargazers)} stargazers of {item.repo_id}")
