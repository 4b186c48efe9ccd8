"""Main GitHub Watchdog crawl engine."""

import datetime
import json
import logging
from typing import Optional

from ghwatchdog.analyzers.account_analyzer import AccountAnalyzer
from ghwatchdog.analyzers.content_checker import RepositoryContentChecker
from ghwatchdog.analyzers.heuristics import HeuristicEngine
from ghwatchdog.api.api_cache import ApiCache
from ghwatchdog.api.github_api_imports import GitHubAPI
from ghwatchdog.api.quota_tracker import QuotaTracker
from ghwatchdog.config import WatchdogConfig
from ghwatchdog.core.errors import DecodeError, PersistenceError, TransportError
from ghwatchdog.core.models import CrawlResult
from ghwatchdog.crawler.coordinator import CrawlCoordinator
from ghwatchdog.crawler.worker import Worker
from ghwatchdog.storage.ledger import Ledger

logger = logging.getLogger(__name__)


class GitHubWatchdog:
    """
    Main GitHub Watchdog crawl engine.

    Builds every object that lives for one crawl run (quota tracker, cache, API
    client, analyzers, ledger) and shares them with the worker pool.
    """

    def __init__(
        self,
        config: WatchdogConfig,
        github_api: Optional[GitHubAPI] = None,
        ledger: Optional[Ledger] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Validated settings
            github_api: Pre-built API client (mainly for tests)
            ledger: Pre-built ledger (mainly for tests)
        """
        self.config = config

        if github_api is None:
            quota = QuotaTracker(
                core_buffer=config.rate_limit_buffer,
                search_buffer=config.search_rate_limit_buffer,
                grace_seconds=config.quota_grace_seconds,
                refresh_interval=config.rate_limit_check_interval,
            )
            cache = ApiCache(default_ttl=config.cache_ttl_minutes * 60)
            github_api = GitHubAPI(
                token=config.github_token,
                quota_tracker=quota,
                cache=cache,
                timeout=config.request_timeout,
            )
        self.github_api = github_api
        self.ledger = ledger or Ledger(config.database_url)

        self.account_analyzer = AccountAnalyzer(
            self.github_api,
            engine=HeuristicEngine(thresholds=config.heuristics),
            low_content_threshold=config.low_content_threshold,
            starred_threshold=config.starred_threshold,
            activity_window_days=config.activity_window_days,
        )
        self.worker = Worker(
            self.github_api,
            self.ledger,
            self.account_analyzer,
            content_checker=RepositoryContentChecker(),
            low_content_threshold=config.low_content_threshold,
            content_check_min_size=config.content_check_min_size,
            record_malicious_stargazers=config.record_malicious_stargazers,
            max_stargazers=config.max_stargazers,
        )
        self.coordinator = CrawlCoordinator(
            self.github_api,
            self.worker,
            max_pages=config.max_pages,
            per_page=config.per_page,
            max_concurrent=config.max_concurrent,
            window_qualifier=config.window_qualifier,
            window_pause_seconds=config.window_pause_seconds,
            show_progress=config.show_progress,
        )

        # Warn about crawl limitations without a token
        if not getattr(self.github_api, "token", None):
            logger.warning(
                "No GitHub token provided. Rate limits are much lower "
                "(60 vs 5000 requests/hour) and search is heavily throttled. "
                "Get a token at: https://github.com/settings/tokens"
            )

    def run(self) -> CrawlResult:
        """
        Run one crawl.

        Returns:
            CrawlResult: Status, counters and resume cursor

        Raises:
            PersistenceError: If the ledger cannot be read at start-up
        """
        query = self.config.github_query
        logger.info(f"Starting crawl for query: {query}")

        processed_accounts = self.ledger.load_processed_account_ids()
        self.account_analyzer.preload(processed_accounts)
        logger.info(f"Loaded {len(processed_accounts)} previously analyzed accounts")

        try:
            self.github_api.refresh_rate_limits(force=True)
        except (TransportError, DecodeError) as e:
            logger.warning(f"Could not fetch initial rate limits: {e}")

        upper_bound = None
        if self.config.resume:
            upper_bound = self.ledger.load_checkpoint(query)
            if upper_bound is not None:
                logger.info(f"Resuming below {upper_bound.isoformat()}")

        timeout = self.config.deadline_minutes * 60 if self.config.deadline_minutes else None
        result = self.coordinator.crawl(query, upper_bound=upper_bound, timeout=timeout)
        self._save_progress(query, result)

        logger.info(
            f"Crawl finished ({result.status.value}): {result.processed} processed, "
            f"{result.skipped} skipped, {result.failed} failed, "
            f"{result.suspicious_accounts} suspicious accounts, "
            f"{result.malicious_repositories} malicious repositories"
        )
        return result

    def _save_progress(self, query: str, result: CrawlResult) -> None:
        try:
            if result.completed:
                self.ledger.clear_checkpoint(query)
            elif result.resume_before is not None:
                self.ledger.save_checkpoint(query, result.resume_before)
                logger.info(f"Saved checkpoint: next run resumes below {result.resume_before.isoformat()}")
        except PersistenceError as e:
            logger.error(f"Failed to save crawl checkpoint: {e}")

    def generate_report(self, result: CrawlResult, format_str: str = "text") -> str:
        """Generate a formatted report from a crawl result."""
        if format_str == "json":
            def dt_handler(o):
                if isinstance(o, (datetime.datetime, datetime.date)):
                    return o.isoformat()
                raise TypeError(f"Type {type(o)} not serializable")

            payload = result.to_dict()
            payload["query"] = self.config.github_query
            return json.dumps(payload, indent=2, default=dt_handler)

        title = f"GitHub Watchdog Crawl: {self.config.github_query}"
        lines = [title, "=" * len(title), ""]

        if not getattr(self.github_api, "token", None):
            lines.extend(["WARNING: No GitHub token provided. Coverage was limited by rate limits.", ""])

        lines.extend(
            [
                f"Status: {result.status.value.replace('_', ' ').upper()}",
                f"  Windows crawled: {result.windows}",
                f"  Search pages: {result.pages}",
                f"  Repositories dispatched: {result.dispatched}",
                f"  Processed: {result.processed}",
                f"  Skipped (unchanged): {result.skipped}",
                f"  Failed: {result.failed}",
                f"  Cancelled: {result.cancelled}",
                "",
                "Findings:",
                f"  Suspicious accounts: {result.suspicious_accounts}",
                f"  Malicious repositories: {result.malicious_repositories}",
            ]
        )
        for entity in result.flagged:
            lines.append(f"    - {entity}")
        lines.append("")

        if result.min_updated_at:
            lines.append(f"Oldest repository seen: {result.min_updated_at.isoformat()}")
        if result.resume_before and not result.completed:
            lines.append(f"Next run resumes below: {result.resume_before.isoformat()}")
        if result.error:
            lines.append(f"Stopped because: {result.error}")

        return "\n".join(lines)
