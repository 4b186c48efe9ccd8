"""
Crawl coordination over paginated repository search.

The coordinator walks search results newest-first, fans items out to a bounded
worker pool, and narrows the query window to the oldest timestamp it has seen
until the window stops moving.
"""

import datetime
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Set, Tuple

from tqdm import tqdm

from ghwatchdog.core.constants import (
    MAX_CONCURRENT,
    MAX_PAGES,
    MAX_PER_PAGE,
    WINDOW_PAUSE_SECONDS,
    WINDOW_QUALIFIERS,
)
from ghwatchdog.core.errors import DecodeError, QuotaExceeded, TransportError
from ghwatchdog.core.models import CrawlResult, CrawlStatus, RepoItem, WorkOutcome, WorkStatus
from ghwatchdog.crawler.worker import Worker
from ghwatchdog.utils.date_utils import format_query_timestamp

logger = logging.getLogger(__name__)

Abort = Tuple[CrawlStatus, str]


@dataclass(frozen=True)
class CrawlWindow:
    """A search query bounded above by a last-modified timestamp."""

    base_query: str
    upper_bound: Optional[datetime.datetime] = None
    qualifier: str = "pushed"

    @property
    def query(self) -> str:
        if self.upper_bound is None:
            return self.base_query
        return f"{self.base_query} {self.qualifier}:<{format_query_timestamp(self.upper_bound)}"

    def narrowed(self, upper_bound: datetime.datetime) -> "CrawlWindow":
        return replace(self, upper_bound=upper_bound)


class CrawlCoordinator:
    """
    Drives a crawl: paging, dispatching to workers, draining, and window narrowing.

    Attributes:
        github_api: GitHubAPI used for search
        worker: Worker shared by all pool threads
        max_pages: Pages requested per window
        per_page: Results per page
        max_concurrent: Worker pool size
        window_qualifier: Search qualifier bounding each window
        window_pause_seconds: Pause between windows
        show_progress: Show a tqdm bar while draining
    """

    def __init__(
        self,
        github_api,
        worker: Worker,
        max_pages: int = MAX_PAGES,
        per_page: int = MAX_PER_PAGE,
        max_concurrent: int = MAX_CONCURRENT,
        window_qualifier: str = "pushed",
        window_pause_seconds: float = WINDOW_PAUSE_SECONDS,
        show_progress: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if window_qualifier not in WINDOW_QUALIFIERS:
            raise ValueError(f"Unsupported window qualifier: {window_qualifier}")
        self.github_api = github_api
        self.worker = worker
        self.max_pages = max_pages
        self.per_page = per_page
        self.max_concurrent = max_concurrent
        self.window_qualifier = window_qualifier
        self.window_pause_seconds = window_pause_seconds
        self.show_progress = show_progress
        self._clock = clock
        self._sleep = sleep

    def crawl(
        self,
        base_query: str,
        upper_bound: Optional[datetime.datetime] = None,
        timeout: Optional[float] = None,
    ) -> CrawlResult:
        """
        Crawl ``base_query`` until the window converges or the crawl is aborted.

        Args:
            base_query: Search query without the window qualifier
            upper_bound: Start below this timestamp (e.g. a saved checkpoint)
            timeout: Seconds the whole crawl may take (None for no deadline)

        Returns:
            CrawlResult: Final status, counters and resume cursor
        """
        deadline = self._clock() + timeout if timeout is not None else None
        window = CrawlWindow(base_query, upper_bound, self.window_qualifier)
        total = CrawlResult()

        while True:
            logger.info(f"Crawling window: {window.query}")
            total.last_query = window.query
            result, unfinished = self._crawl_window(window, deadline)
            total.absorb(result)

            if result.status != CrawlStatus.DONE:
                total.status = result.status
                total.error = result.error
                total.resume_before = self._resume_cursor(unfinished, total.min_updated_at, window)
                logger.warning(f"Crawl stopped ({total.status.value}): {total.error}")
                return total

            if result.dispatched == 0:
                logger.info("Window yielded no repositories; crawl complete")
                break

            next_window = window.narrowed(total.min_updated_at)
            if next_window == window:
                logger.info("Window did not move; crawl complete")
                break
            window = next_window

            if self._expired(deadline):
                total.status = CrawlStatus.DEADLINE_EXCEEDED
                total.error = "Deadline reached between windows"
                total.resume_before = window.upper_bound
                logger.warning(f"Crawl stopped ({total.status.value}): {total.error}")
                return total
            if self.window_pause_seconds:
                self._sleep(self.window_pause_seconds)

        total.status = CrawlStatus.DONE
        total.resume_before = total.min_updated_at
        return total

    def _expired(self, deadline: Optional[float]) -> bool:
        return deadline is not None and self._clock() >= deadline

    @staticmethod
    def _resume_cursor(
        unfinished: List[RepoItem],
        min_seen: Optional[datetime.datetime],
        window: CrawlWindow,
    ) -> Optional[datetime.datetime]:
        """One second past the newest unfinished item, so a later run covers it again."""
        if unfinished:
            newest = max(item.updated_at for item in unfinished)
            return newest + datetime.timedelta(seconds=1)
        if min_seen is not None:
            return min_seen
        return window.upper_bound

    def _refresh_quota(self) -> None:
        try:
            self.github_api.refresh_rate_limits()
        except (TransportError, DecodeError) as e:
            logger.warning(f"Could not refresh rate limits: {e}")

    def _crawl_window(self, window: CrawlWindow, deadline: Optional[float]) -> Tuple[CrawlResult, List[RepoItem]]:
        """Page, dispatch and drain one window."""
        result = CrawlResult(windows=1)
        unfinished: List[RepoItem] = []
        stop_event = threading.Event()
        futures: Dict[Future, RepoItem] = {}
        collected: Set[Future] = set()
        abort: Optional[Abort] = None

        executor = ThreadPoolExecutor(max_workers=self.max_concurrent, thread_name_prefix="ghwatchdog-worker")
        try:
            cursor: Optional[str] = None
            for page_number in range(1, self.max_pages + 1):
                if self._expired(deadline):
                    abort = (CrawlStatus.DEADLINE_EXCEEDED, "Deadline reached while paging")
                    break

                self._refresh_quota()
                try:
                    page = self.github_api.search_repositories(window.query, self.per_page, cursor)
                except QuotaExceeded as e:
                    abort = (CrawlStatus.QUOTA_EXHAUSTED, str(e))
                    break
                except (TransportError, DecodeError) as e:
                    abort = (CrawlStatus.FAILED, f"Search failed on page {page_number}: {e}")
                    break

                result.pages += 1
                logger.info(f"Page {page_number}: Found {len(page.items)} repositories")

                for item in page.items:
                    if result.min_updated_at is None or item.updated_at < result.min_updated_at:
                        result.min_updated_at = item.updated_at
                    futures[executor.submit(self.worker.process, item, stop_event)] = item
                result.dispatched += len(page.items)

                # Surface quota failures from finished work without waiting for the whole page
                for future in [f for f in futures if f.done() and f not in collected]:
                    abort = abort or self._collect(future, futures[future], result, unfinished)
                    collected.add(future)
                if abort:
                    break

                cursor = page.next_cursor
                if not cursor or not page.items:
                    break

            if abort is None:
                abort = self._drain(futures, collected, result, unfinished, deadline)
        finally:
            if abort is not None:
                stop_event.set()
                for future in futures:
                    future.cancel()
            executor.shutdown(wait=True, cancel_futures=True)

        # Whatever finished or was cancelled while shutting down
        for future, item in futures.items():
            if future not in collected:
                self._collect(future, item, result, unfinished)
                collected.add(future)

        if abort is not None:
            result.status, result.error = abort
        return result, unfinished

    def _drain(
        self,
        futures: Dict[Future, RepoItem],
        collected: Set[Future],
        result: CrawlResult,
        unfinished: List[RepoItem],
        deadline: Optional[float],
    ) -> Optional[Abort]:
        """Wait for outstanding work, stopping early on quota exhaustion or deadline."""
        pending = [f for f in futures if f not in collected]
        timeout = max(0.0, deadline - self._clock()) if deadline is not None else None

        with tqdm(total=len(pending), desc="Processing", unit="repo", disable=not self.show_progress) as progress:
            try:
                for future in as_completed(pending, timeout=timeout):
                    abort = self._collect(future, futures[future], result, unfinished)
                    collected.add(future)
                    progress.update(1)
                    if abort:
                        return abort
            except FuturesTimeoutError:
                return (CrawlStatus.DEADLINE_EXCEEDED, "Deadline reached while draining")
        return None

    def _collect(
        self, future: Future, item: RepoItem, result: CrawlResult, unfinished: List[RepoItem]
    ) -> Optional[Abort]:
        """Fold one finished future into ``result``; returns an abort reason on quota exhaustion."""
        if future.cancelled():
            result.cancelled += 1
            unfinished.append(item)
            return None

        error = future.exception()
        if isinstance(error, QuotaExceeded):
            result.failed += 1
            unfinished.append(item)
            return (CrawlStatus.QUOTA_EXHAUSTED, str(error))
        if error is not None:
            logger.error(f"Unexpected error processing {item.repo_id}: {error!r}", exc_info=error)
            result.failed += 1
            unfinished.append(item)
            return None

        outcome: WorkOutcome = future.result()
        if outcome.status == WorkStatus.PROCESSED:
            result.processed += 1
        elif outcome.status == WorkStatus.SKIPPED:
            result.skipped += 1
        elif outcome.status == WorkStatus.CANCELLED:
            result.cancelled += 1
            unfinished.append(item)
        else:
            result.failed += 1
            unfinished.append(item)

        if outcome.owner_suspicious:
            result.suspicious_accounts += 1
            result.flagged.append(item.owner)
        if outcome.malicious:
            result.malicious_repositories += 1
            result.flagged.append(item.repo_id)
        return None
