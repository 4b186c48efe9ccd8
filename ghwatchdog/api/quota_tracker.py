"""Rate limit budget tracking for GitHub API requests."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from ghwatchdog.core.constants import (
    BUDGET_CORE,
    BUDGET_DEFAULTS,
    BUDGET_SEARCH,
    QUOTA_GRACE_SECONDS,
    RATE_LIMIT_CHECK_INTERVAL,
)

logger = logging.getLogger(__name__)


@dataclass
class QuotaState:
    """Remaining calls and reset time for one budget class."""

    remaining: int
    reset_at: float
    buffer: int


class QuotaTracker:
    """
    Tracks the core and search API budgets and decides whether a caller may proceed.

    One tracker is shared by every worker of a crawl run. Bookkeeping is serialized
    by a lock, but callers suspended by ``admit`` sleep outside of it.

    Attributes:
        grace_seconds: Extra wait after a reset time before resuming
        refresh_interval: Minimum seconds between explicit status refreshes
        budgets: Per-budget QuotaState
    """

    def __init__(
        self,
        core_buffer: Optional[int] = None,
        search_buffer: Optional[int] = None,
        grace_seconds: float = QUOTA_GRACE_SECONDS,
        refresh_interval: float = RATE_LIMIT_CHECK_INTERVAL,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the tracker.

        Args:
            core_buffer: Calls to keep in reserve on the core budget
            search_buffer: Calls to keep in reserve on the search budget
            grace_seconds: Seconds added to the reset time when waiting
            refresh_interval: Minimum seconds between explicit refreshes
            clock: Time source returning UNIX seconds
            sleep: Function used to suspend the caller
        """
        self.grace_seconds = grace_seconds
        self.refresh_interval = refresh_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_refresh: Optional[float] = None

        buffers = {BUDGET_CORE: core_buffer, BUDGET_SEARCH: search_buffer}
        self.budgets: Dict[str, QuotaState] = {}
        for budget, (initial_remaining, default_buffer) in BUDGET_DEFAULTS.items():
            buffer = buffers[budget] if buffers[budget] is not None else default_buffer
            self.budgets[budget] = QuotaState(remaining=initial_remaining, reset_at=0, buffer=buffer)

    def _state(self, budget: str) -> QuotaState:
        try:
            return self.budgets[budget]
        except KeyError:
            raise ValueError(f"Unknown budget class: {budget}") from None

    def snapshot(self, budget: str) -> QuotaState:
        """Return a copy of the current state of a budget."""
        with self._lock:
            state = self._state(budget)
            return QuotaState(state.remaining, state.reset_at, state.buffer)

    def admit(self, budget: str) -> float:
        """
        Wait, if needed, until a call against ``budget`` may be issued.

        Returns:
            float: Seconds the caller was suspended (0 when admitted immediately)
        """
        with self._lock:
            state = self._state(budget)
            if state.remaining > state.buffer:
                return 0.0
            now = self._clock()
            if state.reset_at <= now:
                # Reset already happened; the next response corrects the count
                return 0.0
            wait_time = state.reset_at - now + self.grace_seconds
            remaining = state.remaining

        logger.warning(
            f"{budget} API rate limit approaching ({remaining} remaining). "
            f"Waiting {wait_time:.0f}s until reset."
        )
        self._sleep(wait_time)

        with self._lock:
            state = self._state(budget)
            if state.remaining <= state.buffer:
                state.remaining = state.buffer + 1
        logger.info(f"{budget} API rate limit wait complete. Proceeding with requests.")
        return wait_time

    def record(self, budget: str, remaining: int, reset_at: float) -> None:
        """
        Update a budget from server-reported values. Last writer wins.

        Args:
            budget: Budget class
            remaining: Number of API calls remaining
            reset_at: UNIX timestamp when the budget resets
        """
        with self._lock:
            state = self._state(budget)
            state.remaining = remaining
            state.reset_at = reset_at

        if remaining <= self.budgets[budget].buffer:
            logger.debug(f"{budget} API is low on rate limit: {remaining} remaining")

    def record_from_headers(self, budget: str, headers: Mapping[str, str]) -> None:
        """Update a budget from ``X-RateLimit-*`` response headers, if present."""
        remaining_raw = headers.get("X-RateLimit-Remaining")
        reset_raw = headers.get("X-RateLimit-Reset")
        if remaining_raw is None or reset_raw is None:
            return
        try:
            remaining = int(remaining_raw)
            reset_at = int(reset_raw)
        except ValueError:
            logger.warning(
                f"Ignoring unparseable rate limit headers: remaining={remaining_raw!r} reset={reset_raw!r}"
            )
            return
        self.record(budget, remaining, reset_at)

    def should_refresh(self) -> bool:
        """True when an explicit status refresh is due."""
        with self._lock:
            if self._last_refresh is None:
                return True
            return self._clock() - self._last_refresh >= self.refresh_interval

    def apply_status(self, resources: Dict) -> None:
        """
        Resynchronize both budgets from a ``/rate_limit`` payload.

        Args:
            resources: The ``resources`` object of the status response
        """
        with self._lock:
            for budget in (BUDGET_CORE, BUDGET_SEARCH):
                info = resources.get(budget)
                if not info:
                    continue
                state = self.budgets[budget]
                state.remaining = int(info.get("remaining", state.remaining))
                state.reset_at = int(info.get("reset", state.reset_at))
            self._last_refresh = self._clock()
            core = self.budgets[BUDGET_CORE]
            search = self.budgets[BUDGET_SEARCH]

        logger.info(
            f"Current rate limits - Core: {core.remaining} (resets at {core.reset_at:.0f}), "
            f"Search: {search.remaining} (resets at {search.reset_at:.0f})"
        )
