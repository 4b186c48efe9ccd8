"""
GitHub API client for GitHub Watchdog.

This module provides the single gateway for outbound GitHub REST calls. Every
call is admitted by the shared QuotaTracker, served from the ApiCache when
possible, and otherwise sent over a persistent requests session.
"""

import os
import time
import logging
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

import requests

from ghwatchdog.api.api_cache import ApiCache
from ghwatchdog.api.quota_tracker import QuotaTracker
from ghwatchdog.core.constants import (
    BUDGET_CORE,
    BUDGET_SEARCH,
    GITHUB_API_BASE,
    GITHUB_API_VERSION,
    REQUEST_TIMEOUT,
)
from ghwatchdog.core.errors import DecodeError, NotFoundError, QuotaExceeded, TransportError
from ghwatchdog.utils.date_utils import parse_github_datetime

# Configure module logger
logger = logging.getLogger(__name__)


class GitHubAPI:
    """
    GitHub API client for GitHub Watchdog.

    This class handles all direct interactions with the GitHub REST API. Endpoint
    specific methods are attached from the mixin modules in
    ``ghwatchdog.api.github_api_imports``.

    Attributes:
        token: GitHub personal access token, if any
        quota: Shared rate limit tracker
        cache: Shared response cache
        session: Persistent session for making HTTP requests
        timeout: Per-call timeout in seconds
    """

    def __init__(
        self,
        token: Optional[str] = None,
        quota_tracker: Optional[QuotaTracker] = None,
        cache: Optional[ApiCache] = None,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the GitHub API client.

        Args:
            token: GitHub personal access token (falls back to GITHUB_TOKEN)
            quota_tracker: Rate limit tracker shared by all callers of a run
            cache: Response cache shared by all callers of a run
            session: HTTP session, mainly for injection in tests
            timeout: Per-call timeout in seconds
            sleep: Function used for Retry-After waits
        """
        if token is None:
            token = (os.environ.get("GITHUB_TOKEN") or "").strip() or None
        self.token = token
        self.quota = quota_tracker or QuotaTracker()
        self.cache = cache or ApiCache()
        self.timeout = timeout
        self._sleep = sleep

        # Set up headers for REST API requests
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if token:
            self.headers["Authorization"] = f"token {token}"

        # Create persistent session for better performance
        self.session = session or requests.Session()
        self.session.headers.update(self.headers)

        logger.debug("GitHub API client initialized (authenticated=%s)", bool(token))

    @staticmethod
    def budget_for(url: str) -> str:
        """Budget class an endpoint is metered against."""
        path = urlparse(url).path
        return BUDGET_SEARCH if path.startswith("/search/") else BUDGET_CORE

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{GITHUB_API_BASE}{endpoint}"

    def request(self, endpoint: str, params: Optional[Dict] = None, use_cache: bool = True) -> Any:
        """
        Make a GET request to the GitHub REST API.

        Args:
            endpoint: API endpoint path (appended to the API base URL) or absolute URL
            params: URL query parameters
            use_cache: Whether to use a cached response if available

        Returns:
            Decoded JSON body (None for empty responses)

        Raises:
            QuotaExceeded: If the quota is exhausted without a retry hint
            NotFoundError: On HTTP 404
            TransportError: On any other failed request
            DecodeError: If the body is not valid JSON
        """
        body, _ = self.request_page(endpoint, params=params, use_cache=use_cache)
        return body

    def request_page(
        self, endpoint: str, params: Optional[Dict] = None, use_cache: bool = True
    ) -> Tuple[Any, Optional[str]]:
        """
        Make a GET request and also return the opaque next-page cursor.

        The cursor is the ``rel="next"`` URL of the Link header; pass it back as
        ``endpoint`` (without params) to fetch the following page.

        Returns:
            Tuple of (decoded body, next cursor or None)
        """
        url = self._url(endpoint)
        budget = self.budget_for(url)

        self.quota.admit(budget)

        cache_key = self.cache.make_key(url, params)
        if use_cache:
            cached = self.cache.get_raw(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for {cache_key}")
                return cached["body"], cached["next"]
            logger.debug(f"Cache miss for {cache_key}, fetching from API")

        response = self._send(url, params, budget)
        body = self._decode(response)
        next_url = response.links.get("next", {}).get("url")

        if use_cache:
            self.cache.put_raw(cache_key, {"body": body, "next": next_url})

        return body, next_url

    def _send(self, url: str, params: Optional[Dict], budget: str) -> requests.Response:
        """Send one request, retrying once when the server supplies Retry-After."""
        retried = False
        while True:
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                raise TransportError(f"Network error for {url}: {e}", url=url) from e

            resource = response.headers.get("X-RateLimit-Resource")
            reported_budget = resource if resource in self.quota.budgets else budget
            self.quota.record_from_headers(reported_budget, response.headers)

            if self._is_quota_response(response):
                retry_after = self._retry_after(response)
                if retry_after is not None and not retried:
                    logger.warning(f"Rate limited on {url}. Waiting {retry_after:.0f}s before retry.")
                    self._sleep(retry_after)
                    retried = True
                    continue
                reset_raw = response.headers.get("X-RateLimit-Reset")
                reset_at = int(reset_raw) if reset_raw and reset_raw.isdigit() else None
                logger.error(f"Rate limit exceeded for {url} with no usable retry hint.")
                raise QuotaExceeded(reported_budget, reset_at)

            if 200 <= response.status_code < 300:
                return response

            if response.status_code == 404:
                logger.debug(f"Resource not found (404): {url}")
                raise NotFoundError(url)

            raise TransportError(
                f"GitHub API error {response.status_code} for {url}: {response.text[:200]}",
                status_code=response.status_code,
                url=url,
            )

    @staticmethod
    def _is_quota_response(response: requests.Response) -> bool:
        if response.status_code not in (403, 429):
            return False
        if response.headers.get("X-RateLimit-Remaining") == "0":
            return True
        if "Retry-After" in response.headers:
            return True
        return "rate limit" in response.text.lower()

    @staticmethod
    def _retry_after(response: requests.Response) -> Optional[float]:
        """Seconds to wait according to a Retry-After header, or None."""
        value = response.headers.get("Retry-After")
        if not value:
            return None
        value = value.strip()
        if value.isdigit():
            return float(value)
        try:
            retry_at = parse_github_datetime(value)
        except (ValueError, OverflowError):
            logger.debug(f"Unparseable Retry-After header: {value!r}")
            return None
        return max(0.0, retry_at.timestamp() - time.time())

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {response.url}: {e}") from e

    def get_rate_limit(self) -> Dict:
        """
        Fetch the current rate limit status.

        This call bypasses the quota admission and the cache; GitHub does not
        count it against either budget.

        Returns:
            Dict: The ``resources`` object of the response
        """
        url = self._url("/rate_limit")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Network error for {url}: {e}", url=url) from e
        if response.status_code != 200:
            raise TransportError(
                f"Failed to fetch rate limit: {response.status_code}",
                status_code=response.status_code,
                url=url,
            )
        data = self._decode(response)
        if not isinstance(data, dict) or not isinstance(data.get("resources"), dict):
            raise DecodeError("Rate limit response lacks a resources object")
        return data["resources"]

    def refresh_rate_limits(self, force: bool = False) -> bool:
        """
        Resynchronize the quota tracker when a refresh is due.

        Returns:
            bool: True if a refresh was performed
        """
        if not force and not self.quota.should_refresh():
            return False
        self.quota.apply_status(self.get_rate_limit())
        return True
