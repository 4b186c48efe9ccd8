"""Shared fakes for the test suite. Nothing here touches the network."""

import datetime
import json
import threading
import time
from collections import Counter
from typing import Dict, List, Optional

import requests

from ghwatchdog.core.errors import NotFoundError
from ghwatchdog.core.models import RepoItem, SearchPage
from ghwatchdog.utils.date_utils import parse_github_datetime

UTC = datetime.timezone.utc


def utc(year, month, day, hour=0, minute=0, second=0) -> datetime.datetime:
    return datetime.datetime(year, month, day, hour, minute, second, tzinfo=UTC)


def make_response(status=200, body=None, headers=None, url="https://api.github.com/test", text=None):
    """Build a real requests.Response without a network round trip."""
    response = requests.Response()
    response.status_code = status
    if body is not None:
        response._content = json.dumps(body).encode("utf-8")
    elif text is not None:
        response._content = text.encode("utf-8")
    else:
        response._content = b""
    response.headers.update(headers or {})
    response.url = url
    response.encoding = "utf-8"
    return response


class FakeSession:
    """Stands in for requests.Session, replaying queued responses in order."""

    def __init__(self, *responses):
        self.headers: Dict[str, str] = {}
        self.calls: List = []
        self._queue = list(responses)

    def queue(self, *responses) -> None:
        self._queue.extend(responses)

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        if not self._queue:
            raise AssertionError(f"Unexpected request to {url}")
        item = self._queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeClock:
    """Manually advanced clock whose sleep moves time forward."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_item(owner="alice", name="repo", updated_at=None, size=5, stars=0, branch="main") -> RepoItem:
    return RepoItem(
        owner=owner,
        name=name,
        updated_at=updated_at or utc(2025, 3, 1),
        size=size,
        stargazers_count=stars,
        default_branch=branch,
    )


def make_repo(name, size=0, stars=0) -> Dict:
    return {"name": name, "size": size, "stargazers_count": stars}


class FakeGitHubAPI:
    """
    In-process stand-in for GitHubAPI with per-method call counters.

    Search results come from ``items``; with ``honor_window`` the ``pushed:<``
    qualifier of the query filters them like the real search would.
    """

    token = "test-token"

    def __init__(self, items=None, page_size=2, honor_window=False):
        self.items: List[RepoItem] = list(items or [])
        self.page_size = page_size
        self.honor_window = honor_window
        self.users: Dict[str, Dict] = {}
        self.user_repos: Dict[str, List[Dict]] = {}
        self.events: Dict[str, int] = {}
        self.readmes: Dict[str, str] = {}
        self.trees: Dict[str, List[str]] = {}
        self.assets: Dict[str, List[str]] = {}
        self.stargazers: Dict[str, List[str]] = {}
        self.errors: Dict[str, BaseException] = {}
        self.user_delay = 0.0
        self.queries: List[str] = []
        self.calls = Counter()
        self._lock = threading.Lock()

    def _hit(self, method: str) -> None:
        with self._lock:
            self.calls[method] += 1
        error = self.errors.get(method)
        if error is not None:
            raise error

    def add_account(self, login, created_at=None, repos=None, events=0) -> None:
        self.users[login] = {"login": login, "created_at": (created_at or utc(2020, 1, 1)).isoformat()}
        self.user_repos[login] = list(repos or [])
        self.events[login] = events

    def refresh_rate_limits(self, force=False) -> bool:
        self._hit("refresh_rate_limits")
        return True

    def search_repositories(self, query, per_page=100, cursor=None) -> SearchPage:
        self._hit("search_repositories")
        with self._lock:
            self.queries.append(query)
        items = sorted(self.items, key=lambda i: i.updated_at, reverse=True)
        if self.honor_window and "pushed:<" in query:
            bound = parse_github_datetime(query.split("pushed:<", 1)[1].split()[0])
            items = [i for i in items if i.updated_at < bound]
        index = int(cursor.split("-")[1]) if cursor else 0
        chunk = items[index * self.page_size:(index + 1) * self.page_size]
        more = (index + 1) * self.page_size < len(items)
        return SearchPage(items=chunk, next_cursor=f"page-{index + 1}" if more else None, total_count=len(items))

    def get_user(self, login) -> Dict:
        self._hit("get_user")
        if self.user_delay:
            time.sleep(self.user_delay)
        if login not in self.users:
            raise NotFoundError(f"/users/{login}")
        return self.users[login]

    def list_user_repositories(self, login) -> List[Dict]:
        self._hit("list_user_repositories")
        return self.user_repos.get(login, [])

    def count_recent_events(self, login, since) -> int:
        self._hit("count_recent_events")
        return self.events.get(login, 0)

    def get_readme(self, owner, repo) -> Optional[str]:
        self._hit("get_readme")
        return self.readmes.get(f"{owner}/{repo}")

    def get_tree_files(self, owner, repo, ref="HEAD") -> List[str]:
        self._hit("get_tree_files")
        return self.trees.get(f"{owner}/{repo}", [])

    def list_release_assets(self, owner, repo) -> List[str]:
        self._hit("list_release_assets")
        return self.assets.get(f"{owner}/{repo}", [])

    def list_stargazers(self, owner, repo, max_items=None) -> List[str]:
        self._hit("list_stargazers")
        return self.stargazers.get(f"{owner}/{repo}", [])[:max_items]

    @property
    def remote_calls(self) -> int:
        with self._lock:
            return sum(n for method, n in self.calls.items() if method != "refresh_rate_limits")
