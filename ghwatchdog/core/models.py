"""Data records shared by the crawler, analyzers and ledger."""

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ghwatchdog.core.errors import DecodeError
from ghwatchdog.utils.date_utils import parse_github_datetime


@dataclass(frozen=True)
class RepoItem:
    """A repository as returned by the search API."""

    owner: str
    name: str
    updated_at: datetime.datetime
    size: int
    stargazers_count: int
    default_branch: str = "HEAD"

    @property
    def repo_id(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_api(cls, data: Dict) -> "RepoItem":
        """
        Build an item from a search result entry.

        Raises:
            DecodeError: If required fields are missing or malformed
        """
        try:
            return cls(
                owner=data["owner"]["login"],
                name=data["name"],
                updated_at=_require_timestamp(data["updated_at"]),
                size=int(data["size"]),
                stargazers_count=int(data["stargazers_count"]),
                default_branch=data.get("default_branch") or "HEAD",
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Malformed repository search item: {e!r}") from e


def _require_timestamp(value) -> datetime.datetime:
    parsed = parse_github_datetime(value)
    if parsed is None:
        raise ValueError(f"missing updated_at: {value!r}")
    return parsed


@dataclass(frozen=True)
class SearchPage:
    """One page of repository search results."""

    items: List[RepoItem]
    next_cursor: Optional[str] = None
    total_count: int = 0


@dataclass(frozen=True)
class AccountMetrics:
    """Inputs to the account heuristics."""

    total_stars: int = 0
    low_content_count: int = 0
    starred_low_content_count: int = 0
    recent_events: int = 0
    account_age: datetime.timedelta = datetime.timedelta(0)


@dataclass(frozen=True)
class HeuristicVerdict:
    """Outcome of one heuristic rule or content check."""

    name: str
    flag: bool
    description: str

    def __str__(self) -> str:
        return f"{self.name}: {self.description}"


@dataclass(frozen=True)
class AccountRecord:
    """Analysis result for one account."""

    login: str
    created_at: Optional[datetime.datetime]
    total_stars: int
    low_content_count: int
    starred_low_content_count: int
    recent_events: int
    suspicious: bool
    rationale: Tuple[HeuristicVerdict, ...] = ()

    @property
    def fired(self) -> List[HeuristicVerdict]:
        """Verdicts whose rule flagged the account."""
        return [v for v in self.rationale if v.flag]


@dataclass(frozen=True)
class RepositoryRecord:
    """A processed repository as stored in the ledger."""

    owner: str
    name: str
    updated_at: datetime.datetime
    size: int
    stargazers_count: int
    malicious: bool = False
    processed_at: Optional[datetime.datetime] = None

    @property
    def repo_id(self) -> str:
        return f"{self.owner}/{self.name}"


class WorkStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class WorkOutcome:
    """Result of one worker unit."""

    repo_id: str
    status: WorkStatus
    malicious: bool = False
    owner_suspicious: bool = False
    error: Optional[str] = None


class CrawlStatus(str, Enum):
    DONE = "done"
    QUOTA_EXHAUSTED = "quota_exhausted"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    FAILED = "failed"


@dataclass
class CrawlResult:
    """Summary of a crawl invocation."""

    status: CrawlStatus = CrawlStatus.DONE
    windows: int = 0
    pages: int = 0
    dispatched: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: int = 0
    suspicious_accounts: int = 0
    malicious_repositories: int = 0
    min_updated_at: Optional[datetime.datetime] = None
    resume_before: Optional[datetime.datetime] = None
    last_query: Optional[str] = None
    error: Optional[str] = None
    flagged: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == CrawlStatus.DONE

    def absorb(self, other: "CrawlResult") -> None:
        """Add another window's counters into this result."""
        self.windows += other.windows
        self.pages += other.pages
        self.dispatched += other.dispatched
        self.processed += other.processed
        self.skipped += other.skipped
        self.failed += other.failed
        self.cancelled += other.cancelled
        self.suspicious_accounts += other.suspicious_accounts
        self.malicious_repositories += other.malicious_repositories
        self.flagged.extend(other.flagged)
        if other.min_updated_at is not None and (
            self.min_updated_at is None or other.min_updated_at < self.min_updated_at
        ):
            self.min_updated_at = other.min_updated_at

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "windows": self.windows,
            "pages": self.pages,
            "dispatched": self.dispatched,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "suspicious_accounts": self.suspicious_accounts,
            "malicious_repositories": self.malicious_repositories,
            "min_updated_at": self.min_updated_at.isoformat() if self.min_updated_at else None,
            "resume_before": self.resume_before.isoformat() if self.resume_before else None,
            "last_query": self.last_query,
            "error": self.error,
            "flagged": list(self.flagged),
        }
