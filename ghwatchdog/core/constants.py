"""Constants used across the GitHub Watchdog package."""

# GitHub API constants
GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
DEFAULT_SEARCH_QUERY = "stars:>5 created:>2025-01-31"
MAX_PER_PAGE = 100
REQUEST_TIMEOUT = 30  # seconds per HTTP call

# Rate limit budgets
BUDGET_CORE = "core"
BUDGET_SEARCH = "search"
BUDGET_DEFAULTS = {
    # budget: (initial remaining, default safety buffer)
    BUDGET_CORE: (5000, 500),
    BUDGET_SEARCH: (30, 3),
}
QUOTA_GRACE_SECONDS = 5
RATE_LIMIT_CHECK_INTERVAL = 300  # seconds between explicit /rate_limit refreshes

# Cache
CACHE_TTL_MINUTES = 60

# Account heuristics
LOW_CONTENT_THRESHOLD = 10  # repository size below this counts as low-content
STARRED_THRESHOLD = 5  # stars for a low-content repository to count as starred
AGED_MIN_TOTAL_STARS = 10
AGED_MIN_LOW_CONTENT_REPOS = 20
FARMED_MIN_STARRED_LOW_CONTENT = 5
FARMED_MAX_RECENT_EVENTS = 5
BURST_MIN_TOTAL_STARS = 10
BURST_MAX_ACCOUNT_AGE_DAYS = 10
ACTIVITY_WINDOW_DAYS = 365

# Repository content checks
README_MARKERS = ("# [download link]", "# password")
LOADER_ARTIFACT_NAMES = frozenset({"loader.zip", "loader.rar"})
CONTENT_CHECK_MIN_SIZE = 1

# Entity types used in the ledger
ENTITY_USER = "user"
ENTITY_REPOSITORY = "repository"

# Crawl defaults
MAX_PAGES = 10
MAX_CONCURRENT = 10
DEADLINE_MINUTES = 60
WINDOW_QUALIFIERS = ("pushed", "created")
WINDOW_PAUSE_SECONDS = 2
DEFAULT_DATABASE_URL = "sqlite:///github_watchdog.db"

# Process exit statuses
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_QUOTA_EXHAUSTED = 75  # EX_TEMPFAIL: retry later
EXIT_INTERRUPTED = 130
