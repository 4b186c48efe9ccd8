"""Configuration loading for GitHub Watchdog."""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ghwatchdog.analyzers.heuristics import HeuristicThresholds
from ghwatchdog.core import constants
from ghwatchdog.core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILES = ("config.yaml", "config.yml", "config.json")

# Keys from older config.json files
RENAMED_KEYS = {"cache_ttl": "cache_ttl_minutes"}
IGNORED_KEYS = ("ollama",)


@dataclass
class WatchdogConfig:
    """Settings for one crawl run."""

    github_query: str = constants.DEFAULT_SEARCH_QUERY
    github_token: Optional[str] = None
    max_pages: int = constants.MAX_PAGES
    per_page: int = constants.MAX_PER_PAGE
    max_concurrent: int = constants.MAX_CONCURRENT
    rate_limit_buffer: int = 500
    search_rate_limit_buffer: int = 3
    quota_grace_seconds: float = constants.QUOTA_GRACE_SECONDS
    rate_limit_check_interval: float = constants.RATE_LIMIT_CHECK_INTERVAL
    cache_ttl_minutes: float = constants.CACHE_TTL_MINUTES
    request_timeout: float = constants.REQUEST_TIMEOUT
    deadline_minutes: Optional[float] = constants.DEADLINE_MINUTES
    window_qualifier: str = "pushed"
    window_pause_seconds: float = constants.WINDOW_PAUSE_SECONDS
    database_url: str = constants.DEFAULT_DATABASE_URL
    low_content_threshold: int = constants.LOW_CONTENT_THRESHOLD
    starred_threshold: int = constants.STARRED_THRESHOLD
    content_check_min_size: int = constants.CONTENT_CHECK_MIN_SIZE
    activity_window_days: int = constants.ACTIVITY_WINDOW_DAYS
    heuristics: HeuristicThresholds = field(default_factory=HeuristicThresholds)
    record_malicious_stargazers: bool = False
    max_stargazers: int = 500
    resume: bool = True
    show_progress: bool = False
    verbose: bool = False

    def validate(self) -> "WatchdogConfig":
        """
        Check value ranges.

        Raises:
            ConfigError: On the first invalid value
        """
        if not isinstance(self.github_query, str) or not self.github_query.strip():
            raise ConfigError("github_query must be a non-empty string")

        positive = (
            "max_pages",
            "per_page",
            "max_concurrent",
            "low_content_threshold",
            "starred_threshold",
            "activity_window_days",
            "max_stargazers",
        )
        for name in positive:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

        non_negative = ("rate_limit_buffer", "search_rate_limit_buffer", "content_check_min_size")
        for name in non_negative:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"{name} must be a non-negative integer, got {value!r}")

        if self.per_page > constants.MAX_PER_PAGE:
            raise ConfigError(f"per_page must be at most {constants.MAX_PER_PAGE}")
        if self.window_qualifier not in constants.WINDOW_QUALIFIERS:
            raise ConfigError(
                f"window_qualifier must be one of {', '.join(constants.WINDOW_QUALIFIERS)}, "
                f"got {self.window_qualifier!r}"
            )
        for name in ("cache_ttl_minutes", "request_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.deadline_minutes is not None and self.deadline_minutes <= 0:
            raise ConfigError("deadline_minutes must be positive (or null for no deadline)")
        return self


def resolve_config_path(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    """
    Locate the configuration file.

    Order: explicit path, ``$GHWATCHDOG_CONFIG``, then a ``config.yaml`` /
    ``config.json`` in the working directory. An explicitly requested file must
    exist.
    """
    env = os.environ if env is None else env
    custom = path or (env.get("GHWATCHDOG_CONFIG") or "").strip()
    if custom:
        resolved = Path(custom).expanduser()
        if not resolved.is_file():
            raise ConfigError(f"Config file not found: {resolved}")
        return resolved
    for name in DEFAULT_CONFIG_FILES:
        candidate = Path(name)
        if candidate.is_file():
            return candidate
    return None


def _read_file(path: Path) -> Dict[str, Any]:
    # JSON is a subset of YAML, so one loader covers both formats
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return payload


def _build_thresholds(data: Any) -> HeuristicThresholds:
    if data is None:
        return HeuristicThresholds()
    if not isinstance(data, dict):
        raise ConfigError("heuristics must be a mapping")
    known = {f.name for f in dataclasses.fields(HeuristicThresholds)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown heuristics keys: {', '.join(unknown)}")
    for key, value in data.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigError(f"heuristics.{key} must be a non-negative integer, got {value!r}")
    return HeuristicThresholds(**data)


def _upgrade_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename or drop keys carried over from older config files."""
    values = dict(data)
    for old, new in RENAMED_KEYS.items():
        if old in values:
            value = values.pop(old)
            if new in values:
                logger.warning(f"Config key '{old}' ignored, '{new}' is also set")
            else:
                values[new] = value
    for name in IGNORED_KEYS:
        if name in values:
            values.pop(name)
            logger.warning(f"Config key '{name}' is no longer supported and was ignored")
    return values


def config_from_dict(data: Mapping[str, Any]) -> WatchdogConfig:
    """
    Build a validated config from a plain mapping.

    Raises:
        ConfigError: On unknown keys or invalid values
    """
    values = _upgrade_keys(data)
    known = {f.name for f in dataclasses.fields(WatchdogConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    values["heuristics"] = _build_thresholds(values.get("heuristics"))
    return WatchdogConfig(**values).validate()


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> WatchdogConfig:
    """
    Load settings from a file and the environment.

    Args:
        path: Explicit config file path
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        WatchdogConfig: Validated settings

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    env = os.environ if env is None else env
    config_path = resolve_config_path(path, env)
    data: Dict[str, Any] = _read_file(config_path) if config_path else {}
    if config_path:
        logger.debug(f"Loaded configuration from {config_path}")

    token = (env.get("GITHUB_TOKEN") or "").strip()
    if token:
        data["github_token"] = token
    database_url = (env.get("GHWATCHDOG_DATABASE_URL") or "").strip()
    if database_url:
        data["database_url"] = database_url

    return config_from_dict(data)
