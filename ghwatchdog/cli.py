"""Command-line interface for GitHub Watchdog."""

import sys
import argparse
import dataclasses
import logging
from typing import List, Optional

from ghwatchdog.config import load_config
from ghwatchdog.core.constants import (
    EXIT_CONFIG_ERROR,
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_QUOTA_EXHAUSTED,
)
from ghwatchdog.core.errors import ConfigError
from ghwatchdog.core.models import CrawlResult, CrawlStatus
from ghwatchdog.main import GitHubWatchdog

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("ghwatchdog")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GitHub Watchdog - crawl GitHub search for fake-download repositories and farmed accounts"
    )
    parser.add_argument("-c", "--config", help="Config file (YAML or JSON; default: config.yaml if present)")
    parser.add_argument("-q", "--query", help="GitHub search query to crawl")
    parser.add_argument("-t", "--token", help="GitHub personal access token (or set GITHUB_TOKEN env var)")
    parser.add_argument("--max-pages", type=int, help="Search pages per window")
    parser.add_argument("--workers", type=int, help="Number of concurrent workers")
    parser.add_argument("--deadline", type=float, help="Stop the crawl after this many minutes")
    parser.add_argument("--database", help="SQLAlchemy database URL for the ledger")
    parser.add_argument("--no-resume", action="store_true", help="Ignore any saved crawl checkpoint")
    parser.add_argument("-f", "--format", choices=["text", "json"], default="text", help="Output format")
    parser.add_argument("-o", "--output", help="Output file (default: stdout)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose DEBUG logging")
    return parser


def exit_status(result: CrawlResult) -> int:
    """Map a crawl outcome to a process exit status."""
    if result.status in (CrawlStatus.DONE, CrawlStatus.DEADLINE_EXCEEDED):
        return EXIT_OK
    if result.status == CrawlStatus.QUOTA_EXHAUSTED:
        return EXIT_QUOTA_EXHAUSTED
    return EXIT_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logger.setLevel(logging.DEBUG)
        logging.getLogger("urllib3").setLevel(logging.INFO)

    try:
        config = load_config(args.config)
        overrides = {
            "github_query": args.query,
            "github_token": args.token,
            "max_pages": args.max_pages,
            "max_concurrent": args.workers,
            "deadline_minutes": args.deadline,
            "database_url": args.database,
        }
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if args.no_resume:
            overrides["resume"] = False
        if args.verbose:
            overrides["verbose"] = True
        config = dataclasses.replace(config, **overrides).validate()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    if config.verbose:
        logger.setLevel(logging.DEBUG)
        logging.getLogger("urllib3").setLevel(logging.INFO)

    try:
        engine = GitHubWatchdog(config)
        result = engine.run()
        report = engine.generate_report(result, format_str=args.format)

        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(report)
            logger.info(f"Report saved to {args.output}")
        else:
            sys.stdout.write(report + "\n")

    except KeyboardInterrupt:
        logger.info("Crawl interrupted by user.")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.error(f"A critical error occurred: {str(e)}", exc_info=config.verbose)
        if not config.verbose:
            logger.error("Run with -v or --verbose for detailed traceback.")
        return EXIT_FAILURE

    return exit_status(result)


if __name__ == "__main__":
    sys.exit(main())
