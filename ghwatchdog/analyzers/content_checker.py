"""Repository content checks for fake-download lures."""

import logging
import posixpath
from typing import Iterable, List, Optional

from ghwatchdog.core.constants import LOADER_ARTIFACT_NAMES, README_MARKERS
from ghwatchdog.core.models import HeuristicVerdict, RepoItem

logger = logging.getLogger(__name__)


def readme_has_markers(text: Optional[str], markers: Iterable[str] = README_MARKERS) -> bool:
    """
    Check whether a README contains every lure marker.

    Matching is case-insensitive and the markers may appear anywhere.

    Args:
        text: README text (None when the repository has none)
        markers: Literal markers that must all be present

    Returns:
        bool: True if all markers are present
    """
    if not text:
        return False
    lowered = text.lower()
    return all(marker.lower() in lowered for marker in markers)


def find_loader_artifacts(names: Iterable[str], artifacts: Iterable[str] = LOADER_ARTIFACT_NAMES) -> List[str]:
    """Return the entries whose base name is a known loader archive (case-insensitive)."""
    wanted = {a.lower() for a in artifacts}
    return [name for name in names if posixpath.basename(name).lower() in wanted]


class ReadmeMarkerCheck:
    """Flags READMEs that carry both the download-link and password headings."""

    name = "readme-markers"

    def check(self, github_api, item: RepoItem) -> HeuristicVerdict:
        readme = github_api.get_readme(item.owner, item.name)
        flag = readme_has_markers(readme)
        description = "README contains download link and password markers" if flag else "no lure markers"
        return HeuristicVerdict(self.name, flag, description)


class LoaderArtifactCheck:
    """Flags repositories shipping a loader archive in the tree or in releases."""

    name = "loader-artifact"

    def check(self, github_api, item: RepoItem) -> HeuristicVerdict:
        found = find_loader_artifacts(github_api.get_tree_files(item.owner, item.name, item.default_branch))
        where = "file tree"
        if not found:
            found = find_loader_artifacts(github_api.list_release_assets(item.owner, item.name))
            where = "release assets"
        if found:
            return HeuristicVerdict(self.name, True, f"{where} contain {', '.join(sorted(set(found)))}")
        return HeuristicVerdict(self.name, False, "no loader archives")


class RepositoryContentChecker:
    """
    Runs an ordered list of content checks against one repository.

    Evaluation stops at the first check that fires.
    """

    def __init__(self, checks: Optional[Iterable] = None):
        self.checks = list(checks) if checks is not None else [ReadmeMarkerCheck(), LoaderArtifactCheck()]

    def check(self, github_api, item: RepoItem) -> HeuristicVerdict:
        """
        Classify a repository.

        Returns:
            HeuristicVerdict: The first firing check's verdict, or a clean verdict
        """
        for content_check in self.checks:
            verdict = content_check.check(github_api, item)
            if verdict.flag:
                logger.debug(f"{item.repo_id}: {verdict}")
                return verdict
        return HeuristicVerdict("content", False, "no malicious content found")
