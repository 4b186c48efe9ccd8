"""GitHub API methods for repository content and files."""

import base64
import binascii
import logging
from typing import List, Optional

from ghwatchdog.core.errors import DecodeError, NotFoundError, TransportError

logger = logging.getLogger(__name__)


class GitHubContentMethods:
    """
    Implementation of GitHub API methods for repository content.

    Missing content (HTTP 404, or 409 for an empty repository tree) is reported
    as an empty result rather than an error.
    """

    def get_readme(self, owner: str, repo: str) -> Optional[str]:
        """
        Get the decoded README of a repository.

        Args:
            owner: Repository owner
            repo: Repository name

        Returns:
            Optional[str]: README text, or None if the repository has none
        """
        try:
            data = self.request(f"/repos/{owner}/{repo}/readme")
        except NotFoundError:
            logger.debug(f"No README in {owner}/{repo}")
            return None

        if not isinstance(data, dict) or "content" not in data:
            raise DecodeError(f"README response for {owner}/{repo} has no content field")

        try:
            # GitHub returns base64-encoded content
            raw = base64.b64decode(data["content"])
        except (binascii.Error, TypeError, ValueError) as e:
            raise DecodeError(f"Undecodable README for {owner}/{repo}: {e}") from e
        return raw.decode("utf-8", errors="replace")

    def get_tree_files(self, owner: str, repo: str, ref: str = "HEAD") -> List[str]:
        """
        List every file path in a repository tree.

        Args:
            owner: Repository owner
            repo: Repository name
            ref: Branch, tag or commit to list

        Returns:
            List[str]: Blob paths; empty for missing or empty repositories
        """
        try:
            data = self.request(f"/repos/{owner}/{repo}/git/trees/{ref}", params={"recursive": "1"})
        except NotFoundError:
            logger.debug(f"No tree for {owner}/{repo}@{ref}")
            return []
        except TransportError as e:
            # 409 Conflict: the repository has no commits yet
            if e.status_code == 409:
                logger.debug(f"Empty repository {owner}/{repo}")
                return []
            raise

        if not isinstance(data, dict) or not isinstance(data.get("tree"), list):
            raise DecodeError(f"Tree response for {owner}/{repo} lacks a tree list")
        if data.get("truncated"):
            logger.debug(f"Tree listing for {owner}/{repo} was truncated by the server")

        return [entry["path"] for entry in data["tree"] if entry.get("type") == "blob" and entry.get("path")]
