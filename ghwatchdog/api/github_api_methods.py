"""Additional GitHub API methods for users, activity, releases and stargazers."""

import datetime
import logging
from typing import Dict, List, Optional

from ghwatchdog.core.errors import DecodeError, NotFoundError
from ghwatchdog.utils.date_utils import parse_github_datetime, to_utc

logger = logging.getLogger(__name__)


class GitHubApiMethods:
    """
    Implementation of GitHub API methods for specific data types.

    This class provides methods for fetching account profiles, owned
    repositories, public activity, release assets and stargazers.
    """

    def get_user(self, login: str) -> Dict:
        """
        Get a user's public profile.

        Args:
            login: GitHub username

        Returns:
            Dict: Profile data (includes ``created_at``)

        Raises:
            NotFoundError: If the account does not exist
            DecodeError: If the response is not an object
        """
        logger.debug(f"Fetching profile for {login}")
        data = self.request(f"/users/{login}")
        if not isinstance(data, dict):
            raise DecodeError(f"Unexpected profile payload for {login}")
        return data

    def list_user_repositories(self, login: str) -> List[Dict]:
        """
        List repositories owned by a user.

        Args:
            login: GitHub username

        Returns:
            List[Dict]: One ``{name, size, stargazers_count}`` dict per repository
        """
        logger.debug(f"Fetching owned repositories for {login}")
        raw = self.paginate(f"/users/{login}/repos", params={"type": "owner"})
        repos = []
        for entry in raw:
            try:
                repos.append(
                    {
                        "name": entry["name"],
                        "size": int(entry.get("size") or 0),
                        "stargazers_count": int(entry.get("stargazers_count") or 0),
                    }
                )
            except (KeyError, TypeError, ValueError) as e:
                raise DecodeError(f"Malformed repository entry for {login}: {e!r}") from e
        logger.debug(f"Retrieved {len(repos)} repositories for {login}")
        return repos

    def count_recent_events(self, login: str, since: datetime.datetime) -> int:
        """
        Count a user's public events newer than ``since``.

        Events arrive newest first, so counting stops at the first older event.

        Args:
            login: GitHub username
            since: Lower bound of the activity window

        Returns:
            int: Number of events strictly newer than ``since``
        """
        since = to_utc(since)
        count = 0
        for page in self.iter_pages(f"/users/{login}/events/public"):
            for event in page:
                try:
                    created = parse_github_datetime(event.get("created_at"))
                except (AttributeError, ValueError) as e:
                    raise DecodeError(f"Malformed event for {login}: {e!r}") from e
                if created is None or created <= since:
                    logger.debug(f"{login}: {count} events since {since.date()}")
                    return count
                count += 1
        logger.debug(f"{login}: {count} events since {since.date()}")
        return count

    def list_release_assets(self, owner: str, repo: str) -> List[str]:
        """
        List the asset file names of all releases of a repository.

        Returns:
            List[str]: Asset names (empty when there are no releases or the
            repository is gone)
        """
        names = []
        try:
            releases = self.paginate(f"/repos/{owner}/{repo}/releases")
        except NotFoundError:
            logger.debug(f"No releases for {owner}/{repo}: not found")
            return []
        for release in releases:
            for asset in release.get("assets") or []:
                name = asset.get("name")
                if name:
                    names.append(name)
        return names

    def list_stargazers(self, owner: str, repo: str, max_items: Optional[int] = None) -> List[str]:
        """
        List the logins of users who starred a repository.

        Args:
            owner: Repository owner
            repo: Repository name
            max_items: Maximum number of stargazers to return

        Returns:
            List[str]: Stargazer logins
        """
        logger.debug(f"Fetching stargazers for {owner}/{repo}")
        stargazers = self.paginate(f"/repos/{owner}/{repo}/stargazers", max_items=max_items)
        return [s["login"] for s in stargazers if isinstance(s, dict) and s.get("login")]
