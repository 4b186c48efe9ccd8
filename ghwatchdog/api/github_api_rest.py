"""GitHub REST API pagination and search methods."""

import logging
from typing import Dict, Iterator, List, Optional

from ghwatchdog.core.constants import MAX_PER_PAGE
from ghwatchdog.core.errors import DecodeError
from ghwatchdog.core.models import RepoItem, SearchPage

logger = logging.getLogger(__name__)


class GitHubRestMethods:
    """
    Implementation of GitHub REST API methods.

    This class extends the core GitHubAPI with pagination and repository search.
    The methods are imported into the main GitHubAPI class.
    """

    def iter_pages(
        self, endpoint: str, params: Optional[Dict] = None, max_pages: Optional[int] = None
    ) -> Iterator[List]:
        """
        Yield successive pages of a list endpoint.

        The next page is always requested through the opaque ``rel="next"``
        cursor returned by the previous response; page numbers are never
        computed locally.

        Args:
            endpoint: API endpoint path
            params: Query parameters for the first page
            max_pages: Stop after this many pages (None for no cap)

        Yields:
            List: The decoded items of each page

        Raises:
            DecodeError: If a page is not a JSON array
        """
        params = dict(params or {})
        params.setdefault("per_page", MAX_PER_PAGE)

        cursor: Optional[str] = endpoint
        page_params: Optional[Dict] = params
        pages = 0

        while cursor is not None:
            if max_pages is not None and pages >= max_pages:
                logger.debug(f"Stopping pagination of {endpoint} at page cap {max_pages}")
                break

            page_data, cursor = self.request_page(cursor, params=page_params)
            # The cursor already carries every query parameter
            page_params = None
            pages += 1

            if page_data is None:
                break
            if not isinstance(page_data, list):
                raise DecodeError(
                    f"Unexpected data type from {endpoint} (page {pages}): {type(page_data).__name__}"
                )
            yield page_data

    def paginate(
        self,
        endpoint: str,
        params: Optional[Dict] = None,
        max_items: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> List:
        """
        Paginate through GitHub API results.

        Args:
            endpoint: API endpoint path
            params: Base query parameters
            max_items: Stop once this many items are collected
            max_pages: Stop after this many pages

        Returns:
            List: Combined results from all pages
        """
        results: List = []
        for page in self.iter_pages(endpoint, params=params, max_pages=max_pages):
            results.extend(page)
            if max_items is not None and len(results) >= max_items:
                results = results[:max_items]
                break

        logger.debug(f"Pagination complete for {endpoint}: retrieved {len(results)} items")
        return results

    def search_repositories(
        self, query: str, per_page: int = MAX_PER_PAGE, cursor: Optional[str] = None
    ) -> SearchPage:
        """
        Fetch one page of repository search results, most recently updated first.

        Args:
            query: GitHub search query
            per_page: Number of results per page (at most 100)
            cursor: Opaque cursor from a previous page; None for the first page

        Returns:
            SearchPage: Decoded items and the cursor of the following page

        Raises:
            DecodeError: If the response or any item is malformed
        """
        if cursor is None:
            params = {
                "q": query,
                "sort": "updated",
                "order": "desc",
                "per_page": min(per_page, MAX_PER_PAGE),
            }
            data, next_cursor = self.request_page("/search/repositories", params=params)
        else:
            data, next_cursor = self.request_page(cursor)

        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise DecodeError(f"Search response for {query!r} lacks an items list")

        items = [RepoItem.from_api(entry) for entry in data["items"]]
        logger.debug(f"Search page for {query!r}: {len(items)} items, next={'yes' if next_cursor else 'no'}")
        return SearchPage(
            items=items,
            next_cursor=next_cursor,
            total_count=int(data.get("total_count") or 0),
        )
