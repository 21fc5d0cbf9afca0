"""
Cursor pagination over an organisation's repositories and concurrent
batched fetching of their manifests.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from core.entities import FetchOutcome
from infrastructure.github_client import GitHubClient
from infrastructure.rate_limiting import QuotaExceeded

logger = logging.getLogger(__name__)

# The minimum amount of GitHub points needed to keep scraping an organisation
MINIMUM_GITHUB_POINTS = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CursorPager:
    """
    Walks the repository listing page by page, collecting every cursor.
    Each request depends on the previous page's end cursor, so the loop is
    strictly sequential.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        organisation: str,
        minimum_quota: int = MINIMUM_GITHUB_POINTS,
        now: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            github_client: GitHub API client
            organisation: Organisation login
            minimum_quota: Abort once the remaining quota drops below this
            now: Time source used to compute the quota wait
        """
        self.github = github_client
        self.organisation = organisation
        self.minimum_quota = minimum_quota
        self._now = now

    def list_cursors(self) -> List[str]:
        """
        Collect the cursor of every repository in listing order.

        Returns:
            Cursors in retrieval order

        Raises:
            QuotaExceeded: If the remaining quota drops below minimum_quota
        """
        cursors: List[str] = []
        cursor: Optional[str] = None

        while True:
            page = self.github.list_repositories(self.organisation, cursor)
            cursors.extend(page.cursors)

            logger.info(
                f"Collected {len(cursors):,} repository cursors. "
                f"Rate limit: {page.rate_limit_remaining} remaining, "
                f"resets at {page.rate_limit_reset_at}"
            )

            if page.rate_limit_remaining < self.minimum_quota:
                # The reset time may already be in the past
                wait_seconds = abs(
                    (page.rate_limit_reset_at - self._now()).total_seconds()
                )
                raise QuotaExceeded(wait_seconds, page.rate_limit_remaining)

            if not page.has_next_page:
                break
            cursor = page.end_cursor

        return cursors


class BatchFetcher:
    """
    Fetches groups of repositories concurrently.

    Cursors are split into contiguous groups of batch_size. A group is
    identified by its first cursor (its anchor) and fetched with one request
    for the batch_size repositories following the previous cursor. A failing
    group is logged and recorded; it never affects its siblings.
    """

    def __init__(
        self,
        fetch_page: Callable[[Optional[str], int], Any],
        batch_size: int = 3,
        max_workers: Optional[int] = None,
    ):
        """
        Args:
            fetch_page: Callable(after_cursor, count) returning one response
            batch_size: Number of repositories per request
            max_workers: Cap on concurrent requests (default: one per group)
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.fetch_page = fetch_page
        self.batch_size = batch_size
        self.max_workers = max_workers

    def fetch_batches(self, cursors: List[str]) -> FetchOutcome:
        """
        Issue one request per group and wait for all of them to settle.

        Args:
            cursors: Repository cursors in listing order

        Returns:
            FetchOutcome with successful responses in group order and the
            anchors of the failed groups
        """
        outcome = FetchOutcome()
        starts = range(0, len(cursors), self.batch_size)
        if not starts:
            return outcome

        workers = self.max_workers or len(starts)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                (
                    cursors[start],
                    executor.submit(
                        self.fetch_page,
                        cursors[start - 1] if start else None,
                        self.batch_size,
                    ),
                )
                for start in starts
            ]

            for anchor, future in futures:
                try:
                    outcome.successes.append(future.result())
                except Exception as e:
                    logger.error(f"Failed to fetch batch starting at {anchor}: {e}")
                    outcome.failed_groups.append(anchor)

        logger.info(
            f"Fetched {len(outcome.successes)} of {len(futures)} batches"
        )
        return outcome
