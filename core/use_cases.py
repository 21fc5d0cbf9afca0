"""
Business logic / use cases for building an organisation's dependency tree.
This layer wires the GitHub scrape, registry resolution and output together.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, List, Optional

from core.dependencies import assemble_tree, merge_dependencies
from core.entities import PackageManager, RepositoryPackage, ResolutionOutcome
from core.manifests import collect_repository_packages
from core.pagination import MINIMUM_GITHUB_POINTS, BatchFetcher, CursorPager
from core.resolvers import NpmResolver, PyPIResolver
from infrastructure.github_client import GitHubClient
from infrastructure.rate_limiting import TokenBucket

logger = logging.getLogger(__name__)

# Pending lookups allowed to remain queued on a bucket when the run ends
MAX_PENDING_ON_EXIT = 100


@dataclass
class ScrapeResult:
    """
    Repository packages found in an organisation.
    """
    packages: Dict[PackageManager, List[RepositoryPackage]]
    repository_count: int = 0
    failed_groups: List[Optional[str]] = field(default_factory=list)


class ScrapeOrganisation:
    """
    Use case for collecting every repository package of an organisation.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        organisation: str,
        batch_size: int = 3,
        minimum_quota: int = MINIMUM_GITHUB_POINTS,
        max_workers: Optional[int] = None,
    ):
        """
        Args:
            github_client: GitHub API client
            organisation: Organisation login
            batch_size: Repositories fetched per dependency request
            minimum_quota: Abort paging below this many remaining API points
            max_workers: Cap on concurrent dependency requests
        """
        self.github = github_client
        self.organisation = organisation
        self.pager = CursorPager(github_client, organisation, minimum_quota)
        self.fetcher = BatchFetcher(
            partial(github_client.fetch_dependencies, organisation),
            batch_size=batch_size,
            max_workers=max_workers,
        )

    def execute(self) -> ScrapeResult:
        """
        Returns:
            ScrapeResult with packages per package manager

        Raises:
            QuotaExceeded: If the GitHub quota runs out while paging
        """
        cursors = self.pager.list_cursors()
        logger.info(f"Fetched {len(cursors):,} repository cursors for {self.organisation}")

        outcome = self.fetcher.fetch_batches(cursors)
        if outcome.failed_groups:
            logger.warning(
                f"Failed to fetch {len(outcome.failed_groups)} batches "
                f"of up to {self.fetcher.batch_size} repositories"
            )

        packages = collect_repository_packages(outcome.successes)
        for manager, entries in packages.items():
            logger.info(f"Found {len(entries):,} {manager.output_key} manifests")

        return ScrapeResult(
            packages=packages,
            repository_count=len(cursors),
            failed_groups=outcome.failed_groups,
        )


class ResolveDependencies:
    """
    Use case for resolving every distinct declared package once.
    """

    def __init__(self, npm_resolver: NpmResolver, pypi_resolver: PyPIResolver):
        self.resolvers = {
            PackageManager.NPM: npm_resolver,
            PackageManager.PYPI: pypi_resolver,
        }

    def execute(
        self,
        packages: Dict[PackageManager, List[RepositoryPackage]],
    ) -> Dict[PackageManager, ResolutionOutcome]:
        names = merge_dependencies(packages)

        outcomes = {}
        for manager, resolver in self.resolvers.items():
            outcomes[manager] = resolver.resolve_all(names[manager])
            logger.info(
                f"Finished {manager.output_key}. "
                f"Resolved {outcomes[manager].resolved_count:,} of {len(names[manager]):,}"
            )
        return outcomes


class BuildDependencyTree:
    """
    Use case running the whole pipeline and producing the output document.
    """

    def __init__(
        self,
        scrape: ScrapeOrganisation,
        resolve: ResolveDependencies,
        token_buckets: List[TokenBucket],
    ):
        """
        Args:
            scrape: Organisation scrape use case
            resolve: Registry resolution use case
            token_buckets: Buckets to drain before finishing
        """
        self.scrape = scrape
        self.resolve = resolve
        self.token_buckets = token_buckets

    def execute(self) -> dict:
        """
        Returns:
            Output document with "npm" and "PyPI" entries
        """
        start_time = time.monotonic()

        scraped = self.scrape.execute()
        outcomes = self.resolve.execute(scraped.packages)

        logger.info("Waiting for all requests to finish")
        for bucket in self.token_buckets:
            bucket.wait_for_shorter_queue(MAX_PENDING_ON_EXIT)

        logger.info(f"Total time: {time.monotonic() - start_time:.1f}s")

        return assemble_tree(
            scraped.packages,
            outcomes[PackageManager.NPM].versions,
            outcomes[PackageManager.PYPI].versions,
        )


class ExportDependencyTree:
    """
    Use case for writing the dependency tree document.
    """

    def execute(self, document: dict, output_path: str = "cachedData.json"):
        """
        Args:
            document: Output document from BuildDependencyTree
            output_path: Path to output file
        """
        logger.info(f"Exporting dependency tree to {output_path}")
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        logger.info("Export completed")
