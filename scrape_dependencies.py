#!/usr/bin/env python3
"""
Main script for OrgDepScraper.
Builds the dependency tree of every repository in a GitHub organisation and
writes it as one JSON document.
"""

import argparse
import logging
import os
import sys

from core.pagination import MINIMUM_GITHUB_POINTS
from core.resolvers import NpmResolver, PyPIResolver
from core.use_cases import (
    BuildDependencyTree,
    ExportDependencyTree,
    ResolveDependencies,
    ScrapeOrganisation,
)
from infrastructure.github_client import GitHubClient
from infrastructure.rate_limiting import QuotaExceeded, TokenBucket
from infrastructure.registry_clients import (
    REGISTRY_RATE_LIMITS,
    NpmRegistryClient,
    PyPIClient,
)

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Build the dependency tree of a GitHub organisation"
    )
    parser.add_argument(
        "--org",
        type=str,
        default=os.environ.get("TARGET_ORGANISATION"),
        help="Organisation login (default: $TARGET_ORGANISATION)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="cachedData.json",
        help="Output JSON file path (default: cachedData.json)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=3,
        help="Repositories per dependency request (default: 3)",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=100,
        help="Repositories per listing page (max 100, default: 100)",
    )
    parser.add_argument(
        "--minimum-quota",
        type=int,
        default=MINIMUM_GITHUB_POINTS,
        help=f"Abort when fewer GitHub points remain (default: {MINIMUM_GITHUB_POINTS})",
    )
    parser.add_argument(
        "--strict-resolution",
        action="store_true",
        help="Fail the run if any registry lookup fails",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not args.org:
        logger.error("No organisation given. Use --org or set TARGET_ORGANISATION.")
        return 2

    try:
        logger.info("=" * 60)
        logger.info("OrgDepScraper - Organisation Dependency Scraper")
        logger.info("=" * 60)
        logger.info(f"Organisation: {args.org}")
        logger.info(f"Batch size: {args.batch_size}")
        logger.info(f"Minimum quota: {args.minimum_quota}")
        logger.info(f"Strict resolution: {args.strict_resolution}")
        logger.info("=" * 60)

        npm_bucket = TokenBucket(**REGISTRY_RATE_LIMITS["npm"])
        pypi_bucket = TokenBucket(**REGISTRY_RATE_LIMITS["pypi"])

        with GitHubClient(per_page=args.page_size) as github, \
                NpmRegistryClient() as npm, PyPIClient() as pypi:
            use_case = BuildDependencyTree(
                scrape=ScrapeOrganisation(
                    github,
                    args.org,
                    batch_size=args.batch_size,
                    minimum_quota=args.minimum_quota,
                ),
                resolve=ResolveDependencies(
                    NpmResolver(npm, npm_bucket, strict=args.strict_resolution),
                    PyPIResolver(pypi, pypi_bucket, strict=args.strict_resolution),
                ),
                token_buckets=[npm_bucket, pypi_bucket],
            )
            document = use_case.execute()

        ExportDependencyTree().execute(document, args.output)

        logger.info("=" * 60)
        logger.info("Summary:")
        logger.info(f"  npm manifests: {len(document['npm']):,}")
        logger.info(f"  PyPI manifests: {len(document['PyPI']):,}")
        logger.info(f"  Output: {args.output}")
        logger.info("=" * 60)
        return 0

    except KeyboardInterrupt:
        logger.info("Scrape interrupted by user. No output written.")
        return 130  # Standard exit code for SIGINT

    except QuotaExceeded as e:
        logger.error(f"{e} Rerun once the quota has reset.")
        return 1

    except Exception as e:
        logger.error(f"Scrape failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
