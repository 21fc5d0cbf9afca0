"""
Concurrent resolution of package names against their upstream registries.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

from core.entities import ResolutionOutcome
from core.versions import SENTINEL_RELEASE, select_best_version
from infrastructure.rate_limiting import TokenBucket
from infrastructure.registry_clients import (
    NpmRegistryClient,
    PyPIClient,
    RegistryResolutionError,
)

logger = logging.getLogger(__name__)


class RegistryResolver:
    """
    Resolves distinct package names to a usable version.

    Every lookup first takes one token from the registry's bucket; lookups
    run concurrently and are throttled only by the bucket. Failures are
    captured per package unless strict is set, in which case any failure
    fails the whole call.
    """

    registry_name = "registry"

    def __init__(
        self,
        token_bucket: TokenBucket,
        strict: bool = False,
        max_workers: Optional[int] = None,
    ):
        """
        Args:
            token_bucket: Rate limiter shared by every lookup on this registry
            strict: Raise RegistryResolutionError if any lookup fails
            max_workers: Cap on concurrent lookups (default: one per name)
        """
        self.token_bucket = token_bucket
        self.strict = strict
        self.max_workers = max_workers

    def lookup(self, name: str) -> str:
        raise NotImplementedError

    def _resolve(self, name: str) -> str:
        self.token_bucket.wait_for_tokens(1)
        return self.lookup(name)

    def resolve_all(self, names: Iterable[str]) -> ResolutionOutcome:
        """
        Resolve every name once.

        Args:
            names: Distinct package names

        Returns:
            ResolutionOutcome with a version (or None) for every name

        Raises:
            RegistryResolutionError: In strict mode, if any lookup failed
        """
        names = list(dict.fromkeys(names))
        outcome = ResolutionOutcome()
        if not names:
            return outcome

        logger.info(f"Resolving {len(names):,} {self.registry_name} packages")

        with ThreadPoolExecutor(max_workers=self.max_workers or len(names)) as executor:
            futures = [(name, executor.submit(self._resolve, name)) for name in names]

            for name, future in futures:
                try:
                    outcome.versions[name] = future.result()
                except Exception as e:
                    logger.error(f"Failed to resolve {self.registry_name} package {name}: {e}")
                    outcome.versions[name] = None
                    outcome.failures[name] = str(e)

        if outcome.failures:
            logger.warning(
                f"{len(outcome.failures)} of {len(names)} "
                f"{self.registry_name} packages could not be resolved"
            )
            if self.strict:
                failed = ", ".join(sorted(outcome.failures))
                raise RegistryResolutionError(
                    failed, f"{len(outcome.failures)} {self.registry_name} lookups failed"
                )

        return outcome


class NpmResolver(RegistryResolver):
    """Uses the version behind npm's "latest" dist-tag."""

    registry_name = "npm"

    def __init__(self, client: NpmRegistryClient, token_bucket: TokenBucket, **kwargs):
        super().__init__(token_bucket, **kwargs)
        self.client = client

    def lookup(self, name: str) -> str:
        return self.client.latest_version(name)


class PyPIResolver(RegistryResolver):
    """
    PyPI has no reliable "latest" pointer for usable releases, so every
    release string is ranked and the best one picked.
    """

    registry_name = "PyPI"

    def __init__(self, client: PyPIClient, token_bucket: TokenBucket, **kwargs):
        super().__init__(token_bucket, **kwargs)
        self.client = client

    def lookup(self, name: str) -> str:
        project = self.client.releases(name)
        best = select_best_version(project.releases)
        if best == SENTINEL_RELEASE:
            logger.debug(
                f"No usable release for {name} "
                f"(current version reported: {project.current_version})"
            )
        return best
