"""
Core domain entities for OrgDepScraper.
These represent the business objects passed between pipeline stages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class PackageManager(Enum):
    """
    Package managers whose manifests are recognised.

    Each member carries the manifest file suffixes it owns and the key
    used for it in the output document.
    """
    NPM = ("package.json",), "npm"
    PYPI = ("requirements.txt",), "PyPI"

    def __init__(self, extensions: tuple, output_key: str):
        self.extensions = extensions
        self.output_key = output_key

    def matches(self, path: str) -> bool:
        """Check whether a manifest path belongs to this package manager."""
        return any(path.endswith(ext) for ext in self.extensions)


@dataclass
class RepositoryPage:
    """
    One page of the organisation's repository listing.
    """
    cursors: List[str]
    end_cursor: Optional[str]
    has_next_page: bool
    rate_limit_remaining: int
    rate_limit_reset_at: datetime


@dataclass
class DeclaredDependency:
    """A dependency as declared in a manifest file."""
    package_name: str
    requirement: str = ""

    def __post_init__(self):
        if not self.package_name:
            raise ValueError("package_name is required")


@dataclass
class ManifestEntry:
    """
    A single manifest file found on a repository's default branch.
    """
    sub_path: str
    blob_path: str
    declared_version: str = ""
    dependencies: List[DeclaredDependency] = field(default_factory=list)


def empty_buckets() -> Dict[PackageManager, List[ManifestEntry]]:
    return {manager: [] for manager in PackageManager}


@dataclass
class RepositoryManifests:
    """
    Manifests of one repository grouped by package manager.
    Every PackageManager member has a (possibly empty) bucket.
    """
    name: str
    url: str
    is_archived: bool = False
    buckets: Dict[PackageManager, List[ManifestEntry]] = field(
        default_factory=empty_buckets
    )

    def has_manifests(self) -> bool:
        return any(self.buckets.values())


@dataclass
class RepositoryPackage:
    """
    Repository package entry: one per manifest file, not one per repository.
    """
    name: str
    version: str
    link: str
    is_archived: bool
    dependencies: Dict[str, str] = field(default_factory=dict)


@dataclass
class FetchOutcome:
    """
    Result of a batched fetch. Failed groups are identified by their
    anchor cursor.
    """
    successes: List[Any] = field(default_factory=list)
    failed_groups: List[Optional[str]] = field(default_factory=list)


@dataclass
class ResolutionOutcome:
    """
    Per-package results of a registry resolution run.
    Failed packages map to None in versions and to the error in failures.
    """
    versions: Dict[str, Optional[str]] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def resolved_count(self) -> int:
        return sum(1 for version in self.versions.values() if version is not None)
