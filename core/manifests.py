"""
Classification of dependency graph manifests into package manager buckets.
"""

import logging
from typing import Dict, Iterable, List, Optional

from core.entities import (
    DeclaredDependency,
    ManifestEntry,
    PackageManager,
    RepositoryManifests,
    RepositoryPackage,
)

logger = logging.getLogger(__name__)

# Branch references tried in order; "master" is the legacy default name
BRANCH_KEYS = ("defaultBranchRef", "mainBranch", "masterBranch")


def _branch_repository(node: dict) -> Optional[dict]:
    for key in BRANCH_KEYS:
        ref = node.get(key)
        if ref and ref.get("repository"):
            return ref["repository"]
    return None


def _nodes(value) -> list:
    """Accept either a plain list or a GraphQL connection ({"nodes": [...]})."""
    if value is None:
        return []
    if isinstance(value, dict):
        return value.get("nodes") or []
    return list(value)


def _declared_dependencies(file: dict) -> List[DeclaredDependency]:
    dependencies = []
    for dep in _nodes(file.get("declaredDependencies")):
        name = dep.get("packageName")
        if not name:
            continue
        requirement = dep.get("requirement", dep.get("requirements")) or ""
        dependencies.append(DeclaredDependency(name, requirement))
    return dependencies


def extract(node: dict) -> Optional[RepositoryManifests]:
    """
    Sort a repository's manifest files into package manager buckets.

    Args:
        node: Repository node from the dependency query

    Returns:
        RepositoryManifests, or None if the repository has no default branch
    """
    repository = _branch_repository(node)
    if repository is None:
        return None

    manifests = RepositoryManifests(
        name=repository["name"],
        url=repository.get("url", ""),
        is_archived=bool(repository.get("isArchived", False)),
    )

    for file in _nodes((repository.get("manifests") or {}).get("files")):
        path = file.get("path") or ""
        for manager in PackageManager:
            if not manager.matches(path):
                continue

            logger.debug(f"{manifests.name}: {path} -> {manager.name}")
            # Manifests without dependencies are kept to record their existence
            manifests.buckets[manager].append(
                ManifestEntry(
                    sub_path=path,
                    blob_path=file.get("blobPath") or "",
                    dependencies=_declared_dependencies(file),
                )
            )

    return manifests


def to_repository_packages(
    manifests: RepositoryManifests,
) -> Dict[PackageManager, List[RepositoryPackage]]:
    """Build one RepositoryPackage per manifest file."""
    packages = {manager: [] for manager in PackageManager}

    for manager, entries in manifests.buckets.items():
        for entry in entries:
            packages[manager].append(
                RepositoryPackage(
                    name=f"{manifests.name}({entry.sub_path})",
                    version=entry.declared_version,
                    link=manifests.url,
                    is_archived=manifests.is_archived,
                    dependencies={
                        dep.package_name: dep.requirement
                        for dep in entry.dependencies
                    },
                )
            )

    return packages


def collect_repository_packages(
    responses: Iterable[Iterable[dict]],
) -> Dict[PackageManager, List[RepositoryPackage]]:
    """
    Extract repository packages from every fetched page of repository nodes.

    Args:
        responses: Successful batch responses, each a list of repository nodes

    Returns:
        RepositoryPackage entries per package manager, in enumeration order
    """
    packages = {manager: [] for manager in PackageManager}
    skipped = 0

    for nodes in responses:
        for node in nodes:
            manifests = extract(node)
            if manifests is None:
                skipped += 1
                continue
            if not manifests.has_manifests():
                continue

            for manager, entries in to_repository_packages(manifests).items():
                packages[manager].extend(entries)

    if skipped:
        logger.info(f"Skipped {skipped} repositories without a default branch")

    return packages
