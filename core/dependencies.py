"""
Cross-repository deduplication of declared packages and assembly of the
final dependency tree.
"""

from typing import Dict, List, Mapping, Optional

from core.entities import PackageManager, RepositoryPackage


def merge_dependencies(
    packages_by_manager: Mapping[PackageManager, List[RepositoryPackage]],
) -> Dict[PackageManager, List[str]]:
    """
    Collect the distinct package names declared for each package manager.

    Names keep the order in which they were first seen.
    """
    merged = {}
    for manager in PackageManager:
        names = {}
        for package in packages_by_manager.get(manager, []):
            names.update(dict.fromkeys(package.dependencies))
        merged[manager] = list(names)
    return merged


def _serialize(
    package: RepositoryPackage,
    versions: Mapping[str, Optional[str]],
) -> dict:
    return {
        "name": package.name,
        "version": package.version,
        "link": package.link,
        "isArchived": package.is_archived,
        "dependencies": {
            name: versions.get(name) for name in package.dependencies
        },
    }


def assemble_tree(
    packages_by_manager: Mapping[PackageManager, List[RepositoryPackage]],
    npm_versions: Optional[Mapping[str, Optional[str]]] = None,
    pypi_versions: Optional[Mapping[str, Optional[str]]] = None,
) -> dict:
    """
    Join resolved versions onto every repository package.

    Unresolved package names are kept with a None version.

    Args:
        packages_by_manager: Repository packages per package manager
        npm_versions: Resolved npm versions by package name
        pypi_versions: Resolved PyPI versions by package name

    Returns:
        Output document with "npm" and "PyPI" lists in input order
    """
    versions = {
        PackageManager.NPM: npm_versions or {},
        PackageManager.PYPI: pypi_versions or {},
    }

    return {
        manager.output_key: [
            _serialize(package, versions[manager])
            for package in packages_by_manager.get(manager, [])
        ]
        for manager in PackageManager
    }
