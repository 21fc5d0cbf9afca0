"""
HTTP clients for the npm registry and PyPI.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

USER_AGENT = "org-dep-scraper/1.0"

# Rate parameters per registry, in tokens per second.
REGISTRY_RATE_LIMITS = {
    # Some sources suggest npm allows up to 5 million requests per month.
    "npm": {
        "capacity": 1000,
        "refill_rate": 5_000_000 / (3600 * 24 * 30),
        "initial_tokens": 250,
    },
    # PyPI has no set rate limit but asks for requests to be spread out,
    # so keep it at 1000 a minute.
    "pypi": {
        "capacity": 1000,
        "refill_rate": 1000 / 60,
        "initial_tokens": 1,
    },
}


class RegistryResolutionError(Exception):
    """Raised when a registry lookup for one package fails."""
    def __init__(self, package: str, reason: str):
        self.package = package
        self.reason = reason
        super().__init__(f"Failed to resolve {package}: {reason}")


@dataclass
class PyPIReleases:
    """Release information of one PyPI project."""
    name: str
    current_version: Optional[str]
    releases: List[str] = field(default_factory=list)


class RegistryClient:
    """
    Base registry client owning a requests session.
    """

    BASE_URL = ""

    def __init__(self, timeout: float = 30, session: Optional[requests.Session] = None):
        """
        Args:
            timeout: Per-request timeout in seconds
            session: Optional requests session to reuse
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        })

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _get_json(self, package: str, url: str) -> dict:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            raise RegistryResolutionError(
                package, f"HTTP {e.response.status_code if e.response is not None else '?'}"
            ) from e
        except (requests.RequestException, ValueError) as e:
            raise RegistryResolutionError(package, str(e)) from e

        if not isinstance(data, dict):
            raise RegistryResolutionError(package, "unexpected response payload")
        return data


class NpmRegistryClient(RegistryClient):
    """Looks up the currently published version of npm packages."""

    BASE_URL = "https://registry.npmjs.org"

    def latest_version(self, package: str) -> str:
        """
        Args:
            package: npm package name, scoped names included

        Returns:
            Version string of the "latest" dist-tag

        Raises:
            RegistryResolutionError: If the lookup fails
        """
        url = f"{self.BASE_URL}/{quote(package, safe='@')}/latest"
        data = self._get_json(package, url)

        version = data.get("version")
        if not version:
            raise RegistryResolutionError(package, "no published version")
        return version


class PyPIClient(RegistryClient):
    """Reads release lists from the PyPI JSON API."""

    BASE_URL = "https://pypi.org/pypi"

    def releases(self, package: str) -> PyPIReleases:
        """
        Args:
            package: PyPI project name

        Returns:
            PyPIReleases with every published release string

        Raises:
            RegistryResolutionError: If the lookup fails
        """
        url = f"{self.BASE_URL}/{quote(package)}/json"
        data = self._get_json(package, url)

        info = data.get("info") or {}
        return PyPIReleases(
            name=info.get("name") or package,
            current_version=info.get("version"),
            releases=list((data.get("releases") or {}).keys()),
        )
