"""
GitHub GraphQL API client for listing an organisation's repositories and
reading their dependency graph manifests.
"""

import logging
import os
from datetime import datetime
from typing import List, Optional

import requests

from core.entities import RepositoryPage

logger = logging.getLogger(__name__)


class GitHubQueryError(Exception):
    """Raised when GitHub returns an HTTP error or a GraphQL errors payload."""


def parse_timestamp(value: str) -> datetime:
    """Parse a GitHub ISO-8601 timestamp ("...Z") into an aware datetime."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GitHubClient:
    """
    Client for GitHub's GraphQL API.
    Handles authentication and the two organisation queries used by the
    scraper. Requests are never retried.
    """

    GRAPHQL_ENDPOINT = "https://api.github.com/graphql"

    # Dependency graph manifests are still behind a preview media type
    ACCEPT = "application/vnd.github.hawkgirl-preview+json"

    REPOSITORIES_QUERY = """
    query OrganisationRepositories($org: String!, $cursor: String, $perPage: Int!) {
      organization(login: $org) {
        repositories(first: $perPage, after: $cursor) {
          pageInfo {
            hasNextPage
            endCursor
          }
          edges {
            cursor
          }
        }
      }
      rateLimit {
        remaining
        resetAt
      }
    }
    """

    DEPENDENCIES_QUERY = """
    fragment manifests on Ref {
      repository {
        name
        url
        isArchived
        manifests: dependencyGraphManifests(first: 100) {
          files: nodes {
            path: filename
            blobPath
            declaredDependencies: dependencies(first: 100) {
              nodes {
                packageName
                requirements
              }
            }
          }
        }
      }
    }

    query OrganisationDependencies($org: String!, $cursor: String, $perPage: Int!) {
      organization(login: $org) {
        repositories(first: $perPage, after: $cursor) {
          edges {
            cursor
            node {
              mainBranch: ref(qualifiedName: "main") {
                ...manifests
              }
              masterBranch: ref(qualifiedName: "master") {
                ...manifests
              }
            }
          }
        }
      }
      rateLimit {
        remaining
        resetAt
      }
    }
    """

    def __init__(
        self,
        token: Optional[str] = None,
        per_page: int = 100,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize GitHub client.

        Args:
            token: GitHub personal access token (or uses GITHUB_TOKEN env var)
            per_page: Number of repositories to list per page (max 100)
            timeout: Per-request timeout in seconds
            session: Optional requests session to reuse
        """
        self.token = token or os.environ.get("GITHUB_TOKEN")
        if not self.token:
            raise ValueError(
                "GitHub token required. Set GITHUB_TOKEN environment variable "
                "or pass token parameter."
            )

        self.per_page = min(per_page, 100)  # GitHub max is 100
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Accept": self.ACCEPT,
        })

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _make_request(self, query: str, variables: dict) -> dict:
        """
        Make a single GraphQL request.

        Args:
            query: GraphQL query string
            variables: Query variables

        Returns:
            The "data" member of the response

        Raises:
            GitHubQueryError: On HTTP errors or a GraphQL errors payload
        """
        try:
            response = self.session.post(
                self.GRAPHQL_ENDPOINT,
                json={"query": query, "variables": variables},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise GitHubQueryError(f"GraphQL request failed: {e}") from e

        if data.get("errors"):
            error_str = "; ".join(e.get("message", "") for e in data["errors"])
            logger.error(f"GraphQL errors: {error_str}")
            raise GitHubQueryError(f"GraphQL query failed: {error_str}")

        return data.get("data") or {}

    def list_repositories(
        self,
        organisation: str,
        cursor: Optional[str] = None,
    ) -> RepositoryPage:
        """
        Fetch one page of repository cursors for an organisation.

        Args:
            organisation: Organisation login
            cursor: End cursor of the previous page

        Returns:
            RepositoryPage with cursors and rate limit info
        """
        variables = {
            "org": organisation,
            "cursor": cursor,
            "perPage": self.per_page,
        }

        logger.debug(
            f"Listing repositories (cursor: {cursor[:20] if cursor else 'None'})"
        )

        data = self._make_request(self.REPOSITORIES_QUERY, variables)

        organization = data.get("organization")
        if organization is None:
            raise GitHubQueryError(f"Organisation {organisation!r} not found")

        repositories = organization["repositories"]
        page_info = repositories["pageInfo"]
        rate_limit = data["rateLimit"]

        return RepositoryPage(
            cursors=[edge["cursor"] for edge in repositories["edges"]],
            end_cursor=page_info.get("endCursor"),
            has_next_page=page_info.get("hasNextPage", False),
            rate_limit_remaining=rate_limit["remaining"],
            rate_limit_reset_at=parse_timestamp(rate_limit["resetAt"]),
        )

    def fetch_dependencies(
        self,
        organisation: str,
        after: Optional[str],
        count: int,
    ) -> List[dict]:
        """
        Fetch dependency graph manifests for count repositories.

        Args:
            organisation: Organisation login
            after: Cursor preceding the first repository wanted (None for the start)
            count: Number of repositories to fetch

        Returns:
            Repository nodes in listing order
        """
        variables = {"org": organisation, "cursor": after, "perPage": count}
        data = self._make_request(self.DEPENDENCIES_QUERY, variables)

        organization = data.get("organization") or {}
        edges = (organization.get("repositories") or {}).get("edges") or []
        return [edge["node"] for edge in edges]
