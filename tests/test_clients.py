"""
Tests for the GitHub and registry HTTP clients.
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
import requests

from infrastructure.github_client import GitHubClient, GitHubQueryError
from infrastructure.registry_clients import (
    NpmRegistryClient,
    PyPIClient,
    RegistryResolutionError,
)


def make_response(payload=None, status=200):
    response = Mock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    return response


def make_session(response):
    session = Mock()
    session.headers = {}
    session.post.return_value = response
    session.get.return_value = response
    return session


class TestGitHubClient:
    """Test GitHubClient."""

    def test_requires_token(self, monkeypatch):
        """Test that a missing token raises error."""
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with pytest.raises(ValueError, match="GitHub token required"):
            GitHubClient()

    def test_token_from_environment(self, monkeypatch):
        """Test that GITHUB_TOKEN is used when no token is passed."""
        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        session = make_session(make_response({}))

        client = GitHubClient(session=session, per_page=500)

        assert session.headers["Authorization"] == "Bearer env-token"
        assert client.per_page == 100

    def test_list_repositories(self):
        """Test parsing of a repository listing page."""
        session = make_session(make_response({
            "data": {
                "organization": {
                    "repositories": {
                        "pageInfo": {"hasNextPage": True, "endCursor": "c2"},
                        "edges": [{"cursor": "c1"}, {"cursor": "c2"}],
                    }
                },
                "rateLimit": {"remaining": 4999, "resetAt": "2024-01-01T13:00:00Z"},
            }
        }))
        client = GitHubClient(token="t", session=session)

        page = client.list_repositories("acme", "c0")

        assert page.cursors == ["c1", "c2"]
        assert page.end_cursor == "c2"
        assert page.has_next_page is True
        assert page.rate_limit_remaining == 4999
        assert page.rate_limit_reset_at == datetime(2024, 1, 1, 13, tzinfo=timezone.utc)
        variables = session.post.call_args.kwargs["json"]["variables"]
        assert variables == {"org": "acme", "cursor": "c0", "perPage": 100}

    def test_unknown_organisation(self):
        """Test that a null organisation raises error."""
        session = make_session(make_response({"data": {"organization": None}}))
        client = GitHubClient(token="t", session=session)

        with pytest.raises(GitHubQueryError, match="not found"):
            client.list_repositories("nobody")

    def test_graphql_errors(self):
        """Test that a GraphQL errors payload raises error."""
        session = make_session(make_response({"errors": [{"message": "bad query"}]}))
        client = GitHubClient(token="t", session=session)

        with pytest.raises(GitHubQueryError, match="bad query"):
            client.fetch_dependencies("acme", None, 3)

    def test_http_error(self):
        """Test that HTTP errors are wrapped."""
        session = make_session(make_response({}, status=502))
        client = GitHubClient(token="t", session=session)

        with pytest.raises(GitHubQueryError):
            client.fetch_dependencies("acme", None, 3)

    def test_fetch_dependencies(self):
        """Test that repository nodes are returned in order."""
        nodes = [{"mainBranch": None}, {"masterBranch": {"repository": {"name": "r"}}}]
        session = make_session(make_response({
            "data": {
                "organization": {
                    "repositories": {
                        "edges": [{"cursor": "c1", "node": nodes[0]},
                                  {"cursor": "c2", "node": nodes[1]}],
                    }
                }
            }
        }))
        client = GitHubClient(token="t", session=session)

        assert client.fetch_dependencies("acme", "c0", 2) == nodes
        variables = session.post.call_args.kwargs["json"]["variables"]
        assert variables == {"org": "acme", "cursor": "c0", "perPage": 2}


class TestNpmRegistryClient:
    """Test NpmRegistryClient."""

    def test_latest_version(self):
        """Test reading the latest version."""
        session = make_session(make_response({"name": "left-pad", "version": "1.3.0"}))

        version = NpmRegistryClient(session=session).latest_version("left-pad")

        assert version == "1.3.0"
        assert session.get.call_args.args[0] == "https://registry.npmjs.org/left-pad/latest"

    def test_scoped_package_url(self):
        """Test that scoped names keep the scope and escape the slash."""
        session = make_session(make_response({"version": "20.0.0"}))

        NpmRegistryClient(session=session).latest_version("@types/node")

        assert session.get.call_args.args[0] == "https://registry.npmjs.org/@types%2Fnode/latest"

    def test_not_found(self):
        """Test that a 404 raises RegistryResolutionError."""
        session = make_session(make_response({}, status=404))

        with pytest.raises(RegistryResolutionError) as exc_info:
            NpmRegistryClient(session=session).latest_version("nope")

        assert exc_info.value.package == "nope"
        assert "404" in str(exc_info.value)

    def test_transport_error(self):
        """Test that connection errors raise RegistryResolutionError."""
        session = make_session(None)
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(RegistryResolutionError, match="refused"):
            NpmRegistryClient(session=session).latest_version("left-pad")


class TestPyPIClient:
    """Test PyPIClient."""

    def test_releases(self):
        """Test reading release strings."""
        session = make_session(make_response({
            "info": {"name": "requests", "version": "2.31.0"},
            "releases": {"2.30.0": [], "2.31.0": []},
        }))

        project = PyPIClient(session=session).releases("requests")

        assert project.name == "requests"
        assert project.current_version == "2.31.0"
        assert project.releases == ["2.30.0", "2.31.0"]
        assert session.get.call_args.args[0] == "https://pypi.org/pypi/requests/json"
        assert session.headers["User-Agent"].startswith("org-dep-scraper")

    def test_unexpected_payload(self):
        """Test that a non-object payload raises error."""
        session = make_session(make_response(["nope"]))

        with pytest.raises(RegistryResolutionError, match="unexpected"):
            PyPIClient(session=session).releases("requests")
