"""Tests for the GitHub client and the repository analyzer tool.

Uses mocked HTTP responses (respx) to avoid real GitHub API calls.
"""

import time
from unittest.mock import patch

import pytest
import respx
from httpx import Response

from app.models.contributor import CreditAction
from app.services.github_client import GitHubClient, GitHubError, GitHubRepoAnalyzer, parse_repo_url

API = "https://api.github.com/repos/acme/widgets"


def _commits(count: int, message: str = "feat: implement a meaningful change") -> list[dict]:
    return [
        {
            "sha": f"sha{i}",
            "commit": {"message": f"{message} {i}", "author": {"date": f"2025-0{1 + i % 9}-1{i % 9}T10:00:00Z"}},
        }
        for i in range(count)
    ]


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("github.com/acme/widgets", ("acme", "widgets")),
        ("https://github.com/acme/widgets.git", ("acme", "widgets")),
        ("http://www.github.com/Acme/Widgets/tree/main", ("Acme", "Widgets")),
    ],
)
def test_parse_repo_url(url, expected):
    assert parse_repo_url(url) == expected


def test_parse_repo_url_rejects_other_hosts():
    with pytest.raises(ValueError, match="Invalid GitHub repository URL"):
        parse_repo_url("gitlab.com/acme/widgets")


@respx.mock
def test_client_sends_agent_headers_and_token():
    route = respx.get(API).mock(return_value=Response(200, json={"name": "widgets"}))

    data = GitHubClient(token="test-token-123").get_repo("acme", "widgets")

    assert data["name"] == "widgets"
    request = route.calls[0].request
    assert request.headers["user-agent"] == "gitsplits-agent/1.0"
    assert request.headers["authorization"] == "Bearer test-token-123"
    assert request.headers["accept"] == "application/vnd.github+json"


@respx.mock
def test_client_reads_token_from_env(monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("GH_TOKEN", " env-token ")
    route = respx.get(API).mock(return_value=Response(200, json={}))

    GitHubClient().get_repo("acme", "widgets")

    assert route.calls[0].request.headers["authorization"] == "Bearer env-token"


@respx.mock
def test_client_etag_caching():
    """Second request sends If-None-Match and a 304 is served from cache."""
    route = respx.get(API).mock(
        return_value=Response(200, json={"name": "widgets", "version": 1}, headers={"ETag": '"abc123"'})
    )
    client = GitHubClient()
    assert client.get_repo("acme", "widgets")["version"] == 1

    route.mock(return_value=Response(304, json={}))

    assert client.get_repo("acme", "widgets")["version"] == 1
    assert route.calls[1].request.headers["if-none-match"] == '"abc123"'


@respx.mock
def test_client_refetches_when_304_has_no_cached_body():
    route = respx.get(API)
    route.mock(
        side_effect=[
            Response(200, json={"version": 1}, headers={"ETag": '"abc123"'}),
            Response(304, json={}),
            Response(200, json={"version": 2}),
        ]
    )
    client = GitHubClient()
    client.get_repo("acme", "widgets")
    client._json_cache_by_url.clear()

    assert client.get_repo("acme", "widgets")["version"] == 2
    assert len(route.calls) == 3


@respx.mock
def test_client_sleeps_and_retries_when_rate_limited():
    route = respx.get(API)
    route.mock(
        side_effect=[
            Response(
                403,
                json={"message": "API rate limit exceeded"},
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(int(time.time()) + 2)},
            ),
            Response(200, json={"name": "widgets"}),
        ]
    )

    with patch("time.sleep") as mock_sleep:
        data = GitHubClient().get_repo("acme", "widgets")

    assert mock_sleep.called
    assert mock_sleep.call_args[0][0] > 0
    assert data["name"] == "widgets"
    assert len(route.calls) == 2


@respx.mock
def test_client_error_carries_status():
    respx.get("https://api.github.com/repos/acme/missing").mock(
        return_value=Response(404, json={"message": "Not Found"})
    )

    with pytest.raises(GitHubError) as exc_info:
        GitHubClient().get_repo("acme", "missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.rate_limited is False
    assert "GitHub API error 404" in str(exc_info.value)


def test_error_flags_rate_limit_statuses():
    assert GitHubError(429, "u").rate_limited
    assert GitHubError(403, "u").rate_limited


@respx.mock
def test_list_contributors_paginates_and_caps_pages():
    route = respx.get(f"{API}/contributors").mock(
        return_value=Response(200, json=[{"login": f"user{i}", "contributions": 1} for i in range(100)])
    )

    contributors = GitHubClient().list_contributors("acme", "widgets", per_page=100, max_pages=3)

    assert len(contributors) == 300
    assert len(route.calls) == 3


@respx.mock
def test_list_contributors_stops_on_non_list():
    respx.get(f"{API}/contributors").mock(return_value=Response(200, json={"message": "Some error"}))

    assert GitHubClient().list_contributors("acme", "widgets") == []


@respx.mock
def test_list_commits_filters_by_since_and_author():
    since = "2026-02-01T00:00:00Z"
    first = respx.get(f"{API}/commits", params={"since": since, "author": "alice", "page": "1"}).mock(
        return_value=Response(200, json=[{"sha": f"sha{i}"} for i in range(100)])
    )
    second = respx.get(f"{API}/commits", params={"since": since, "author": "alice", "page": "2"}).mock(
        return_value=Response(200, json=[{"sha": f"sha{i}"} for i in range(30)])
    )

    commits = GitHubClient().list_commits("acme", "widgets", since_iso_utc=since, author="alice")

    assert len(commits) == 130
    assert first.call_count == 1
    assert second.call_count == 1
    assert first.calls[0].request.url.params["per_page"] == "100"


@respx.mock
def test_analyzer_builds_shares_and_quality_decisions():
    respx.get(f"{API}/contributors").mock(
        return_value=Response(
            200,
            json=[
                {"login": "bob", "contributions": 1},
                {"login": "alice", "contributions": 3},
                {"login": "renovate[bot]", "contributions": 0},
            ],
        )
    )
    respx.get(f"{API}/commits", params={"author": "alice"}).mock(return_value=Response(200, json=_commits(3)))
    respx.get(f"{API}/commits", params={"author": "bob"}).mock(return_value=Response(500, text="boom"))

    analysis = GitHubRepoAnalyzer(client=GitHubClient()).analyze("https://github.com/acme/widgets.git")

    assert analysis.repo_url == "github.com/acme/widgets"
    assert [(c.username, c.commits, c.percentage) for c in analysis.contributors] == [
        ("alice", 3, 75.0),
        ("bob", 1, 25.0),
    ]
    assert [d.username for d in analysis.quality_decisions] == ["alice"]
    assert analysis.quality_decisions[0].credit_action in set(CreditAction)


def test_analyzer_only_samples_top_contributors():
    with respx.mock(assert_all_called=False) as mock:
        mock.get(f"{API}/contributors").mock(
            return_value=Response(
                200, json=[{"login": "alice", "contributions": 3}, {"login": "bob", "contributions": 1}]
            )
        )
        alice = mock.get(f"{API}/commits", params={"author": "alice"}).mock(return_value=Response(200, json=[]))
        bob = mock.get(f"{API}/commits", params={"author": "bob"}).mock(return_value=Response(200, json=[]))

        analysis = GitHubRepoAnalyzer(client=GitHubClient(), quality_sample=1).analyze("github.com/acme/widgets")

    assert alice.called
    assert not bob.called
    assert len(analysis.quality_decisions) == 1
    assert analysis.quality_decisions[0].credit_action == CreditAction.PARTIAL_CREDIT


def test_analyzer_rejects_bad_url():
    with pytest.raises(ValueError):
        GitHubRepoAnalyzer(client=GitHubClient()).analyze("not a repo")
