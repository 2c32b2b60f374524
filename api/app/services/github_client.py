"""GitHub API client and repository analyzer.

REST wrapper with:
- optional token auth (GITHUB_TOKEN)
- rate-limit handling (sleep until reset when exhausted)
- basic ETag conditional requests + in-memory response cache
"""

from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Optional
from urllib.parse import quote

import httpx

from app.models.contributor import QualityDecision
from app.models.split import RepoAnalysis, RepoContributor
from app.services.allocation_service import contributors_from_commit_counts
from app.services.contribution_quality_service import QualitySettings, evaluate_contributor_quality

logger = logging.getLogger(__name__)

_REPO_URL = re.compile(r"github\.com/([^/\s]+)/([^/\s]+)", re.IGNORECASE)


class GitHubError(RuntimeError):
    def __init__(self, status_code: int, url: str, body: str = "") -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"GitHub API error {status_code} for {url}: {body[:200]}")

    @property
    def rate_limited(self) -> bool:
        return self.status_code in (403, 429)


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """``github.com/owner/repo`` (any scheme, optional ``.git``) -> ``(owner, repo)``."""
    match = _REPO_URL.search(str(repo_url or ""))
    if not match:
        raise ValueError("Invalid GitHub repository URL")
    owner, repo = match.group(1), match.group(2)
    if repo.lower().endswith(".git"):
        repo = repo[:-4]
    return owner, repo


class GitHubClient:
    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        user_agent: str = "gitsplits-agent/1.0",
        timeout: float = 20.0,
    ) -> None:
        env_token = os.getenv("GITHUB_TOKEN")
        if not env_token:
            env_token = os.getenv("GH_TOKEN")
        if env_token:
            env_token = env_token.strip() or None
        self._token = token or env_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"

        # Per-process caches, cleared on restart
        self._etag_by_url: dict[str, str] = {}
        self._json_cache_by_url: dict[str, Any] = {}

    def _sleep_for_rate_limit_if_needed(self, r: httpx.Response) -> None:
        remaining = r.headers.get("X-RateLimit-Remaining")
        reset = r.headers.get("X-RateLimit-Reset")
        try:
            rem_i = int(remaining) if remaining is not None else None
            reset_i = int(reset) if reset is not None else None
        except ValueError:
            rem_i, reset_i = None, None

        if rem_i == 0 and reset_i:
            delay = max(0, reset_i - int(time.time())) + 1
            logger.warning("GitHub rate limit exhausted; sleeping %ss", delay)
            time.sleep(delay)

    def _request(self, method: str, url: str, headers: dict[str, str] | None = None) -> httpx.Response:
        h = dict(self._headers)
        if headers:
            h.update(headers)
        with httpx.Client(timeout=self._timeout, headers=h) as client:
            r = client.request(method, url)
        self._sleep_for_rate_limit_if_needed(r)

        # Rate-limited 403: retry once after the reset window.
        if r.status_code == 403 and r.headers.get("X-RateLimit-Remaining") == "0":
            with httpx.Client(timeout=self._timeout, headers=h) as client:
                r = client.request(method, url)
        return r

    def get_json(self, path: str) -> Any:
        """GET JSON for a path or full URL. Uses ETag conditional requests when possible."""
        url = path if path.startswith("http") else f"{self._base_url}{path}"

        extra_headers: dict[str, str] = {}
        etag = self._etag_by_url.get(url)
        if etag:
            extra_headers["If-None-Match"] = etag

        r = self._request("GET", url, headers=extra_headers)

        if r.status_code == 304:
            if url in self._json_cache_by_url:
                return self._json_cache_by_url[url]
            r = self._request("GET", url, headers={})

        if r.status_code >= 400:
            raise GitHubError(r.status_code, url, r.text)

        new_etag = r.headers.get("ETag")
        if new_etag:
            self._etag_by_url[url] = new_etag

        data = r.json()
        self._json_cache_by_url[url] = data
        return data

    def get_repo(self, owner: str, repo: str) -> dict:
        return self.get_json(f"/repos/{owner}/{repo}")

    def list_contributors(self, owner: str, repo: str, per_page: int = 100, max_pages: int = 5) -> list[dict]:
        """List contributors. Caps pages to avoid runaway API usage."""
        out: list[dict] = []
        for page in range(1, max_pages + 1):
            data = self.get_json(
                f"/repos/{owner}/{repo}/contributors?per_page={per_page}&page={page}&anon=false"
            )
            if not isinstance(data, list):
                break
            out.extend(data)
            if len(data) < per_page:
                break
        return out

    def list_commits(
        self,
        owner: str,
        repo: str,
        since_iso_utc: Optional[str] = None,
        author: Optional[str] = None,
        per_page: int = 100,
        max_pages: int = 3,
    ) -> list[dict]:
        """List commits, optionally since an ISO-8601 UTC timestamp and/or for one author login."""
        query = f"per_page={per_page}"
        if since_iso_utc:
            query += f"&since={since_iso_utc}"
        if author:
            query += f"&author={quote(author)}"
        out: list[dict] = []
        for page in range(1, max_pages + 1):
            data = self.get_json(f"/repos/{owner}/{repo}/commits?{query}&page={page}")
            if not isinstance(data, list):
                break
            out.extend(data)
            if len(data) < per_page:
                break
        return out


class GitHubRepoAnalyzer:
    """The ``github`` tool: contributor shares plus per-contributor quality decisions.

    Quality is sampled for the top ``quality_sample`` contributors only, one
    page of commits each. A commit fetch that fails leaves that contributor
    without a decision.
    """

    name = "github"

    def __init__(
        self,
        client: GitHubClient | None = None,
        quality_settings: QualitySettings | None = None,
        quality_sample: int = 10,
        commits_per_contributor: int = 100,
    ) -> None:
        self.client = client or GitHubClient()
        self.quality_settings = quality_settings or QualitySettings()
        self.quality_sample = quality_sample
        self.commits_per_contributor = commits_per_contributor

    def analyze(self, repo_url: str) -> RepoAnalysis:
        owner, repo = parse_repo_url(repo_url)
        normalized = f"github.com/{owner}/{repo}"
        rows = [r for r in self.client.list_contributors(owner, repo) if isinstance(r, dict)]
        rows.sort(key=lambda r: int(r.get("contributions") or 0), reverse=True)

        commits_by_login = {
            str(r.get("login")): int(r.get("contributions") or 0) for r in rows if r.get("login")
        }
        contributors = [
            RepoContributor(
                username=share.username,
                commits=commits_by_login.get(share.username, 0),
                percentage=share.percentage,
            )
            for share in contributors_from_commit_counts(rows)
        ]
        logger.info("Analyzed %s: %d contributors", normalized, len(contributors))

        decisions: list[QualityDecision] = []
        for contributor in contributors[: self.quality_sample]:
            try:
                commits = self.client.list_commits(
                    owner,
                    repo,
                    author=contributor.username,
                    per_page=self.commits_per_contributor,
                    max_pages=1,
                )
            except (GitHubError, httpx.HTTPError) as exc:
                logger.warning("Skipping quality for %s on %s: %s", contributor.username, normalized, exc)
                continue
            decisions.append(
                evaluate_contributor_quality(
                    contributor.username, contributor.commits, commits, self.quality_settings
                )
            )

        return RepoAnalysis(repo_url=normalized, contributors=contributors, quality_decisions=decisions)
