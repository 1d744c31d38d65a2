#!/usr/bin/env python3
"""
GitHub File Provider

File-listing collaborator backed by the GitHub REST API.  Answers "which
paths does this repository contain" via the git trees endpoint and "which
paths match this search expression" via code search.

The provider owns one ``requests.Session`` for the duration of a run:

    with GitHubFileProvider.from_config(config) as provider:
        paths = provider.discover_paths("owner/repo", "secrets")

Transport, HTTP and rate-limit failures never escape the public listing
methods: they are classified, logged and reported as "no files found" so a
single failing request does not abort the analysis.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from error_classifier import classify_error
from exceptions import FileListingError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"

# Search expression per analysis intent
INTENT_SEARCH_QUERIES = {
    "secrets": "API_KEY password secret token credential",
    "code-patterns": "SQL injection eval exec dangerous",
}

VULNERABILITY_ISSUE_QUERY = "security vulnerability CVE"


class GitHubFileProvider:
    """GitHub REST client scoped to one analysis run"""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30,
        per_page: int = 10,
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.per_page = per_page
        self.session: Optional[requests.Session] = None

    @classmethod
    def from_config(cls, config: dict) -> "GitHubFileProvider":
        return cls(
            token=config.get("github_token"),
            api_url=config.get("github_api_url") or DEFAULT_API_URL,
            timeout=float(config.get("github_timeout", 30)),
            per_page=int(config.get("search_per_page", 10)),
        )

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def open(self):
        if self.session is not None:
            return
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/vnd.github+json"})
        if self.token:
            self.session.headers["Authorization"] = f"Bearer {self.token}"
        else:
            logger.info("No GITHUB_TOKEN set; unauthenticated requests are heavily rate limited")

    def close(self):
        if self.session is not None:
            self.session.close()
            self.session = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET ``path`` and return the decoded JSON body.

        Raises:
            FileListingError: On transport errors, non-2xx responses
                (including rate limiting) and undecodable bodies
        """
        if self.session is None:
            raise FileListingError("GitHubFileProvider is not open. Use it as a context manager.")

        url = f"{self.api_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise FileListingError(f"GitHub request failed: {type(e).__name__}: {e}") from e

        if response.status_code in (403, 429) and response.headers.get("X-RateLimit-Remaining") == "0":
            raise FileListingError(
                f"GitHub API rate limit exceeded (resets at {response.headers.get('X-RateLimit-Reset', 'unknown')})",
                status_code=429,
            )
        if response.status_code >= 400:
            raise FileListingError(
                f"GitHub API returned {response.status_code} for {path}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise FileListingError(f"GitHub API returned invalid JSON for {path}") from e

    def _degrade(self, operation: str, error: FileListingError):
        classified = classify_error(error, source="github")
        logger.warning(
            "%s failed (%s, retryable=%s): %s; continuing with no results",
            operation,
            classified.error_type,
            classified.retryable,
            error,
        )

    # ------------------------------------------------------------------
    # Listing operations
    # ------------------------------------------------------------------

    def search_paths(self, repository: str, query: str) -> List[str]:
        """Paths in *repository* matching the code-search *query*"""
        params = {"q": f"repo:{repository} {query}", "per_page": self.per_page}
        try:
            data = self._get("/search/code", params)
        except FileListingError as e:
            self._degrade(f"Code search in {repository}", e)
            return []

        paths = [item["path"] for item in data.get("items", []) if item.get("path")]
        logger.debug("Code search in %s returned %d paths", repository, len(paths))
        return paths

    def get_repository(self, repository: str) -> Dict[str, Any]:
        """Repository metadata, or an empty dict when unavailable"""
        try:
            return self._get(f"/repos/{repository}")
        except FileListingError as e:
            self._degrade(f"Repository lookup for {repository}", e)
            return {}

    def list_tree(self, repository: str, ref: Optional[str] = None) -> List[str]:
        """Every blob path in *repository* at *ref* (default branch if omitted)"""
        if ref is None:
            ref = self.get_repository(repository).get("default_branch")
            if not ref:
                return []

        try:
            data = self._get(f"/repos/{repository}/git/trees/{ref}", {"recursive": "1"})
        except FileListingError as e:
            self._degrade(f"Tree listing for {repository}@{ref}", e)
            return []

        if data.get("truncated"):
            logger.warning("Tree listing for %s was truncated by GitHub; some files are missing", repository)
        return [entry["path"] for entry in data.get("tree", []) if entry.get("type") == "blob"]

    def search_issues(self, repository: str, query: str = VULNERABILITY_ISSUE_QUERY) -> List[Dict[str, Any]]:
        """Issues in *repository* matching *query*, as raw API items"""
        params = {"q": f"repo:{repository} {query}", "per_page": self.per_page}
        try:
            data = self._get("/search/issues", params)
        except FileListingError as e:
            self._degrade(f"Issue search in {repository}", e)
            return []
        return data.get("items", [])

    def discover_issues(self, repository: str, analysis_intent: str = "default") -> List[Dict[str, Any]]:
        """Security issues worth passing on as analysis data for *analysis_intent*.

        Only the ``vulnerabilities`` intent searches issues; every other
        intent returns an empty list without a request.
        """
        if analysis_intent != "vulnerabilities":
            return []
        issues = self.search_issues(repository)
        logger.info("Found %d security-related issues in %s", len(issues), repository)
        return issues

    def discover_paths(self, repository: str, analysis_intent: str = "default") -> List[str]:
        """Candidate paths for *analysis_intent*, de-duplicated in first-seen order.

        The full tree is always listed; intents with a search expression add
        the code-search hits on top (search can surface paths from a
        truncated tree listing).
        """
        paths = self.list_tree(repository)
        query = INTENT_SEARCH_QUERIES.get(analysis_intent)
        if query:
            paths = paths + self.search_paths(repository, query)

        unique = list(dict.fromkeys(paths))
        logger.info("Discovered %d paths in %s", len(unique), repository)
        return unique


def summarize_issue(item: Dict[str, Any]) -> Dict[str, Any]:
    """Compact view of a raw issue-search item for prompts and reports"""
    return {
        "number": item.get("number"),
        "title": item.get("title", ""),
        "state": item.get("state", ""),
        "url": item.get("html_url", ""),
        "labels": [label.get("name", "") for label in item.get("labels") or [] if isinstance(label, dict)],
    }
