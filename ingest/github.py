"""
Minimal GitHub REST client used by the eligibility validator and the signal aggregator.
Each fetch returns raw JSON; HTTP failures are mapped onto AggregationError subclasses so
that "resource absent" (404) stays distinguishable from rate limiting and outages.
"""
import logging
from typing import List, Dict, Any, Optional
from storage.retry import perform_request_with_retries, is_rate_limited
from errors import NotFound, PlatformUnavailable, RateLimited

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"
PER_PAGE = 100
MAX_PAGES = 30


def raise_for_status(result: Dict[str, Any], url: str):
    """Translate a perform_request_with_retries result into the aggregation error taxonomy."""
    status = int(result.get('status') or 0)
    if 200 <= status < 300:
        return
    body = result.get('response')
    detail = body.get('message') if isinstance(body, dict) else (body or '')
    if status == 404:
        raise NotFound(f"Not found: {url}", status=status, url=url)
    if is_rate_limited(status, result.get('rate_remaining')):
        raise RateLimited(f"Rate limited by platform: {url}", status=status, url=url, retry_after=result.get('retry_after'))
    if status == 0:
        raise PlatformUnavailable(f"Platform unreachable: {url} ({detail})", status=0, url=url)
    raise PlatformUnavailable(f"Platform returned {status} for {url}: {detail}", status=status, url=url)


class GitHubClient:
    """Simple GitHub client to fetch pull requests and the signals around them."""

    def __init__(self, token: Optional[str] = None, base_url: str = None, timeout: Optional[float] = None, max_retries: Optional[int] = None):
        self.token = token
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"

    def _get(self, path: str, params: Dict[str, Any] = None):
        url = f"{self.base_url}{path}"
        res = perform_request_with_retries(url, headers=self.headers, params=params or {}, max_retries=self.max_retries, timeout=self.timeout)
        raise_for_status(res, url)
        return res.get('response')

    def _get_paginated(self, path: str, params: Dict[str, Any] = None, items_key: Optional[str] = None) -> List[Dict[str, Any]]:
        page = 1
        items: List[Dict[str, Any]] = []
        while page <= MAX_PAGES:
            query = dict(params or {})
            query.update({"page": page, "per_page": PER_PAGE})
            data = self._get(path, query)
            if items_key:
                data = (data or {}).get(items_key) if isinstance(data, dict) else []
            if not isinstance(data, list):
                break
            items.extend(data)
            if len(data) < PER_PAGE:
                break
            page += 1
        else:
            logger.debug("Stopped paginating %s after %d pages", path, MAX_PAGES)
        return items

    def _repo_path(self, owner: str, repo: str) -> str:
        return f"/repos/{owner}/{repo}"

    def get_pull_request(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        data = self._get(f"{self._repo_path(owner, repo)}/pulls/{number}")
        if not isinstance(data, dict):
            raise PlatformUnavailable(f"Unexpected pull request payload for {owner}/{repo}#{number}", status=200)
        return data

    def list_files(self, owner: str, repo: str, number: int) -> List[Dict[str, Any]]:
        return self._get_paginated(f"{self._repo_path(owner, repo)}/pulls/{number}/files")

    def list_commits(self, owner: str, repo: str, number: int) -> List[Dict[str, Any]]:
        return self._get_paginated(f"{self._repo_path(owner, repo)}/pulls/{number}/commits")

    def list_reviews(self, owner: str, repo: str, number: int) -> List[Dict[str, Any]]:
        return self._get_paginated(f"{self._repo_path(owner, repo)}/pulls/{number}/reviews")

    def list_review_comments(self, owner: str, repo: str, number: int) -> List[Dict[str, Any]]:
        return self._get_paginated(f"{self._repo_path(owner, repo)}/pulls/{number}/comments")

    def get_issue(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return self._get(f"{self._repo_path(owner, repo)}/issues/{number}")

    def list_commit_statuses(self, owner: str, repo: str, sha: str) -> List[Dict[str, Any]]:
        return self._get_paginated(f"{self._repo_path(owner, repo)}/commits/{sha}/statuses")

    def list_check_runs(self, owner: str, repo: str, sha: str) -> List[Dict[str, Any]]:
        return self._get_paginated(f"{self._repo_path(owner, repo)}/commits/{sha}/check-runs", items_key='check_runs')
