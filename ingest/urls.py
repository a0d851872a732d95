"""
Pull request and repository URL parsing.
"""
import re
from typing import NamedTuple
from urllib.parse import urlparse
from errors import InvalidPullRequestUrl

_SHORT_REPO = re.compile(r"^([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)$")
_PR_NUMBER = re.compile(r"[0-9]+")


class PullRequestRef(NamedTuple):
    owner: str
    repo: str
    number: int

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/pull/{self.number}"


def _strip_git(name: str) -> str:
    return name[:-4] if name.lower().endswith('.git') else name


def _path_parts(url: str):
    text = (url or '').strip()
    if not text:
        return []
    if '://' not in text and text.lower().startswith('github.com'):
        text = 'https://' + text
    parsed = urlparse(text)
    path = parsed.path if parsed.netloc else text
    return [p for p in path.split('/') if p]


def parse_pr_url(url: str) -> PullRequestRef:
    """Parse https://github.com/owner/repo/pull/123 (or /pulls/123) into a PullRequestRef."""
    parts = _path_parts(url)
    idx = next((i for i, p in enumerate(parts) if p in ('pull', 'pulls')), -1)
    if idx < 2 or idx + 1 >= len(parts) or not _PR_NUMBER.fullmatch(parts[idx + 1]):
        raise InvalidPullRequestUrl(url)
    return PullRequestRef(owner=parts[idx - 2], repo=_strip_git(parts[idx - 1]), number=int(parts[idx + 1]))


def parse_repo_url(url: str) -> str:
    """Return the 'owner/repo' identifier for a repository URL or an already short identifier."""
    text = (url or '').strip().rstrip('/')
    m = _SHORT_REPO.match(text)
    if m and '.' not in m.group(1):
        return f"{m.group(1)}/{_strip_git(m.group(2))}"
    parts = _path_parts(text)
    if len(parts) < 2:
        raise InvalidPullRequestUrl(url, f"Invalid repository URL: {url!r}")
    return f"{parts[0]}/{_strip_git(parts[1])}"


def normalize_repository(identifier: str) -> str:
    """Canonical, case-insensitive form of an 'owner/repo' identifier (or repository URL)."""
    return parse_repo_url(identifier).lower()
