"""
Shared builders for platform payloads, signals and a scripted platform client.
"""
import threading
from typing import Any, Dict, List, Optional

from errors import NotFound
from normalize.util import build_signal

REPO_OWNER = 'acme'
REPO_NAME = 'widgets'
PR_URL = 'https://github.com/acme/widgets/pull/7'


def pull_payload(
    number: int = 7,
    author: str = 'alice',
    merged: bool = True,
    created_at: str = '2025-01-10T12:00:00Z',
    merged_at: Optional[str] = '2025-01-12T12:00:00Z',
    title: str = 'Add widget cache',
    body: str = 'Fixes #12 by caching widgets.',
    additions: int = 120,
    deletions: int = 30,
    changed_files: int = 3,
    head_sha: str = 'abc123',
) -> Dict[str, Any]:
    return {
        'number': number,
        'title': title,
        'body': body,
        'user': {'login': author},
        'state': 'closed' if merged else 'open',
        'merged': merged,
        'created_at': created_at,
        'updated_at': merged_at or created_at,
        'merged_at': merged_at if merged else None,
        'additions': additions,
        'deletions': deletions,
        'changed_files': changed_files,
        'head': {'sha': head_sha},
        'html_url': f'https://github.com/{REPO_OWNER}/{REPO_NAME}/pull/{number}',
    }


def file_payload(filename: str, additions: int, deletions: int, patch: Optional[str] = '@@ -1 +1 @@') -> Dict[str, Any]:
    return {
        'filename': filename,
        'status': 'modified',
        'additions': additions,
        'deletions': deletions,
        'changes': additions + deletions,
        'patch': patch,
    }


def review_payload(user: str, state: str, submitted_at: str, review_id: int = 1) -> Dict[str, Any]:
    return {'id': review_id, 'user': {'login': user}, 'state': state, 'submitted_at': submitted_at, 'body': ''}


def comment_payload(user: str, path: str, created_at: str, comment_id: int = 1) -> Dict[str, Any]:
    return {'id': comment_id, 'user': {'login': user}, 'path': path, 'body': 'nit', 'created_at': created_at, 'line': 3}


def commit_payload(sha: str = 'c1', message: str = 'Add cache') -> Dict[str, Any]:
    return {'sha': sha, 'commit': {'message': message, 'author': {'name': 'Alice', 'date': '2025-01-10T11:00:00Z'}}}


def sample_files() -> List[Dict[str, Any]]:
    return [
        file_payload('src/app.py', 100, 20),
        file_payload('tests/test_app.py', 20, 5),
        file_payload('README.md', 0, 5),
    ]


def sample_reviews() -> List[Dict[str, Any]]:
    return [
        review_payload('dependabot[bot]', 'COMMENTED', '2025-01-10T13:00:00Z', 1),
        review_payload('bob', 'CHANGES_REQUESTED', '2025-01-10T15:00:00Z', 2),
        review_payload('bob', 'APPROVED', '2025-01-11T18:00:00Z', 3),
    ]


def sample_comments() -> List[Dict[str, Any]]:
    return [
        comment_payload('bob', 'src/app.py', '2025-01-10T15:00:00Z', 1),
        comment_payload('bob', 'src/app.py', '2025-01-10T15:01:00Z', 2),
        comment_payload('bob', 'tests/test_app.py', '2025-01-10T15:02:00Z', 3),
    ]


def sample_check_runs(conclusion: str = 'success') -> List[Dict[str, Any]]:
    return [{'name': 'ci', 'status': 'completed', 'conclusion': conclusion, 'started_at': '2025-01-10T12:01:00Z', 'completed_at': '2025-01-10T12:05:00Z'}]


def make_signal(
    pull: Optional[Dict[str, Any]] = None,
    files: Optional[List[Dict[str, Any]]] = None,
    commits: Optional[List[Dict[str, Any]]] = None,
    reviews: Optional[List[Dict[str, Any]]] = None,
    review_comments: Optional[List[Dict[str, Any]]] = None,
    statuses: Optional[List[Dict[str, Any]]] = None,
    check_runs: Optional[List[Dict[str, Any]]] = None,
):
    pull = pull if pull is not None else pull_payload()
    return build_signal(
        REPO_OWNER,
        REPO_NAME,
        pull.get('number', 7),
        pull,
        files if files is not None else sample_files(),
        commits if commits is not None else [commit_payload()],
        reviews=reviews,
        review_comments=review_comments,
        statuses=statuses,
        check_runs=check_runs,
    )


def sample_signal():
    """A merged PR with tests, passing CI, one review cycle pair and three inline comments."""
    return make_signal(
        reviews=sample_reviews(),
        review_comments=sample_comments(),
        check_runs=sample_check_runs(),
    )


class FakeGitHubClient:
    """
    Scripted stand-in for GitHubClient.

    responses maps a method name to either a value or an exception instance to raise.
    Calls are recorded as (method, args) tuples.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, token: Optional[str] = None):
        self.token = token
        self.responses = {
            'get_pull_request': pull_payload(),
            'list_files': sample_files(),
            'list_commits': [commit_payload()],
            'list_reviews': sample_reviews(),
            'list_review_comments': sample_comments(),
            'get_issue': {'number': 12, 'title': 'Widgets are slow', 'body': '', 'labels': [{'name': 'bug'}], 'comments': 2},
            'list_commit_statuses': [],
            'list_check_runs': sample_check_runs(),
        }
        self.responses.update(responses or {})
        self.calls = []
        self._lock = threading.Lock()

    def _respond(self, name: str, *args):
        with self._lock:
            self.calls.append((name, args))
        value = self.responses.get(name)
        if callable(value):
            value = value(*args)
        if isinstance(value, Exception):
            raise value
        if value is None and name == 'get_pull_request':
            raise NotFound('no such pull request', status=404)
        return value

    def called(self, name: str) -> int:
        with self._lock:
            return sum(1 for n, _ in self.calls if n == name)

    def get_pull_request(self, owner, repo, number):
        return self._respond('get_pull_request', owner, repo, number)

    def list_files(self, owner, repo, number):
        return self._respond('list_files', owner, repo, number)

    def list_commits(self, owner, repo, number):
        return self._respond('list_commits', owner, repo, number)

    def list_reviews(self, owner, repo, number):
        return self._respond('list_reviews', owner, repo, number)

    def list_review_comments(self, owner, repo, number):
        return self._respond('list_review_comments', owner, repo, number)

    def get_issue(self, owner, repo, number):
        return self._respond('get_issue', owner, repo, number)

    def list_commit_statuses(self, owner, repo, sha):
        return self._respond('list_commit_statuses', owner, repo, sha)

    def list_check_runs(self, owner, repo, sha):
        return self._respond('list_check_runs', owner, repo, sha)
