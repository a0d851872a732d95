"""
Normalized pull request signal entities.
Built fresh from platform payloads on every scoring request; never persisted as-is.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any

# patches of larger files are left out of serialized payloads
PATCH_PAYLOAD_MAX_CHANGES = 100


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ChangedFile:
    """
    One entry of the PR file diff list.
    """
    def __init__(self, filename: str, status: str, additions: int, deletions: int, changes: int, file_type: str, patch: Optional[str] = None):
        self.filename = filename
        self.status = status  # added/modified/removed/renamed
        self.additions = additions
        self.deletions = deletions
        self.changes = changes
        self.file_type = file_type  # code/test/config/documentation/other
        self.patch = patch

    def to_dict(self) -> Dict[str, Any]:
        return {
            'filename': self.filename,
            'status': self.status,
            'additions': self.additions,
            'deletions': self.deletions,
            'changes': self.changes,
            'type': self.file_type,
            'patch': self.patch if self.changes < PATCH_PAYLOAD_MAX_CHANGES else None,
        }


class Commit:
    def __init__(self, sha: str, message: str, author: str, date: Optional[datetime]):
        self.sha = sha
        self.message = message
        self.author = author
        self.date = date

    def to_dict(self) -> Dict[str, Any]:
        return {'sha': self.sha, 'message': self.message, 'author': self.author, 'date': _iso(self.date)}


class Review:
    """
    A submitted review. state is one of approved/changes_requested/commented
    (other platform states such as dismissed are kept lowercased).
    """
    def __init__(self, review_id: Any, user: str, state: str, submitted_at: Optional[datetime], body: str = '', is_bot: bool = False):
        self.review_id = review_id
        self.user = user
        self.state = state
        self.submitted_at = submitted_at
        self.body = body
        self.is_bot = is_bot

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.review_id,
            'user': self.user,
            'state': self.state,
            'submitted_at': _iso(self.submitted_at),
            'body': self.body,
        }


class ReviewComment:
    """
    Inline review comment attached to a file path.
    """
    def __init__(self, comment_id: Any, user: str, body: str, path: Optional[str], created_at: Optional[datetime], line: Optional[int] = None, is_bot: bool = False):
        self.comment_id = comment_id
        self.user = user
        self.body = body
        self.path = path
        self.created_at = created_at
        self.line = line
        self.is_bot = is_bot

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.comment_id,
            'user': self.user,
            'body': self.body,
            'path': self.path,
            'line': self.line,
            'created_at': _iso(self.created_at),
        }


class LinkedIssue:
    def __init__(self, number: int, title: str, body: str, labels: List[str], comments_count: int, evidence: str = ''):
        self.number = number
        self.title = title
        self.body = body
        self.labels = labels
        self.comments_count = comments_count
        self.evidence = evidence  # which text reference led to the issue

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.number,
            'title': self.title,
            'body': self.body,
            'labels': list(self.labels),
            'comments_count': self.comments_count,
        }


class CommitStatus:
    def __init__(self, state: str, context: str, description: str = '', created_at: Optional[datetime] = None):
        self.state = state  # success/failure/pending/error
        self.context = context
        self.description = description
        self.created_at = created_at

    def to_dict(self) -> Dict[str, Any]:
        return {'state': self.state, 'context': self.context, 'description': self.description, 'created_at': _iso(self.created_at)}


class CheckRun:
    def __init__(self, name: str, status: str, conclusion: Optional[str], started_at: Optional[datetime] = None, completed_at: Optional[datetime] = None):
        self.name = name
        self.status = status  # completed/in_progress/queued
        self.conclusion = conclusion  # success/failure/cancelled/neutral/skipped/timed_out
        self.started_at = started_at
        self.completed_at = completed_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status,
            'conclusion': self.conclusion,
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
        }


class PullRequestSignal:
    """
    Aggregated signals about one pull request, identified by (owner, repo, number).
    """
    def __init__(
        self,
        owner: str,
        repo: str,
        number: int,
        title: str,
        description: str,
        author: str,
        additions: int,
        deletions: int,
        changed_files: int,
        merged: bool,
        state: str,
        created_at: Optional[datetime],
        merged_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        head_sha: Optional[str] = None,
        html_url: Optional[str] = None,
        files: Optional[List[ChangedFile]] = None,
        commits: Optional[List[Commit]] = None,
        reviews: Optional[List[Review]] = None,
        review_comments: Optional[List[ReviewComment]] = None,
        linked_issue: Optional[LinkedIssue] = None,
        statuses: Optional[List[CommitStatus]] = None,
        check_runs: Optional[List[CheckRun]] = None,
    ):
        self.owner = owner
        self.repo = repo
        self.number = number
        self.title = title
        self.description = description
        self.author = author
        self.additions = additions
        self.deletions = deletions
        self.changed_files = changed_files
        self.merged = merged
        self.state = state
        self.created_at = created_at
        self.merged_at = merged_at
        self.updated_at = updated_at
        self.head_sha = head_sha
        self.html_url = html_url
        self.files = files or []
        self.commits = commits or []
        self.reviews = reviews or []
        self.review_comments = review_comments or []
        self.linked_issue = linked_issue
        self.statuses = statuses or []
        self.check_runs = check_runs or []

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable view, used as the oracle request payload."""
        return {
            'pr': {
                'owner': self.owner,
                'repo': self.repo,
                'number': self.number,
                'title': self.title,
                'description': self.description,
                'author': self.author,
                'stats': {
                    'additions': self.additions,
                    'deletions': self.deletions,
                    'changed_files': self.changed_files,
                    'commits': len(self.commits),
                },
                'timeline': {
                    'created': _iso(self.created_at),
                    'updated': _iso(self.updated_at),
                    'merged': _iso(self.merged_at),
                },
                'state': self.state,
                'merged': self.merged,
            },
            'issue': self.linked_issue.to_dict() if self.linked_issue else None,
            'files': [f.to_dict() for f in self.files],
            'commits': [c.to_dict() for c in self.commits],
            'reviews': [r.to_dict() for r in self.reviews],
            'review_comments': [c.to_dict() for c in self.review_comments],
            'ci_status': {
                'statuses': [s.to_dict() for s in self.statuses],
                'check_runs': [r.to_dict() for r in self.check_runs],
            },
        }
