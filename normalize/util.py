"""
Normalization utility helpers.
Small helpers to normalize raw platform payloads into normalize.models entities.
"""
import os
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from normalize.models import (
    ChangedFile,
    Commit,
    Review,
    ReviewComment,
    LinkedIssue,
    CommitStatus,
    CheckRun,
    PullRequestSignal,
)

CONFIG_EXTENSIONS = {'json', 'yml', 'yaml', 'toml', 'ini', 'env', 'config', 'cfg', 'lock'}
DOC_EXTENSIONS = {'md', 'rst', 'txt', 'doc', 'adoc'}
CODE_EXTENSIONS = {'js', 'ts', 'jsx', 'tsx', 'py', 'java', 'cpp', 'c', 'h', 'cs', 'rb', 'go', 'rs', 'kt', 'swift', 'php', 'scala', 'sol'}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 platform timestamp ('2025-01-10T12:00:00Z') into an aware UTC datetime."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_bot_user(login: Optional[str]) -> bool:
    if not login:
        return False
    return login.endswith('[bot]') or 'bot' in login.lower()


def classify_file(filename: str) -> str:
    """Return one of code/test/config/documentation/other for a changed file path."""
    name = (filename or '').lower()
    base = os.path.basename(name)
    parts = name.split('/')
    if (
        any(marker in base for marker in ('.test.', '.spec.', '_test.', '_spec.'))
        or base.startswith('test_')
        or any(p in ('test', 'tests', '__tests__', 'spec') for p in parts[:-1])
    ):
        return 'test'
    ext = base.rsplit('.', 1)[-1] if '.' in base else ''
    if ext in CONFIG_EXTENSIONS:
        return 'config'
    if ext in DOC_EXTENSIONS:
        return 'documentation'
    if ext in CODE_EXTENSIONS:
        return 'code'
    return 'other'


def _login(raw: Dict[str, Any], key: str = 'user') -> str:
    who = raw.get(key) if isinstance(raw, dict) else None
    return (who or {}).get('login') or ''


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def normalize_file(raw: Dict[str, Any]) -> ChangedFile:
    filename = raw.get('filename') or ''
    additions = _int(raw.get('additions'))
    deletions = _int(raw.get('deletions'))
    changes = _int(raw.get('changes')) or additions + deletions
    return ChangedFile(
        filename=filename,
        status=raw.get('status') or 'modified',
        additions=additions,
        deletions=deletions,
        changes=changes,
        file_type=classify_file(filename),
        patch=raw.get('patch'),
    )


def normalize_commit(raw: Dict[str, Any]) -> Commit:
    commit = raw.get('commit') or {}
    author = commit.get('author') or {}
    return Commit(
        sha=raw.get('sha') or '',
        message=commit.get('message') or '',
        author=author.get('name') or _login(raw, 'author'),
        date=parse_timestamp(author.get('date')),
    )


def normalize_review(raw: Dict[str, Any]) -> Review:
    login = _login(raw)
    return Review(
        review_id=raw.get('id'),
        user=login,
        state=(raw.get('state') or '').lower(),
        submitted_at=parse_timestamp(raw.get('submitted_at')),
        body=raw.get('body') or '',
        is_bot=is_bot_user(login),
    )


def normalize_review_comment(raw: Dict[str, Any]) -> ReviewComment:
    login = _login(raw)
    return ReviewComment(
        comment_id=raw.get('id'),
        user=login,
        body=raw.get('body') or '',
        path=raw.get('path'),
        created_at=parse_timestamp(raw.get('created_at')),
        line=raw.get('line'),
        is_bot=is_bot_user(login),
    )


def normalize_issue(raw: Dict[str, Any], evidence: str = '') -> LinkedIssue:
    labels = [lbl.get('name') if isinstance(lbl, dict) else str(lbl) for lbl in (raw.get('labels') or [])]
    return LinkedIssue(
        number=_int(raw.get('number')),
        title=raw.get('title') or '',
        body=raw.get('body') or '',
        labels=[lbl for lbl in labels if lbl],
        comments_count=_int(raw.get('comments')),
        evidence=evidence,
    )


def normalize_status(raw: Dict[str, Any]) -> CommitStatus:
    return CommitStatus(
        state=(raw.get('state') or '').lower(),
        context=raw.get('context') or '',
        description=raw.get('description') or '',
        created_at=parse_timestamp(raw.get('created_at')),
    )


def normalize_check_run(raw: Dict[str, Any]) -> CheckRun:
    conclusion = raw.get('conclusion')
    return CheckRun(
        name=raw.get('name') or '',
        status=(raw.get('status') or '').lower(),
        conclusion=conclusion.lower() if isinstance(conclusion, str) else None,
        started_at=parse_timestamp(raw.get('started_at')),
        completed_at=parse_timestamp(raw.get('completed_at')),
    )


def build_signal(
    owner: str,
    repo: str,
    number: int,
    pull: Dict[str, Any],
    files: List[Dict[str, Any]],
    commits: List[Dict[str, Any]],
    reviews: Optional[List[Dict[str, Any]]] = None,
    review_comments: Optional[List[Dict[str, Any]]] = None,
    issue: Optional[LinkedIssue] = None,
    statuses: Optional[List[Dict[str, Any]]] = None,
    check_runs: Optional[List[Dict[str, Any]]] = None,
) -> PullRequestSignal:
    """Create a PullRequestSignal from raw pull request payloads.
    Optional lists may be None when the corresponding fetch was absorbed.
    """
    norm_files = [normalize_file(f) for f in files or [] if isinstance(f, dict)]
    merged = bool(pull.get('merged')) or bool(pull.get('merged_at'))
    return PullRequestSignal(
        owner=owner,
        repo=repo,
        number=int(number),
        title=pull.get('title') or '',
        description=pull.get('body') or '',
        author=_login(pull),
        additions=_int(pull.get('additions')),
        deletions=_int(pull.get('deletions')),
        changed_files=_int(pull.get('changed_files')) or len(norm_files),
        merged=merged,
        state=pull.get('state') or '',
        created_at=parse_timestamp(pull.get('created_at')),
        merged_at=parse_timestamp(pull.get('merged_at')),
        updated_at=parse_timestamp(pull.get('updated_at')),
        head_sha=(pull.get('head') or {}).get('sha'),
        html_url=pull.get('html_url'),
        files=norm_files,
        commits=[normalize_commit(c) for c in commits or [] if isinstance(c, dict)],
        reviews=[normalize_review(r) for r in reviews or [] if isinstance(r, dict)],
        review_comments=[normalize_review_comment(c) for c in review_comments or [] if isinstance(c, dict)],
        linked_issue=issue,
        statuses=[normalize_status(s) for s in statuses or [] if isinstance(s, dict)],
        check_runs=[normalize_check_run(r) for r in check_runs or [] if isinstance(r, dict)],
    )
