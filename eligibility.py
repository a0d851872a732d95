"""
Eligibility gate run before any scoring or claim: repository match, author match, merge state.
Checks short-circuit in that order; the pull request is only fetched once the repository matches.
"""
import logging
from typing import Any, Dict, NamedTuple, Optional

from errors import NotAuthor, NotMerged, Unauthenticated, WrongRepository
from ingest.github import GitHubClient
from ingest.urls import normalize_repository, parse_pr_url

logger = logging.getLogger(__name__)


class EligiblePullRequest(NamedTuple):
    owner: str
    repo: str
    pr_number: int
    pull: Dict[str, Any]  # the fetched PR payload, reused by aggregation


def _author_of(pull: Dict[str, Any]) -> str:
    return ((pull or {}).get('user') or {}).get('login') or ''


def is_merged(pull: Dict[str, Any]) -> bool:
    return bool(pull.get('merged')) or bool(pull.get('merged_at'))


def validate(pr_url: str, project_repo: str, user_handle: Optional[str], client: GitHubClient) -> EligiblePullRequest:
    """
    Run the eligibility gate.

    Raises:
        InvalidPullRequestUrl: pr_url cannot be parsed.
        Unauthenticated: no authenticated handle.
        WrongRepository: the PR belongs to another repository (nothing is fetched).
        NotAuthor: the PR author differs from user_handle (case-insensitive).
        NotMerged: the PR is not merged.
        AggregationError: the PR itself could not be fetched.
    """
    ref = parse_pr_url(pr_url)
    if not user_handle:
        raise Unauthenticated()

    if normalize_repository(ref.repository) != normalize_repository(project_repo):
        raise WrongRepository(ref.repository, project_repo)

    pull = client.get_pull_request(ref.owner, ref.repo, ref.number)
    author = _author_of(pull)
    if author.lower() != user_handle.lower():
        raise NotAuthor(author, user_handle)

    if not is_merged(pull):
        raise NotMerged(pull.get('state') or 'unknown')

    logger.info("Eligibility passed for %s#%s (author %s)", ref.repository, ref.number, author)
    return EligiblePullRequest(ref.owner, ref.repo, ref.number, pull)
