"""
Signal aggregation: fetch everything known about one pull request and normalize it
into a PullRequestSignal.

The PR resource, its file list and its commit list are mandatory; any failure there is
raised. Reviews, review comments, the linked issue and CI results are optional: they are
fetched concurrently, retried once with backoff, and replaced by empty data on failure
or when they miss the join deadline.
"""
import os
import time
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Optional

from correlate.linker import find_linked_issue
from errors import AggregationError, NotFound, RateLimited
from ingest.github import GitHubClient
from normalize.models import PullRequestSignal, LinkedIssue
from normalize.util import build_signal, normalize_issue
from storage.retry import compute_wait_seconds, resolved_settings

logger = logging.getLogger(__name__)

DEFAULT_OPTIONAL_FETCH_TIMEOUT = float(os.getenv("BOUNTY_OPTIONAL_FETCH_TIMEOUT", "15"))

_runtime_optional_timeout: Optional[float] = None


def configure_aggregation(optional_timeout: Optional[float] = None):
    """Override the optional-signal join timeout at runtime (e.g. from CLI)."""
    global _runtime_optional_timeout
    if optional_timeout is not None:
        _runtime_optional_timeout = float(optional_timeout)


def reset_aggregation_config():
    global _runtime_optional_timeout
    _runtime_optional_timeout = None


def _optional_timeout() -> float:
    return _runtime_optional_timeout if _runtime_optional_timeout is not None else DEFAULT_OPTIONAL_FETCH_TIMEOUT


# default value used when an optional signal is absorbed
_OPTIONAL_DEFAULTS = {
    'reviews': list,
    'review_comments': list,
    'linked_issue': lambda: None,
    'statuses': list,
    'check_runs': list,
}


class SignalAggregator:
    """Fan out the platform requests for one pull request and join them into a signal."""

    def __init__(self, client: GitHubClient, optional_timeout: Optional[float] = None, max_workers: int = 8, sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.optional_timeout = optional_timeout
        self.max_workers = max_workers
        self._sleep = sleep

    def _retry_once(self, name: str, fn: Callable, *args):
        try:
            return fn(*args)
        except NotFound:
            raise
        except AggregationError as ex:
            settings = resolved_settings()
            ra = ex.retry_after if isinstance(ex, RateLimited) else None
            delay = compute_wait_seconds(ra, None, settings['backoff_base'], settings['backoff_jitter'], settings['max_backoff'])
            logger.debug("Retrying optional signal %s in %.2fs after: %s", name, delay, ex)
            self._sleep(delay)
            return fn(*args)

    def _fetch_linked_issue(self, owner: str, repo: str, number: int, pull: Dict[str, Any]) -> Optional[LinkedIssue]:
        ref = find_linked_issue(pull.get('title') or '', pull.get('body') or '', exclude=number)
        if ref is None:
            return None
        raw = self._retry_once('linked_issue', self.client.get_issue, owner, repo, ref.number)
        # the issues endpoint also serves pull requests
        if not isinstance(raw, dict) or raw.get('pull_request'):
            return None
        return normalize_issue(raw, evidence=ref.evidence)

    def _optional_jobs(self, owner: str, repo: str, number: int, pull: Dict[str, Any]) -> Dict[str, Callable[[], Any]]:
        jobs = {
            'reviews': lambda: self._retry_once('reviews', self.client.list_reviews, owner, repo, number),
            'review_comments': lambda: self._retry_once('review_comments', self.client.list_review_comments, owner, repo, number),
            'linked_issue': lambda: self._fetch_linked_issue(owner, repo, number, pull),
        }
        sha = (pull.get('head') or {}).get('sha')
        if sha:
            jobs['statuses'] = lambda: self._retry_once('statuses', self.client.list_commit_statuses, owner, repo, sha)
            jobs['check_runs'] = lambda: self._retry_once('check_runs', self.client.list_check_runs, owner, repo, sha)
        return jobs

    def _collect_optional(self, futures: Dict[str, Any], timeout: float, pr_label: str) -> Dict[str, Any]:
        results = {name: factory() for name, factory in _OPTIONAL_DEFAULTS.items()}
        done, _ = wait(list(futures.values()), timeout=timeout)
        for name, fut in futures.items():
            if fut not in done:
                fut.cancel()
                logger.warning("Optional signal %s for %s did not finish within %.1fs; treating as absent", name, pr_label, timeout)
                continue
            try:
                results[name] = fut.result()
            except AggregationError as ex:
                logger.warning("Optional signal %s for %s unavailable: %s", name, pr_label, ex)
        return results

    def aggregate(self, owner: str, repo: str, number: int, pull: Optional[Dict[str, Any]] = None) -> PullRequestSignal:
        """
        Build the PullRequestSignal for owner/repo#number.

        Parameters:
            pull: an already fetched PR payload (e.g. from the eligibility check); fetched when omitted.

        Raises:
            NotFound, PlatformUnavailable, RateLimited: a mandatory signal could not be fetched.
        """
        pr_label = f"{owner}/{repo}#{number}"
        if pull is None:
            pull = self.client.get_pull_request(owner, repo, number)
        timeout = self.optional_timeout if self.optional_timeout is not None else _optional_timeout()

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='signal')
        try:
            files_f = executor.submit(self.client.list_files, owner, repo, number)
            commits_f = executor.submit(self.client.list_commits, owner, repo, number)
            optional = {name: executor.submit(job) for name, job in self._optional_jobs(owner, repo, number, pull).items()}
            files = files_f.result()
            commits = commits_f.result()
            extras = self._collect_optional(optional, timeout, pr_label)
        finally:
            # stragglers past the deadline keep running detached; their results are discarded
            executor.shutdown(wait=False, cancel_futures=True)

        logger.debug(
            "Aggregated %s: %d files, %d commits, %d reviews, %d review comments",
            pr_label, len(files or []), len(commits or []), len(extras['reviews'] or []), len(extras['review_comments'] or []),
        )
        return build_signal(
            owner,
            repo,
            number,
            pull,
            files,
            commits,
            reviews=extras['reviews'],
            review_comments=extras['review_comments'],
            issue=extras['linked_issue'],
            statuses=extras['statuses'],
            check_runs=extras['check_runs'],
        )
