"""
Pipeline entry points: validate and score a pull request, claim its bounty, check claim status.

Control flow: eligibility -> signal aggregation -> oracle or local scoring -> bounty calculation
-> claim ledger. Only the ledger writes anything.
"""
import logging
from typing import Any, Callable, Dict, NamedTuple, Optional

import eligibility
from errors import AlreadyClaimed, InvalidAmount, ProjectNotFound, SpamContribution, StorageConflict
from ingest.aggregator import SignalAggregator
from ingest.github import GitHubClient
from ingest.urls import PullRequestRef, parse_pr_url
from models import ClaimableUnit, ContributionAnalysis, Credentials, PayoutRecord, Project
from normalize.models import PullRequestSignal
from scoring.bounty import bounty_breakdown
from scoring.metrics import score_signal
from scoring.oracle import CategorizationOracle
from scoring.utils import DEFAULT_THRESHOLDS, DEFAULT_WEIGHTS
from storage.ledger import ClaimLedger, resolve_status
from storage.store import ClaimRepository

logger = logging.getLogger(__name__)


class ScoredContribution(NamedTuple):
    project: Project
    ref: PullRequestRef
    signal: PullRequestSignal
    analysis: ContributionAnalysis


class ClaimOutcome(NamedTuple):
    payout: PayoutRecord
    analysis: ContributionAnalysis
    breakdown: Dict[str, Any]
    unit: Optional[ClaimableUnit]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'payout': self.payout.to_dict(),
            'analysis': self.analysis.to_dict(),
            'bounty_calculation': dict(self.breakdown),
            'claimable_unit': self.unit.to_dict() if self.unit else None,
        }


class ContributionPipeline:
    """
    Wires the pipeline stages together around an injected claim repository.

    Parameters:
        store: claim/project repository.
        client_factory: builds a platform client from a token (GitHubClient by default).
        oracle: optional categorization oracle; None scores locally only.
        weights, thresholds: scoring configuration (defaults per scoring.utils).
    """

    def __init__(
        self,
        store: ClaimRepository,
        client_factory: Callable[[Optional[str]], GitHubClient] = None,
        oracle: Optional[CategorizationOracle] = None,
        weights: Optional[Dict[str, float]] = None,
        thresholds: Optional[Dict[str, float]] = None,
        aggregator_factory: Callable[[GitHubClient], SignalAggregator] = SignalAggregator,
        ledger: Optional[ClaimLedger] = None,
    ):
        self.store = store
        self.client_factory = client_factory or (lambda token: GitHubClient(token=token))
        self.oracle = oracle
        self.weights = dict(weights or DEFAULT_WEIGHTS)
        self.thresholds = dict(thresholds or DEFAULT_THRESHOLDS)
        self.aggregator_factory = aggregator_factory
        self.ledger = ledger or ClaimLedger(store)

    def _resolve_project(self, project_id: Optional[int], ref: PullRequestRef) -> Project:
        if project_id is None:
            project = self.store.find_project_by_repository(ref.repository)
            if project is None:
                raise ProjectNotFound(ref.repository)
            return project
        project = self.store.get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def score(self, signal: PullRequestSignal) -> ContributionAnalysis:
        """Oracle result when available and valid, otherwise the local engine's result."""
        local = score_signal(signal, self.weights, self.thresholds)
        if self.oracle is not None:
            remote = self.oracle.try_oracle(signal, local.metric_scores, local.final_score, self.weights)
            if remote is not None:
                logger.info("Scored %s#%s via oracle: %s (%s)", signal.repository, signal.number, remote.final_score, remote.category)
                return remote
        logger.info("Scored %s#%s locally: %s (%s)", signal.repository, signal.number, local.final_score, local.category)
        return local

    def _validate_and_score(self, pr_url: str, project_id: Optional[int], credentials: Credentials) -> ScoredContribution:
        ref = parse_pr_url(pr_url)
        project = self._resolve_project(project_id, ref)
        client = self.client_factory(credentials.github_token if credentials else None)
        eligible = eligibility.validate(pr_url, project.repo_identifier, credentials.user_handle if credentials else None, client)
        signal = self.aggregator_factory(client).aggregate(eligible.owner, eligible.repo, eligible.pr_number, pull=eligible.pull)
        return ScoredContribution(project, ref, signal, self.score(signal))

    def validate_and_score(self, pr_url: str, project_id: Optional[int], credentials: Credentials) -> ContributionAnalysis:
        """
        Gate, aggregate and score a pull request. Read-only.

        Raises:
            InvalidPullRequestUrl, ProjectNotFound, EligibilityError, AggregationError
        """
        return self._validate_and_score(pr_url, project_id, credentials).analysis

    def claim_bounty(self, pr_url: str, project_id: Optional[int], developer_id: Optional[str], credentials: Credentials) -> ClaimOutcome:
        """
        Score a pull request and claim its bounty once.

        The amount is computed from the same score that is stored on the claimable unit.
        developer_id defaults to the authenticated handle.

        Raises:
            everything validate_and_score raises, plus SpamContribution, InvalidAmount and
            AlreadyClaimed (a lost race is reported as AlreadyClaimed with the winning record).
        """
        scored = self._validate_and_score(pr_url, project_id, credentials)
        analysis, project = scored.analysis, scored.project
        if analysis.final_score == 0:
            raise SpamContribution(analysis.final_score)
        if not project.has_valid_range():
            raise InvalidAmount(None, f"project {project.id} has an invalid bounty range [{project.lowest_bounty}, {project.highest_bounty}]")

        breakdown = bounty_breakdown(analysis.final_score, project.lowest_bounty, project.highest_bounty)
        developer = developer_id or credentials.user_handle
        try:
            payout = self.ledger.claim(
                project.id, scored.ref.number, developer, breakdown['amount'], score=analysis.final_score, pr_url=scored.ref.url
            )
        except StorageConflict as ex:
            raise AlreadyClaimed(ex.unit) from ex
        unit = resolve_status(self.store, project.id, scored.ref.number, scored.ref.url).unit
        return ClaimOutcome(payout, analysis, breakdown, unit.with_defaults() if unit else None)

    def check_claim_status(self, pr_url: str, project_id: Optional[int] = None) -> Dict[str, Any]:
        """Report whether the pull request's bounty has been claimed. No side effects."""
        ref = parse_pr_url(pr_url)
        project = self._resolve_project(project_id, ref)
        resolution = resolve_status(self.store, project.id, ref.number, ref.url)
        unit = resolution.unit.with_defaults() if resolution.unit else None
        return {
            'claimed': bool(unit and unit.is_claimed),
            'claimed_by': unit.bounty_claimed_by if unit else None,
            'claimed_at': unit.bounty_claimed_at.isoformat() if unit and unit.bounty_claimed_at else None,
            'amount': unit.amount_paid if unit else 0.0,
            'key': {'project_id': resolution.key.project_id, 'pr_number': resolution.key.pr_number},
        }
