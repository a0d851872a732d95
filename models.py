"""
Data models for contribution analyses, projects and bounty claims.
"""
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

METRIC_NAMES = ('code_size', 'review_cycles', 'review_time', 'first_review_wait', 'review_depth', 'code_quality')

CATEGORIES = ('easy', 'medium', 'hard')

SOURCE_LOCAL = 'local'
SOURCE_ORACLE = 'oracle'


class MetricScoreSet(NamedTuple):
    """Six sub-scores, each in [0, 10]."""
    code_size: float
    review_cycles: float
    review_time: float
    first_review_wait: float
    review_depth: float
    code_quality: float

    def to_dict(self) -> Dict[str, float]:
        return dict(self._asdict())


class ContributionAnalysis(NamedTuple):
    category: str
    final_score: float
    metric_scores: MetricScoreSet
    reasoning: str
    source: str
    key_insights: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category,
            'final_score': self.final_score,
            'metric_scores': self.metric_scores.to_dict(),
            'reasoning': self.reasoning,
            'source': self.source,
            'key_insights': dict(self.key_insights) if self.key_insights else None,
        }


class Credentials(NamedTuple):
    """Caller-supplied platform token plus the handle vouched for by the identity provider."""
    github_token: Optional[str]
    user_handle: Optional[str]


class ClaimKey(NamedTuple):
    project_id: int
    pr_number: int


class PayoutRecord(NamedTuple):
    """Append-only audit entry written in the same transaction as the claim transition."""
    id: str
    amount: float
    developer_id: str
    project_id: int
    status: str
    created_at: datetime
    unit_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d = dict(self._asdict())
        d['created_at'] = self.created_at.isoformat()
        return d


class Project:
    """
    A project with a registered repository and an advisory bounty range.
    """
    def __init__(self, id: Optional[int], repo_identifier: str, lowest_bounty: float, highest_bounty: float):
        self.id = id
        self.repo_identifier = repo_identifier  # normalized 'owner/repo'
        self.lowest_bounty = lowest_bounty
        self.highest_bounty = highest_bounty

    def has_valid_range(self) -> bool:
        return 0 < self.lowest_bounty < self.highest_bounty

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'repo_identifier': self.repo_identifier,
            'lowest_bounty': self.lowest_bounty,
            'highest_bounty': self.highest_bounty,
        }

    def __repr__(self):
        return f"Project(id={self.id!r}, repo_identifier={self.repo_identifier!r}, range=[{self.lowest_bounty}, {self.highest_bounty}])"


# defaults applied by ClaimableUnit.with_defaults() to fields that storage left empty
UNIT_DEFAULTS = {
    'merged': False,
    'score': 0.0,
    'bounty_amount': 0.0,
    'bounty_claimed': False,
    'amount_paid': 0.0,
}


class ClaimableUnit:
    """
    Durable record tracking whether a PR's bounty has been paid.

    Every field except the key may be None, meaning "absent in storage". Call
    with_defaults() to get a copy where absent fields carry their default values.
    """
    def __init__(
        self,
        project_id: int,
        pr_number: int,
        id: Optional[int] = None,
        pr_url: Optional[str] = None,
        merged: Optional[bool] = None,
        score: Optional[float] = None,
        bounty_amount: Optional[float] = None,
        bounty_claimed: Optional[bool] = None,
        bounty_claimed_at: Optional[datetime] = None,
        bounty_claimed_by: Optional[str] = None,
        amount_paid: Optional[float] = None,
    ):
        self.id = id
        self.project_id = project_id
        self.pr_number = pr_number
        self.pr_url = pr_url
        self.merged = merged
        self.score = score
        self.bounty_amount = bounty_amount
        self.bounty_claimed = bounty_claimed
        self.bounty_claimed_at = bounty_claimed_at
        self.bounty_claimed_by = bounty_claimed_by
        self.amount_paid = amount_paid

    @property
    def key(self) -> ClaimKey:
        return ClaimKey(self.project_id, self.pr_number)

    @property
    def is_claimed(self) -> bool:
        return bool(self.bounty_claimed)

    def with_defaults(self) -> 'ClaimableUnit':
        fields = self.to_dict(raw=True)
        for name, default in UNIT_DEFAULTS.items():
            if fields.get(name) is None:
                fields[name] = default
        return ClaimableUnit(**fields)

    def to_dict(self, raw: bool = False) -> Dict[str, Any]:
        d = {
            'id': self.id,
            'project_id': self.project_id,
            'pr_number': self.pr_number,
            'pr_url': self.pr_url,
            'merged': self.merged,
            'score': self.score,
            'bounty_amount': self.bounty_amount,
            'bounty_claimed': self.bounty_claimed,
            'bounty_claimed_at': self.bounty_claimed_at,
            'bounty_claimed_by': self.bounty_claimed_by,
            'amount_paid': self.amount_paid,
        }
        if not raw and isinstance(self.bounty_claimed_at, datetime):
            d['bounty_claimed_at'] = self.bounty_claimed_at.isoformat()
        return d

    def __repr__(self):
        return f"ClaimableUnit(key={self.key!r}, claimed={self.bounty_claimed!r}, by={self.bounty_claimed_by!r})"
