"""
Exception taxonomy for the contribution scoring and bounty claim pipeline.

Eligibility and claim errors are surfaced to callers verbatim. Aggregation errors are
fatal for mandatory signals only. Oracle errors never leave the oracle adapter.
"""
from typing import Optional


class BountyPipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigError(BountyPipelineError, ValueError):
    """Weights/thresholds configuration is present but invalid."""


class InvalidPullRequestUrl(BountyPipelineError, ValueError):
    def __init__(self, url: str, message: Optional[str] = None):
        self.url = url
        super().__init__(message or f"Invalid pull request or repository URL: {url!r}")


class ProjectNotFound(BountyPipelineError):
    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"No registered project for {identifier!r}")


# --- eligibility ---

class EligibilityError(BountyPipelineError):
    """The pull request is not eligible for scoring or claiming."""


class Unauthenticated(EligibilityError):
    def __init__(self):
        super().__init__("No authenticated user handle supplied")


class WrongRepository(EligibilityError):
    def __init__(self, pr_repository: str, project_repository: str):
        self.pr_repository = pr_repository
        self.project_repository = project_repository
        super().__init__(f"PR belongs to {pr_repository}, project is registered for {project_repository}")


class NotAuthor(EligibilityError):
    def __init__(self, pr_author: str, authenticated_user: str):
        self.pr_author = pr_author
        self.authenticated_user = authenticated_user
        super().__init__(f"PR was authored by {pr_author!r}, not by {authenticated_user!r}")


class NotMerged(EligibilityError):
    def __init__(self, state: str):
        self.state = state
        super().__init__(f"PR must be merged before claiming (state: {state})")


# --- aggregation ---

class AggregationError(BountyPipelineError):
    def __init__(self, message: str, status: int = 0, url: Optional[str] = None):
        self.status = status
        self.url = url
        super().__init__(message)


class NotFound(AggregationError):
    pass


class PlatformUnavailable(AggregationError):
    pass


class RateLimited(AggregationError):
    def __init__(self, message: str, status: int = 429, url: Optional[str] = None, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message, status=status, url=url)


# --- oracle (internal to scoring.oracle) ---

class OracleError(BountyPipelineError):
    pass


class OracleUnavailable(OracleError):
    pass


class OracleSchemaError(OracleError):
    pass


# --- claims ---

class ClaimError(BountyPipelineError):
    pass


class AlreadyClaimed(ClaimError):
    """Raised when the claimable unit has already transitioned to claimed.

    ``unit`` holds the existing record so callers can display the claimant and amount.
    """

    def __init__(self, unit=None, message: Optional[str] = None):
        self.unit = unit
        if message is None:
            if unit is not None:
                message = f"Bounty already claimed by {unit.bounty_claimed_by} for {unit.amount_paid}"
            else:
                message = "Bounty already claimed"
        super().__init__(message)


class StorageConflict(AlreadyClaimed):
    """The atomic claim transition lost a race against a concurrent claim."""


class InvalidAmount(ClaimError):
    def __init__(self, amount, reason: str = "amount must be a positive finite number"):
        self.amount = amount
        super().__init__(f"Invalid bounty amount {amount!r}: {reason}")


class SpamContribution(ClaimError):
    def __init__(self, score: float = 0.0):
        self.score = score
        super().__init__("Contribution scored 0 and is not eligible for a bounty claim")
