"""
Claim ledger: commits a bounty claim exactly once per claimable unit and writes the
matching payout record inside the same transaction.

Lookup-key resolution is a separate, deterministic step:
1. the exact (project_id, pr_number) key;
2. otherwise the PR URL secondary index, attaching to an open record, refusing when the
   caller already holds a claim there, and creating a fresh record when every match is
   claimed by someone else;
3. otherwise a shadow record is created under the exact key.
"""
import math
import uuid
import logging
from datetime import datetime, timezone
from typing import Callable, List, NamedTuple, Optional

from errors import AlreadyClaimed, InvalidAmount, StorageConflict
from models import ClaimKey, ClaimableUnit, PayoutRecord
from storage.store import ClaimRepository, EXPECT_ABSENT, EXPECT_OPEN

logger = logging.getLogger(__name__)

PAYOUT_STATUS_COMPLETED = 'completed'

# resolution outcomes
RESOLVED_EXACT = 'exact'
RESOLVED_ATTACHED = 'attached'
RESOLVED_CLAIMED_BY_CALLER = 'claimed_by_caller'
RESOLVED_NEW = 'new'
RESOLVED_SHADOW = 'shadow'


class KeyResolution(NamedTuple):
    key: ClaimKey
    unit: Optional[ClaimableUnit]
    how: str


def _same_developer(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def resolve_claim_key(
    store: ClaimRepository, project_id: int, pr_number: int, developer_id: Optional[str] = None, pr_url: Optional[str] = None
) -> KeyResolution:
    """Decide which claimable unit a claim for (project_id, pr_number) applies to. Read-only."""
    exact = ClaimKey(int(project_id), int(pr_number))
    unit = store.get_claimable_unit(exact)
    if unit is not None:
        return KeyResolution(exact, unit, RESOLVED_EXACT)

    candidates: List[ClaimableUnit] = [u for u in store.find_claimable_units_by_url(pr_url) if u.key != exact] if pr_url else []
    if not candidates:
        return KeyResolution(exact, None, RESOLVED_SHADOW)
    for candidate in candidates:
        if candidate.is_claimed and _same_developer(candidate.bounty_claimed_by, developer_id):
            return KeyResolution(candidate.key, candidate, RESOLVED_CLAIMED_BY_CALLER)
    for candidate in candidates:
        if not candidate.is_claimed:
            return KeyResolution(candidate.key, candidate, RESOLVED_ATTACHED)
    return KeyResolution(exact, None, RESOLVED_NEW)


def resolve_status(store: ClaimRepository, project_id: int, pr_number: int, pr_url: Optional[str] = None) -> KeyResolution:
    """Like resolve_claim_key but for reporting: a claimed match wins over an open one."""
    exact = ClaimKey(int(project_id), int(pr_number))
    unit = store.get_claimable_unit(exact)
    if unit is not None:
        return KeyResolution(exact, unit, RESOLVED_EXACT)
    candidates = store.find_claimable_units_by_url(pr_url) if pr_url else []
    claimed = [u for u in candidates if u.is_claimed]
    if claimed:
        return KeyResolution(claimed[0].key, claimed[0], RESOLVED_ATTACHED)
    if candidates:
        return KeyResolution(candidates[0].key, candidates[0], RESOLVED_ATTACHED)
    return KeyResolution(exact, None, RESOLVED_SHADOW)


def validate_amount(amount) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidAmount(amount, "amount must be a number")
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount(amount)
    return float(amount)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClaimLedger:
    def __init__(self, store: ClaimRepository, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    def _new_payout_id(self, key: ClaimKey) -> str:
        return f"bounty-{key.project_id}-{key.pr_number}-{uuid.uuid4().hex[:12]}"

    def claim(
        self,
        project_id: int,
        pr_number: int,
        developer_id: str,
        amount: float,
        score: Optional[float] = None,
        pr_url: Optional[str] = None,
    ) -> PayoutRecord:
        """
        Transition the claimable unit for (project_id, pr_number) to claimed and record the payout.

        Parameters:
            score: the score that produced amount; stored on a shadow-created record.
            pr_url: enables reconciliation against records stored under a different key.

        Raises:
            InvalidAmount: amount is not a positive finite number.
            AlreadyClaimed: the unit (or the caller's claim on a matching record) is already claimed.
            StorageConflict: the atomic transition lost a race; carries the winning record.
        """
        amount = validate_amount(amount)
        resolution = resolve_claim_key(self.store, project_id, pr_number, developer_id, pr_url)
        if resolution.how == RESOLVED_CLAIMED_BY_CALLER or (resolution.unit is not None and resolution.unit.is_claimed):
            raise AlreadyClaimed(resolution.unit.with_defaults())

        key = resolution.key
        now = self.clock()
        with self.store.transaction():
            if resolution.unit is None:
                shadow = {
                    'pr_url': pr_url,
                    'merged': True,
                    'score': score,
                    'bounty_amount': amount,
                    'bounty_claimed': False,
                    'amount_paid': 0.0,
                }
                self.store.upsert_claimable_unit(key, shadow, expected_prior_state=EXPECT_ABSENT)

            claimed_fields = {
                'bounty_claimed': True,
                'bounty_claimed_at': now,
                'bounty_claimed_by': developer_id,
                'bounty_amount': amount,
                'amount_paid': amount,
            }
            if score is not None:
                claimed_fields['score'] = score
            if not self.store.upsert_claimable_unit(key, claimed_fields, expected_prior_state=EXPECT_OPEN):
                winner = self.store.get_claimable_unit(key)
                logger.warning("Lost claim race for %s (developer %s)", key, developer_id)
                raise StorageConflict(winner.with_defaults() if winner else None)

            unit = self.store.get_claimable_unit(key)
            record = PayoutRecord(
                id=self._new_payout_id(key),
                amount=amount,
                developer_id=developer_id,
                project_id=key.project_id,
                status=PAYOUT_STATUS_COMPLETED,
                created_at=now,
                unit_id=unit.id if unit else None,
            )
            self.store.create_payout_record(record)

        logger.info("Claimed %s for %s: amount=%s (%s)", key, developer_id, amount, resolution.how)
        return record


__all__ = ["ClaimLedger", "KeyResolution", "resolve_claim_key", "resolve_status", "validate_amount"]
