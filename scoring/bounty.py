"""
Bounty calculation: interpolate a payout from a score within a project's bounty range.
"""
import math
from typing import Any, Dict

AMOUNT_PRECISION = 8


def round_amount(value: float) -> float:
    return round(value, AMOUNT_PRECISION)


def compute_bounty(score: float, lowest: float, highest: float) -> float:
    """
    amount = lowest + (highest - lowest) * score / 10, rounded to 8 decimal places.

    The result is clamped up to lowest but never down to highest; highest is advisory.
    Raises ValueError for non-finite inputs.
    """
    for name, value in (('score', score), ('lowest', lowest), ('highest', highest)):
        if value is None or not math.isfinite(value):
            raise ValueError(f"{name} must be a finite number, got {value!r}")
    amount = lowest + (highest - lowest) * score / 10
    return round_amount(max(amount, lowest))


def bounty_breakdown(score: float, lowest: float, highest: float) -> Dict[str, Any]:
    """Audit view of a bounty calculation."""
    amount = compute_bounty(score, lowest, highest)
    return {
        'lowest': lowest,
        'highest': highest,
        'difference': round_amount(highest - lowest),
        'score': score,
        'amount': amount,
        'formula': f"{lowest} + ({highest} - {lowest}) * {score} / 10 = {amount}",
    }
