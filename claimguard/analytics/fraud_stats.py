"""Aggregate fraud-risk statistics over a claim snapshot."""

import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from ..models.claim import Claim

DEFAULT_FRAUD_THRESHOLD = 10000
SECONDS_PER_HOUR = 3600


@dataclass(frozen=True)
class FraudStatistics:
    """
    Fraud statistics derived from the current claim set.

    Attributes:
        total_claims: Number of claims
        verified_claims: Number of claims whose amount was verified on-chain
        potential_frauds: Verified claims whose amount exceeds the threshold
        total_amount: Sum of public amount hints across all claims
        avg_processing_time_hours: Mean claim age in hours, 0 when empty
        threshold: Threshold used for ``potential_frauds``
    """
    total_claims: int
    verified_claims: int
    potential_frauds: int
    total_amount: int
    avg_processing_time_hours: float
    threshold: int = DEFAULT_FRAUD_THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_claims": self.total_claims,
            "verified_claims": self.verified_claims,
            "potential_frauds": self.potential_frauds,
            "total_amount": self.total_amount,
            "avg_processing_time_hours": self.avg_processing_time_hours,
            "threshold": self.threshold,
        }


def compute_fraud_stats(
    claims: Iterable[Claim],
    threshold: int = DEFAULT_FRAUD_THRESHOLD,
    now: Optional[float] = None,
) -> FraudStatistics:
    """
    Compute fraud statistics over a claim snapshot.

    The amount-over-threshold rule is a placeholder heuristic, not a fraud
    model. ``total_amount`` sums the public hints, so unverified claims count
    at their submitted (unproven) amount.

    Args:
        claims: Claims to aggregate
        threshold: Verified amounts strictly above this count as potential fraud
        now: Reference time in seconds since epoch (defaults to current time)

    Returns:
        FraudStatistics for the snapshot
    """
    claims = list(claims)
    reference = time.time() if now is None else now

    total = len(claims)
    verified = sum(1 for c in claims if c.is_verified)
    frauds = sum(
        1 for c in claims
        if c.is_verified and c.decrypted_value is not None and c.decrypted_value > threshold
    )
    total_amount = sum(c.public_amount_hint for c in claims)

    if total:
        avg_age_seconds = sum(reference - c.timestamp for c in claims) / total
        avg_hours = avg_age_seconds / SECONDS_PER_HOUR
    else:
        avg_hours = 0.0

    return FraudStatistics(
        total_claims=total,
        verified_claims=verified,
        potential_frauds=frauds,
        total_amount=total_amount,
        avg_processing_time_hours=avg_hours,
        threshold=threshold,
    )
