"""
Access tiers and per-user transaction limits.

Tier assignment is pluggable (TierPolicy); ThresholdTierPolicy is the default,
driven by configurable minimum score, verification count, and account age.
Limits: tier base triple (single / daily / monthly) scaled by 1 + score/100,
never more than 2x the tier base.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from backend_trustrisk.analytics.models import AccessTier, TransactionLimits, TrustProfile
from backend_trustrisk.trustrisk_logging import get_logger

logger = get_logger(__name__)

TIER_BASE_LIMITS: dict[AccessTier, TransactionLimits] = {
    AccessTier.BASIC: TransactionLimits(single=100.0, daily=200.0, monthly=500.0),
    AccessTier.STANDARD: TransactionLimits(single=500.0, daily=1000.0, monthly=5000.0),
    AccessTier.FULL: TransactionLimits(single=2000.0, daily=4000.0, monthly=20000.0),
}

MAX_REPUTATION_MULTIPLIER = 2.0


class TierPolicy(Protocol):
    """Maps reputation to an access tier."""

    def tier_for(self, score: float, *, verification_count: int = 0, account_age_days: int = 0) -> AccessTier:
        ...


@dataclass(frozen=True)
class TierThreshold:
    tier: AccessTier
    min_score: float
    min_verifications: int = 0
    min_account_age_days: int = 0

    def matches(self, score: float, verification_count: int, account_age_days: int) -> bool:
        return (
            score >= self.min_score
            and verification_count >= self.min_verifications
            and account_age_days >= self.min_account_age_days
        )


DEFAULT_TIER_THRESHOLDS: tuple[TierThreshold, ...] = (
    TierThreshold(AccessTier.FULL, min_score=50.0, min_verifications=2, min_account_age_days=30),
    TierThreshold(AccessTier.STANDARD, min_score=25.0, min_verifications=1, min_account_age_days=15),
)


class ThresholdTierPolicy:
    """
    First matching threshold wins; thresholds are checked in the given order
    (highest tier first). Users matching none are BASIC.
    """

    def __init__(
        self,
        thresholds: tuple[TierThreshold, ...] = DEFAULT_TIER_THRESHOLDS,
        default_tier: AccessTier = AccessTier.BASIC,
    ) -> None:
        self.thresholds = tuple(thresholds)
        self.default_tier = default_tier

    def tier_for(self, score: float, *, verification_count: int = 0, account_age_days: int = 0) -> AccessTier:
        for threshold in self.thresholds:
            if threshold.matches(score, verification_count, account_age_days):
                return threshold.tier
        return self.default_tier


class TransactionLimitPolicy:
    """Per-user spending ceilings from tier base limits and reputation score."""

    def __init__(self, base_limits: dict[AccessTier, TransactionLimits] | None = None) -> None:
        self.base_limits = dict(base_limits or TIER_BASE_LIMITS)

    def reputation_multiplier(self, score: float) -> float:
        return min(1.0 + score / 100.0, MAX_REPUTATION_MULTIPLIER)

    def limits_for(self, profile: TrustProfile) -> TransactionLimits:
        base = self.base_limits.get(profile.tier, self.base_limits[AccessTier.BASIC])
        multiplier = self.reputation_multiplier(profile.score)
        limits = TransactionLimits(
            single=min(base.single * multiplier, base.single * MAX_REPUTATION_MULTIPLIER),
            daily=min(base.daily * multiplier, base.daily * MAX_REPUTATION_MULTIPLIER),
            monthly=min(base.monthly * multiplier, base.monthly * MAX_REPUTATION_MULTIPLIER),
        )
        logger.debug(
            "transaction_limits",
            user_id=profile.user_id,
            tier=profile.tier.value,
            score=profile.score,
            single=limits.single,
        )
        return limits
