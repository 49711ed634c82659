"""
Risk engine: weighted multi-factor transaction risk with restrict-not-deny decisions.

Five factors, each normalized to 0-100 and combined with fixed weights:
amount vs. single-transaction limit (0.35), user history (0.15), recipient
history (0.25), amount pattern (0.20), time of day (0.05). Reputation applies
a discount of up to 50%; the final score is clamped to [5, 95].

Decisions never deny. Risk > 80 caps the amount at 25% of the limit and adds
every restriction; risk > 50 caps at 50% and adds verification / delay above
70 / 60; otherwise only an over-limit amount is capped.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from backend_trustrisk.analytics.limits import TransactionLimitPolicy
from backend_trustrisk.analytics.models import (
    Restrictions,
    RiskFactor,
    RiskLevel,
    RiskVerdict,
    TransactionLimits,
    TrustProfile,
)
from backend_trustrisk.database.models import TransactionRecord, TransactionStatus
from backend_trustrisk.trustrisk_logging import get_logger

logger = get_logger(__name__)

FACTOR_AMOUNT = "transaction_amount"
FACTOR_USER_HISTORY = "user_history"
FACTOR_RECIPIENT = "recipient_history"
FACTOR_PATTERN = "transaction_pattern"
FACTOR_TIME_OF_DAY = "time_of_day"

FACTOR_WEIGHTS: dict[str, float] = {
    FACTOR_AMOUNT: 0.35,
    FACTOR_USER_HISTORY: 0.15,
    FACTOR_RECIPIENT: 0.25,
    FACTOR_PATTERN: 0.20,
    FACTOR_TIME_OF_DAY: 0.05,
}

REASON_HIGH = "High risk transaction - restrictions applied for security"
REASON_MEDIUM = "Medium risk transaction - some precautions applied"
REASON_OVER_LIMIT = "Transaction amount exceeds your current limit"
REASON_LOW = "Low risk transaction"


@dataclass
class RiskConfig:
    """Thresholds for risk decisions; defaults match production policy."""

    high_risk_threshold: float = 80.0
    medium_risk_threshold: float = 50.0
    verification_threshold: float = 70.0
    delay_threshold: float = 60.0
    high_risk_cap_fraction: float = 0.25
    medium_risk_cap_fraction: float = 0.5

    min_risk: float = 5.0
    max_risk: float = 95.0
    max_reputation_discount: float = 0.5

    # Amount pattern: compare to mean of this many most recent prior transactions
    pattern_window: int = 5
    pattern_high_multiple: float = 3.0
    pattern_medium_multiple: float = 1.5

    # Business hours (UTC, inclusive hours)
    business_hours_start: int = 9
    business_hours_end: int = 17


def _level(score: float, high: float = 50.0, medium: float = 30.0) -> RiskLevel:
    if score > high:
        return RiskLevel.HIGH
    if score > medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _prior_transactions(
    transaction: TransactionRecord,
    recent_transactions: Sequence[TransactionRecord],
) -> list[TransactionRecord]:
    """History without the transaction under evaluation; keeps newest-first order."""
    return [t for t in recent_transactions if t.id != transaction.id]


class RiskEngine:
    """Converts transaction signals plus reputation into a RiskVerdict."""

    def __init__(
        self,
        limit_policy: TransactionLimitPolicy | None = None,
        config: RiskConfig | None = None,
    ) -> None:
        self.limit_policy = limit_policy or TransactionLimitPolicy()
        self.config = config or RiskConfig()

    # --- factors ---

    def amount_factor(self, amount: float, limits: TransactionLimits) -> RiskFactor:
        pct = amount / limits.single * 100.0 if limits.single > 0 else 100.0
        score = min(100.0, pct)
        return RiskFactor(FACTOR_AMOUNT, score, FACTOR_WEIGHTS[FACTOR_AMOUNT], _level(score, 70.0, 40.0))

    def history_factor(self, prior: Sequence[TransactionRecord]) -> RiskFactor:
        count = len(prior)
        if count == 0:
            score = 70.0
        elif count < 5:
            score = 40.0
        elif count < 10:
            score = 20.0
        else:
            score = 10.0
        return RiskFactor(FACTOR_USER_HISTORY, score, FACTOR_WEIGHTS[FACTOR_USER_HISTORY], _level(score))

    def recipient_factor(
        self,
        transaction: TransactionRecord,
        prior: Sequence[TransactionRecord],
    ) -> RiskFactor:
        score = 50.0
        if transaction.recipient_id:
            known = any(
                t.recipient_id == transaction.recipient_id and t.status == TransactionStatus.COMPLETED
                for t in prior
            )
            if known:
                score = 15.0
        return RiskFactor(FACTOR_RECIPIENT, score, FACTOR_WEIGHTS[FACTOR_RECIPIENT], _level(score))

    def pattern_factor(
        self,
        transaction: TransactionRecord,
        prior: Sequence[TransactionRecord],
    ) -> RiskFactor:
        cfg = self.config
        score = 30.0
        if len(prior) >= cfg.pattern_window:
            avg = statistics.mean(t.amount for t in prior[: cfg.pattern_window])
            if transaction.amount > avg * cfg.pattern_high_multiple:
                score = 70.0
            elif transaction.amount > avg * cfg.pattern_medium_multiple:
                score = 50.0
            else:
                score = 15.0
        return RiskFactor(FACTOR_PATTERN, score, FACTOR_WEIGHTS[FACTOR_PATTERN], _level(score))

    def time_factor(self, transaction: TransactionRecord) -> RiskFactor:
        hour = datetime.fromtimestamp(transaction.created_at, tz=timezone.utc).hour
        in_hours = self.config.business_hours_start <= hour <= self.config.business_hours_end
        score = 15.0 if in_hours else 25.0
        return RiskFactor(FACTOR_TIME_OF_DAY, score, FACTOR_WEIGHTS[FACTOR_TIME_OF_DAY], RiskLevel.LOW)

    def calculate_factors(
        self,
        transaction: TransactionRecord,
        trust_profile: TrustProfile,
        recent_transactions: Sequence[TransactionRecord],
        limits: TransactionLimits | None = None,
    ) -> list[RiskFactor]:
        limits = limits or self.limit_policy.limits_for(trust_profile)
        prior = _prior_transactions(transaction, recent_transactions)
        return [
            self.amount_factor(transaction.amount, limits),
            self.history_factor(prior),
            self.recipient_factor(transaction, prior),
            self.pattern_factor(transaction, prior),
            self.time_factor(transaction),
        ]

    def overall_risk(self, factors: Sequence[RiskFactor], reputation_score: float) -> float:
        """Weighted sum, reputation discount, clamp to [min_risk, max_risk]."""
        cfg = self.config
        weighted = sum(f.contribution for f in factors)
        discount = min(max(reputation_score, 0.0), 100.0) / 100.0 * cfg.max_reputation_discount
        risk = weighted * (1.0 - discount)
        return round(max(cfg.min_risk, min(cfg.max_risk, risk)), 2)

    # --- decision ---

    def evaluate(
        self,
        transaction: TransactionRecord,
        trust_profile: TrustProfile,
        recent_transactions: Sequence[TransactionRecord],
    ) -> RiskVerdict:
        cfg = self.config
        limits = self.limit_policy.limits_for(trust_profile)
        factors = self.calculate_factors(transaction, trust_profile, recent_transactions, limits)
        risk = self.overall_risk(factors, trust_profile.score)

        if risk > cfg.high_risk_threshold:
            verdict = RiskVerdict(
                risk_score=risk,
                level=RiskLevel.HIGH,
                reason=REASON_HIGH,
                restrictions=Restrictions(
                    max_amount=round(min(transaction.amount, limits.single * cfg.high_risk_cap_fraction), 2),
                    requires_additional_verification=True,
                    delayed_settlement=True,
                    limited_recipients=True,
                ),
                factors=tuple(factors),
            )
        elif risk > cfg.medium_risk_threshold:
            verdict = RiskVerdict(
                risk_score=risk,
                level=RiskLevel.MEDIUM,
                reason=REASON_MEDIUM,
                restrictions=Restrictions(
                    max_amount=round(min(transaction.amount, limits.single * cfg.medium_risk_cap_fraction), 2),
                    requires_additional_verification=risk > cfg.verification_threshold,
                    delayed_settlement=risk > cfg.delay_threshold,
                ),
                factors=tuple(factors),
            )
        elif transaction.amount > limits.single:
            verdict = RiskVerdict(
                risk_score=risk,
                level=RiskLevel.LOW,
                reason=REASON_OVER_LIMIT,
                restrictions=Restrictions(max_amount=round(limits.single, 2)),
                factors=tuple(factors),
            )
        else:
            verdict = RiskVerdict(
                risk_score=risk,
                level=RiskLevel.LOW,
                reason=REASON_LOW,
                factors=tuple(factors),
            )

        logger.info(
            "risk_evaluated",
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            risk_score=risk,
            level=verdict.level.value,
            restrictions=verdict.restrictions.to_dict() if verdict.restrictions else {},
        )
        return verdict
