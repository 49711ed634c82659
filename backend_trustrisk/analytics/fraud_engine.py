"""
Fraud heuristic engine: independent second opinion on a transaction.

Rule-based, not a trained model. Base probability 0.1 plus additive signals
(amount spike, young account, thin history, poor success ratio), capped at
0.95 so no verdict is ever treated as certain. Inclusion adjustments then
only lower the probability: small transactions by new users (x0.7) and users
whose record is improving (x0.8). Thresholds turn the result into allow,
apply_limits, additional_verification, or block.

Does not consult RiskEngine; history is supplied by the caller.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass

from backend_trustrisk.analytics.models import (
    FraudAction,
    FraudLimits,
    FraudVerdict,
    UserHistory,
)
from backend_trustrisk.database.models import TransactionRecord
from backend_trustrisk.trustrisk_logging import get_logger

logger = get_logger(__name__)

SIGNAL_AMOUNT_SPIKE = "amount_spike"
SIGNAL_VERY_NEW_ACCOUNT = "very_new_account"
SIGNAL_NEW_ACCOUNT = "new_account"
SIGNAL_FIRST_TRANSACTION = "first_transaction"
SIGNAL_LIMITED_HISTORY = "limited_history"
SIGNAL_POOR_SUCCESS_RATIO = "poor_success_ratio"

SIGNAL_DESCRIPTIONS = {
    SIGNAL_AMOUNT_SPIKE: "amount far above recent average",
    SIGNAL_VERY_NEW_ACCOUNT: "account younger than 7 days",
    SIGNAL_NEW_ACCOUNT: "account younger than 30 days",
    SIGNAL_FIRST_TRANSACTION: "first transaction",
    SIGNAL_LIMITED_HISTORY: "limited transaction history",
    SIGNAL_POOR_SUCCESS_RATIO: "low share of successful transactions",
}


@dataclass
class FraudConfig:
    """Thresholds and weights for the fraud heuristics."""

    high_risk_threshold: float = 0.8
    medium_risk_threshold: float = 0.5
    base_probability: float = 0.1
    max_probability: float = 0.95

    amount_spike_multiple: float = 3.0
    amount_spike_weight: float = 0.3
    very_new_account_days: int = 7
    very_new_account_weight: float = 0.2
    new_account_days: int = 30
    new_account_weight: float = 0.1
    first_transaction_weight: float = 0.2
    limited_history_count: int = 5
    limited_history_weight: float = 0.1
    poor_ratio_threshold: float = 0.7
    poor_ratio_min_transactions: int = 3
    poor_ratio_weight: float = 0.25

    # Inclusion adjustments
    new_user_amount_threshold: float = 50.0
    new_user_discount_factor: float = 0.7
    improvement_discount_factor: float = 0.8

    # apply_limits thresholds
    delay_settlement_above: float = 0.65
    verification_above: float = 0.75


class FraudHeuristicEngine:
    """Computes fraud probability and a recommended action."""

    def __init__(self, config: FraudConfig | None = None) -> None:
        self.config = config or FraudConfig()

    def predict_probability(
        self,
        transaction: TransactionRecord,
        history: UserHistory,
    ) -> tuple[float, list[str]]:
        """Base probability in [0.1, 0.95] and the signals that raised it."""
        cfg = self.config
        probability = cfg.base_probability
        signals: list[str] = []

        amounts = [t.amount for t in history.recent_activity if t.id != transaction.id]
        avg_amount = statistics.mean(amounts) if amounts else 0.0
        if avg_amount > 0 and transaction.amount > avg_amount * cfg.amount_spike_multiple:
            probability += cfg.amount_spike_weight
            signals.append(SIGNAL_AMOUNT_SPIKE)

        if history.account_age_days < cfg.very_new_account_days:
            probability += cfg.very_new_account_weight
            signals.append(SIGNAL_VERY_NEW_ACCOUNT)
        elif history.account_age_days < cfg.new_account_days:
            probability += cfg.new_account_weight
            signals.append(SIGNAL_NEW_ACCOUNT)

        if history.transaction_count == 0:
            probability += cfg.first_transaction_weight
            signals.append(SIGNAL_FIRST_TRANSACTION)
        elif history.transaction_count < cfg.limited_history_count:
            probability += cfg.limited_history_weight
            signals.append(SIGNAL_LIMITED_HISTORY)

        if (
            history.successful_transaction_ratio < cfg.poor_ratio_threshold
            and history.transaction_count > cfg.poor_ratio_min_transactions
        ):
            probability += cfg.poor_ratio_weight
            signals.append(SIGNAL_POOR_SUCCESS_RATIO)

        return min(round(probability, 4), cfg.max_probability), signals

    def apply_inclusion_adjustments(
        self,
        probability: float,
        transaction: TransactionRecord,
        history: UserHistory,
    ) -> float:
        """Multiplicative discounts only; never raises the probability."""
        cfg = self.config
        adjusted = probability
        is_new_user = history.account_age_days < cfg.new_account_days
        if is_new_user and transaction.amount < cfg.new_user_amount_threshold:
            adjusted *= cfg.new_user_discount_factor
        if history.improvement_trend:
            adjusted *= cfg.improvement_discount_factor
        return round(min(adjusted, probability), 4)

    def calculate_limits(self, probability: float, history: UserHistory) -> FraudLimits:
        """Cap tiered by history size, scaled by account age, reduced as risk rises."""
        cfg = self.config
        if history.transaction_count > 10:
            base_max = 500.0
        elif history.transaction_count > 5:
            base_max = 250.0
        else:
            base_max = 100.0

        if history.account_age_days > 90:
            base_max *= 3
        elif history.account_age_days > 30:
            base_max *= 2

        # 0.5 -> 1.0 and 1.0 -> 0.0, never below 10% of the base
        reduction = max(0.1, 1.0 - (probability - cfg.medium_risk_threshold) * 2)
        return FraudLimits(
            max_amount=float(round(base_max * reduction)),
            delay_settlement=probability > cfg.delay_settlement_above,
            require_additional_verification=probability > cfg.verification_above,
        )

    def _reason(self, prefix: str, signals: list[str]) -> str:
        if not signals:
            return prefix
        details = ", ".join(SIGNAL_DESCRIPTIONS[s] for s in signals)
        return f"{prefix}: {details}"

    def determine_action(
        self,
        probability: float,
        base_probability: float,
        history: UserHistory,
        signals: list[str],
    ) -> FraudVerdict:
        cfg = self.config
        if probability > cfg.high_risk_threshold:
            action = (
                FraudAction.ADDITIONAL_VERIFICATION
                if history.has_successful_verifications
                else FraudAction.BLOCK
            )
            return FraudVerdict(
                probability=probability,
                action=action,
                base_probability=base_probability,
                reason=self._reason("High risk transaction pattern detected", signals),
                signals=tuple(signals),
            )
        if probability > cfg.medium_risk_threshold:
            return FraudVerdict(
                probability=probability,
                action=FraudAction.APPLY_LIMITS,
                base_probability=base_probability,
                limits=self.calculate_limits(probability, history),
                reason=self._reason("Medium risk factors identified", signals),
                signals=tuple(signals),
            )
        return FraudVerdict(
            probability=probability,
            action=FraudAction.ALLOW,
            base_probability=base_probability,
            signals=tuple(signals),
        )

    def analyze(self, transaction: TransactionRecord, history: UserHistory) -> FraudVerdict:
        base, signals = self.predict_probability(transaction, history)
        adjusted = self.apply_inclusion_adjustments(base, transaction, history)
        verdict = self.determine_action(adjusted, base, history, signals)
        logger.info(
            "fraud_analyzed",
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            base_probability=base,
            probability=adjusted,
            action=verdict.action.value,
            signals=signals,
        )
        return verdict
