"""
Trust and risk pipeline: single entrypoint over the tracker, engines, and underwriter.

submit_transaction runs the full flow: pending transaction -> risk verdict ->
fraud verdict -> merge_verdicts -> final status -> reputation outcome ->
coverage for completed transactions. The individual operations
(evaluate_transaction_risk, analyze_fraud, get_transaction_limits,
get_reputation_score, evaluate_for_coverage, file_claim) are exposed for callers
that drive the steps themselves.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from backend_trustrisk.analytics.coverage import CoverageConfig, CoverageUnderwriter
from backend_trustrisk.analytics.fraud_engine import FraudConfig, FraudHeuristicEngine
from backend_trustrisk.analytics.history import HistorySupplier
from backend_trustrisk.analytics.limits import (
    ThresholdTierPolicy,
    TierThreshold,
    TransactionLimitPolicy,
)
from backend_trustrisk.analytics.models import (
    AccessTier,
    ClaimRequest,
    ClaimResult,
    CoverageDecision,
    FraudAction,
    FraudVerdict,
    RiskVerdict,
    TransactionDecision,
    TransactionLimits,
    TrustProfile,
    UserHistory,
)
from backend_trustrisk.analytics.risk_engine import RiskConfig, RiskEngine
from backend_trustrisk.analytics.trust_profile import TrustProfileTracker
from backend_trustrisk.config.settings import Settings, get_settings
from backend_trustrisk.core.exceptions import ClaimNotFound, NotFoundError, TransactionNotFound
from backend_trustrisk.core.locks import KeyedLock
from backend_trustrisk.database.database import DatabaseBackend, get_database
from backend_trustrisk.database.models import ClaimRecord, TransactionRecord, TransactionStatus
from backend_trustrisk.trustrisk_logging import configure_structlog, get_logger, level_from_name

logger = get_logger(__name__)

NOTE_BLOCKED = "Blocked by fraud screening"
NOTE_VERIFICATION = "Additional verification required before settlement"
NOTE_DELAYED = "Settlement delayed for review"


def merge_verdicts(
    transaction: TransactionRecord,
    risk: RiskVerdict,
    fraud: FraudVerdict,
) -> tuple[TransactionStatus, list[str]]:
    """
    Combine risk and fraud verdicts into a final transaction status.

    block -> flagged. Any verification requirement (fraud action or either
    verdict's restrictions/limits) or an amount above either cap -> pending.
    Otherwise completed. Notes explain every non-completed outcome.
    """
    notes: list[str] = []
    if fraud.action == FraudAction.BLOCK:
        notes.append(NOTE_BLOCKED)
        if fraud.reason:
            notes.append(fraud.reason)
        return TransactionStatus.FLAGGED, notes

    restrictions = risk.restrictions
    limits = fraud.limits
    needs_verification = (
        fraud.action == FraudAction.ADDITIONAL_VERIFICATION
        or (restrictions is not None and restrictions.requires_additional_verification)
        or (limits is not None and limits.require_additional_verification)
    )
    if needs_verification:
        notes.append(NOTE_VERIFICATION)

    caps = []
    if restrictions is not None and restrictions.max_amount is not None:
        caps.append(restrictions.max_amount)
    if limits is not None:
        caps.append(limits.max_amount)
    over_cap = bool(caps) and transaction.amount > min(caps)
    if over_cap:
        notes.append(f"Amount exceeds the current maximum of {min(caps):.2f}")

    if (restrictions is not None and restrictions.delayed_settlement) or (
        limits is not None and limits.delay_settlement
    ):
        notes.append(NOTE_DELAYED)

    if needs_verification or over_cap:
        return TransactionStatus.PENDING, notes
    return TransactionStatus.COMPLETED, notes


class TrustRiskPipeline:
    """Synchronous facade; one call per request, no network I/O."""

    def __init__(
        self,
        db: DatabaseBackend,
        tracker: TrustProfileTracker | None = None,
        limit_policy: TransactionLimitPolicy | None = None,
        risk_engine: RiskEngine | None = None,
        fraud_engine: FraudHeuristicEngine | None = None,
        underwriter: CoverageUnderwriter | None = None,
        history: HistorySupplier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db = db
        self._clock = clock
        self.tracker = tracker or TrustProfileTracker(db, clock=clock)
        self.limit_policy = limit_policy or TransactionLimitPolicy()
        self.risk_engine = risk_engine or RiskEngine(self.limit_policy)
        self.fraud_engine = fraud_engine or FraudHeuristicEngine()
        self.underwriter = underwriter or CoverageUnderwriter(db, self.tracker, clock=clock)
        self.history = history or HistorySupplier(db, self.tracker)
        self._transaction_locks = KeyedLock()

    @property
    def transaction_locks(self) -> KeyedLock:
        return self._transaction_locks

    # --- accounts ---

    def open_account(self, user_id: int, account_created_at: int | None = None) -> TrustProfile:
        return self.tracker.open_profile(user_id, account_created_at)

    def record_verification(self, user_id: int) -> TrustProfile | None:
        return self.tracker.apply_verification(user_id)

    def get_reputation_score(self, user_id: int) -> TrustProfile:
        return self.tracker.score(user_id)

    def get_transaction_limits(self, user_id: int) -> TransactionLimits:
        return self.limit_policy.limits_for(self.tracker.score(user_id))

    # --- verdicts ---

    def evaluate_transaction_risk(self, transaction: TransactionRecord) -> RiskVerdict:
        """Risk verdict for a stored transaction; the assessment and risk score are persisted."""
        profile = self.tracker.score(transaction.user_id)
        recent = self.history.recent_transactions(
            transaction.user_id,
            exclude_transaction_id=transaction.id,
        )
        verdict = self.risk_engine.evaluate(transaction, profile, recent)
        now = int(self._clock())
        self.db.create_risk_assessment(
            transaction.id,
            allowed=verdict.allowed,
            risk_score=verdict.risk_score,
            restrictions=verdict.restrictions.to_dict() if verdict.restrictions else {},
            reason=verdict.reason,
            created_at=now,
        )
        self.db.update_transaction(transaction.id, risk_score=verdict.risk_score, updated_at=now)
        return verdict

    def analyze_fraud(
        self,
        transaction: TransactionRecord,
        history: UserHistory | None = None,
    ) -> FraudVerdict:
        if history is None:
            history = self.history.for_user(transaction.user_id, exclude_transaction_id=transaction.id)
        return self.fraud_engine.analyze(transaction, history)

    def evaluate_for_coverage(self, transaction: TransactionRecord) -> CoverageDecision:
        profile = self.tracker.score(transaction.user_id)
        return self.underwriter.evaluate_coverage(transaction, profile)

    def file_claim(self, request: ClaimRequest) -> ClaimResult:
        return self.underwriter.file_claim(request)

    def get_claim(self, claim_id: int) -> ClaimRecord:
        claim = self.db.get_claim(claim_id)
        if claim is None:
            raise ClaimNotFound(claim_id)
        return claim

    def list_claims(self, user_id: int) -> list[ClaimRecord]:
        self.tracker.score(user_id)
        return self.db.list_claims(user_id)

    def get_risk_breakdown(self, transaction_id: int) -> dict[str, Any]:
        """Stored assessment for a transaction plus the factors recomputed against current history."""
        transaction = self.db.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFound(transaction_id)
        assessment = self.db.get_risk_assessment(transaction_id)
        if assessment is None:
            raise NotFoundError(f"No risk assessment found for transaction {transaction_id}")
        profile = self.tracker.score(transaction.user_id)
        recent = self.history.recent_transactions(
            transaction.user_id,
            exclude_transaction_id=transaction.id,
        )
        factors = self.risk_engine.calculate_factors(transaction, profile, recent)
        return {
            "transaction_id": transaction_id,
            "risk_score": assessment.risk_score,
            "allowed": assessment.allowed,
            "restrictions": dict(assessment.restrictions),
            "reason": assessment.reason,
            "assessed_at": assessment.created_at,
            "reputation_score": profile.score,
            "factors": [f.to_dict() for f in factors],
        }

    # --- transactions ---

    def update_transaction_status(
        self,
        transaction_id: int,
        new_status: TransactionStatus,
    ) -> TransactionRecord:
        """Change status and apply the matching reputation adjustment exactly once."""
        new_status = TransactionStatus(new_status)
        with self._transaction_locks.hold(transaction_id):
            transaction = self.db.get_transaction(transaction_id)
            if transaction is None:
                raise TransactionNotFound(transaction_id)
            old_status = transaction.status
            if old_status == new_status:
                return transaction
            updated = self.db.update_transaction(
                transaction_id,
                status=new_status,
                updated_at=int(self._clock()),
            )
            if updated is None:
                raise TransactionNotFound(transaction_id)
            self.tracker.apply_status_transition(transaction.user_id, old_status, new_status)
        logger.info(
            "transaction_status_changed",
            user_id=transaction.user_id,
            transaction_id=transaction_id,
            old_status=old_status.value,
            new_status=new_status.value,
        )
        return updated

    def submit_transaction(
        self,
        user_id: int,
        amount: float,
        recipient_id: str | None = None,
        created_at: int | None = None,
    ) -> TransactionDecision:
        """Create a transaction and run it through risk, fraud, status, and coverage."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        # Unknown users fail before anything is stored
        self.tracker.score(user_id)

        transaction = self.db.create_transaction(
            user_id,
            amount,
            recipient_id=recipient_id,
            created_at=created_at if created_at is not None else int(self._clock()),
        )
        risk = self.evaluate_transaction_risk(transaction)
        fraud = self.analyze_fraud(transaction)
        status, notes = merge_verdicts(transaction, risk, fraud)

        if status != TransactionStatus.PENDING:
            transaction = self.update_transaction_status(transaction.id, status)
        else:
            transaction = self.db.get_transaction(transaction.id) or transaction

        coverage = self.evaluate_for_coverage(transaction) if transaction.is_completed else None
        logger.info(
            "transaction_submitted",
            user_id=user_id,
            transaction_id=transaction.id,
            amount=amount,
            status=transaction.status.value,
            risk_score=risk.risk_score,
            fraud_action=fraud.action.value,
            covered=coverage.covered if coverage else None,
        )
        return TransactionDecision(
            transaction=transaction,
            risk=risk,
            fraud=fraud,
            coverage=coverage,
            notes=notes,
        )


def _tier_policy(settings: Settings) -> ThresholdTierPolicy:
    return ThresholdTierPolicy(
        (
            TierThreshold(
                AccessTier.FULL,
                min_score=settings.tier_full_min_score,
                min_verifications=settings.tier_full_min_verifications,
                min_account_age_days=settings.tier_full_min_age_days,
            ),
            TierThreshold(
                AccessTier.STANDARD,
                min_score=settings.tier_standard_min_score,
                min_verifications=settings.tier_standard_min_verifications,
                min_account_age_days=settings.tier_standard_min_age_days,
            ),
        )
    )


def build_pipeline(
    settings: Settings | None = None,
    db: DatabaseBackend | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> TrustRiskPipeline:
    """
    Wire a pipeline from Settings.

    Logging is reconfigured from settings.log_level and settings.log_format.
    Storage comes from settings.database_url unless db is given; tier thresholds,
    the fraud small-transaction threshold, and business hours come from settings.
    """
    settings = settings or get_settings()
    configure_structlog(level_from_name(settings.log_level), settings.log_format)
    db = db or get_database(settings.database_url)
    tracker = TrustProfileTracker(db, _tier_policy(settings), clock=clock)
    limit_policy = TransactionLimitPolicy()
    risk_engine = RiskEngine(
        limit_policy,
        RiskConfig(
            business_hours_start=settings.business_hours_start,
            business_hours_end=settings.business_hours_end,
        ),
    )
    fraud_engine = FraudHeuristicEngine(
        FraudConfig(new_user_amount_threshold=settings.fraud_new_user_amount_threshold)
    )
    underwriter = CoverageUnderwriter(db, tracker, CoverageConfig(), clock=clock)
    logger.info(
        "pipeline_built",
        storage=type(db).__name__,
        tier_full_min_score=settings.tier_full_min_score,
        tier_standard_min_score=settings.tier_standard_min_score,
    )
    return TrustRiskPipeline(
        db,
        tracker=tracker,
        limit_policy=limit_policy,
        risk_engine=risk_engine,
        fraud_engine=fraud_engine,
        underwriter=underwriter,
        history=HistorySupplier(db, tracker),
        clock=clock,
    )
