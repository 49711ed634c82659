"""
Coverage underwriter: insure completed transactions and settle claims.

Eligibility is a hard gate (score >= 10, account age >= 7 days, at least one
verification). Coverage limit grows with reputation, account age, and
verifications, capped at min(5000, 5x the transaction amount). Premium is 2%
of the amount, discounted by up to 1.5 points for reputation, minimum 0.50.

Eligibility gates coverage quotes only. Claims are validated (ownership,
completed, age <= 30 days, amount <= 2x, unique per transaction), then settled
at min(claim, limit) * (0.5 + score/100 * 0.5). A settled claim triggers a
reputation recompute but never changes the counters: claims are a safety net,
not a reward signal.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable

from backend_trustrisk.analytics.models import (
    ClaimRequest,
    ClaimResult,
    CoverageDecision,
    Settlement,
    TrustProfile,
)
from backend_trustrisk.analytics.trust_profile import SECONDS_PER_DAY, TrustProfileTracker
from backend_trustrisk.core.exceptions import DuplicateClaimError, TransactionNotFound
from backend_trustrisk.database.database import DatabaseBackend
from backend_trustrisk.database.models import ClaimRecord, ClaimStatus, TransactionRecord
from backend_trustrisk.trustrisk_logging import get_logger

logger = get_logger(__name__)

REASON_NOT_COMPLETED = "Transaction must be completed to file a claim"
REASON_TOO_OLD = "Transaction is too old for a claim (max 30 days)"
REASON_EXCESSIVE_AMOUNT = "Claim amount exceeds maximum allowed (2x transaction amount)"
REASON_DUPLICATE = "A claim already exists for this transaction"
REASON_NOT_OWNER = "Transaction does not belong to this user"
REASON_NON_POSITIVE = "Claim amount must be positive"


@dataclass
class CoverageConfig:
    """Underwriting thresholds."""

    min_reputation_score: float = 10.0
    min_account_age_days: int = 7
    min_verifications: int = 1

    base_limit: float = 50.0
    score_limit_multiplier: float = 2.0
    veteran_age_days: int = 90
    veteran_multiplier: float = 2.0
    established_age_days: int = 30
    established_multiplier: float = 1.5
    per_verification_bonus: float = 0.25
    max_coverage_limit: float = 5000.0
    max_limit_to_amount: float = 5.0

    base_premium_rate: float = 0.02
    max_premium_discount: float = 0.015
    min_premium: float = 0.5

    max_claim_to_amount: float = 2.0
    claim_window_days: int = 30


class CoverageUnderwriter:
    """Prices coverage for completed transactions and settles claims against it."""

    def __init__(
        self,
        db: DatabaseBackend,
        tracker: TrustProfileTracker,
        config: CoverageConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._tracker = tracker
        self.config = config or CoverageConfig()
        self._clock = clock

    # --- coverage ---

    def eligibility(self, profile: TrustProfile) -> str | None:
        """Return the first failed requirement, or None when eligible."""
        cfg = self.config
        if profile.score < cfg.min_reputation_score:
            return "Reputation score too low for coverage"
        if profile.account_age_days < cfg.min_account_age_days:
            return f"Account too new for coverage (minimum {cfg.min_account_age_days} days)"
        if profile.verification_count < cfg.min_verifications:
            return "At least one verification required for coverage"
        return None

    def coverage_limit(self, transaction: TransactionRecord, profile: TrustProfile) -> float:
        cfg = self.config
        limit = cfg.base_limit + profile.score * cfg.score_limit_multiplier
        if profile.account_age_days > cfg.veteran_age_days:
            limit *= cfg.veteran_multiplier
        elif profile.account_age_days > cfg.established_age_days:
            limit *= cfg.established_multiplier
        limit *= 1 + profile.verification_count * cfg.per_verification_bonus
        return min(cfg.max_coverage_limit, limit, transaction.amount * cfg.max_limit_to_amount)

    def premium(self, transaction: TransactionRecord, profile: TrustProfile) -> float:
        cfg = self.config
        rate = cfg.base_premium_rate - min(cfg.max_premium_discount, profile.score / 100.0 * cfg.max_premium_discount)
        return round(max(cfg.min_premium, transaction.amount * rate), 2)

    def evaluate_coverage(self, transaction: TransactionRecord, profile: TrustProfile) -> CoverageDecision:
        """Coverage for a completed transaction; declined decisions name the failed requirement."""
        if not transaction.is_completed:
            decision = CoverageDecision.declined("Coverage is only available for completed transactions")
        else:
            reason = self.eligibility(profile)
            if reason is not None:
                decision = CoverageDecision.declined(reason)
            else:
                decision = CoverageDecision(
                    covered=True,
                    coverage_limit=self.coverage_limit(transaction, profile),
                    premium=self.premium(transaction, profile),
                )
        logger.info(
            "coverage_evaluated",
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            covered=decision.covered,
            coverage_limit=decision.coverage_limit,
            premium=decision.premium,
            reason=decision.reason,
        )
        return decision

    # --- claims ---

    def validate_claim(self, request: ClaimRequest, transaction: TransactionRecord) -> str | None:
        """Return a rejection reason, or None when the claim may be settled."""
        cfg = self.config
        if transaction.user_id != request.user_id:
            return REASON_NOT_OWNER
        if request.amount <= 0:
            return REASON_NON_POSITIVE
        if not transaction.is_completed:
            return REASON_NOT_COMPLETED
        reference_ts = transaction.completed_at or transaction.created_at
        if self._clock() - reference_ts > cfg.claim_window_days * SECONDS_PER_DAY:
            return REASON_TOO_OLD
        if request.amount > transaction.amount * cfg.max_claim_to_amount:
            return REASON_EXCESSIVE_AMOUNT
        if self._db.get_claim_by_transaction(transaction.id) is not None:
            return REASON_DUPLICATE
        return None

    @staticmethod
    def calculate_settlement(claim_amount: float, coverage_limit: float, reputation_score: float) -> float:
        """min(claim, limit) scaled by 0.5-1.0 for reputation, rounded to cents, never above the cap."""
        capped = min(claim_amount, coverage_limit)
        factor = min(1.0, 0.5 + reputation_score / 100.0 * 0.5)
        settlement = round(capped * factor, 2)
        if settlement > capped:
            settlement = math.floor(capped * 100) / 100
        return settlement

    def _settle(self, claim: ClaimRecord, coverage_limit: float, profile: TrustProfile) -> ClaimResult:
        amount = self.calculate_settlement(claim.amount, coverage_limit, profile.score)
        now = int(self._clock())
        self._db.update_claim(
            claim.id,
            status=ClaimStatus.APPROVED,
            settlement_amount=amount,
            resolved_at=now,
        )
        logger.info(
            "claim_settled",
            user_id=claim.user_id,
            transaction_id=claim.transaction_id,
            claim_id=claim.id,
            claim_amount=claim.amount,
            coverage_limit=coverage_limit,
            settlement_amount=amount,
        )
        self._tracker.apply_claim_resolution(claim.user_id)
        notes = f"Claim settled for {claim.description}" if claim.description else "Claim settled"
        return ClaimResult(
            approved=True,
            settlement_amount=amount,
            settlement=Settlement(id=str(claim.id), amount=amount, date=now, notes=notes),
            claim_id=claim.id,
        )

    def _reject(self, request: ClaimRequest, reason: str) -> ClaimResult:
        logger.info(
            "claim_rejected",
            user_id=request.user_id,
            transaction_id=request.transaction_id,
            claim_amount=request.amount,
            reason=reason,
        )
        return ClaimResult.rejected(reason)

    def file_claim(self, request: ClaimRequest) -> ClaimResult:
        """
        File, validate, and settle a claim in one call.

        Unknown transactions and users raise NotFoundError subclasses; every
        policy failure is a rejected ClaimResult with a reason. Rejected claims
        are not stored, so a corrected claim can be filed again.
        """
        transaction = self._db.get_transaction(request.transaction_id)
        if transaction is None:
            raise TransactionNotFound(request.transaction_id)

        reason = self.validate_claim(request, transaction)
        if reason is not None:
            return self._reject(request, reason)

        profile = self._tracker.score(request.user_id)
        limit = self.coverage_limit(transaction, profile)

        try:
            claim = self._db.create_claim(
                request.user_id,
                request.transaction_id,
                description=request.description,
                amount=request.amount,
                created_at=int(self._clock()),
            )
        except DuplicateClaimError:
            return self._reject(request, REASON_DUPLICATE)

        return self._settle(claim, limit, profile)
