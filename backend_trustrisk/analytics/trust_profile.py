"""
Trust profile tracker: per-user reputation score and its counters.

Score formula (0-100, each component capped independently):
  transactions  = positive / total * 50          (0 when total == 0)
  verifications = min(verification_count * 12.5, 25)
  account age   = min(age_days / 30 * 25, 25)

Account age is derived from the account creation time on every read, so the
age component never needs a background job. Every mutation (verification,
transaction outcome, status transition, claim resolution, profile approval)
recomputes and persists the score under a per-user lock. Mutating a missing
profile is a logged no-op; reading one raises TrustProfileNotFound.
"""

from __future__ import annotations

import time
from typing import Callable

from backend_trustrisk.analytics.limits import TierPolicy, ThresholdTierPolicy
from backend_trustrisk.analytics.models import TrustProfile
from backend_trustrisk.core.exceptions import TrustProfileNotFound
from backend_trustrisk.core.locks import KeyedLock
from backend_trustrisk.database.database import DatabaseBackend
from backend_trustrisk.database.models import TransactionStatus, TrustProfileRecord
from backend_trustrisk.trustrisk_logging import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400

TRANSACTION_COMPONENT_MAX = 50.0
VERIFICATION_POINTS = 12.5
VERIFICATION_COMPONENT_MAX = 25.0
AGE_FULL_CREDIT_DAYS = 30
AGE_COMPONENT_MAX = 25.0

# Recommendation thresholds
RECOMMENDED_VERIFICATIONS = 2
RECOMMENDED_TRANSACTIONS = 5
RECOMMENDED_POSITIVE_RATIO = 0.9

_FAILED_STATES = (TransactionStatus.FAILED, TransactionStatus.FLAGGED)


def account_age_days(account_created_at: int, now_ts: float) -> int:
    """Whole days since account creation; never negative."""
    return max(0, int((now_ts - account_created_at) // SECONDS_PER_DAY))


def score_components(
    positive_transactions: int,
    total_transactions: int,
    verification_count: int,
    age_days: int,
) -> dict[str, float]:
    """Return the three capped components of the reputation score."""
    if total_transactions > 0:
        transactions = positive_transactions / total_transactions * TRANSACTION_COMPONENT_MAX
    else:
        transactions = 0.0
    verifications = min(verification_count * VERIFICATION_POINTS, VERIFICATION_COMPONENT_MAX)
    age = min(age_days / AGE_FULL_CREDIT_DAYS * AGE_COMPONENT_MAX, AGE_COMPONENT_MAX)
    return {
        "transactions": min(max(transactions, 0.0), TRANSACTION_COMPONENT_MAX),
        "verifications": max(verifications, 0.0),
        "account_age": max(age, 0.0),
    }


def compute_score(
    positive_transactions: int,
    total_transactions: int,
    verification_count: int,
    age_days: int,
) -> float:
    """Reputation score in [0, 100]."""
    parts = score_components(positive_transactions, total_transactions, verification_count, age_days)
    return round(sum(parts.values()), 4)


class TrustProfileTracker:
    """Owns the per-user reputation aggregate and its scoring formula."""

    def __init__(
        self,
        db: DatabaseBackend,
        tier_policy: TierPolicy | None = None,
        *,
        locks: KeyedLock | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._tier_policy = tier_policy or ThresholdTierPolicy()
        self._locks = locks or KeyedLock()
        self._clock = clock

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    def _to_profile(self, record: TrustProfileRecord, now_ts: float) -> TrustProfile:
        age = account_age_days(record.account_created_at, now_ts)
        score = compute_score(
            record.positive_transactions,
            record.total_transactions,
            record.verification_count,
            age,
        )
        tier = self._tier_policy.tier_for(
            score,
            verification_count=record.verification_count,
            account_age_days=age,
        )
        return TrustProfile(
            user_id=record.user_id,
            score=score,
            positive_transactions=record.positive_transactions,
            total_transactions=record.total_transactions,
            verification_count=record.verification_count,
            account_age_days=age,
            tier=tier,
        )

    def open_profile(self, user_id: int, account_created_at: int | None = None) -> TrustProfile:
        """Create a zeroed profile for a new user (idempotent) and return it."""
        now = self._clock()
        created = account_created_at if account_created_at is not None else int(now)
        record = self._db.create_trust_profile(user_id, created, updated_at=int(now))
        logger.info("trust_profile_opened", user_id=user_id, account_created_at=record.account_created_at)
        return self._to_profile(record, now)

    def score(self, user_id: int) -> TrustProfile:
        """Current profile with account age and score recomputed for now."""
        record = self._db.get_trust_profile(user_id)
        if record is None:
            raise TrustProfileNotFound(user_id)
        return self._to_profile(record, self._clock())

    def _mutate(
        self,
        user_id: int,
        event_type: str,
        *,
        positive_delta: int = 0,
        total_delta: int = 0,
        verification_delta: int = 0,
    ) -> TrustProfile | None:
        """Serialized read-modify-write of counters followed by a score recompute."""
        with self._locks.hold(user_id):
            record = self._db.get_trust_profile(user_id)
            if record is None:
                logger.warning("trust_profile_missing", user_id=user_id, trigger=event_type)
                return None
            total = max(0, record.total_transactions + total_delta)
            positive = min(max(0, record.positive_transactions + positive_delta), total)
            verifications = max(0, record.verification_count + verification_delta)
            now = self._clock()
            age = account_age_days(record.account_created_at, now)
            score = compute_score(positive, total, verifications, age)
            updated = self._db.update_trust_profile(
                user_id,
                score=score,
                positive_transactions=positive,
                total_transactions=total,
                verification_count=verifications,
                updated_at=int(now),
            )
            if updated is None:
                logger.warning("trust_profile_missing", user_id=user_id, trigger=event_type)
                return None
        logger.info(
            "reputation_recomputed",
            user_id=user_id,
            trigger=event_type,
            score=score,
            positive_transactions=positive,
            total_transactions=total,
            verification_count=verifications,
        )
        return self._to_profile(updated, now)

    def apply_verification(self, user_id: int) -> TrustProfile | None:
        """A verification method succeeded."""
        return self._mutate(user_id, "verification", verification_delta=1)

    def apply_transaction_outcome(self, user_id: int, was_positive: bool) -> TrustProfile | None:
        """A transaction resolved for the first time (completed = positive; failed/flagged = negative)."""
        return self._mutate(
            user_id,
            "transaction_outcome",
            positive_delta=1 if was_positive else 0,
            total_delta=1,
        )

    def apply_status_transition(
        self,
        user_id: int,
        old_status: TransactionStatus,
        new_status: TransactionStatus,
    ) -> TrustProfile | None:
        """
        Adjust counters when a stored transaction changes status.

        pending -> terminal counts as a first outcome. Moving into completed from
        failed/flagged adds a positive; moving out of completed removes one.
        Other transitions do not touch the counters. Returns None when nothing changed.
        """
        old_status = TransactionStatus(old_status)
        new_status = TransactionStatus(new_status)
        if old_status == new_status:
            return None
        if old_status == TransactionStatus.PENDING:
            if new_status == TransactionStatus.COMPLETED:
                return self.apply_transaction_outcome(user_id, was_positive=True)
            if new_status in _FAILED_STATES:
                return self.apply_transaction_outcome(user_id, was_positive=False)
            return None
        if new_status == TransactionStatus.COMPLETED and old_status in _FAILED_STATES:
            return self._mutate(user_id, "transaction_completed", positive_delta=1)
        if old_status == TransactionStatus.COMPLETED and new_status in _FAILED_STATES:
            return self._mutate(user_id, "transaction_reversed", positive_delta=-1)
        return None

    def apply_claim_resolution(self, user_id: int) -> TrustProfile | None:
        """Recompute after a resolved claim. Claims never change the counters."""
        return self._mutate(user_id, "claim_resolved")

    def apply_profile_approval(self, user_id: int) -> TrustProfile | None:
        """Recompute after an approved profile or document submission."""
        return self._mutate(user_id, "profile_approved")

    def recommendations(self, user_id: int) -> list[str]:
        """Concrete next steps that would raise the user's score."""
        profile = self.score(user_id)
        recs: list[str] = []

        if profile.verification_count < RECOMMENDED_VERIFICATIONS:
            if profile.verification_count == 0:
                recs.append("Complete your first verification method to improve your score by 12.5 points")
            else:
                recs.append("Add a second verification method to improve your score by 12.5 points")

        if profile.total_transactions < RECOMMENDED_TRANSACTIONS:
            remaining = RECOMMENDED_TRANSACTIONS - profile.total_transactions
            recs.append(f"Complete {remaining} more successful transactions to build transaction history")
        elif profile.positive_transactions / profile.total_transactions < RECOMMENDED_POSITIVE_RATIO:
            recs.append("Improve your positive transaction rate to enhance your score")

        if profile.account_age_days < AGE_FULL_CREDIT_DAYS:
            remaining_days = AGE_FULL_CREDIT_DAYS - profile.account_age_days
            recs.append(f"Maintain account in good standing for {remaining_days} more days for age bonus")

        if not recs:
            recs.append("Your reputation is excellent. Continue maintaining good transaction history.")
        return recs
