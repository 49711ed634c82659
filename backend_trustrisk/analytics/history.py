"""
User-history supplier for fraud analysis.

Builds a UserHistory from stored transactions and the trust profile: counts,
success ratio, account age, verification flag, recent activity, and an
improvement trend. Trend rule: with at least 4 resolved transactions, compare
the success ratio of the newer half against the older half; a rise of at
least 0.1 counts as improving. Deterministic; no ML.
"""

from __future__ import annotations

from backend_trustrisk.analytics.models import UserHistory
from backend_trustrisk.analytics.trust_profile import TrustProfileTracker
from backend_trustrisk.database.database import DatabaseBackend
from backend_trustrisk.database.models import TransactionRecord, TransactionStatus
from backend_trustrisk.trustrisk_logging import get_logger

logger = get_logger(__name__)

RECENT_ACTIVITY_WINDOW = 10
HISTORY_SCAN_LIMIT = 200
MIN_RESOLVED_FOR_TREND = 4
TREND_RATIO_DELTA = 0.1


def _success_ratio(transactions: list[TransactionRecord]) -> float | None:
    if not transactions:
        return None
    completed = sum(1 for t in transactions if t.status == TransactionStatus.COMPLETED)
    return completed / len(transactions)


def improvement_trend(resolved_newest_first: list[TransactionRecord]) -> bool:
    """True when the newer half of resolved transactions succeeds noticeably more often."""
    if len(resolved_newest_first) < MIN_RESOLVED_FOR_TREND:
        return False
    half = len(resolved_newest_first) // 2
    newer = _success_ratio(resolved_newest_first[:half])
    older = _success_ratio(resolved_newest_first[half:])
    if newer is None or older is None:
        return False
    return newer - older >= TREND_RATIO_DELTA


class HistorySupplier:
    """Reads history for one user from storage; the engines never query storage themselves."""

    def __init__(
        self,
        db: DatabaseBackend,
        tracker: TrustProfileTracker,
        *,
        recent_window: int = RECENT_ACTIVITY_WINDOW,
    ) -> None:
        self._db = db
        self._tracker = tracker
        self._recent_window = recent_window

    def recent_transactions(
        self,
        user_id: int,
        *,
        exclude_transaction_id: int | None = None,
        limit: int = HISTORY_SCAN_LIMIT,
    ) -> list[TransactionRecord]:
        rows = self._db.list_transactions(user_id, limit=limit)
        return [t for t in rows if t.id != exclude_transaction_id]

    def for_user(self, user_id: int, *, exclude_transaction_id: int | None = None) -> UserHistory:
        profile = self._tracker.score(user_id)
        transactions = self.recent_transactions(user_id, exclude_transaction_id=exclude_transaction_id)
        resolved = [t for t in transactions if t.status != TransactionStatus.PENDING]

        if profile.total_transactions > 0:
            ratio = profile.positive_transactions / profile.total_transactions
        else:
            ratio = 1.0

        history = UserHistory(
            transaction_count=profile.total_transactions,
            successful_transaction_ratio=ratio,
            account_age_days=profile.account_age_days,
            has_successful_verifications=profile.verification_count > 0,
            recent_activity=tuple(transactions[: self._recent_window]),
            improvement_trend=improvement_trend(resolved),
            verification_count=profile.verification_count,
        )
        logger.debug(
            "user_history_built",
            user_id=user_id,
            transaction_count=history.transaction_count,
            success_ratio=round(ratio, 4),
            improving=history.improvement_trend,
        )
        return history
