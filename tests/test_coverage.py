"""
Pytest tests for the coverage underwriter: eligibility, limits, premiums, claims and settlements.
"""

from __future__ import annotations

import pytest

from conftest import DAY, FIXED_NOW, make_profile


@pytest.fixture
def underwriter(memory_db, tracker, clock):
    from backend_trustrisk.analytics.coverage import CoverageUnderwriter

    return CoverageUnderwriter(memory_db, tracker, clock=clock)


def _open_user(tracker, user_id: int = 1, *, age_days: int = 60, verifications: int = 1):
    tracker.open_profile(user_id, FIXED_NOW - age_days * DAY)
    for _ in range(verifications):
        tracker.apply_verification(user_id)
    return tracker.score(user_id)


def _completed(db, user_id: int = 1, amount: float = 100.0, days_ago: int = 1):
    from backend_trustrisk.database.models import TransactionStatus

    return db.create_transaction(
        user_id,
        amount,
        recipient_id="merchant",
        status=TransactionStatus.COMPLETED,
        created_at=FIXED_NOW - days_ago * DAY,
    )


def _claim(tx, amount: float, user_id: int | None = None, description: str = "Item not received"):
    from backend_trustrisk.analytics.models import ClaimRequest

    return ClaimRequest(
        user_id=tx.user_id if user_id is None else user_id,
        transaction_id=tx.id,
        amount=amount,
        description=description,
    )


# --- Coverage ---


def test_coverage_limit_and_premium(underwriter, tracker, memory_db):
    """Score 37.5, 60 days, one verification: limit 234.375, premium 1.44 on $100."""
    profile = _open_user(tracker)
    assert profile.score == 37.5
    decision = underwriter.evaluate_coverage(_completed(memory_db), profile)
    assert decision.covered is True
    assert decision.coverage_limit == pytest.approx(234.375)
    assert decision.premium == 1.44
    assert decision.reason is None


def test_coverage_limit_capped_by_amount_and_age_multiplier(underwriter, tracker, memory_db):
    profile = _open_user(tracker, age_days=100, verifications=2)
    small = underwriter.evaluate_coverage(_completed(memory_db, amount=10.0), profile)
    assert small.coverage_limit == 50.0
    assert small.premium == 0.5

    large = underwriter.evaluate_coverage(_completed(memory_db, amount=1000.0), profile)
    # (50 + 50*2) x2 (veteran) x1.5 (two verifications)
    assert large.coverage_limit == pytest.approx(450.0)


def test_coverage_never_exceeds_hard_cap(underwriter, memory_db):
    profile = make_profile(100.0, verifications=100, age_days=400)
    decision = underwriter.evaluate_coverage(_completed(memory_db, amount=100000.0), profile)
    assert decision.coverage_limit == 5000.0


@pytest.mark.parametrize(
    "age_days,verifications,reason",
    [
        (3, 1, "Account too new for coverage (minimum 7 days)"),
        (8, 0, "Reputation score too low for coverage"),
        (60, 0, "At least one verification required for coverage"),
    ],
)
def test_coverage_eligibility(underwriter, tracker, memory_db, age_days, verifications, reason):
    profile = _open_user(tracker, age_days=age_days, verifications=verifications)
    decision = underwriter.evaluate_coverage(_completed(memory_db), profile)
    assert decision.covered is False
    assert decision.reason == reason
    assert decision.coverage_limit is None


def test_coverage_only_for_completed(underwriter, tracker, memory_db):
    profile = _open_user(tracker)
    pending = memory_db.create_transaction(1, 100.0, created_at=FIXED_NOW)
    decision = underwriter.evaluate_coverage(pending, profile)
    assert decision.covered is False
    assert decision.reason == "Coverage is only available for completed transactions"


# --- Claims ---


def test_claim_settled(underwriter, tracker, memory_db):
    """$80 claim at score 37.5: 80 x (0.5 + 0.375*0.5) = 55.00."""
    from backend_trustrisk.database.models import ClaimStatus

    _open_user(tracker)
    tx = _completed(memory_db)
    result = underwriter.file_claim(_claim(tx, 80.0))
    assert result.approved is True
    assert result.settlement_amount == 55.0
    assert result.settlement.amount == 55.0
    assert result.settlement.date == FIXED_NOW
    assert result.settlement.notes == "Claim settled for Item not received"
    assert result.settlement.id == str(result.claim_id)

    stored = memory_db.get_claim_by_transaction(tx.id)
    assert stored.status == ClaimStatus.APPROVED
    assert stored.settlement_amount == 55.0
    assert stored.resolved_at == FIXED_NOW


def test_claim_too_old_rejected(underwriter, tracker, memory_db):
    from backend_trustrisk.analytics.coverage import REASON_TOO_OLD

    _open_user(tracker)
    tx = _completed(memory_db, days_ago=40)
    result = underwriter.file_claim(_claim(tx, 50.0))
    assert result.approved is False
    assert result.reason == REASON_TOO_OLD
    assert result.settlement is None
    # Rejected claims are not stored
    assert memory_db.get_claim_by_transaction(tx.id) is None


def test_claim_age_checked_before_amount(underwriter, tracker, memory_db):
    from backend_trustrisk.analytics.coverage import REASON_TOO_OLD

    _open_user(tracker)
    tx = _completed(memory_db, days_ago=40)
    assert underwriter.file_claim(_claim(tx, 1000.0)).reason == REASON_TOO_OLD


def test_claim_window_measured_from_completion(underwriter, tracker, memory_db, clock):
    """A transaction created long ago but completed recently is still claimable."""
    from backend_trustrisk.database.models import TransactionStatus

    _open_user(tracker)
    tx = memory_db.create_transaction(1, 100.0, created_at=FIXED_NOW - 45 * DAY)
    memory_db.update_transaction(tx.id, status=TransactionStatus.COMPLETED, updated_at=FIXED_NOW - 2 * DAY)
    assert underwriter.file_claim(_claim(tx, 10.0)).approved is True


def test_claim_excessive_amount_rejected(underwriter, tracker, memory_db):
    from backend_trustrisk.analytics.coverage import REASON_EXCESSIVE_AMOUNT

    _open_user(tracker)
    tx = _completed(memory_db)
    assert underwriter.file_claim(_claim(tx, 201.0)).reason == REASON_EXCESSIVE_AMOUNT


def test_claim_on_pending_transaction_rejected(underwriter, tracker, memory_db):
    from backend_trustrisk.analytics.coverage import REASON_NOT_COMPLETED

    _open_user(tracker)
    tx = memory_db.create_transaction(1, 100.0, created_at=FIXED_NOW)
    assert underwriter.file_claim(_claim(tx, 10.0)).reason == REASON_NOT_COMPLETED


def test_claim_by_other_user_rejected(underwriter, tracker, memory_db):
    from backend_trustrisk.analytics.coverage import REASON_NOT_OWNER

    _open_user(tracker, 1)
    _open_user(tracker, 2)
    tx = _completed(memory_db, user_id=1)
    assert underwriter.file_claim(_claim(tx, 10.0, user_id=2)).reason == REASON_NOT_OWNER


def test_duplicate_claim_rejected(underwriter, tracker, memory_db):
    from backend_trustrisk.analytics.coverage import REASON_DUPLICATE

    _open_user(tracker)
    tx = _completed(memory_db)
    assert underwriter.file_claim(_claim(tx, 10.0)).approved is True
    second = underwriter.file_claim(_claim(tx, 10.0))
    assert second.approved is False
    assert second.reason == REASON_DUPLICATE
    assert len(memory_db.list_claims(1)) == 1


def test_claim_settled_for_user_without_coverage_eligibility(underwriter, tracker, memory_db):
    """Eligibility gates quotes only; a valid claim still settles against the computed limit."""
    _open_user(tracker, verifications=0)
    tx = _completed(memory_db)
    assert underwriter.evaluate_coverage(tx, tracker.score(1)).covered is False

    result = underwriter.file_claim(_claim(tx, 50.0))
    # score 25, limit 150; 50 * (0.5 + 0.25 * 0.5)
    assert result.approved is True
    assert result.settlement_amount == pytest.approx(31.25)
    assert memory_db.get_claim(result.claim_id).status.value == "approved"


def test_claim_non_positive_amount_rejected(underwriter, tracker, memory_db):
    from backend_trustrisk.analytics.coverage import REASON_NON_POSITIVE

    _open_user(tracker)
    tx = _completed(memory_db)
    assert underwriter.file_claim(_claim(tx, 0.0)).reason == REASON_NON_POSITIVE


def test_claim_unknown_transaction_raises(underwriter, tracker):
    from backend_trustrisk.analytics.models import ClaimRequest
    from backend_trustrisk.core.exceptions import TransactionNotFound

    _open_user(tracker)
    with pytest.raises(TransactionNotFound):
        underwriter.file_claim(ClaimRequest(user_id=1, transaction_id=404, amount=10.0))


def test_claim_does_not_change_reputation_counters(underwriter, tracker, memory_db):
    _open_user(tracker)
    tx = _completed(memory_db)
    before = tracker.score(1)
    underwriter.file_claim(_claim(tx, 80.0))
    after = tracker.score(1)
    assert after.positive_transactions == before.positive_transactions
    assert after.total_transactions == before.total_transactions
    assert after.score == before.score


def test_settlement_bounded_by_claim_and_limit():
    from backend_trustrisk.analytics.coverage import CoverageUnderwriter

    settle = CoverageUnderwriter.calculate_settlement
    assert settle(100.0, 50.0, 100.0) == 50.0
    assert settle(100.0, 1000.0, 0.0) == 50.0
    assert settle(33.33, 1000.0, 33.0) == 22.16
    for claim in (0.01, 1.0, 19.99, 80.0, 333.33):
        for limit in (0.5, 25.0, 234.375, 5000.0):
            for score in (0.0, 12.5, 37.5, 99.9, 100.0):
                amount = settle(claim, limit, score)
                assert 0 <= amount <= min(claim, limit)
