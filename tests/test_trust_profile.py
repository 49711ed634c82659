"""
Pytest tests for the trust profile tracker: score formula, counters, status transitions, tiers.
"""

from __future__ import annotations

import pytest

from conftest import DAY, FIXED_NOW


def test_compute_score_components_capped():
    """Each component is capped independently; the total never exceeds 100."""
    from backend_trustrisk.analytics.trust_profile import compute_score, score_components

    assert compute_score(0, 0, 0, 0) == 0.0
    assert compute_score(10, 10, 2, 30) == 100.0
    assert compute_score(50, 50, 9, 400) == 100.0

    parts = score_components(3, 4, 1, 15)
    assert parts["transactions"] == pytest.approx(37.5)
    assert parts["verifications"] == 12.5
    assert parts["account_age"] == pytest.approx(12.5)


def test_account_age_days_never_negative():
    from backend_trustrisk.analytics.trust_profile import account_age_days

    assert account_age_days(FIXED_NOW, FIXED_NOW) == 0
    assert account_age_days(FIXED_NOW - DAY * 3 - 10, FIXED_NOW) == 3
    assert account_age_days(FIXED_NOW + DAY, FIXED_NOW) == 0


def test_new_profile_starts_at_zero(tracker):
    """Fresh account: no history, no verifications, basic tier."""
    from backend_trustrisk.analytics.models import AccessTier

    profile = tracker.open_profile(1)
    assert profile.score == 0.0
    assert profile.total_transactions == 0
    assert profile.tier == AccessTier.BASIC


def test_open_profile_is_idempotent(tracker):
    tracker.open_profile(1, FIXED_NOW - 10 * DAY)
    again = tracker.open_profile(1, FIXED_NOW)
    assert again.account_age_days == 10


def test_verifications_add_points_up_to_cap(tracker):
    tracker.open_profile(1)
    assert tracker.apply_verification(1).score == 12.5
    assert tracker.apply_verification(1).score == 25.0
    third = tracker.apply_verification(1)
    assert third.score == 25.0
    assert third.verification_count == 3


def test_account_age_recomputed_on_read(tracker, clock):
    """Score grows with account age without any write."""
    tracker.open_profile(1)
    assert tracker.score(1).score == 0.0
    clock.advance(15 * DAY)
    assert tracker.score(1).score == pytest.approx(12.5)
    clock.advance(60 * DAY)
    assert tracker.score(1).score == 25.0


def test_transaction_outcomes(tracker):
    tracker.open_profile(1)
    p = tracker.apply_transaction_outcome(1, was_positive=True)
    assert (p.positive_transactions, p.total_transactions) == (1, 1)
    assert p.score == 50.0
    p = tracker.apply_transaction_outcome(1, was_positive=False)
    assert (p.positive_transactions, p.total_transactions) == (1, 2)
    assert p.score == 25.0


def test_status_transitions_adjust_counters(tracker):
    """pending->completed counts once; reversal removes the positive; re-completion restores it."""
    from backend_trustrisk.database.models import TransactionStatus as S

    tracker.open_profile(1)
    p = tracker.apply_status_transition(1, S.PENDING, S.COMPLETED)
    assert (p.positive_transactions, p.total_transactions) == (1, 1)

    p = tracker.apply_status_transition(1, S.COMPLETED, S.FAILED)
    assert (p.positive_transactions, p.total_transactions) == (0, 1)

    p = tracker.apply_status_transition(1, S.FLAGGED, S.COMPLETED)
    assert (p.positive_transactions, p.total_transactions) == (1, 1)

    p = tracker.apply_status_transition(1, S.PENDING, S.FLAGGED)
    assert (p.positive_transactions, p.total_transactions) == (1, 2)

    # No counter change for these
    assert tracker.apply_status_transition(1, S.FAILED, S.FLAGGED) is None
    assert tracker.apply_status_transition(1, S.COMPLETED, S.COMPLETED) is None
    assert tracker.apply_status_transition(1, S.COMPLETED, S.PENDING) is None
    assert tracker.score(1).total_transactions == 2


def test_positive_never_exceeds_total(tracker):
    from backend_trustrisk.database.models import TransactionStatus as S

    tracker.open_profile(1)
    # Re-completion without a recorded outcome is clamped to total
    p = tracker.apply_status_transition(1, S.FAILED, S.COMPLETED)
    assert p.positive_transactions <= p.total_transactions
    assert 0.0 <= p.score <= 100.0


def test_claim_resolution_does_not_reward(tracker):
    """Claims trigger a recompute only; counters stay the same."""
    tracker.open_profile(1, FIXED_NOW - 40 * DAY)
    tracker.apply_verification(1)
    tracker.apply_transaction_outcome(1, was_positive=True)
    before = tracker.score(1)
    after = tracker.apply_claim_resolution(1)
    assert after.positive_transactions == before.positive_transactions
    assert after.total_transactions == before.total_transactions
    assert after.verification_count == before.verification_count
    assert after.score == before.score

    approved = tracker.apply_profile_approval(1)
    assert approved.score == before.score


def test_missing_profile_read_raises_and_mutation_is_noop(tracker):
    from backend_trustrisk.core.exceptions import TrustProfileNotFound

    with pytest.raises(TrustProfileNotFound):
        tracker.score(99)
    assert tracker.apply_verification(99) is None
    assert tracker.apply_transaction_outcome(99, was_positive=True) is None


def test_score_persisted_on_mutation(tracker, memory_db):
    tracker.open_profile(1)
    tracker.apply_verification(1)
    assert memory_db.get_trust_profile(1).score == 12.5


def test_profile_timestamp_follows_clock(tracker, memory_db, clock):
    tracker.open_profile(1, FIXED_NOW - 10 * DAY)
    assert memory_db.get_trust_profile(1).updated_at == FIXED_NOW

    clock.advance(3 * DAY)
    tracker.apply_verification(1)
    assert memory_db.get_trust_profile(1).updated_at == FIXED_NOW + 3 * DAY


def test_tiers_from_thresholds(tracker):
    """Full needs score 50, two verifications, 30 days; standard needs 25, one, 15."""
    from backend_trustrisk.analytics.models import AccessTier

    tracker.open_profile(1, FIXED_NOW - 15 * DAY)
    tracker.apply_verification(1)
    assert tracker.score(1).tier == AccessTier.STANDARD

    tracker.open_profile(2, FIXED_NOW - 30 * DAY)
    tracker.apply_verification(2)
    tracker.apply_verification(2)
    full = tracker.score(2)
    assert full.score == 50.0
    assert full.tier == AccessTier.FULL

    # High score from transactions alone stays basic without verification
    tracker.open_profile(3)
    tracker.apply_transaction_outcome(3, was_positive=True)
    assert tracker.score(3).score == 50.0
    assert tracker.score(3).tier == AccessTier.BASIC


def test_recommendations(tracker):
    tracker.open_profile(1)
    recs = tracker.recommendations(1)
    assert any("first verification" in r for r in recs)
    assert any("5 more successful transactions" in r for r in recs)
    assert any("30 more days" in r for r in recs)

    tracker.open_profile(2, FIXED_NOW - 60 * DAY)
    tracker.apply_verification(2)
    tracker.apply_verification(2)
    for _ in range(5):
        tracker.apply_transaction_outcome(2, was_positive=True)
    assert tracker.recommendations(2) == [
        "Your reputation is excellent. Continue maintaining good transaction history."
    ]
