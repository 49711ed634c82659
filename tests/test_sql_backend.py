"""
Pytest tests for the SQLAlchemy storage backend on a temporary SQLite DB.
"""

from __future__ import annotations

import pytest

from conftest import DAY, FIXED_NOW


def test_trust_profile_create_is_idempotent(sql_db):
    first = sql_db.create_trust_profile(1, FIXED_NOW - DAY)
    second = sql_db.create_trust_profile(1, FIXED_NOW)
    assert first.account_created_at == second.account_created_at == FIXED_NOW - DAY
    assert second.score == 0.0


def test_trust_profile_update(sql_db):
    sql_db.create_trust_profile(1, FIXED_NOW)
    updated = sql_db.update_trust_profile(1, score=12.5, verification_count=1)
    assert updated.score == 12.5
    assert sql_db.get_trust_profile(1).verification_count == 1
    assert sql_db.update_trust_profile(2, score=1.0) is None
    with pytest.raises(ValueError, match="Unknown trust profile fields"):
        sql_db.update_trust_profile(1, user_id=5)


def test_trust_profile_timestamps_from_caller(sql_db, clock):
    from backend_trustrisk.analytics.trust_profile import TrustProfileTracker

    created = sql_db.create_trust_profile(1, FIXED_NOW - DAY, updated_at=FIXED_NOW - DAY)
    assert created.updated_at == FIXED_NOW - DAY

    tracker = TrustProfileTracker(sql_db, clock=clock)
    clock.advance(DAY)
    tracker.apply_verification(1)
    assert sql_db.get_trust_profile(1).updated_at == FIXED_NOW + DAY


def test_transactions_newest_first(sql_db):
    old = sql_db.create_transaction(1, 10.0, created_at=FIXED_NOW - 2 * DAY)
    new = sql_db.create_transaction(1, 20.0, recipient_id="bob", created_at=FIXED_NOW)
    sql_db.create_transaction(2, 30.0, created_at=FIXED_NOW)
    rows = sql_db.list_transactions(1)
    assert [r.id for r in rows] == [new.id, old.id]
    assert rows[0].recipient_id == "bob"
    assert len(sql_db.list_transactions(1, limit=1)) == 1


def test_transaction_completion_timestamp(sql_db):
    from backend_trustrisk.database.models import TransactionStatus

    tx = sql_db.create_transaction(1, 10.0, created_at=FIXED_NOW - DAY)
    assert tx.status == TransactionStatus.PENDING
    assert tx.completed_at is None

    done = sql_db.update_transaction(tx.id, status=TransactionStatus.COMPLETED, risk_score=12.0, updated_at=FIXED_NOW)
    assert done.completed_at == FIXED_NOW
    assert done.risk_score == 12.0

    # completed_at is set once
    sql_db.update_transaction(tx.id, status=TransactionStatus.FAILED, updated_at=FIXED_NOW + 10)
    again = sql_db.update_transaction(tx.id, status=TransactionStatus.COMPLETED, updated_at=FIXED_NOW + 20)
    assert again.completed_at == FIXED_NOW
    assert sql_db.update_transaction(404, status=TransactionStatus.FAILED) is None


def test_risk_assessment_restrictions_stored_as_json(sql_db):
    tx = sql_db.create_transaction(1, 500.0, created_at=FIXED_NOW)
    sql_db.create_risk_assessment(
        tx.id,
        allowed=True,
        risk_score=64.75,
        restrictions={"max_amount": 50.0, "delayed_settlement": True},
        reason="Medium risk transaction - some precautions applied",
        created_at=FIXED_NOW,
    )
    stored = sql_db.get_risk_assessment(tx.id)
    assert stored.restrictions == {"max_amount": 50.0, "delayed_settlement": True}
    assert stored.risk_score == 64.75
    assert sql_db.get_risk_assessment(404) is None


def test_claim_unique_per_transaction(sql_db):
    from backend_trustrisk.core.exceptions import DuplicateClaimError
    from backend_trustrisk.database.models import ClaimStatus

    claim = sql_db.create_claim(1, 7, description="broken", amount=10.0, created_at=FIXED_NOW)
    assert claim.status == ClaimStatus.PENDING
    with pytest.raises(DuplicateClaimError):
        sql_db.create_claim(1, 7, description="again", amount=10.0, created_at=FIXED_NOW)
    assert sql_db.get_claim_by_transaction(7).id == claim.id
    assert len(sql_db.list_claims(1)) == 1


def test_claim_update(sql_db):
    from backend_trustrisk.database.models import ClaimStatus

    claim = sql_db.create_claim(1, 7, description="broken", amount=10.0, created_at=FIXED_NOW)
    resolved = sql_db.update_claim(claim.id, status=ClaimStatus.APPROVED, settlement_amount=6.0, resolved_at=FIXED_NOW)
    assert resolved.status == ClaimStatus.APPROVED
    assert sql_db.get_claim(claim.id).settlement_amount == 6.0
    assert sql_db.update_claim(404, status=ClaimStatus.REJECTED) is None


def test_get_database_factory(tmp_path):
    from backend_trustrisk.database.database import MemoryBackend, get_database
    from backend_trustrisk.database.sql_backend import SQLAlchemyBackend

    assert isinstance(get_database("memory://"), MemoryBackend)
    assert isinstance(get_database(), MemoryBackend)
    backend = get_database(f"sqlite:///{tmp_path / 'factory.db'}")
    try:
        assert isinstance(backend, SQLAlchemyBackend)
        assert backend.get_trust_profile(1) is None
    finally:
        backend.dispose()


def test_pipeline_on_sql_backend(sql_db, clock):
    """Full flow against SQLite: submission, reputation, coverage, claim."""
    from backend_trustrisk.analytics.models import ClaimRequest
    from backend_trustrisk.analytics.pipeline import TrustRiskPipeline
    from backend_trustrisk.database.models import ClaimStatus, TransactionStatus

    pipeline = TrustRiskPipeline(sql_db, clock=clock)
    pipeline.open_account(1, FIXED_NOW - 60 * DAY)
    pipeline.record_verification(1)
    decision = pipeline.submit_transaction(1, 100.0, recipient_id="merchant")
    assert decision.status == TransactionStatus.COMPLETED
    assert sql_db.get_trust_profile(1).total_transactions == 1

    request = ClaimRequest(user_id=1, transaction_id=decision.transaction.id, amount=80.0, description="late")
    assert pipeline.file_claim(request).approved is True
    assert sql_db.get_claim_by_transaction(decision.transaction.id).status == ClaimStatus.APPROVED
    assert pipeline.file_claim(request).approved is False
