"""
Tests for OrphanReconciliationService.

Verifies:
- Orphan queue listing and counts
- Match links the payment and calculates commissions
- Exclusion is terminal and requires a reason
- A second operator acting on the same payment gets a clear error
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from commission_kernel.domain.values import ReviewStatus
from commission_kernel.exceptions import ImmutabilityViolationError
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.services.orphan_service import OrphanReconciliationService


@pytest.fixture
def reconciler(session, policy, deterministic_clock):
    return OrphanReconciliationService(session, policy, deterministic_clock)


class TestOrphanQueue:
    def test_lists_unlinked_payments(self, reconciler, team, make_client, make_payment):
        orphan = make_payment(customer_email="who@example.com")
        make_payment(client=make_client(coach=team.coach))

        orphans = reconciler.list_orphans()

        assert [o.payment_id for o in orphans] == [orphan.id]
        assert orphans[0].review_status == ReviewStatus.PENDING_REVIEW
        assert orphans[0].customer_email == "who@example.com"
        assert reconciler.pending_review_count() == 1

    def test_excluded_hidden_by_default(self, reconciler, make_payment, test_actor_id):
        orphan = make_payment()
        reconciler.exclude(orphan.id, "Test charge", test_actor_id)

        assert reconciler.list_orphans() == []
        assert [o.payment_id for o in reconciler.list_orphans(include_excluded=True)] == [orphan.id]
        assert reconciler.pending_review_count() == 0

    def test_search_clients(self, reconciler, make_client):
        make_client(name="Jane Doe", email="jane@example.com")
        make_client(name="John Smith", email="john@example.com")

        candidates = reconciler.search_clients("jane")

        assert [c.name for c in candidates] == ["Jane Doe"]
        assert 0 < candidates[0].score <= 1


class TestMatch:
    def test_match_links_and_calculates(self, session, reconciler, team, make_client, make_payment, test_actor_id):
        client = make_client(coach=team.coach, closer=team.closer, setter=team.setter)
        orphan = make_payment()

        result = reconciler.match(orphan.id, client.id, test_actor_id)

        assert result.success
        assert result.calculation_error is None
        session.refresh(orphan)
        assert orphan.client_id == client.id
        assert orphan.review_status is None
        assert orphan.commission_calculated is True
        entries = session.scalars(
            select(CommissionLedgerEntry).where(CommissionLedgerEntry.payment_id == orphan.id)
        ).all()
        assert sum(e.commission_amount for e in entries) == Decimal("1741.35")

    def test_match_to_client_without_coach(self, session, reconciler, make_client, make_payment, test_actor_id):
        client = make_client()
        orphan = make_payment()

        result = reconciler.match(orphan.id, client.id, test_actor_id)

        assert result.success
        assert result.calculation_error == "MISSING_COACH"
        session.refresh(orphan)
        assert orphan.client_id == client.id

    def test_second_match_rejected(self, reconciler, team, make_client, make_payment, test_actor_id):
        first = make_client(coach=team.coach, name="First Client")
        second = make_client(coach=team.coach, name="Second Client")
        orphan = make_payment()

        assert reconciler.match(orphan.id, first.id, test_actor_id).success
        result = reconciler.match(orphan.id, second.id, test_actor_id)

        assert not result.success
        assert result.error_code == "PAYMENT_ALREADY_MATCHED"

    def test_unknown_payment(self, reconciler, make_client, test_actor_id):
        result = reconciler.match(uuid4(), make_client().id, test_actor_id)
        assert result.error_code == "PAYMENT_NOT_FOUND"

    def test_unknown_client(self, reconciler, make_payment, test_actor_id):
        result = reconciler.match(make_payment().id, uuid4(), test_actor_id)
        assert result.error_code == "CLIENT_NOT_FOUND"

    def test_inactive_client(self, reconciler, make_client, make_payment, test_actor_id):
        client = make_client(is_active=False)
        result = reconciler.match(make_payment().id, client.id, test_actor_id)
        assert result.error_code == "CLIENT_INACTIVE"

    def test_match_many_independent(self, reconciler, team, make_client, make_payment, test_actor_id):
        client = make_client(coach=team.coach)
        good = make_payment()
        excluded = make_payment()
        reconciler.exclude(excluded.id, "Duplicate charge", test_actor_id)

        batch = reconciler.match_many([(good.id, client.id), (excluded.id, client.id)], test_actor_id)

        assert batch.matched == 1
        assert batch.failed == 1
        assert batch.results[1].error_code == "PAYMENT_ALREADY_EXCLUDED"

    def test_match_logged(self, reconciler, team, make_client, make_payment, test_actor_id, captured_logs):
        client = make_client(coach=team.coach)
        orphan = make_payment()
        reconciler.match(orphan.id, client.id, test_actor_id)

        matched = [r for r in captured_logs() if r["message"] == "payment_matched"]
        assert matched[0]["payment_id"] == str(orphan.id)
        assert matched[0]["actor_id"] == str(test_actor_id)
        assert matched[0]["producer"] == "reconciliation"


class TestExclude:
    def test_exclude_records_reason(self, session, reconciler, make_payment, test_actor_id, deterministic_clock):
        orphan = make_payment()

        result = reconciler.exclude(orphan.id, "  Refund test charge  ", test_actor_id)

        assert result.success
        session.refresh(orphan)
        assert orphan.review_status == ReviewStatus.EXCLUDED
        assert orphan.exclusion_reason == "Refund test charge"
        assert orphan.excluded_by_id == test_actor_id
        assert orphan.excluded_at is not None

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, reconciler, make_payment, test_actor_id, reason):
        result = reconciler.exclude(make_payment().id, reason, test_actor_id)

        assert not result.success
        assert result.error_code == "EXCLUSION_REASON_REQUIRED"

    def test_excluded_cannot_be_matched(self, reconciler, make_client, make_payment, test_actor_id):
        orphan = make_payment()
        reconciler.exclude(orphan.id, "Not ours", test_actor_id)

        result = reconciler.match(orphan.id, make_client().id, test_actor_id)
        assert result.error_code == "PAYMENT_ALREADY_EXCLUDED"

    def test_exclude_twice(self, reconciler, make_payment, test_actor_id):
        orphan = make_payment()
        reconciler.exclude(orphan.id, "Not ours", test_actor_id)

        result = reconciler.exclude(orphan.id, "Still not ours", test_actor_id)
        assert result.error_code == "PAYMENT_ALREADY_EXCLUDED"

    def test_matched_cannot_be_excluded(self, reconciler, team, make_client, make_payment, test_actor_id):
        orphan = make_payment()
        reconciler.match(orphan.id, make_client(coach=team.coach).id, test_actor_id)

        result = reconciler.exclude(orphan.id, "Changed my mind", test_actor_id)
        assert result.error_code == "PAYMENT_ALREADY_MATCHED"

    def test_orm_cannot_reopen_excluded(self, session, reconciler, make_client, make_payment, test_actor_id):
        orphan = make_payment()
        reconciler.exclude(orphan.id, "Not ours", test_actor_id)
        session.refresh(orphan)

        orphan.client_id = make_client().id
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
