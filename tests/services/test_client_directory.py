"""Tests for the SQL-backed client and user directories."""

from datetime import datetime, timezone

import pytest

from commission_kernel.domain.values import LedgerEntryStatus, PaymentStatus, SplitRole
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.services.commission_service import CommissionService
from commission_kernel.services.directory import SqlClientDirectory, SqlUserDirectory


@pytest.fixture
def clients(session):
    return SqlClientDirectory(session)


@pytest.fixture
def users(session):
    return SqlUserDirectory(session)


class TestClientLookup:
    def test_find_by_email_case_insensitive(self, clients, make_client):
        client = make_client(email="Jane@Example.com")
        assert [c.id for c in clients.find_by_email("  jane@example.COM ")] == [client.id]

    def test_find_by_email_blank(self, clients, make_client):
        make_client(email=None)
        assert clients.find_by_email("") == []

    def test_find_by_name_normalizes_whitespace(self, clients, make_client):
        client = make_client(name="Jane Doe")
        assert [c.id for c in clients.find_by_name("  jane   DOE ")] == [client.id]

    def test_find_by_stripe_customer(self, clients, make_client):
        client = make_client(stripe_customer_id="cus_42")
        assert clients.find_by_stripe_customer("cus_42").id == client.id
        assert clients.find_by_stripe_customer("cus_none") is None
        assert clients.find_by_stripe_customer("") is None

    def test_search_ranks_and_skips_inactive(self, clients, make_client):
        make_client(name="Jane Doe", email="jd@example.com")
        make_client(name="Janet Doer", email="janet@example.com")
        make_client(name="Jane Gone", is_active=False)

        candidates = clients.search("jane doe")

        assert [c.name for c in candidates] == ["Jane Doe"]
        assert candidates[0].score == 1.0

    def test_search_limit(self, clients, make_client):
        for i in range(5):
            make_client(name=f"Client {i}")
        assert len(clients.search("client", limit=3)) == 3

    def test_search_blank_query(self, clients, make_client):
        make_client()
        assert clients.search("   ") == []


class TestFirstPayment:
    def test_earliest_succeeded_payment(self, clients, team, make_client, make_payment):
        client = make_client(coach=team.coach, referrer=team.referrer)
        make_payment(
            client=client,
            status=PaymentStatus.FAILED,
            payment_date=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        first = make_payment(client=client, payment_date=datetime(2025, 1, 2, tzinfo=timezone.utc))
        second = make_payment(client=client, payment_date=datetime(2025, 1, 9, tzinfo=timezone.utc))

        assert clients.is_first_payment(client.id, first)
        assert not clients.is_first_payment(client.id, second)

    def test_paid_referrer_elsewhere_blocks(
        self, session, clients, policy, deterministic_clock, team, make_client, make_payment
    ):
        client = make_client(coach=team.coach, referrer=team.referrer)
        later = make_payment(client=client, payment_date=datetime(2025, 1, 9, tzinfo=timezone.utc))
        outcome = CommissionService(session, policy, deterministic_clock).calculate_and_persist(later.id)
        referrer_entry_id = next(
            r.entry_id for r in outcome.write_result.results if r.role == SplitRole.REFERRER
        )
        session.get(CommissionLedgerEntry, referrer_entry_id).status = LedgerEntryStatus.APPROVED.value
        session.flush()

        earlier = make_payment(client=client, payment_date=datetime(2025, 1, 2, tzinfo=timezone.utc))
        assert not clients.is_first_payment(client.id, earlier)

    def test_pending_referrer_elsewhere_does_not_block(
        self, session, clients, policy, deterministic_clock, team, make_client, make_payment
    ):
        client = make_client(coach=team.coach, referrer=team.referrer)
        later = make_payment(client=client, payment_date=datetime(2025, 1, 9, tzinfo=timezone.utc))
        CommissionService(session, policy, deterministic_clock).calculate_and_persist(later.id)

        earlier = make_payment(client=client, payment_date=datetime(2025, 1, 2, tzinfo=timezone.utc))
        assert clients.is_first_payment(client.id, earlier)
        assert not clients.is_first_payment(client.id, later)


class TestUserLookup:
    def test_find_by_email(self, users, make_user):
        user = make_user("Coach Carter", "Carter@Example.com")
        assert [u.id for u in users.find_by_email("carter@example.com")] == [user.id]

    def test_find_by_name_may_be_ambiguous(self, users, make_user):
        make_user("Alex Smith")
        make_user("alex smith")
        assert len(users.find_by_name("Alex Smith")) == 2

    def test_get_user(self, users, make_user):
        user = make_user()
        assert users.get_user(user.id) is user
