"""
Client and user directories -- the lookups the core consumes.

The core only depends on the two protocols below.  The SQL implementations
read the ``clients`` and ``team_users`` tables; a CRM-backed directory can
replace them without touching the calculator, writer or import pipeline.

Lookups return ``None`` (or an empty list) for an absent record; they never
raise for "not found".
"""

from __future__ import annotations

import difflib
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from commission_kernel.domain.dtos import ClientMatchCandidate
from commission_kernel.domain.values import LedgerEntryStatus, PaymentStatus, ReviewStatus, SplitRole
from commission_kernel.models.client import Client
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.models.payment import Payment
from commission_kernel.models.user import TeamUser


@runtime_checkable
class ClientDirectory(Protocol):
    def get_client(self, client_id: UUID) -> Client | None:
        ...

    def find_by_stripe_customer(self, stripe_customer_id: str) -> Client | None:
        ...

    def find_by_email(self, email: str) -> list[Client]:
        ...

    def find_by_name(self, name: str) -> list[Client]:
        ...

    def search(self, query: str, limit: int = 10) -> list[ClientMatchCandidate]:
        ...

    def is_first_payment(self, client_id: UUID, payment: Payment) -> bool:
        ...


@runtime_checkable
class UserDirectory(Protocol):
    def get_user(self, user_id: UUID) -> TeamUser | None:
        ...

    def find_by_email(self, email: str) -> list[TeamUser]:
        ...

    def find_by_name(self, name: str) -> list[TeamUser]:
        ...


class SqlClientDirectory:
    """ClientDirectory over the ``clients`` table."""

    def __init__(self, session: Session):
        self.session = session

    def get_client(self, client_id: UUID) -> Client | None:
        return self.session.get(Client, client_id)

    def find_by_stripe_customer(self, stripe_customer_id: str) -> Client | None:
        if not stripe_customer_id:
            return None
        return self.session.scalars(
            select(Client)
            .where(Client.stripe_customer_id == stripe_customer_id)
            .order_by(Client.created_at, Client.id)
        ).first()

    def find_by_email(self, email: str) -> list[Client]:
        normalized = (email or "").strip().lower()
        if not normalized:
            return []
        return list(
            self.session.scalars(
                select(Client).where(func.lower(Client.email) == normalized)
            )
        )

    def find_by_name(self, name: str) -> list[Client]:
        normalized = " ".join((name or "").split()).lower()
        if not normalized:
            return []
        return list(
            self.session.scalars(
                select(Client).where(func.lower(Client.name) == normalized)
            )
        )

    def search(self, query: str, limit: int = 10) -> list[ClientMatchCandidate]:
        """
        Case-insensitive substring search on name or email, best match first.

        Candidates come from SQL; ranking uses difflib similarity against the
        better of name and email.  Inactive clients are left out.
        """
        q = (query or "").strip().lower()
        if not q:
            return []
        pattern = f"%{q}%"
        rows = self.session.scalars(
            select(Client)
            .where(Client.is_active.is_(True))
            .where(
                or_(
                    func.lower(Client.name).like(pattern),
                    func.lower(Client.email).like(pattern),
                )
            )
            .limit(limit * 5)
        ).all()

        candidates = []
        for client in rows:
            score = max(
                difflib.SequenceMatcher(None, q, client.name.lower()).ratio(),
                difflib.SequenceMatcher(None, q, (client.email or "").lower()).ratio(),
            )
            candidates.append(
                ClientMatchCandidate(
                    client_id=client.id,
                    name=client.name,
                    email=client.email,
                    score=round(score, 4),
                )
            )
        candidates.sort(key=lambda c: (-c.score, c.name.lower(), str(c.client_id)))
        return candidates[:limit]

    def is_first_payment(self, client_id: UUID, payment: Payment) -> bool:
        """
        True when ``payment`` is the one that should carry the referrer fee.

        That holds when no other payment of the client has an approved or
        paid referrer entry, and ``payment`` is the earliest (by
        payment_date, then id) succeeded, non-excluded payment of the
        client.  Pending referrer entries elsewhere do not block; the
        commission service moves them to the earliest payment.
        """
        already_paid_elsewhere = self.session.scalar(
            select(func.count(CommissionLedgerEntry.id))
            .where(CommissionLedgerEntry.client_id == client_id)
            .where(CommissionLedgerEntry.split_role == SplitRole.REFERRER.value)
            .where(CommissionLedgerEntry.payment_id.is_not(None))
            .where(CommissionLedgerEntry.payment_id != payment.id)
            .where(
                CommissionLedgerEntry.status.in_(
                    (LedgerEntryStatus.APPROVED.value, LedgerEntryStatus.PAID.value)
                )
            )
        )
        if already_paid_elsewhere:
            return False

        earliest = self.session.execute(
            select(Payment.id)
            .where(Payment.client_id == client_id)
            .where(Payment.status == PaymentStatus.SUCCEEDED.value)
            .where(
                or_(
                    Payment.review_status.is_(None),
                    Payment.review_status != ReviewStatus.EXCLUDED.value,
                )
            )
            .order_by(Payment.payment_date, Payment.id)
            .limit(1)
        ).scalar_one_or_none()
        return earliest == payment.id


class SqlUserDirectory:
    """UserDirectory over the ``team_users`` table."""

    def __init__(self, session: Session):
        self.session = session

    def get_user(self, user_id: UUID) -> TeamUser | None:
        return self.session.get(TeamUser, user_id)

    def find_by_email(self, email: str) -> list[TeamUser]:
        normalized = (email or "").strip().lower()
        if not normalized:
            return []
        return list(
            self.session.scalars(
                select(TeamUser).where(func.lower(TeamUser.email) == normalized)
            )
        )

    def find_by_name(self, name: str) -> list[TeamUser]:
        normalized = " ".join((name or "").split()).lower()
        if not normalized:
            return []
        return list(
            self.session.scalars(
                select(TeamUser).where(func.lower(TeamUser.name) == normalized)
            )
        )
