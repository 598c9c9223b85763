"""
Module: commission_kernel.models.client
Responsibility: Customers under contract, with the role assignments and lead
    source that drive the commission waterfall.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - assigned_coach_id is required for any commission to exist; the
      calculator raises MissingCoachError when it is NULL.
    - lead_source is one of LeadSource and selects the coach rate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase, UUIDString
from commission_kernel.domain.values import LeadSource

if TYPE_CHECKING:
    from commission_kernel.domain.dtos import ClientSnapshot


class Client(TrackedBase):
    __tablename__ = "clients"

    __table_args__ = (
        Index("ix_clients_email", "email"),
        Index("ix_clients_stripe_customer", "stripe_customer_id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    lead_source: Mapped[LeadSource] = mapped_column(
        String(20), default=LeadSource.COMPANY_DRIVEN.value, nullable=False
    )
    assigned_coach_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("team_users.id"), nullable=True
    )
    sold_by_user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("team_users.id"), nullable=True
    )
    appointment_setter_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("team_users.id"), nullable=True
    )
    referred_by_user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("team_users.id"), nullable=True
    )
    stripe_customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_snapshot(self, is_first_payment: bool) -> ClientSnapshot:
        from commission_kernel.domain.dtos import ClientSnapshot

        return ClientSnapshot(
            client_id=self.id,
            lead_source=LeadSource(self.lead_source),
            assigned_coach_id=self.assigned_coach_id,
            sold_by_user_id=self.sold_by_user_id,
            appointment_setter_id=self.appointment_setter_id,
            referred_by_user_id=self.referred_by_user_id,
            is_first_payment=is_first_payment,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<Client {self.name}>"
