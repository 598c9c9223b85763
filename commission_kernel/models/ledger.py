"""
Module: commission_kernel.models.ledger
Responsibility: The commission ledger -- one row per (payment, role) for
    calculated commissions, plus payment-less manual and historical rows.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - UNIQUE (payment_id, split_role): recomputation replaces, never adds.
      NULL payment_ids (manual / historical rows) are not constrained.
    - PAID rows are frozen: the ORM listener in db/immutability.py rejects
      any UPDATE or DELETE of a paid entry.
    - calculation_basis holds exactly one tagged basis record
      (domain/basis.py).

Failure modes:
    - IntegrityError on a duplicate (payment_id, split_role); the ledger
      writer catches it inside a savepoint and re-reads.
    - ImmutabilityViolationError on mutation of a paid entry.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Date, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase, UUIDString
from commission_kernel.domain.values import (
    EntryType,
    LedgerEntryStatus,
    SplitRole,
)

if TYPE_CHECKING:
    from commission_kernel.domain.dtos import LedgerEntryInfo


class CommissionLedgerEntry(TrackedBase):
    __tablename__ = "commission_ledger"

    __table_args__ = (
        UniqueConstraint("payment_id", "split_role", name="uq_ledger_payment_role"),
        Index("ix_ledger_user_period", "user_id", "payout_period_start"),
        Index("ix_ledger_period_status", "payout_period_start", "status"),
        Index("ix_ledger_fingerprint", "source_fingerprint"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("team_users.id"), nullable=False
    )
    client_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("clients.id"), nullable=True
    )
    payment_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("payments.id"), nullable=True
    )

    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(nullable=False)
    calculation_basis: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    status: Mapped[LedgerEntryStatus] = mapped_column(
        String(10), default=LedgerEntryStatus.PENDING.value, nullable=False
    )
    payout_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    entry_type: Mapped[EntryType] = mapped_column(String(20), nullable=False)
    split_role: Mapped[SplitRole | None] = mapped_column(String(20), nullable=True)
    split_percentage: Mapped[Decimal | None] = mapped_column(Numeric(9, 4), nullable=True)

    # Bulk import provenance; no FK so the kernel does not depend on ingestion
    import_batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    source_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_replaceable(self) -> bool:
        return self.status == LedgerEntryStatus.PENDING

    def to_dto(self) -> LedgerEntryInfo:
        from commission_kernel.domain.dtos import LedgerEntryInfo

        return LedgerEntryInfo(
            entry_id=self.id,
            user_id=self.user_id,
            client_id=self.client_id,
            payment_id=self.payment_id,
            gross_amount=self.gross_amount,
            net_amount=self.net_amount,
            commission_amount=self.commission_amount,
            status=LedgerEntryStatus(self.status),
            entry_type=EntryType(self.entry_type),
            split_role=SplitRole(self.split_role) if self.split_role else None,
            split_percentage=self.split_percentage,
            payout_period_start=self.payout_period_start,
            calculation_basis=dict(self.calculation_basis or {}),
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<CommissionLedgerEntry {self.split_role or self.entry_type} "
            f"{self.commission_amount} {self.status}>"
        )
