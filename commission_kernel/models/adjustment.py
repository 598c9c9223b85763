"""
Module: commission_kernel.models.adjustment
Responsibility: Signed manual deltas (bonus, deduction, correction) and
    refund-driven chargebacks layered on top of computed commissions.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

The sign of ``amount`` carries the meaning; ``adjustment_type`` is metadata.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase, UUIDString
from commission_kernel.domain.values import AdjustmentType

if TYPE_CHECKING:
    from commission_kernel.domain.dtos import AdjustmentInfo


class CommissionAdjustment(TrackedBase):
    __tablename__ = "commission_adjustments"

    __table_args__ = (
        Index("ix_adjustments_user", "user_id"),
        Index("ix_adjustments_related_payment", "related_payment_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("team_users.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    adjustment_type: Mapped[AdjustmentType] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_visible_to_user: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    related_payment_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("payments.id"), nullable=True
    )
    related_ledger_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("commission_ledger.id"), nullable=True
    )

    def to_dto(self) -> AdjustmentInfo:
        from commission_kernel.domain.dtos import AdjustmentInfo

        return AdjustmentInfo(
            adjustment_id=self.id,
            user_id=self.user_id,
            amount=self.amount,
            adjustment_type=AdjustmentType(self.adjustment_type),
            reason=self.reason,
            created_by_id=self.created_by_id,
            is_visible_to_user=self.is_visible_to_user,
            notes=self.notes,
            related_payment_id=self.related_payment_id,
            related_ledger_id=self.related_ledger_id,
            created_at=self.created_at,
        )
