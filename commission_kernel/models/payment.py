"""
Module: commission_kernel.models.payment
Responsibility: One real-world charge from the payment processor, together
    with its orphan-review state and calculation flags.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - external_payment_id is unique; intake is idempotent on it.
    - net_amount = amount - stripe_fee (maintained by set_fee()).
    - client_id IS NULL implies review_status IS NOT NULL (orphan queue).
    - An excluded payment is never linked to a client (ORM listener in
      db/immutability.py, plus guarded UPDATEs in the orphan service).

Failure modes:
    - IntegrityError on duplicate external_payment_id.
    - ImmutabilityViolationError when linking an excluded payment.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase, UUIDString
from commission_kernel.domain.values import PaymentStatus, ReviewStatus

if TYPE_CHECKING:
    from commission_kernel.domain.dtos import OrphanPaymentInfo, PaymentSnapshot


class Payment(TrackedBase):
    __tablename__ = "payments"

    __table_args__ = (
        Index("ix_payments_external_id", "external_payment_id", unique=True),
        Index("ix_payments_client_date", "client_id", "payment_date"),
        Index("ix_payments_review_status", "review_status"),
    )

    external_payment_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    stripe_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(String(20), nullable=False)
    refund_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    client_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("clients.id"), nullable=True
    )
    review_status: Mapped[ReviewStatus | None] = mapped_column(String(20), nullable=True)
    exclusion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    excluded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    excluded_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    stripe_customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    commission_calculated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calculation_error: Mapped[str | None] = mapped_column(String(50), nullable=True)

    @property
    def is_orphan(self) -> bool:
        return self.client_id is None and self.review_status != ReviewStatus.EXCLUDED

    @property
    def is_excluded(self) -> bool:
        return self.review_status == ReviewStatus.EXCLUDED

    def set_fee(self, stripe_fee: Decimal | None) -> None:
        """Record the processor fee and keep net_amount consistent."""
        self.stripe_fee = stripe_fee
        self.net_amount = self.amount - (stripe_fee or Decimal("0"))

    def to_snapshot(self) -> PaymentSnapshot:
        from commission_kernel.domain.dtos import PaymentSnapshot

        return PaymentSnapshot(
            payment_id=self.id,
            external_payment_id=self.external_payment_id,
            amount=self.amount,
            currency=self.currency,
            stripe_fee=self.stripe_fee,
            status=PaymentStatus(self.status),
            payment_date=self.payment_date,
            client_id=self.client_id,
            review_status=ReviewStatus(self.review_status) if self.review_status else None,
        )

    def to_orphan_info(self) -> OrphanPaymentInfo:
        from commission_kernel.domain.dtos import OrphanPaymentInfo

        return OrphanPaymentInfo(
            payment_id=self.id,
            external_payment_id=self.external_payment_id,
            amount=self.amount,
            currency=self.currency,
            status=PaymentStatus(self.status),
            payment_date=self.payment_date,
            review_status=ReviewStatus(self.review_status) if self.review_status else None,
            customer_email=self.customer_email,
            customer_name=self.customer_name,
            stripe_customer_id=self.stripe_customer_id,
            exclusion_reason=self.exclusion_reason,
        )

    def __repr__(self) -> str:
        return f"<Payment {self.external_payment_id} {self.amount} {self.status}>"
