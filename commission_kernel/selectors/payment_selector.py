"""
Module: commission_kernel.selectors.payment_selector
Responsibility: Read-only payment reports, chiefly the uncalculated
    payments list: linked, succeeded payments that have not produced
    ledger entries, with the recorded calculation error code.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from commission_kernel.domain.values import PaymentStatus
from commission_kernel.models.payment import Payment
from commission_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class UncalculatedPayment:
    payment_id: UUID
    external_payment_id: str
    client_id: UUID
    amount: Decimal
    payment_date: datetime
    calculation_error: str | None


class PaymentSelector(BaseSelector[Payment]):
    def uncalculated_payments(self) -> list[UncalculatedPayment]:
        """Linked, succeeded payments with commission_calculated still false."""
        stmt = (
            select(Payment)
            .where(Payment.client_id.is_not(None))
            .where(Payment.status == PaymentStatus.SUCCEEDED.value)
            .where(Payment.commission_calculated.is_(False))
            .order_by(Payment.payment_date, Payment.id)
        )
        return [
            UncalculatedPayment(
                payment_id=p.id,
                external_payment_id=p.external_payment_id,
                client_id=p.client_id,
                amount=p.amount,
                payment_date=p.payment_date,
                calculation_error=p.calculation_error,
            )
            for p in self.session.scalars(stmt)
        ]
