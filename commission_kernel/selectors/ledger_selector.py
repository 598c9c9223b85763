"""
Module: commission_kernel.selectors.ledger_selector
Responsibility: Read-only commission ledger queries: entries per payment,
    per user, per payout period, and per-user period totals.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Payable entries are the ones payroll acts on: not void and not historical
(imported history is already settled outside this system).
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from commission_kernel.domain.dtos import LedgerEntryInfo
from commission_kernel.domain.values import EntryType, LedgerEntryStatus
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class UserPeriodTotal:
    """Commission owed to one user in one payout period."""

    user_id: UUID
    payout_period_start: date
    entry_count: int
    commission_total: Decimal


_PAYABLE = (
    CommissionLedgerEntry.status != LedgerEntryStatus.VOID.value,
    CommissionLedgerEntry.entry_type != EntryType.HISTORICAL.value,
)


class LedgerSelector(BaseSelector[CommissionLedgerEntry]):
    def entries_for_payment(self, payment_id: UUID) -> list[LedgerEntryInfo]:
        stmt = (
            select(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.payment_id == payment_id)
            .order_by(CommissionLedgerEntry.split_role, CommissionLedgerEntry.id)
        )
        return [e.to_dto() for e in self.session.scalars(stmt)]

    def entries_for_user(
        self,
        user_id: UUID,
        period_start: date | None = None,
    ) -> list[LedgerEntryInfo]:
        """All entries for a user, newest period first."""
        stmt = select(CommissionLedgerEntry).where(CommissionLedgerEntry.user_id == user_id)
        if period_start is not None:
            stmt = stmt.where(CommissionLedgerEntry.payout_period_start == period_start)
        stmt = stmt.order_by(
            CommissionLedgerEntry.payout_period_start.desc(),
            CommissionLedgerEntry.id,
        )
        return [e.to_dto() for e in self.session.scalars(stmt)]

    def payable_entries_for_period(self, period_start: date) -> list[LedgerEntryInfo]:
        stmt = (
            select(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.payout_period_start == period_start)
            .where(*_PAYABLE)
            .order_by(CommissionLedgerEntry.user_id, CommissionLedgerEntry.id)
        )
        return [e.to_dto() for e in self.session.scalars(stmt)]

    def period_totals(self, period_start: date) -> list[UserPeriodTotal]:
        """Per-user sum of payable commission in a period, largest first."""
        total = func.sum(CommissionLedgerEntry.commission_amount)
        stmt = (
            select(
                CommissionLedgerEntry.user_id,
                func.count(CommissionLedgerEntry.id),
                total,
            )
            .where(CommissionLedgerEntry.payout_period_start == period_start)
            .where(*_PAYABLE)
            .group_by(CommissionLedgerEntry.user_id)
        )
        rows = [
            UserPeriodTotal(
                user_id=user_id,
                payout_period_start=period_start,
                entry_count=count,
                commission_total=Decimal(str(amount)),
            )
            for user_id, count, amount in self.session.execute(stmt)
        ]
        rows.sort(key=lambda r: (-r.commission_total, str(r.user_id)))
        return rows

    def status_counts(self, period_start: date) -> dict[LedgerEntryStatus, int]:
        stmt = (
            select(CommissionLedgerEntry.status, func.count(CommissionLedgerEntry.id))
            .where(CommissionLedgerEntry.payout_period_start == period_start)
            .group_by(CommissionLedgerEntry.status)
        )
        return {LedgerEntryStatus(status): count for status, count in self.session.execute(stmt)}
