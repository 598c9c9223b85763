"""
AdjustmentService -- manual deltas and hand-entered ledger rows.

Responsibility:
    Creates signed adjustments (bonus, deduction, correction, chargeback)
    against a team user, lists and totals them, and records manual ledger
    entries for sales credited by hand.

Architecture position:
    Kernel > Services.  Adjustments never modify ledger entries; they are
    separate rows whose sign carries the meaning.

Failure modes:
    - InvalidAdjustmentError: zero amount, short reason, bad manual amounts.
    - UserNotFoundError: unknown user id.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from commission_kernel.domain.basis import ManualBasis
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.dtos import AdjustmentInfo, LedgerEntryInfo
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.domain.values import (
    AdjustmentType,
    EntryType,
    LedgerEntryStatus,
    SplitRole,
)
from commission_kernel.exceptions import InvalidAdjustmentError, UserNotFoundError
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.adjustment import CommissionAdjustment
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.services.base import BaseService
from commission_kernel.services.directory import SqlUserDirectory, UserDirectory

logger = get_logger("services.adjustment")

MIN_REASON_LENGTH = 5


class AdjustmentService(BaseService[CommissionAdjustment]):
    def __init__(
        self,
        session: Session,
        policy: CommissionPolicy,
        clock: Clock | None = None,
        users: UserDirectory | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()
        self._users = users or SqlUserDirectory(session)

    def create_adjustment(
        self,
        user_id: UUID,
        amount: Decimal,
        adjustment_type: AdjustmentType,
        reason: str,
        created_by_id: UUID,
        notes: str | None = None,
        is_visible_to_user: bool = True,
        related_payment_id: UUID | None = None,
        related_ledger_id: UUID | None = None,
    ) -> AdjustmentInfo:
        """
        Record a signed adjustment.

        The type is informational; a bonus with a negative amount still
        reduces the user's total.

        Raises:
            InvalidAdjustmentError: amount is zero or reason is too short.
            UserNotFoundError: user_id is unknown.
        """
        amount = Decimal(str(amount))
        if amount == 0:
            raise InvalidAdjustmentError("amount", "must be non-zero")
        cleaned = (reason or "").strip()
        if len(cleaned) < MIN_REASON_LENGTH:
            raise InvalidAdjustmentError(
                "reason", f"must be at least {MIN_REASON_LENGTH} characters"
            )
        self._require_user(user_id)

        adjustment = CommissionAdjustment(
            user_id=user_id,
            amount=amount,
            adjustment_type=AdjustmentType(adjustment_type).value,
            reason=cleaned,
            notes=notes,
            is_visible_to_user=is_visible_to_user,
            related_payment_id=related_payment_id,
            related_ledger_id=related_ledger_id,
            created_by_id=created_by_id,
        )
        self.session.add(adjustment)
        self.session.flush()

        with LogContext.bind(actor_id=created_by_id):
            logger.info(
                "adjustment_created",
                extra={
                    "adjustment_id": str(adjustment.id),
                    "user_id": str(user_id),
                    "amount": amount,
                    "adjustment_type": adjustment.adjustment_type,
                },
            )
        return adjustment.to_dto()

    def list_adjustments(
        self,
        user_id: UUID,
        include_hidden: bool = False,
    ) -> list[AdjustmentInfo]:
        """Adjustments for a user, newest first."""
        stmt = select(CommissionAdjustment).where(CommissionAdjustment.user_id == user_id)
        if not include_hidden:
            stmt = stmt.where(CommissionAdjustment.is_visible_to_user.is_(True))
        stmt = stmt.order_by(CommissionAdjustment.created_at.desc(), CommissionAdjustment.id)
        return [a.to_dto() for a in self.session.scalars(stmt)]

    def adjustment_total(self, user_id: UUID, include_hidden: bool = True) -> Decimal:
        stmt = select(func.coalesce(func.sum(CommissionAdjustment.amount), 0)).where(
            CommissionAdjustment.user_id == user_id
        )
        if not include_hidden:
            stmt = stmt.where(CommissionAdjustment.is_visible_to_user.is_(True))
        return Decimal(str(self.session.scalar(stmt)))

    def create_manual_entry(
        self,
        user_id: UUID,
        commission_amount: Decimal,
        gross_amount: Decimal,
        created_by_id: UUID,
        entry_date: date | None = None,
        role: SplitRole = SplitRole.COACH,
        client_id: UUID | None = None,
        category: str = "sale",
        notes: str | None = None,
    ) -> LedgerEntryInfo:
        """
        Credit a sale by hand as a pending ``manual`` ledger entry.

        The entry has no payment and lands in the payout period of
        ``entry_date`` (today by default).
        """
        commission_amount = Decimal(str(commission_amount))
        gross_amount = Decimal(str(gross_amount))
        if commission_amount <= 0:
            raise InvalidAdjustmentError("commission_amount", "must be positive")
        if gross_amount < 0:
            raise InvalidAdjustmentError("gross_amount", "must not be negative")
        self._require_user(user_id)

        on = entry_date or self._clock.today()
        rate = (commission_amount / gross_amount) if gross_amount > 0 else None
        basis = ManualBasis(category=category, created_by=str(created_by_id), rate=rate)

        entry = CommissionLedgerEntry(
            user_id=user_id,
            client_id=client_id,
            payment_id=None,
            gross_amount=gross_amount,
            net_amount=gross_amount,
            commission_amount=commission_amount,
            calculation_basis=basis.to_dict(),
            status=LedgerEntryStatus.PENDING.value,
            payout_period_start=self._policy.period_start(on),
            entry_type=EntryType.MANUAL.value,
            split_role=SplitRole(role).value,
            split_percentage=(rate * 100).quantize(Decimal("0.0001")) if rate is not None else None,
            notes=notes,
            created_by_id=created_by_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "manual_entry_created",
            extra={
                "entry_id": str(entry.id),
                "user_id": str(user_id),
                "commission_amount": commission_amount,
                "payout_period_start": entry.payout_period_start,
            },
        )
        return entry.to_dto()

    def _require_user(self, user_id: UUID) -> None:
        if self._users.get_user(user_id) is None:
            raise UserNotFoundError(str(user_id))
