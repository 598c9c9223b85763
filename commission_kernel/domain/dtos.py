"""
Domain Data Transfer Objects for the commission kernel.

Responsibility:
    Immutable value objects that cross the boundary between the pure
    calculator, the ledger writer, and the service / UI layers.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  MUST NOT import
    from db/, models/, services/ or selectors/.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - Monetary fields are Decimal.
    - WriteResult states explicitly what happened to every split, so callers
      can tell a first calculation from a recomputation from a write that
      was blocked by an approved or paid entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from commission_kernel.domain.basis import Basis
from commission_kernel.domain.values import (
    AdjustmentType,
    EntryType,
    LeadSource,
    LedgerEntryStatus,
    PaymentStatus,
    ReviewStatus,
    SplitRole,
)


# -----------------------------------------------------------------------------
# Calculator inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentSnapshot:
    """The payment fields the calculator reads."""

    payment_id: UUID
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_date: datetime
    client_id: UUID | None
    stripe_fee: Decimal | None = None
    review_status: ReviewStatus | None = None
    external_payment_id: str | None = None


@dataclass(frozen=True)
class ClientSnapshot:
    """
    Role assignments and lead source of a client at calculation time.

    ``is_first_payment`` is supplied by the client directory: True when the
    payment being calculated is the one that carries the referrer fee.
    """

    client_id: UUID
    lead_source: LeadSource
    assigned_coach_id: UUID | None
    sold_by_user_id: UUID | None = None
    appointment_setter_id: UUID | None = None
    referred_by_user_id: UUID | None = None
    is_first_payment: bool = False
    is_active: bool = True


# -----------------------------------------------------------------------------
# Calculator outputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SplitLine:
    """One commission amount for one role."""

    role: SplitRole
    user_id: UUID
    amount: Decimal
    net_amount: Decimal
    entry_type: EntryType
    split_percentage: Decimal | None
    basis: Basis


@dataclass(frozen=True)
class NegativeRemainderWarning:
    """Fees plus gross splits exceed the after-fee amount; coach floored at zero."""

    code = "NEGATIVE_REMAINDER"

    payment_id: UUID
    after_fees: Decimal
    other_commissions: Decimal
    remainder: Decimal

    @property
    def message(self) -> str:
        return (
            f"Remainder {self.remainder} is negative (after fees {self.after_fees}, "
            f"other commissions {self.other_commissions}); coach amount set to 0"
        )


@dataclass(frozen=True)
class CalculationResult:
    """Ordered splits (closer, setter, referrer, coach) plus the figures used."""

    payment_id: UUID
    client_id: UUID
    gross_amount: Decimal
    stripe_fee: Decimal
    after_fees: Decimal
    remainder: Decimal
    splits: tuple[SplitLine, ...]
    warnings: tuple[NegativeRemainderWarning, ...] = ()

    @property
    def total_commission(self) -> Decimal:
        return sum((s.amount for s in self.splits), Decimal("0"))

    @property
    def roles(self) -> tuple[SplitRole, ...]:
        return tuple(s.role for s in self.splits)

    def split_for(self, role: SplitRole) -> SplitLine | None:
        for split in self.splits:
            if split.role == role:
                return split
        return None


# -----------------------------------------------------------------------------
# Ledger writer outputs
# -----------------------------------------------------------------------------


class WriteOutcome(str, Enum):
    INSERTED = "inserted"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"
    REMOVED = "removed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class SplitWriteResult:
    role: SplitRole
    outcome: WriteOutcome
    entry_id: UUID | None = None
    error_code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class WriteResult:
    """Per-role outcome of one Persist call."""

    payment_id: UUID
    payout_period_start: date
    results: tuple[SplitWriteResult, ...]

    def _with(self, outcome: WriteOutcome) -> tuple[SplitWriteResult, ...]:
        return tuple(r for r in self.results if r.outcome == outcome)

    @property
    def inserted(self) -> tuple[SplitWriteResult, ...]:
        return self._with(WriteOutcome.INSERTED)

    @property
    def replaced(self) -> tuple[SplitWriteResult, ...]:
        return self._with(WriteOutcome.REPLACED)

    @property
    def unchanged(self) -> tuple[SplitWriteResult, ...]:
        return self._with(WriteOutcome.UNCHANGED)

    @property
    def removed(self) -> tuple[SplitWriteResult, ...]:
        return self._with(WriteOutcome.REMOVED)

    @property
    def rejected(self) -> tuple[SplitWriteResult, ...]:
        return self._with(WriteOutcome.REJECTED)

    @property
    def is_first_calculation(self) -> bool:
        """Every split was freshly inserted."""
        return bool(self.results) and all(
            r.outcome == WriteOutcome.INSERTED for r in self.results
        )

    @property
    def has_rejections(self) -> bool:
        return bool(self.rejected)


# -----------------------------------------------------------------------------
# Read models
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEntryInfo:
    entry_id: UUID
    user_id: UUID
    client_id: UUID | None
    payment_id: UUID | None
    gross_amount: Decimal
    net_amount: Decimal
    commission_amount: Decimal
    status: LedgerEntryStatus
    entry_type: EntryType
    split_role: SplitRole | None
    split_percentage: Decimal | None
    payout_period_start: date
    calculation_basis: dict[str, Any] = field(default_factory=dict)
    notes: str | None = None


@dataclass(frozen=True)
class AdjustmentInfo:
    adjustment_id: UUID
    user_id: UUID
    amount: Decimal
    adjustment_type: AdjustmentType
    reason: str
    created_by_id: UUID
    is_visible_to_user: bool
    notes: str | None = None
    related_payment_id: UUID | None = None
    related_ledger_id: UUID | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class OrphanPaymentInfo:
    payment_id: UUID
    external_payment_id: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_date: datetime
    review_status: ReviewStatus | None
    customer_email: str | None = None
    customer_name: str | None = None
    stripe_customer_id: str | None = None
    exclusion_reason: str | None = None


@dataclass(frozen=True)
class ClientMatchCandidate:
    client_id: UUID
    name: str
    email: str | None
    score: float
