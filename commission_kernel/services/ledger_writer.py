"""
LedgerWriter -- persists calculator output as commission-ledger entries.

Responsibility:
    Upserts one ledger entry per (payment, role) and reports, per role,
    whether the write inserted, replaced, left unchanged, removed or
    rejected an entry.

Architecture position:
    Kernel > Services -- imperative shell.  Called by CommissionService
    right after calculate().  Flushes; never commits.

Invariants enforced:
    - At most one entry per (payment_id, split_role).  The UNIQUE constraint
      is the arbiter.  Inserts run in a savepoint, and a concurrent duplicate
      is re-read and treated as existing.
    - Only PENDING entries are replaced.  Replacement is a compare-and-swap
      UPDATE guarded by ``status = 'pending'``, so an entry approved or paid
      by payroll between our read and our write is never overwritten.
    - APPROVED / PAID / VOID entries are REJECTED with ImmutableEntryError's
      code and stay untouched.
    - payout_period_start is computed once per payment.  Recomputation
      reuses the period of the existing entries even if the policy or the
      payment date moved.
    - Pending entries for roles the new calculation no longer produces are
      deleted, so a correction never leaves a stale split behind.

Failure modes:
    - PaymentExcludedError: the payment is excluded.
    - ImmutableEntryError: only from persist_strict().
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commission_kernel.domain.basis import basis_from_dict
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.dtos import (
    CalculationResult,
    PaymentSnapshot,
    SplitLine,
    SplitWriteResult,
    WriteOutcome,
    WriteResult,
)
from commission_kernel.domain.periods import calendar_date
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.domain.values import (
    SYSTEM_ACTOR_ID,
    LedgerEntryStatus,
    ReviewStatus,
    SplitRole,
)
from commission_kernel.exceptions import ImmutableEntryError, PaymentExcludedError
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.services.base import BaseService

logger = get_logger("services.ledger_writer")

# Fields a recomputation may change on a pending entry
_REPLACEABLE_FIELDS = (
    "user_id",
    "client_id",
    "gross_amount",
    "net_amount",
    "commission_amount",
    "calculation_basis",
    "entry_type",
    "split_percentage",
)


class LedgerWriter(BaseService[CommissionLedgerEntry]):
    def __init__(
        self,
        session: Session,
        policy: CommissionPolicy,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Persist
    # ------------------------------------------------------------------

    def persist(
        self,
        payment: PaymentSnapshot,
        calculation: CalculationResult,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> WriteResult:
        """
        Upsert the splits of ``calculation`` for ``payment``.

        Preconditions:
            ``calculation`` was produced for ``payment``.
        Postconditions:
            Exactly one entry exists per produced role (unless REJECTED).
            Pending entries for roles no longer produced are gone.

        Raises:
            PaymentExcludedError: payment is excluded.
        """
        if payment.review_status == ReviewStatus.EXCLUDED:
            raise PaymentExcludedError(str(payment.payment_id))

        with LogContext.bind(payment_id=payment.payment_id):
            existing = self._load_existing(payment.payment_id)
            period = self._period_for(payment, existing.values())

            results: list[SplitWriteResult] = []
            for split in calculation.splits:
                results.append(
                    self._upsert(payment, calculation, split, existing.get(split.role), period, actor_id)
                )

            produced = set(calculation.roles)
            for role, entry in existing.items():
                if role in produced:
                    continue
                results.append(self._remove_stale(entry, role))

            write_result = WriteResult(
                payment_id=payment.payment_id,
                payout_period_start=period,
                results=tuple(results),
            )
            logger.info(
                "ledger_persisted",
                extra={
                    "payout_period_start": period,
                    "inserted": len(write_result.inserted),
                    "replaced": len(write_result.replaced),
                    "unchanged": len(write_result.unchanged),
                    "removed": len(write_result.removed),
                    "rejected": len(write_result.rejected),
                },
            )
            return write_result

    def persist_strict(
        self,
        payment: PaymentSnapshot,
        calculation: CalculationResult,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> WriteResult:
        """Like persist(), but raise ImmutableEntryError on the first rejection."""
        result = self.persist(payment, calculation, actor_id)
        for rejected in result.rejected:
            entry = self.session.get(CommissionLedgerEntry, rejected.entry_id)
            raise ImmutableEntryError(
                entry_id=str(rejected.entry_id),
                payment_id=str(payment.payment_id),
                split_role=rejected.role.value,
                status=str(entry.status) if entry is not None else "unknown",
            )
        return result

    # ------------------------------------------------------------------
    # Lifecycle helpers used by refunds and referrer moves
    # ------------------------------------------------------------------

    def void_pending(self, payment_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID) -> int:
        """Mark every PENDING entry of the payment VOID.  Returns the count."""
        result = self.session.execute(
            update(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.payment_id == payment_id)
            .where(CommissionLedgerEntry.status == LedgerEntryStatus.PENDING.value)
            .values(status=LedgerEntryStatus.VOID.value, updated_by_id=actor_id)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount:
            logger.info(
                "ledger_entries_voided",
                extra={"payment_id": str(payment_id), "count": result.rowcount},
            )
        return result.rowcount

    def release_referrer(self, client_id: UUID, keep_payment_id: UUID) -> int:
        """Delete PENDING referrer entries of the client's other payments."""
        stale = self.session.scalars(
            select(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.client_id == client_id)
            .where(CommissionLedgerEntry.split_role == SplitRole.REFERRER.value)
            .where(CommissionLedgerEntry.payment_id.is_not(None))
            .where(CommissionLedgerEntry.payment_id != keep_payment_id)
            .where(CommissionLedgerEntry.status == LedgerEntryStatus.PENDING.value)
        ).all()
        for entry in stale:
            self.session.delete(entry)
        if stale:
            self.session.flush()
            logger.info(
                "referrer_entry_moved",
                extra={
                    "client_id": str(client_id),
                    "to_payment_id": str(keep_payment_id),
                    "released": len(stale),
                },
            )
        return len(stale)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_existing(self, payment_id: UUID) -> dict[SplitRole, CommissionLedgerEntry]:
        rows = self.session.scalars(
            select(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.payment_id == payment_id)
            .execution_options(populate_existing=True)
        ).all()
        return {SplitRole(row.split_role): row for row in rows if row.split_role}

    def _reload(self, payment_id: UUID, role: SplitRole) -> CommissionLedgerEntry | None:
        return self.session.scalars(
            select(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.payment_id == payment_id)
            .where(CommissionLedgerEntry.split_role == role.value)
            .execution_options(populate_existing=True)
        ).first()

    def _period_for(self, payment: PaymentSnapshot, entries) -> date:
        periods = sorted({e.payout_period_start for e in entries})
        if periods:
            return periods[0]
        local_date = calendar_date(payment.payment_date, self._policy.tz)
        return self._policy.period_start(local_date)

    @staticmethod
    def _values_for(calculation: CalculationResult, split: SplitLine) -> dict[str, Any]:
        return {
            "user_id": split.user_id,
            "client_id": calculation.client_id,
            "gross_amount": calculation.gross_amount,
            "net_amount": split.net_amount,
            "commission_amount": split.amount,
            "calculation_basis": split.basis.to_dict(),
            "entry_type": split.entry_type.value,
            "split_percentage": split.split_percentage,
        }

    def _upsert(
        self,
        payment: PaymentSnapshot,
        calculation: CalculationResult,
        split: SplitLine,
        entry: CommissionLedgerEntry | None,
        period: date,
        actor_id: UUID,
    ) -> SplitWriteResult:
        values = self._values_for(calculation, split)

        # A lost insert race or compare-and-swap re-reads and tries again, once.
        for _ in range(2):
            if entry is None:
                inserted = self._try_insert(payment.payment_id, split.role, values, period, actor_id)
                if inserted is not None:
                    return SplitWriteResult(role=split.role, outcome=WriteOutcome.INSERTED, entry_id=inserted)
                entry = self._reload(payment.payment_id, split.role)
                continue

            if not entry.is_replaceable:
                return self._reject(entry, split.role)

            if self._unchanged(entry, values):
                return SplitWriteResult(role=split.role, outcome=WriteOutcome.UNCHANGED, entry_id=entry.id)

            swapped = self.session.execute(
                update(CommissionLedgerEntry)
                .where(CommissionLedgerEntry.id == entry.id)
                .where(CommissionLedgerEntry.status == LedgerEntryStatus.PENDING.value)
                .values(**values, updated_by_id=actor_id)
                .execution_options(synchronize_session=False)
            )
            if swapped.rowcount == 1:
                self.session.expire(entry)
                logger.info(
                    "ledger_entry_replaced",
                    extra={
                        "entry_id": str(entry.id),
                        "split_role": split.role.value,
                        "commission_amount": split.amount,
                    },
                )
                return SplitWriteResult(role=split.role, outcome=WriteOutcome.REPLACED, entry_id=entry.id)

            logger.warning(
                "ledger_entry_cas_lost",
                extra={"entry_id": str(entry.id), "split_role": split.role.value},
            )
            entry = self._reload(payment.payment_id, split.role)

        if entry is not None and not entry.is_replaceable:
            return self._reject(entry, split.role)
        return SplitWriteResult(
            role=split.role,
            outcome=WriteOutcome.REJECTED,
            entry_id=entry.id if entry is not None else None,
            error_code="CONCURRENT_MODIFICATION",
            message="Ledger entry changed concurrently; re-read and retry",
        )

    def _try_insert(
        self,
        payment_id: UUID,
        role: SplitRole,
        values: dict[str, Any],
        period: date,
        actor_id: UUID,
    ) -> UUID | None:
        """Insert inside a savepoint.  None means another writer got there first."""
        savepoint = self.session.begin_nested()
        try:
            entry = CommissionLedgerEntry(
                payment_id=payment_id,
                split_role=role.value,
                status=LedgerEntryStatus.PENDING.value,
                payout_period_start=period,
                created_by_id=actor_id,
                **values,
            )
            self.session.add(entry)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "ledger_insert_race_retry",
                extra={"payment_id": str(payment_id), "split_role": role.value},
            )
            return None

        logger.info(
            "ledger_entry_inserted",
            extra={
                "entry_id": str(entry.id),
                "split_role": role.value,
                "user_id": str(values["user_id"]),
                "commission_amount": values["commission_amount"],
                "payout_period_start": period,
            },
        )
        return entry.id

    @staticmethod
    def _unchanged(entry: CommissionLedgerEntry, values: dict[str, Any]) -> bool:
        for name in _REPLACEABLE_FIELDS:
            current = getattr(entry, name)
            new = values[name]
            if name == "entry_type":
                current = str(getattr(current, "value", current))
            elif name == "calculation_basis":
                if not _same_basis(current, new):
                    return False
                continue
            if current != new:
                return False
        return True

    def _reject(self, entry: CommissionLedgerEntry, role: SplitRole) -> SplitWriteResult:
        status = LedgerEntryStatus(entry.status)
        logger.warning(
            "ledger_entry_write_rejected",
            extra={
                "entry_id": str(entry.id),
                "split_role": role.value,
                "status": status.value,
                "error_code": ImmutableEntryError.code,
            },
        )
        return SplitWriteResult(
            role=role,
            outcome=WriteOutcome.REJECTED,
            entry_id=entry.id,
            error_code=ImmutableEntryError.code,
            message=f"Entry is {status.value}; only pending entries can be replaced",
        )

    def _remove_stale(self, entry: CommissionLedgerEntry, role: SplitRole) -> SplitWriteResult:
        if not entry.is_replaceable:
            logger.info(
                "stale_entry_retained",
                extra={"entry_id": str(entry.id), "split_role": role.value, "status": str(entry.status)},
            )
            return self._reject(entry, role)

        entry_id = entry.id
        self.session.delete(entry)
        self.session.flush()
        logger.info(
            "ledger_entry_removed",
            extra={"entry_id": str(entry_id), "split_role": role.value},
        )
        return SplitWriteResult(role=role, outcome=WriteOutcome.REMOVED, entry_id=entry_id)


def _same_basis(stored: dict[str, Any] | None, new: dict[str, Any]) -> bool:
    """Compare basis records by value; stored amounts may carry extra scale."""
    if stored is None or stored.get("kind") != new.get("kind"):
        return False
    return basis_from_dict(stored) == basis_from_dict(new)
