"""
OrphanReconciliationService -- the review queue for unlinked payments.

Responsibility:
    Lists payments that could not be auto-matched to a client, lets an
    operator search clients, match a payment (which triggers calculation)
    or exclude it permanently.

Architecture position:
    Kernel > Services.  Operator-facing boundary: every operation returns a
    ReconciliationResult and never raises a kernel error past this class.

State machine:
    unmatched --match--> matched     (terminal; calculate + persist)
    unmatched --exclude-> excluded   (terminal; reason required)

Invariants enforced:
    - Linking is a compare-and-swap UPDATE guarded by ``client_id IS NULL``
      and "not excluded".  Of two operators matching the same payment, one
      wins and the other gets PAYMENT_ALREADY_MATCHED.
    - Excluded payments never get a client and never produce ledger
      entries.  There is no transition out of excluded.
    - The client is re-verified (exists, active) at match time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.dtos import ClientMatchCandidate, OrphanPaymentInfo, WriteResult
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.domain.values import ReviewStatus
from commission_kernel.exceptions import (
    ClientInactiveError,
    ClientNotFoundError,
    CommissionKernelError,
    ExclusionReasonRequiredError,
    PaymentAlreadyExcludedError,
    PaymentAlreadyMatchedError,
    PaymentNotFoundError,
)
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.payment import Payment
from commission_kernel.services.base import BaseService
from commission_kernel.services.commission_service import CommissionService
from commission_kernel.services.directory import ClientDirectory, SqlClientDirectory

logger = get_logger("services.orphan")

_NOT_EXCLUDED = or_(
    Payment.review_status.is_(None),
    Payment.review_status != ReviewStatus.EXCLUDED.value,
)


@dataclass(frozen=True)
class ReconciliationResult:
    success: bool
    payment_id: UUID
    error_code: str | None = None
    message: str | None = None
    client_id: UUID | None = None
    write_result: WriteResult | None = None
    calculation_error: str | None = None


@dataclass(frozen=True)
class BatchReconciliationResult:
    matched: int
    failed: int
    results: tuple[ReconciliationResult, ...] = field(default_factory=tuple)


class OrphanReconciliationService(BaseService[Payment]):
    def __init__(
        self,
        session: Session,
        policy: CommissionPolicy,
        clock: Clock | None = None,
        clients: ClientDirectory | None = None,
        commission_service: CommissionService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._clients = clients or SqlClientDirectory(session)
        self._commissions = commission_service or CommissionService(
            session, policy, self._clock, clients=self._clients
        )

    # ------------------------------------------------------------------
    # Queue reads
    # ------------------------------------------------------------------

    def list_orphans(self, include_excluded: bool = False) -> list[OrphanPaymentInfo]:
        """Unlinked payments, newest first."""
        stmt = select(Payment).where(Payment.client_id.is_(None))
        if not include_excluded:
            stmt = stmt.where(_NOT_EXCLUDED)
        stmt = stmt.order_by(Payment.payment_date.desc(), Payment.id)
        return [p.to_orphan_info() for p in self.session.scalars(stmt)]

    def pending_review_count(self) -> int:
        return self.session.scalar(
            select(func.count(Payment.id))
            .where(Payment.client_id.is_(None))
            .where(_NOT_EXCLUDED)
        ) or 0

    def search_clients(self, query: str, limit: int = 10) -> list[ClientMatchCandidate]:
        return self._clients.search(query, limit)

    # ------------------------------------------------------------------
    # Match
    # ------------------------------------------------------------------

    def match(self, payment_id: UUID, client_id: UUID, actor_id: UUID) -> ReconciliationResult:
        """
        Link an orphan payment to a client, then calculate its commissions.

        A calculation precondition failure (e.g. the client has no coach)
        still counts as a successful match; the error code is returned in
        ``calculation_error`` and recorded on the payment.
        """
        with LogContext.bind(payment_id=payment_id, actor_id=actor_id, producer="reconciliation"):
            try:
                self._link(payment_id, client_id, actor_id)
            except CommissionKernelError as exc:
                return self._failure(payment_id, exc, "payment_match_rejected")

            outcome = self._commissions.calculate_and_persist(payment_id, actor_id)
            logger.info(
                "payment_matched",
                extra={
                    "client_id": str(client_id),
                    "calculated": outcome.calculated,
                    "calculation_error": outcome.error_code,
                },
            )
            return ReconciliationResult(
                success=True,
                payment_id=payment_id,
                client_id=client_id,
                write_result=outcome.write_result,
                calculation_error=outcome.error_code,
                message=outcome.message,
            )

    def match_many(
        self,
        pairs: Iterable[tuple[UUID, UUID]],
        actor_id: UUID,
    ) -> BatchReconciliationResult:
        """Match several (payment_id, client_id) pairs independently."""
        results = tuple(self.match(pid, cid, actor_id) for pid, cid in pairs)
        matched = sum(1 for r in results if r.success)
        return BatchReconciliationResult(
            matched=matched,
            failed=len(results) - matched,
            results=results,
        )

    def _link(self, payment_id: UUID, client_id: UUID, actor_id: UUID) -> None:
        payment = self._load(payment_id)
        self._check_open(payment)

        client = self._clients.get_client(client_id)
        if client is None:
            raise ClientNotFoundError(str(client_id))
        if not client.is_active:
            raise ClientInactiveError(str(client_id))

        swapped = self.session.execute(
            update(Payment)
            .where(Payment.id == payment_id)
            .where(Payment.client_id.is_(None))
            .where(_NOT_EXCLUDED)
            .values(client_id=client_id, review_status=None, updated_by_id=actor_id)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            # Lost to a concurrent operator; report what they did.
            self._check_open(self._load(payment_id))
            raise PaymentAlreadyMatchedError(str(payment_id))
        self.session.expire(payment)

    # ------------------------------------------------------------------
    # Exclude
    # ------------------------------------------------------------------

    def exclude(self, payment_id: UUID, reason: str, actor_id: UUID) -> ReconciliationResult:
        """Permanently remove an orphan payment from the queue and from payroll."""
        with LogContext.bind(payment_id=payment_id, actor_id=actor_id, producer="reconciliation"):
            try:
                cleaned = (reason or "").strip()
                if not cleaned:
                    raise ExclusionReasonRequiredError(str(payment_id))
                payment = self._load(payment_id)
                self._check_open(payment)

                swapped = self.session.execute(
                    update(Payment)
                    .where(Payment.id == payment_id)
                    .where(Payment.client_id.is_(None))
                    .where(_NOT_EXCLUDED)
                    .values(
                        review_status=ReviewStatus.EXCLUDED.value,
                        exclusion_reason=cleaned,
                        excluded_at=self._clock.now(),
                        excluded_by_id=actor_id,
                        updated_by_id=actor_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                if swapped.rowcount != 1:
                    self._check_open(self._load(payment_id))
                    raise PaymentAlreadyExcludedError(str(payment_id))
                self.session.expire(payment)
            except CommissionKernelError as exc:
                return self._failure(payment_id, exc, "payment_exclude_rejected")

            logger.info("payment_excluded", extra={"reason": cleaned})
            return ReconciliationResult(success=True, payment_id=payment_id)

    # ------------------------------------------------------------------

    def _load(self, payment_id: UUID) -> Payment:
        payment = self.session.scalars(
            select(Payment)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        ).first()
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    @staticmethod
    def _check_open(payment: Payment) -> None:
        if payment.is_excluded:
            raise PaymentAlreadyExcludedError(str(payment.id))
        if payment.client_id is not None:
            raise PaymentAlreadyMatchedError(str(payment.id), str(payment.client_id))

    @staticmethod
    def _failure(payment_id: UUID, exc: CommissionKernelError, event: str) -> ReconciliationResult:
        logger.warning(event, extra={"error_code": exc.code, "reason": str(exc)})
        return ReconciliationResult(
            success=False,
            payment_id=payment_id,
            error_code=exc.code,
            message=str(exc),
        )
