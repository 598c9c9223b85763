"""
CommissionService -- calculate-then-persist for one payment.

Responsibility:
    Loads a linked payment and its client, decides whether the payment
    carries the referrer fee, runs the pure calculator and hands the result
    to LedgerWriter.  Precondition failures are recorded on the payment
    (``calculation_error``) so it shows up for manual attention instead of
    silently producing nothing.

Architecture position:
    Kernel > Services.  The entry point used by payment intake, orphan
    matching and operator-triggered recalculation.

Invariants enforced:
    - Calling calculate_and_persist() twice on an unchanged payment leaves
      the ledger identical (second call reports UNCHANGED for every role).
    - At most one referrer entry per client: when the referrer lands on a
      payment, pending referrer entries on the client's other payments are
      released.

Failure modes:
    - Returns CommissionOutcome(error_code=...) for calculation precondition
      errors and excluded payments; never raises those.
    - PaymentNotFoundError propagates for an unknown payment id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from commission_kernel.domain.calculator import calculate
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.dtos import (
    CalculationResult,
    ClientSnapshot,
    NegativeRemainderWarning,
    WriteOutcome,
    WriteResult,
)
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.domain.values import SYSTEM_ACTOR_ID, PaymentStatus, SplitRole
from commission_kernel.exceptions import (
    CalculationError,
    ClientNotFoundError,
    MissingCoachError,
    PaymentExcludedError,
    PaymentNotFoundError,
)
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.payment import Payment
from commission_kernel.services.base import BaseService
from commission_kernel.services.directory import ClientDirectory, SqlClientDirectory
from commission_kernel.services.ledger_writer import LedgerWriter

logger = get_logger("services.commission")


@dataclass(frozen=True)
class CommissionOutcome:
    payment_id: UUID
    calculated: bool
    calculation: CalculationResult | None = None
    write_result: WriteResult | None = None
    error_code: str | None = None
    message: str | None = None

    @property
    def warnings(self) -> tuple[NegativeRemainderWarning, ...]:
        return self.calculation.warnings if self.calculation else ()


@dataclass(frozen=True)
class RecalculationSummary:
    client_id: UUID
    calculated: int = 0
    failed: int = 0
    outcomes: tuple[CommissionOutcome, ...] = field(default_factory=tuple)


class CommissionService(BaseService[Payment]):
    def __init__(
        self,
        session: Session,
        policy: CommissionPolicy,
        clock: Clock | None = None,
        clients: ClientDirectory | None = None,
        writer: LedgerWriter | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()
        self._clients = clients or SqlClientDirectory(session)
        self._writer = writer or LedgerWriter(session, policy, self._clock)

    def calculate_and_persist(
        self,
        payment_id: UUID,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> CommissionOutcome:
        """
        Run the waterfall for ``payment_id`` and write the ledger.

        Raises:
            PaymentNotFoundError: payment id unknown.
        """
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))

        with LogContext.bind(payment_id=payment.id, client_id=payment.client_id):
            try:
                if payment.is_excluded:
                    raise PaymentExcludedError(str(payment.id))
                client_snapshot = self._client_snapshot(payment)
                calculation = calculate(payment.to_snapshot(), client_snapshot, self._policy)
            except (CalculationError, PaymentExcludedError, ClientNotFoundError) as exc:
                return self._flag(payment, exc)

            for warning in calculation.warnings:
                logger.warning(
                    "negative_remainder",
                    extra={
                        "warning_code": warning.code,
                        "after_fees": warning.after_fees,
                        "other_commissions": warning.other_commissions,
                        "remainder": warning.remainder,
                    },
                )

            write_result = self._writer.persist(payment.to_snapshot(), calculation, actor_id)

            referrer = next(
                (r for r in write_result.results if r.role == SplitRole.REFERRER),
                None,
            )
            if referrer is not None and referrer.outcome != WriteOutcome.REMOVED:
                self._writer.release_referrer(payment.client_id, payment.id)

            payment.commission_calculated = True
            payment.calculation_error = None
            payment.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "commission_calculated",
                extra={
                    "client_id": str(payment.client_id),
                    "gross_amount": calculation.gross_amount,
                    "after_fees": calculation.after_fees,
                    "total_commission": calculation.total_commission,
                    "roles": [r.value for r in calculation.roles],
                    "first_calculation": write_result.is_first_calculation,
                },
            )
            return CommissionOutcome(
                payment_id=payment.id,
                calculated=True,
                calculation=calculation,
                write_result=write_result,
            )

    def recalculate_client(
        self,
        client_id: UUID,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> RecalculationSummary:
        """Recompute every succeeded payment of a client, oldest first."""
        payment_ids = self.session.scalars(
            select(Payment.id)
            .where(Payment.client_id == client_id)
            .where(Payment.status == PaymentStatus.SUCCEEDED.value)
            .order_by(Payment.payment_date, Payment.id)
        ).all()

        outcomes = tuple(self.calculate_and_persist(pid, actor_id) for pid in payment_ids)
        calculated = sum(1 for o in outcomes if o.calculated)
        logger.info(
            "client_recalculated",
            extra={
                "client_id": str(client_id),
                "payments": len(outcomes),
                "calculated": calculated,
            },
        )
        return RecalculationSummary(
            client_id=client_id,
            calculated=calculated,
            failed=len(outcomes) - calculated,
            outcomes=outcomes,
        )

    # ------------------------------------------------------------------

    def _client_snapshot(self, payment: Payment) -> ClientSnapshot:
        if payment.client_id is None:
            raise ClientNotFoundError("<unlinked>")
        client = self._clients.get_client(payment.client_id)
        if client is None:
            raise ClientNotFoundError(str(payment.client_id))
        if client.assigned_coach_id is None:
            raise MissingCoachError(str(client.id), str(payment.id))
        is_first = (
            client.referred_by_user_id is not None
            and self._clients.is_first_payment(client.id, payment)
        )
        return client.to_snapshot(is_first_payment=is_first)

    def _flag(self, payment: Payment, exc: Exception) -> CommissionOutcome:
        code = getattr(exc, "code", type(exc).__name__)
        payment.commission_calculated = False
        payment.calculation_error = code
        self.session.flush()
        logger.warning(
            "commission_not_calculated",
            extra={"error_code": code, "reason": str(exc)},
        )
        return CommissionOutcome(
            payment_id=payment.id,
            calculated=False,
            error_code=code,
            message=str(exc),
        )
