"""
PaymentIntakeService -- entry point for payment events (webhook or backfill).

Responsibility:
    Records a processor payment idempotently by its external id, links it
    to a client when possible and routes linked, succeeded payments through
    calculation.  Handles refunds by updating the payment and charging the
    commission back.

Architecture position:
    Kernel > Services.  Called by the payment-ingestion layer after it has
    fetched and normalized the processor object.  HTTP, pagination and
    retries against the processor are out of scope.

Matching order for an event without a client id:
    1. stripe_customer_id stored on a client
    2. exactly one client with the same email (case-insensitive)
    Otherwise the payment becomes an orphan (review_status = pending_review).

Invariants enforced:
    - One payments row per external_payment_id.  Concurrent first deliveries
      race on the unique index inside a savepoint and the loser re-reads.
    - Re-delivery never unlinks or un-excludes a payment.
    - Chargebacks are cumulative: each entry is charged back up to
      commission x refunded / amount (the full commission on a full
      refund), so replaying a refund event adds nothing.
    - On a full refund, PENDING entries are voided instead of charged back,
      and chargebacks from earlier partial refunds on them are reversed.

Failure modes:
    - IntakeResult(status=REJECTED) for a non-positive amount or unknown
      currency.
    - PaymentNotFoundError / InvalidAdjustmentError from record_refund().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commission_kernel.db.types import InvalidCurrencyError, minor_units, round_money, validate_currency
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.dtos import AdjustmentInfo
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.domain.values import (
    SYSTEM_ACTOR_ID,
    AdjustmentType,
    LedgerEntryStatus,
    PaymentStatus,
    ReviewStatus,
)
from commission_kernel.exceptions import InvalidAdjustmentError, PaymentNotFoundError
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.adjustment import CommissionAdjustment
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.models.payment import Payment
from commission_kernel.services.base import BaseService
from commission_kernel.services.commission_service import CommissionOutcome, CommissionService
from commission_kernel.services.directory import ClientDirectory, SqlClientDirectory
from commission_kernel.services.ledger_writer import LedgerWriter

logger = get_logger("services.payment_intake")


@dataclass(frozen=True)
class PaymentEvent:
    """A normalized processor payment."""

    external_payment_id: str
    amount: Decimal
    status: PaymentStatus
    payment_date: datetime
    currency: str = "USD"
    stripe_fee: Decimal | None = None
    refund_amount: Decimal = Decimal("0")
    client_id: UUID | None = None
    stripe_customer_id: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None


class IntakeStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    REJECTED = "rejected"


class MatchMethod(str, Enum):
    PROVIDED = "provided"
    STRIPE_CUSTOMER = "stripe_customer"
    EMAIL = "email"


@dataclass(frozen=True)
class IntakeResult:
    status: IntakeStatus
    payment_id: UUID | None = None
    linked: bool = False
    match_method: MatchMethod | None = None
    commission: CommissionOutcome | None = None
    message: str | None = None


@dataclass(frozen=True)
class RefundResult:
    payment_id: UUID
    status: PaymentStatus
    refund_amount: Decimal
    full_refund: bool
    voided: int = 0
    chargebacks: tuple[AdjustmentInfo, ...] = field(default_factory=tuple)


class PaymentIntakeService(BaseService[Payment]):
    def __init__(
        self,
        session: Session,
        policy: CommissionPolicy,
        clock: Clock | None = None,
        clients: ClientDirectory | None = None,
        commission_service: CommissionService | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()
        self._clients = clients or SqlClientDirectory(session)
        self._writer = LedgerWriter(session, policy, self._clock)
        self._commissions = commission_service or CommissionService(
            session, policy, self._clock, clients=self._clients, writer=self._writer
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(
        self,
        event: PaymentEvent,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> IntakeResult:
        """Insert or update the payment, link it if possible, calculate if linked."""
        with LogContext.bind(producer="payment_intake", actor_id=actor_id):
            rejection = self._validate(event)
            if rejection is not None:
                logger.warning(
                    "payment_rejected",
                    extra={"external_payment_id": event.external_payment_id, "reason": rejection},
                )
                return IntakeResult(status=IntakeStatus.REJECTED, message=rejection)

            payment, created = self._upsert(event, actor_id)

            with LogContext.bind(payment_id=payment.id):
                method = None
                if payment.client_id is None and not payment.is_excluded:
                    method = self._auto_link(payment, event)
                    if payment.client_id is None:
                        payment.review_status = ReviewStatus.PENDING_REVIEW.value
                elif payment.client_id is not None and created:
                    method = MatchMethod.PROVIDED
                self.session.flush()

                commission = None
                if payment.client_id is not None and payment.status == PaymentStatus.SUCCEEDED:
                    commission = self._commissions.calculate_and_persist(payment.id, actor_id)

                logger.info(
                    "payment_recorded",
                    extra={
                        "external_payment_id": payment.external_payment_id,
                        "is_new": created,
                        "linked": payment.client_id is not None,
                        "match_method": method.value if method else None,
                        "review_status": payment.review_status,
                    },
                )
                return IntakeResult(
                    status=IntakeStatus.CREATED if created else IntakeStatus.UPDATED,
                    payment_id=payment.id,
                    linked=payment.client_id is not None,
                    match_method=method,
                    commission=commission,
                )

    def _validate(self, event: PaymentEvent) -> str | None:
        if not event.external_payment_id:
            return "external_payment_id is required"
        if event.amount <= 0:
            return f"amount must be positive, got {event.amount}"
        if event.stripe_fee is not None and event.stripe_fee < 0:
            return f"stripe_fee must not be negative, got {event.stripe_fee}"
        try:
            validate_currency(event.currency)
        except InvalidCurrencyError as exc:
            return str(exc)
        return None

    def _find(self, external_payment_id: str) -> Payment | None:
        return self.session.scalars(
            select(Payment).where(Payment.external_payment_id == external_payment_id)
        ).first()

    def _upsert(self, event: PaymentEvent, actor_id: UUID) -> tuple[Payment, bool]:
        payment = self._find(event.external_payment_id)
        if payment is None:
            savepoint = self.session.begin_nested()
            try:
                payment = Payment(
                    external_payment_id=event.external_payment_id,
                    amount=event.amount,
                    currency=validate_currency(event.currency),
                    status=PaymentStatus(event.status).value,
                    refund_amount=event.refund_amount,
                    payment_date=_as_utc(event.payment_date),
                    stripe_customer_id=event.stripe_customer_id,
                    customer_email=event.customer_email,
                    customer_name=event.customer_name,
                    created_by_id=actor_id,
                )
                payment.set_fee(event.stripe_fee)
                if event.client_id is not None and self._clients.get_client(event.client_id):
                    payment.client_id = event.client_id
                self.session.add(payment)
                self.session.flush()
                savepoint.commit()
                return payment, True
            except IntegrityError:
                savepoint.rollback()
                logger.debug(
                    "payment_insert_race_retry",
                    extra={"external_payment_id": event.external_payment_id},
                )
                payment = self._find(event.external_payment_id)
                if payment is None:
                    raise

        # Re-delivery: refresh mutable processor fields only.
        if event.stripe_fee is not None:
            payment.set_fee(event.stripe_fee)
        if event.refund_amount > payment.refund_amount:
            payment.refund_amount = event.refund_amount
        payment.status = self._redelivered_status(payment, PaymentStatus(event.status)).value
        if (
            payment.client_id is None
            and not payment.is_excluded
            and event.client_id is not None
            and self._clients.get_client(event.client_id) is not None
        ):
            payment.client_id = event.client_id
            payment.review_status = None
        payment.stripe_customer_id = payment.stripe_customer_id or event.stripe_customer_id
        payment.customer_email = payment.customer_email or event.customer_email
        payment.customer_name = payment.customer_name or event.customer_name
        payment.updated_by_id = actor_id
        self.session.flush()
        return payment, False

    @staticmethod
    def _redelivered_status(payment: Payment, status: PaymentStatus) -> PaymentStatus:
        """A replayed charge event never undoes a recorded refund."""
        if payment.refund_amount > 0 and status in (PaymentStatus.SUCCEEDED, PaymentStatus.PENDING):
            if payment.refund_amount >= payment.amount:
                return PaymentStatus.REFUNDED
            return PaymentStatus.PARTIALLY_REFUNDED
        return status

    def _auto_link(self, payment: Payment, event: PaymentEvent) -> MatchMethod | None:
        customer_id = event.stripe_customer_id or payment.stripe_customer_id
        if customer_id:
            client = self._clients.find_by_stripe_customer(customer_id)
            if client is not None:
                payment.client_id = client.id
                payment.review_status = None
                return MatchMethod.STRIPE_CUSTOMER

        email = event.customer_email or payment.customer_email
        if email:
            candidates = [c for c in self._clients.find_by_email(email) if c.is_active]
            if len(candidates) == 1:
                payment.client_id = candidates[0].id
                payment.review_status = None
                return MatchMethod.EMAIL
            if len(candidates) > 1:
                logger.info(
                    "payment_email_match_ambiguous",
                    extra={"candidates": len(candidates)},
                )
        return None

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def record_refund(
        self,
        external_payment_id: str,
        refund_amount: Decimal,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> RefundResult:
        """
        Apply a (cumulative) refund amount to a payment.

        Raises:
            PaymentNotFoundError: unknown external id.
            InvalidAdjustmentError: non-positive refund amount.
        """
        payment = self._find(external_payment_id)
        if payment is None:
            raise PaymentNotFoundError(external_payment_id)
        if refund_amount <= 0:
            raise InvalidAdjustmentError("refund_amount", "must be positive")

        with LogContext.bind(payment_id=payment.id, actor_id=actor_id, producer="payment_intake"):
            total_refund = max(refund_amount, payment.refund_amount)
            full = total_refund >= payment.amount
            payment.refund_amount = total_refund
            payment.refunded_at = self._clock.now()
            payment.status = (
                PaymentStatus.REFUNDED.value if full else PaymentStatus.PARTIALLY_REFUNDED.value
            )
            payment.updated_by_id = actor_id
            self.session.flush()

            voided = self._writer.void_pending(payment.id, actor_id) if full else 0

            entries = self.session.scalars(
                select(CommissionLedgerEntry)
                .where(CommissionLedgerEntry.payment_id == payment.id)
                .order_by(CommissionLedgerEntry.created_at, CommissionLedgerEntry.id)
            ).all()

            places = minor_units(payment.currency)
            payer = self._payer_name(payment)
            chargebacks = []
            for entry in entries:
                voided_entry = entry.status == LedgerEntryStatus.VOID
                if voided_entry:
                    # A voided entry nets to zero chargeback
                    target = Decimal("0")
                elif full:
                    target = entry.commission_amount
                else:
                    target = round_money(
                        entry.commission_amount * total_refund / payment.amount, places
                    )
                already = -self._charged_back(entry.id)
                delta = round_money(target - already, places)
                if delta == 0:
                    continue
                if voided_entry:
                    notes = f"Entry voided. Earlier chargeback of {round_money(already, places)} reversed."
                else:
                    notes = (
                        f"Original commission: {round_money(entry.commission_amount, places)}. "
                        f"{'Full' if full else 'Partial'} refund of {total_refund} processed."
                    )
                adjustment = CommissionAdjustment(
                    user_id=entry.user_id,
                    amount=-delta,
                    adjustment_type=AdjustmentType.CHARGEBACK.value,
                    reason=f"Refund for {payer}'s payment",
                    notes=notes,
                    is_visible_to_user=True,
                    related_payment_id=payment.id,
                    related_ledger_id=entry.id,
                    created_by_id=actor_id,
                )
                self.session.add(adjustment)
                chargebacks.append(adjustment)
            self.session.flush()

            logger.info(
                "payment_refunded",
                extra={
                    "refund_amount": total_refund,
                    "full_refund": full,
                    "voided": voided,
                    "chargebacks": len(chargebacks),
                },
            )
            return RefundResult(
                payment_id=payment.id,
                status=PaymentStatus(payment.status),
                refund_amount=total_refund,
                full_refund=full,
                voided=voided,
                chargebacks=tuple(a.to_dto() for a in chargebacks),
            )

    def _payer_name(self, payment: Payment) -> str:
        if payment.client_id is not None:
            client = self._clients.get_client(payment.client_id)
            if client is not None:
                return client.name
        return payment.customer_name or payment.external_payment_id

    def _charged_back(self, ledger_id: UUID) -> Decimal:
        total = self.session.scalar(
            select(func.coalesce(func.sum(CommissionAdjustment.amount), 0))
            .where(CommissionAdjustment.related_ledger_id == ledger_id)
            .where(CommissionAdjustment.adjustment_type == AdjustmentType.CHARGEBACK.value)
        )
        return Decimal(str(total))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
