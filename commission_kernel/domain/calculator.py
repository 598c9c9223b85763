"""
Fee & Split Calculator -- the commission waterfall as a pure function.

Responsibility:
    Turns one payment plus its client's role assignments into the ordered
    commission splits for closer, setter, referrer and coach.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    CommissionService, whose output goes to LedgerWriter.persist().

Algorithm (fixed order):
    1. after_fees = gross - fee.  The fee is never split.  A missing fee is
       zero in RECORDED mode or gross * 2.9% + 0.30 in ESTIMATE_MISSING mode.
    2. closer = gross * closer_rate      (if a closer is assigned)
    3. setter = gross * setter_rate      (if a setter is assigned)
    4. referrer = flat fee               (if referred AND first payment)
    5. remainder = after_fees - closer - setter
                   (- referrer only when policy.referrer_reduces_remainder)
       coach = remainder * coach_rate[lead_source], floored at zero.
    6. Each final amount is rounded half-up to the currency minor unit.
       The remainder is built from the rounded closer/setter amounts, so
       the figures in the coach basis match the ledger exactly.

Invariants enforced:
    - closer + setter <= gross (policy guarantees closer_rate + setter_rate <= 1).
    - sum(splits) <= after_fees whenever the remainder is non-negative.
    - Same inputs, same outputs.  No clock, no randomness.

Failure modes:
    - InvalidPaymentStateError: payment not succeeded.
    - ClientMismatchError: payment linked to another client.
    - MissingCoachError: client has no coach.
    - A negative remainder is not an error.  The coach amount floors at zero
      and a NegativeRemainderWarning rides on the result.
"""

from __future__ import annotations

from decimal import Decimal

from commission_kernel.db.types import minor_units, round_money
from commission_kernel.domain.basis import (
    CloserBasis,
    CoachBasis,
    ReferrerBasis,
    SetterBasis,
)
from commission_kernel.domain.dtos import (
    CalculationResult,
    ClientSnapshot,
    NegativeRemainderWarning,
    PaymentSnapshot,
    SplitLine,
)
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.domain.values import (
    EntryType,
    FeeMode,
    LeadSource,
    PaymentStatus,
    SplitRole,
)
from commission_kernel.exceptions import (
    ClientMismatchError,
    InvalidPaymentStateError,
    MissingCoachError,
)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def resolve_fee(
    payment: PaymentSnapshot, policy: CommissionPolicy
) -> tuple[Decimal, bool]:
    """Processor fee to deduct, and whether it was estimated."""
    if payment.stripe_fee is not None:
        return payment.stripe_fee, False
    if policy.fee_mode == FeeMode.ESTIMATE_MISSING:
        estimate = payment.amount * policy.fee_estimate_percent + policy.fee_estimate_fixed
        return round_money(estimate, minor_units(payment.currency)), True
    return _ZERO, False


def check_preconditions(payment: PaymentSnapshot, client: ClientSnapshot) -> None:
    """Raise the matching CalculationError if the pair cannot be calculated."""
    if PaymentStatus(payment.status) != PaymentStatus.SUCCEEDED:
        raise InvalidPaymentStateError(
            str(payment.payment_id), PaymentStatus(payment.status).value
        )
    if payment.client_id != client.client_id:
        raise ClientMismatchError(
            str(payment.payment_id),
            str(payment.client_id) if payment.client_id else None,
            str(client.client_id),
        )
    if client.assigned_coach_id is None:
        raise MissingCoachError(str(client.client_id), str(payment.payment_id))


def calculate(
    payment: PaymentSnapshot,
    client: ClientSnapshot,
    policy: CommissionPolicy,
) -> CalculationResult:
    """
    Compute the commission splits for one payment.

    Returns:
        CalculationResult with splits in closer, setter, referrer, coach order.

    Raises:
        InvalidPaymentStateError, ClientMismatchError, MissingCoachError.
    """
    check_preconditions(payment, client)

    places = minor_units(payment.currency)
    # Quantized so amounts read back from storage give the same basis
    gross = round_money(payment.amount, places)
    fee, fee_estimated = resolve_fee(payment, policy)
    fee = round_money(fee, places)
    after_fees = gross - fee

    splits: list[SplitLine] = []
    closer_amount = _ZERO
    setter_amount = _ZERO
    referrer_amount = _ZERO

    if client.sold_by_user_id is not None:
        closer_amount = round_money(gross * policy.closer_rate, places)
        splits.append(
            SplitLine(
                role=SplitRole.CLOSER,
                user_id=client.sold_by_user_id,
                amount=closer_amount,
                net_amount=after_fees,
                entry_type=EntryType.SPLIT,
                split_percentage=policy.closer_rate * _HUNDRED,
                basis=CloserBasis(rate=policy.closer_rate, gross_amount=gross),
            )
        )

    if client.appointment_setter_id is not None:
        setter_amount = round_money(gross * policy.setter_rate, places)
        splits.append(
            SplitLine(
                role=SplitRole.SETTER,
                user_id=client.appointment_setter_id,
                amount=setter_amount,
                net_amount=after_fees,
                entry_type=EntryType.SPLIT,
                split_percentage=policy.setter_rate * _HUNDRED,
                basis=SetterBasis(rate=policy.setter_rate, gross_amount=gross),
            )
        )

    if client.referred_by_user_id is not None and client.is_first_payment:
        referrer_amount = round_money(policy.referrer_flat_fee, places)
        splits.append(
            SplitLine(
                role=SplitRole.REFERRER,
                user_id=client.referred_by_user_id,
                amount=referrer_amount,
                net_amount=after_fees,
                entry_type=EntryType.SPLIT,
                split_percentage=None,
                basis=ReferrerBasis(
                    flat_fee=referrer_amount,
                    reduces_coach_remainder=policy.referrer_reduces_remainder,
                ),
            )
        )

    other_commissions = closer_amount + setter_amount
    if policy.referrer_reduces_remainder:
        other_commissions += referrer_amount
    remainder = after_fees - other_commissions

    lead_source = LeadSource(client.lead_source)
    coach_rate = policy.coach_rate_for(lead_source)
    warnings: list[NegativeRemainderWarning] = []
    if remainder < 0:
        coach_amount = round_money(_ZERO, places)
        warnings.append(
            NegativeRemainderWarning(
                payment_id=payment.payment_id,
                after_fees=after_fees,
                other_commissions=other_commissions,
                remainder=remainder,
            )
        )
    else:
        coach_amount = round_money(remainder * coach_rate, places)

    splits.append(
        SplitLine(
            role=SplitRole.COACH,
            user_id=client.assigned_coach_id,
            amount=coach_amount,
            net_amount=remainder,
            entry_type=EntryType.COMMISSION,
            split_percentage=coach_rate * _HUNDRED,
            basis=CoachBasis(
                rate=coach_rate,
                lead_source=lead_source.value,
                stripe_fee=fee,
                other_commissions=other_commissions,
                remainder_amount=remainder,
                fee_estimated=fee_estimated,
            ),
        )
    )

    return CalculationResult(
        payment_id=payment.payment_id,
        client_id=client.client_id,
        gross_amount=gross,
        stripe_fee=fee,
        after_fees=after_fees,
        remainder=remainder,
        splits=tuple(splits),
        warnings=tuple(warnings),
    )
