"""
Tests for the commission waterfall (commission_kernel/domain/calculator.py).

Verifies:
- The worked $3,000 example
- Lead-source coach rates
- Referrer fee only on the first payment
- Fee resolution (recorded vs estimated)
- Negative remainder floors the coach at zero with a warning
- Preconditions raise the matching CalculationError
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from commission_kernel.domain.calculator import calculate, resolve_fee
from commission_kernel.domain.dtos import ClientSnapshot, PaymentSnapshot
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

CLIENT_ID = uuid4()
COACH_ID = uuid4()
CLOSER_ID = uuid4()
SETTER_ID = uuid4()
REFERRER_ID = uuid4()


def _payment(amount="3000.00", fee="117.30", status=PaymentStatus.SUCCEEDED, client_id=CLIENT_ID):
    return PaymentSnapshot(
        payment_id=uuid4(),
        amount=Decimal(amount),
        currency="USD",
        status=status,
        payment_date=datetime(2025, 1, 8, 15, 0, tzinfo=timezone.utc),
        client_id=client_id,
        stripe_fee=Decimal(fee) if fee is not None else None,
    )


def _client(
    lead_source=LeadSource.COMPANY_DRIVEN,
    coach=COACH_ID,
    closer=CLOSER_ID,
    setter=SETTER_ID,
    referrer=None,
    first_payment=False,
):
    return ClientSnapshot(
        client_id=CLIENT_ID,
        lead_source=lead_source,
        assigned_coach_id=coach,
        sold_by_user_id=closer,
        appointment_setter_id=setter,
        referred_by_user_id=referrer,
        is_first_payment=first_payment,
    )


class TestWaterfall:
    """The fixed-order waterfall on a $3,000 payment with a $117.30 fee."""

    def test_worked_example(self):
        result = calculate(_payment(), _client(), CommissionPolicy())

        assert result.roles == (SplitRole.CLOSER, SplitRole.SETTER, SplitRole.COACH)
        assert result.split_for(SplitRole.CLOSER).amount == Decimal("300.00")
        assert result.split_for(SplitRole.SETTER).amount == Decimal("300.00")
        assert result.split_for(SplitRole.COACH).amount == Decimal("1141.35")
        assert result.total_commission == Decimal("1741.35")
        assert result.after_fees == Decimal("2882.70")
        assert result.remainder == Decimal("2282.70")
        assert result.warnings == ()

    def test_coach_basis_records_figures(self):
        result = calculate(_payment(), _client(), CommissionPolicy())
        coach = result.split_for(SplitRole.COACH)

        assert coach.entry_type == EntryType.COMMISSION
        assert coach.user_id == COACH_ID
        assert coach.basis.stripe_fee == Decimal("117.30")
        assert coach.basis.other_commissions == Decimal("600.00")
        assert coach.basis.remainder_amount == Decimal("2282.70")
        assert coach.basis.lead_source == "company_driven"
        assert coach.split_percentage == Decimal("50.00")

    def test_splits_are_split_entries(self):
        result = calculate(_payment(), _client(), CommissionPolicy())
        assert result.split_for(SplitRole.CLOSER).entry_type == EntryType.SPLIT
        assert result.split_for(SplitRole.SETTER).entry_type == EntryType.SPLIT

    def test_coach_driven_rate(self):
        result = calculate(
            _payment(), _client(lead_source=LeadSource.COACH_DRIVEN), CommissionPolicy()
        )
        assert result.split_for(SplitRole.COACH).amount == Decimal("1597.89")

    def test_no_closer_or_setter(self):
        result = calculate(_payment(), _client(closer=None, setter=None), CommissionPolicy())

        assert result.roles == (SplitRole.COACH,)
        assert result.split_for(SplitRole.COACH).amount == Decimal("1441.35")

    def test_deterministic(self):
        payment, client = _payment(), _client()
        assert calculate(payment, client, CommissionPolicy()) == calculate(
            payment, client, CommissionPolicy()
        )


class TestReferrer:
    def test_referrer_on_first_payment(self):
        result = calculate(
            _payment(), _client(referrer=REFERRER_ID, first_payment=True), CommissionPolicy()
        )

        referrer = result.split_for(SplitRole.REFERRER)
        assert referrer.amount == Decimal("100.00")
        assert referrer.user_id == REFERRER_ID
        assert referrer.split_percentage is None
        # Does not reduce the coach remainder by default
        assert result.split_for(SplitRole.COACH).amount == Decimal("1141.35")

    def test_no_referrer_on_later_payments(self):
        result = calculate(
            _payment(), _client(referrer=REFERRER_ID, first_payment=False), CommissionPolicy()
        )
        assert result.split_for(SplitRole.REFERRER) is None

    def test_referrer_reduces_remainder_when_enabled(self):
        policy = CommissionPolicy(referrer_reduces_remainder=True)
        result = calculate(_payment(), _client(referrer=REFERRER_ID, first_payment=True), policy)

        assert result.remainder == Decimal("2182.70")
        assert result.split_for(SplitRole.COACH).amount == Decimal("1091.35")

    def test_waterfall_order_with_referrer(self):
        result = calculate(
            _payment(), _client(referrer=REFERRER_ID, first_payment=True), CommissionPolicy()
        )
        assert result.roles == (
            SplitRole.CLOSER,
            SplitRole.SETTER,
            SplitRole.REFERRER,
            SplitRole.COACH,
        )


class TestFees:
    def test_missing_fee_is_zero_when_recorded(self):
        result = calculate(_payment(fee=None), _client(), CommissionPolicy())

        assert result.stripe_fee == Decimal("0")
        assert result.split_for(SplitRole.COACH).amount == Decimal("1200.00")

    def test_missing_fee_estimated(self):
        policy = CommissionPolicy(fee_mode=FeeMode.ESTIMATE_MISSING)
        fee, estimated = resolve_fee(_payment(fee=None), policy)

        assert fee == Decimal("87.30")
        assert estimated is True

    def test_estimated_fee_flows_into_coach(self):
        policy = CommissionPolicy(fee_mode=FeeMode.ESTIMATE_MISSING)
        result = calculate(_payment(fee=None), _client(), policy)

        coach = result.split_for(SplitRole.COACH)
        assert coach.amount == Decimal("1156.35")
        assert coach.basis.fee_estimated is True

    def test_recorded_fee_never_estimated(self):
        policy = CommissionPolicy(fee_mode=FeeMode.ESTIMATE_MISSING)
        fee, estimated = resolve_fee(_payment(fee="50.00"), policy)
        assert fee == Decimal("50.00")
        assert estimated is False


class TestNegativeRemainder:
    def test_coach_floored_at_zero(self):
        policy = CommissionPolicy(closer_rate=Decimal("0.50"), setter_rate=Decimal("0.50"))
        result = calculate(_payment(amount="1000.00", fee="100.00"), _client(), policy)

        assert result.split_for(SplitRole.COACH).amount == Decimal("0.00")
        assert result.remainder == Decimal("-100.00")
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert warning.code == "NEGATIVE_REMAINDER"
        assert "negative" in warning.message


class TestPreconditions:
    def test_failed_payment_rejected(self):
        with pytest.raises(InvalidPaymentStateError) as exc_info:
            calculate(_payment(status=PaymentStatus.FAILED), _client(), CommissionPolicy())
        assert exc_info.value.code == "INVALID_PAYMENT_STATE"

    def test_client_mismatch(self):
        with pytest.raises(ClientMismatchError):
            calculate(_payment(client_id=uuid4()), _client(), CommissionPolicy())

    def test_missing_coach(self):
        with pytest.raises(MissingCoachError) as exc_info:
            calculate(_payment(), _client(coach=None), CommissionPolicy())
        assert exc_info.value.client_id == str(CLIENT_ID)


class TestConservation:
    """Commissions never exceed what is left after fees."""

    @settings(max_examples=200, deadline=None)
    @given(
        cents=st.integers(min_value=1, max_value=10_000_000),
        fee_permille=st.integers(min_value=0, max_value=100),
        lead_source=st.sampled_from(list(LeadSource)),
    )
    def test_splits_within_after_fees(self, cents, fee_permille, lead_source):
        amount = Decimal(cents) / 100
        fee = (amount * fee_permille / 1000).quantize(Decimal("0.01"))
        result = calculate(
            _payment(amount=str(amount), fee=str(fee)),
            _client(lead_source=lead_source),
            CommissionPolicy(),
        )

        assert result.remainder >= 0
        assert result.total_commission <= result.after_fees
        for split in result.splits:
            assert split.amount >= 0
            assert split.amount == split.amount.quantize(Decimal("0.01"))
