"""
CommissionPolicy -- explicit configuration for the calculator and periods.

Responsibility:
    Carries every tunable the waterfall depends on (split rates, coach rate
    table, referrer fee and its interaction with the coach remainder, fee
    mode, period anchor, currency and timezone).  Components receive a
    policy at construction; nothing reads configuration from the
    environment.

Architecture position:
    Kernel > Domain -- pure value object.  Built by commission_config from
    YAML, or constructed directly in tests.

Invariants enforced:
    - Every rate lies in [0, 1].
    - closer_rate + setter_rate <= 1, so gross-based splits never exceed
      gross.
    - A coach rate exists for every LeadSource.

Failure modes:
    - InvalidPolicyError from __post_init__ when any invariant fails.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, tzinfo
from decimal import Decimal
from zoneinfo import ZoneInfo

from commission_kernel.domain.periods import (
    DEFAULT_ANCHOR,
    PAYOUT_LAG_DAYS,
    PERIOD_LENGTH_DAYS,
    PayoutPeriod,
    payout_period_for,
    period_start,
)
from commission_kernel.domain.values import FeeMode, LeadSource
from commission_kernel.exceptions import InvalidPolicyError


def _default_coach_rates() -> dict[LeadSource, Decimal]:
    return {
        LeadSource.COMPANY_DRIVEN: Decimal("0.50"),
        LeadSource.COACH_DRIVEN: Decimal("0.70"),
    }


@dataclass(frozen=True)
class CommissionPolicy:
    name: str = "default"
    version: int = 1
    period_anchor: date = DEFAULT_ANCHOR
    period_length_days: int = PERIOD_LENGTH_DAYS
    payout_lag_days: int = PAYOUT_LAG_DAYS
    closer_rate: Decimal = Decimal("0.10")
    setter_rate: Decimal = Decimal("0.10")
    coach_rates: dict[LeadSource, Decimal] = field(default_factory=_default_coach_rates)
    referrer_flat_fee: Decimal = Decimal("100.00")
    referrer_reduces_remainder: bool = False
    fee_mode: FeeMode = FeeMode.RECORDED
    fee_estimate_percent: Decimal = Decimal("0.029")
    fee_estimate_fixed: Decimal = Decimal("0.30")
    currency: str = "USD"
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        for name in ("closer_rate", "setter_rate", "fee_estimate_percent"):
            _check_rate(name, getattr(self, name))
        for source in LeadSource:
            if source not in self.coach_rates:
                raise InvalidPolicyError("coach_rates", f"no rate for lead source {source.value!r}")
            _check_rate(f"coach_rates.{source.value}", self.coach_rates[source])
        if self.closer_rate + self.setter_rate > 1:
            raise InvalidPolicyError(
                "closer_rate",
                f"closer_rate + setter_rate = {self.closer_rate + self.setter_rate} exceeds 1",
            )
        if self.referrer_flat_fee < 0:
            raise InvalidPolicyError("referrer_flat_fee", "must not be negative")
        if self.fee_estimate_fixed < 0:
            raise InvalidPolicyError("fee_estimate_fixed", "must not be negative")
        if self.period_length_days <= 0:
            raise InvalidPolicyError("period_length_days", "must be positive")
        if self.period_anchor.weekday() != 0:
            raise InvalidPolicyError("period_anchor", "must be a Monday")

    def coach_rate_for(self, lead_source: LeadSource | str) -> Decimal:
        return self.coach_rates[LeadSource(lead_source)]

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)

    def period_start(self, d: date) -> date:
        return period_start(d, self.period_anchor, self.period_length_days)

    def payout_period(self, d: date) -> PayoutPeriod:
        return payout_period_for(
            d, self.period_anchor, self.period_length_days, self.payout_lag_days
        )


def _check_rate(name: str, value: Decimal) -> None:
    if not isinstance(value, Decimal):
        raise InvalidPolicyError(name, f"must be a Decimal, got {type(value).__name__}")
    if value < 0 or value > 1:
        raise InvalidPolicyError(name, f"{value} is outside [0, 1]")
