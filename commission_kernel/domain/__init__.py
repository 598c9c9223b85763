"""Pure domain core: values, periods, policy, basis records, DTOs, calculator."""

from commission_kernel.domain.calculator import calculate
from commission_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from commission_kernel.domain.periods import (
    PayoutPeriod,
    calendar_date,
    payout_period_for,
    period_start,
    periods_around,
)
from commission_kernel.domain.policy import CommissionPolicy

__all__ = [
    "Clock",
    "CommissionPolicy",
    "DeterministicClock",
    "PayoutPeriod",
    "SystemClock",
    "calculate",
    "calendar_date",
    "payout_period_for",
    "period_start",
    "periods_around",
]
