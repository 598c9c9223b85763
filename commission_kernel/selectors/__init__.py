"""Selectors for the commission kernel (read side)."""

from commission_kernel.selectors.ledger_selector import LedgerSelector, UserPeriodTotal
from commission_kernel.selectors.payment_selector import PaymentSelector, UncalculatedPayment

__all__ = [
    "LedgerSelector",
    "PaymentSelector",
    "UncalculatedPayment",
    "UserPeriodTotal",
]
