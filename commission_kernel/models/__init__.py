"""ORM models for the commission kernel."""

from commission_kernel.models.adjustment import CommissionAdjustment
from commission_kernel.models.client import Client
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.models.payment import Payment
from commission_kernel.models.user import TeamUser

__all__ = [
    "Client",
    "CommissionAdjustment",
    "CommissionLedgerEntry",
    "Payment",
    "TeamUser",
]
