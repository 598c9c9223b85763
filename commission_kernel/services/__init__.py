"""Services for the commission kernel (write side)."""

from commission_kernel.services.adjustment_service import AdjustmentService
from commission_kernel.services.commission_service import (
    CommissionOutcome,
    CommissionService,
    RecalculationSummary,
)
from commission_kernel.services.directory import (
    ClientDirectory,
    SqlClientDirectory,
    SqlUserDirectory,
    UserDirectory,
)
from commission_kernel.services.ledger_writer import LedgerWriter
from commission_kernel.services.orphan_service import (
    BatchReconciliationResult,
    OrphanReconciliationService,
    ReconciliationResult,
)
from commission_kernel.services.payment_intake import (
    IntakeResult,
    IntakeStatus,
    MatchMethod,
    PaymentEvent,
    PaymentIntakeService,
    RefundResult,
)

__all__ = [
    "AdjustmentService",
    "BatchReconciliationResult",
    "ClientDirectory",
    "CommissionOutcome",
    "CommissionService",
    "IntakeResult",
    "IntakeStatus",
    "LedgerWriter",
    "MatchMethod",
    "OrphanReconciliationService",
    "PaymentEvent",
    "PaymentIntakeService",
    "RecalculationSummary",
    "ReconciliationResult",
    "RefundResult",
    "SqlClientDirectory",
    "SqlUserDirectory",
    "UserDirectory",
]
