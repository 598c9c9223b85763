"""
Value enumerations shared by the domain core and the ORM models.

Pure module: no I/O, no SQLAlchemy.  Every enum is a ``str`` subclass so the
values round-trip through String columns and JSON without conversion.
"""

from enum import Enum
from uuid import UUID

# Actor recorded on rows written by automatic paths (intake, recalculation)
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    PENDING = "pending"


class ReviewStatus(str, Enum):
    """Orphan review flag.  NULL on the row means "linked, nothing to review"."""

    PENDING_REVIEW = "pending_review"
    EXCLUDED = "excluded"


class LeadSource(str, Enum):
    """Who generated the client; selects the coach rate."""

    COMPANY_DRIVEN = "company_driven"
    COACH_DRIVEN = "coach_driven"


class SplitRole(str, Enum):
    """Earner role on a ledger entry.  Declaration order is waterfall order."""

    CLOSER = "closer"
    SETTER = "setter"
    REFERRER = "referrer"
    COACH = "coach"


class EntryType(str, Enum):
    SPLIT = "split"
    COMMISSION = "commission"
    MANUAL = "manual"
    HISTORICAL = "historical"


class LedgerEntryStatus(str, Enum):
    """
    Ledger entry lifecycle.

    PENDING -> APPROVED -> PAID is driven by payroll approval.  VOID is set
    when the underlying payment is fully refunded before payout.  Only
    PENDING entries may be replaced by a recomputation.
    """

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    VOID = "void"


class AdjustmentType(str, Enum):
    BONUS = "bonus"
    DEDUCTION = "deduction"
    CORRECTION = "correction"
    CHARGEBACK = "chargeback"


class FeeMode(str, Enum):
    """How a missing processor fee is treated by the calculator."""

    RECORDED = "recorded"
    ESTIMATE_MISSING = "estimate_missing"
