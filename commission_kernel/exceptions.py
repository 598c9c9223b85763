"""
Typed Exception Hierarchy for the Commission Kernel.

Every error raised by the kernel is a subclass of CommissionKernelError and
carries:
  1. a TYPED exception class (catch by type, not message)
  2. a ``code`` class attribute (machine-readable, API-safe)
  3. structured attributes (ids, amounts, statuses) instead of message text

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CommissionKernelError (base)
    |
    +-- ConfigError
    |   +-- InvalidPolicyError
    |
    +-- CalculationError                (precondition errors, per payment)
    |   +-- MissingCoachError
    |   +-- InvalidPaymentStateError
    |   +-- ClientMismatchError
    |
    +-- LedgerError
    |   +-- ImmutableEntryError
    |   +-- PaymentExcludedError
    |   +-- ImmutabilityViolationError
    |
    +-- ReconciliationError
    |   +-- PaymentNotFoundError
    |   +-- ClientNotFoundError
    |   +-- ClientInactiveError
    |   +-- PaymentAlreadyMatchedError
    |   +-- PaymentAlreadyExcludedError
    |   +-- ExclusionReasonRequiredError
    |
    +-- AdjustmentError
    |   +-- InvalidAdjustmentError
    |   +-- UserNotFoundError
    |
    +-- IngestionError
        +-- CsvParseError
        +-- MappingIncompleteError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Config          | INVALID_POLICY              | Rates out of range, bad anchor, etc.
----------------|-----------------------------|-----------------------------------------
Calculation     | MISSING_COACH               | Client has no assigned coach
                | INVALID_PAYMENT_STATE       | Payment is not succeeded
                | CLIENT_MISMATCH             | Payment linked to a different client
----------------|-----------------------------|-----------------------------------------
Ledger          | IMMUTABLE_ENTRY             | Recompute hits an approved/paid entry
                | PAYMENT_EXCLUDED            | Persist called for an excluded payment
                | IMMUTABILITY_VIOLATION      | ORM update/delete of a frozen row
----------------|-----------------------------|-----------------------------------------
Reconciliation  | PAYMENT_NOT_FOUND           | Payment id unknown
                | CLIENT_NOT_FOUND            | Client id unknown
                | CLIENT_INACTIVE             | Client deactivated
                | PAYMENT_ALREADY_MATCHED     | Payment linked (possibly concurrently)
                | PAYMENT_ALREADY_EXCLUDED    | Payment excluded; terminal
                | EXCLUSION_REASON_REQUIRED   | Blank exclusion reason
----------------|-----------------------------|-----------------------------------------
Adjustment      | INVALID_ADJUSTMENT          | Zero amount or short reason
                | USER_NOT_FOUND              | Target user unknown
----------------|-----------------------------|-----------------------------------------
Ingestion       | CSV_PARSE_ERROR             | Undecodable bytes, missing header
                | MAPPING_INCOMPLETE          | No coach field or commission field

Row-level import problems are values (RowIssue / RowError), never exceptions.
"""


class CommissionKernelError(Exception):
    """
    Base exception for all commission kernel errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "COMMISSION_KERNEL_ERROR"


# Configuration


class ConfigError(CommissionKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidPolicyError(ConfigError):
    """Commission policy failed validation."""

    code: str = "INVALID_POLICY"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid commission policy field {field!r}: {reason}")


# Calculation preconditions


class CalculationError(CommissionKernelError):
    """
    Base exception for calculation precondition failures.

    A payment that raises one of these produces no ledger entries and is
    flagged on the payment row for manual attention.
    """

    code: str = "CALCULATION_ERROR"


class MissingCoachError(CalculationError):
    """Client has no assigned coach; nothing is payable."""

    code: str = "MISSING_COACH"

    def __init__(self, client_id: str, payment_id: str | None = None):
        self.client_id = client_id
        self.payment_id = payment_id
        super().__init__(f"Client {client_id} has no assigned coach")


class InvalidPaymentStateError(CalculationError):
    """Payment status does not allow calculation."""

    code: str = "INVALID_PAYMENT_STATE"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(
            f"Payment {payment_id} has status {status!r}; only succeeded payments are calculated"
        )


class ClientMismatchError(CalculationError):
    """Payment is linked to a different client than the one supplied."""

    code: str = "CLIENT_MISMATCH"

    def __init__(self, payment_id: str, payment_client_id: str | None, client_id: str):
        self.payment_id = payment_id
        self.payment_client_id = payment_client_id
        self.client_id = client_id
        super().__init__(
            f"Payment {payment_id} belongs to client {payment_client_id}, not {client_id}"
        )


# Ledger


class LedgerError(CommissionKernelError):
    """Base exception for ledger write errors."""

    code: str = "LEDGER_ERROR"


class ImmutableEntryError(LedgerError):
    """A recomputation tried to overwrite an approved or paid ledger entry."""

    code: str = "IMMUTABLE_ENTRY"

    def __init__(self, entry_id: str, payment_id: str, split_role: str, status: str):
        self.entry_id = entry_id
        self.payment_id = payment_id
        self.split_role = split_role
        self.status = status
        super().__init__(
            f"Ledger entry {entry_id} ({split_role} on payment {payment_id}) "
            f"is {status} and cannot be replaced"
        )


class PaymentExcludedError(LedgerError):
    """Excluded payments never produce ledger entries."""

    code: str = "PAYMENT_EXCLUDED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} is excluded from commissions")


class ImmutabilityViolationError(LedgerError):
    """Attempted to modify or delete a frozen record through the ORM."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Orphan reconciliation


class ReconciliationError(CommissionKernelError):
    """Base exception for orphan reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class PaymentNotFoundError(ReconciliationError):
    """Payment with given id was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class ClientNotFoundError(ReconciliationError):
    """Client with given id was not found."""

    code: str = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")


class ClientInactiveError(ReconciliationError):
    """Client exists but is no longer active."""

    code: str = "CLIENT_INACTIVE"

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client {client_id} is inactive")


class PaymentAlreadyMatchedError(ReconciliationError):
    """Payment is already linked to a client."""

    code: str = "PAYMENT_ALREADY_MATCHED"

    def __init__(self, payment_id: str, client_id: str | None = None):
        self.payment_id = payment_id
        self.client_id = client_id
        super().__init__(f"Payment {payment_id} is already matched to a client")


class PaymentAlreadyExcludedError(ReconciliationError):
    """Payment was excluded; exclusion is terminal."""

    code: str = "PAYMENT_ALREADY_EXCLUDED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} is excluded")


class ExclusionReasonRequiredError(ReconciliationError):
    """Exclusion requires a non-blank reason."""

    code: str = "EXCLUSION_REASON_REQUIRED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"A reason is required to exclude payment {payment_id}")


# Adjustments


class AdjustmentError(CommissionKernelError):
    """Base exception for adjustment ledger errors."""

    code: str = "ADJUSTMENT_ERROR"


class InvalidAdjustmentError(AdjustmentError):
    """Adjustment failed validation."""

    code: str = "INVALID_ADJUSTMENT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid adjustment {field}: {reason}")


class UserNotFoundError(AdjustmentError):
    """Team user with given id was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# Ingestion


class IngestionError(CommissionKernelError):
    """Base exception for bulk import errors."""

    code: str = "INGESTION_ERROR"


class CsvParseError(IngestionError):
    """The file cannot be read as a table at all."""

    code: str = "CSV_PARSE_ERROR"

    def __init__(self, reason: str, row_number: int | None = None, byte_offset: int | None = None):
        self.reason = reason
        self.row_number = row_number
        self.byte_offset = byte_offset
        where = ""
        if row_number is not None:
            where = f" (row {row_number})"
        elif byte_offset is not None:
            where = f" (byte {byte_offset})"
        super().__init__(f"CSV parse error{where}: {reason}")


class MappingIncompleteError(IngestionError):
    """Column mapping lacks a coach identifier or the commission amount."""

    code: str = "MAPPING_INCOMPLETE"

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Column mapping incomplete; missing: {', '.join(missing)}")
