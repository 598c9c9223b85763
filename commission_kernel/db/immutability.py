"""
ORM-level immutability enforcement for the commission ledger.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners here intercept them and raise
ImmutabilityViolationError so the flush aborts and nothing is written:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity                  | Rule
------------------------|-----------------------------------------------------
CommissionLedgerEntry   | Once PAID, no field may change and the row cannot
                        | be deleted (updated_at / updated_by_id excepted).
Payment                 | Once EXCLUDED, the payment cannot be linked to a
                        | client and cannot leave the excluded state.

Bulk statements (session.execute(update(...))) bypass mapper events; the
services that use them carry the same rule in their WHERE clause.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from commission_kernel.domain.values import LedgerEntryStatus, ReviewStatus
from commission_kernel.exceptions import ImmutabilityViolationError
from commission_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = ("updated_at", "updated_by_id")


def _previous_value(target, attr: str):
    """Value the attribute had when loaded (before pending changes)."""
    history = get_history(target, attr)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, attr)


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_ledger_entry_immutability(mapper, connection, target):
    """
    Prevent updates to paid ledger entries.

    The APPROVED -> PAID transition itself is allowed; once the row was
    paid before this flush, every non-audit field is frozen.
    """
    if _previous_value(target, "status") != LedgerEntryStatus.PAID:
        return

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            _block(
                "CommissionLedgerEntry",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a paid ledger entry",
                field=attr.key,
            )


def _check_ledger_entry_delete(mapper, connection, target):
    if _previous_value(target, "status") == LedgerEntryStatus.PAID:
        _block(
            "CommissionLedgerEntry",
            target.id,
            "DELETE",
            "Cannot delete a paid ledger entry",
        )


def _check_payment_exclusion(mapper, connection, target):
    """Excluded payments stay excluded and unlinked."""
    if _previous_value(target, "review_status") != ReviewStatus.EXCLUDED:
        return

    if target.review_status != ReviewStatus.EXCLUDED:
        _block(
            "Payment",
            target.id,
            "UPDATE",
            "Cannot reopen an excluded payment",
            field="review_status",
        )
    if target.client_id is not None and get_history(target, "client_id").added:
        _block(
            "Payment",
            target.id,
            "UPDATE",
            "Cannot link an excluded payment to a client",
            field="client_id",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call once during application start-up, after models are imported.
    """
    from commission_kernel.models.ledger import CommissionLedgerEntry
    from commission_kernel.models.payment import Payment

    event.listen(CommissionLedgerEntry, "before_update", _check_ledger_entry_immutability)
    event.listen(CommissionLedgerEntry, "before_delete", _check_ledger_entry_delete)
    event.listen(Payment, "before_update", _check_payment_exclusion)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    Only for tests that must bypass the rules to set up a scenario.
    """
    from commission_kernel.models.ledger import CommissionLedgerEntry
    from commission_kernel.models.payment import Payment

    _safe_remove_listener(CommissionLedgerEntry, "before_update", _check_ledger_entry_immutability)
    _safe_remove_listener(CommissionLedgerEntry, "before_delete", _check_ledger_entry_delete)
    _safe_remove_listener(Payment, "before_update", _check_payment_exclusion)
