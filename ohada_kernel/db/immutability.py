"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Validated entries are the legal record.  Once validated, the only way to
change the ledger is a new reversal entry that leaves a visible trail.  The
services never issue such updates; these listeners catch any code path that
tries, before the SQL reaches the database.

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | When Immutable                 | Still mutable
--------------|--------------------------------|---------------------------------
JournalEntry  | After status = VALIDATED       | updated_at, updated_by_id
EntryLine     | When parent entry is VALIDATED | reconciliation_code, reconciled_at
FiscalPeriod  | After status = CLOSED          | updated_at, updated_by_id

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at/updated_by_id are audit metadata and may always change.

2. The check asks "WAS validated", not "IS validated": the DRAFT -> VALIDATED
   transition itself must go through, so the old value in the attribute
   history is what decides.

3. Reconciliation stamps lines of validated entries.  Those two columns are
   the only exception on lines.

4. Imports are inline to avoid a models <-> db import cycle.

===============================================================================
USAGE
===============================================================================

    from ohada_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to violate the rules on purpose call
unregister_immutability_listeners() and register again afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ohada_kernel.exceptions import ImmutabilityViolationError
from ohada_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Audit metadata, never financial data
AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id", "version"})

# Fields that may be updated on lines of validated entries (lettrage)
LINE_MUTABLE_AFTER_VALIDATION = AUDIT_FIELDS | {"reconciliation_code", "reconciled_at"}


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


def _was_in_status(target, sealed_value: str) -> bool:
    """True when the row already had ``sealed_value`` before this flush."""
    status_history = get_history(target, "status")
    if status_history.deleted:
        return status_history.deleted[0] == sealed_value
    if not status_history.added:
        return target.status == sealed_value
    return False


def _first_changed_field(target, allowed: frozenset[str]) -> str | None:
    for attr in inspect(target).attrs:
        if attr.key in allowed:
            continue
        if attr.history.has_changes():
            return attr.key
    return None


def _check_journal_entry_immutability(mapper, connection, target):
    """
    Prevent updates to validated JournalEntry records.

    The DRAFT -> VALIDATED transition is allowed; any change after it is not.
    """
    from ohada_kernel.models.journal import EntryStatus

    if not _was_in_status(target, EntryStatus.VALIDATED):
        return

    changed = _first_changed_field(target, AUDIT_FIELDS | {"lines"})
    if changed is not None:
        _block(
            "JournalEntry",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed}' on validated journal entry",
            field=changed,
        )


def _check_journal_entry_delete(mapper, connection, target):
    from ohada_kernel.models.journal import EntryStatus

    if target.status == EntryStatus.VALIDATED:
        _block(
            "JournalEntry",
            target.id,
            "DELETE",
            "Validated journal entries cannot be deleted",
        )


def _check_entry_line_immutability(mapper, connection, target):
    """Only reconciliation columns change on lines of a validated entry."""
    from ohada_kernel.models.journal import EntryStatus

    entry = target.entry
    if entry is None or entry.status != EntryStatus.VALIDATED:
        return

    changed = _first_changed_field(target, LINE_MUTABLE_AFTER_VALIDATION | {"entry", "account"})
    if changed is not None:
        _block(
            "EntryLine",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed}' on a line of a validated entry",
            field=changed,
        )


def _check_entry_line_delete(mapper, connection, target):
    from ohada_kernel.models.journal import EntryStatus

    entry = target.entry
    if entry is not None and entry.status == EntryStatus.VALIDATED:
        _block(
            "EntryLine",
            target.id,
            "DELETE",
            "Lines of a validated entry cannot be deleted",
        )


def _check_fiscal_period_immutability(mapper, connection, target):
    """Closed periods are frozen; OPEN -> CLOSED itself is allowed."""
    from ohada_kernel.models.fiscal_period import PeriodStatus

    if not _was_in_status(target, PeriodStatus.CLOSED):
        return

    changed = _first_changed_field(target, AUDIT_FIELDS)
    if changed is not None:
        _block(
            "FiscalPeriod",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed}' on closed fiscal period",
            field=changed,
        )


def _check_fiscal_period_delete(mapper, connection, target):
    from ohada_kernel.models.fiscal_period import PeriodStatus

    if target.status == PeriodStatus.CLOSED:
        _block(
            "FiscalPeriod",
            target.id,
            "DELETE",
            "Closed fiscal periods cannot be deleted",
        )


def _listeners():
    from ohada_kernel.models.fiscal_period import FiscalPeriod
    from ohada_kernel.models.journal import EntryLine, JournalEntry

    return (
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (EntryLine, "before_update", _check_entry_line_immutability),
        (EntryLine, "before_delete", _check_entry_line_delete),
        (FiscalPeriod, "before_update", _check_fiscal_period_immutability),
        (FiscalPeriod, "before_delete", _check_fiscal_period_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
