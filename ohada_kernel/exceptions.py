"""
Typed Exception Hierarchy for the OHADA ledger kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerKernelError:

    LedgerKernelError (base)
    |
    +-- ValidationFailedError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- EntryNotFoundError
    |   +-- PeriodNotFoundError
    |   +-- LineNotFoundError
    |
    +-- NotPostableError
    |   +-- AccountNotPostableError
    |   +-- ClosedPeriodError
    |
    +-- PostingError
    |   +-- UnbalancedEntryError
    |   +-- AlreadyValidatedError
    |   +-- EntryNotDraftError
    |   +-- EntryNotValidatedError
    |   +-- AlreadyPostedError
    |
    +-- PeriodError
    |   +-- NoOpenPeriodError
    |   +-- PeriodAlreadyClosedError
    |   +-- PeriodOverlapError
    |   +-- PeriodHasDraftsError
    |
    +-- AccountError
    |   +-- AccountHierarchyCycleError
    |   +-- AccountReferencedError
    |   +-- SystemAccountError
    |
    +-- ReconciliationError
    |   +-- UnbalancedMatchError
    |   +-- AlreadyReconciledError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | VALIDATION_FAILED           | Malformed input (amounts, codes, dates)
----------------|-----------------------------|-----------------------------------------
Lookup          | ACCOUNT_NOT_FOUND           | Unknown or deleted account code
                | ENTRY_NOT_FOUND             | Unknown or deleted journal entry
                | PERIOD_NOT_FOUND            | Unknown fiscal period code
                | LINE_NOT_FOUND              | Line id not on the targeted account
----------------|-----------------------------|-----------------------------------------
Postability     | ACCOUNT_NOT_POSTABLE        | Collective (non-imputable) account
                | PERIOD_CLOSED               | Date falls in a closed period
----------------|-----------------------------|-----------------------------------------
Posting         | UNBALANCED_ENTRY            | Debits != Credits
                | ALREADY_VALIDATED           | validate() on a validated entry
                | ENTRY_NOT_DRAFT             | Editing/deleting a validated entry
                | ONLY_VALIDATED_REVERSIBLE   | reverse() on a draft
                | ALREADY_POSTED              | Source document already has an entry
----------------|-----------------------------|-----------------------------------------
Period          | NO_OPEN_PERIOD              | No period covers the date, none current
                | PERIOD_ALREADY_CLOSED       | close() on a closed period
                | PERIOD_OVERLAP              | Date ranges intersect
                | PERIOD_HAS_DRAFTS           | close() while drafts remain
----------------|-----------------------------|-----------------------------------------
Account         | ACCOUNT_HIERARCHY_CYCLE     | Parent assignment would loop
                | ACCOUNT_REFERENCED          | Delete of an account with postings
                | SYSTEM_ACCOUNT              | Delete/renumber a system account
----------------|-----------------------------|-----------------------------------------
Reconciliation  | UNBALANCED_MATCH            | Selected lines do not net to zero
                | ALREADY_RECONCILED          | A selected line already carries a code
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying a validated record

Every error is deterministic and non-retryable except OptimisticLockError,
which a caller may retry after reloading.
"""

from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


class ValidationFailedError(LedgerKernelError):
    """Malformed input rejected before any state change."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Lookup exceptions


class NotFoundError(LedgerKernelError):
    """Base exception for unknown references."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account code does not exist in the chart of accounts."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account not found in chart of accounts: {account_code}")


class EntryNotFoundError(NotFoundError):
    """Journal entry does not exist (or was soft deleted)."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class PeriodNotFoundError(NotFoundError):
    """Fiscal period code does not exist."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Fiscal period not found: {period_code}")


class LineNotFoundError(NotFoundError):
    """One or more requested entry lines are not posted on the account."""

    code: str = "LINE_NOT_FOUND"

    def __init__(self, account_code: str, line_ids: list[str]):
        self.account_code = account_code
        self.line_ids = line_ids
        super().__init__(
            f"No validated line(s) {', '.join(line_ids)} on account {account_code}"
        )


# Postability exceptions


class NotPostableError(LedgerKernelError):
    """Base exception for targets that refuse postings."""

    code: str = "NOT_POSTABLE"


class AccountNotPostableError(NotPostableError):
    """Account is collective (aggregation only) and accepts no postings."""

    code: str = "ACCOUNT_NOT_POSTABLE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(
            f"Account {account_code} is not postable (collective account)"
        )


class ClosedPeriodError(NotPostableError):
    """Posting date falls inside a closed fiscal period."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, period_code: str, entry_date: str):
        self.period_code = period_code
        self.entry_date = entry_date
        super().__init__(
            f"Fiscal period {period_code} is closed; cannot post on {entry_date}"
        )


# Posting exceptions


class PostingError(LedgerKernelError):
    """Base exception for posting and state-transition errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = debits
        self.credits = credits
        super().__init__(f"Entry is not balanced: debit {debits} != credit {credits}")


class AlreadyValidatedError(PostingError):
    """Entry has already been validated."""

    code: str = "ALREADY_VALIDATED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry {entry_id} is already validated")


class EntryNotDraftError(PostingError):
    """Only draft entries may be edited or deleted."""

    code: str = "ENTRY_NOT_DRAFT"

    def __init__(self, entry_id: str, operation: str):
        self.entry_id = entry_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} journal entry {entry_id}: only drafts can change; "
            "use a reversal for validated entries"
        )


class EntryNotValidatedError(PostingError):
    """Only validated entries can be reversed."""

    code: str = "ONLY_VALIDATED_REVERSIBLE"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(
            f"Only validated entries can be reversed: {entry_id} is {status}"
        )


class AlreadyPostedError(PostingError):
    """The source document already produced a journal entry."""

    code: str = "ALREADY_POSTED"

    def __init__(self, source_type: str, source_id: str, entry_id: str):
        self.source_type = source_type
        self.source_id = source_id
        self.entry_id = entry_id
        super().__init__(
            f"{source_type} {source_id} is already posted as entry {entry_id}"
        )


# Period exceptions


class PeriodError(LedgerKernelError):
    """Base exception for fiscal period errors."""

    code: str = "PERIOD_ERROR"


class NoOpenPeriodError(PeriodError):
    """No period covers the date and no current period exists."""

    code: str = "NO_OPEN_PERIOD"

    def __init__(self, entry_date: str):
        self.entry_date = entry_date
        super().__init__(
            f"No open fiscal period for {entry_date}; create a fiscal period first"
        )


class PeriodAlreadyClosedError(PeriodError):
    """Fiscal period is already closed."""

    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Fiscal period {period_code} is already closed")


class PeriodOverlapError(PeriodError):
    """New period date range overlaps an existing period."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, new_period_code: str, existing_period_code: str):
        self.new_period_code = new_period_code
        self.existing_period_code = existing_period_code
        super().__init__(
            f"Fiscal period {new_period_code} overlaps existing period "
            f"{existing_period_code}"
        )


class PeriodHasDraftsError(PeriodError):
    """Fiscal period still contains draft entries."""

    code: str = "PERIOD_HAS_DRAFTS"

    def __init__(self, period_code: str, draft_count: int):
        self.period_code = period_code
        self.draft_count = draft_count
        super().__init__(
            f"Cannot close {period_code}: {draft_count} draft entr"
            f"{'y' if draft_count == 1 else 'ies'} remaining"
        )


# Account exceptions


class AccountError(LedgerKernelError):
    """Base exception for chart-of-accounts maintenance errors."""

    code: str = "ACCOUNT_ERROR"


class AccountHierarchyCycleError(AccountError):
    """Parent assignment would create a cycle in the account hierarchy."""

    code: str = "ACCOUNT_HIERARCHY_CYCLE"

    def __init__(self, account_code: str, parent_code: str):
        self.account_code = account_code
        self.parent_code = parent_code
        super().__init__(
            f"Setting {parent_code} as parent of {account_code} creates a cycle"
        )


class AccountReferencedError(AccountError):
    """Account carries postings and cannot be deleted."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account {account_code} has movements and cannot be deleted")


class SystemAccountError(AccountError):
    """System (pre-configured) accounts are protected."""

    code: str = "SYSTEM_ACCOUNT"

    def __init__(self, account_code: str, operation: str):
        self.account_code = account_code
        self.operation = operation
        super().__init__(f"Cannot {operation} system account {account_code}")


# Reconciliation exceptions


class ReconciliationError(LedgerKernelError):
    """Base exception for lettrage errors."""

    code: str = "RECONCILIATION_ERROR"


class UnbalancedMatchError(ReconciliationError):
    """Selected lines do not net to zero."""

    code: str = "UNBALANCED_MATCH"

    def __init__(self, account_code: str, debits: Decimal, credits: Decimal):
        self.account_code = account_code
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Reconciliation on {account_code} is not balanced: "
            f"debit {debits} != credit {credits}"
        )


class AlreadyReconciledError(ReconciliationError):
    """A selected line already carries a reconciliation code."""

    code: str = "ALREADY_RECONCILED"

    def __init__(self, line_id: str, reconciliation_code: str | None):
        self.line_id = line_id
        self.reconciliation_code = reconciliation_code
        super().__init__(
            f"Line {line_id} is already reconciled ({reconciliation_code})"
        )


# Concurrency exceptions


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Concurrent modification detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}; reload and retry"
        )


# Immutability exceptions


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted modification of an immutable (validated) record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
