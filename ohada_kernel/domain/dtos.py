"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the kernel boundary:
    business-event documents handed in by the surrounding ERP (sale and
    purchase invoices, payments, manual lines) and the read-only snapshots
    handed back (accounts, periods, entries, lines).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked only from
    services and selectors.

Invariants enforced:
    - Documents and snapshots are frozen; callers cannot mutate what the
      ledger recorded.
    - Amounts are Decimal.  Shape checks (non-negative, TTC = HT + TVA)
      live in LedgerService so they raise ValidationFailedError.

Data flow:
    SaleInvoiceDocument / PaymentDocument -> LedgerService -> JournalEntryInfo
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from ohada_kernel.models.account import Account as AccountModel
    from ohada_kernel.models.fiscal_period import FiscalPeriod as FiscalPeriodModel
    from ohada_kernel.models.journal import (
        EntryLine as EntryLineModel,
    )
    from ohada_kernel.models.journal import (
        JournalEntry as JournalEntryModel,
    )


class PaymentMethod(str, Enum):
    """Settlement means accepted on client and supplier payments."""

    CASH = "cash"
    CHEQUE = "cheque"
    TRANSFER = "transfer"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive date interval.  Either bound may be open (None).

    Raises:
        ValueError: If both bounds are set and start > end.
    """

    start: date | None = None
    end: date | None = None

    def __post_init__(self) -> None:
        if self.start and self.end and self.start > self.end:
            raise ValueError(f"Invalid date range: {self.start} > {self.end}")

    def contains(self, check_date: date) -> bool:
        if self.start is not None and check_date < self.start:
            return False
        if self.end is not None and check_date > self.end:
            return False
        return True


# =============================================================================
# Business-event documents (input)
# =============================================================================


@dataclass(frozen=True)
class SaleInvoiceDocument:
    """
    A finalized sale invoice or credit note.

    ``document_id`` is the originating system's identifier and the
    idempotency key of the resulting entry.  ``is_credit_note`` mirrors
    every side of the posting.
    """

    document_id: str
    reference: str
    invoice_date: date
    counterparty: str
    amount_excl_tax: Decimal
    tax_amount: Decimal
    amount_incl_tax: Decimal
    is_credit_note: bool = False
    supporting_document: str | None = None


@dataclass(frozen=True)
class PurchaseInvoiceDocument:
    """A finalized supplier invoice."""

    document_id: str
    reference: str
    invoice_date: date
    counterparty: str
    amount_excl_tax: Decimal
    tax_amount: Decimal
    amount_incl_tax: Decimal
    supporting_document: str | None = None


@dataclass(frozen=True)
class PaymentDocument:
    """A settled client or supplier payment."""

    document_id: str
    reference: str
    payment_date: date
    counterparty: str
    amount: Decimal
    method: PaymentMethod
    supporting_document: str | None = None


@dataclass(frozen=True)
class AccountSeed:
    """One account of a chart to load (see ChartOfAccountsService.seed_chart)."""

    code: str
    label: str
    normal_balance: str | None = None
    is_imputable: bool = True
    is_collective: bool = False
    is_system: bool = True
    description: str | None = None


@dataclass(frozen=True)
class ManualLineSpec:
    """
    One caller-supplied line of a manual (draft) entry.

    Exactly one of ``debit``/``credit`` must be positive; LedgerService
    checks this when the draft is stored.
    """

    account_code: str
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    label: str | None = None


# =============================================================================
# Read-side snapshots (output)
# =============================================================================


@dataclass(frozen=True)
class AccountInfo:
    """Immutable snapshot of a chart-of-accounts row."""

    id: UUID
    code: str
    label: str
    account_class: int
    normal_balance: str
    is_imputable: bool
    is_collective: bool
    is_system: bool
    is_active: bool
    total_debit: Decimal
    total_credit: Decimal
    parent_id: UUID | None = None
    description: str | None = None

    @property
    def balance(self) -> Decimal:
        """Cached balance signed by the account's normal side."""
        if self.normal_balance == "credit":
            return self.total_credit - self.total_debit
        return self.total_debit - self.total_credit

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            id=model.id,
            code=model.code,
            label=model.label,
            account_class=model.account_class,
            normal_balance=model.normal_balance_value,
            is_imputable=model.is_imputable,
            is_collective=model.is_collective,
            is_system=model.is_system,
            is_active=model.is_active,
            total_debit=model.total_debit,
            total_credit=model.total_credit,
            parent_id=model.parent_id,
            description=model.description,
        )


@dataclass(frozen=True)
class FiscalPeriodInfo:
    """Immutable snapshot of a fiscal period."""

    id: UUID
    code: str
    label: str
    start_date: date
    end_date: date
    status: str
    is_current: bool
    closed_at: datetime | None = None
    closed_by_id: str | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @property
    def is_closed(self) -> bool:
        return self.status == "closed"

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    @classmethod
    def from_model(cls, model: FiscalPeriodModel) -> FiscalPeriodInfo:
        return cls(
            id=model.id,
            code=model.code,
            label=model.label,
            start_date=model.start_date,
            end_date=model.end_date,
            status=model.status_value,
            is_current=model.is_current,
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
            notes=model.notes,
        )


@dataclass(frozen=True)
class EntryLineInfo:
    """Immutable snapshot of one posted or draft line."""

    id: UUID
    line_number: int
    account_id: UUID
    account_code: str
    account_label: str
    label: str
    debit: Decimal
    credit: Decimal
    reconciliation_code: str | None = None
    reconciled_at: datetime | None = None

    @property
    def is_reconciled(self) -> bool:
        return self.reconciliation_code is not None

    @classmethod
    def from_model(cls, model: EntryLineModel) -> EntryLineInfo:
        return cls(
            id=model.id,
            line_number=model.line_number,
            account_id=model.account_id,
            account_code=model.account_code,
            account_label=model.account_label,
            label=model.label,
            debit=model.debit,
            credit=model.credit,
            reconciliation_code=model.reconciliation_code,
            reconciled_at=model.reconciled_at,
        )


@dataclass(frozen=True)
class JournalEntryInfo:
    """
    Immutable snapshot of a journal entry and its ordered lines.

    Guarantees:
        - lines are ordered by line_number.
        - sequence_number/entry_number are None for drafts.
    """

    id: UUID
    journal: str
    entry_date: date
    label: str
    reference: str | None
    period_id: UUID
    status: str
    total_debit: Decimal
    total_credit: Decimal
    source_type: str
    source_id: str | None
    supporting_document: str | None
    is_reversal: bool
    origin_entry_id: UUID | None
    validated_by_id: str | None
    validated_at: datetime | None
    sequence_number: int | None
    entry_number: str | None
    created_by_id: str
    lines: tuple[EntryLineInfo, ...] = field(default_factory=tuple)

    @property
    def is_validated(self) -> bool:
        return self.status == "validated"

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit

    @classmethod
    def from_model(cls, model: JournalEntryModel) -> JournalEntryInfo:
        return cls(
            id=model.id,
            journal=model.journal_value,
            entry_date=model.entry_date,
            label=model.label,
            reference=model.reference,
            period_id=model.period_id,
            status=model.status_value,
            total_debit=model.total_debit,
            total_credit=model.total_credit,
            source_type=model.source_type_value,
            source_id=model.source_id,
            supporting_document=model.supporting_document,
            is_reversal=model.is_reversal,
            origin_entry_id=model.origin_entry_id,
            validated_by_id=model.validated_by_id,
            validated_at=model.validated_at,
            sequence_number=model.sequence_number,
            entry_number=model.entry_number,
            created_by_id=model.created_by_id,
            lines=tuple(
                EntryLineInfo.from_model(line)
                for line in sorted(model.lines, key=lambda l: l.line_number)
            ),
        )
