"""
Module: ohada_kernel.models.journal
Responsibility: ORM persistence for journal entries (écritures) and their
    lines -- the single source of financial truth.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/ or domain/.

Invariants enforced:
    - Source idempotency: UNIQUE(source_type, source_id).  One business
      document produces at most one entry; a reversal uses the original
      entry id as its source id, so an entry is reversed at most once.
    - Sequence safety: UNIQUE(journal, sequence_number).  Numbers are
      assigned at validation only; drafts carry none.
    - Balance: debits == credits when validated (checked by LedgerService;
      is_balanced is a read-side convenience).
    - Immutability: db/immutability.py listeners prevent UPDATE/DELETE of
      validated entries and of the financial columns of their lines.
    - Optimistic locking: ``version`` is the mapper's version_id_col, so a
      stale write raises StaleDataError.

Failure modes:
    - IntegrityError on duplicate (source_type, source_id).
    - ImmutabilityViolationError on UPDATE/DELETE of a validated entry.
    - StaleDataError on concurrent modification.

Audit relevance:
    Entries and lines are the authoritative record.  Every report and the
    audit export derive from validated rows only.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ohada_kernel.db.base import ACTOR_ID_LENGTH, TrackedBase, UUIDString
from ohada_kernel.db.types import Money

if TYPE_CHECKING:
    from ohada_kernel.models.account import Account
    from ohada_kernel.models.fiscal_period import FiscalPeriod


class JournalCode(str, Enum):
    """Sub-ledger (journal) an entry belongs to."""

    SALES = "VE"
    PURCHASES = "AC"
    BANK = "BQ"
    CASH = "CA"
    MISC = "OD"


class EntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    Contract: DRAFT -> VALIDATED, never back.  Validated entries change only
    through a new reversal entry.
    """

    DRAFT = "draft"
    VALIDATED = "validated"


class SourceType(str, Enum):
    """Originating document of an entry (one variant per document kind)."""

    SALE_INVOICE = "sale_invoice"
    CREDIT_NOTE = "credit_note"
    PURCHASE_INVOICE = "purchase_invoice"
    CLIENT_PAYMENT = "client_payment"
    SUPPLIER_PAYMENT = "supplier_payment"
    REVERSAL = "reversal"
    MANUAL = "manual"


class JournalEntry(TrackedBase):
    """
    Journal entry header -- the atomic unit of double-entry accounting.

    Contract:
        Created either as a DRAFT (manual path, editable, may be unbalanced)
        or directly VALIDATED (automatic postings from business events).
        Once VALIDATED the row and its lines are frozen except for the
        reconciliation columns of the lines.

    Guarantees:
        - sequence_number is monotonic per journal and set only at validation.
        - entry_number is ``<journal><year>-<00000>``.

    Non-goals:
        - Balance is not enforced at the ORM level; LedgerService does that.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("source_type", "source_id", name="uq_journal_source_document"),
        UniqueConstraint("journal", "sequence_number", name="uq_journal_sequence"),
        UniqueConstraint("entry_number", name="uq_journal_entry_number"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_period", "period_id"),
        Index("idx_journal_origin", "origin_entry_id"),
    )

    journal: Mapped[JournalCode] = mapped_column(
        String(2),
        nullable=False,
    )

    # Accounting date (drives period assignment)
    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Free-text business reference (invoice number, payment reference)
    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=False,
    )

    status: Mapped[EntryStatus] = mapped_column(
        String(10),
        default=EntryStatus.DRAFT,
        nullable=False,
    )

    total_debit: Mapped[Money] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    total_credit: Mapped[Money] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    source_type: Mapped[SourceType] = mapped_column(
        String(30),
        default=SourceType.MANUAL,
        nullable=False,
    )

    # Identifier of the originating document in the surrounding system
    source_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    # Pièce justificative
    supporting_document: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_reversal: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    origin_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    validated_by_id: Mapped[str | None] = mapped_column(
        String(ACTOR_ID_LENGTH),
        nullable=True,
    )

    validated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    sequence_number: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
    )

    entry_number: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    # Soft delete (drafts only)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    deleted_by_id: Mapped[str | None] = mapped_column(
        String(ACTOR_ID_LENGTH),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    lines: Mapped[list["EntryLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="EntryLine.line_number",
        lazy="selectin",
    )

    period: Mapped["FiscalPeriod"] = relationship()

    origin_entry: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[origin_entry_id],
    )

    def __repr__(self) -> str:
        return (
            f"<JournalEntry {self.entry_number or self.id} "
            f"{self.journal_value} status={self.status_value}>"
        )

    @property
    def journal_value(self) -> str:
        return JournalCode(self.journal).value

    @property
    def status_value(self) -> str:
        return EntryStatus(self.status).value

    @property
    def source_type_value(self) -> str:
        return SourceType(self.source_type).value

    @property
    def is_draft(self) -> bool:
        return self.status == EntryStatus.DRAFT

    @property
    def is_validated(self) -> bool:
        return self.status == EntryStatus.VALIDATED

    @property
    def lines_total_debit(self) -> Decimal:
        """Sum of line debits (independent of the cached total)."""
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def lines_total_credit(self) -> Decimal:
        """Sum of line credits (independent of the cached total)."""
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        """Read-side check: line debits equal line credits."""
        return self.lines_total_debit == self.lines_total_credit

    def refresh_totals(self) -> None:
        """Copy the line sums into the cached total columns."""
        self.total_debit = self.lines_total_debit
        self.total_credit = self.lines_total_credit


class EntryLine(TrackedBase):
    """
    One debit or credit line within a journal entry.

    Contract:
        Exactly one of debit/credit is > 0.  account_code/account_label are
        a snapshot of the account at posting time.

    Guarantees:
        - reconciliation_code is written once (compare-and-swap in
          ReconciliationService); a reconciled line is never re-matched.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "entry_id"),
        Index("idx_line_account", "account_id"),
        Index("idx_line_account_code", "account_code"),
        Index("idx_line_reconciliation", "reconciliation_code"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    account_code: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    account_label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    debit: Mapped[Money] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    credit: Mapped[Money] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Lettrage
    reconciliation_code: Mapped[str | None] = mapped_column(
        String(40),
        nullable=True,
    )

    reconciled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    entry: Mapped["JournalEntry"] = relationship(
        back_populates="lines",
    )

    account: Mapped["Account"] = relationship()

    def __repr__(self) -> str:
        return f"<EntryLine {self.account_code} D={self.debit} C={self.credit}>"

    @property
    def is_debit(self) -> bool:
        return self.debit > 0

    @property
    def is_credit(self) -> bool:
        return self.credit > 0

    @property
    def amount(self) -> Decimal:
        """The positive amount on whichever side is used."""
        return self.debit if self.is_debit else self.credit

    @property
    def signed_amount(self) -> Decimal:
        """Debit minus credit."""
        return self.debit - self.credit

    @property
    def is_reconciled(self) -> bool:
        return self.reconciliation_code is not None
