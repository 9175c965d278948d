"""
Module: ohada_kernel.selectors.audit_export
Responsibility: The audit export (Fichier des Ecritures Comptables): one
    fixed-schema row per validated line of a fiscal period, and the
    pipe-delimited file writer.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Column order, names and formatting are an external regulatory
      contract.  They are declared once in AUDIT_FILE_COLUMNS and never
      derived from internal field names.
    - Dates are YYYYMMDD; amounts have two decimals and a comma separator
      ("1234,50", zero is "0,00").
    - Rows are sorted by journal, then entry date, then entry number, then
      line number.

Failure modes:
    - PeriodNotFoundError on an unknown period code.
"""

import csv
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, TextIO

from sqlalchemy import select
from sqlalchemy.orm import Session

from ohada_kernel.db.types import round_money
from ohada_kernel.domain.posting_rules import DEFAULT_JOURNAL_LABELS
from ohada_kernel.exceptions import PeriodNotFoundError
from ohada_kernel.models.fiscal_period import FiscalPeriod
from ohada_kernel.models.journal import EntryLine, EntryStatus, JournalEntry
from ohada_kernel.selectors.base import BaseSelector

# (file header, AuditExportRow attribute)
AUDIT_FILE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("JournalCode", "journal_code"),
    ("JournalLib", "journal_label"),
    ("EcritureNum", "entry_number"),
    ("EcritureDate", "entry_date"),
    ("CompteNum", "account_code"),
    ("CompteLib", "account_label"),
    ("CompAuxNum", "auxiliary_account_code"),
    ("CompAuxLib", "auxiliary_account_label"),
    ("PieceRef", "document_reference"),
    ("PieceDate", "document_date"),
    ("EcritureLib", "line_label"),
    ("Debit", "debit"),
    ("Credit", "credit"),
    ("EcritureLet", "reconciliation_code"),
    ("DateLet", "reconciliation_date"),
    ("ValidDate", "validation_date"),
    ("Montantdevise", "foreign_amount"),
    ("Idevise", "currency"),
)

AUDIT_FILE_DELIMITER = "|"


def format_audit_date(value: date | datetime | None) -> str:
    """YYYYMMDD, or an empty string."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime("%Y%m%d")


def format_audit_amount(value: Decimal | None) -> str:
    """Two decimals with a comma separator; zero and None give "0,00"."""
    if not value:
        return "0,00"
    return f"{round_money(value):.2f}".replace(".", ",")


@dataclass(frozen=True)
class AuditExportRow:
    """One line of the audit file, every field already formatted."""

    journal_code: str
    journal_label: str
    entry_number: str
    entry_date: str
    account_code: str
    account_label: str
    auxiliary_account_code: str
    auxiliary_account_label: str
    document_reference: str
    document_date: str
    line_label: str
    debit: str
    credit: str
    reconciliation_code: str
    reconciliation_date: str
    validation_date: str
    foreign_amount: str
    currency: str

    def as_record(self) -> dict[str, str]:
        """Header-keyed mapping in file column order."""
        return {header: getattr(self, attr) for header, attr in AUDIT_FILE_COLUMNS}

    def values(self) -> list[str]:
        return [getattr(self, attr) for _header, attr in AUDIT_FILE_COLUMNS]


class AuditExportSelector(BaseSelector[EntryLine]):
    """
    Builds the audit export of one fiscal period.

    ``journal_labels`` and ``currency`` come from the posting configuration.
    """

    def __init__(
        self,
        session: Session,
        journal_labels: Mapping[str, str] | None = None,
        currency: str = "XOF",
    ):
        super().__init__(session)
        self._journal_labels = journal_labels or DEFAULT_JOURNAL_LABELS
        self._currency = currency

    def export(self, period_code: str) -> list[AuditExportRow]:
        """
        Raises:
            PeriodNotFoundError: Unknown period code.
        """
        period = self.session.execute(
            select(FiscalPeriod).where(FiscalPeriod.code == period_code)
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(period_code)

        stmt = (
            select(EntryLine, JournalEntry)
            .join(JournalEntry, EntryLine.entry_id == JournalEntry.id)
            .where(
                JournalEntry.period_id == period.id,
                JournalEntry.status == EntryStatus.VALIDATED,
                JournalEntry.is_active.is_(True),
            )
            .order_by(
                JournalEntry.journal,
                JournalEntry.entry_date,
                JournalEntry.sequence_number,
                EntryLine.line_number,
            )
        )
        return [self._row(line, entry) for line, entry in self.session.execute(stmt).all()]

    def _row(self, line: EntryLine, entry: JournalEntry) -> AuditExportRow:
        journal = entry.journal_value
        return AuditExportRow(
            journal_code=journal,
            journal_label=self._journal_labels.get(journal, journal),
            entry_number=entry.entry_number or "",
            entry_date=format_audit_date(entry.entry_date),
            account_code=line.account_code,
            account_label=line.account_label or line.label,
            auxiliary_account_code="",
            auxiliary_account_label="",
            document_reference=entry.reference or "",
            document_date=format_audit_date(entry.entry_date),
            line_label=line.label,
            debit=format_audit_amount(line.debit),
            credit=format_audit_amount(line.credit),
            reconciliation_code=line.reconciliation_code or "",
            reconciliation_date=format_audit_date(line.reconciled_at),
            validation_date=format_audit_date(entry.validated_at),
            foreign_amount="",
            currency=self._currency,
        )


def write_audit_file(rows: Iterable[AuditExportRow], stream: TextIO) -> int:
    """
    Write the header and ``rows`` as a pipe-delimited file.

    Returns:
        Number of data rows written.
    """
    writer = csv.writer(stream, delimiter=AUDIT_FILE_DELIMITER, lineterminator="\n")
    writer.writerow([header for header, _attr in AUDIT_FILE_COLUMNS])
    count = 0
    for row in rows:
        writer.writerow(row.values())
        count += 1
    return count
