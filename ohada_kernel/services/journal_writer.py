"""
JournalWriter -- persistence of journal entries from planned lines.

Responsibility:
    Turns a list of planned lines (account code, label, debit, credit) into
    persisted JournalEntry and EntryLine rows.  Resolves every account and
    the fiscal period up front, enforces source idempotency, allocates the
    per-journal sequence number and applies balance movements when the entry
    is validated.

Architecture position:
    Kernel > Services -- imperative shell.
    Shared by LedgerService (automatic and manual postings) and
    ReversalService.  Delegates to ChartOfAccountsService, PeriodService and
    SequenceService.

Invariants enforced:
    - All-or-nothing account resolution: a missing or collective account
      fails the posting before any row is written.
    - Source idempotency: one entry per (source_type, source_id), checked
      up front and backed by the UNIQUE constraint.
    - Sequence numbers come from SequenceService only, and only when an
      entry becomes validated.
    - Balance movements are applied exactly once, at validation.

Failure modes:
    - AccountNotFoundError / AccountNotPostableError from resolution.
    - NoOpenPeriodError / ClosedPeriodError from period resolution.
    - AlreadyPostedError on a duplicate source document.
    - UnbalancedEntryError when a validated entry would not balance.

Audit relevance:
    entry_written and entry_finalized are logged with the entry id, journal
    and entry number.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ohada_kernel.db.types import to_money
from ohada_kernel.domain.clock import Clock, SystemClock
from ohada_kernel.exceptions import (
    AlreadyPostedError,
    UnbalancedEntryError,
    ValidationFailedError,
)
from ohada_kernel.logging_config import get_logger
from ohada_kernel.models.journal import (
    EntryLine,
    EntryStatus,
    JournalCode,
    JournalEntry,
    SourceType,
)
from ohada_kernel.services.chart_of_accounts_service import ChartOfAccountsService
from ohada_kernel.services.period_service import PeriodService
from ohada_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_writer")

ZERO = Decimal("0")


@dataclass(frozen=True)
class PlannedLine:
    """One line of an entry before account resolution."""

    account_code: str
    label: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO


def format_entry_number(journal: str, entry_date: date, sequence_number: int) -> str:
    """``VE2026-00001``: journal code, fiscal year, zero-padded sequence."""
    return f"{journal}{entry_date.year}-{sequence_number:05d}"


class JournalWriter:
    """
    Writes entries for the posting services.

    Contract:
        Returns ORM JournalEntry instances; callers convert them to DTOs.
        Flushes, never commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        accounts: ChartOfAccountsService | None = None,
        periods: PeriodService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._accounts = accounts or ChartOfAccountsService(session)
        self._periods = periods or PeriodService(session, self._clock)
        self._sequences = SequenceService(session)

    def write(
        self,
        *,
        journal: JournalCode | str,
        entry_date: date,
        label: str,
        lines: Sequence[PlannedLine],
        actor_id: str,
        source_type: SourceType,
        source_id: str | None = None,
        reference: str | None = None,
        supporting_document: str | None = None,
        validated: bool = True,
        origin_entry: JournalEntry | None = None,
    ) -> JournalEntry:
        """
        Persist an entry built from ``lines``.

        With ``validated=True`` the entry is numbered, stamped and applied
        to the balance cache in the same flush; otherwise it is stored as a
        draft.  Everything happens inside a savepoint so a failure leaves
        neither a partial entry nor a consumed sequence number.

        Raises:
            AlreadyPostedError: (source_type, source_id) already has an entry.
            UnbalancedEntryError: ``validated`` and debits != credits.
        """
        journal = JournalCode(journal)
        source_type = SourceType(source_type)
        if source_id is not None:
            self.check_not_posted(source_type, source_id)

        resolved = self._accounts.resolve_many([line.account_code for line in lines])
        period = self._periods.resolve_for_date(entry_date)

        if validated:
            debits = sum((line.debit for line in lines), ZERO)
            credits = sum((line.credit for line in lines), ZERO)
            if debits != credits:
                raise UnbalancedEntryError(debits, credits)

        entry = JournalEntry(
            journal=journal,
            entry_date=entry_date,
            label=label,
            reference=reference,
            period_id=period.id,
            status=EntryStatus.DRAFT,
            source_type=source_type,
            source_id=source_id,
            supporting_document=supporting_document,
            is_reversal=origin_entry is not None,
            origin_entry_id=origin_entry.id if origin_entry is not None else None,
            is_active=True,
            created_by_id=actor_id,
        )
        entry.lines = self.build_lines(lines, resolved, actor_id)
        entry.refresh_totals()

        try:
            with self._session.begin_nested():
                if validated:
                    self._stamp_validated(entry, actor_id)
                self._session.add(entry)
                self._session.flush()
                if validated:
                    self._accounts.apply_movements(entry.lines)
        except IntegrityError:
            existing = self.find_by_source(source_type, source_id) if source_id else None
            if existing is None:
                raise
            logger.warning(
                "concurrent_duplicate_posting",
                extra={"source_type": source_type.value, "source_id": source_id},
            )
            raise AlreadyPostedError(source_type.value, source_id, str(existing.id)) from None

        logger.info(
            "entry_written",
            extra={
                "entry_id": str(entry.id),
                "journal": journal.value,
                "status": entry.status_value,
                "source_type": source_type.value,
                "source_id": source_id,
                "line_count": len(entry.lines),
            },
        )
        if validated:
            self._log_finalized(entry, actor_id)
        return entry

    def build_lines(self, lines, resolved, actor_id: str) -> list[EntryLine]:
        """EntryLine rows with the account snapshot taken now."""
        built = []
        for number, line in enumerate(lines, start=1):
            account = resolved[line.account_code]
            built.append(
                EntryLine(
                    account_id=account.id,
                    account_code=account.code,
                    account_label=account.label,
                    label=line.label,
                    debit=line.debit,
                    credit=line.credit,
                    line_number=number,
                    created_by_id=actor_id,
                )
            )
        return built

    def finalize(self, entry: JournalEntry, actor_id: str) -> None:
        """
        Validate an already persisted draft.

        The caller holds the row lock and has checked status and balance.
        """
        with self._session.begin_nested():
            self._stamp_validated(entry, actor_id)
            entry.refresh_totals()
            entry.updated_by_id = actor_id
            self._session.flush()
            self._accounts.apply_movements(entry.lines)
        self._log_finalized(entry, actor_id)

    def _stamp_validated(self, entry: JournalEntry, actor_id: str) -> None:
        journal = JournalCode(entry.journal).value
        sequence_number = self._sequences.next_value(
            SequenceService.journal_sequence_name(journal)
        )
        entry.sequence_number = sequence_number
        entry.entry_number = format_entry_number(journal, entry.entry_date, sequence_number)
        entry.validated_by_id = actor_id
        entry.validated_at = self._clock.now()
        entry.status = EntryStatus.VALIDATED

    def _log_finalized(self, entry: JournalEntry, actor_id: str) -> None:
        logger.info(
            "entry_finalized",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "sequence_number": entry.sequence_number,
                "total_debit": str(entry.total_debit),
                "actor_id": actor_id,
            },
        )

    def check_not_posted(self, source_type: SourceType, source_id: str) -> None:
        existing = self.find_by_source(source_type, source_id)
        if existing is not None:
            logger.warning(
                "duplicate_posting_rejected",
                extra={
                    "source_type": SourceType(source_type).value,
                    "source_id": source_id,
                    "existing_entry_id": str(existing.id),
                },
            )
            raise AlreadyPostedError(
                SourceType(source_type).value, source_id, str(existing.id)
            )

    def find_by_source(self, source_type: SourceType, source_id: str) -> JournalEntry | None:
        return self._session.execute(
            select(JournalEntry).where(
                JournalEntry.source_type == source_type,
                JournalEntry.source_id == source_id,
            )
        ).scalar_one_or_none()


def check_line_amounts(debit, credit, position: int) -> tuple[Decimal, Decimal]:
    """
    Normalize one line's amounts.

    Raises:
        ValidationFailedError: Negative amount, both sides set, or neither.
    """
    try:
        debit = to_money(debit)
        credit = to_money(credit)
    except ValueError as exc:
        raise ValidationFailedError(f"Line {position}: {exc}", field="lines") from None
    if debit < ZERO or credit < ZERO:
        raise ValidationFailedError(
            f"Line {position}: amounts cannot be negative", field="lines"
        )
    if (debit > ZERO) == (credit > ZERO):
        raise ValidationFailedError(
            f"Line {position}: exactly one of debit or credit must be positive",
            field="lines",
        )
    return debit, credit
