"""
ReversalService -- contrepassation of validated entries.

Responsibility:
    Cancels a validated entry by appending a mirror entry: same journal,
    every line's debit and credit swapped, dated at the reversal date and
    linked to the original through ``origin_entry_id``.

Architecture position:
    Kernel > Services -- imperative shell.
    Delegates writing (period resolution, numbering, balance movements) to
    JournalWriter so a reversal follows the exact path of any other posting.

Invariants enforced:
    - Only validated entries can be reversed.
    - An entry is reversed at most once: the reversal's source is
      ("reversal", original id), guarded by the source UNIQUE constraint.
    - The original entry is never modified; the balance cache only grows by
      the appended reversal, never by a direct decrement.
    - The reversal's period is resolved for the reversal date, not the
      original's, so reversing into a closed period fails.

Failure modes:
    - EntryNotFoundError: unknown entry.
    - EntryNotValidatedError: the entry is a draft.
    - AlreadyPostedError: the entry was already reversed.
    - NoOpenPeriodError / ClosedPeriodError: from the reversal date.

Audit relevance:
    reversal_completed is logged with both entry ids and entry numbers.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ohada_kernel.domain.clock import Clock, SystemClock
from ohada_kernel.domain.dtos import JournalEntryInfo
from ohada_kernel.exceptions import EntryNotFoundError, EntryNotValidatedError
from ohada_kernel.logging_config import LogContext, get_logger
from ohada_kernel.models.journal import JournalEntry, SourceType
from ohada_kernel.services.journal_writer import JournalWriter, PlannedLine

logger = get_logger("services.reversal")

REVERSAL_LABEL_PREFIX = "Contrepassation - "
REVERSAL_REFERENCE_PREFIX = "CP-"


@dataclass(frozen=True)
class ReversalResult:
    """The original entry (unchanged) and its reversal."""

    original: JournalEntryInfo
    reversal: JournalEntryInfo


class ReversalService:
    """
    Service that appends reversal entries.

    Contract:
        reverse() returns a ``ReversalResult``; the caller owns the
        transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
        self._writer = JournalWriter(session, self._clock)

    def reverse(
        self,
        entry_id: UUID | str,
        actor_id: str,
        reversal_date: date | None = None,
    ) -> ReversalResult:
        """
        Reverse a validated entry.

        Args:
            entry_id: Entry to cancel.
            actor_id: Who reverses.
            reversal_date: Accounting date of the reversal; defaults to
                today per the injected clock.

        Raises:
            EntryNotFoundError, EntryNotValidatedError, AlreadyPostedError,
            NoOpenPeriodError, ClosedPeriodError.
        """
        with LogContext.bind(actor_id=actor_id, entry_id=str(entry_id)):
            original = self._get_entry_for_update(entry_id)
            if not original.is_validated:
                raise EntryNotValidatedError(str(original.id), original.status_value)

            when = reversal_date or self._clock.today()
            lines = [
                PlannedLine(
                    account_code=line.account_code,
                    label=f"{REVERSAL_LABEL_PREFIX}{line.label}",
                    debit=line.credit,
                    credit=line.debit,
                )
                for line in original.lines
            ]

            reversal = self._writer.write(
                journal=original.journal_value,
                entry_date=when,
                label=f"{REVERSAL_LABEL_PREFIX}{original.label}",
                lines=lines,
                actor_id=actor_id,
                source_type=SourceType.REVERSAL,
                source_id=str(original.id),
                reference=(
                    f"{REVERSAL_REFERENCE_PREFIX}"
                    f"{original.reference or original.entry_number}"
                ),
                supporting_document=original.supporting_document,
                validated=True,
                origin_entry=original,
            )

            logger.info(
                "reversal_completed",
                extra={
                    "original_entry_id": str(original.id),
                    "original_entry_number": original.entry_number,
                    "reversal_entry_id": str(reversal.id),
                    "reversal_entry_number": reversal.entry_number,
                    "reversal_date": str(when),
                },
            )

        return ReversalResult(
            original=JournalEntryInfo.from_model(original),
            reversal=JournalEntryInfo.from_model(reversal),
        )

    def find_reversal(self, entry_id: UUID | str) -> JournalEntryInfo | None:
        """The reversal of ``entry_id``, if any."""
        entry = self._writer.find_by_source(SourceType.REVERSAL, str(entry_id))
        return JournalEntryInfo.from_model(entry) if entry else None

    def _get_entry_for_update(self, entry_id) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id, JournalEntry.is_active.is_(True))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry
