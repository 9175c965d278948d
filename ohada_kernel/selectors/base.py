"""
Module: ohada_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the query side of the kernel: ledgers, balances, statements and the
    audit export are derived from validated journal lines at query time.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the pure domain/ DTOs.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - Publication barrier: reports only ever see lines of VALIDATED, active
      entries.  Drafts are invisible to every report.
    - DTO return convention: frozen dataclasses, never ORM instances.

Audit relevance:
    Selectors are the canonical read path for every financial report.  The
    cached account totals are not used here; reports recompute from lines.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from ohada_kernel.db.base import Base
from ohada_kernel.domain.dtos import DateRange
from ohada_kernel.models.journal import EntryLine, EntryStatus, JournalEntry

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def validated_lines(
        date_range: DateRange | None = None,
        period_id: UUID | None = None,
    ) -> Select:
        """
        Lines of validated, active entries with their entry, in posting order.

        Returns a ``select(EntryLine, JournalEntry)`` statement that callers
        may narrow further.
        """
        stmt = (
            select(EntryLine, JournalEntry)
            .join(JournalEntry, EntryLine.entry_id == JournalEntry.id)
            .where(
                JournalEntry.status == EntryStatus.VALIDATED,
                JournalEntry.is_active.is_(True),
            )
            .order_by(
                JournalEntry.entry_date,
                JournalEntry.journal,
                JournalEntry.sequence_number,
                EntryLine.line_number,
            )
        )
        return apply_entry_filters(stmt, date_range, period_id)


def apply_entry_filters(
    stmt: Select,
    date_range: DateRange | None = None,
    period_id: UUID | None = None,
) -> Select:
    """Narrow a statement joined on JournalEntry by date range and period."""
    if date_range is not None:
        if date_range.start is not None:
            stmt = stmt.where(JournalEntry.entry_date >= date_range.start)
        if date_range.end is not None:
            stmt = stmt.where(JournalEntry.entry_date <= date_range.end)
    if period_id is not None:
        stmt = stmt.where(JournalEntry.period_id == period_id)
    return stmt
