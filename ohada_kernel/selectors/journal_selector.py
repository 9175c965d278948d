"""
Module: ohada_kernel.selectors.journal_selector
Responsibility: Read-only browsing of journal entries (drafts included) with
    the filters a journal screen needs: journal, status, period, dates,
    account and free-text search, with pagination.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Soft-deleted drafts are never returned.
    - Results are ordered most recent first (entry date, then creation).
"""

from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session

from ohada_kernel.domain.dtos import DateRange, JournalEntryInfo
from ohada_kernel.models.journal import EntryLine, EntryStatus, JournalCode, JournalEntry
from ohada_kernel.selectors.base import BaseSelector, apply_entry_filters


class JournalSelector(BaseSelector[JournalEntry]):
    """Selector for journal entry lists."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _filtered(
        self,
        journal: JournalCode | str | None = None,
        status: EntryStatus | str | None = None,
        period_id: UUID | None = None,
        date_range: DateRange | None = None,
        account_code: str | None = None,
        search: str | None = None,
    ):
        stmt = select(JournalEntry).where(JournalEntry.is_active.is_(True))
        if journal is not None:
            stmt = stmt.where(JournalEntry.journal == JournalCode(journal))
        if status is not None:
            stmt = stmt.where(JournalEntry.status == EntryStatus(status))
        stmt = apply_entry_filters(stmt, date_range, period_id)
        if account_code is not None:
            stmt = stmt.where(
                exists().where(
                    EntryLine.entry_id == JournalEntry.id,
                    EntryLine.account_code == account_code,
                )
            )
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    JournalEntry.label.ilike(pattern),
                    JournalEntry.reference.ilike(pattern),
                    JournalEntry.entry_number.ilike(pattern),
                )
            )
        return stmt

    def list_entries(
        self,
        journal: JournalCode | str | None = None,
        status: EntryStatus | str | None = None,
        period_id: UUID | None = None,
        date_range: DateRange | None = None,
        account_code: str | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[JournalEntryInfo]:
        """
        Entries matching every given filter, most recent first.

        Args:
            journal: VE, AC, BQ, CA or OD.
            status: "draft" or "validated".
            account_code: Keep entries with at least one line on this account.
            search: Case-insensitive match on label, reference or number.
        """
        stmt = self._filtered(
            journal, status, period_id, date_range, account_code, search
        ).order_by(JournalEntry.entry_date.desc(), JournalEntry.created_at.desc())

        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)

        return [
            JournalEntryInfo.from_model(entry)
            for entry in self.session.execute(stmt).scalars()
        ]

    def count_entries(
        self,
        journal: JournalCode | str | None = None,
        status: EntryStatus | str | None = None,
        period_id: UUID | None = None,
        date_range: DateRange | None = None,
        account_code: str | None = None,
        search: str | None = None,
    ) -> int:
        """Total for pagination, same filters as list_entries()."""
        subquery = self._filtered(
            journal, status, period_id, date_range, account_code, search
        ).subquery()
        return self.session.execute(
            select(func.count()).select_from(subquery)
        ).scalar_one()

    def get_entry(self, entry_id: UUID) -> JournalEntryInfo | None:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.id == entry_id,
                JournalEntry.is_active.is_(True),
            )
        ).scalar_one_or_none()
        return JournalEntryInfo.from_model(entry) if entry else None
