"""
PeriodService -- fiscal period lifecycle and posting-date resolution.

Responsibility:
    Manages fiscal periods (OPEN -> CLOSED), keeps exactly one current
    period, and resolves the period a posting date belongs to before any
    entry is written.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerService and ReversalService at the start of every
    posting, and by the surrounding system to open and close exercices.

Invariants enforced:
    - Non-overlapping date ranges (checked on create).
    - Single current period: every write that sets ``is_current`` first
      clears the flag on all other rows in the same transaction.  The
      partial unique index on ``is_current`` backs this at database level.
    - Closed period enforcement: ``resolve_for_date`` refuses dates inside
      a CLOSED period.
    - A period with remaining drafts cannot close.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - ValidationFailedError: end_date is not after start_date.
    - PeriodOverlapError: New range intersects an existing period.
    - NoOpenPeriodError: No period covers the date and none is current.
    - ClosedPeriodError: The matched period is CLOSED.
    - PeriodAlreadyClosedError: close() on a CLOSED period.
    - PeriodHasDraftsError: close() while drafts remain.
    - PeriodNotFoundError: Unknown period code.

Audit relevance:
    period_created, period_set_current and period_closed are logged with the
    period code and actor.
"""

from datetime import date

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ohada_kernel.domain.clock import Clock, SystemClock
from ohada_kernel.domain.dtos import FiscalPeriodInfo
from ohada_kernel.exceptions import (
    ClosedPeriodError,
    NoOpenPeriodError,
    PeriodAlreadyClosedError,
    PeriodHasDraftsError,
    PeriodNotFoundError,
    PeriodOverlapError,
    ValidationFailedError,
)
from ohada_kernel.logging_config import get_logger
from ohada_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ohada_kernel.models.journal import EntryStatus, JournalEntry
from ohada_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[FiscalPeriod]):
    """
    Service for managing the fiscal period lifecycle.

    Contract:
        Accepts period codes or dates and returns frozen ``FiscalPeriodInfo``
        DTOs.  Lifecycle methods flush within the caller's transaction.

    Guarantees:
        - At most one current period after any create/set_current.
        - Concurrent close attempts serialize on ``SELECT ... FOR UPDATE``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_period(
        self,
        code: str,
        label: str,
        start_date: date,
        end_date: date,
        actor_id: str,
        make_current: bool = True,
        notes: str | None = None,
    ) -> FiscalPeriodInfo:
        """
        Create a new open fiscal period.

        Args:
            code: Unique period identifier (e.g., "EX2026").
            label: Human-readable name.
            start_date: First day (inclusive).
            end_date: Last day (inclusive), strictly after start_date.
            actor_id: Who is creating the period.
            make_current: Flag the new period as the current one.

        Raises:
            ValidationFailedError: If end_date <= start_date or code is empty.
            PeriodOverlapError: If the range overlaps an existing period.
        """
        if not code or not code.strip():
            raise ValidationFailedError("Period code is required", field="code")
        if end_date <= start_date:
            raise ValidationFailedError(
                f"end_date ({end_date}) must be after start_date ({start_date})",
                field="end_date",
            )

        self._validate_no_overlap(code, start_date, end_date)

        if make_current:
            self._clear_current_flag(actor_id)

        period = FiscalPeriod(
            code=code,
            label=label,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            is_current=make_current,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "period_code": code,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "is_current": make_current,
                "actor_id": actor_id,
            },
        )

        return FiscalPeriodInfo.from_model(period)

    def _validate_no_overlap(self, new_code: str, start_date: date, end_date: date) -> None:
        """
        Two ranges overlap if: start1 <= end2 AND start2 <= end1.

        Raises:
            PeriodOverlapError: If an overlap is detected.
        """
        overlapping = self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.start_date <= end_date,
                FiscalPeriod.end_date >= start_date,
                FiscalPeriod.is_active.is_(True),
            )
        ).scalars().first()

        if overlapping is not None:
            raise PeriodOverlapError(
                new_period_code=new_code,
                existing_period_code=overlapping.code,
            )

    def _clear_current_flag(self, actor_id: str, keep_id=None) -> None:
        stmt = (
            update(FiscalPeriod)
            .where(FiscalPeriod.is_current.is_(True))
            .values(is_current=False, updated_by_id=actor_id)
        )
        if keep_id is not None:
            stmt = stmt.where(FiscalPeriod.id != keep_id)
        self.session.execute(stmt)

    def set_current(self, code: str, actor_id: str) -> FiscalPeriodInfo:
        """
        Make ``code`` the single current period.

        Raises:
            PeriodNotFoundError: Unknown code.
            PeriodAlreadyClosedError: Closed periods cannot become current.
        """
        period = self._get_period_for_update(code)
        if period.is_closed:
            raise PeriodAlreadyClosedError(code)

        self._clear_current_flag(actor_id, keep_id=period.id)
        period.is_current = True
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_set_current",
            extra={"period_code": code, "actor_id": actor_id},
        )
        return FiscalPeriodInfo.from_model(period)

    def resolve_for_date(self, entry_date: date) -> FiscalPeriodInfo:
        """
        Find the period a posting dated ``entry_date`` belongs to.

        The period containing the date wins; otherwise the flagged current
        period is used.

        Raises:
            NoOpenPeriodError: Neither exists.
            ClosedPeriodError: The matched period is closed.
        """
        period = self._find_containing(entry_date)
        if period is None:
            period = self._find_current()
        if period is None:
            logger.warning(
                "no_open_period",
                extra={"entry_date": str(entry_date)},
            )
            raise NoOpenPeriodError(str(entry_date))
        if period.is_closed:
            logger.warning(
                "posting_into_closed_period",
                extra={"period_code": period.code, "entry_date": str(entry_date)},
            )
            raise ClosedPeriodError(period.code, str(entry_date))
        return FiscalPeriodInfo.from_model(period)

    def ensure_open(self, period_id, entry_date: date) -> FiscalPeriodInfo:
        """
        Re-check, under lock, that a period is still open.

        Used at validation time: a draft may have been created before its
        period closed.
        """
        period = self.session.execute(
            select(FiscalPeriod)
            .where(FiscalPeriod.id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        if period.is_closed:
            raise ClosedPeriodError(period.code, str(entry_date))
        return FiscalPeriodInfo.from_model(period)

    def close(self, code: str, actor_id: str) -> FiscalPeriodInfo:
        """
        Close a fiscal period.  Irreversible.

        Postconditions:
            - status is CLOSED, is_current is False.
            - closed_at is the clock time, closed_by_id is ``actor_id``.
            - Later resolve_for_date() calls inside the range raise
              ClosedPeriodError.

        Raises:
            PeriodNotFoundError: Unknown code.
            PeriodAlreadyClosedError: Already closed.
            PeriodHasDraftsError: Drafts remain in the period.
        """
        period = self._get_period_for_update(code)

        if period.is_closed:
            raise PeriodAlreadyClosedError(code)

        draft_count = self.session.execute(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.period_id == period.id,
                JournalEntry.status == EntryStatus.DRAFT,
                JournalEntry.is_active.is_(True),
            )
        ).scalar_one()
        if draft_count:
            raise PeriodHasDraftsError(code, draft_count)

        period.close(actor_id, self._clock.now())
        self.session.flush()

        logger.info(
            "period_closed",
            extra={"period_code": code, "actor_id": actor_id},
        )

        return FiscalPeriodInfo.from_model(period)

    def get_period(self, code: str) -> FiscalPeriodInfo:
        period = self._get_period_orm(code)
        if period is None:
            raise PeriodNotFoundError(code)
        return FiscalPeriodInfo.from_model(period)

    def get_current(self) -> FiscalPeriodInfo | None:
        period = self._find_current()
        return FiscalPeriodInfo.from_model(period) if period else None

    def list_periods(self) -> list[FiscalPeriodInfo]:
        """All active periods, most recent first."""
        periods = self.session.execute(
            select(FiscalPeriod)
            .where(FiscalPeriod.is_active.is_(True))
            .order_by(FiscalPeriod.start_date.desc())
        ).scalars().all()
        return [FiscalPeriodInfo.from_model(p) for p in periods]

    def _find_containing(self, entry_date: date) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.start_date <= entry_date,
                FiscalPeriod.end_date >= entry_date,
                FiscalPeriod.is_active.is_(True),
            )
        ).scalars().first()

    def _find_current(self) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.is_current.is_(True),
                FiscalPeriod.is_active.is_(True),
            )
        ).scalars().first()

    def _get_period_orm(self, code: str) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(FiscalPeriod.code == code)
        ).scalar_one_or_none()

    def _get_period_for_update(self, code: str) -> FiscalPeriod:
        period = self.session.execute(
            select(FiscalPeriod)
            .where(FiscalPeriod.code == code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(code)
        return period
