"""
Module: ohada_kernel.models.fiscal_period
Responsibility: ORM persistence for fiscal periods (exercices) -- controls
    which date ranges accept postings.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - No entry may be validated with an entry_date inside a CLOSED period.
    - At most one row carries is_current=True.  The partial unique index
      uq_fiscal_period_current backs the PeriodService write path, which
      clears every other flag in the same transaction.
    - CLOSED is terminal.

Failure modes:
    - ClosedPeriodError when posting into a closed period.
    - NoOpenPeriodError when no period covers the date and none is current.
    - PeriodAlreadyClosedError on redundant close attempt.
    - IntegrityError if two rows are flagged current by a writer that bypasses
      PeriodService.

Audit relevance:
    Closing a period freezes the statements derived from it.  Existing entries
    stay readable for the ledger, reports and audit export.
"""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from ohada_kernel.db.base import ACTOR_ID_LENGTH, TrackedBase


class PeriodStatus(str, Enum):
    """Lifecycle status of a fiscal period.

    Contract: OPEN -> CLOSED, never back.
    """

    OPEN = "open"
    CLOSED = "closed"


class FiscalPeriod(TrackedBase):
    """
    Fiscal period for accounting control.

    Guarantees:
        - code is unique (uq_period_code).
        - start_date < end_date (enforced by PeriodService).
        - close() requires an explicit actor and clock-injected timestamp.

    Non-goals:
        - Non-overlap of date ranges is checked by PeriodService at
          creation time, not by the model.
    """

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        UniqueConstraint("code", name="uq_period_code"),
        Index("idx_period_dates", "start_date", "end_date"),
        Index("idx_period_status", "status"),
        Index(
            "uq_fiscal_period_current",
            "is_current",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )

    # Period identifier (e.g., "EX2026")
    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    label: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    status: Mapped[PeriodStatus] = mapped_column(
        String(10),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    is_current: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[str | None] = mapped_column(
        String(ACTOR_ID_LENGTH),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.code} ({self.start_date} - {self.end_date})>"

    @property
    def status_value(self) -> str:
        return PeriodStatus(self.status).value

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def contains_date(self, check_date: date) -> bool:
        """Check if a date falls within this period (inclusive bounds)."""
        return self.start_date <= check_date <= self.end_date

    def close(self, actor_id: str, closed_at: datetime) -> None:
        """
        Close this fiscal period.

        Preconditions: Period is OPEN (PeriodService checks and raises).
        Postconditions: status is CLOSED, the period is no longer current,
            closed_at/closed_by_id are stamped.
        """
        self.status = PeriodStatus.CLOSED
        self.is_current = False
        self.closed_at = closed_at
        self.closed_by_id = actor_id
        self.updated_by_id = actor_id
