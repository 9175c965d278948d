"""
ReconciliationService -- lettrage of entry lines on one account.

Responsibility:
    Matches a set of debit and credit lines of the same account (an invoice
    against its payments, for instance) by stamping them with one shared
    reconciliation code and timestamp.

Architecture position:
    Kernel > Services -- imperative shell.
    Only writes the reconciliation columns of lines, which the immutability
    listeners leave mutable on validated entries.

Invariants enforced:
    - Lines must belong to validated, active entries and to the named
      account.
    - A reconciled line is never reconciled again.  The stamp is a
      compare-and-swap (``WHERE reconciliation_code IS NULL``) whose row
      count must match the selection, so two concurrent reconciliations
      cannot both claim a line.
    - All or nothing: the stamp runs inside a savepoint that is rolled back
      when the row count does not match.
    - The selection balances: sum(debit) == sum(credit).

Failure modes:
    - ValidationFailedError: empty selection or malformed line id.
    - AccountNotFoundError: unknown account.
    - LineNotFoundError: a line is missing, on another account, or on a
      draft/deleted entry.
    - AlreadyReconciledError: a line already carries a code.
    - UnbalancedMatchError: the selection does not balance.

Audit relevance:
    reconciliation_applied is logged with the code, account and line ids.
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ohada_kernel.domain.clock import Clock, SystemClock
from ohada_kernel.domain.dtos import EntryLineInfo
from ohada_kernel.exceptions import (
    AlreadyReconciledError,
    LineNotFoundError,
    UnbalancedMatchError,
    ValidationFailedError,
)
from ohada_kernel.logging_config import get_logger
from ohada_kernel.models.journal import EntryLine, EntryStatus, JournalEntry
from ohada_kernel.services.chart_of_accounts_service import ChartOfAccountsService

logger = get_logger("services.reconciliation")

RECONCILIATION_PREFIX = "LET-"
_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of one successful lettrage."""

    reconciliation_code: str
    account_code: str
    line_ids: tuple[UUID, ...]
    amount: Decimal
    reconciled_at: datetime


class ReconciliationService:
    """
    Service for matching lines.

    Contract:
        reconcile() either stamps every selected line or none.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
        self._accounts = ChartOfAccountsService(session)

    def reconcile(
        self,
        account_code: str,
        line_ids: Sequence[UUID | str],
        actor_id: str,
    ) -> ReconciliationResult:
        """
        Match ``line_ids`` on ``account_code``.

        Raises:
            ValidationFailedError, AccountNotFoundError, LineNotFoundError,
            AlreadyReconciledError, UnbalancedMatchError.
        """
        ids = self._normalize_ids(line_ids)
        account = self._accounts.get_account(account_code)

        lines = self.session.execute(
            select(EntryLine)
            .join(JournalEntry, EntryLine.entry_id == JournalEntry.id)
            .where(
                EntryLine.id.in_(ids),
                EntryLine.account_id == account.id,
                JournalEntry.status == EntryStatus.VALIDATED,
                JournalEntry.is_active.is_(True),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()

        found = {line.id for line in lines}
        missing = [str(line_id) for line_id in ids if line_id not in found]
        if missing:
            raise LineNotFoundError(account_code, missing)

        for line in lines:
            if line.reconciliation_code is not None:
                raise AlreadyReconciledError(str(line.id), line.reconciliation_code)

        debits = sum((line.debit for line in lines), Decimal("0"))
        credits = sum((line.credit for line in lines), Decimal("0"))
        if debits != credits:
            logger.warning(
                "reconciliation_rejected_unbalanced",
                extra={
                    "account_code": account_code,
                    "debits": str(debits),
                    "credits": str(credits),
                },
            )
            raise UnbalancedMatchError(account_code, debits, credits)

        reconciled_at = self._clock.now()
        code = self._generate_code(reconciled_at)

        with self.session.begin_nested():
            result = self.session.execute(
                update(EntryLine)
                .where(
                    EntryLine.id.in_(ids),
                    EntryLine.reconciliation_code.is_(None),
                )
                .values(
                    reconciliation_code=code,
                    reconciled_at=reconciled_at,
                    updated_by_id=actor_id,
                )
            )
            if result.rowcount != len(ids):
                # Another transaction stamped one of the lines first
                raise AlreadyReconciledError(str(ids[0]), "concurrent")

        logger.info(
            "reconciliation_applied",
            extra={
                "reconciliation_code": code,
                "account_code": account_code,
                "line_ids": [str(line_id) for line_id in ids],
                "amount": str(debits),
                "actor_id": actor_id,
            },
        )
        return ReconciliationResult(
            reconciliation_code=code,
            account_code=account_code,
            line_ids=tuple(ids),
            amount=debits,
            reconciled_at=reconciled_at,
        )

    def unreconciled_lines(self, account_code: str) -> list[EntryLineInfo]:
        """Open items of an account: validated lines without a code."""
        account = self._accounts.get_account(account_code)
        rows = self.session.execute(
            select(EntryLine)
            .join(JournalEntry, EntryLine.entry_id == JournalEntry.id)
            .where(
                EntryLine.account_id == account.id,
                EntryLine.reconciliation_code.is_(None),
                JournalEntry.status == EntryStatus.VALIDATED,
                JournalEntry.is_active.is_(True),
            )
            .order_by(
                JournalEntry.entry_date,
                JournalEntry.sequence_number,
                EntryLine.line_number,
            )
        ).scalars()
        return [EntryLineInfo.from_model(line) for line in rows]

    def lines_for_code(self, reconciliation_code: str) -> list[EntryLineInfo]:
        rows = self.session.execute(
            select(EntryLine)
            .where(EntryLine.reconciliation_code == reconciliation_code)
            .order_by(EntryLine.created_at, EntryLine.line_number)
        ).scalars()
        return [EntryLineInfo.from_model(line) for line in rows]

    def _generate_code(self, at: datetime) -> str:
        millis = int(at.timestamp() * 1000)
        return f"{RECONCILIATION_PREFIX}{_to_base36(millis)}-{secrets.token_hex(3).upper()}"

    @staticmethod
    def _normalize_ids(line_ids: Sequence[UUID | str]) -> list[UUID]:
        if not line_ids:
            raise ValidationFailedError("No line selected", field="line_ids")
        ids: list[UUID] = []
        for raw in line_ids:
            try:
                line_id = raw if isinstance(raw, UUID) else UUID(str(raw))
            except ValueError:
                raise ValidationFailedError(
                    f"Invalid line id {raw!r}", field="line_ids"
                ) from None
            if line_id not in ids:
                ids.append(line_id)
        return ids
