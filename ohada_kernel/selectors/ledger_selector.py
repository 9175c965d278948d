"""
Module: ohada_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: the account ledger (grand livre)
    with its running balance, and the trial balance (balance generale).
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only lines of validated, active entries are read.
    - Trial balance rows carry a one-sided net balance: debtor or creditor,
      never both.
    - Trial balance identity: total debit == total credit == total debtor
      balances == total creditor balances, for any date range, because every
      validated entry balances.

Failure modes:
    - AccountNotFoundError from account_ledger() on an unknown code.
    - Empty results (zero totals) when nothing is validated in the range.

Audit relevance:
    The trial balance is the source for the income statement and balance
    sheet (StatementSelector).  Aggregation is done on Decimal in Python, so
    the result does not depend on the database's numeric type.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ohada_kernel.domain.dtos import DateRange
from ohada_kernel.exceptions import AccountNotFoundError
from ohada_kernel.models.account import Account
from ohada_kernel.models.journal import EntryLine
from ohada_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


@dataclass(frozen=True)
class AccountLedgerLine:
    """One movement in an account ledger."""

    entry_id: UUID
    entry_number: str
    entry_date: date
    journal: str
    reference: str | None
    label: str
    debit: Decimal
    credit: Decimal
    running_balance: Decimal
    reconciliation_code: str | None = None


@dataclass(frozen=True)
class AccountLedger:
    """Movements of one account with totals.  balance = debit - credit."""

    account_code: str
    account_label: str
    lines: tuple[AccountLedgerLine, ...]
    total_debit: Decimal
    total_credit: Decimal

    @property
    def balance(self) -> Decimal:
        return self.total_debit - self.total_credit


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single account row of the trial balance."""

    account_code: str
    account_label: str
    account_class: int
    normal_balance: str
    total_debit: Decimal
    total_credit: Decimal
    movement_count: int

    @property
    def net(self) -> Decimal:
        """Debit minus credit."""
        return self.total_debit - self.total_credit

    @property
    def debit_balance(self) -> Decimal:
        return self.net if self.net > ZERO else ZERO

    @property
    def credit_balance(self) -> Decimal:
        return -self.net if self.net < ZERO else ZERO


@dataclass(frozen=True)
class TrialBalance:
    rows: tuple[TrialBalanceRow, ...] = field(default_factory=tuple)

    @property
    def total_debit(self) -> Decimal:
        return sum((r.total_debit for r in self.rows), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((r.total_credit for r in self.rows), ZERO)

    @property
    def total_debit_balance(self) -> Decimal:
        return sum((r.debit_balance for r in self.rows), ZERO)

    @property
    def total_credit_balance(self) -> Decimal:
        return sum((r.credit_balance for r in self.rows), ZERO)

    @property
    def is_balanced(self) -> bool:
        return (
            self.total_debit == self.total_credit
            and self.total_debit_balance == self.total_credit_balance
        )

    def by_class(self, *classes: int) -> tuple[TrialBalanceRow, ...]:
        return tuple(r for r in self.rows if r.account_class in classes)


class LedgerSelector(BaseSelector[EntryLine]):
    """
    Selector for ledger queries.

    Contract:
        ``date_range`` bounds are inclusive; ``period_id`` restricts to one
        fiscal period.  Both may be combined.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def account_ledger(
        self,
        account_code: str,
        date_range: DateRange | None = None,
        period_id: UUID | None = None,
    ) -> AccountLedger:
        """
        Chronological movements of one account with a running balance.

        The running balance is debit minus credit whatever the account's
        normal side.

        Raises:
            AccountNotFoundError: Unknown account code.
        """
        account = self.session.execute(
            select(Account).where(Account.code == account_code)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_code)

        stmt = self.validated_lines(date_range, period_id).where(
            EntryLine.account_id == account.id
        )

        running = ZERO
        total_debit = ZERO
        total_credit = ZERO
        movements = []
        for line, entry in self.session.execute(stmt).all():
            running += line.debit - line.credit
            total_debit += line.debit
            total_credit += line.credit
            movements.append(
                AccountLedgerLine(
                    entry_id=entry.id,
                    entry_number=entry.entry_number,
                    entry_date=entry.entry_date,
                    journal=entry.journal_value,
                    reference=entry.reference,
                    label=line.label,
                    debit=line.debit,
                    credit=line.credit,
                    running_balance=running,
                    reconciliation_code=line.reconciliation_code,
                )
            )

        return AccountLedger(
            account_code=account.code,
            account_label=account.label,
            lines=tuple(movements),
            total_debit=total_debit,
            total_credit=total_credit,
        )

    def trial_balance(
        self,
        date_range: DateRange | None = None,
        period_id: UUID | None = None,
    ) -> TrialBalance:
        """
        Per-account debit/credit totals with one-sided net balances.

        Only accounts with at least one movement in the range appear.
        Rows are ordered by account code.
        """
        totals: dict[UUID, list] = defaultdict(lambda: [ZERO, ZERO, 0])
        for line, _entry in self.session.execute(
            self.validated_lines(date_range, period_id)
        ).all():
            bucket = totals[line.account_id]
            bucket[0] += line.debit
            bucket[1] += line.credit
            bucket[2] += 1

        if not totals:
            return TrialBalance()

        accounts = self.session.execute(
            select(Account).where(Account.id.in_(list(totals)))
        ).scalars()

        rows = [
            TrialBalanceRow(
                account_code=account.code,
                account_label=account.label,
                account_class=account.account_class,
                normal_balance=account.normal_balance_value,
                total_debit=totals[account.id][0],
                total_credit=totals[account.id][1],
                movement_count=totals[account.id][2],
            )
            for account in accounts
        ]
        rows.sort(key=lambda r: r.account_code)
        return TrialBalance(rows=tuple(rows))
