"""
Module: ohada_kernel.selectors.statement_selector
Responsibility: Financial statements derived from the trial balance: income
    statement (compte de resultat), balance sheet (bilan) and the VAT
    declaration.
Architecture position: Kernel > Selectors.  Built on LedgerSelector.

Classification (SYSCOHADA):
    Income statement  class 6 expenses (debit - credit)
                      class 7 revenues (credit - debit)
                      class 8 HAO accounts by their normal side
    Balance sheet     class 2 fixed assets, class 3 inventory (debit - credit)
                      class 1 equity (credit - debit) plus the net result
                      class 4 debtor -> receivables, creditor -> payables
                      class 5 debtor -> cash, creditor -> bank overdrafts
    VAT               443* collected (credit - debit)
                      445* deductible (debit - credit)

Invariants enforced:
    - is_balanced on the balance sheet holds for any range in which every
      validated entry balances, because the net result carries classes 6-8.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ohada_kernel.domain.dtos import DateRange
from ohada_kernel.models.account import NormalBalance
from ohada_kernel.models.journal import EntryLine
from ohada_kernel.selectors.base import BaseSelector
from ohada_kernel.selectors.ledger_selector import LedgerSelector, TrialBalanceRow

ZERO = Decimal("0")

VAT_COLLECTED_PREFIX = "443"
VAT_DEDUCTIBLE_PREFIX = "445"


@dataclass(frozen=True)
class StatementLine:
    account_code: str
    account_label: str
    amount: Decimal

    @classmethod
    def from_row(cls, row: TrialBalanceRow, amount: Decimal) -> "StatementLine":
        return cls(row.account_code, row.account_label, amount)


def _total(lines) -> Decimal:
    return sum((line.amount for line in lines), ZERO)


@dataclass(frozen=True)
class IncomeStatement:
    expenses: tuple[StatementLine, ...] = field(default_factory=tuple)
    revenues: tuple[StatementLine, ...] = field(default_factory=tuple)

    @property
    def total_expenses(self) -> Decimal:
        return _total(self.expenses)

    @property
    def total_revenues(self) -> Decimal:
        return _total(self.revenues)

    @property
    def net_result(self) -> Decimal:
        """Positive for a profit, negative for a loss."""
        return self.total_revenues - self.total_expenses


@dataclass(frozen=True)
class BalanceSheet:
    """
    Assets on one side, equity and liabilities on the other.

    Split-class lines (receivables/payables, cash/overdrafts) carry absolute
    amounts; class 1-3 lines keep their sign so contra accounts (28x
    depreciation, 109 uncalled capital) net against their section.
    """

    fixed_assets: tuple[StatementLine, ...]
    inventory: tuple[StatementLine, ...]
    receivables: tuple[StatementLine, ...]
    cash: tuple[StatementLine, ...]
    equity: tuple[StatementLine, ...]
    payables: tuple[StatementLine, ...]
    bank_overdrafts: tuple[StatementLine, ...]
    net_result: Decimal

    @property
    def total_assets(self) -> Decimal:
        return (
            _total(self.fixed_assets)
            + _total(self.inventory)
            + _total(self.receivables)
            + _total(self.cash)
        )

    @property
    def total_equity(self) -> Decimal:
        return _total(self.equity) + self.net_result

    @property
    def total_liabilities_and_equity(self) -> Decimal:
        return self.total_equity + _total(self.payables) + _total(self.bank_overdrafts)

    @property
    def is_balanced(self) -> bool:
        return self.total_assets == self.total_liabilities_and_equity


@dataclass(frozen=True)
class VatDeclaration:
    details: tuple[TrialBalanceRow, ...]
    vat_collected: Decimal
    vat_deductible: Decimal

    @property
    def vat_due(self) -> Decimal:
        """Collected minus deductible; negative means a credit to carry forward."""
        return self.vat_collected - self.vat_deductible

    @property
    def vat_credit(self) -> Decimal:
        return -self.vat_due if self.vat_due < ZERO else ZERO


class StatementSelector(BaseSelector[EntryLine]):
    """Selector for the financial statements."""

    def __init__(self, session: Session):
        super().__init__(session)
        self._ledger = LedgerSelector(session)

    def income_statement(
        self,
        date_range: DateRange | None = None,
        period_id: UUID | None = None,
    ) -> IncomeStatement:
        trial = self._ledger.trial_balance(date_range, period_id)
        return self._income_statement(trial.rows)

    @staticmethod
    def _income_statement(rows) -> IncomeStatement:
        expenses = []
        revenues = []
        for row in rows:
            if row.account_class == 6:
                expenses.append(StatementLine.from_row(row, row.net))
            elif row.account_class == 7:
                revenues.append(StatementLine.from_row(row, -row.net))
            elif row.account_class == 8:
                if row.normal_balance == NormalBalance.CREDIT.value:
                    revenues.append(StatementLine.from_row(row, -row.net))
                else:
                    expenses.append(StatementLine.from_row(row, row.net))
        return IncomeStatement(expenses=tuple(expenses), revenues=tuple(revenues))

    def balance_sheet(
        self,
        date_range: DateRange | None = None,
        period_id: UUID | None = None,
    ) -> BalanceSheet:
        trial = self._ledger.trial_balance(date_range, period_id)

        sections: dict[str, list[StatementLine]] = {
            "fixed_assets": [],
            "inventory": [],
            "receivables": [],
            "cash": [],
            "equity": [],
            "payables": [],
            "bank_overdrafts": [],
        }
        for row in trial.rows:
            net = row.net
            if row.account_class == 2:
                sections["fixed_assets"].append(StatementLine.from_row(row, net))
            elif row.account_class == 3:
                sections["inventory"].append(StatementLine.from_row(row, net))
            elif row.account_class == 1:
                sections["equity"].append(StatementLine.from_row(row, -net))
            elif row.account_class in (4, 5) and net != ZERO:
                if row.account_class == 4:
                    debtor, creditor = "receivables", "payables"
                else:
                    debtor, creditor = "cash", "bank_overdrafts"
                target = debtor if net > ZERO else creditor
                sections[target].append(StatementLine.from_row(row, abs(net)))

        net_result = self._income_statement(trial.rows).net_result
        return BalanceSheet(
            net_result=net_result,
            **{name: tuple(lines) for name, lines in sections.items()},
        )

    def vat_declaration(
        self,
        date_range: DateRange | None = None,
        period_id: UUID | None = None,
    ) -> VatDeclaration:
        trial = self._ledger.trial_balance(date_range, period_id)
        details = []
        collected = ZERO
        deductible = ZERO
        for row in trial.rows:
            if row.account_code.startswith(VAT_COLLECTED_PREFIX):
                collected += -row.net
                details.append(row)
            elif row.account_code.startswith(VAT_DEDUCTIBLE_PREFIX):
                deductible += row.net
                details.append(row)
        return VatDeclaration(
            details=tuple(details),
            vat_collected=collected,
            vat_deductible=deductible,
        )
