"""
Module: ohada_kernel.models.account
Responsibility: ORM persistence for the SYSCOHADA chart of accounts -- the
    target of every entry line.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique, 1 to 10 digits, and its first digit is the class (1-8).
      Checked by ChartOfAccountsService before insert.
    - Only imputable (postable) accounts accept postings.  Collective accounts
      such as 443000 or the one/two-digit headings exist for roll-ups only.
    - total_debit/total_credit are a derived cache over validated lines and
      can always be rebuilt from the journal.

Failure modes:
    - AccountNotFoundError when a posting references an unknown code.
    - AccountNotPostableError when a posting targets a collective account.
    - AccountReferencedError / SystemAccountError on forbidden deletion.

Audit relevance:
    Entry lines snapshot code and label at posting time, so renaming an
    account never rewrites the history shown in the ledger or audit file.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ohada_kernel.db.base import TrackedBase, UUIDString
from ohada_kernel.db.types import Money


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


# Classes 1 (capital) and 7 (revenue) are credit-normal; 4 and 5 default to
# debit and are split by sign in the balance sheet.
CREDIT_NORMAL_CLASSES = frozenset({1, 7})
ACCOUNT_CLASSES = range(1, 9)


def default_normal_balance(account_class: int) -> NormalBalance:
    """Normal side implied by a SYSCOHADA account class."""
    if account_class in CREDIT_NORMAL_CLASSES:
        return NormalBalance.CREDIT
    return NormalBalance.DEBIT


class Account(TrackedBase):
    """
    Chart of accounts entry.

    Contract:
        Account.code is globally unique (uq_account_code).  The parent link
        is a plain id reference used for roll-ups; ChartOfAccountsService
        rejects cycles before writing it.

    Guarantees:
        - account_class equals int(code[0]).
        - normal_balance is DEBIT or CREDIT.

    Non-goals:
        - The model does not enforce deletion rules; ChartOfAccountsService
          refuses to delete system or referenced accounts.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_class", "account_class"),
        Index("idx_account_parent", "parent_id"),
        Index("idx_account_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    account_class: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    normal_balance: Mapped[NormalBalance] = mapped_column(
        String(10),
        nullable=False,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # Leaf accounts accept postings; headings are aggregation-only
    is_imputable: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Informational tag for third-party control accounts (401, 411, ...)
    is_collective: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    is_system: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Derived cache over validated lines (see ChartOfAccountsService.rebuild_balances)
    total_debit: Mapped[Money] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    total_credit: Mapped[Money] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.label}>"

    @property
    def normal_balance_value(self) -> str:
        return NormalBalance(self.normal_balance).value

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def is_credit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.CREDIT

    @property
    def net_debit(self) -> Decimal:
        """Debit minus credit, whatever the normal side."""
        return (self.total_debit or Decimal("0")) - (self.total_credit or Decimal("0"))

    @property
    def balance(self) -> Decimal:
        """Cached balance signed by the normal side.

        Postconditions: Positive when the account leans to its normal side.
        """
        if self.is_credit_normal:
            return -self.net_debit
        return self.net_debit
