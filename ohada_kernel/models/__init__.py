"""ORM models for the ledger kernel."""

from ohada_kernel.models.account import (
    Account,
    NormalBalance,
    default_normal_balance,
)
from ohada_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ohada_kernel.models.journal import (
    EntryLine,
    EntryStatus,
    JournalCode,
    JournalEntry,
    SourceType,
)

__all__ = [
    "Account",
    "NormalBalance",
    "default_normal_balance",
    "FiscalPeriod",
    "PeriodStatus",
    "JournalEntry",
    "EntryLine",
    "EntryStatus",
    "JournalCode",
    "SourceType",
]
