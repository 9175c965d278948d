"""Selectors for the ledger kernel (read side)."""

from ohada_kernel.selectors.audit_export import (
    AUDIT_FILE_COLUMNS,
    AuditExportRow,
    AuditExportSelector,
    write_audit_file,
)
from ohada_kernel.selectors.journal_selector import JournalSelector
from ohada_kernel.selectors.ledger_selector import (
    AccountLedger,
    AccountLedgerLine,
    LedgerSelector,
    TrialBalance,
    TrialBalanceRow,
)
from ohada_kernel.selectors.statement_selector import (
    BalanceSheet,
    IncomeStatement,
    StatementLine,
    StatementSelector,
    VatDeclaration,
)

__all__ = [
    "AUDIT_FILE_COLUMNS",
    "AccountLedger",
    "AccountLedgerLine",
    "AuditExportRow",
    "AuditExportSelector",
    "BalanceSheet",
    "IncomeStatement",
    "JournalSelector",
    "LedgerSelector",
    "StatementLine",
    "StatementSelector",
    "TrialBalance",
    "TrialBalanceRow",
    "VatDeclaration",
    "write_audit_file",
]
