"""Services for the ledger kernel (write side)."""

from ohada_kernel.services.chart_of_accounts_service import ChartOfAccountsService
from ohada_kernel.services.journal_writer import JournalWriter, PlannedLine
from ohada_kernel.services.ledger_service import LedgerService
from ohada_kernel.services.period_service import PeriodService
from ohada_kernel.services.posting_hooks import PostingHooks
from ohada_kernel.services.reconciliation_service import (
    ReconciliationResult,
    ReconciliationService,
)
from ohada_kernel.services.reversal_service import ReversalResult, ReversalService
from ohada_kernel.services.sequence_service import SequenceService

__all__ = [
    "ChartOfAccountsService",
    "JournalWriter",
    "LedgerService",
    "PeriodService",
    "PlannedLine",
    "PostingHooks",
    "ReconciliationResult",
    "ReconciliationService",
    "ReversalResult",
    "ReversalService",
    "SequenceService",
]
