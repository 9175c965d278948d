"""Pure domain layer - clock, posting rules and data transfer objects."""

from ohada_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ohada_kernel.domain.dtos import (
    AccountInfo,
    AccountSeed,
    DateRange,
    EntryLineInfo,
    FiscalPeriodInfo,
    JournalEntryInfo,
    ManualLineSpec,
    PaymentDocument,
    PaymentMethod,
    PurchaseInvoiceDocument,
    SaleInvoiceDocument,
)
from ohada_kernel.domain.posting_rules import (
    AccountRole,
    PaymentRoute,
    PostingRules,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "AccountInfo",
    "AccountRole",
    "AccountSeed",
    "DateRange",
    "EntryLineInfo",
    "FiscalPeriodInfo",
    "JournalEntryInfo",
    "ManualLineSpec",
    "PaymentDocument",
    "PaymentMethod",
    "PaymentRoute",
    "PostingRules",
    "PurchaseInvoiceDocument",
    "SaleInvoiceDocument",
]
