"""
OHADA Ledger Kernel

A SYSCOHADA double-entry bookkeeping engine with:
- Chart of accounts with postable/collective accounts
- Fiscal periods with an irreversible close
- Append-only journal entries (draft -> validated)
- Reversal (contrepassation) and reconciliation (lettrage)
- Derived reports and the regulatory audit-file export
"""

__version__ = "0.1.0"
