"""
LedgerConfig schema.

Typed, frozen form of ``defaults/ledger.yaml`` and the chart of accounts it
names.  The loader parses YAML into these types; bridges turn them into the
kernel's PostingRules and AccountSeed inputs.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChartAccountDef:
    """One account of the configured chart."""

    code: str
    label: str
    normal_balance: str | None = None
    imputable: bool = True
    collective: bool = False
    description: str | None = None


@dataclass(frozen=True)
class RoleBindingDef:
    """Posting role -> account code."""

    role: str
    account_code: str


@dataclass(frozen=True)
class PaymentRouteDef:
    """Payment method -> journal and settlement role."""

    method: str
    journal: str
    role: str


@dataclass(frozen=True)
class JournalDef:
    code: str
    label: str


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite://"
    echo: bool = False


@dataclass(frozen=True)
class LedgerConfig:
    """
    Complete runtime configuration of the ledger.

    ``checksum`` identifies the exact YAML content that produced it.
    """

    currency: str
    role_bindings: tuple[RoleBindingDef, ...]
    payment_routes: tuple[PaymentRouteDef, ...]
    journals: tuple[JournalDef, ...]
    chart_of_accounts: tuple[ChartAccountDef, ...]
    abort_on_failure: bool = True
    database: DatabaseSettings = DatabaseSettings()
    checksum: str = ""
    source_path: str = ""

    def account_for_role(self, role: str) -> str:
        for binding in self.role_bindings:
            if binding.role == role:
                return binding.account_code
        raise KeyError(f"No account bound to posting role '{role}'")
