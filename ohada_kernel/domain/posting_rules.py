"""
PostingRules -- account roles and payment routing used by automatic postings.

Responsibility:
    Binds the abstract roles a posting needs (receivable, revenue, output
    VAT, settlement accounts...) to chart-of-accounts codes, and routes each
    payment method to a journal and a settlement role.  The kernel receives a
    PostingRules instance by injection; ``ohada_config`` builds one from YAML.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  MUST NOT import from ohada_config.

Invariants enforced:
    - Every role a builder asks for is bound; an unbound role is a
      configuration error (KeyError), raised before anything is written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from ohada_kernel.domain.dtos import PaymentMethod


class AccountRole:
    """Well-known posting roles."""

    RECEIVABLE = "receivable"
    REVENUE = "revenue"
    VAT_OUTPUT = "vat_output"
    PAYABLE = "payable"
    PURCHASES = "purchases"
    VAT_INPUT = "vat_input"
    BANK = "bank"
    CASH = "cash"
    MOBILE_MONEY = "mobile_money"


SYSCOHADA_ROLE_ACCOUNTS: Mapping[str, str] = MappingProxyType({
    AccountRole.RECEIVABLE: "411000",
    AccountRole.REVENUE: "701000",
    AccountRole.VAT_OUTPUT: "443100",
    AccountRole.PAYABLE: "401000",
    AccountRole.PURCHASES: "601000",
    AccountRole.VAT_INPUT: "445200",
    AccountRole.BANK: "521000",
    AccountRole.CASH: "571000",
    AccountRole.MOBILE_MONEY: "521100",
})


@dataclass(frozen=True)
class PaymentRoute:
    """Journal and settlement role for one payment method."""

    journal: str
    role: str


DEFAULT_PAYMENT_ROUTES: Mapping[PaymentMethod, PaymentRoute] = MappingProxyType({
    PaymentMethod.CASH: PaymentRoute("CA", AccountRole.CASH),
    PaymentMethod.CHEQUE: PaymentRoute("BQ", AccountRole.BANK),
    PaymentMethod.TRANSFER: PaymentRoute("BQ", AccountRole.BANK),
    PaymentMethod.CARD: PaymentRoute("BQ", AccountRole.BANK),
    PaymentMethod.MOBILE_MONEY: PaymentRoute("BQ", AccountRole.MOBILE_MONEY),
})

DEFAULT_JOURNAL_LABELS: Mapping[str, str] = MappingProxyType({
    "VE": "Journal des Ventes",
    "AC": "Journal des Achats",
    "BQ": "Journal de Banque",
    "CA": "Journal de Caisse",
    "OD": "Operations Diverses",
})


@dataclass(frozen=True)
class PostingRules:
    """
    Frozen posting configuration handed to LedgerService and PostingHooks.

    Guarantees:
        - ``account_for`` and ``route_for`` never return None.
    """

    role_accounts: Mapping[str, str] = field(
        default_factory=lambda: SYSCOHADA_ROLE_ACCOUNTS
    )
    payment_routes: Mapping[PaymentMethod, PaymentRoute] = field(
        default_factory=lambda: DEFAULT_PAYMENT_ROUTES
    )
    journal_labels: Mapping[str, str] = field(
        default_factory=lambda: DEFAULT_JOURNAL_LABELS
    )
    currency: str = "XOF"
    abort_on_failure: bool = True

    def account_for(self, role: str) -> str:
        """
        Account code bound to ``role``.

        Raises:
            KeyError: The role is not bound.
        """
        try:
            return self.role_accounts[role]
        except KeyError:
            raise KeyError(f"No account bound to posting role '{role}'") from None

    def route_for(self, method: PaymentMethod | str) -> PaymentRoute:
        """
        Journal and settlement role for a payment method.

        Raises:
            KeyError: The method has no route.
        """
        try:
            return self.payment_routes[PaymentMethod(method)]
        except (KeyError, ValueError):
            raise KeyError(f"No payment route for method '{method}'") from None

    def journal_label(self, journal: str) -> str:
        return self.journal_labels.get(journal, journal)
