"""
Config -> Kernel Bridges.

Functions that convert a LedgerConfig into kernel inputs.  They live in
ohada_config (the producer) because the kernel must never import
ohada_config.

Usage:
    from ohada_config import get_active_config
    from ohada_config.bridges import to_account_seeds, to_posting_rules

    config = get_active_config()
    rules = to_posting_rules(config)
    ChartOfAccountsService(session).seed_chart(to_account_seeds(config), "system")
"""

from __future__ import annotations

from types import MappingProxyType

from ohada_config.schema import LedgerConfig
from ohada_kernel.domain.dtos import AccountSeed, PaymentMethod
from ohada_kernel.domain.posting_rules import PaymentRoute, PostingRules


def to_posting_rules(config: LedgerConfig) -> PostingRules:
    """
    Build the kernel's PostingRules.

    Raises:
        ValueError: a payment route names an unknown payment method.
    """
    routes = {}
    for route in config.payment_routes:
        try:
            method = PaymentMethod(route.method)
        except ValueError:
            raise ValueError(f"Unknown payment method '{route.method}'") from None
        routes[method] = PaymentRoute(journal=route.journal, role=route.role)

    return PostingRules(
        role_accounts=MappingProxyType(
            {binding.role: binding.account_code for binding in config.role_bindings}
        ),
        payment_routes=MappingProxyType(routes),
        journal_labels=MappingProxyType(
            {journal.code: journal.label for journal in config.journals}
        ),
        currency=config.currency,
        abort_on_failure=config.abort_on_failure,
    )


def to_account_seeds(config: LedgerConfig) -> tuple[AccountSeed, ...]:
    """Chart of accounts as system-account seeds."""
    return tuple(
        AccountSeed(
            code=account.code,
            label=account.label,
            normal_balance=account.normal_balance,
            is_imputable=account.imputable,
            is_collective=account.collective,
            is_system=True,
            description=account.description,
        )
        for account in config.chart_of_accounts
    )
