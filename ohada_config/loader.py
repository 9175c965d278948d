"""
Configuration Loader (``ohada_config.loader``).

Responsibility
--------------
Loads the ledger YAML files and parses them into the frozen
``ohada_config.schema`` dataclasses.  Runtime callers go through
``ohada_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Every payment route names a bound posting role.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError``.
* Inconsistent content (unknown role, duplicate code)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ohada_config.schema import (
    ChartAccountDef,
    DatabaseSettings,
    JournalDef,
    LedgerConfig,
    PaymentRouteDef,
    RoleBindingDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_chart(data: dict[str, Any]) -> tuple[ChartAccountDef, ...]:
    """
    Parse the ``accounts:`` list of a chart file.

    Raises:
        KeyError: an account lacks ``code`` or ``label``.
        ValueError: duplicate codes, or a code that is not all digits.
    """
    accounts = []
    seen: set[str] = set()
    for item in data["accounts"]:
        code = str(item["code"])
        if not code.isdigit():
            raise ValueError(f"Account code must be digits, got {code!r}")
        if code in seen:
            raise ValueError(f"Duplicate account code {code} in chart of accounts")
        seen.add(code)
        accounts.append(
            ChartAccountDef(
                code=code,
                label=item["label"],
                normal_balance=item.get("normal_balance"),
                imputable=bool(item.get("imputable", True)),
                collective=bool(item.get("collective", False)),
                description=item.get("description"),
            )
        )
    return tuple(accounts)


def parse_role_bindings(data: dict[str, Any]) -> tuple[RoleBindingDef, ...]:
    return tuple(
        RoleBindingDef(role=role, account_code=str(code))
        for role, code in sorted(data.items())
    )


def parse_payment_routes(data: dict[str, Any]) -> tuple[PaymentRouteDef, ...]:
    return tuple(
        PaymentRouteDef(method=method, journal=route["journal"], role=route["role"])
        for method, route in sorted(data.items())
    )


def parse_journals(data: dict[str, Any]) -> tuple[JournalDef, ...]:
    return tuple(JournalDef(code=code, label=label) for code, label in data.items())


def parse_database(data: dict[str, Any] | None) -> DatabaseSettings:
    if not data:
        return DatabaseSettings()
    return DatabaseSettings(
        url=data.get("url", DatabaseSettings.url),
        echo=bool(data.get("echo", False)),
    )


def parse_ledger_config(data: dict[str, Any], base_dir: Path) -> LedgerConfig:
    """
    Parse a ledger configuration dict.

    The chart of accounts file named under ``ledger.chart_of_accounts`` is
    resolved relative to ``base_dir``.

    Raises:
        KeyError: a required section is missing.
        ValueError: a payment route uses an unbound role.
    """
    ledger = data["ledger"]
    chart_path = base_dir / ledger["chart_of_accounts"]
    chart_data = load_yaml_file(chart_path)

    role_bindings = parse_role_bindings(data["posting_roles"])
    payment_routes = parse_payment_routes(data["payment_routes"])

    bound = {binding.role for binding in role_bindings}
    for route in payment_routes:
        if route.role not in bound:
            raise ValueError(
                f"Payment route '{route.method}' uses unbound role '{route.role}'"
            )

    return LedgerConfig(
        currency=ledger["currency"],
        role_bindings=role_bindings,
        payment_routes=payment_routes,
        journals=parse_journals(data.get("journal_labels", {})),
        chart_of_accounts=parse_chart(chart_data),
        abort_on_failure=bool(data.get("posting", {}).get("abort_on_failure", True)),
        database=parse_database(data.get("database")),
        checksum=compute_checksum({"ledger": data, "chart": chart_data}),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
