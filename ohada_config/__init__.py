"""
ohada_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  No kernel component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML-driven settings.  Sits above ``ohada_kernel``.
    The kernel MUST NEVER import from ``ohada_config``; ``bridges`` turns a
    LedgerConfig into kernel inputs (PostingRules, AccountSeed).

Environment:
    OHADA_LEDGER_CONFIG  path of the ledger YAML file (default:
                         ``defaults/ledger.yaml`` in this package).
    DATABASE_URL         overrides ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- schema or consistency errors.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``OHADA_LEDGER_CONFIG_TRACE`` log entry with the source path, checksum
    and binding counts.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from ohada_config.loader import load_yaml_file, parse_ledger_config
from ohada_config.schema import (
    ChartAccountDef,
    DatabaseSettings,
    JournalDef,
    LedgerConfig,
    PaymentRouteDef,
    RoleBindingDef,
)

_logger = logging.getLogger("ohada_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "ledger.yaml"

CONFIG_PATH_ENV = "OHADA_LEDGER_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """
    The public configuration entrypoint.

    Args:
        config_path: Explicit YAML path.  Falls back to
            ``$OHADA_LEDGER_CONFIG``, then the packaged defaults.

    Returns:
        LedgerConfig with ``database.url`` taken from ``$DATABASE_URL``
        when set.

    Raises:
        FileNotFoundError, KeyError, ValueError.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = parse_ledger_config(load_yaml_file(path), path.parent)

    database = config.database
    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        database = replace(database, url=database_url)
    config = replace(config, database=database, source_path=str(path))

    _logger.info(
        "OHADA_LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "OHADA_LEDGER_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": config.checksum,
            "currency": config.currency,
            "role_binding_count": len(config.role_bindings),
            "payment_route_count": len(config.payment_routes),
            "account_count": len(config.chart_of_accounts),
            "abort_on_failure": config.abort_on_failure,
        },
    )
    return config


__all__ = [
    "ChartAccountDef",
    "DatabaseSettings",
    "JournalDef",
    "LedgerConfig",
    "PaymentRouteDef",
    "RoleBindingDef",
    "get_active_config",
]
