#!/usr/bin/env python3
"""
Write the audit export (Fichier des Ecritures Comptables) of one period.

Reads validated entries of the fiscal period from the configured database
and writes the pipe-delimited file, header included.

Usage:
    python3 scripts/export_audit_file.py --period EX2026
    python3 scripts/export_audit_file.py --period EX2026 --output FEC2026.txt
"""

import argparse
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export the audit file of a fiscal period.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--period",
        required=True,
        help="Fiscal period code (e.g. EX2026).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output file (default: stdout).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Ledger YAML file (default: $OHADA_LEDGER_CONFIG or packaged defaults).",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    from ohada_config import get_active_config
    from ohada_config.bridges import to_posting_rules
    from ohada_kernel.db.engine import init_engine_from_url, session_scope
    from ohada_kernel.exceptions import PeriodNotFoundError
    from ohada_kernel.selectors.audit_export import AuditExportSelector, write_audit_file

    config = get_active_config(args.config)
    rules = to_posting_rules(config)
    init_engine_from_url(config.database.url, echo=config.database.echo)

    with session_scope() as session:
        selector = AuditExportSelector(
            session, journal_labels=rules.journal_labels, currency=rules.currency
        )
        try:
            rows = selector.export(args.period)
        except PeriodNotFoundError as exc:
            print(f"  ERROR: {exc}", file=sys.stderr)
            return 1

    if args.output is None:
        count = write_audit_file(rows, sys.stdout)
    else:
        with open(args.output, "w", encoding="utf-8", newline="") as stream:
            count = write_audit_file(rows, stream)
        print(f"  {count} line(s) written to {args.output}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
