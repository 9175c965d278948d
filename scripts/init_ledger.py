#!/usr/bin/env python3
"""
Initialize a ledger database.

Creates the tables, loads the configured SYSCOHADA chart of accounts and
opens the fiscal year as the current period.  Safe to run twice: existing
accounts are skipped and an existing period code is left alone.

Usage:
    python3 scripts/init_ledger.py --year 2026
    DATABASE_URL=postgresql://... python3 scripts/init_ledger.py --year 2026
"""

import argparse
import sys
from datetime import date
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

SYSTEM_ACTOR = "system"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create tables, seed the chart of accounts and open a fiscal year.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--year",
        type=int,
        default=date.today().year,
        help="Fiscal year to open (default: current year).",
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
    from ohada_config.bridges import to_account_seeds
    from ohada_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from ohada_kernel.db.immutability import register_immutability_listeners
    from ohada_kernel.exceptions import PeriodNotFoundError
    from ohada_kernel.services.chart_of_accounts_service import ChartOfAccountsService
    from ohada_kernel.services.period_service import PeriodService

    config = get_active_config(args.config)
    init_engine_from_url(config.database.url, echo=config.database.echo)
    create_tables()
    register_immutability_listeners()

    code = f"EX{args.year}"
    with session_scope() as session:
        created = ChartOfAccountsService(session).seed_chart(
            to_account_seeds(config), SYSTEM_ACTOR
        )
        periods = PeriodService(session)
        try:
            periods.get_period(code)
            opened = False
        except PeriodNotFoundError:
            periods.create_period(
                code=code,
                label=f"Exercice {args.year}",
                start_date=date(args.year, 1, 1),
                end_date=date(args.year, 12, 31),
                actor_id=SYSTEM_ACTOR,
            )
            opened = True

    print(f"  {created} account(s) created")
    print(f"  Period {code}: {'opened' if opened else 'already exists'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
