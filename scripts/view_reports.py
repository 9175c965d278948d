#!/usr/bin/env python3
"""
Print the statements of one fiscal period from the configured database.

Trial balance, income statement, balance sheet and VAT declaration, followed
by a short verification summary.  Run init_ledger.py first.

Usage:
    python3 scripts/view_reports.py --period EX2026
"""

import argparse
import logging
import sys
from decimal import Decimal
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# ===================================================================
# Pretty-print helpers
# ===================================================================

W = 72  # total line width
AMT_W = 16  # amount column width


def _hdr(title: str, subtitle: str = "") -> str:
    lines = ["", "=" * W, title.center(W)]
    if subtitle:
        lines.append(subtitle.center(W))
    lines.append("=" * W)
    return "\n".join(lines)


def _fmt(v) -> str:
    """Format a Decimal as 1 234 567,00 (negative in parentheses)."""
    if v is None:
        return ""
    d = Decimal(v)
    text = f"{abs(d):,.2f}".replace(",", " ").replace(".", ",")
    return f"({text})" if d < 0 else f" {text} "


def _row(label: str, amount, indent: int = 0) -> str:
    name = f"{'  ' * indent}{label}"
    return f"  {name:<{W - AMT_W - 2}}{_fmt(amount):>{AMT_W}}"


def _sep() -> str:
    return f"  {'':>{W - AMT_W - 2}}{'-' * AMT_W:>{AMT_W}}"


def _status(label: str, ok: bool) -> str:
    tag = "OK" if ok else "FAIL"
    return f"  [{tag}] {label}"


# ===================================================================
# Report printers
# ===================================================================


def print_trial_balance(tb, period_code: str) -> None:
    label_w = W - 2 * AMT_W - 2
    print(_hdr("BALANCE GENERALE", period_code))
    print(f"  {'Compte':<{label_w}}{'Solde debit':>{AMT_W}}{'Solde credit':>{AMT_W}}")
    for row in tb.rows:
        dr = _fmt(row.debit_balance) if row.debit_balance else ""
        cr = _fmt(row.credit_balance) if row.credit_balance else ""
        name = f"{row.account_code}  {row.account_label}"[:label_w]
        print(f"  {name:<{label_w}}{dr:>{AMT_W}}{cr:>{AMT_W}}")
    print(
        f"  {'TOTAUX':<{label_w}}"
        f"{_fmt(tb.total_debit_balance):>{AMT_W}}{_fmt(tb.total_credit_balance):>{AMT_W}}"
    )
    print()


def _print_section(title: str, lines) -> None:
    print(f"  {title}")
    for line in lines:
        print(_row(f"{line.account_code}  {line.account_label}", line.amount, indent=1))


def print_income_statement(statement, period_code: str) -> None:
    print(_hdr("COMPTE DE RESULTAT", period_code))
    _print_section("Produits", statement.revenues)
    print(_sep())
    print(_row("Total produits", statement.total_revenues))
    _print_section("Charges", statement.expenses)
    print(_sep())
    print(_row("Total charges", statement.total_expenses))
    print()
    print(_row("RESULTAT NET", statement.net_result))
    print()


def print_balance_sheet(sheet, period_code: str) -> None:
    print(_hdr("BILAN", period_code))
    print("  ACTIF")
    _print_section("Actif immobilise", sheet.fixed_assets)
    _print_section("Stocks", sheet.inventory)
    _print_section("Creances", sheet.receivables)
    _print_section("Tresorerie actif", sheet.cash)
    print(_sep())
    print(_row("TOTAL ACTIF", sheet.total_assets))
    print()
    print("  PASSIF")
    _print_section("Capitaux propres", sheet.equity)
    print(_row("Resultat de l'exercice", sheet.net_result, indent=1))
    _print_section("Dettes", sheet.payables)
    _print_section("Tresorerie passif", sheet.bank_overdrafts)
    print(_sep())
    print(_row("TOTAL PASSIF", sheet.total_liabilities_and_equity))
    print()


def print_vat_declaration(vat, period_code: str) -> None:
    print(_hdr("DECLARATION DE TVA", period_code))
    print(_row("TVA collectee", vat.vat_collected))
    print(_row("TVA deductible", vat.vat_deductible))
    print(_sep())
    if vat.vat_credit:
        print(_row("Credit de TVA a reporter", vat.vat_credit))
    else:
        print(_row("TVA a payer", vat.vat_due))
    print()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print the statements of a fiscal period.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--period", required=True, help="Fiscal period code (e.g. EX2026).")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Ledger YAML file (default: $OHADA_LEDGER_CONFIG or packaged defaults).",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    logging.disable(logging.CRITICAL)

    from ohada_config import get_active_config
    from ohada_kernel.db.engine import init_engine_from_url, session_scope
    from ohada_kernel.exceptions import PeriodNotFoundError
    from ohada_kernel.selectors.ledger_selector import LedgerSelector
    from ohada_kernel.selectors.statement_selector import StatementSelector
    from ohada_kernel.services.period_service import PeriodService

    config = get_active_config(args.config)
    init_engine_from_url(config.database.url, echo=config.database.echo)

    with session_scope() as session:
        try:
            period = PeriodService(session).get_period(args.period)
        except PeriodNotFoundError as exc:
            print(f"  ERROR: {exc}", file=sys.stderr)
            return 1

        statements = StatementSelector(session)
        tb = LedgerSelector(session).trial_balance(period_id=period.id)
        income = statements.income_statement(period_id=period.id)
        sheet = statements.balance_sheet(period_id=period.id)
        vat = statements.vat_declaration(period_id=period.id)

    print_trial_balance(tb, period.code)
    print_income_statement(income, period.code)
    print_balance_sheet(sheet, period.code)
    print_vat_declaration(vat, period.code)

    print("=" * W)
    print("  VERIFICATION".center(W))
    print("=" * W)
    print(_status("Balance generale equilibree", tb.is_balanced))
    print(_status("Bilan equilibre (actif = passif)", sheet.is_balanced))
    print(_status(
        "Resultat = produits - charges",
        income.net_result == income.total_revenues - income.total_expenses,
    ))
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
