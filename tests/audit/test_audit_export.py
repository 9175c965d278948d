"""
Audit export (FEC) of a fiscal period.

Covers:
- Fixed header and column order
- Row ordering by journal, date, number and line
- Field formatting: YYYYMMDD dates, comma decimal amounts, currency
- Reconciliation columns, drafts excluded, unknown period
- File writer output
"""

import io
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from ohada_kernel.domain.dtos import ManualLineSpec
from ohada_kernel.exceptions import PeriodNotFoundError
from ohada_kernel.selectors.audit_export import (
    format_audit_amount,
    format_audit_date,
    write_audit_file,
)

EXPECTED_HEADER = (
    "JournalCode|JournalLib|EcritureNum|EcritureDate|CompteNum|CompteLib|"
    "CompAuxNum|CompAuxLib|PieceRef|PieceDate|EcritureLib|Debit|Credit|"
    "EcritureLet|DateLet|ValidDate|Montantdevise|Idevise"
)


@pytest.fixture
def invoiced_and_paid(ledger, ledger_ready, make_sale_invoice, make_payment, test_actor_id):
    invoice = ledger.post_sale_invoice(make_sale_invoice(), test_actor_id)
    payment = ledger.post_client_payment(make_payment(), test_actor_id)
    return invoice, payment


class TestAuditExportRows:
    def test_rows_sorted_by_journal(self, audit_export_selector, invoiced_and_paid):
        rows = audit_export_selector.export("EX2026")

        assert [(r.journal_code, r.account_code) for r in rows] == [
            ("BQ", "521000"),
            ("BQ", "411000"),
            ("VE", "411000"),
            ("VE", "701000"),
            ("VE", "443100"),
        ]

    def test_row_fields(self, audit_export_selector, invoiced_and_paid):
        invoice, payment = invoiced_and_paid
        bank_debit = audit_export_selector.export("EX2026")[0]

        assert bank_debit.journal_label == "Journal de Banque"
        assert bank_debit.entry_number == payment.entry_number == "BQ2026-00001"
        assert bank_debit.entry_date == "20260312"
        assert bank_debit.document_date == "20260312"
        assert bank_debit.account_label == "Banque locale"
        assert bank_debit.document_reference == "PAY-0001"
        assert bank_debit.debit == "118000,00"
        assert bank_debit.credit == "0,00"
        assert bank_debit.validation_date == "20260315"
        assert bank_debit.reconciliation_code == ""
        assert bank_debit.reconciliation_date == ""
        assert bank_debit.auxiliary_account_code == ""
        assert bank_debit.foreign_amount == ""
        assert bank_debit.currency == "XOF"

    def test_record_keys_follow_column_order(self, audit_export_selector, invoiced_and_paid):
        record = audit_export_selector.export("EX2026")[0].as_record()
        assert "|".join(record) == EXPECTED_HEADER

    def test_reconciled_lines(
        self, audit_export_selector, reconciliation_service, invoiced_and_paid, test_actor_id
    ):
        invoice, payment = invoiced_and_paid
        line_ids = [
            next(l.id for l in entry.lines if l.account_code == "411000")
            for entry in (invoice, payment)
        ]
        code = reconciliation_service.reconcile(
            "411000", line_ids, test_actor_id
        ).reconciliation_code

        rows = audit_export_selector.export("EX2026")
        matched = [r for r in rows if r.reconciliation_code]
        assert len(matched) == 2
        assert {r.account_code for r in matched} == {"411000"}
        assert all(r.reconciliation_code == code for r in matched)
        assert all(r.reconciliation_date == "20260315" for r in matched)

    def test_drafts_excluded(self, audit_export_selector, ledger, invoiced_and_paid, test_actor_id):
        ledger.post_manual_entry(
            "OD",
            date(2026, 3, 20),
            "Brouillon",
            [
                ManualLineSpec("601000", debit=Decimal("100")),
                ManualLineSpec("571000", credit=Decimal("100")),
            ],
            test_actor_id,
        )
        rows = audit_export_selector.export("EX2026")
        assert len(rows) == 5
        assert "OD" not in {r.journal_code for r in rows}

    def test_empty_period(self, audit_export_selector, ledger_ready):
        assert audit_export_selector.export("EX2026") == []

    def test_unknown_period(self, audit_export_selector, ledger_ready):
        with pytest.raises(PeriodNotFoundError):
            audit_export_selector.export("EX1999")


class TestAuditFileWriter:
    def test_write_file(self, audit_export_selector, invoiced_and_paid):
        stream = io.StringIO()
        count = write_audit_file(audit_export_selector.export("EX2026"), stream)

        lines = stream.getvalue().splitlines()
        assert count == 5
        assert lines[0] == EXPECTED_HEADER
        assert len(lines) == 6
        assert lines[1].startswith("BQ|Journal de Banque|BQ2026-00001|20260312|521000|")
        assert lines[1].endswith("|118000,00|0,00|||20260315||XOF")
        assert all(line.count("|") == 17 for line in lines)

    def test_header_only(self):
        stream = io.StringIO()
        assert write_audit_file([], stream) == 0
        assert stream.getvalue() == EXPECTED_HEADER + "\n"


class TestFormatters:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("1234.5"), "1234,50"),
            (Decimal("0.005"), "0,01"),
            (Decimal("0"), "0,00"),
            (None, "0,00"),
            (Decimal("118000"), "118000,00"),
            (Decimal("1165432099.225000000"), "1165432099,23"),
        ],
    )
    def test_amounts(self, value, expected):
        assert format_audit_amount(value) == expected

    def test_dates(self):
        assert format_audit_date(date(2026, 1, 5)) == "20260105"
        assert format_audit_date(datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc)) == "20261231"
        assert format_audit_date(None) == ""
