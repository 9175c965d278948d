"""
Lettrage: matching debit and credit lines of one account.

Covers:
- Full match of an invoice against its payment (shared code and stamp)
- Partial payments matched together with their invoice
- Open items before and after matching
- Refusals: already matched, unbalanced, wrong account, draft lines,
  empty or malformed selections
"""

import re
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ohada_kernel.domain.dtos import ManualLineSpec
from ohada_kernel.exceptions import (
    AccountNotFoundError,
    AlreadyReconciledError,
    LineNotFoundError,
    UnbalancedMatchError,
    ValidationFailedError,
)

CODE_PATTERN = re.compile(r"^LET-[0-9A-Z]+-[0-9A-F]{6}$")


def _line_on(entry, account_code):
    return next(line for line in entry.lines if line.account_code == account_code)


@pytest.fixture
def invoice_and_payment(ledger, ledger_ready, make_sale_invoice, make_payment, test_actor_id):
    invoice = ledger.post_sale_invoice(
        make_sale_invoice(amount_excl_tax=Decimal("50000"), tax_amount=Decimal("0")),
        test_actor_id,
    )
    payment = ledger.post_client_payment(make_payment(amount=Decimal("50000")), test_actor_id)
    return _line_on(invoice, "411000"), _line_on(payment, "411000")


class TestReconcile:
    def test_full_match(self, reconciliation_service, invoice_and_payment, clock, test_actor_id):
        invoice_line, payment_line = invoice_and_payment

        result = reconciliation_service.reconcile(
            "411000", [invoice_line.id, payment_line.id], test_actor_id
        )

        assert CODE_PATTERN.match(result.reconciliation_code)
        assert result.account_code == "411000"
        assert result.amount == Decimal("50000")
        assert result.reconciled_at == clock.now()
        assert set(result.line_ids) == {invoice_line.id, payment_line.id}

        matched = reconciliation_service.lines_for_code(result.reconciliation_code)
        assert {line.id for line in matched} == {invoice_line.id, payment_line.id}
        assert all(line.is_reconciled for line in matched)

    def test_open_items(self, reconciliation_service, invoice_and_payment, test_actor_id):
        invoice_line, payment_line = invoice_and_payment
        before = reconciliation_service.unreconciled_lines("411000")
        assert [line.id for line in before] == [invoice_line.id, payment_line.id]

        reconciliation_service.reconcile(
            "411000", [str(invoice_line.id), str(payment_line.id)], test_actor_id
        )
        assert reconciliation_service.unreconciled_lines("411000") == []

    def test_partial_payments(
        self, reconciliation_service, ledger, ledger_ready, make_sale_invoice, make_payment,
        test_actor_id,
    ):
        invoice = ledger.post_sale_invoice(make_sale_invoice(), test_actor_id)
        first = ledger.post_client_payment(
            make_payment(amount=Decimal("68000"), reference="PAY-0001"), test_actor_id
        )
        second = ledger.post_client_payment(
            make_payment(amount=Decimal("50000"), reference="PAY-0002"), test_actor_id
        )
        line_ids = [_line_on(e, "411000").id for e in (invoice, first, second)]

        result = reconciliation_service.reconcile("411000", line_ids, test_actor_id)

        assert result.amount == Decimal("118000")
        assert len(reconciliation_service.lines_for_code(result.reconciliation_code)) == 3

    def test_duplicate_ids_collapse(self, reconciliation_service, invoice_and_payment, test_actor_id):
        invoice_line, payment_line = invoice_and_payment
        result = reconciliation_service.reconcile(
            "411000", [invoice_line.id, payment_line.id, invoice_line.id], test_actor_id
        )
        assert len(result.line_ids) == 2

    def test_match_logged(
        self, reconciliation_service, invoice_and_payment, captured_logs, test_actor_id
    ):
        invoice_line, payment_line = invoice_and_payment
        result = reconciliation_service.reconcile(
            "411000", [invoice_line.id, payment_line.id], test_actor_id
        )
        records = [r for r in captured_logs() if r["message"] == "reconciliation_applied"]
        assert records[0]["reconciliation_code"] == result.reconciliation_code
        assert records[0]["account_code"] == "411000"


class TestReconcileRefusals:
    def test_already_reconciled(self, reconciliation_service, invoice_and_payment, test_actor_id):
        invoice_line, payment_line = invoice_and_payment
        result = reconciliation_service.reconcile(
            "411000", [invoice_line.id, payment_line.id], test_actor_id
        )
        with pytest.raises(AlreadyReconciledError) as exc_info:
            reconciliation_service.reconcile(
                "411000", [invoice_line.id, payment_line.id], test_actor_id
            )
        assert exc_info.value.reconciliation_code == result.reconciliation_code

    def test_unbalanced_selection(
        self, reconciliation_service, ledger, ledger_ready, make_sale_invoice, make_payment,
        test_actor_id,
    ):
        invoice = ledger.post_sale_invoice(make_sale_invoice(), test_actor_id)
        payment = ledger.post_client_payment(make_payment(amount=Decimal("50000")), test_actor_id)

        with pytest.raises(UnbalancedMatchError) as exc_info:
            reconciliation_service.reconcile(
                "411000",
                [_line_on(invoice, "411000").id, _line_on(payment, "411000").id],
                test_actor_id,
            )
        assert exc_info.value.debits == Decimal("118000")
        assert exc_info.value.credits == Decimal("50000")
        assert len(reconciliation_service.unreconciled_lines("411000")) == 2

    def test_line_on_another_account(
        self, reconciliation_service, ledger, ledger_ready, make_sale_invoice, test_actor_id
    ):
        invoice = ledger.post_sale_invoice(make_sale_invoice(), test_actor_id)
        with pytest.raises(LineNotFoundError) as exc_info:
            reconciliation_service.reconcile(
                "411000",
                [_line_on(invoice, "411000").id, _line_on(invoice, "701000").id],
                test_actor_id,
            )
        assert exc_info.value.line_ids == [str(_line_on(invoice, "701000").id)]

    def test_draft_lines_cannot_be_matched(
        self, reconciliation_service, ledger, ledger_ready, test_actor_id
    ):
        draft = ledger.post_manual_entry(
            "OD",
            date(2026, 3, 2),
            "Brouillon client",
            [
                ManualLineSpec("411000", debit=Decimal("1000")),
                ManualLineSpec("411000", credit=Decimal("1000")),
            ],
            test_actor_id,
        )
        with pytest.raises(LineNotFoundError):
            reconciliation_service.reconcile(
                "411000", [line.id for line in draft.lines], test_actor_id
            )

    def test_unknown_line(self, reconciliation_service, invoice_and_payment, test_actor_id):
        invoice_line, _ = invoice_and_payment
        with pytest.raises(LineNotFoundError):
            reconciliation_service.reconcile("411000", [invoice_line.id, uuid4()], test_actor_id)

    def test_unknown_account(self, reconciliation_service, ledger_ready, test_actor_id):
        with pytest.raises(AccountNotFoundError):
            reconciliation_service.reconcile("419999", [uuid4()], test_actor_id)

    def test_empty_selection(self, reconciliation_service, ledger_ready, test_actor_id):
        with pytest.raises(ValidationFailedError) as exc_info:
            reconciliation_service.reconcile("411000", [], test_actor_id)
        assert exc_info.value.field == "line_ids"

    def test_malformed_line_id(self, reconciliation_service, ledger_ready, test_actor_id):
        with pytest.raises(ValidationFailedError):
            reconciliation_service.reconcile("411000", ["not-a-uuid"], test_actor_id)
