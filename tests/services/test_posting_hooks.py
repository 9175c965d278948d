"""
Business-event hooks and their failure policy.

Covers:
- Each hook posts the matching entry
- Strict mode propagates kernel errors
- Lenient mode logs, leaves no partial entry and returns None
- Lenient mode lets non-kernel errors through with the savepoint closed
- Payment cancellation reverses the payment entry
"""

import dataclasses
from types import MappingProxyType
from uuid import uuid4

import pytest

from ohada_kernel.domain.posting_rules import SYSCOHADA_ROLE_ACCOUNTS
from ohada_kernel.exceptions import AlreadyPostedError, EntryNotFoundError
from ohada_kernel.services.posting_hooks import PostingHooks


@pytest.fixture
def lenient_hooks(session, posting_rules, clock):
    return PostingHooks(session, dataclasses.replace(posting_rules, abort_on_failure=False), clock)


@pytest.fixture
def lenient_hooks_missing_vat_account(session, posting_rules, clock):
    rules = dataclasses.replace(
        posting_rules,
        abort_on_failure=False,
        role_accounts=MappingProxyType({**SYSCOHADA_ROLE_ACCOUNTS, "vat_output": "443999"}),
    )
    return PostingHooks(session, rules, clock)


class TestStrictHooks:
    def test_invoice_validated(self, posting_hooks, ledger_ready, make_sale_invoice, test_actor_id):
        entry = posting_hooks.on_invoice_validated(make_sale_invoice(), test_actor_id)
        assert entry.journal == "VE"
        assert entry.is_validated

    def test_purchase_invoice_validated(
        self, posting_hooks, ledger_ready, make_purchase_invoice, test_actor_id
    ):
        entry = posting_hooks.on_purchase_invoice_validated(make_purchase_invoice(), test_actor_id)
        assert entry.journal == "AC"

    def test_client_and_supplier_payments(
        self, posting_hooks, ledger_ready, make_payment, test_actor_id
    ):
        received = posting_hooks.on_payment_validated(make_payment(), test_actor_id)
        paid = posting_hooks.on_payment_validated(make_payment(), test_actor_id, supplier=True)

        assert received.source_type == "client_payment"
        assert paid.source_type == "supplier_payment"
        assert paid.lines[0].account_code == "401000"

    def test_duplicate_propagates(self, posting_hooks, ledger_ready, make_sale_invoice, test_actor_id):
        doc = make_sale_invoice()
        posting_hooks.on_invoice_validated(doc, test_actor_id)
        with pytest.raises(AlreadyPostedError):
            posting_hooks.on_invoice_validated(doc, test_actor_id)


class TestLenientHooks:
    def test_failure_returns_none_and_logs(
        self, lenient_hooks_missing_vat_account, ledger_ready, journal_selector,
        make_sale_invoice, captured_logs, test_actor_id,
    ):
        doc = make_sale_invoice()
        assert lenient_hooks_missing_vat_account.on_invoice_validated(doc, test_actor_id) is None

        failures = [r for r in captured_logs() if r["message"] == "posting_hook_failed"]
        assert len(failures) == 1
        assert failures[0]["level"] == "ERROR"
        assert failures[0]["error_code"] == "ACCOUNT_NOT_FOUND"
        assert failures[0]["event"] == "invoice_validated"
        assert failures[0]["document_id"] == doc.document_id
        assert journal_selector.count_entries() == 0

    def test_success_still_posts(self, lenient_hooks, ledger_ready, make_sale_invoice, test_actor_id):
        entry = lenient_hooks.on_invoice_validated(make_sale_invoice(), test_actor_id)
        assert entry is not None and entry.is_validated

    def test_duplicate_swallowed(
        self, lenient_hooks, ledger_ready, journal_selector, make_sale_invoice, test_actor_id
    ):
        doc = make_sale_invoice()
        lenient_hooks.on_invoice_validated(doc, test_actor_id)
        assert lenient_hooks.on_invoice_validated(doc, test_actor_id) is None
        assert journal_selector.count_entries() == 1


    def test_unexpected_error_propagates_and_closes_savepoint(
        self, session, posting_rules, clock, posting_hooks, ledger_ready, journal_selector,
        make_sale_invoice, test_actor_id,
    ):
        unbound = {k: v for k, v in SYSCOHADA_ROLE_ACCOUNTS.items() if k != "vat_output"}
        hooks = PostingHooks(
            session,
            dataclasses.replace(
                posting_rules, abort_on_failure=False, role_accounts=MappingProxyType(unbound)
            ),
            clock,
        )

        with pytest.raises(KeyError):
            hooks.on_invoice_validated(make_sale_invoice(), test_actor_id)

        assert not session.in_nested_transaction()
        assert journal_selector.count_entries() == 0
        assert posting_hooks.on_invoice_validated(make_sale_invoice(), test_actor_id).is_validated

class TestPaymentCancelled:
    def test_cancellation_reverses_payment(
        self, posting_hooks, ledger_ready, make_payment, test_actor_id
    ):
        doc = make_payment()
        payment = posting_hooks.on_payment_validated(doc, test_actor_id)

        result = posting_hooks.on_payment_cancelled(doc.document_id, test_actor_id)

        assert result.original.id == payment.id
        assert result.reversal.origin_entry_id == payment.id
        assert result.reversal.journal == payment.journal
        assert result.reversal.lines[0].credit == payment.lines[0].debit

    def test_supplier_cancellation(self, posting_hooks, ledger_ready, make_payment, test_actor_id):
        doc = make_payment()
        posting_hooks.on_payment_validated(doc, test_actor_id, supplier=True)
        result = posting_hooks.on_payment_cancelled(doc.document_id, test_actor_id, supplier=True)
        assert result.reversal.lines[0].account_code == "401000"

    def test_unknown_payment_strict(self, posting_hooks, ledger_ready, test_actor_id):
        with pytest.raises(EntryNotFoundError):
            posting_hooks.on_payment_cancelled(str(uuid4()), test_actor_id)

    def test_unknown_payment_lenient(self, lenient_hooks, ledger_ready, test_actor_id):
        assert lenient_hooks.on_payment_cancelled(str(uuid4()), test_actor_id) is None

    def test_cancel_twice(self, posting_hooks, ledger_ready, make_payment, test_actor_id):
        doc = make_payment()
        posting_hooks.on_payment_validated(doc, test_actor_id)
        posting_hooks.on_payment_cancelled(doc.document_id, test_actor_id)
        with pytest.raises(AlreadyPostedError):
            posting_hooks.on_payment_cancelled(doc.document_id, test_actor_id)
