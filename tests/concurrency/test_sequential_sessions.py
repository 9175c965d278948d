"""
Interleaved sessions on a shared file database.

Two independent sessions work on the same rows one after the other, each
committing before the other proceeds, so the test runs on SQLite without
lock waits.  What is exercised is the detection of stale state:

- A write based on an outdated version is rejected by the version counter
- A validation that lost the race sees the committed status
- Entry numbers stay consecutive across sessions
- Idempotent posting and lettrage hold across sessions
- A version conflict during validation surfaces as OptimisticLockError
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ohada_config.bridges import to_account_seeds
from ohada_kernel.db.engine import build_engine, create_tables
from ohada_kernel.db.immutability import register_immutability_listeners
from ohada_kernel.domain.clock import DeterministicClock
from ohada_kernel.domain.dtos import ManualLineSpec, PaymentDocument, SaleInvoiceDocument
from ohada_kernel.exceptions import (
    AlreadyPostedError,
    AlreadyReconciledError,
    AlreadyValidatedError,
    OptimisticLockError,
)
from ohada_kernel.models.journal import JournalEntry
from ohada_kernel.services.chart_of_accounts_service import ChartOfAccountsService
from ohada_kernel.services.ledger_service import LedgerService
from ohada_kernel.services.period_service import PeriodService
from ohada_kernel.services.reconciliation_service import ReconciliationService

ACTOR = "concurrency-actor"
CLOCK_TIME = datetime(2026, 3, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory(tmp_path, ledger_config):
    """A seeded file database and a factory for independent sessions."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(engine)
    register_immutability_listeners()
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    with factory() as setup:
        ChartOfAccountsService(setup).seed_chart(to_account_seeds(ledger_config), ACTOR)
        PeriodService(setup, DeterministicClock(CLOCK_TIME)).create_period(
            "EX2026", "Exercice 2026", date(2026, 1, 1), date(2026, 12, 31), ACTOR
        )
        setup.commit()

    yield factory
    engine.dispose()


@pytest.fixture
def make_ledger(posting_rules):
    def _make(session) -> LedgerService:
        return LedgerService(session, posting_rules, DeterministicClock(CLOCK_TIME))

    return _make


def _draft(ledger: LedgerService, label: str = "Achat fournitures"):
    return ledger.post_manual_entry(
        "OD",
        date(2026, 3, 3),
        label,
        [
            ManualLineSpec("605000", debit=Decimal("15000")),
            ManualLineSpec("571000", credit=Decimal("15000")),
        ],
        ACTOR,
    )


def _invoice(amount: Decimal) -> SaleInvoiceDocument:
    return SaleInvoiceDocument(
        document_id=str(uuid4()),
        reference="FAC-2026-0100",
        invoice_date=date(2026, 3, 10),
        counterparty="Societe Dakar Distribution",
        amount_excl_tax=amount,
        tax_amount=Decimal("0"),
        amount_incl_tax=amount,
    )


class TestStaleState:
    def test_stale_write_rejected_by_version(self, session_factory, make_ledger):
        with session_factory() as setup:
            draft = _draft(make_ledger(setup))
            setup.commit()

        first = session_factory()
        second = session_factory()
        try:
            stale = first.get(JournalEntry, draft.id)
            first.commit()

            fresh = second.get(JournalEntry, draft.id)
            fresh.label = "Achat fournitures corrige"
            second.commit()

            stale.label = "Achat fournitures obsolete"
            with pytest.raises(StaleDataError):
                first.flush()
            first.rollback()
        finally:
            first.close()
            second.close()

        with session_factory() as check:
            assert check.get(JournalEntry, draft.id).label == "Achat fournitures corrige"

    def test_losing_validation_sees_committed_status(self, session_factory, make_ledger):
        with session_factory() as setup:
            draft = _draft(make_ledger(setup))
            setup.commit()

        first = session_factory()
        second = session_factory()
        try:
            # The second session has seen the draft before the first validates
            assert second.get(JournalEntry, draft.id).is_draft
            second.commit()

            make_ledger(first).validate(draft.id, ACTOR)
            first.commit()

            with pytest.raises(AlreadyValidatedError):
                make_ledger(second).validate(draft.id, "other-actor")
            second.rollback()
        finally:
            first.close()
            second.close()

        with session_factory() as check:
            assert check.get(JournalEntry, draft.id).validated_by_id == ACTOR


class TestNumberingAcrossSessions:
    def test_consecutive_numbers(self, session_factory, make_ledger):
        with session_factory() as setup:
            ledger = make_ledger(setup)
            d1 = _draft(ledger, "Premiere saisie")
            d2 = _draft(ledger, "Seconde saisie")
            setup.commit()

        with session_factory() as first:
            n1 = make_ledger(first).validate(d1.id, ACTOR).entry_number
            first.commit()
        with session_factory() as second:
            n2 = make_ledger(second).validate(d2.id, ACTOR).entry_number
            second.commit()

        assert (n1, n2) == ("OD2026-00001", "OD2026-00002")

    def test_rolled_back_validation_leaves_no_gap(self, session_factory, make_ledger):
        with session_factory() as setup:
            ledger = make_ledger(setup)
            d1 = _draft(ledger, "Premiere saisie")
            d2 = _draft(ledger, "Seconde saisie")
            setup.commit()

        with session_factory() as abandoned:
            make_ledger(abandoned).validate(d1.id, ACTOR)
            abandoned.rollback()

        with session_factory() as second:
            assert make_ledger(second).validate(d2.id, ACTOR).entry_number == "OD2026-00001"
            second.commit()


class TestIdempotencyAcrossSessions:
    def test_duplicate_posting(self, session_factory, make_ledger):
        doc = _invoice(Decimal("50000"))

        with session_factory() as first:
            make_ledger(first).post_sale_invoice(doc, ACTOR)
            first.commit()

        with session_factory() as second:
            with pytest.raises(AlreadyPostedError):
                make_ledger(second).post_sale_invoice(doc, ACTOR)

    def test_double_reconciliation(self, session_factory, make_ledger):
        with session_factory() as setup:
            ledger = make_ledger(setup)
            invoice = ledger.post_sale_invoice(_invoice(Decimal("50000")), ACTOR)
            payment = ledger.post_client_payment(
                PaymentDocument(
                    document_id=str(uuid4()),
                    reference="PAY-0100",
                    payment_date=date(2026, 3, 12),
                    counterparty="Societe Dakar Distribution",
                    amount=Decimal("50000"),
                    method="transfer",
                ),
                ACTOR,
            )
            setup.commit()

        line_ids = [
            next(l.id for l in entry.lines if l.account_code == "411000")
            for entry in (invoice, payment)
        ]
        clock = DeterministicClock(CLOCK_TIME)

        with session_factory() as first:
            code = ReconciliationService(first, clock).reconcile("411000", line_ids, ACTOR)
            first.commit()

        with session_factory() as second:
            with pytest.raises(AlreadyReconciledError) as exc_info:
                ReconciliationService(second, clock).reconcile("411000", line_ids, ACTOR)
            assert exc_info.value.reconciliation_code == code.reconciliation_code


class TestVersionConflict:
    """
    A second session writes the entry between the locked read and the flush
    of a validation.  Only backends without row locks (SQLite) let that
    happen; the version counter turns it into OptimisticLockError.
    """

    def test_validation_loses_to_concurrent_edit(
        self, session, ledger, ledger_ready, test_actor_id
    ):
        draft = _draft(ledger)
        rival = Session(bind=session.connection(), join_transaction_mode="rollback_only")

        def _edit_elsewhere(flushing_session, flush_context, instances):
            rival.get(JournalEntry, draft.id).label = "Achat fournitures modifie"
            rival.flush()

        event.listen(session, "before_flush", _edit_elsewhere, once=True)
        try:
            with pytest.raises(OptimisticLockError) as exc_info:
                ledger.validate(draft.id, test_actor_id)
            assert exc_info.value.entity_type == "JournalEntry"
            assert exc_info.value.entity_id == str(draft.id)

            rival.expire_all()
            kept = rival.get(JournalEntry, draft.id)
            assert kept.is_draft
            assert kept.entry_number is None
        finally:
            rival.close()
