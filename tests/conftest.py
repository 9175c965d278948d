"""
Pytest fixtures for the OHADA ledger test suite.

Provides:
- Database sessions isolated per test (outer transaction rolled back)
- The default SYSCOHADA chart, an open EX2026 period and a fixed clock
- Services and selectors wired on the test session
- Business document factories (sale/purchase invoices, payments)

Environment Variables:
- DATABASE_URL: SQLAlchemy URL of the test database.  Defaults to an
  in-memory SQLite database; set a postgresql:// URL to run the suite
  against PostgreSQL.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from ohada_config import DEFAULT_CONFIG_PATH, get_active_config
from ohada_config.bridges import to_account_seeds, to_posting_rules
from ohada_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from ohada_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ohada_kernel.domain.clock import DeterministicClock
from ohada_kernel.domain.dtos import (
    PaymentDocument,
    PaymentMethod,
    PurchaseInvoiceDocument,
    SaleInvoiceDocument,
)
from ohada_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ohada_kernel.selectors.audit_export import AuditExportSelector
from ohada_kernel.selectors.journal_selector import JournalSelector
from ohada_kernel.selectors.ledger_selector import LedgerSelector
from ohada_kernel.selectors.statement_selector import StatementSelector
from ohada_kernel.services.chart_of_accounts_service import ChartOfAccountsService
from ohada_kernel.services.ledger_service import LedgerService
from ohada_kernel.services.period_service import PeriodService
from ohada_kernel.services.posting_hooks import PostingHooks
from ohada_kernel.services.reconciliation_service import ReconciliationService
from ohada_kernel.services.reversal_service import ReversalService

# Actor for every test operation
TEST_ACTOR_ID = "test-actor"

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    """Database URL from the environment, or in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ohada_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.post_sale_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "entry_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ohada_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables once per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """
    Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection; any
    ``session.commit()`` only releases a savepoint, and the outer
    transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Configuration, clock and reference data
# =============================================================================


@pytest.fixture
def test_actor_id() -> str:
    return TEST_ACTOR_ID


@pytest.fixture
def clock() -> DeterministicClock:
    """Clock frozen on 2026-03-15 10:00 UTC."""
    return DeterministicClock(datetime(2026, 3, 15, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="session")
def ledger_config():
    """The packaged default configuration."""
    return get_active_config(DEFAULT_CONFIG_PATH)


@pytest.fixture(scope="session")
def posting_rules(ledger_config):
    return to_posting_rules(ledger_config)


@pytest.fixture
def chart_service(session) -> ChartOfAccountsService:
    return ChartOfAccountsService(session)


@pytest.fixture
def seeded_chart(chart_service, ledger_config) -> int:
    """Load the default SYSCOHADA chart.  Returns the number of accounts."""
    return chart_service.seed_chart(to_account_seeds(ledger_config), TEST_ACTOR_ID)


@pytest.fixture
def period_service(session, clock) -> PeriodService:
    return PeriodService(session, clock)


@pytest.fixture
def current_period(period_service):
    """Open fiscal year 2026, flagged current."""
    return period_service.create_period(
        code="EX2026",
        label="Exercice 2026",
        start_date=date(2026, 1, 1),
        end_date=date(2026, 12, 31),
        actor_id=TEST_ACTOR_ID,
    )


@pytest.fixture
def ledger_ready(seeded_chart, current_period):
    """Chart seeded and EX2026 open: everything a posting needs."""
    return current_period


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def ledger(session, posting_rules, clock) -> LedgerService:
    return LedgerService(session, posting_rules, clock)


@pytest.fixture
def reversal_service(session, clock) -> ReversalService:
    return ReversalService(session, clock)


@pytest.fixture
def reconciliation_service(session, clock) -> ReconciliationService:
    return ReconciliationService(session, clock)


@pytest.fixture
def posting_hooks(session, posting_rules, clock) -> PostingHooks:
    return PostingHooks(session, posting_rules, clock)


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def journal_selector(session) -> JournalSelector:
    return JournalSelector(session)


@pytest.fixture
def statement_selector(session) -> StatementSelector:
    return StatementSelector(session)


@pytest.fixture
def audit_export_selector(session, posting_rules) -> AuditExportSelector:
    return AuditExportSelector(
        session,
        journal_labels=posting_rules.journal_labels,
        currency=posting_rules.currency,
    )


# =============================================================================
# Business document factories
# =============================================================================


@pytest.fixture
def make_sale_invoice():
    """
    Build a SaleInvoiceDocument.  Defaults to 100000 + 18% VAT.

    Usage::

        doc = make_sale_invoice(amount_excl_tax=Decimal("50000"), tax_amount=Decimal("0"))
    """

    def _make(**overrides) -> SaleInvoiceDocument:
        ht = Decimal(overrides.pop("amount_excl_tax", Decimal("100000")))
        tva = Decimal(overrides.pop("tax_amount", Decimal("18000")))
        fields = {
            "document_id": str(uuid4()),
            "reference": "FAC-2026-0001",
            "invoice_date": date(2026, 3, 10),
            "counterparty": "Societe Dakar Distribution",
            "amount_excl_tax": ht,
            "tax_amount": tva,
            "amount_incl_tax": ht + tva,
        }
        fields.update(overrides)
        return SaleInvoiceDocument(**fields)

    return _make


@pytest.fixture
def make_purchase_invoice():
    def _make(**overrides) -> PurchaseInvoiceDocument:
        ht = Decimal(overrides.pop("amount_excl_tax", Decimal("40000")))
        tva = Decimal(overrides.pop("tax_amount", Decimal("7200")))
        fields = {
            "document_id": str(uuid4()),
            "reference": "FF-0042",
            "invoice_date": date(2026, 3, 5),
            "counterparty": "Grossiste Thies",
            "amount_excl_tax": ht,
            "tax_amount": tva,
            "amount_incl_tax": ht + tva,
        }
        fields.update(overrides)
        return PurchaseInvoiceDocument(**fields)

    return _make


@pytest.fixture
def make_payment():
    def _make(**overrides) -> PaymentDocument:
        fields = {
            "document_id": str(uuid4()),
            "reference": "PAY-0001",
            "payment_date": date(2026, 3, 12),
            "counterparty": "Societe Dakar Distribution",
            "amount": Decimal("118000"),
            "method": PaymentMethod.TRANSFER,
        }
        fields.update(overrides)
        return PaymentDocument(**fields)

    return _make
