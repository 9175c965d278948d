"""
PostingHooks -- entry points called when ERP documents are finalized.

Responsibility:
    Turns business events (invoice validated, payment validated, payment
    cancelled) into ledger postings through LedgerService and
    ReversalService.

Architecture position:
    Kernel > Services -- imperative shell, outermost posting layer.

Failure policy:
    ``PostingRules.abort_on_failure`` (default True) decides what happens
    when a posting fails:

    - True:  the kernel error propagates and the caller's transaction
             (including the triggering business operation) rolls back.
    - False: the failure is logged at ERROR, the hook's savepoint is rolled
             back so no partial entry remains, and None is returned so the
             business operation can complete.  The ledger then misses that
             document until it is posted again.

Audit relevance:
    posting_hook_failed is logged with the event, document id and error code.
"""

from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from ohada_kernel.domain.clock import Clock, SystemClock
from ohada_kernel.domain.dtos import (
    JournalEntryInfo,
    PaymentDocument,
    PurchaseInvoiceDocument,
    SaleInvoiceDocument,
)
from ohada_kernel.domain.posting_rules import PostingRules
from ohada_kernel.exceptions import EntryNotFoundError, LedgerKernelError
from ohada_kernel.logging_config import LogContext, get_logger
from ohada_kernel.models.journal import SourceType
from ohada_kernel.services.ledger_service import LedgerService
from ohada_kernel.services.reversal_service import ReversalResult, ReversalService

logger = get_logger("services.posting_hooks")

T = TypeVar("T")


class PostingHooks:
    """Business-event adapter around the posting services."""

    def __init__(
        self,
        session: Session,
        rules: PostingRules | None = None,
        clock: Clock | None = None,
    ):
        self.session = session
        self._rules = rules or PostingRules()
        self._clock = clock or SystemClock()
        self._ledger = LedgerService(session, self._rules, self._clock)
        self._reversals = ReversalService(session, self._clock)

    def on_invoice_validated(
        self, doc: SaleInvoiceDocument, actor_id: str
    ) -> JournalEntryInfo | None:
        """Sale invoice or credit note finalized."""
        return self._run(
            "invoice_validated",
            doc.document_id,
            lambda: self._ledger.post_sale_invoice(doc, actor_id),
        )

    def on_purchase_invoice_validated(
        self, doc: PurchaseInvoiceDocument, actor_id: str
    ) -> JournalEntryInfo | None:
        return self._run(
            "purchase_invoice_validated",
            doc.document_id,
            lambda: self._ledger.post_purchase_invoice(doc, actor_id),
        )

    def on_payment_validated(
        self, doc: PaymentDocument, actor_id: str, supplier: bool = False
    ) -> JournalEntryInfo | None:
        """Client payment received, or supplier payment made with ``supplier=True``."""
        post = self._ledger.post_supplier_payment if supplier else self._ledger.post_client_payment
        return self._run(
            "payment_validated",
            doc.document_id,
            lambda: post(doc, actor_id),
        )

    def on_payment_cancelled(
        self, document_id: str, actor_id: str, supplier: bool = False
    ) -> ReversalResult | None:
        """
        Reverse the entry of a cancelled payment.

        Raises (strict mode):
            EntryNotFoundError: The payment was never posted.
            AlreadyPostedError: Its entry was already reversed.
        """
        source_type = SourceType.SUPPLIER_PAYMENT if supplier else SourceType.CLIENT_PAYMENT

        def cancel() -> ReversalResult:
            entry = self._ledger.find_by_source(source_type, document_id)
            if entry is None:
                raise EntryNotFoundError(f"{source_type.value}:{document_id}")
            return self._reversals.reverse(entry.id, actor_id)

        return self._run("payment_cancelled", document_id, cancel)

    def _run(self, event_name: str, document_id: str, action: Callable[[], T]) -> T | None:
        with LogContext.bind(source_id=document_id):
            if self._rules.abort_on_failure:
                return action()

            # Any exception rolls the savepoint back; only kernel errors are absorbed
            try:
                with self.session.begin_nested():
                    result = action()
            except LedgerKernelError as exc:
                logger.error(
                    "posting_hook_failed",
                    extra={
                        "event": event_name,
                        "document_id": document_id,
                        "error_code": exc.code,
                        "error": str(exc),
                    },
                )
                return None
            return result
