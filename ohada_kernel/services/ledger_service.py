"""
LedgerService -- posting construction, drafts and validation.

Responsibility:
    Builds balanced journal entries from business events (sale invoices,
    credit notes, purchase invoices, client and supplier payments), manages
    the manual draft path, and performs the DRAFT -> VALIDATED transition.

Architecture position:
    Kernel > Services -- imperative shell.
    Entry point for PostingHooks and for the surrounding system.  Writing is
    delegated to JournalWriter; account roles and payment routing come from
    an injected PostingRules object.

Invariants enforced:
    - Every validated entry balances (sum of debits == sum of credits).
    - Every line carries exactly one positive side.
    - Automatic postings are idempotent per source document.
    - Validation is single-writer per entry: the row is locked with
      ``SELECT ... FOR UPDATE`` and the mapper's version counter catches
      any remaining stale write.
    - Drafts are the only editable or deletable entries.

Failure modes:
    - ValidationFailedError: bad amounts, TTC != HT + TVA, malformed lines.
    - AlreadyPostedError: document already has an entry.
    - AlreadyValidatedError: validate() on a validated entry.
    - UnbalancedEntryError: validate() on an unbalanced draft.
    - EntryNotDraftError: update/delete of a validated entry.
    - EntryNotFoundError: unknown or deleted entry id.
    - OptimisticLockError: concurrent modification detected at flush.

Audit relevance:
    entry_posted, draft_created, draft_updated, draft_deleted and
    entry_validated are logged with the entry id and actor.
"""

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ohada_kernel.db.types import to_money
from ohada_kernel.domain.clock import Clock, SystemClock
from ohada_kernel.domain.dtos import (
    JournalEntryInfo,
    ManualLineSpec,
    PaymentDocument,
    PurchaseInvoiceDocument,
    SaleInvoiceDocument,
)
from ohada_kernel.domain.posting_rules import AccountRole, PostingRules
from ohada_kernel.exceptions import (
    AlreadyValidatedError,
    EntryNotDraftError,
    EntryNotFoundError,
    OptimisticLockError,
    UnbalancedEntryError,
    ValidationFailedError,
)
from ohada_kernel.logging_config import LogContext, get_logger
from ohada_kernel.models.journal import JournalCode, JournalEntry, SourceType
from ohada_kernel.services.chart_of_accounts_service import ChartOfAccountsService
from ohada_kernel.services.journal_writer import (
    JournalWriter,
    PlannedLine,
    check_line_amounts,
)
from ohada_kernel.services.period_service import PeriodService

logger = get_logger("services.ledger")

ZERO = Decimal("0")


class LedgerService:
    """
    Posting service.

    Contract:
        Every public method returns a frozen ``JournalEntryInfo`` (or None
        for deletions).  The caller owns the transaction.

    Non-goals:
        - Does NOT reverse entries (ReversalService).
        - Does NOT match lines (ReconciliationService).
    """

    def __init__(
        self,
        session: Session,
        rules: PostingRules | None = None,
        clock: Clock | None = None,
    ):
        self.session = session
        self._rules = rules or PostingRules()
        self._clock = clock or SystemClock()
        self._accounts = ChartOfAccountsService(session)
        self._periods = PeriodService(session, self._clock)
        self._writer = JournalWriter(
            session, self._clock, accounts=self._accounts, periods=self._periods
        )

    @property
    def rules(self) -> PostingRules:
        return self._rules

    # ------------------------------------------------------------------
    # Automatic postings (created validated)
    # ------------------------------------------------------------------

    def post_sale_invoice(self, doc: SaleInvoiceDocument, actor_id: str) -> JournalEntryInfo:
        """
        Post a sale invoice (or credit note) to the sales journal.

        Invoice:      D 411 TTC / C 701 HT / C 4431 TVA
        Credit note:  every side swapped.
        The VAT line is omitted when the tax amount is zero.
        """
        ht, tva, ttc = self._check_invoice_amounts(
            doc.amount_excl_tax, doc.tax_amount, doc.amount_incl_tax
        )
        receivable = self._rules.account_for(AccountRole.RECEIVABLE)
        revenue = self._rules.account_for(AccountRole.REVENUE)
        vat_output = self._rules.account_for(AccountRole.VAT_OUTPUT)
        tiers, ref = doc.counterparty, doc.reference

        if doc.is_credit_note:
            lines = [
                PlannedLine(receivable, f"{tiers} - Avoir {ref}", credit=ttc),
                PlannedLine(revenue, "Ventes de marchandises - Avoir", debit=ht),
            ]
            if tva > ZERO:
                lines.append(PlannedLine(vat_output, "TVA facturee - Avoir", debit=tva))
            label = f"Avoir {ref} - {tiers}"
            source_type = SourceType.CREDIT_NOTE
        else:
            lines = [
                PlannedLine(receivable, f"{tiers} - Facture {ref}", debit=ttc),
                PlannedLine(revenue, "Ventes de marchandises", credit=ht),
            ]
            if tva > ZERO:
                lines.append(PlannedLine(vat_output, "TVA facturee sur ventes", credit=tva))
            label = f"Facture {ref} - {tiers}"
            source_type = SourceType.SALE_INVOICE

        return self._post_validated(
            journal=JournalCode.SALES,
            entry_date=doc.invoice_date,
            label=label,
            lines=lines,
            actor_id=actor_id,
            source_type=source_type,
            source_id=doc.document_id,
            reference=ref,
            supporting_document=doc.supporting_document,
        )

    def post_purchase_invoice(
        self, doc: PurchaseInvoiceDocument, actor_id: str
    ) -> JournalEntryInfo:
        """Supplier invoice: D 601 HT / D 4452 TVA / C 401 TTC, journal AC."""
        ht, tva, ttc = self._check_invoice_amounts(
            doc.amount_excl_tax, doc.tax_amount, doc.amount_incl_tax
        )
        purchases = self._rules.account_for(AccountRole.PURCHASES)
        vat_input = self._rules.account_for(AccountRole.VAT_INPUT)
        payable = self._rules.account_for(AccountRole.PAYABLE)
        tiers, ref = doc.counterparty, doc.reference

        lines = [PlannedLine(purchases, "Achats de marchandises", debit=ht)]
        if tva > ZERO:
            lines.append(PlannedLine(vat_input, "TVA recuperable sur achats", debit=tva))
        lines.append(PlannedLine(payable, f"{tiers} - Facture {ref}", credit=ttc))

        return self._post_validated(
            journal=JournalCode.PURCHASES,
            entry_date=doc.invoice_date,
            label=f"Facture fournisseur {ref} - {tiers}",
            lines=lines,
            actor_id=actor_id,
            source_type=SourceType.PURCHASE_INVOICE,
            source_id=doc.document_id,
            reference=ref,
            supporting_document=doc.supporting_document,
        )

    def post_client_payment(self, doc: PaymentDocument, actor_id: str) -> JournalEntryInfo:
        """Client payment: D settlement / C 411, journal from the payment method."""
        amount = self._check_payment_amount(doc.amount)
        journal, settlement = self._settlement_for(doc.method)
        receivable = self._rules.account_for(AccountRole.RECEIVABLE)
        tiers, ref = doc.counterparty, doc.reference

        return self._post_validated(
            journal=journal,
            entry_date=doc.payment_date,
            label=f"Encaissement {ref} - {tiers}",
            lines=[
                PlannedLine(settlement, f"Encaissement {ref} - {tiers}", debit=amount),
                PlannedLine(receivable, f"{tiers} - Reglement {ref}", credit=amount),
            ],
            actor_id=actor_id,
            source_type=SourceType.CLIENT_PAYMENT,
            source_id=doc.document_id,
            reference=ref,
            supporting_document=doc.supporting_document,
        )

    def post_supplier_payment(self, doc: PaymentDocument, actor_id: str) -> JournalEntryInfo:
        """Supplier payment: D 401 / C settlement."""
        amount = self._check_payment_amount(doc.amount)
        journal, settlement = self._settlement_for(doc.method)
        payable = self._rules.account_for(AccountRole.PAYABLE)
        tiers, ref = doc.counterparty, doc.reference

        return self._post_validated(
            journal=journal,
            entry_date=doc.payment_date,
            label=f"Reglement fournisseur {ref} - {tiers}",
            lines=[
                PlannedLine(payable, f"{tiers} - Reglement {ref}", debit=amount),
                PlannedLine(settlement, f"Decaissement {ref} - {tiers}", credit=amount),
            ],
            actor_id=actor_id,
            source_type=SourceType.SUPPLIER_PAYMENT,
            source_id=doc.document_id,
            reference=ref,
            supporting_document=doc.supporting_document,
        )

    def _post_validated(self, **kwargs) -> JournalEntryInfo:
        with LogContext.bind(actor_id=kwargs["actor_id"], source_id=kwargs["source_id"]):
            entry = self._writer.write(validated=True, **kwargs)
            logger.info(
                "entry_posted",
                extra={
                    "entry_id": str(entry.id),
                    "entry_number": entry.entry_number,
                    "journal": entry.journal_value,
                    "source_type": entry.source_type_value,
                    "total_debit": str(entry.total_debit),
                },
            )
        return JournalEntryInfo.from_model(entry)

    def _settlement_for(self, method) -> tuple[str, str]:
        try:
            route = self._rules.route_for(method)
        except KeyError as exc:
            raise ValidationFailedError(str(exc.args[0]), field="method") from None
        return route.journal, self._rules.account_for(route.role)

    @staticmethod
    def _check_invoice_amounts(ht, tva, ttc) -> tuple[Decimal, Decimal, Decimal]:
        try:
            ht, tva, ttc = to_money(ht), to_money(tva), to_money(ttc)
        except ValueError as exc:
            raise ValidationFailedError(str(exc), field="amount") from None
        if ht < ZERO or tva < ZERO or ttc < ZERO:
            raise ValidationFailedError("Invoice amounts cannot be negative", field="amount")
        if ttc != ht + tva:
            raise ValidationFailedError(
                f"Tax-inclusive total {ttc} != {ht} + {tva}", field="amount_incl_tax"
            )
        if ttc == ZERO:
            raise ValidationFailedError("Invoice total is zero", field="amount_incl_tax")
        return ht, tva, ttc

    @staticmethod
    def _check_payment_amount(amount) -> Decimal:
        try:
            amount = to_money(amount)
        except ValueError as exc:
            raise ValidationFailedError(str(exc), field="amount") from None
        if amount <= ZERO:
            raise ValidationFailedError("Payment amount must be positive", field="amount")
        return amount

    # ------------------------------------------------------------------
    # Manual drafts
    # ------------------------------------------------------------------

    def post_manual_entry(
        self,
        journal: JournalCode | str,
        entry_date: date,
        label: str,
        lines: Sequence[ManualLineSpec],
        actor_id: str,
        reference: str | None = None,
        supporting_document: str | None = None,
    ) -> JournalEntryInfo:
        """
        Store caller-supplied lines as a draft.

        The draft may be unbalanced; validate() enforces balance.

        Raises:
            ValidationFailedError: Unknown journal, empty label, fewer than
                two lines, or a line without exactly one positive side.
        """
        journal = self._check_journal(journal)
        planned = self._plan_manual_lines(label, lines)

        entry = self._writer.write(
            journal=journal,
            entry_date=entry_date,
            label=label.strip(),
            lines=planned,
            actor_id=actor_id,
            source_type=SourceType.MANUAL,
            reference=reference,
            supporting_document=supporting_document,
            validated=False,
        )
        logger.info(
            "draft_created",
            extra={
                "entry_id": str(entry.id),
                "journal": journal.value,
                "line_count": len(planned),
                "actor_id": actor_id,
            },
        )
        return JournalEntryInfo.from_model(entry)

    def update_draft(
        self,
        entry_id: UUID | str,
        actor_id: str,
        *,
        label: str | None = None,
        entry_date: date | None = None,
        reference: str | None = None,
        supporting_document: str | None = None,
        lines: Sequence[ManualLineSpec] | None = None,
    ) -> JournalEntryInfo:
        """
        Edit a draft.  Replacing ``lines`` replaces all of them.

        Raises:
            EntryNotDraftError: The entry is validated.
        """
        entry = self._get_entry_for_update(entry_id)
        if not entry.is_draft:
            raise EntryNotDraftError(str(entry.id), "update")

        if label is not None:
            if not label.strip():
                raise ValidationFailedError("Entry label is required", field="label")
            entry.label = label.strip()
        if entry_date is not None and entry_date != entry.entry_date:
            entry.period_id = self._periods.resolve_for_date(entry_date).id
            entry.entry_date = entry_date
        if reference is not None:
            entry.reference = reference
        if supporting_document is not None:
            entry.supporting_document = supporting_document
        if lines is not None:
            planned = self._plan_manual_lines(entry.label, lines)
            resolved = self._accounts.resolve_many([p.account_code for p in planned])
            entry.lines = self._writer.build_lines(planned, resolved, actor_id)
            entry.refresh_totals()

        entry.updated_by_id = actor_id
        self._flush(entry)

        logger.info(
            "draft_updated",
            extra={"entry_id": str(entry.id), "actor_id": actor_id},
        )
        return JournalEntryInfo.from_model(entry)

    def delete_draft(self, entry_id: UUID | str, actor_id: str) -> None:
        """
        Soft-delete a draft.

        Raises:
            EntryNotDraftError: The entry is validated.
        """
        entry = self._get_entry_for_update(entry_id)
        if not entry.is_draft:
            raise EntryNotDraftError(str(entry.id), "delete")

        entry.is_active = False
        entry.deleted_at = self._clock.now()
        entry.deleted_by_id = actor_id
        entry.updated_by_id = actor_id
        self._flush(entry)

        logger.info(
            "draft_deleted",
            extra={"entry_id": str(entry.id), "actor_id": actor_id},
        )

    def _check_journal(self, journal) -> JournalCode:
        try:
            return JournalCode(journal)
        except ValueError:
            raise ValidationFailedError(
                f"Unknown journal {journal!r}", field="journal"
            ) from None

    def _plan_manual_lines(self, label: str, lines: Sequence[ManualLineSpec]) -> list[PlannedLine]:
        if not label or not label.strip():
            raise ValidationFailedError("Entry label is required", field="label")
        if len(lines) < 2:
            raise ValidationFailedError("An entry needs at least two lines", field="lines")
        planned = []
        for position, spec in enumerate(lines, start=1):
            debit, credit = check_line_amounts(spec.debit, spec.credit, position)
            planned.append(
                PlannedLine(
                    account_code=spec.account_code,
                    label=spec.label or label.strip(),
                    debit=debit,
                    credit=credit,
                )
            )
        return planned

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, entry_id: UUID | str, actor_id: str) -> JournalEntryInfo:
        """
        Validate a draft.

        Preconditions:
            - The entry is a draft with at least two lines.
            - Its period is still open.

        Postconditions:
            - status is VALIDATED with sequence/entry number and stamps.
            - The balance cache includes the entry's lines.

        Raises:
            AlreadyValidatedError: Not a draft.
            UnbalancedEntryError: Debits != credits (status unchanged).
            ClosedPeriodError: The entry's period was closed meanwhile.
            OptimisticLockError: Concurrent modification.
        """
        with LogContext.bind(actor_id=actor_id, entry_id=str(entry_id)):
            entry = self._get_entry_for_update(entry_id)
            if not entry.is_draft:
                raise AlreadyValidatedError(str(entry.id))

            debits, credits = entry.lines_total_debit, entry.lines_total_credit
            if len(entry.lines) < 2:
                raise ValidationFailedError(
                    "An entry needs at least two lines", field="lines"
                )
            if debits != credits:
                logger.warning(
                    "validation_rejected_unbalanced",
                    extra={"debits": str(debits), "credits": str(credits)},
                )
                raise UnbalancedEntryError(debits, credits)
            if debits == ZERO:
                raise ValidationFailedError("Entry total is zero", field="lines")

            self._periods.ensure_open(entry.period_id, entry.entry_date)

            try:
                self._writer.finalize(entry, actor_id)
            except StaleDataError:
                raise OptimisticLockError("JournalEntry", str(entry.id)) from None

            logger.info(
                "entry_validated",
                extra={
                    "entry_number": entry.entry_number,
                    "journal": entry.journal_value,
                    "total_debit": str(entry.total_debit),
                },
            )
        return JournalEntryInfo.from_model(entry)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: UUID | str) -> JournalEntryInfo:
        """
        Raises:
            EntryNotFoundError: Unknown or deleted entry.
        """
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.id == entry_id,
                JournalEntry.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return JournalEntryInfo.from_model(entry)

    def find_by_source(self, source_type: SourceType, source_id: str) -> JournalEntryInfo | None:
        entry = self._writer.find_by_source(source_type, source_id)
        return JournalEntryInfo.from_model(entry) if entry else None

    def _get_entry_for_update(self, entry_id) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id, JournalEntry.is_active.is_(True))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def _flush(self, entry: JournalEntry) -> None:
        try:
            self.session.flush()
        except StaleDataError:
            raise OptimisticLockError("JournalEntry", str(entry.id)) from None
