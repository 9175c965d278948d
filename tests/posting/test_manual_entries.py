"""
Manual entries: draft path and the DRAFT -> VALIDATED transition.

Covers:
- Draft creation checks (journal, label, line count, line amounts)
- Unbalanced drafts are stored but never validated
- Validation stamps, numbering at validation time, cache application
- Draft edits and soft deletion; validated entries refuse both
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ohada_kernel.domain.dtos import ManualLineSpec
from ohada_kernel.exceptions import (
    AccountNotFoundError,
    AccountNotPostableError,
    AlreadyValidatedError,
    EntryNotDraftError,
    EntryNotFoundError,
    UnbalancedEntryError,
    ValidationFailedError,
)

PETTY_CASH_LINES = [
    ManualLineSpec("605000", debit=Decimal("15000"), label="Fournitures de bureau"),
    ManualLineSpec("571000", credit=Decimal("15000")),
]


@pytest.fixture
def draft(ledger, ledger_ready, test_actor_id):
    return ledger.post_manual_entry(
        "CA",
        date(2026, 3, 3),
        "Achat fournitures",
        PETTY_CASH_LINES,
        test_actor_id,
        reference="BC-17",
    )


class TestDraftCreation:
    def test_draft_has_no_number(self, draft):
        assert draft.status == "draft"
        assert draft.sequence_number is None
        assert draft.entry_number is None
        assert draft.validated_at is None
        assert draft.source_type == "manual"
        assert draft.total_debit == draft.total_credit == Decimal("15000")

    def test_line_label_defaults_to_entry_label(self, draft):
        assert draft.lines[0].label == "Fournitures de bureau"
        assert draft.lines[1].label == "Achat fournitures"

    def test_unbalanced_draft_is_stored(self, ledger, ledger_ready, test_actor_id):
        entry = ledger.post_manual_entry(
            "OD",
            date(2026, 3, 3),
            "Saisie en cours",
            [
                ManualLineSpec("601000", debit=Decimal("1000")),
                ManualLineSpec("571000", credit=Decimal("900")),
            ],
            test_actor_id,
        )
        assert not entry.is_balanced

    def test_unknown_journal(self, ledger, ledger_ready, test_actor_id):
        with pytest.raises(ValidationFailedError) as exc_info:
            ledger.post_manual_entry("XX", date(2026, 3, 3), "Test", PETTY_CASH_LINES, test_actor_id)
        assert exc_info.value.field == "journal"

    def test_label_required(self, ledger, ledger_ready, test_actor_id):
        with pytest.raises(ValidationFailedError):
            ledger.post_manual_entry("OD", date(2026, 3, 3), "", PETTY_CASH_LINES, test_actor_id)

    def test_two_lines_minimum(self, ledger, ledger_ready, test_actor_id):
        with pytest.raises(ValidationFailedError):
            ledger.post_manual_entry(
                "OD", date(2026, 3, 3), "Seule", PETTY_CASH_LINES[:1], test_actor_id
            )

    @pytest.mark.parametrize(
        "debit, credit",
        [
            (Decimal("100"), Decimal("100")),
            (Decimal("0"), Decimal("0")),
            (Decimal("-100"), Decimal("0")),
        ],
    )
    def test_line_needs_exactly_one_positive_side(
        self, ledger, ledger_ready, test_actor_id, debit, credit
    ):
        lines = [
            ManualLineSpec("601000", debit=debit, credit=credit),
            ManualLineSpec("571000", credit=Decimal("100")),
        ]
        with pytest.raises(ValidationFailedError) as exc_info:
            ledger.post_manual_entry("OD", date(2026, 3, 3), "Test", lines, test_actor_id)
        assert "Line 1" in str(exc_info.value)

    def test_unknown_account(self, ledger, ledger_ready, test_actor_id):
        lines = [
            ManualLineSpec("609999", debit=Decimal("100")),
            ManualLineSpec("571000", credit=Decimal("100")),
        ]
        with pytest.raises(AccountNotFoundError):
            ledger.post_manual_entry("OD", date(2026, 3, 3), "Test", lines, test_actor_id)

    def test_heading_account_refused(self, ledger, ledger_ready, test_actor_id):
        lines = [
            ManualLineSpec("60", debit=Decimal("100")),
            ManualLineSpec("571000", credit=Decimal("100")),
        ]
        with pytest.raises(AccountNotPostableError):
            ledger.post_manual_entry("OD", date(2026, 3, 3), "Test", lines, test_actor_id)


class TestValidation:
    def test_validate_draft(self, session, ledger, chart_service, draft, clock, test_actor_id):
        entry = ledger.validate(draft.id, "comptable-2")

        assert entry.is_validated
        assert entry.entry_number == "CA2026-00001"
        assert entry.sequence_number == 1
        assert entry.validated_by_id == "comptable-2"
        assert entry.validated_at == clock.now()
        assert entry.created_by_id == test_actor_id

        session.expire_all()
        assert chart_service.get_account("605000").total_debit == Decimal("15000")
        assert chart_service.get_account("571000").total_credit == Decimal("15000")

    def test_validate_reloaded_fractional_draft(self, session, ledger, ledger_ready, test_actor_id):
        draft = ledger.post_manual_entry(
            "OD",
            date(2026, 3, 3),
            "Achats groupes",
            [
                ManualLineSpec("601000", debit=Decimal("1165432099.22")),
                ManualLineSpec("401000", credit=Decimal("987654321.37")),
                ManualLineSpec("401000", credit=Decimal("177777777.85")),
            ],
            test_actor_id,
        )
        session.expire_all()

        entry = ledger.validate(draft.id, test_actor_id)

        assert entry.is_validated
        assert entry.total_debit == entry.total_credit == Decimal("1165432099.22")
        assert [line.debit for line in entry.lines] == [
            Decimal("1165432099.22"), Decimal("0"), Decimal("0")
        ]

    def test_validate_twice(self, ledger, draft, test_actor_id):
        ledger.validate(draft.id, test_actor_id)
        with pytest.raises(AlreadyValidatedError):
            ledger.validate(draft.id, test_actor_id)

    def test_unbalanced_draft_stays_draft(self, ledger, ledger_ready, test_actor_id):
        entry = ledger.post_manual_entry(
            "OD",
            date(2026, 3, 3),
            "Saisie desequilibree",
            [
                ManualLineSpec("601000", debit=Decimal("1000")),
                ManualLineSpec("571000", credit=Decimal("900")),
            ],
            test_actor_id,
        )
        with pytest.raises(UnbalancedEntryError) as exc_info:
            ledger.validate(entry.id, test_actor_id)

        assert exc_info.value.debits == Decimal("1000")
        assert exc_info.value.credits == Decimal("900")
        reloaded = ledger.get_entry(entry.id)
        assert reloaded.status == "draft"
        assert reloaded.entry_number is None

    def test_numbers_assigned_in_validation_order(self, ledger, ledger_ready, test_actor_id):
        older = ledger.post_manual_entry(
            "OD", date(2026, 2, 1), "Premiere saisie", PETTY_CASH_LINES, test_actor_id
        )
        newer = ledger.post_manual_entry(
            "OD", date(2026, 2, 2), "Seconde saisie", PETTY_CASH_LINES, test_actor_id
        )
        assert ledger.validate(newer.id, test_actor_id).entry_number == "OD2026-00001"
        assert ledger.validate(older.id, test_actor_id).entry_number == "OD2026-00002"

    def test_validate_unknown_entry(self, ledger, ledger_ready, test_actor_id):
        with pytest.raises(EntryNotFoundError):
            ledger.validate(uuid4(), test_actor_id)

    def test_validation_logged(self, ledger, draft, captured_logs, test_actor_id):
        ledger.validate(draft.id, test_actor_id)
        validated = [r for r in captured_logs() if r["message"] == "entry_validated"]
        assert len(validated) == 1
        assert validated[0]["entry_id"] == str(draft.id)
        assert validated[0]["entry_number"] == "CA2026-00001"


class TestDraftEditing:
    def test_update_lines_then_validate(self, ledger, ledger_ready, test_actor_id):
        entry = ledger.post_manual_entry(
            "OD",
            date(2026, 3, 3),
            "Saisie a corriger",
            [
                ManualLineSpec("601000", debit=Decimal("1000")),
                ManualLineSpec("571000", credit=Decimal("900")),
            ],
            test_actor_id,
        )
        updated = ledger.update_draft(
            entry.id,
            test_actor_id,
            label="Saisie corrigee",
            lines=[
                ManualLineSpec("601000", debit=Decimal("900")),
                ManualLineSpec("571000", credit=Decimal("900")),
            ],
        )
        assert updated.label == "Saisie corrigee"
        assert updated.total_debit == updated.total_credit == Decimal("900")
        assert [line.line_number for line in updated.lines] == [1, 2]

        assert ledger.validate(entry.id, test_actor_id).is_validated

    def test_update_reference(self, ledger, draft, test_actor_id):
        updated = ledger.update_draft(draft.id, test_actor_id, reference="BC-18")
        assert updated.reference == "BC-18"

    def test_validated_entry_cannot_be_updated(self, ledger, draft, test_actor_id):
        ledger.validate(draft.id, test_actor_id)
        with pytest.raises(EntryNotDraftError) as exc_info:
            ledger.update_draft(draft.id, test_actor_id, label="Trop tard")
        assert exc_info.value.operation == "update"

    def test_delete_draft(self, ledger, journal_selector, draft, test_actor_id):
        ledger.delete_draft(draft.id, test_actor_id)

        with pytest.raises(EntryNotFoundError):
            ledger.get_entry(draft.id)
        assert journal_selector.get_entry(draft.id) is None
        assert journal_selector.count_entries() == 0

    def test_validated_entry_cannot_be_deleted(self, ledger, draft, test_actor_id):
        ledger.validate(draft.id, test_actor_id)
        with pytest.raises(EntryNotDraftError) as exc_info:
            ledger.delete_draft(draft.id, test_actor_id)
        assert exc_info.value.operation == "delete"
