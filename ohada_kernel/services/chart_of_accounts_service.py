"""
ChartOfAccountsService -- account directory, hierarchy and balance cache.

Responsibility:
    Maintains the SYSCOHADA chart of accounts: creation with code/class
    validation, parent hierarchy with cycle detection, soft deletion, the
    default-chart seed, resolution of posting targets, and the cumulative
    debit/credit cache derived from validated lines.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerService and ReversalService to resolve posting targets
    and to apply movements once an entry is validated.

Invariants enforced:
    - Codes are 1 to 10 digits; the first digit is the class (1-8).
    - Only imputable, active accounts resolve as posting targets.
    - Parent links never form a cycle (direct or indirect).
    - System accounts are never deleted nor renumbered; accounts referenced
      by any entry line are never deleted.
    - The balance cache only grows by appending validated movements and can
      be rebuilt from the journal at any time.

Failure modes:
    - ValidationFailedError: malformed code, class mismatch, duplicate code.
    - AccountNotFoundError / AccountNotPostableError: on resolve.
    - AccountHierarchyCycleError: on create/set_parent.
    - SystemAccountError / AccountReferencedError: on delete or renumber.

Audit relevance:
    account_created, account_parent_changed, account_deleted and
    balances_rebuilt are logged with the account code and actor.
"""

import re
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from ohada_kernel.domain.dtos import AccountInfo, AccountSeed
from ohada_kernel.exceptions import (
    AccountHierarchyCycleError,
    AccountNotFoundError,
    AccountNotPostableError,
    AccountReferencedError,
    SystemAccountError,
    ValidationFailedError,
)
from ohada_kernel.logging_config import get_logger
from ohada_kernel.models.account import (
    ACCOUNT_CLASSES,
    Account,
    NormalBalance,
    default_normal_balance,
)
from ohada_kernel.models.journal import EntryLine, EntryStatus, JournalEntry
from ohada_kernel.services.base import BaseService

logger = get_logger("services.chart_of_accounts")

ACCOUNT_CODE_PATTERN = re.compile(r"^\d{1,10}$")


class ChartOfAccountsService(BaseService[Account]):
    """
    Service for the chart of accounts.

    Contract:
        Public methods return frozen ``AccountInfo`` DTOs.  Writes flush
        within the caller's transaction.

    Non-goals:
        - Does NOT post entries; it only resolves targets and maintains the
          balance cache on behalf of LedgerService.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Creation and maintenance
    # ------------------------------------------------------------------

    def create_account(
        self,
        code: str,
        label: str,
        actor_id: str,
        *,
        account_class: int | None = None,
        normal_balance: NormalBalance | str | None = None,
        parent_code: str | None = None,
        is_imputable: bool = True,
        is_collective: bool = False,
        is_system: bool = False,
        description: str | None = None,
    ) -> AccountInfo:
        """
        Create an account.

        When ``parent_code`` is omitted the parent is the existing account
        with the longest code that is a strict prefix of ``code``.

        Raises:
            ValidationFailedError: Malformed or duplicate code, class mismatch.
            AccountNotFoundError: Explicit parent does not exist.
        """
        derived_class = self._validate_code(code, account_class)
        if not label or not label.strip():
            raise ValidationFailedError("Account label is required", field="label")

        if self._get_orm(code, include_inactive=True) is not None:
            raise ValidationFailedError(f"Account {code} already exists", field="code")

        if parent_code is not None:
            parent = self._get_orm(parent_code)
            if parent is None:
                raise AccountNotFoundError(parent_code)
        else:
            parent = self._derive_parent(code)

        account = Account(
            code=code,
            label=label.strip(),
            account_class=derived_class,
            normal_balance=self._normal_balance(normal_balance, derived_class),
            parent_id=parent.id if parent else None,
            is_imputable=is_imputable,
            is_collective=is_collective,
            is_system=is_system,
            is_active=True,
            total_debit=Decimal("0"),
            total_credit=Decimal("0"),
            description=description,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "account_code": code,
                "parent_code": parent.code if parent else None,
                "is_imputable": is_imputable,
                "actor_id": actor_id,
            },
        )
        return AccountInfo.from_model(account)

    def _validate_code(self, code: str, account_class: int | None) -> int:
        if not isinstance(code, str) or not ACCOUNT_CODE_PATTERN.match(code):
            raise ValidationFailedError(
                f"Account code must be 1 to 10 digits, got {code!r}", field="code"
            )
        derived = int(code[0])
        if derived not in ACCOUNT_CLASSES:
            raise ValidationFailedError(
                f"Account class must be between 1 and 8, got {derived}",
                field="code",
            )
        if account_class is not None and account_class != derived:
            raise ValidationFailedError(
                f"Account {code} belongs to class {derived}, not {account_class}",
                field="account_class",
            )
        return derived

    @staticmethod
    def _normal_balance(value, account_class: int) -> NormalBalance:
        if value is None:
            return default_normal_balance(account_class)
        try:
            return NormalBalance(value)
        except ValueError:
            raise ValidationFailedError(
                f"normal_balance must be 'debit' or 'credit', got {value!r}",
                field="normal_balance",
            ) from None

    def _derive_parent(self, code: str) -> Account | None:
        prefixes = [code[:length] for length in range(len(code) - 1, 0, -1)]
        if not prefixes:
            return None
        candidates = {
            account.code: account
            for account in self.session.execute(
                select(Account).where(
                    Account.code.in_(prefixes),
                    Account.is_active.is_(True),
                )
            ).scalars()
        }
        for prefix in prefixes:
            if prefix in candidates:
                return candidates[prefix]
        return None

    def set_parent(self, code: str, parent_code: str | None, actor_id: str) -> AccountInfo:
        """
        Attach ``code`` under ``parent_code`` (or detach it with None).

        Raises:
            AccountNotFoundError: Either account is unknown.
            AccountHierarchyCycleError: The link would create a cycle.
        """
        account = self._require(code)
        parent = None
        if parent_code is not None:
            parent = self._require(parent_code)
            self._check_no_cycle(account, parent)

        account.parent_id = parent.id if parent else None
        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_parent_changed",
            extra={"account_code": code, "parent_code": parent_code, "actor_id": actor_id},
        )
        return AccountInfo.from_model(account)

    def _check_no_cycle(self, account: Account, parent: Account) -> None:
        """Walk up from ``parent``; reaching ``account`` means a cycle."""
        seen = set()
        node: Account | None = parent
        while node is not None:
            if node.id == account.id:
                raise AccountHierarchyCycleError(account.code, parent.code)
            if node.id in seen:
                # Pre-existing loop above us; refuse to extend it
                raise AccountHierarchyCycleError(account.code, parent.code)
            seen.add(node.id)
            node = self.session.get(Account, node.parent_id) if node.parent_id else None

    def update_account(
        self,
        code: str,
        actor_id: str,
        *,
        label: str | None = None,
        description: str | None = None,
        is_imputable: bool | None = None,
        is_collective: bool | None = None,
        new_code: str | None = None,
    ) -> AccountInfo:
        """
        Update descriptive fields of an account.

        Renumbering is refused for system accounts and for accounts already
        referenced by entry lines (lines snapshot the code).

        Raises:
            SystemAccountError: Renumbering a system account.
            AccountReferencedError: Renumbering a referenced account.
            ValidationFailedError: Invalid new code or label.
        """
        account = self._require(code)

        if new_code is not None and new_code != account.code:
            if account.is_system:
                raise SystemAccountError(code, "renumber")
            if self._is_referenced(account):
                raise AccountReferencedError(code)
            self._validate_code(new_code, account.account_class)
            if self._get_orm(new_code, include_inactive=True) is not None:
                raise ValidationFailedError(
                    f"Account {new_code} already exists", field="code"
                )
            account.code = new_code

        if label is not None:
            if not label.strip():
                raise ValidationFailedError("Account label is required", field="label")
            account.label = label.strip()
        if description is not None:
            account.description = description
        if is_imputable is not None:
            account.is_imputable = is_imputable
        if is_collective is not None:
            account.is_collective = is_collective

        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_updated",
            extra={"account_code": account.code, "actor_id": actor_id},
        )
        return AccountInfo.from_model(account)

    def delete_account(self, code: str, actor_id: str) -> None:
        """
        Soft-delete an account.

        Raises:
            AccountNotFoundError: Unknown code.
            SystemAccountError: The account is a system account.
            AccountReferencedError: The account carries entry lines.
        """
        account = self._require(code)
        if account.is_system:
            raise SystemAccountError(code, "delete")
        if self._is_referenced(account):
            raise AccountReferencedError(code)

        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_deleted",
            extra={"account_code": code, "actor_id": actor_id},
        )

    def seed_chart(self, accounts: Iterable[AccountSeed], actor_id: str) -> int:
        """
        Load a chart of accounts.  Idempotent: existing codes are skipped.

        Accounts are inserted shortest code first so headings exist before
        the accounts that hang under them.

        Returns:
            Number of accounts created.
        """
        existing = set(self.session.execute(select(Account.code)).scalars())
        created = 0
        for seed in sorted(accounts, key=lambda s: (len(s.code), s.code)):
            if seed.code in existing:
                continue
            self.create_account(
                seed.code,
                seed.label,
                actor_id,
                normal_balance=seed.normal_balance,
                is_imputable=seed.is_imputable,
                is_collective=seed.is_collective,
                is_system=seed.is_system,
                description=seed.description,
            )
            existing.add(seed.code)
            created += 1

        logger.info(
            "chart_seeded",
            extra={"accounts_created": created, "actor_id": actor_id},
        )
        return created

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, code: str) -> AccountInfo:
        """
        Resolve a posting target.

        Raises:
            AccountNotFoundError: Unknown or deleted code.
            AccountNotPostableError: Collective (non-imputable) account.
        """
        account = self._get_orm(code)
        if account is None:
            raise AccountNotFoundError(code)
        if not account.is_imputable:
            raise AccountNotPostableError(code)
        return AccountInfo.from_model(account)

    def resolve_many(self, codes: Sequence[str]) -> dict[str, AccountInfo]:
        """
        Resolve every code or fail on the first bad one.

        Nothing is written either way; builders call this before creating
        any row so a bad account leaves no partial entry behind.
        """
        return {code: self.resolve(code) for code in dict.fromkeys(codes)}

    def get_account(self, code: str) -> AccountInfo:
        """Account by code, postable or not."""
        return AccountInfo.from_model(self._require(code))

    def children(self, code: str) -> list[AccountInfo]:
        parent = self._require(code)
        rows = self.session.execute(
            select(Account)
            .where(Account.parent_id == parent.id, Account.is_active.is_(True))
            .order_by(Account.code)
        ).scalars()
        return [AccountInfo.from_model(a) for a in rows]

    def list_accounts(
        self,
        account_class: int | None = None,
        imputable: bool | None = None,
        include_inactive: bool = False,
    ) -> list[AccountInfo]:
        stmt = select(Account).order_by(Account.code)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        if account_class is not None:
            stmt = stmt.where(Account.account_class == account_class)
        if imputable is not None:
            stmt = stmt.where(Account.is_imputable.is_(imputable))
        return [AccountInfo.from_model(a) for a in self.session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Balance cache
    # ------------------------------------------------------------------

    def apply_movements(self, lines: Iterable[EntryLine]) -> None:
        """
        Add the lines' debits and credits to their accounts' cache.

        The account rows are locked (``SELECT ... FOR UPDATE``) and re-read
        before the increment, so concurrent validations on the same account
        never lose an update.
        """
        movements: dict = defaultdict(lambda: [Decimal("0"), Decimal("0")])
        for line in lines:
            movements[line.account_id][0] += line.debit
            movements[line.account_id][1] += line.credit
        if not movements:
            return

        accounts = self.session.execute(
            select(Account)
            .where(Account.id.in_(list(movements)))
            .order_by(Account.code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        for account in accounts:
            debit, credit = movements[account.id]
            account.total_debit += debit
            account.total_credit += credit
        self.session.flush()

    def rebuild_balances(self) -> int:
        """
        Recompute every account's cache from validated, active entries.

        Returns:
            Number of accounts whose cache changed.
        """
        totals: dict = defaultdict(lambda: [Decimal("0"), Decimal("0")])
        rows = self.session.execute(
            select(EntryLine.account_id, EntryLine.debit, EntryLine.credit)
            .join(JournalEntry, EntryLine.entry_id == JournalEntry.id)
            .where(
                JournalEntry.status == EntryStatus.VALIDATED,
                JournalEntry.is_active.is_(True),
            )
        )
        for account_id, debit, credit in rows:
            totals[account_id][0] += debit
            totals[account_id][1] += credit

        changed = 0
        for account in self.session.execute(select(Account)).scalars():
            debit, credit = totals.get(account.id, (Decimal("0"), Decimal("0")))
            if account.total_debit != debit or account.total_credit != credit:
                account.total_debit = debit
                account.total_credit = credit
                changed += 1
        self.session.flush()

        logger.info("balances_rebuilt", extra={"accounts_changed": changed})
        return changed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_orm(self, code: str, include_inactive: bool = False) -> Account | None:
        stmt = select(Account).where(Account.code == code)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        return self.session.execute(stmt).scalar_one_or_none()

    def _require(self, code: str) -> Account:
        account = self._get_orm(code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def _is_referenced(self, account: Account) -> bool:
        return self.session.execute(
            select(exists().where(EntryLine.account_id == account.id))
        ).scalar()
