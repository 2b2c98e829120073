"""
AccountRegistry - chart of accounts with derived balances.
"""

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from bizledger.application.dto.accounting_dto import (
    AccountCreateDTO,
    AccountDeletionDTO,
    AccountResponseDTO,
    AccountUpdateDTO,
    DeletionOutcome,
)
from bizledger.application.services.base import ApplicationService, enum_value
from bizledger.core.context import AuditAction
from bizledger.core.logging_config import get_logger
from bizledger.domain.exceptions import ConflictError, ValidationError
from bizledger.domain.services import AccountBalanceService
from bizledger.domain.value_objects import ZERO, AccountType
from bizledger.infrastructure.database.models import Account
from bizledger.infrastructure.database.repositories import AccountRepository

logger = get_logger("accounts")


class AccountRegistry(ApplicationService):

    balances = AccountBalanceService()

    @property
    def repo(self) -> AccountRepository:
        return AccountRepository(self.session, self.organization_id)

    def create(self, dto: AccountCreateDTO) -> AccountResponseDTO:
        with self.uow.atomic():
            if self.repo.get_by_code(dto.code) is not None:
                raise ConflictError(f"Account code '{dto.code}' already exists")
            account = self.repo.add(
                Account(
                    organization_id=self.organization_id,
                    code=dto.code,
                    name=dto.name,
                    account_type=dto.account_type.value,
                    description=dto.description,
                    is_active=dto.is_active,
                    currency=dto.currency or self.settings.default_currency,
                    created_by=self.user_id,
                    updated_by=self.user_id,
                )
            )
            self.record(AuditAction.CREATE, "Account", account.id, dto.model_dump(mode="json"))
        logger.info("account_created", extra={"account_id": str(account.id), "code": account.code})
        return self._to_dto(account, ZERO)

    def update(
        self, account_id: UUID, dto: AccountUpdateDTO, expected_version: int | None = None
    ) -> AccountResponseDTO:
        changes = {
            key: enum_value(val)
            for key, val in dto.model_dump(exclude_unset=True).items()
            if val is not None or key == "description"
        }
        with self.uow.atomic():
            repo = self.repo
            account = repo.require(account_id)
            if "code" in changes and changes["code"] != account.code:
                if repo.get_by_code(changes["code"]) is not None:
                    raise ConflictError(f"Account code '{changes['code']}' already exists")
            if (
                "account_type" in changes
                and changes["account_type"] != account.account_type
                and repo.is_referenced(account.id)
            ):
                raise ConflictError(
                    "Cannot change the type of an account referenced by transactions or documents"
                )
            repo.claim(account, expected_version)
            for key, val in changes.items():
                setattr(account, key, val)
            account.updated_by = self.user_id
            self.session.flush()
            self.record(AuditAction.UPDATE, "Account", account.id, changes)
        logger.info("account_updated", extra={"account_id": str(account.id), "fields": sorted(changes)})
        return self._to_dto(account, self.get_balance(account.id))

    def delete(self, account_id: UUID) -> AccountDeletionDTO:
        """
        Archive an account referenced by transaction lines or document items,
        hard-delete it otherwise. Deleting an already archived or absent account is a no-op.
        """
        with self.uow.atomic():
            repo = self.repo
            account = repo.get(account_id)
            if account is None:
                outcome = DeletionOutcome.UNCHANGED
            elif repo.is_referenced(account.id):
                if not account.is_active:
                    outcome = DeletionOutcome.UNCHANGED
                else:
                    repo.claim(account)
                    account.is_active = False
                    account.updated_by = self.user_id
                    self.session.flush()
                    self.record(AuditAction.ARCHIVE, "Account", account.id)
                    outcome = DeletionOutcome.ARCHIVED
            else:
                repo.delete(account)
                self.record(AuditAction.DELETE, "Account", account_id)
                outcome = DeletionOutcome.DELETED
        logger.info("account_deleted", extra={"account_id": str(account_id), "outcome": outcome.value})
        return AccountDeletionDTO(account_id=account_id, outcome=outcome)

    def get(self, account_id: UUID) -> AccountResponseDTO:
        account = self.repo.require(account_id)
        return self._to_dto(account, self._balance_of(account))

    def list(
        self,
        account_type: AccountType | None = None,
        include_inactive: bool = True,
        search: str | None = None,
    ) -> list[AccountResponseDTO]:
        repo = self.repo
        accounts = repo.list(enum_value(account_type), include_inactive, search)
        totals = repo.posted_totals([a.id for a in accounts]) if accounts else {}
        return [
            self._to_dto(account, self._signed(account, totals.get(account.id)))
            for account in accounts
        ]

    def get_balance(self, account_id: UUID) -> Decimal:
        """Derived from posted transaction lines only."""
        return self._balance_of(self.repo.require(account_id))

    def require_usable(self, account_ids: Iterable[UUID]) -> dict[UUID, Account]:
        """Every id must be a known, active account of this organization."""
        wanted = set(account_ids)
        found = self.repo.get_many(list(wanted))
        missing = wanted - found.keys()
        if missing:
            raise ValidationError(
                f"Unknown account(s): {', '.join(sorted(str(m) for m in missing))}"
            )
        inactive = [a.code for a in found.values() if not a.is_active]
        if inactive:
            raise ValidationError(f"Inactive account(s): {', '.join(sorted(inactive))}")
        return found

    def _balance_of(self, account: Account) -> Decimal:
        totals = self.repo.posted_totals([account.id])
        return self._signed(account, totals.get(account.id))

    def _signed(self, account: Account, totals: tuple[Decimal, Decimal] | None) -> Decimal:
        debit, credit = totals or (ZERO, ZERO)
        return self.balances.signed_balance(AccountType(account.account_type), debit, credit)

    @staticmethod
    def _to_dto(account: Account, balance: Decimal) -> AccountResponseDTO:
        dto = AccountResponseDTO.model_validate(account)
        return dto.model_copy(update={"balance": balance})
