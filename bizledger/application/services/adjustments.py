"""
BalanceAdjustmentService - correct an account's derived balance by posting a
two-line transaction against the organization's adjustment equity account.
"""

from datetime import date
from uuid import UUID

from bizledger.application.dto.accounting_dto import (
    AccountCreateDTO,
    BalanceAdjustmentRequestDTO,
    BalanceAdjustmentResultDTO,
    TransactionCreateDTO,
    TransactionLineCreateDTO,
)
from bizledger.application.services.accounts import AccountRegistry
from bizledger.application.services.base import ApplicationService
from bizledger.application.services.ledger import LedgerEngine
from bizledger.core.config import Settings
from bizledger.core.context import AuditAction, ServiceContext
from bizledger.core.logging_config import get_logger
from bizledger.domain.exceptions import ValidationError
from bizledger.domain.services import AccountBalanceService
from bizledger.domain.value_objects import ZERO, AccountType, TransactionStatus, to_money
from bizledger.infrastructure.database.models import Account
from bizledger.infrastructure.database.unit_of_work import UnitOfWork

logger = get_logger("adjustments")


class BalanceAdjustmentService(ApplicationService):

    def __init__(
        self,
        uow: UnitOfWork,
        context: ServiceContext,
        settings: Settings | None = None,
        ledger: LedgerEngine | None = None,
    ):
        super().__init__(uow, context, settings)
        self.ledger = ledger or LedgerEngine(uow, context, self.settings)
        self.accounts: AccountRegistry = self.ledger.accounts

    def adjust_balance(self, account_id: UUID, dto: BalanceAdjustmentRequestDTO) -> BalanceAdjustmentResultDTO:
        """
        Positive amounts raise the balance under the account's sign
        convention, negative amounts lower it.
        """
        amount = to_money(dto.amount)
        if amount == ZERO:
            raise ValidationError("Adjustment amount cannot be zero")

        with self.uow.atomic():
            target = self.accounts.repo.require(account_id)
            if not target.is_active:
                raise ValidationError(f"Account {target.code} is inactive")
            if target.code == self.settings.adjustment_account_code:
                raise ValidationError("The adjustment account cannot adjust itself")

            counter = self._adjustment_account()
            debit, credit = AccountBalanceService().adjustment_sides(
                AccountType(target.account_type), amount
            )
            txn = self.ledger.create_transaction(
                TransactionCreateDTO(
                    transaction_date=dto.adjustment_date or date.today(),
                    description=dto.description,
                    reference_number=f"ADJ-{target.code}",
                    status=TransactionStatus.POSTED,
                    currency=target.currency,
                    idempotency_key=dto.idempotency_key,
                    lines=[
                        TransactionLineCreateDTO(
                            account_id=target.id, debit_amount=debit, credit_amount=credit,
                            description=dto.description,
                        ),
                        TransactionLineCreateDTO(
                            account_id=counter.id, debit_amount=credit, credit_amount=debit,
                            description=dto.description,
                        ),
                    ],
                )
            )
            self.record(AuditAction.ADJUST, "Account", target.id, {
                "amount": str(amount),
                "transaction_id": str(txn.id),
            })
            account = self.accounts.get(target.id)
        logger.info(
            "balance_adjusted",
            extra={"account_id": str(target.id), "amount": str(amount), "transaction_id": str(txn.id)},
        )
        return BalanceAdjustmentResultDTO(account=account, transaction=txn)

    def _adjustment_account(self) -> Account:
        code = self.settings.adjustment_account_code
        account = self.accounts.repo.get_by_code(code)
        if account is None:
            created = self.accounts.create(
                AccountCreateDTO(
                    code=code,
                    name=self.settings.adjustment_account_name,
                    account_type=AccountType.EQUITY,
                    description="System account for balance adjustments",
                )
            )
            account = self.accounts.repo.require(created.id)
        elif not account.is_active:
            raise ValidationError(f"Adjustment account {code} is inactive")
        return account
