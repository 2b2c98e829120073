"""
LedgerEngine - balanced double-entry transactions and their lifecycle.

Transactions move draft -> posted -> voided (or draft -> voided). Posting is
guarded by the balance invariant: total debits equal total credits to the
cent. Lines are written together with their header in one unit of work, and
an optional idempotency key makes client retries safe.
"""

import hashlib
import json
from collections.abc import Sequence
from datetime import date
from uuid import UUID

from bizledger.application.dto.accounting_dto import (
    TransactionCreateDTO,
    TransactionLineCreateDTO,
    TransactionLineResponseDTO,
    TransactionLinesReplaceDTO,
    TransactionPageDTO,
    TransactionResponseDTO,
    TransactionUpdateDTO,
)
from bizledger.application.services.accounts import AccountRegistry
from bizledger.application.services.base import ApplicationService, enum_value
from bizledger.core.config import Settings
from bizledger.core.context import AuditAction, ServiceContext
from bizledger.core.logging_config import get_logger
from bizledger.domain.entities import JournalDraft, LedgerLine
from bizledger.domain.exceptions import ConflictError, ValidationError
from bizledger.domain.value_objects import TRANSACTION_STATUS, TransactionStatus
from bizledger.infrastructure.database.models import (
    LedgerTransaction,
    TransactionLine,
    utcnow,
)
from bizledger.infrastructure.database.repositories import TransactionRepository
from bizledger.infrastructure.database.unit_of_work import UnitOfWork

logger = get_logger("ledger")


def _draft_from(lines: Sequence[TransactionLineCreateDTO]) -> JournalDraft:
    return JournalDraft(
        lines=[
            LedgerLine(
                account_id=line.account_id,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
                description=line.description,
            )
            for line in lines
        ]
    )


def _fingerprint(dto: TransactionCreateDTO, draft: JournalDraft, currency: str) -> str:
    payload = {
        "transaction_date": dto.transaction_date.isoformat(),
        "description": dto.description,
        "reference_number": dto.reference_number,
        "status": dto.status.value,
        "currency": currency,
        "lines": [
            [str(line.account_id), str(line.debit_amount), str(line.credit_amount), line.description]
            for line in draft.lines
        ],
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()


class LedgerEngine(ApplicationService):

    def __init__(
        self,
        uow: UnitOfWork,
        context: ServiceContext,
        settings: Settings | None = None,
        accounts: AccountRegistry | None = None,
    ):
        super().__init__(uow, context, settings)
        self.accounts = accounts or AccountRegistry(uow, context, self.settings)

    @property
    def repo(self) -> TransactionRepository:
        return TransactionRepository(self.session, self.organization_id)

    def create_transaction(self, dto: TransactionCreateDTO) -> TransactionResponseDTO:
        if dto.status == TransactionStatus.VOIDED:
            raise ValidationError("A transaction cannot be created as voided")
        currency = dto.currency or self.settings.default_currency
        draft = _draft_from(dto.lines)
        fingerprint = _fingerprint(dto, draft, currency)

        with self.uow.atomic():
            repo = self.repo
            if dto.idempotency_key:
                existing = repo.get_by_idempotency_key(dto.idempotency_key)
                if existing is not None:
                    if existing.request_fingerprint != fingerprint:
                        raise ConflictError(
                            f"Idempotency key '{dto.idempotency_key}' was already used "
                            "with a different payload"
                        )
                    logger.info("transaction_replayed", extra={"transaction_id": str(existing.id)})
                    return self._to_dto(existing)

            self._validate(draft, require_balance=dto.status == TransactionStatus.POSTED)

            now = utcnow()
            txn = LedgerTransaction(
                organization_id=self.organization_id,
                transaction_date=dto.transaction_date,
                description=dto.description,
                reference_number=dto.reference_number,
                status=dto.status.value,
                currency=currency,
                idempotency_key=dto.idempotency_key,
                request_fingerprint=fingerprint,
                posted_at=now if dto.status == TransactionStatus.POSTED else None,
                created_by=self.user_id,
                updated_by=self.user_id,
            )
            txn.lines.extend(self._build_lines(draft))
            repo.add(txn)
            self.record(AuditAction.CREATE, "Transaction", txn.id, {
                "status": txn.status,
                "lines": len(txn.lines),
                "reference_number": txn.reference_number,
            })
        logger.info(
            "transaction_created",
            extra={"transaction_id": str(txn.id), "status": txn.status, "lines": len(txn.lines)},
        )
        return self._to_dto(txn)

    def get_transaction(self, transaction_id: UUID) -> TransactionResponseDTO:
        return self._to_dto(self.repo.require(transaction_id))

    def list_transactions(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        status: TransactionStatus | None = None,
        search: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> TransactionPageDTO:
        items, total = self.repo.list(start_date, end_date, enum_value(status), search, page, limit)
        return TransactionPageDTO(
            data=[self._to_dto(txn) for txn in items], total=total, page=page, limit=limit
        )

    def update_transaction(self, transaction_id: UUID, dto: TransactionUpdateDTO) -> TransactionResponseDTO:
        changes = {
            key: val
            for key, val in dto.model_dump(exclude_unset=True, exclude={"expected_version", "status"}).items()
            if val is not None or key == "reference_number"
        }
        with self.uow.atomic():
            txn = self.repo.require(transaction_id)
            if txn.status == TransactionStatus.VOIDED.value:
                raise ConflictError(f"Transaction {txn.id} is voided and cannot be modified")
            self.repo.claim(txn, dto.expected_version)
            for key, val in changes.items():
                setattr(txn, key, val)
            txn.updated_by = self.user_id
            if changes:
                self.record(AuditAction.UPDATE, "Transaction", txn.id, changes)
            target = dto.status
            if target is not None and target.value != txn.status:
                self._transition(txn, target)
            self.session.flush()
        return self._to_dto(txn)

    def replace_lines(self, transaction_id: UUID, dto: TransactionLinesReplaceDTO) -> TransactionResponseDTO:
        """
        Swap every line of a transaction in one write. Posted transactions
        keep their id and status but the new lines must balance.
        """
        draft = _draft_from(dto.lines)
        with self.uow.atomic():
            txn = self.repo.require(transaction_id)
            if txn.status == TransactionStatus.VOIDED.value:
                raise ConflictError(f"Transaction {txn.id} is voided and its lines are immutable")
            self._validate(draft, require_balance=txn.status == TransactionStatus.POSTED.value)
            self.repo.claim(txn, dto.expected_version)
            txn.lines.clear()
            self.session.flush()
            txn.lines.extend(self._build_lines(draft))
            txn.updated_by = self.user_id
            self.session.flush()
            self.record(AuditAction.UPDATE, "Transaction", txn.id, {"lines": len(txn.lines)})
        logger.info("transaction_lines_replaced", extra={"transaction_id": str(txn.id), "lines": len(txn.lines)})
        return self._to_dto(txn)

    def delete_transaction(self, transaction_id: UUID) -> None:
        with self.uow.atomic():
            repo = self.repo
            txn = repo.require(transaction_id)
            repo.delete(txn)
            self.record(AuditAction.DELETE, "Transaction", transaction_id, {"status": txn.status})
        logger.info("transaction_deleted", extra={"transaction_id": str(transaction_id)})

    def post_transaction(self, transaction_id: UUID, expected_version: int | None = None) -> TransactionResponseDTO:
        with self.uow.atomic():
            txn = self.repo.require(transaction_id)
            self.repo.claim(txn, expected_version)
            self._transition(txn, TransactionStatus.POSTED)
            self.session.flush()
        return self._to_dto(txn)

    def void_transaction(self, transaction_id: UUID, expected_version: int | None = None) -> TransactionResponseDTO:
        with self.uow.atomic():
            txn = self.repo.require(transaction_id)
            self.repo.claim(txn, expected_version)
            self._transition(txn, TransactionStatus.VOIDED)
            self.session.flush()
        return self._to_dto(txn)

    def _transition(self, txn: LedgerTransaction, target: TransactionStatus) -> None:
        current = TransactionStatus(txn.status)
        TRANSACTION_STATUS.check(current, target)
        if target == TransactionStatus.POSTED:
            draft = JournalDraft(
                lines=[
                    LedgerLine(line.account_id, line.debit_amount, line.credit_amount)
                    for line in txn.lines
                ]
            )
            draft.validate_lines()
            try:
                draft.ensure_balanced()
            except ValidationError:
                logger.warning("post_rejected_unbalanced", extra={"transaction_id": str(txn.id)})
                raise
            txn.posted_at = utcnow()
            action = AuditAction.POST
        else:
            txn.voided_at = utcnow()
            action = AuditAction.VOID
        txn.status = target.value
        txn.updated_by = self.user_id
        self.record(action, "Transaction", txn.id, {"from": current.value, "to": target.value})
        logger.info(
            "transaction_status_changed",
            extra={"transaction_id": str(txn.id), "from": current.value, "to": target.value},
        )

    def _validate(self, draft: JournalDraft, require_balance: bool) -> None:
        try:
            draft.validate_lines()
            self.accounts.require_usable(draft.account_ids)
            if require_balance:
                draft.ensure_balanced()
        except ValidationError as exc:
            logger.warning("transaction_rejected", extra={"reason": exc.code, "detail": exc.message})
            raise

    @staticmethod
    def _build_lines(draft: JournalDraft) -> list[TransactionLine]:
        return [
            TransactionLine(
                account_id=line.account_id,
                line_number=position,
                description=line.description,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
            )
            for position, line in enumerate(draft.lines, start=1)
        ]

    @staticmethod
    def _to_dto(txn: LedgerTransaction) -> TransactionResponseDTO:
        totals = JournalDraft(
            lines=[LedgerLine(line.account_id, line.debit_amount, line.credit_amount) for line in txn.lines]
        ).calculate_totals()
        return TransactionResponseDTO(
            id=txn.id,
            transaction_date=txn.transaction_date,
            description=txn.description,
            reference_number=txn.reference_number,
            status=txn.status,
            currency=txn.currency,
            lines=[TransactionLineResponseDTO.model_validate(line) for line in txn.lines],
            total_debit=totals.total_debit,
            total_credit=totals.total_credit,
            posted_at=txn.posted_at,
            voided_at=txn.voided_at,
            created_by=txn.created_by,
            created_at=txn.created_at,
            updated_at=txn.updated_at,
            version=txn.version,
        )
