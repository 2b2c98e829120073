"""
Repositories - organization-scoped create/read/update/delete/query over the
SQLModel tables.
"""

import json
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import SQLModel

from bizledger.domain.exceptions import ConcurrencyError, NotFoundError
from bizledger.domain.value_objects import TransactionStatus, to_money
from bizledger.infrastructure.database.models import (
    Account,
    AuditLog,
    BillItem,
    Contact,
    InvoiceItem,
    LedgerTransaction,
    PayrollItem,
    PayrollRun,
    TransactionLine,
    utcnow,
)

ModelT = TypeVar("ModelT", bound=SQLModel)


def _paginate(session: Session, stmt, page: int | None, limit: int | None):
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    if page and limit:
        stmt = stmt.offset((page - 1) * limit).limit(limit)
    elif limit:
        stmt = stmt.limit(limit)
    return list(session.scalars(stmt).all()), int(total or 0)


class Repository(Generic[ModelT]):
    """Generic repository for root entities carrying ``organization_id``."""

    def __init__(self, session: Session, model: type[ModelT], organization_id: UUID, entity: str):
        self.session = session
        self.model = model
        self.organization_id = organization_id
        self.entity = entity

    def _scoped(self):
        return select(self.model).where(self.model.organization_id == self.organization_id)

    def get(self, entity_id: UUID) -> ModelT | None:
        return self.session.scalars(self._scoped().where(self.model.id == entity_id)).first()

    def require(self, entity_id: UUID) -> ModelT:
        obj = self.get(entity_id)
        if obj is None:
            raise NotFoundError(self.entity, entity_id)
        return obj

    def add(self, obj: ModelT) -> ModelT:
        self.session.add(obj)
        self.session.flush()
        return obj

    def delete(self, obj: ModelT) -> None:
        self.session.delete(obj)
        self.session.flush()

    def claim(self, obj: ModelT, expected_version: int | None = None) -> ModelT:
        """
        Optimistic lock: bump the version only if nobody else did since ``obj``
        was read. The UPDATE also holds the row lock until commit.
        """
        current = obj.version
        if expected_version is not None and expected_version != current:
            raise ConcurrencyError(self.entity, obj.id, expected_version)
        now = utcnow()
        result = self.session.execute(
            update(self.model)
            .where(self.model.id == obj.id, self.model.version == current)
            .values(version=current + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyError(self.entity, obj.id, expected_version)
        set_committed_value(obj, "version", current + 1)
        set_committed_value(obj, "updated_at", now)
        return obj


class AccountRepository(Repository[Account]):

    def __init__(self, session: Session, organization_id: UUID):
        super().__init__(session, Account, organization_id, "Account")

    def get_by_code(self, code: str) -> Account | None:
        return self.session.scalars(self._scoped().where(Account.code == code)).first()

    def get_many(self, account_ids: Sequence[UUID]) -> dict[UUID, Account]:
        if not account_ids:
            return {}
        rows = self.session.scalars(self._scoped().where(Account.id.in_(list(account_ids)))).all()
        return {row.id: row for row in rows}

    def list(
        self,
        account_type: str | None = None,
        include_inactive: bool = True,
        search: str | None = None,
    ) -> list[Account]:
        stmt = self._scoped()
        if account_type:
            stmt = stmt.where(Account.account_type == account_type)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Account.code.ilike(pattern), Account.name.ilike(pattern)))
        return list(self.session.scalars(stmt.order_by(Account.code)).all())

    def is_referenced(self, account_id: UUID) -> bool:
        """True when any transaction line, invoice item or bill item points at the account."""
        for model in (TransactionLine, InvoiceItem, BillItem):
            stmt = select(model.id).where(model.account_id == account_id).limit(1)
            if self.session.scalars(stmt).first() is not None:
                return True
        return False

    def posted_totals(self, account_ids: Sequence[UUID] | None = None) -> dict[UUID, tuple[Decimal, Decimal]]:
        """(debit, credit) sums per account over posted transactions only."""
        stmt = (
            select(
                TransactionLine.account_id,
                func.coalesce(func.sum(TransactionLine.debit_amount), 0),
                func.coalesce(func.sum(TransactionLine.credit_amount), 0),
            )
            .join(LedgerTransaction, LedgerTransaction.id == TransactionLine.transaction_id)
            .where(
                LedgerTransaction.organization_id == self.organization_id,
                LedgerTransaction.status == TransactionStatus.POSTED.value,
            )
            .group_by(TransactionLine.account_id)
        )
        if account_ids is not None:
            stmt = stmt.where(TransactionLine.account_id.in_(list(account_ids)))
        return {
            account_id: (to_money(debit), to_money(credit))
            for account_id, debit, credit in self.session.execute(stmt).all()
        }


class TransactionRepository(Repository[LedgerTransaction]):

    def __init__(self, session: Session, organization_id: UUID):
        super().__init__(session, LedgerTransaction, organization_id, "Transaction")

    def get_by_idempotency_key(self, key: str) -> LedgerTransaction | None:
        return self.session.scalars(
            self._scoped().where(LedgerTransaction.idempotency_key == key)
        ).first()

    def list(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = None,
        search: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> tuple[list[LedgerTransaction], int]:
        stmt = self._scoped()
        if start_date:
            stmt = stmt.where(LedgerTransaction.transaction_date >= start_date)
        if end_date:
            stmt = stmt.where(LedgerTransaction.transaction_date <= end_date)
        if status:
            stmt = stmt.where(LedgerTransaction.status == status)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    LedgerTransaction.description.ilike(pattern),
                    LedgerTransaction.reference_number.ilike(pattern),
                )
            )
        stmt = stmt.order_by(LedgerTransaction.transaction_date.desc(), LedgerTransaction.created_at.desc())
        return _paginate(self.session, stmt, page, limit)


class ContactRepository(Repository[Contact]):

    def __init__(self, session: Session, organization_id: UUID):
        super().__init__(session, Contact, organization_id, "Contact")

    def find_or_create(self, name: str, role: str, created_by: str) -> Contact:
        existing = self.session.scalars(
            self._scoped().where(Contact.name == name, Contact.role == role)
        ).first()
        if existing is not None:
            return existing
        return self.add(
            Contact(organization_id=self.organization_id, name=name, role=role, created_by=created_by)
        )


class DocumentRepository(Repository[ModelT]):
    """Invoices and bills share one table shape."""

    def get_by_number(self, number: str) -> ModelT | None:
        return self.session.scalars(
            self._scoped().where(self.model.document_number == number)
        ).first()

    def next_number(self, prefix: str, issue_date: date) -> str:
        day = issue_date.strftime("%Y%m%d")
        existing = self.session.scalar(
            select(func.count())
            .select_from(self.model)
            .where(
                self.model.organization_id == self.organization_id,
                self.model.document_number.like(f"{prefix}-{day}-%"),
            )
        ) or 0
        sequence = existing + 1
        while self.get_by_number(f"{prefix}-{day}-{sequence:04d}") is not None:
            sequence += 1
        return f"{prefix}-{day}-{sequence:04d}"

    def open_past_due(self, open_statuses: Sequence[str], as_of: date) -> list[ModelT]:
        stmt = self._scoped().where(
            self.model.status.in_(list(open_statuses)), self.model.due_date < as_of
        )
        return list(self.session.scalars(stmt).all())

    def list(
        self,
        contact_id: UUID | None = None,
        statuses: Sequence[str] | None = None,
        overdue_as_of: date | None = None,
        open_statuses: Sequence[str] = (),
        date_from: date | None = None,
        date_to: date | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[ModelT]:
        stmt = self._scoped()
        if contact_id:
            stmt = stmt.where(self.model.contact_id == contact_id)
        if statuses is not None and overdue_as_of is not None:
            stmt = stmt.where(
                or_(
                    self.model.status.in_(list(statuses)),
                    (self.model.status.in_(list(open_statuses)))
                    & (self.model.due_date < overdue_as_of),
                )
            )
        elif statuses is not None:
            stmt = stmt.where(self.model.status.in_(list(statuses)))
        if date_from:
            stmt = stmt.where(self.model.issue_date >= date_from)
        if date_to:
            stmt = stmt.where(self.model.issue_date <= date_to)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(self.model.document_number.ilike(pattern), self.model.notes.ilike(pattern))
            )
        stmt = stmt.order_by(self.model.issue_date.desc(), self.model.created_at.desc())
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())


class PayrollRunRepository(Repository[PayrollRun]):

    def __init__(self, session: Session, organization_id: UUID):
        super().__init__(session, PayrollRun, organization_id, "PayrollRun")

    def list(
        self,
        status: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[PayrollRun], int]:
        stmt = self._scoped()
        if status:
            stmt = stmt.where(PayrollRun.status == status)
        if start_date:
            stmt = stmt.where(PayrollRun.period_start >= start_date)
        if end_date:
            stmt = stmt.where(PayrollRun.period_end <= end_date)
        if search:
            stmt = stmt.where(PayrollRun.name.ilike(f"%{search}%"))
        stmt = stmt.order_by(PayrollRun.period_start.desc(), PayrollRun.created_at.desc())
        return _paginate(self.session, stmt, page, limit)


class PayrollItemRepository:
    """Items have no organization column; scope comes from the parent run."""

    entity = "PayrollItem"

    def __init__(self, session: Session, organization_id: UUID):
        self.session = session
        self.organization_id = organization_id

    def _scoped(self):
        return (
            select(PayrollItem)
            .join(PayrollRun, PayrollRun.id == PayrollItem.payroll_run_id)
            .where(PayrollRun.organization_id == self.organization_id)
        )

    def get(self, item_id: UUID) -> PayrollItem | None:
        return self.session.scalars(self._scoped().where(PayrollItem.id == item_id)).first()

    def require(self, item_id: UUID) -> PayrollItem:
        item = self.get(item_id)
        if item is None:
            raise NotFoundError(self.entity, item_id)
        return item

    def by_run(self, run_id: UUID) -> list[PayrollItem]:
        stmt = self._scoped().where(PayrollItem.payroll_run_id == run_id)
        return list(self.session.scalars(stmt.order_by(PayrollItem.created_at)).all())

    def list(
        self,
        payroll_run_id: UUID | None = None,
        employee_id: str | None = None,
        status: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[PayrollItem], int]:
        stmt = self._scoped()
        if payroll_run_id:
            stmt = stmt.where(PayrollItem.payroll_run_id == payroll_run_id)
        if employee_id:
            stmt = stmt.where(PayrollItem.employee_id == employee_id)
        if status:
            stmt = stmt.where(PayrollItem.status == status)
        if search:
            stmt = stmt.where(PayrollItem.employee_name.ilike(f"%{search}%"))
        stmt = stmt.order_by(PayrollItem.created_at)
        return _paginate(self.session, stmt, page, limit)

    def add(self, item: PayrollItem) -> PayrollItem:
        self.session.add(item)
        self.session.flush()
        return item

    def delete(self, item: PayrollItem) -> None:
        self.session.delete(item)
        self.session.flush()


class AuditRepository:

    def __init__(self, session: Session, organization_id: UUID, user_id: str):
        self.session = session
        self.organization_id = organization_id
        self.user_id = user_id

    def record(self, action: str, entity_type: str, entity_id: UUID, new_value: Any = None) -> AuditLog:
        entry = AuditLog(
            organization_id=self.organization_id,
            user_id=self.user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            new_value=json.dumps(new_value, default=str) if new_value is not None else None,
        )
        self.session.add(entry)
        return entry

    def for_entity(self, entity_id: UUID) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.organization_id == self.organization_id, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at)
        )
        return list(self.session.scalars(stmt).all())
