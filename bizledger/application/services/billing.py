"""
BillingDocumentEngine - invoices (receivables) and bills (payables).

Both kinds share one shape: an item list with derived totals, a contact
found-or-created by name, a number unique per organization and a status
lifecycle. ``DocumentKind`` carries what differs between the two.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from bizledger.application.dto.accounting_dto import (
    BillCreateDTO,
    BillResponseDTO,
    BillUpdateDTO,
    DocumentItemDTO,
    DocumentItemResponseDTO,
    InvoiceCreateDTO,
    InvoiceResponseDTO,
    InvoiceUpdateDTO,
    ReclassificationResultDTO,
)
from bizledger.application.services.base import ApplicationService, enum_value
from bizledger.core.context import AuditAction
from bizledger.core.logging_config import get_logger
from bizledger.domain.entities import DocumentItem, DocumentTotals
from bizledger.domain.exceptions import ConflictError, ValidationError
from bizledger.domain.services import DocumentStatusService
from bizledger.domain.value_objects import (
    BILL_STATUS,
    INVOICE_STATUS,
    BillStatus,
    ContactRole,
    InvoiceStatus,
    StatusMachine,
)
from bizledger.infrastructure.database.models import (
    Bill,
    BillItem,
    Contact,
    Invoice,
    InvoiceItem,
)
from bizledger.infrastructure.database.repositories import (
    AccountRepository,
    ContactRepository,
    DocumentRepository,
)

logger = get_logger("billing")


@dataclass(frozen=True)
class DocumentKind:
    entity: str
    model: type
    item_model: type
    prefix: str
    role: ContactRole
    statuses: type[Enum]
    machine: StatusMachine
    number_field: str
    contact_field: str
    response: type[BaseModel]

    @property
    def draft(self) -> Enum:
        return self.statuses("draft")

    @property
    def overdue(self) -> Enum:
        return self.statuses("overdue")

    @property
    def open_statuses(self) -> list[str]:
        return [s.value for s in self.statuses if s in DocumentStatusService.OPEN_STATUSES]


INVOICE = DocumentKind(
    entity="Invoice",
    model=Invoice,
    item_model=InvoiceItem,
    prefix="INV",
    role=ContactRole.CUSTOMER,
    statuses=InvoiceStatus,
    machine=INVOICE_STATUS,
    number_field="invoice_number",
    contact_field="customer",
    response=InvoiceResponseDTO,
)

BILL = DocumentKind(
    entity="Bill",
    model=Bill,
    item_model=BillItem,
    prefix="BILL",
    role=ContactRole.VENDOR,
    statuses=BillStatus,
    machine=BILL_STATUS,
    number_field="bill_number",
    contact_field="vendor",
    response=BillResponseDTO,
)

DELETABLE = frozenset({"draft", "cancelled"})


class BillingDocumentEngine(ApplicationService):

    status_service = DocumentStatusService()

    # Invoices

    def create_invoice(self, dto: InvoiceCreateDTO) -> InvoiceResponseDTO:
        return self._create(INVOICE, dto)

    def get_invoice(self, invoice_id: UUID, as_of: date | None = None) -> InvoiceResponseDTO:
        return self._get(INVOICE, invoice_id, as_of)

    def list_invoices(self, **filters: Any) -> list[InvoiceResponseDTO]:
        return self._list(INVOICE, **filters)

    def update_invoice(self, invoice_id: UUID, dto: InvoiceUpdateDTO) -> InvoiceResponseDTO:
        return self._update(INVOICE, invoice_id, dto)

    def delete_invoice(self, invoice_id: UUID) -> None:
        self._delete(INVOICE, invoice_id)

    # Bills

    def create_bill(self, dto: BillCreateDTO) -> BillResponseDTO:
        return self._create(BILL, dto)

    def get_bill(self, bill_id: UUID, as_of: date | None = None) -> BillResponseDTO:
        return self._get(BILL, bill_id, as_of)

    def list_bills(self, **filters: Any) -> list[BillResponseDTO]:
        return self._list(BILL, **filters)

    def update_bill(self, bill_id: UUID, dto: BillUpdateDTO) -> BillResponseDTO:
        return self._update(BILL, bill_id, dto)

    def delete_bill(self, bill_id: UUID) -> None:
        self._delete(BILL, bill_id)

    def reclassify_overdue(self, as_of: date | None = None) -> ReclassificationResultDTO:
        """Persist ``overdue`` on every open document whose due date has passed."""
        as_of = as_of or date.today()
        changed: dict[str, list[UUID]] = {}
        with self.uow.atomic():
            for kind in (INVOICE, BILL):
                repo = self._repo(kind)
                changed[kind.entity] = []
                for doc in repo.open_past_due(kind.open_statuses, as_of):
                    current = kind.statuses(doc.status)
                    kind.machine.check(current, kind.overdue)
                    repo.claim(doc)
                    doc.status = kind.overdue.value
                    doc.updated_by = self.user_id
                    self.record(AuditAction.TRANSITION, kind.entity, doc.id, {
                        "from": current.value, "to": kind.overdue.value,
                    })
                    changed[kind.entity].append(doc.id)
            self.session.flush()
        logger.info(
            "documents_reclassified",
            extra={"invoices": len(changed["Invoice"]), "bills": len(changed["Bill"]), "as_of": as_of.isoformat()},
        )
        return ReclassificationResultDTO(as_of=as_of, invoices=changed["Invoice"], bills=changed["Bill"])

    # Shared implementation

    def _repo(self, kind: DocumentKind) -> DocumentRepository:
        return DocumentRepository(self.session, kind.model, self.organization_id, kind.entity)

    def _create(self, kind: DocumentKind, dto: BaseModel):
        number = getattr(dto, kind.number_field)
        contact_id = getattr(dto, f"{kind.contact_field}_id")
        contact_name = getattr(dto, f"{kind.contact_field}_name")
        status = kind.statuses(dto.status)
        self._check_dates(dto.issue_date, dto.due_date)
        items = self._to_items(dto.items)

        with self.uow.atomic():
            self._check_item_accounts(items)
            if status != kind.draft:
                kind.machine.check(kind.draft, status)
                self._require_items(kind, items)

            repo = self._repo(kind)
            if number:
                if repo.get_by_number(number) is not None:
                    raise ConflictError(f"{kind.entity} number '{number}' already exists")
            else:
                number = repo.next_number(kind.prefix, dto.issue_date)
            contact = self._resolve_contact(kind, contact_id, contact_name)

            doc = kind.model(
                organization_id=self.organization_id,
                document_number=number,
                contact_id=contact.id,
                contact_name=contact.name,
                issue_date=dto.issue_date,
                due_date=dto.due_date,
                status=status.value,
                currency=dto.currency or self.settings.default_currency,
                notes=dto.notes,
                created_by=self.user_id,
                updated_by=self.user_id,
            )
            self._set_items(kind, doc, items)
            repo.add(doc)
            self.record(AuditAction.CREATE, kind.entity, doc.id, {
                "number": number, "status": doc.status, "total": str(doc.total),
            })
        logger.info(
            "document_created",
            extra={"entity": kind.entity, "document_id": str(doc.id), "number": number, "total": str(doc.total)},
        )
        return self._to_dto(kind, doc, date.today())

    def _get(self, kind: DocumentKind, document_id: UUID, as_of: date | None):
        doc = self._repo(kind).require(document_id)
        return self._to_dto(kind, doc, as_of or date.today())

    def _list(
        self,
        kind: DocumentKind,
        contact_id: UUID | None = None,
        status: Enum | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        search: str | None = None,
        limit: int | None = None,
        as_of: date | None = None,
    ) -> list:
        as_of = as_of or date.today()
        repo = self._repo(kind)
        if status is None:
            docs = repo.list(contact_id, None, None, (), date_from, date_to, search, limit)
            return [self._to_dto(kind, doc, as_of) for doc in docs]

        wanted = kind.statuses(enum_value(status))
        if wanted == kind.overdue:
            docs = repo.list(
                contact_id, [wanted.value], as_of, kind.open_statuses, date_from, date_to, search, limit
            )
            return [self._to_dto(kind, doc, as_of) for doc in docs]

        # An open status may read as overdue on as_of; filter on the effective status.
        docs = repo.list(contact_id, [wanted.value], None, (), date_from, date_to, search, None)
        result = [self._to_dto(kind, doc, as_of) for doc in docs]
        result = [dto for dto in result if dto.status == wanted]
        return result[:limit] if limit else result

    def _update(self, kind: DocumentKind, document_id: UUID, dto: BaseModel):
        fields = dto.model_dump(exclude_unset=True, exclude={"expected_version", "items", "status"})
        fields = {key: val for key, val in fields.items() if val is not None or key == "notes"}
        items = self._to_items(dto.items) if dto.items is not None else None

        with self.uow.atomic():
            repo = self._repo(kind)
            doc = repo.require(document_id)
            current = kind.statuses(doc.status)
            if kind.machine.is_terminal(current):
                raise ConflictError(f"{kind.entity} {doc.id} is {current.value} and cannot be modified")

            number = fields.pop(kind.number_field, None)
            if number and number != doc.document_number:
                if repo.get_by_number(number) is not None:
                    raise ConflictError(f"{kind.entity} number '{number}' already exists")
                doc.document_number = number
            contact_name = fields.pop(f"{kind.contact_field}_name", None)
            if contact_name and contact_name != doc.contact_name:
                contact = self._resolve_contact(kind, None, contact_name)
                doc.contact_id = contact.id
                doc.contact_name = contact_name

            self._check_dates(fields.get("issue_date", doc.issue_date), fields.get("due_date", doc.due_date))
            repo.claim(doc, dto.expected_version)
            for key, val in fields.items():
                setattr(doc, key, val)

            if items is not None:
                if current != kind.draft:
                    raise ConflictError(
                        f"Items of {kind.entity.lower()} {doc.id} can only be replaced while draft"
                    )
                self._check_item_accounts(items)
                doc.items.clear()
                self.session.flush()
                self._set_items(kind, doc, items)

            target = kind.statuses(dto.status) if dto.status is not None else None
            if target is not None and target != current:
                kind.machine.check(current, target)
                if current == kind.draft:
                    self._require_items(kind, doc.items)
                doc.status = target.value
                self.record(AuditAction.TRANSITION, kind.entity, doc.id, {
                    "from": current.value, "to": target.value,
                })
                logger.info(
                    "document_status_changed",
                    extra={"entity": kind.entity, "document_id": str(doc.id), "from": current.value, "to": target.value},
                )

            doc.updated_by = self.user_id
            self.session.flush()
            self.record(AuditAction.UPDATE, kind.entity, doc.id, {
                **{key: str(val) for key, val in fields.items()},
                "items_replaced": items is not None,
            })
        return self._to_dto(kind, doc, date.today())

    def _delete(self, kind: DocumentKind, document_id: UUID) -> None:
        with self.uow.atomic():
            repo = self._repo(kind)
            doc = repo.require(document_id)
            if doc.status not in DELETABLE:
                raise ConflictError(
                    f"Only draft or cancelled documents can be deleted; {kind.entity.lower()} is {doc.status}"
                )
            repo.delete(doc)
            self.record(AuditAction.DELETE, kind.entity, document_id, {"number": doc.document_number})
        logger.info("document_deleted", extra={"entity": kind.entity, "document_id": str(document_id)})

    def _resolve_contact(self, kind: DocumentKind, contact_id: UUID | None, name: str) -> Contact:
        contacts = ContactRepository(self.session, self.organization_id)
        if contact_id is not None:
            contact = contacts.require(contact_id)
            if contact.role != kind.role.value:
                raise ValidationError(f"Contact {contact_id} is not a {kind.role.value}")
            return contact
        return contacts.find_or_create(name, kind.role.value, self.user_id)

    def _check_item_accounts(self, items: list[DocumentItem]) -> None:
        wanted = {item.account_id for item in items if item.account_id is not None}
        if not wanted:
            return
        found = AccountRepository(self.session, self.organization_id).get_many(list(wanted))
        missing = wanted - found.keys()
        if missing:
            raise ValidationError(
                f"Unknown account(s) on items: {', '.join(sorted(str(m) for m in missing))}"
            )

    @staticmethod
    def _check_dates(issue_date: date, due_date: date) -> None:
        if due_date < issue_date:
            raise ValidationError("Due date cannot be before the issue date")

    @staticmethod
    def _require_items(kind: DocumentKind, items: list) -> None:
        if not items:
            raise ValidationError(f"{kind.entity} needs at least one item before leaving draft")

    @staticmethod
    def _to_items(rows: list[DocumentItemDTO]) -> list[DocumentItem]:
        items = [
            DocumentItem(
                description=row.description,
                quantity=row.quantity,
                unit_price=row.unit_price,
                tax_rate=row.tax_rate,
                account_id=row.account_id,
            )
            for row in rows
        ]
        for position, item in enumerate(items, start=1):
            item.validate(position)
        return items

    @staticmethod
    def _set_items(kind: DocumentKind, doc, items: list[DocumentItem]) -> None:
        doc.items.extend(
            kind.item_model(
                line_number=position,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_rate=item.tax_rate,
                amount=item.amount,
                account_id=item.account_id,
            )
            for position, item in enumerate(items, start=1)
        )
        totals = DocumentTotals.from_items(items)
        doc.subtotal = totals.subtotal
        doc.tax_amount = totals.tax_amount
        doc.total = totals.total

    def _to_dto(self, kind: DocumentKind, doc, as_of: date):
        stored = kind.statuses(doc.status)
        return kind.response(**{
            "id": doc.id,
            kind.number_field: doc.document_number,
            f"{kind.contact_field}_id": doc.contact_id,
            f"{kind.contact_field}_name": doc.contact_name,
            "issue_date": doc.issue_date,
            "due_date": doc.due_date,
            "items": [DocumentItemResponseDTO.model_validate(item) for item in doc.items],
            "subtotal": doc.subtotal,
            "tax_amount": doc.tax_amount,
            "total": doc.total,
            "status": self.status_service.effective_status(stored, doc.due_date, as_of),
            "stored_status": stored,
            "currency": doc.currency,
            "notes": doc.notes,
            "created_by": doc.created_by,
            "created_at": doc.created_at,
            "updated_at": doc.updated_at,
            "version": doc.version,
        })


