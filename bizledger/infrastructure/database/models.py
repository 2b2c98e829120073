"""
Infrastructure - SQLModel database models.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def money_field(**kwargs: Any) -> Any:
    return Field(default=Decimal("0"), max_digits=18, decimal_places=2, **kwargs)


class Account(SQLModel, table=True):
    """Chart of accounts entry. Balance is derived, never stored."""

    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("organization_id", "code", name="uq_accounts_org_code"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    code: str = Field(index=True)
    name: str
    account_type: str
    description: str | None = None
    is_active: bool = True
    currency: str = "USD"
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1


class LedgerTransaction(SQLModel, table=True):
    """Double-entry transaction header."""

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("organization_id", "idempotency_key", name="uq_transactions_idempotency"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    transaction_date: date = Field(index=True)
    description: str
    reference_number: str | None = Field(default=None, index=True)
    status: str = Field(default="draft", index=True)
    currency: str = "USD"
    idempotency_key: str | None = None
    request_fingerprint: str | None = None
    posted_at: datetime | None = None
    voided_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    lines: list["TransactionLine"] = Relationship(
        back_populates="transaction",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "TransactionLine.line_number",
        },
    )


class TransactionLine(SQLModel, table=True):
    __tablename__ = "transaction_lines"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    transaction_id: UUID = Field(foreign_key="transactions.id", index=True)
    account_id: UUID = Field(foreign_key="accounts.id", index=True)
    line_number: int
    description: str | None = None
    debit_amount: Decimal = money_field()
    credit_amount: Decimal = money_field()
    created_at: datetime = Field(default_factory=utcnow)

    transaction: LedgerTransaction = Relationship(back_populates="lines")


class Contact(SQLModel, table=True):
    """Customer or vendor, found-or-created by (organization, name, role)."""

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", "role", name="uq_contacts_org_name_role"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    name: str
    role: str
    email: str | None = None
    created_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class DocumentBase(SQLModel):
    """Fields shared by invoices and bills."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    document_number: str = Field(index=True)
    contact_id: UUID = Field(foreign_key="contacts.id", index=True)
    contact_name: str
    issue_date: date = Field(index=True)
    due_date: date = Field(index=True)
    subtotal: Decimal = money_field()
    tax_amount: Decimal = money_field()
    total: Decimal = money_field()
    status: str = Field(default="draft", index=True)
    currency: str = "USD"
    notes: str | None = None
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1


class DocumentItemBase(SQLModel):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    line_number: int
    description: str
    quantity: Decimal = Field(default=Decimal("1"), max_digits=18, decimal_places=4)
    unit_price: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=4)
    tax_rate: Decimal = Field(default=Decimal("0"), max_digits=7, decimal_places=4)
    amount: Decimal = money_field()
    account_id: UUID | None = Field(default=None, foreign_key="accounts.id")


class Invoice(DocumentBase, table=True):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("organization_id", "document_number", name="uq_invoices_org_number"),
    )

    items: list["InvoiceItem"] = Relationship(
        back_populates="invoice",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "InvoiceItem.line_number",
        },
    )


class InvoiceItem(DocumentItemBase, table=True):
    __tablename__ = "invoice_items"

    invoice_id: UUID = Field(foreign_key="invoices.id", index=True)

    invoice: Invoice = Relationship(back_populates="items")


class Bill(DocumentBase, table=True):
    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint("organization_id", "document_number", name="uq_bills_org_number"),
    )

    items: list["BillItem"] = Relationship(
        back_populates="bill",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "BillItem.line_number",
        },
    )


class BillItem(DocumentItemBase, table=True):
    __tablename__ = "bill_items"

    bill_id: UUID = Field(foreign_key="bills.id", index=True)

    bill: Bill = Relationship(back_populates="items")


class PayrollRun(SQLModel, table=True):
    """Batch of payroll items for one pay period. Totals are derived."""

    __tablename__ = "payroll_runs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    name: str
    period_start: date = Field(index=True)
    period_end: date = Field(index=True)
    payment_date: date
    status: str = Field(default="draft", index=True)
    employee_count: int = 0
    gross_amount: Decimal = money_field()
    tax_amount: Decimal = money_field()
    deduction_amount: Decimal = money_field()
    net_amount: Decimal = money_field()
    notes: str | None = None
    processing_errors: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    items: list["PayrollItem"] = Relationship(
        back_populates="payroll_run",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "PayrollItem.created_at",
        },
    )


class PayrollItem(SQLModel, table=True):
    __tablename__ = "payroll_items"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    payroll_run_id: UUID = Field(foreign_key="payroll_runs.id", index=True)
    employee_id: str | None = Field(default=None, index=True)
    employee_name: str
    regular_hours: Decimal | None = Field(default=None, max_digits=10, decimal_places=2)
    overtime_hours: Decimal | None = Field(default=None, max_digits=10, decimal_places=2)
    hourly_rate: Decimal | None = Field(default=None, max_digits=18, decimal_places=2)
    base_salary: Decimal | None = Field(default=None, max_digits=18, decimal_places=2)
    gross_salary: Decimal = money_field()
    tax_amount: Decimal = money_field()
    deduction_amount: Decimal = money_field()
    net_salary: Decimal = money_field()
    # JSON lists of {"id", "name", "type", "amount", ...}; amounts stored as strings.
    deductions: list[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    benefits: list[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    notes: str | None = None
    status: str = Field(default="pending", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    payroll_run: PayrollRun = Relationship(back_populates="items")


class AuditLog(SQLModel, table=True):
    """Audit trail for every mutation."""

    __tablename__ = "audit_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    user_id: str = Field(index=True)
    action: str = Field(index=True)
    entity_type: str
    entity_id: UUID
    new_value: str | None = None  # JSON
    created_at: datetime = Field(default_factory=utcnow, index=True)
