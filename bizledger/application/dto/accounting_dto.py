"""
API DTOs - accounts, ledger transactions and billing documents.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bizledger.domain.value_objects import (
    AccountType,
    BillStatus,
    InvoiceStatus,
    TransactionStatus,
)


class AccountCreateDTO(BaseModel):
    """DTO - Create a chart of accounts entry."""
    code: str = Field(..., min_length=1, max_length=32, description="Organization-unique account code")
    name: str = Field(..., min_length=1, max_length=255)
    account_type: AccountType
    description: Optional[str] = None
    is_active: bool = True
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class AccountUpdateDTO(BaseModel):
    """DTO - Patch mutable account fields. Balance is never writable."""
    code: Optional[str] = Field(None, min_length=1, max_length=32)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    account_type: Optional[AccountType] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class AccountResponseDTO(BaseModel):
    id: UUID
    code: str
    name: str
    account_type: AccountType
    description: Optional[str]
    is_active: bool
    balance: Decimal = Decimal("0.00")
    currency: str
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = ConfigDict(from_attributes=True)


class DeletionOutcome(str, Enum):
    DELETED = "deleted"
    ARCHIVED = "archived"
    UNCHANGED = "unchanged"


class AccountDeletionDTO(BaseModel):
    account_id: UUID
    outcome: DeletionOutcome
    success: bool = True


class TransactionLineCreateDTO(BaseModel):
    """DTO - One transaction line: exactly one of debit/credit is positive."""
    account_id: UUID
    debit_amount: Decimal = Field(Decimal("0"), description="Debit amount")
    credit_amount: Decimal = Field(Decimal("0"), description="Credit amount")
    description: Optional[str] = None


class TransactionCreateDTO(BaseModel):
    """DTO - Create a transaction with its lines in one atomic write."""
    transaction_date: date
    description: str = Field(..., min_length=1, max_length=500)
    reference_number: Optional[str] = Field(None, max_length=100)
    status: TransactionStatus = TransactionStatus.DRAFT
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    idempotency_key: Optional[str] = Field(None, max_length=128, description="Client retry key")
    lines: list[TransactionLineCreateDTO]

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "transaction_date": "2026-01-15",
            "description": "Office supplies",
            "reference_number": "PO-1042",
            "status": "posted",
            "idempotency_key": "5d1c2b8e-office-supplies",
            "lines": [
                {"account_id": "00000000-0000-0000-0000-000000000010", "debit_amount": 100},
                {"account_id": "00000000-0000-0000-0000-000000000020", "credit_amount": 100},
            ],
        }
    })


class TransactionUpdateDTO(BaseModel):
    """DTO - Non-line fields. Lines change only through replace."""
    transaction_date: Optional[date] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    reference_number: Optional[str] = Field(None, max_length=100)
    status: Optional[TransactionStatus] = None
    expected_version: Optional[int] = None


class TransactionLinesReplaceDTO(BaseModel):
    lines: list[TransactionLineCreateDTO]
    expected_version: Optional[int] = None


class TransactionLineResponseDTO(BaseModel):
    id: UUID
    account_id: UUID
    line_number: int
    description: Optional[str]
    debit_amount: Decimal
    credit_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class TransactionResponseDTO(BaseModel):
    id: UUID
    transaction_date: date
    description: str
    reference_number: Optional[str]
    status: TransactionStatus
    currency: str
    lines: list[TransactionLineResponseDTO]
    total_debit: Decimal
    total_credit: Decimal
    posted_at: Optional[datetime]
    voided_at: Optional[datetime]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = ConfigDict(from_attributes=True)


class TransactionPageDTO(BaseModel):
    data: list[TransactionResponseDTO]
    total: int
    page: Optional[int]
    limit: Optional[int]


class BalanceAdjustmentRequestDTO(BaseModel):
    """DTO - Positive amounts increase the balance, negative decrease it."""
    amount: Decimal
    description: str = Field(..., min_length=3, max_length=500)
    adjustment_date: Optional[date] = None
    idempotency_key: Optional[str] = Field(None, max_length=128)


class BalanceAdjustmentResultDTO(BaseModel):
    account: AccountResponseDTO
    transaction: TransactionResponseDTO


class DocumentItemDTO(BaseModel):
    """DTO - Invoice or bill line."""
    description: str = Field(..., min_length=1)
    quantity: Decimal = Decimal("1")
    unit_price: Decimal
    tax_rate: Decimal = Field(Decimal("0"), description="Percent, 0-100")
    account_id: Optional[UUID] = None


class DocumentItemResponseDTO(BaseModel):
    id: UUID
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    amount: Decimal
    account_id: Optional[UUID]

    model_config = ConfigDict(from_attributes=True)


class InvoiceCreateDTO(BaseModel):
    invoice_number: Optional[str] = Field(None, max_length=64, description="Generated when omitted")
    customer_id: Optional[UUID] = None
    customer_name: str = Field(..., min_length=1, max_length=255)
    issue_date: date
    due_date: date
    status: InvoiceStatus = InvoiceStatus.DRAFT
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    items: list[DocumentItemDTO] = Field(default_factory=list)


class InvoiceUpdateDTO(BaseModel):
    invoice_number: Optional[str] = Field(None, min_length=1, max_length=64)
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    status: Optional[InvoiceStatus] = None
    notes: Optional[str] = None
    items: Optional[list[DocumentItemDTO]] = None
    expected_version: Optional[int] = None


class InvoiceResponseDTO(BaseModel):
    id: UUID
    invoice_number: str
    customer_id: UUID
    customer_name: str
    issue_date: date
    due_date: date
    items: list[DocumentItemResponseDTO]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    status: InvoiceStatus
    stored_status: InvoiceStatus
    currency: str
    notes: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    version: int


class BillCreateDTO(BaseModel):
    bill_number: Optional[str] = Field(None, max_length=64, description="Generated when omitted")
    vendor_id: Optional[UUID] = None
    vendor_name: str = Field(..., min_length=1, max_length=255)
    issue_date: date
    due_date: date
    status: BillStatus = BillStatus.DRAFT
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    items: list[DocumentItemDTO] = Field(default_factory=list)


class BillUpdateDTO(BaseModel):
    bill_number: Optional[str] = Field(None, min_length=1, max_length=64)
    vendor_name: Optional[str] = Field(None, min_length=1, max_length=255)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    status: Optional[BillStatus] = None
    notes: Optional[str] = None
    items: Optional[list[DocumentItemDTO]] = None
    expected_version: Optional[int] = None


class BillResponseDTO(BaseModel):
    id: UUID
    bill_number: str
    vendor_id: UUID
    vendor_name: str
    issue_date: date
    due_date: date
    items: list[DocumentItemResponseDTO]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    status: BillStatus
    stored_status: BillStatus
    currency: str
    notes: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    version: int


class ReclassificationResultDTO(BaseModel):
    as_of: date
    invoices: list[UUID]
    bills: list[UUID]
