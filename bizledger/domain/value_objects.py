"""
Domain Layer - Value objects, status enums and transition tables.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from .exceptions import InvalidStatusTransitionError, ValidationError


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: object) -> Decimal:
    """Coerce a number or numeric string to a cents-quantized Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class AccountType(str, Enum):
    """Chart of accounts classification."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @property
    def is_debit_normal(self) -> bool:
        return self in (AccountType.ASSET, AccountType.EXPENSE)


class TransactionStatus(str, Enum):
    DRAFT = "draft"
    POSTED = "posted"
    VOIDED = "voided"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class BillStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PayrollRunStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class PayrollItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    ERROR = "error"


class ContactRole(str, Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"


class DeductionType(str, Enum):
    TAX = "tax"
    INSURANCE = "insurance"
    RETIREMENT = "retirement"
    OTHER = "other"


class BenefitType(str, Enum):
    HEALTH = "health"
    DENTAL = "dental"
    VISION = "vision"
    RETIREMENT = "retirement"
    BONUS = "bonus"
    OTHER = "other"


class ExportFormat(str, Enum):
    CSV = "csv"
    PDF = "pdf"
    JSON = "json"


@dataclass(frozen=True)
class StatusMachine:
    """Closed transition table for one entity kind."""
    entity: str
    transitions: dict[Enum, frozenset]

    def allowed(self, current: Enum) -> frozenset:
        return self.transitions.get(current, frozenset())

    def can_transition(self, current: Enum, target: Enum) -> bool:
        return target in self.allowed(current)

    def is_terminal(self, status: Enum) -> bool:
        return not self.allowed(status)

    def check(self, current: Enum, target: Enum) -> None:
        if not self.can_transition(current, target):
            raise InvalidStatusTransitionError(self.entity, current.value, target.value)


TRANSACTION_STATUS = StatusMachine(
    entity="transaction",
    transitions={
        TransactionStatus.DRAFT: frozenset({TransactionStatus.POSTED, TransactionStatus.VOIDED}),
        TransactionStatus.POSTED: frozenset({TransactionStatus.VOIDED}),
    },
)

INVOICE_STATUS = StatusMachine(
    entity="invoice",
    transitions={
        InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
        InvoiceStatus.SENT: frozenset({
            InvoiceStatus.PAID,
            InvoiceStatus.PARTIALLY_PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
        }),
        InvoiceStatus.PARTIALLY_PAID: frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE}),
        InvoiceStatus.OVERDUE: frozenset({
            InvoiceStatus.PAID,
            InvoiceStatus.PARTIALLY_PAID,
            InvoiceStatus.CANCELLED,
        }),
    },
)

BILL_STATUS = StatusMachine(
    entity="bill",
    transitions={
        BillStatus.DRAFT: frozenset({BillStatus.PENDING, BillStatus.CANCELLED}),
        BillStatus.PENDING: frozenset({
            BillStatus.PAID,
            BillStatus.PARTIALLY_PAID,
            BillStatus.OVERDUE,
            BillStatus.CANCELLED,
        }),
        BillStatus.PARTIALLY_PAID: frozenset({BillStatus.PAID, BillStatus.OVERDUE}),
        BillStatus.OVERDUE: frozenset({
            BillStatus.PAID,
            BillStatus.PARTIALLY_PAID,
            BillStatus.CANCELLED,
        }),
    },
)

PAYROLL_RUN_STATUS = StatusMachine(
    entity="payroll_run",
    transitions={
        PayrollRunStatus.DRAFT: frozenset({PayrollRunStatus.PROCESSING, PayrollRunStatus.CANCELLED}),
        PayrollRunStatus.PROCESSING: frozenset({PayrollRunStatus.COMPLETED, PayrollRunStatus.ERROR}),
        PayrollRunStatus.COMPLETED: frozenset({PayrollRunStatus.ERROR}),
    },
)

PAYROLL_ITEM_STATUS = StatusMachine(
    entity="payroll_item",
    transitions={
        PayrollItemStatus.PENDING: frozenset({PayrollItemStatus.PROCESSED, PayrollItemStatus.ERROR}),
        PayrollItemStatus.ERROR: frozenset({PayrollItemStatus.PENDING}),
    },
)
