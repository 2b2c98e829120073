"""
Domain Entities - ledger lines, billing items and payroll figures.
Pure Python business rules; persistence lives in the infrastructure layer.
"""

import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal

from .exceptions import UnbalancedTransactionError, ValidationError
from .value_objects import (
    ZERO,
    DeductionType,
    to_money,
)

OVERTIME_MULTIPLIER = Decimal("1.5")


@dataclass(frozen=True, slots=True)
class LedgerLine:
    """One side of a double-entry transaction."""
    account_id: uuid.UUID
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit_amount", to_money(self.debit_amount))
        object.__setattr__(self, "credit_amount", to_money(self.credit_amount))

    def validate(self, position: int) -> None:
        if self.account_id is None:
            raise ValidationError(f"Line {position}: an account is required")
        if self.debit_amount < 0 or self.credit_amount < 0:
            raise ValidationError(f"Line {position}: amounts cannot be negative")
        if self.debit_amount > 0 and self.credit_amount > 0:
            raise ValidationError(f"Line {position}: cannot carry both a debit and a credit")
        if self.debit_amount == 0 and self.credit_amount == 0:
            raise ValidationError(f"Line {position}: a debit or a credit amount is required")


@dataclass
class JournalDraft:
    """
    Entity - a transaction under validation, before anything is written.
    Double entry: total debits == total credits.
    """
    lines: list[LedgerLine] = field(default_factory=list)
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO

    def calculate_totals(self) -> "JournalDraft":
        total_debit = sum((line.debit_amount for line in self.lines), ZERO)
        total_credit = sum((line.credit_amount for line in self.lines), ZERO)
        return replace(self, total_debit=total_debit, total_credit=total_credit)

    @property
    def difference(self) -> Decimal:
        return self.total_debit - self.total_credit

    def is_balanced(self) -> bool:
        return self.difference == ZERO

    def validate_lines(self) -> None:
        if len(self.lines) < 2:
            raise ValidationError("A transaction needs at least two lines")
        for position, line in enumerate(self.lines, start=1):
            line.validate(position)

    def ensure_balanced(self) -> None:
        draft = self.calculate_totals()
        if not draft.is_balanced():
            raise UnbalancedTransactionError(draft.total_debit, draft.total_credit)

    @property
    def account_ids(self) -> set[uuid.UUID]:
        return {line.account_id for line in self.lines}


@dataclass(frozen=True, slots=True)
class DocumentItem:
    """Invoice or bill line: amount = quantity x unit price."""
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal = ZERO
    account_id: uuid.UUID | None = None

    def validate(self, position: int) -> None:
        if not self.description:
            raise ValidationError(f"Item {position}: a description is required")
        if self.quantity <= 0:
            raise ValidationError(f"Item {position}: quantity must be positive")
        if self.unit_price < 0:
            raise ValidationError(f"Item {position}: unit price cannot be negative")
        if not ZERO <= self.tax_rate <= Decimal("100"):
            raise ValidationError(f"Item {position}: tax rate must be between 0 and 100")

    @property
    def amount(self) -> Decimal:
        return to_money(self.quantity * self.unit_price)

    @property
    def tax(self) -> Decimal:
        return self.amount * self.tax_rate / Decimal("100")


@dataclass(frozen=True, slots=True)
class DocumentTotals:
    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO

    @classmethod
    def from_items(cls, items: list[DocumentItem]) -> "DocumentTotals":
        subtotal = sum((item.amount for item in items), ZERO)
        # Tax is summed unrounded and rounded once per document.
        tax_amount = to_money(sum((item.tax for item in items), ZERO))
        return cls(subtotal=subtotal, tax_amount=tax_amount, total=subtotal + tax_amount)


@dataclass(frozen=True, slots=True)
class PayrollDeduction:
    name: str
    amount: Decimal
    type: DeductionType = DeductionType.OTHER
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    rate: Decimal | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class TaxBreakdown:
    """Result of a payroll tax calculation."""
    federal_tax: Decimal
    state_tax: Decimal
    local_tax: Decimal
    medicare_tax: Decimal
    social_security_tax: Decimal

    @property
    def total_tax(self) -> Decimal:
        return (
            self.federal_tax
            + self.state_tax
            + self.local_tax
            + self.medicare_tax
            + self.social_security_tax
        )


def derive_gross_salary(
    regular_hours: Decimal | None = None,
    overtime_hours: Decimal | None = None,
    hourly_rate: Decimal | None = None,
    gross_salary: Decimal | None = None,
    base_salary: Decimal | None = None,
) -> Decimal:
    """Hourly pay when hours and rate are present, else the supplied salary."""
    if regular_hours is not None and hourly_rate is not None:
        if regular_hours < 0 or (overtime_hours or ZERO) < 0 or hourly_rate < 0:
            raise ValidationError("Hours and hourly rate cannot be negative")
        overtime = overtime_hours or ZERO
        return to_money(
            regular_hours * hourly_rate + overtime * hourly_rate * OVERTIME_MULTIPLIER
        )
    for supplied in (gross_salary, base_salary):
        if supplied is not None:
            if supplied < 0:
                raise ValidationError("Salary cannot be negative")
            return to_money(supplied)
    raise ValidationError(
        "Either hours with an hourly rate, a gross salary or a base salary is required"
    )


@dataclass(frozen=True, slots=True)
class PayrollFigures:
    """Derived pay fields of one payroll item."""
    gross_salary: Decimal
    tax_amount: Decimal
    deduction_amount: Decimal
    net_salary: Decimal

    @classmethod
    def compute(
        cls,
        gross_salary: Decimal,
        taxes: TaxBreakdown,
        deductions: list[PayrollDeduction],
    ) -> "PayrollFigures":
        explicit = sum((to_money(d.amount) for d in deductions), ZERO)
        deduction_amount = taxes.total_tax + explicit
        net_salary = gross_salary - deduction_amount
        if net_salary < 0:
            raise ValidationError(
                f"Deductions ({deduction_amount}) exceed gross salary ({gross_salary})"
            )
        return cls(
            gross_salary=gross_salary,
            tax_amount=taxes.total_tax,
            deduction_amount=deduction_amount,
            net_salary=net_salary,
        )


@dataclass(frozen=True, slots=True)
class PayrollTotals:
    employee_count: int = 0
    gross_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    deduction_amount: Decimal = ZERO
    net_amount: Decimal = ZERO

    @classmethod
    def aggregate(cls, figures: list[PayrollFigures]) -> "PayrollTotals":
        return cls(
            employee_count=len(figures),
            gross_amount=sum((f.gross_salary for f in figures), ZERO),
            tax_amount=sum((f.tax_amount for f in figures), ZERO),
            deduction_amount=sum((f.deduction_amount for f in figures), ZERO),
            net_amount=sum((f.net_salary for f in figures), ZERO),
        )
