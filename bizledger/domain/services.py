"""
Domain Services - Business logic that spans entities but needs no storage.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from .entities import TaxBreakdown
from .value_objects import (
    ZERO,
    AccountType,
    BillStatus,
    InvoiceStatus,
    to_money,
)


@dataclass(frozen=True, slots=True)
class TaxRates:
    """Flat payroll tax rates. No bracket thresholds are applied."""
    federal: Decimal = Decimal("0.15")
    state: Decimal = Decimal("0.05")
    local: Decimal = Decimal("0")
    medicare: Decimal = Decimal("0.0145")
    social_security: Decimal = Decimal("0.062")


DEFAULT_TAX_RATES = TaxRates()


class PayrollTaxService:
    """
    Service - Payroll tax calculation.
    Each component is rounded to cents; the total is the sum of the rounded
    components so that it always matches what is shown per component.
    """

    def __init__(self, rates: TaxRates = DEFAULT_TAX_RATES):
        self.rates = rates

    def calculate_taxes(self, gross_amount: Decimal) -> TaxBreakdown:
        gross = to_money(gross_amount)
        return TaxBreakdown(
            federal_tax=to_money(gross * self.rates.federal),
            state_tax=to_money(gross * self.rates.state),
            local_tax=to_money(gross * self.rates.local),
            medicare_tax=to_money(gross * self.rates.medicare),
            social_security_tax=to_money(gross * self.rates.social_security),
        )


class AccountBalanceService:
    """
    Service - Derived account balances.
    asset/expense = debit - credit; liability/equity/revenue = credit - debit.
    """

    def signed_balance(
        self, account_type: AccountType, total_debit: Decimal, total_credit: Decimal
    ) -> Decimal:
        debit = to_money(total_debit)
        credit = to_money(total_credit)
        if AccountType(account_type).is_debit_normal:
            return debit - credit
        return credit - debit

    def adjustment_sides(
        self, account_type: AccountType, amount: Decimal
    ) -> tuple[Decimal, Decimal]:
        """(debit, credit) on the target account that moves its balance by ``amount``."""
        magnitude = abs(to_money(amount))
        increase = amount > 0
        if AccountType(account_type).is_debit_normal == increase:
            return magnitude, ZERO
        return ZERO, magnitude


class DocumentStatusService:
    """
    Service - Time-derived reclassification of invoices and bills.
    An open document whose due date has passed reads as overdue.
    """

    OPEN_STATUSES: frozenset[Enum] = frozenset({
        InvoiceStatus.SENT,
        InvoiceStatus.PARTIALLY_PAID,
        BillStatus.PENDING,
        BillStatus.PARTIALLY_PAID,
    })

    def is_overdue(self, status: Enum, due_date: date, as_of: date) -> bool:
        return status in self.OPEN_STATUSES and due_date < as_of

    def effective_status(self, status: Enum, due_date: date, as_of: date) -> Enum:
        if self.is_overdue(status, due_date, as_of):
            return type(status)("overdue")
        return status
