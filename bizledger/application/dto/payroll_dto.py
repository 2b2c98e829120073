"""
API DTOs - payroll runs, items, taxes and batch import.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bizledger.domain.value_objects import (
    BenefitType,
    DeductionType,
    PayrollItemStatus,
    PayrollRunStatus,
)


class PayrollDeductionDTO(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    type: DeductionType = DeductionType.OTHER
    amount: Decimal = Field(..., ge=0)
    rate: Optional[Decimal] = None
    description: Optional[str] = None


class PayrollBenefitDTO(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    type: BenefitType = BenefitType.OTHER
    amount: Decimal = Field(..., ge=0)
    description: Optional[str] = None


class PayrollRunCreateDTO(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    period_start: date
    period_end: date
    payment_date: date
    notes: Optional[str] = None


class PayrollRunUpdateDTO(BaseModel):
    """DTO - Patch a run; a status change dispatches to the matching transition."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    payment_date: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[PayrollRunStatus] = None
    expected_version: Optional[int] = None


class PayrollRunResponseDTO(BaseModel):
    id: UUID
    name: str
    period_start: date
    period_end: date
    payment_date: date
    status: PayrollRunStatus
    employee_count: int
    gross_amount: Decimal
    tax_amount: Decimal
    deduction_amount: Decimal
    net_amount: Decimal
    notes: Optional[str]
    processing_errors: list[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = ConfigDict(from_attributes=True)


class PayrollRunPageDTO(BaseModel):
    data: list[PayrollRunResponseDTO]
    total: int
    page: int
    limit: int
    total_pages: int


class PayrollRunErrorDTO(BaseModel):
    errors: list[str] = Field(..., min_length=1)


class PayrollItemCreateDTO(BaseModel):
    """
    DTO - Create a payroll item. Gross pay comes from hours x rate when both
    are given, otherwise from gross_salary, otherwise from base_salary.
    Tax, deduction and net amounts are always derived.
    """
    employee_id: Optional[str] = None
    employee_name: str = Field(..., min_length=1, max_length=255)
    regular_hours: Optional[Decimal] = None
    overtime_hours: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    base_salary: Optional[Decimal] = None
    gross_salary: Optional[Decimal] = None
    deductions: list[PayrollDeductionDTO] = Field(default_factory=list)
    benefits: list[PayrollBenefitDTO] = Field(default_factory=list)
    notes: Optional[str] = None


class PayrollItemUpdateDTO(BaseModel):
    employee_id: Optional[str] = None
    employee_name: Optional[str] = Field(None, min_length=1, max_length=255)
    regular_hours: Optional[Decimal] = None
    overtime_hours: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    base_salary: Optional[Decimal] = None
    gross_salary: Optional[Decimal] = None
    deductions: Optional[list[PayrollDeductionDTO]] = None
    benefits: Optional[list[PayrollBenefitDTO]] = None
    notes: Optional[str] = None
    status: Optional[PayrollItemStatus] = None


class PayrollItemResponseDTO(BaseModel):
    id: UUID
    payroll_run_id: UUID
    employee_id: Optional[str]
    employee_name: str
    regular_hours: Optional[Decimal]
    overtime_hours: Optional[Decimal]
    hourly_rate: Optional[Decimal]
    base_salary: Optional[Decimal]
    gross_salary: Decimal
    tax_amount: Decimal
    deduction_amount: Decimal
    net_salary: Decimal
    deductions: list[PayrollDeductionDTO]
    benefits: list[PayrollBenefitDTO]
    notes: Optional[str]
    status: PayrollItemStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PayrollItemPageDTO(BaseModel):
    data: list[PayrollItemResponseDTO]
    total: int
    page: int
    limit: int
    total_pages: int


class TaxCalculationDTO(BaseModel):
    federal_tax: Decimal
    state_tax: Decimal
    local_tax: Decimal
    medicare_tax: Decimal
    social_security_tax: Decimal
    total_tax: Decimal

    model_config = ConfigDict(from_attributes=True)


class ImportRowErrorDTO(BaseModel):
    row: int
    item: Optional[dict[str, Any]] = None
    error: str


class ImportResultDTO(BaseModel):
    success: bool
    imported: int
    errors: list[ImportRowErrorDTO] = Field(default_factory=list)


class PayrollRunExportDTO(PayrollRunResponseDTO):
    items: list[PayrollItemResponseDTO]
