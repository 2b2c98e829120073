"""
API Routers - payroll runs, payroll items, taxes and export.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response, status

from bizledger.api.deps import get_payroll
from bizledger.application.dto.payroll_dto import (
    ImportResultDTO,
    PayrollItemCreateDTO,
    PayrollItemPageDTO,
    PayrollItemResponseDTO,
    PayrollItemUpdateDTO,
    PayrollRunCreateDTO,
    PayrollRunErrorDTO,
    PayrollRunPageDTO,
    PayrollRunResponseDTO,
    PayrollRunUpdateDTO,
    TaxCalculationDTO,
)
from bizledger.application.services import PayrollEngine
from bizledger.domain.exceptions import PartialBatchError
from bizledger.domain.value_objects import ExportFormat, PayrollItemStatus, PayrollRunStatus

router = APIRouter(prefix="/api/v1/payroll", tags=["Payroll"])


@router.get("/taxes", response_model=TaxCalculationDTO)
def calculate_taxes(gross_amount: Decimal = Query(..., ge=0), payroll: PayrollEngine = Depends(get_payroll)):
    """Flat-rate payroll taxes for a gross amount."""
    return payroll.calculate_taxes(gross_amount)


# Runs

@router.post("/runs", response_model=PayrollRunResponseDTO, status_code=status.HTTP_201_CREATED)
def create_payroll_run(dto: PayrollRunCreateDTO, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.create_payroll_run(dto)


@router.get("/runs", response_model=PayrollRunPageDTO)
def list_payroll_runs(
    status_filter: Optional[PayrollRunStatus] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=500),
    payroll: PayrollEngine = Depends(get_payroll),
):
    return payroll.list_payroll_runs(status_filter, start_date, end_date, search, page, limit)


@router.get("/runs/{run_id}", response_model=PayrollRunResponseDTO)
def get_payroll_run(run_id: UUID, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.get_payroll_run(run_id)


@router.patch("/runs/{run_id}", response_model=PayrollRunResponseDTO)
def update_payroll_run(run_id: UUID, dto: PayrollRunUpdateDTO, payroll: PayrollEngine = Depends(get_payroll)):
    """Edit a draft run; a status field triggers the matching transition."""
    return payroll.update_payroll_run(run_id, dto)


@router.delete("/runs/{run_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payroll_run(run_id: UUID, payroll: PayrollEngine = Depends(get_payroll)):
    payroll.delete_payroll_run(run_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/runs/{run_id}/process", response_model=PayrollRunResponseDTO)
def process_payroll_run(run_id: UUID, expected_version: Optional[int] = None, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.process_payroll_run(run_id, expected_version)


@router.post("/runs/{run_id}/finalize", response_model=PayrollRunResponseDTO)
def finalize_payroll_run(run_id: UUID, expected_version: Optional[int] = None, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.finalize_payroll_run(run_id, expected_version)


@router.post("/runs/{run_id}/cancel", response_model=PayrollRunResponseDTO)
def cancel_payroll_run(run_id: UUID, expected_version: Optional[int] = None, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.cancel_payroll_run(run_id, expected_version)


@router.post("/runs/{run_id}/error", response_model=PayrollRunResponseDTO)
def mark_payroll_run_error(run_id: UUID, dto: PayrollRunErrorDTO, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.mark_error(run_id, dto.errors)


@router.post("/runs/{run_id}/recalculate", response_model=PayrollRunResponseDTO)
def recalculate_payroll_run(run_id: UUID, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.recalculate_payroll_run(run_id)


@router.get("/runs/{run_id}/export")
def export_payroll_run(
    run_id: UUID,
    export_format: ExportFormat = Query(ExportFormat.CSV, alias="format"),
    payroll: PayrollEngine = Depends(get_payroll),
):
    result = payroll.export_payroll_run(run_id, export_format)
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.get("/runs/{run_id}/items", response_model=list[PayrollItemResponseDTO])
def get_payroll_items_by_run(run_id: UUID, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.get_by_run_id(run_id)


@router.post("/runs/{run_id}/items", response_model=PayrollItemResponseDTO, status_code=status.HTTP_201_CREATED)
def create_payroll_item(run_id: UUID, dto: PayrollItemCreateDTO, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.create_payroll_item(run_id, dto)


@router.post("/runs/{run_id}/items/import", response_model=ImportResultDTO)
def import_payroll_items(
    run_id: UUID,
    rows: list[Any] = Body(...),
    payroll: PayrollEngine = Depends(get_payroll),
):
    """
    Import rows one by one. Valid rows are kept even when others fail; any
    failure turns the response into 207 with the per-row report.
    """
    result = payroll.import_payroll_items(run_id, rows)
    if result.errors:
        raise PartialBatchError(result.imported, [error.model_dump(mode="json") for error in result.errors])
    return result


# Items

@router.get("/items", response_model=PayrollItemPageDTO)
def list_payroll_items(
    payroll_run_id: Optional[UUID] = None,
    employee_id: Optional[str] = None,
    status_filter: Optional[PayrollItemStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=500),
    payroll: PayrollEngine = Depends(get_payroll),
):
    return payroll.list_payroll_items(payroll_run_id, employee_id, status_filter, search, page, limit)


@router.get("/items/{item_id}", response_model=PayrollItemResponseDTO)
def get_payroll_item(item_id: UUID, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.get_payroll_item(item_id)


@router.patch("/items/{item_id}", response_model=PayrollItemResponseDTO)
def update_payroll_item(item_id: UUID, dto: PayrollItemUpdateDTO, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.update_payroll_item(item_id, dto)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payroll_item(item_id: UUID, payroll: PayrollEngine = Depends(get_payroll)):
    payroll.delete_payroll_item(item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/items/{item_id}/recalculate", response_model=PayrollItemResponseDTO)
def recalculate_payroll_item(item_id: UUID, payroll: PayrollEngine = Depends(get_payroll)):
    return payroll.recalculate_payroll_item(item_id)
