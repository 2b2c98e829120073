"""
API Routers - invoices and bills.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from bizledger.api.deps import get_billing
from bizledger.application.dto.accounting_dto import (
    BillCreateDTO,
    BillResponseDTO,
    BillUpdateDTO,
    InvoiceCreateDTO,
    InvoiceResponseDTO,
    InvoiceUpdateDTO,
    ReclassificationResultDTO,
)
from bizledger.application.services import BillingDocumentEngine
from bizledger.domain.value_objects import BillStatus, InvoiceStatus

router = APIRouter(prefix="/api/v1", tags=["Billing"])


@router.post("/invoices", response_model=InvoiceResponseDTO, status_code=status.HTTP_201_CREATED)
def create_invoice(dto: InvoiceCreateDTO, billing: BillingDocumentEngine = Depends(get_billing)):
    """
    Create an invoice. Totals are derived from the items, the customer is
    found or created by name, and the number is generated when omitted.
    """
    return billing.create_invoice(dto)


@router.get("/invoices", response_model=list[InvoiceResponseDTO])
def list_invoices(
    customer_id: Optional[UUID] = None,
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    as_of: Optional[date] = None,
    billing: BillingDocumentEngine = Depends(get_billing),
):
    return billing.list_invoices(
        contact_id=customer_id, status=status_filter, date_from=date_from, date_to=date_to,
        search=search, limit=limit, as_of=as_of,
    )


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponseDTO)
def get_invoice(invoice_id: UUID, as_of: Optional[date] = None, billing: BillingDocumentEngine = Depends(get_billing)):
    return billing.get_invoice(invoice_id, as_of)


@router.patch("/invoices/{invoice_id}", response_model=InvoiceResponseDTO)
def update_invoice(invoice_id: UUID, dto: InvoiceUpdateDTO, billing: BillingDocumentEngine = Depends(get_billing)):
    return billing.update_invoice(invoice_id, dto)


@router.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(invoice_id: UUID, billing: BillingDocumentEngine = Depends(get_billing)):
    billing.delete_invoice(invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/bills", response_model=BillResponseDTO, status_code=status.HTTP_201_CREATED)
def create_bill(dto: BillCreateDTO, billing: BillingDocumentEngine = Depends(get_billing)):
    return billing.create_bill(dto)


@router.get("/bills", response_model=list[BillResponseDTO])
def list_bills(
    vendor_id: Optional[UUID] = None,
    status_filter: Optional[BillStatus] = Query(None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    as_of: Optional[date] = None,
    billing: BillingDocumentEngine = Depends(get_billing),
):
    return billing.list_bills(
        contact_id=vendor_id, status=status_filter, date_from=date_from, date_to=date_to,
        search=search, limit=limit, as_of=as_of,
    )


@router.get("/bills/{bill_id}", response_model=BillResponseDTO)
def get_bill(bill_id: UUID, as_of: Optional[date] = None, billing: BillingDocumentEngine = Depends(get_billing)):
    return billing.get_bill(bill_id, as_of)


@router.patch("/bills/{bill_id}", response_model=BillResponseDTO)
def update_bill(bill_id: UUID, dto: BillUpdateDTO, billing: BillingDocumentEngine = Depends(get_billing)):
    return billing.update_bill(bill_id, dto)


@router.delete("/bills/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bill(bill_id: UUID, billing: BillingDocumentEngine = Depends(get_billing)):
    billing.delete_bill(bill_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/billing/reclassify-overdue", response_model=ReclassificationResultDTO)
def reclassify_overdue(as_of: Optional[date] = None, billing: BillingDocumentEngine = Depends(get_billing)):
    """Persist the overdue status on open documents past their due date."""
    return billing.reclassify_overdue(as_of)
