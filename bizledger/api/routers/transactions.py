"""
API Routers - double-entry transactions.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from bizledger.api.deps import get_ledger
from bizledger.application.dto.accounting_dto import (
    TransactionCreateDTO,
    TransactionLinesReplaceDTO,
    TransactionPageDTO,
    TransactionResponseDTO,
    TransactionUpdateDTO,
)
from bizledger.application.services import LedgerEngine
from bizledger.domain.value_objects import TransactionStatus

router = APIRouter(prefix="/api/v1", tags=["Transactions"])


@router.post("/transactions", response_model=TransactionResponseDTO, status_code=status.HTTP_201_CREATED)
def create_transaction(dto: TransactionCreateDTO, ledger: LedgerEngine = Depends(get_ledger)):
    """
    Create a transaction with its lines.

    - At least two lines, each with exactly one positive side
    - Posting requires total debits == total credits
    - A repeated idempotency key with the same payload returns the stored transaction
    """
    return ledger.create_transaction(dto)


@router.get("/transactions", response_model=TransactionPageDTO)
def list_transactions(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=500),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """Newest first; search matches description and reference number."""
    return ledger.list_transactions(start_date, end_date, status_filter, search, page, limit)


@router.get("/transactions/{transaction_id}", response_model=TransactionResponseDTO)
def get_transaction(transaction_id: UUID, ledger: LedgerEngine = Depends(get_ledger)):
    return ledger.get_transaction(transaction_id)


@router.patch("/transactions/{transaction_id}", response_model=TransactionResponseDTO)
def update_transaction(
    transaction_id: UUID, dto: TransactionUpdateDTO, ledger: LedgerEngine = Depends(get_ledger)
):
    return ledger.update_transaction(transaction_id, dto)


@router.put("/transactions/{transaction_id}/lines", response_model=TransactionResponseDTO)
def replace_transaction_lines(
    transaction_id: UUID, dto: TransactionLinesReplaceDTO, ledger: LedgerEngine = Depends(get_ledger)
):
    return ledger.replace_lines(transaction_id, dto)


@router.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_transaction(transaction_id: UUID, ledger: LedgerEngine = Depends(get_ledger)):
    ledger.delete_transaction(transaction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/transactions/{transaction_id}/post", response_model=TransactionResponseDTO)
def post_transaction(
    transaction_id: UUID, expected_version: Optional[int] = None, ledger: LedgerEngine = Depends(get_ledger)
):
    return ledger.post_transaction(transaction_id, expected_version)


@router.post("/transactions/{transaction_id}/void", response_model=TransactionResponseDTO)
def void_transaction(
    transaction_id: UUID, expected_version: Optional[int] = None, ledger: LedgerEngine = Depends(get_ledger)
):
    return ledger.void_transaction(transaction_id, expected_version)
