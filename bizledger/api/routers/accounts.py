"""
API Routers - chart of accounts and balance adjustments.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from bizledger.api.deps import get_account_registry, get_adjustments
from bizledger.application.dto.accounting_dto import (
    AccountCreateDTO,
    AccountDeletionDTO,
    AccountResponseDTO,
    AccountUpdateDTO,
    BalanceAdjustmentRequestDTO,
    BalanceAdjustmentResultDTO,
)
from bizledger.application.services import AccountRegistry, BalanceAdjustmentService
from bizledger.domain.value_objects import AccountType

router = APIRouter(prefix="/api/v1", tags=["Accounts"])


class AccountBalanceDTO(BaseModel):
    account_id: UUID
    balance: Decimal


@router.post("/accounts", response_model=AccountResponseDTO, status_code=status.HTTP_201_CREATED)
def create_account(dto: AccountCreateDTO, registry: AccountRegistry = Depends(get_account_registry)):
    """
    Create an account.

    - Code is unique per organization
    - Balance starts at zero and is always derived from posted transactions
    """
    return registry.create(dto)


@router.get("/accounts", response_model=list[AccountResponseDTO])
def list_accounts(
    account_type: Optional[AccountType] = None,
    include_inactive: bool = True,
    search: Optional[str] = None,
    registry: AccountRegistry = Depends(get_account_registry),
):
    """Accounts ordered by code, each with its derived balance."""
    return registry.list(account_type, include_inactive, search)


@router.get("/accounts/{account_id}", response_model=AccountResponseDTO)
def get_account(account_id: UUID, registry: AccountRegistry = Depends(get_account_registry)):
    return registry.get(account_id)


@router.get("/accounts/{account_id}/balance", response_model=AccountBalanceDTO)
def get_account_balance(account_id: UUID, registry: AccountRegistry = Depends(get_account_registry)):
    return AccountBalanceDTO(account_id=account_id, balance=registry.get_balance(account_id))


@router.patch("/accounts/{account_id}", response_model=AccountResponseDTO)
def update_account(
    account_id: UUID,
    dto: AccountUpdateDTO,
    expected_version: Optional[int] = None,
    registry: AccountRegistry = Depends(get_account_registry),
):
    return registry.update(account_id, dto, expected_version)


@router.delete("/accounts/{account_id}", response_model=AccountDeletionDTO)
def delete_account(account_id: UUID, registry: AccountRegistry = Depends(get_account_registry)):
    """Archives referenced accounts, hard-deletes the rest. Repeat calls are no-ops."""
    return registry.delete(account_id)


@router.post(
    "/accounts/{account_id}/adjustments",
    response_model=BalanceAdjustmentResultDTO,
    status_code=status.HTTP_201_CREATED,
)
def adjust_account_balance(
    account_id: UUID,
    dto: BalanceAdjustmentRequestDTO,
    adjustments: BalanceAdjustmentService = Depends(get_adjustments),
):
    """Post a balancing transaction against the adjustment equity account."""
    return adjustments.adjust_balance(account_id, dto)
