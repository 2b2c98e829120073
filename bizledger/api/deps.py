"""
API dependencies - per-request session, unit of work, context and services.
"""

from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from bizledger.application.services import (
    AccountRegistry,
    BalanceAdjustmentService,
    BillingDocumentEngine,
    LedgerEngine,
    PayrollEngine,
)
from bizledger.core.config import Settings, get_settings
from bizledger.core.context import ServiceContext
from bizledger.infrastructure.database import get_db
from bizledger.infrastructure.database.unit_of_work import UnitOfWork


def get_context(
    x_organization_id: UUID = Header(..., description="Organization scope"),
    x_user_id: str = Header(..., min_length=1, description="Acting user for audit fields"),
) -> ServiceContext:
    return ServiceContext(organization_id=x_organization_id, user_id=x_user_id)


def get_uow(db: Session = Depends(get_db)) -> UnitOfWork:
    return UnitOfWork(db)


def get_account_registry(
    uow: UnitOfWork = Depends(get_uow),
    context: ServiceContext = Depends(get_context),
    settings: Settings = Depends(get_settings),
) -> AccountRegistry:
    return AccountRegistry(uow, context, settings)


def get_ledger(
    uow: UnitOfWork = Depends(get_uow),
    context: ServiceContext = Depends(get_context),
    settings: Settings = Depends(get_settings),
) -> LedgerEngine:
    return LedgerEngine(uow, context, settings)


def get_adjustments(
    uow: UnitOfWork = Depends(get_uow),
    context: ServiceContext = Depends(get_context),
    settings: Settings = Depends(get_settings),
) -> BalanceAdjustmentService:
    return BalanceAdjustmentService(uow, context, settings)


def get_billing(
    uow: UnitOfWork = Depends(get_uow),
    context: ServiceContext = Depends(get_context),
    settings: Settings = Depends(get_settings),
) -> BillingDocumentEngine:
    return BillingDocumentEngine(uow, context, settings)


def get_payroll(
    uow: UnitOfWork = Depends(get_uow),
    context: ServiceContext = Depends(get_context),
    settings: Settings = Depends(get_settings),
) -> PayrollEngine:
    return PayrollEngine(uow, context, settings)
