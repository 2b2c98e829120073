"""
Pytest configuration and fixtures.
"""

from collections.abc import Callable
from datetime import date
from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bizledger.application.dto.accounting_dto import (
    AccountCreateDTO,
    AccountResponseDTO,
    TransactionCreateDTO,
    TransactionLineCreateDTO,
)
from bizledger.application.services import (
    AccountRegistry,
    BalanceAdjustmentService,
    BillingDocumentEngine,
    LedgerEngine,
    PayrollEngine,
)
from bizledger.core.config import Settings
from bizledger.core.context import ServiceContext
from bizledger.domain.value_objects import AccountType, TransactionStatus
from bizledger.infrastructure.database import build_engine, get_db, init_db
from bizledger.infrastructure.database.unit_of_work import UnitOfWork

ORG_ID = UUID("00000000-0000-0000-0000-000000000001")
OTHER_ORG_ID = UUID("00000000-0000-0000-0000-000000000002")


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def session(session_factory) -> Session:
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://")


@pytest.fixture
def context() -> ServiceContext:
    return ServiceContext(organization_id=ORG_ID, user_id="tester")


@pytest.fixture
def uow(session) -> UnitOfWork:
    return UnitOfWork(session)


@pytest.fixture
def registry(uow, context, settings) -> AccountRegistry:
    return AccountRegistry(uow, context, settings)


@pytest.fixture
def ledger(uow, context, settings, registry) -> LedgerEngine:
    return LedgerEngine(uow, context, settings, accounts=registry)


@pytest.fixture
def adjustments(uow, context, settings, ledger) -> BalanceAdjustmentService:
    return BalanceAdjustmentService(uow, context, settings, ledger=ledger)


@pytest.fixture
def billing(uow, context, settings) -> BillingDocumentEngine:
    return BillingDocumentEngine(uow, context, settings)


@pytest.fixture
def payroll(uow, context, settings) -> PayrollEngine:
    return PayrollEngine(uow, context, settings)


@pytest.fixture
def make_account(registry) -> Callable[..., AccountResponseDTO]:
    def _make(code: str, account_type: AccountType = AccountType.ASSET, name: str | None = None):
        return registry.create(
            AccountCreateDTO(code=code, name=name or f"Account {code}", account_type=account_type)
        )
    return _make


@pytest.fixture
def cash_account(make_account) -> AccountResponseDTO:
    return make_account("1000", AccountType.ASSET, "Cash")


@pytest.fixture
def revenue_account(make_account) -> AccountResponseDTO:
    return make_account("4000", AccountType.REVENUE, "Sales")


@pytest.fixture
def make_transaction(ledger, cash_account, revenue_account):
    """Cash debit / revenue credit transaction with configurable amounts."""
    def _make(
        debit: str = "100",
        credit: str = "100",
        status: TransactionStatus = TransactionStatus.DRAFT,
        **overrides,
    ):
        dto = TransactionCreateDTO(
            transaction_date=overrides.pop("transaction_date", date(2026, 1, 15)),
            description=overrides.pop("description", "Cash sale"),
            status=status,
            lines=[
                TransactionLineCreateDTO(account_id=cash_account.id, debit_amount=debit),
                TransactionLineCreateDTO(account_id=revenue_account.id, credit_amount=credit),
            ],
            **overrides,
        )
        return ledger.create_transaction(dto)
    return _make


@pytest.fixture
def headers() -> dict[str, str]:
    return {"X-Organization-Id": str(ORG_ID), "X-User-Id": "api-tester"}


@pytest.fixture
def client(session_factory):
    from bizledger.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
