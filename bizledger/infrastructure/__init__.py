"""Infrastructure layer."""

from bizledger.infrastructure.database import SessionLocal, build_engine, get_db, init_db
from bizledger.infrastructure.database.models import (
    Account,
    AuditLog,
    Bill,
    BillItem,
    Contact,
    Invoice,
    InvoiceItem,
    LedgerTransaction,
    PayrollItem,
    PayrollRun,
    TransactionLine,
)
from bizledger.infrastructure.database.unit_of_work import UnitOfWork
