"""Domain layer - Pure Python business logic."""

from bizledger.domain.entities import (
    DocumentItem,
    DocumentTotals,
    JournalDraft,
    LedgerLine,
    PayrollDeduction,
    PayrollFigures,
    PayrollTotals,
    TaxBreakdown,
    derive_gross_salary,
)
from bizledger.domain.exceptions import (
    BizLedgerError,
    ConcurrencyError,
    ConflictError,
    InvalidStatusTransitionError,
    NotFoundError,
    PartialBatchError,
    PersistenceError,
    UnbalancedTransactionError,
    ValidationError,
)
from bizledger.domain.services import (
    AccountBalanceService,
    DocumentStatusService,
    PayrollTaxService,
    TaxRates,
)
from bizledger.domain.value_objects import (
    AccountType,
    BillStatus,
    ContactRole,
    ExportFormat,
    InvoiceStatus,
    PayrollItemStatus,
    PayrollRunStatus,
    TransactionStatus,
    to_money,
)
