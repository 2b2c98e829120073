"""Application services - one class per component, constructed per call."""

from bizledger.application.services.accounts import AccountRegistry
from bizledger.application.services.adjustments import BalanceAdjustmentService
from bizledger.application.services.billing import BillingDocumentEngine
from bizledger.application.services.ledger import LedgerEngine
from bizledger.application.services.payroll import PayrollEngine
from bizledger.application.services.payroll_export import ExportResult, PayrollExporter
