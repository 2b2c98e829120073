"""
Typed exception hierarchy for the financial core.

Every error carries a machine-readable ``code`` and structured attributes so
callers (the HTTP layer, import jobs) can react by type instead of parsing
messages::

    BizLedgerError
    +-- ValidationError
    |   +-- UnbalancedTransactionError
    |   +-- InvalidStatusTransitionError
    +-- NotFoundError
    +-- ConflictError
    |   +-- ConcurrencyError
    +-- PersistenceError
    +-- PartialBatchError
"""

from decimal import Decimal
from typing import Any


class BizLedgerError(Exception):
    """Base class for all financial core errors."""

    code: str = "BIZLEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "detail": self.message}
        for key, value in vars(self).items():
            if key.startswith("_") or key in ("message", "args"):
                continue
            payload[key] = str(value) if isinstance(value, Decimal) else value
        return payload


class ValidationError(BizLedgerError):
    """Input or state rejected before any write happened."""

    code = "VALIDATION_ERROR"


class UnbalancedTransactionError(ValidationError):
    code = "UNBALANCED_TRANSACTION"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Transaction is not balanced: debits={total_debit}, credits={total_credit}"
        )


class InvalidStatusTransitionError(ValidationError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class NotFoundError(BizLedgerError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(f"{entity} {entity_id} not found")


class ConflictError(BizLedgerError):
    """Duplicate keys, non-editable entities, idempotency mismatches."""

    code = "CONFLICT"


class ConcurrencyError(ConflictError):
    code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity: str, entity_id: Any, expected_version: int | None = None):
        self.entity = entity
        self.entity_id = str(entity_id)
        self.expected_version = expected_version
        super().__init__(f"{entity} {entity_id} was modified concurrently; reload and retry")


class PersistenceError(BizLedgerError):
    """Backing-store failure, surfaced as-is to the caller."""

    code = "PERSISTENCE_ERROR"


class PartialBatchError(BizLedgerError):
    """Batch operation where some rows failed; carries the per-row report."""

    code = "PARTIAL_BATCH"

    def __init__(self, imported: int, errors: list[dict[str, Any]]):
        self.imported = imported
        self.errors = errors
        super().__init__(f"{len(errors)} row(s) failed, {imported} imported")
