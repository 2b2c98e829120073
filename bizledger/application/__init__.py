"""Application layer - Use cases and DTOs."""

from bizledger.application.dto.accounting_dto import (
    AccountCreateDTO,
    AccountResponseDTO,
    TransactionCreateDTO,
    TransactionResponseDTO,
)
from bizledger.application.dto.payroll_dto import (
    ImportResultDTO,
    PayrollItemCreateDTO,
    PayrollRunCreateDTO,
)
