"""
PayrollEngine - payroll runs, their items, tax computation and batch import.

Run lifecycle::

    draft -> processing -> completed
      |          |            |
      v          v            v
    cancelled   error  <------+

Items can only change while their run is draft. Every item write
re-aggregates the run totals inside the same unit of work and claims the
run's version, so concurrent edits of one run serialize.
"""

import math
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from bizledger.application.dto.payroll_dto import (
    ImportResultDTO,
    ImportRowErrorDTO,
    PayrollItemCreateDTO,
    PayrollItemPageDTO,
    PayrollItemResponseDTO,
    PayrollItemUpdateDTO,
    PayrollRunCreateDTO,
    PayrollRunExportDTO,
    PayrollRunPageDTO,
    PayrollRunResponseDTO,
    PayrollRunUpdateDTO,
    TaxCalculationDTO,
)
from bizledger.application.services.base import ApplicationService, enum_value
from bizledger.application.services.payroll_export import ExportResult, PayrollExporter
from bizledger.core.config import Settings
from bizledger.core.context import AuditAction, ServiceContext
from bizledger.core.logging_config import get_logger
from bizledger.domain.entities import (
    PayrollDeduction,
    PayrollFigures,
    PayrollTotals,
    derive_gross_salary,
)
from bizledger.domain.exceptions import BizLedgerError, ConflictError, ValidationError
from bizledger.domain.services import PayrollTaxService
from bizledger.domain.value_objects import (
    PAYROLL_ITEM_STATUS,
    PAYROLL_RUN_STATUS,
    DeductionType,
    ExportFormat,
    PayrollItemStatus,
    PayrollRunStatus,
    to_money,
)
from bizledger.infrastructure.database.models import PayrollItem, PayrollRun, utcnow
from bizledger.infrastructure.database.repositories import (
    PayrollItemRepository,
    PayrollRunRepository,
)
from bizledger.infrastructure.database.unit_of_work import UnitOfWork

logger = get_logger("payroll")

DELETABLE_RUN_STATUSES = frozenset({
    PayrollRunStatus.DRAFT.value,
    PayrollRunStatus.CANCELLED.value,
    PayrollRunStatus.ERROR.value,
})

PAY_FIELDS = ("regular_hours", "overtime_hours", "hourly_rate", "base_salary", "gross_salary")


def _dump_rows(rows: list[BaseModel]) -> list[dict]:
    return [{**row.model_dump(mode="json"), "id": row.id or str(uuid4())} for row in rows]


def _deductions(rows: list[dict]) -> list[PayrollDeduction]:
    return [
        PayrollDeduction(
            name=row["name"],
            amount=to_money(row["amount"]),
            type=DeductionType(row.get("type") or DeductionType.OTHER.value),
        )
        for row in rows
    ]


def _describe(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'row'}: {error['msg']}"
        for error in exc.errors()
    )


def _total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 1


class PayrollEngine(ApplicationService):

    def __init__(
        self,
        uow: UnitOfWork,
        context: ServiceContext,
        settings: Settings | None = None,
        tax_service: PayrollTaxService | None = None,
        exporter: PayrollExporter | None = None,
    ):
        super().__init__(uow, context, settings)
        self.taxes = tax_service or PayrollTaxService()
        self.exporter = exporter or PayrollExporter()

    @property
    def run_repo(self) -> PayrollRunRepository:
        return PayrollRunRepository(self.session, self.organization_id)

    @property
    def item_repo(self) -> PayrollItemRepository:
        return PayrollItemRepository(self.session, self.organization_id)

    # Taxes

    def calculate_taxes(self, gross_amount: Decimal) -> TaxCalculationDTO:
        gross = to_money(gross_amount)
        if gross < 0:
            raise ValidationError("Gross amount cannot be negative")
        breakdown = self.taxes.calculate_taxes(gross)
        return TaxCalculationDTO(
            federal_tax=breakdown.federal_tax,
            state_tax=breakdown.state_tax,
            local_tax=breakdown.local_tax,
            medicare_tax=breakdown.medicare_tax,
            social_security_tax=breakdown.social_security_tax,
            total_tax=breakdown.total_tax,
        )

    # Runs

    def create_payroll_run(self, dto: PayrollRunCreateDTO) -> PayrollRunResponseDTO:
        self._check_period(dto.period_start, dto.period_end)
        with self.uow.atomic():
            run = self.run_repo.add(
                PayrollRun(
                    organization_id=self.organization_id,
                    name=dto.name,
                    period_start=dto.period_start,
                    period_end=dto.period_end,
                    payment_date=dto.payment_date,
                    notes=dto.notes,
                    status=PayrollRunStatus.DRAFT.value,
                    created_by=self.user_id,
                    updated_by=self.user_id,
                )
            )
            self.record(AuditAction.CREATE, "PayrollRun", run.id, dto.model_dump(mode="json"))
        logger.info("payroll_run_created", extra={"payroll_run_id": str(run.id)})
        return PayrollRunResponseDTO.model_validate(run)

    def get_payroll_run(self, run_id: UUID) -> PayrollRunResponseDTO:
        return PayrollRunResponseDTO.model_validate(self.run_repo.require(run_id))

    def list_payroll_runs(
        self,
        status: PayrollRunStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> PayrollRunPageDTO:
        limit = limit or self.settings.payroll_page_size
        runs, total = self.run_repo.list(enum_value(status), start_date, end_date, search, page, limit)
        return PayrollRunPageDTO(
            data=[PayrollRunResponseDTO.model_validate(run) for run in runs],
            total=total,
            page=page,
            limit=limit,
            total_pages=_total_pages(total, limit),
        )

    def update_payroll_run(self, run_id: UUID, dto: PayrollRunUpdateDTO) -> PayrollRunResponseDTO:
        """Field edits need a draft run; a status change dispatches to its transition."""
        fields = {
            key: val
            for key, val in dto.model_dump(exclude_unset=True, exclude={"status", "expected_version"}).items()
            if val is not None or key == "notes"
        }
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            expected_version = dto.expected_version
            if fields:
                self._ensure_draft(run)
                self._check_period(
                    fields.get("period_start", run.period_start), fields.get("period_end", run.period_end)
                )
                self.run_repo.claim(run, expected_version)
                expected_version = None
                for key, val in fields.items():
                    setattr(run, key, val)
                run.updated_by = self.user_id
                self.session.flush()
                self.record(AuditAction.UPDATE, "PayrollRun", run.id, dto.model_dump(mode="json", include=set(fields)))
            if dto.status is not None and dto.status.value != run.status:
                self._dispatch(run, dto.status, expected_version)
        return PayrollRunResponseDTO.model_validate(run)

    def delete_payroll_run(self, run_id: UUID) -> None:
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            if run.status not in DELETABLE_RUN_STATUSES:
                raise ConflictError(
                    f"Payroll run {run.id} is {run.status}; only draft, cancelled or error runs can be deleted"
                )
            self.run_repo.delete(run)
            self.record(AuditAction.DELETE, "PayrollRun", run_id, {"status": run.status})
        logger.info("payroll_run_deleted", extra={"payroll_run_id": str(run_id)})

    def process_payroll_run(self, run_id: UUID, expected_version: int | None = None) -> PayrollRunResponseDTO:
        """Recalculate every item, mark them processed, then move the run to processing."""
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            PAYROLL_RUN_STATUS.check(PayrollRunStatus(run.status), PayrollRunStatus.PROCESSING)
            if not run.items:
                raise ValidationError("A payroll run without items cannot be processed")
            self.run_repo.claim(run, expected_version)
            now = utcnow()
            for item in run.items:
                PAYROLL_ITEM_STATUS.check(PayrollItemStatus(item.status), PayrollItemStatus.PROCESSED)
                self._apply_figures(item)
                item.status = PayrollItemStatus.PROCESSED.value
                item.updated_at = now
            self._apply_totals(run)
            run.processing_errors = []
            self._move(run, PayrollRunStatus.PROCESSING)
        return PayrollRunResponseDTO.model_validate(run)

    def finalize_payroll_run(self, run_id: UUID, expected_version: int | None = None) -> PayrollRunResponseDTO:
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            PAYROLL_RUN_STATUS.check(PayrollRunStatus(run.status), PayrollRunStatus.COMPLETED)
            self.run_repo.claim(run, expected_version)
            self._move(run, PayrollRunStatus.COMPLETED)
        return PayrollRunResponseDTO.model_validate(run)

    def cancel_payroll_run(self, run_id: UUID, expected_version: int | None = None) -> PayrollRunResponseDTO:
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            PAYROLL_RUN_STATUS.check(PayrollRunStatus(run.status), PayrollRunStatus.CANCELLED)
            self.run_repo.claim(run, expected_version)
            self._move(run, PayrollRunStatus.CANCELLED)
        return PayrollRunResponseDTO.model_validate(run)

    def mark_error(
        self, run_id: UUID, errors: list[str], expected_version: int | None = None
    ) -> PayrollRunResponseDTO:
        if not errors:
            raise ValidationError("At least one error message is required")
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            PAYROLL_RUN_STATUS.check(PayrollRunStatus(run.status), PayrollRunStatus.ERROR)
            self.run_repo.claim(run, expected_version)
            run.processing_errors = list(errors)
            self._move(run, PayrollRunStatus.ERROR)
        logger.warning("payroll_run_failed", extra={"payroll_run_id": str(run_id), "errors": list(errors)})
        return PayrollRunResponseDTO.model_validate(run)

    def recalculate_payroll_run(self, run_id: UUID) -> PayrollRunResponseDTO:
        """Re-aggregate run totals from the current items."""
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            self.run_repo.claim(run)
            self._apply_totals(run)
            self.session.flush()
            self.record(AuditAction.RECALCULATE, "PayrollRun", run.id, {"net_amount": str(run.net_amount)})
        return PayrollRunResponseDTO.model_validate(run)

    def export_payroll_run(self, run_id: UUID, export_format: ExportFormat | str) -> ExportResult:
        run = self.run_repo.require(run_id)
        payload = PayrollRunExportDTO(
            **PayrollRunResponseDTO.model_validate(run).model_dump(),
            items=[PayrollItemResponseDTO.model_validate(item) for item in run.items],
        )
        result = self.exporter.export(payload, export_format)
        logger.info(
            "payroll_run_exported",
            extra={"payroll_run_id": str(run_id), "format": result.filename.rsplit(".", 1)[-1]},
        )
        return result

    # Items

    def create_payroll_item(self, run_id: UUID, dto: PayrollItemCreateDTO) -> PayrollItemResponseDTO:
        item = self._build_item(dto)
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            self._ensure_draft(run)
            self.run_repo.claim(run)
            run.items.append(item)
            self.session.flush()
            self._apply_totals(run)
            self.session.flush()
            self.record(AuditAction.CREATE, "PayrollItem", item.id, {
                "payroll_run_id": str(run.id),
                "employee_name": item.employee_name,
                "net_salary": str(item.net_salary),
            })
        logger.info("payroll_item_created", extra={"payroll_item_id": str(item.id), "payroll_run_id": str(run_id)})
        return PayrollItemResponseDTO.model_validate(item)

    def get_payroll_item(self, item_id: UUID) -> PayrollItemResponseDTO:
        return PayrollItemResponseDTO.model_validate(self.item_repo.require(item_id))

    def get_by_run_id(self, run_id: UUID) -> list[PayrollItemResponseDTO]:
        run = self.run_repo.require(run_id)
        return [PayrollItemResponseDTO.model_validate(item) for item in self.item_repo.by_run(run.id)]

    def list_payroll_items(
        self,
        payroll_run_id: UUID | None = None,
        employee_id: str | None = None,
        status: PayrollItemStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> PayrollItemPageDTO:
        limit = limit or self.settings.payroll_page_size
        items, total = self.item_repo.list(
            payroll_run_id, employee_id, enum_value(status), search, page, limit
        )
        return PayrollItemPageDTO(
            data=[PayrollItemResponseDTO.model_validate(item) for item in items],
            total=total,
            page=page,
            limit=limit,
            total_pages=_total_pages(total, limit),
        )

    def update_payroll_item(self, item_id: UUID, dto: PayrollItemUpdateDTO) -> PayrollItemResponseDTO:
        changes = dto.model_dump(exclude_unset=True)
        with self.uow.atomic():
            item = self.item_repo.require(item_id)
            run = item.payroll_run
            self._ensure_draft(run)
            self.run_repo.claim(run)

            target = changes.pop("status", None)
            if target is not None and PayrollItemStatus(target) == PayrollItemStatus.PROCESSED:
                raise ValidationError("Payroll items become processed only when their run is processed")
            if changes.pop("deductions", None) is not None:
                item.deductions = _dump_rows(dto.deductions)
            if changes.pop("benefits", None) is not None:
                item.benefits = _dump_rows(dto.benefits)
            for key in ("employee_id", "employee_name", "notes"):
                if key in changes and (changes[key] is not None or key != "employee_name"):
                    setattr(item, key, changes[key])

            if any(key in changes for key in PAY_FIELDS):
                for key in ("regular_hours", "overtime_hours", "hourly_rate", "base_salary"):
                    if key in changes:
                        setattr(item, key, changes[key])
                explicit_gross = changes.get("gross_salary")
                if explicit_gross is None and "base_salary" not in changes:
                    explicit_gross = item.gross_salary
                item.gross_salary = derive_gross_salary(
                    item.regular_hours, item.overtime_hours, item.hourly_rate,
                    explicit_gross, item.base_salary,
                )

            if target is not None and target != PayrollItemStatus(item.status):
                PAYROLL_ITEM_STATUS.check(PayrollItemStatus(item.status), PayrollItemStatus(target))
                item.status = PayrollItemStatus(target).value

            self._apply_figures(item)
            item.updated_at = utcnow()
            self.session.flush()
            self._apply_totals(run)
            self.session.flush()
            self.record(AuditAction.UPDATE, "PayrollItem", item.id, dto.model_dump(mode="json", exclude_unset=True))
        return PayrollItemResponseDTO.model_validate(item)

    def delete_payroll_item(self, item_id: UUID) -> None:
        with self.uow.atomic():
            item = self.item_repo.require(item_id)
            run = item.payroll_run
            self._ensure_draft(run)
            self.run_repo.claim(run)
            run.items.remove(item)
            self.session.flush()
            self._apply_totals(run)
            self.session.flush()
            self.record(AuditAction.DELETE, "PayrollItem", item_id, {"payroll_run_id": str(run.id)})
        logger.info("payroll_item_deleted", extra={"payroll_item_id": str(item_id), "payroll_run_id": str(run.id)})

    def recalculate_payroll_item(self, item_id: UUID) -> PayrollItemResponseDTO:
        """Re-derive tax, deduction and net pay from the current gross and deductions."""
        with self.uow.atomic():
            item = self.item_repo.require(item_id)
            run = item.payroll_run
            self._ensure_draft(run)
            before = self._figures_of(item)
            after = self._compute(item)
            if after != before:
                self.run_repo.claim(run)
                self._set_figures(item, after)
                item.updated_at = utcnow()
                self.session.flush()
                self._apply_totals(run)
                self.session.flush()
                self.record(AuditAction.RECALCULATE, "PayrollItem", item.id, {"net_salary": str(after.net_salary)})
        return PayrollItemResponseDTO.model_validate(item)

    def import_payroll_items(self, run_id: UUID, rows: list[Any]) -> ImportResultDTO:
        """
        Best-effort batch create. Each row is validated and written in its
        own savepoint, so a bad row is reported and the rest still import.
        An unknown or non-draft run fails the whole batch.
        """
        imported = 0
        errors: list[ImportRowErrorDTO] = []
        with self.uow.atomic():
            run = self.run_repo.require(run_id)
            self._ensure_draft(run)
            self.run_repo.claim(run)
            for row_number, row in enumerate(rows, start=1):
                try:
                    item = self._build_item(PayrollItemCreateDTO.model_validate(row))
                    with self.uow.savepoint():
                        item.payroll_run_id = run.id
                        self.session.add(item)
                        self.session.flush()
                except PydanticValidationError as exc:
                    message = _describe(exc)
                except (BizLedgerError, SQLAlchemyError) as exc:
                    message = str(exc)
                else:
                    imported += 1
                    continue
                logger.warning("payroll_import_row_rejected", extra={"row": row_number, "error": message})
                errors.append(ImportRowErrorDTO(
                    row=row_number, item=row if isinstance(row, dict) else None, error=message
                ))

            self.session.expire(run, ["items"])
            self._apply_totals(run)
            self.session.flush()
            self.record(AuditAction.IMPORT, "PayrollRun", run.id, {"imported": imported, "failed": len(errors)})
        logger.info(
            "payroll_items_imported",
            extra={"payroll_run_id": str(run_id), "imported": imported, "failed": len(errors)},
        )
        return ImportResultDTO(success=not errors, imported=imported, errors=errors)

    # Internals

    def _dispatch(self, run: PayrollRun, target: PayrollRunStatus, expected_version: int | None) -> None:
        if target == PayrollRunStatus.PROCESSING:
            self.process_payroll_run(run.id, expected_version)
        elif target == PayrollRunStatus.COMPLETED:
            self.finalize_payroll_run(run.id, expected_version)
        elif target == PayrollRunStatus.CANCELLED:
            self.cancel_payroll_run(run.id, expected_version)
        elif target == PayrollRunStatus.ERROR:
            self.mark_error(run.id, ["Marked as error"], expected_version)
        else:
            PAYROLL_RUN_STATUS.check(PayrollRunStatus(run.status), target)

    def _move(self, run: PayrollRun, target: PayrollRunStatus) -> None:
        current = run.status
        run.status = target.value
        run.updated_by = self.user_id
        self.session.flush()
        self.record(AuditAction.TRANSITION, "PayrollRun", run.id, {"from": current, "to": target.value})
        logger.info(
            "payroll_run_status_changed",
            extra={"payroll_run_id": str(run.id), "from": current, "to": target.value},
        )

    @staticmethod
    def _ensure_draft(run: PayrollRun) -> None:
        if run.status != PayrollRunStatus.DRAFT.value:
            raise ConflictError(f"Payroll run {run.id} is {run.status}; only draft runs can be changed")

    @staticmethod
    def _check_period(period_start: date, period_end: date) -> None:
        if period_end < period_start:
            raise ValidationError("Period end cannot be before period start")

    def _build_item(self, dto: PayrollItemCreateDTO) -> PayrollItem:
        gross = derive_gross_salary(
            dto.regular_hours, dto.overtime_hours, dto.hourly_rate, dto.gross_salary, dto.base_salary
        )
        deductions = _dump_rows(dto.deductions)
        figures = PayrollFigures.compute(gross, self.taxes.calculate_taxes(gross), _deductions(deductions))
        item = PayrollItem(
            employee_id=dto.employee_id,
            employee_name=dto.employee_name,
            regular_hours=dto.regular_hours,
            overtime_hours=dto.overtime_hours,
            hourly_rate=dto.hourly_rate,
            base_salary=dto.base_salary,
            deductions=deductions,
            benefits=_dump_rows(dto.benefits),
            notes=dto.notes,
            status=PayrollItemStatus.PENDING.value,
        )
        self._set_figures(item, figures)
        return item

    def _compute(self, item: PayrollItem) -> PayrollFigures:
        gross = to_money(item.gross_salary)
        return PayrollFigures.compute(gross, self.taxes.calculate_taxes(gross), _deductions(item.deductions))

    def _apply_figures(self, item: PayrollItem) -> None:
        self._set_figures(item, self._compute(item))

    @staticmethod
    def _figures_of(item: PayrollItem) -> PayrollFigures:
        return PayrollFigures(
            gross_salary=to_money(item.gross_salary),
            tax_amount=to_money(item.tax_amount),
            deduction_amount=to_money(item.deduction_amount),
            net_salary=to_money(item.net_salary),
        )

    @staticmethod
    def _set_figures(item: PayrollItem, figures: PayrollFigures) -> None:
        item.gross_salary = figures.gross_salary
        item.tax_amount = figures.tax_amount
        item.deduction_amount = figures.deduction_amount
        item.net_salary = figures.net_salary

    def _apply_totals(self, run: PayrollRun) -> None:
        totals = PayrollTotals.aggregate([self._figures_of(item) for item in run.items])
        run.employee_count = totals.employee_count
        run.gross_amount = totals.gross_amount
        run.tax_amount = totals.tax_amount
        run.deduction_amount = totals.deduction_amount
        run.net_amount = totals.net_amount
        run.updated_by = self.user_id
