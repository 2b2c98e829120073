"""
Integration tests - payroll runs, items and batch import.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bizledger.application.dto.payroll_dto import (
    PayrollDeductionDTO,
    PayrollItemCreateDTO,
    PayrollItemUpdateDTO,
    PayrollRunCreateDTO,
    PayrollRunUpdateDTO,
)
from bizledger.application.services import PayrollEngine
from bizledger.domain.exceptions import (
    ConcurrencyError,
    ConflictError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from bizledger.domain.value_objects import PayrollItemStatus, PayrollRunStatus
from bizledger.infrastructure.database.unit_of_work import UnitOfWork


@pytest.fixture
def make_run(payroll):
    def _make(name="January 2026", start=date(2026, 1, 1), end=date(2026, 1, 31)):
        return payroll.create_payroll_run(
            PayrollRunCreateDTO(name=name, period_start=start, period_end=end, payment_date=end)
        )
    return _make


@pytest.fixture
def run(make_run):
    return make_run()


def _hourly(name="Dana Hourly", **kwargs):
    return PayrollItemCreateDTO(
        employee_id=kwargs.pop("employee_id", "E-1"),
        employee_name=name,
        regular_hours=Decimal("40"),
        overtime_hours=Decimal("5"),
        hourly_rate=Decimal("20"),
        **kwargs,
    )


def _salaried(name="Sam Salaried", gross="1000", **kwargs):
    return PayrollItemCreateDTO(
        employee_id=kwargs.pop("employee_id", "E-2"), employee_name=name, gross_salary=Decimal(gross), **kwargs
    )


class TestPayrollRuns:

    def test_created_as_empty_draft(self, run):
        assert run.status == PayrollRunStatus.DRAFT
        assert run.employee_count == 0
        assert run.net_amount == Decimal("0.00")
        assert run.processing_errors == []

    def test_period_end_before_start(self, payroll):
        with pytest.raises(ValidationError, match="Period end"):
            payroll.create_payroll_run(PayrollRunCreateDTO(
                name="Bad", period_start=date(2026, 2, 1), period_end=date(2026, 1, 1),
                payment_date=date(2026, 2, 1),
            ))

    def test_page_envelope(self, payroll, make_run):
        for month in range(1, 4):
            make_run(f"Run {month}", date(2026, month, 1), date(2026, month, 28))

        page = payroll.list_payroll_runs(page=2, limit=2)
        assert page.total == 3
        assert page.total_pages == 2
        assert [r.name for r in page.data] == ["Run 1"]

        assert payroll.list_payroll_runs(search="Run 3").total == 1
        assert payroll.list_payroll_runs(start_date=date(2026, 2, 1)).total == 2
        default = payroll.list_payroll_runs()
        assert default.limit == 10
        assert default.total_pages == 1

    def test_update_fields_while_draft(self, payroll, run):
        updated = payroll.update_payroll_run(run.id, PayrollRunUpdateDTO(name="Jan payroll", notes="bonus month"))
        assert updated.name == "Jan payroll"
        assert updated.notes == "bonus month"
        assert updated.version == run.version + 1

    def test_fields_locked_after_draft(self, payroll, run):
        payroll.cancel_payroll_run(run.id)
        with pytest.raises(ConflictError, match="only draft"):
            payroll.update_payroll_run(run.id, PayrollRunUpdateDTO(name="Too late"))

    def test_unknown_run(self, payroll):
        with pytest.raises(NotFoundError):
            payroll.get_payroll_run(uuid4())


class TestPayrollItems:

    def test_hourly_item_figures(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _hourly())
        taxes = payroll.calculate_taxes(Decimal("950"))
        assert item.gross_salary == Decimal("950.00")
        assert item.tax_amount == taxes.total_tax
        assert item.net_salary == Decimal("950.00") - taxes.total_tax
        assert item.status == PayrollItemStatus.PENDING

    def test_deductions_reduce_net(self, payroll, run):
        item = payroll.create_payroll_item(
            run.id, _salaried(deductions=[PayrollDeductionDTO(name="Insurance", amount=Decimal("50"))])
        )
        assert item.tax_amount == Decimal("276.50")
        assert item.deduction_amount == Decimal("326.50")
        assert item.net_salary == Decimal("673.50")
        assert item.deductions[0].name == "Insurance"
        assert item.deductions[0].id

    def test_negative_net_rejected(self, payroll, run):
        dto = _salaried(gross="100", deductions=[PayrollDeductionDTO(name="Loan", amount=Decimal("500"))])
        with pytest.raises(ValidationError, match="exceed gross"):
            payroll.create_payroll_item(run.id, dto)
        assert payroll.get_payroll_run(run.id).employee_count == 0

    def test_run_totals_follow_items(self, payroll, run):
        hourly = payroll.create_payroll_item(run.id, _hourly())
        salaried = payroll.create_payroll_item(run.id, _salaried())

        totals = payroll.get_payroll_run(run.id)
        assert totals.employee_count == 2
        assert totals.gross_amount == Decimal("1950.00")
        assert totals.net_amount == hourly.net_salary + salaried.net_salary

        payroll.delete_payroll_item(hourly.id)
        after_delete = payroll.get_payroll_run(run.id)
        assert after_delete.employee_count == 1
        assert after_delete.gross_amount == Decimal("1000.00")

    def test_update_gross_recomputes(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        updated = payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(gross_salary=Decimal("2000")))
        assert updated.tax_amount == Decimal("553.00")
        assert updated.net_salary == Decimal("1447.00")
        assert payroll.get_payroll_run(run.id).gross_amount == Decimal("2000.00")

    def test_update_hours_rederives_gross(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _hourly())
        updated = payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(overtime_hours=Decimal("0")))
        assert updated.gross_salary == Decimal("800.00")

    def test_update_name_keeps_figures(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        updated = payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(employee_name="Sam S."))
        assert updated.employee_name == "Sam S."
        assert updated.net_salary == item.net_salary

    def test_item_error_can_return_to_pending(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        errored = payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(status=PayrollItemStatus.ERROR))
        assert errored.status == PayrollItemStatus.ERROR
        pending = payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(status=PayrollItemStatus.PENDING))
        assert pending.status == PayrollItemStatus.PENDING

    def test_item_cannot_be_marked_processed_directly(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        with pytest.raises(ValidationError, match="only when their run is processed"):
            payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(status=PayrollItemStatus.PROCESSED))
        assert payroll.get_payroll_item(item.id).status == PayrollItemStatus.PENDING

        processed = payroll.process_payroll_run(run.id)
        assert processed.status == PayrollRunStatus.PROCESSING

    def test_items_frozen_once_run_leaves_draft(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        payroll.process_payroll_run(run.id)
        with pytest.raises(ConflictError):
            payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(notes="late"))
        with pytest.raises(ConflictError):
            payroll.delete_payroll_item(item.id)
        with pytest.raises(ConflictError):
            payroll.create_payroll_item(run.id, _hourly())

    def test_list_and_lookup(self, payroll, run, make_run):
        payroll.create_payroll_item(run.id, _hourly())
        payroll.create_payroll_item(run.id, _salaried())
        other = make_run("February", date(2026, 2, 1), date(2026, 2, 28))
        payroll.create_payroll_item(other.id, _salaried("Sam Salaried"))

        assert len(payroll.get_by_run_id(run.id)) == 2
        assert payroll.list_payroll_items(payroll_run_id=run.id).total == 2
        assert payroll.list_payroll_items(employee_id="E-2").total == 2
        assert payroll.list_payroll_items(search="dana").total == 1
        page = payroll.list_payroll_items(page=1, limit=2)
        assert page.total == 3
        assert page.total_pages == 2
        assert len(page.data) == 2

    def test_recalculate_item_is_idempotent(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        version = payroll.get_payroll_run(run.id).version
        first = payroll.recalculate_payroll_item(item.id)
        second = payroll.recalculate_payroll_item(item.id)
        assert first.net_salary == second.net_salary == item.net_salary
        assert payroll.get_payroll_run(run.id).version == version

    def test_recalculate_run_keeps_totals(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        recalculated = payroll.recalculate_payroll_run(run.id)
        assert recalculated.net_amount == item.net_salary


class TestRunLifecycle:

    def test_process_requires_items(self, payroll, run):
        with pytest.raises(ValidationError, match="without items"):
            payroll.process_payroll_run(run.id)
        assert payroll.get_payroll_run(run.id).status == PayrollRunStatus.DRAFT

    def test_process_then_finalize(self, payroll, run):
        payroll.create_payroll_item(run.id, _hourly())
        processed = payroll.process_payroll_run(run.id)
        assert processed.status == PayrollRunStatus.PROCESSING
        assert all(i.status == PayrollItemStatus.PROCESSED for i in payroll.get_by_run_id(run.id))

        completed = payroll.finalize_payroll_run(run.id)
        assert completed.status == PayrollRunStatus.COMPLETED

    def test_errored_item_blocks_processing(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(status=PayrollItemStatus.ERROR))
        with pytest.raises(InvalidStatusTransitionError):
            payroll.process_payroll_run(run.id)
        assert payroll.get_payroll_run(run.id).status == PayrollRunStatus.DRAFT

    def test_finalize_requires_processing(self, payroll, run):
        with pytest.raises(InvalidStatusTransitionError):
            payroll.finalize_payroll_run(run.id)

    def test_mark_error_records_messages(self, payroll, run):
        payroll.create_payroll_item(run.id, _salaried())
        payroll.process_payroll_run(run.id)
        failed = payroll.mark_error(run.id, ["Bank file rejected"])
        assert failed.status == PayrollRunStatus.ERROR
        assert failed.processing_errors == ["Bank file rejected"]

    def test_mark_error_needs_messages(self, payroll, run):
        with pytest.raises(ValidationError):
            payroll.mark_error(run.id, [])

    def test_cancel_is_terminal(self, payroll, run):
        payroll.cancel_payroll_run(run.id)
        with pytest.raises(InvalidStatusTransitionError):
            payroll.process_payroll_run(run.id)

    def test_status_update_dispatches(self, payroll, run):
        payroll.create_payroll_item(run.id, _salaried())
        processing = payroll.update_payroll_run(run.id, PayrollRunUpdateDTO(status=PayrollRunStatus.PROCESSING))
        assert processing.status == PayrollRunStatus.PROCESSING
        errored = payroll.update_payroll_run(run.id, PayrollRunUpdateDTO(status=PayrollRunStatus.ERROR))
        assert errored.processing_errors == ["Marked as error"]

    def test_status_update_rejects_skipping(self, payroll, run):
        with pytest.raises(InvalidStatusTransitionError):
            payroll.update_payroll_run(run.id, PayrollRunUpdateDTO(status=PayrollRunStatus.COMPLETED))

    def test_delete_rules(self, payroll, run, make_run):
        payroll.delete_payroll_run(run.id)
        with pytest.raises(NotFoundError):
            payroll.get_payroll_run(run.id)

        busy = make_run("Busy")
        payroll.create_payroll_item(busy.id, _salaried())
        payroll.process_payroll_run(busy.id)
        with pytest.raises(ConflictError, match="can be deleted"):
            payroll.delete_payroll_run(busy.id)

    def test_delete_cascades_items(self, payroll, run):
        item = payroll.create_payroll_item(run.id, _salaried())
        payroll.delete_payroll_run(run.id)
        with pytest.raises(NotFoundError):
            payroll.get_payroll_item(item.id)


class TestRunConcurrency:

    def test_process_with_stale_version(self, payroll, run):
        payroll.create_payroll_item(run.id, _salaried())
        current = payroll.get_payroll_run(run.id)

        with pytest.raises(ConcurrencyError):
            payroll.process_payroll_run(run.id, expected_version=current.version - 1)

        after = payroll.get_payroll_run(run.id)
        assert after.status == PayrollRunStatus.DRAFT
        assert after.version == current.version
        assert all(i.status == PayrollItemStatus.PENDING for i in payroll.get_by_run_id(run.id))

    def test_finalize_with_stale_version(self, payroll, run):
        payroll.create_payroll_item(run.id, _salaried())
        stale = payroll.get_payroll_run(run.id).version
        processing = payroll.process_payroll_run(run.id)

        with pytest.raises(ConcurrencyError):
            payroll.finalize_payroll_run(run.id, expected_version=stale)

        after = payroll.get_payroll_run(run.id)
        assert after.status == PayrollRunStatus.PROCESSING
        assert after.version == processing.version

    def test_interleaved_item_writes_on_one_run(self, payroll, run, session_factory, context, settings):
        item = payroll.create_payroll_item(run.id, _salaried())

        other_session = session_factory()
        try:
            other = PayrollEngine(UnitOfWork(other_session), context, settings)
            other.update_payroll_item(item.id, PayrollItemUpdateDTO(notes="first writer"))
        finally:
            other_session.close()

        # this session still holds the run at the version it read before the other write
        with pytest.raises(ConcurrencyError):
            payroll.update_payroll_item(item.id, PayrollItemUpdateDTO(notes="second writer"))

        assert payroll.get_payroll_item(item.id).notes == "first writer"


class TestImport:

    def test_partial_import(self, payroll, run):
        rows = [
            {"employee_name": "Ana", "gross_salary": "1000"},
            {"gross_salary": "500"},
            {"employee_name": "Ben", "regular_hours": "40", "hourly_rate": "20"},
            {"employee_name": "Cleo", "gross_salary": "100",
             "deductions": [{"name": "Loan", "amount": "900"}]},
        ]
        result = payroll.import_payroll_items(run.id, rows)

        assert result.imported == 2
        assert result.success is False
        assert [e.row for e in result.errors] == [2, 4]
        assert "employee_name" in result.errors[0].error
        assert result.errors[1].item == rows[3]

        totals = payroll.get_payroll_run(run.id)
        assert totals.employee_count == 2
        assert totals.gross_amount == Decimal("1800.00")

    def test_clean_import(self, payroll, run):
        result = payroll.import_payroll_items(run.id, [{"employee_name": "Ana", "base_salary": "3000"}])
        assert result.success is True
        assert result.errors == []
        assert payroll.get_by_run_id(run.id)[0].gross_salary == Decimal("3000.00")

    def test_non_object_row(self, payroll, run):
        result = payroll.import_payroll_items(run.id, ["not an item"])
        assert result.imported == 0
        assert result.errors[0].item is None

    def test_unknown_run(self, payroll):
        with pytest.raises(NotFoundError):
            payroll.import_payroll_items(uuid4(), [{"employee_name": "Ana", "gross_salary": "1"}])

    def test_non_draft_run(self, payroll, run):
        payroll.cancel_payroll_run(run.id)
        with pytest.raises(ConflictError):
            payroll.import_payroll_items(run.id, [{"employee_name": "Ana", "gross_salary": "1"}])


class TestTaxes:

    def test_calculate(self, payroll):
        assert payroll.calculate_taxes(Decimal("1000")).total_tax == Decimal("276.50")

    def test_negative_gross(self, payroll):
        with pytest.raises(ValidationError):
            payroll.calculate_taxes(Decimal("-1"))
