"""
Payroll run export - CSV, JSON and PDF (HTML template rendered by WeasyPrint).
"""

import csv
import io
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from bizledger.application.dto.payroll_dto import PayrollRunExportDTO
from bizledger.domain.exceptions import ValidationError
from bizledger.domain.value_objects import ExportFormat

TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates"

CSV_COLUMNS = [
    "employee_id",
    "employee_name",
    "regular_hours",
    "overtime_hours",
    "hourly_rate",
    "base_salary",
    "gross_salary",
    "tax_amount",
    "deduction_amount",
    "net_salary",
    "status",
]

MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
    ExportFormat.PDF: "application/pdf",
}


@dataclass(frozen=True)
class ExportResult:
    content: bytes
    media_type: str
    filename: str


def format_money(amount: Any) -> str:
    if amount is None:
        return "-"
    return f"{Decimal(amount):,.2f}"


class PayrollExporter:
    """Read-only serialization of a payroll run with its items."""

    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=True,
        )
        self.jinja_env.filters["money"] = format_money

    def export(self, payload: PayrollRunExportDTO, export_format: ExportFormat | str) -> ExportResult:
        try:
            fmt = ExportFormat(export_format)
        except ValueError as exc:
            raise ValidationError(f"Unsupported export format: {export_format}") from exc

        if fmt == ExportFormat.CSV:
            content = self.to_csv(payload)
        elif fmt == ExportFormat.JSON:
            content = self.to_json(payload)
        else:
            content = self.to_pdf(payload)
        return ExportResult(
            content=content,
            media_type=MEDIA_TYPES[fmt],
            filename=f"payroll-run-{payload.period_end.isoformat()}-{payload.id}.{fmt.value}",
        )

    def to_csv(self, payload: PayrollRunExportDTO) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_COLUMNS)
        for item in payload.items:
            row = item.model_dump(include=set(CSV_COLUMNS))
            writer.writerow(["" if row[col] is None else getattr(row[col], "value", row[col]) for col in CSV_COLUMNS])
        return buffer.getvalue().encode("utf-8")

    def to_json(self, payload: PayrollRunExportDTO) -> bytes:
        return payload.model_dump_json(indent=2).encode("utf-8")

    def render_html(self, payload: PayrollRunExportDTO) -> str:
        template = self.jinja_env.get_template("payroll_run.html")
        return template.render(
            run=payload,
            items=payload.items,
            generated_at=datetime.now(timezone.utc),
        )

    def to_pdf(self, payload: PayrollRunExportDTO) -> bytes:
        # Imported here: WeasyPrint loads native Pango/Cairo libraries on import.
        from weasyprint import HTML

        return HTML(string=self.render_html(payload)).write_pdf()
