"""
Summary export of searched emails.

Produces a one-row-per-email overview (transaction date, amount, subject,
sender, received time) as CSV or Excel, for pasting into a tax declaration.

Public API:
  export_summary_csv(records: list[EmailRecord]) -> bytes
  export_summary_xlsx(records: list[EmailRecord]) -> bytes
"""

import csv
import io
import logging
from decimal import Decimal

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from taxreport.models.email import EmailRecord
from taxreport.services.amount_extractor import parse_amount
from taxreport.services.report_bundler import format_received_at

logger = logging.getLogger(__name__)

COLUMNS = [
    "Datum",
    "Betrag (CHF)",
    "Betreff",
    "Absender",
    "Empfangen",
]

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_HEADER_FONT = Font(bold=True, size=11)
_TOTAL_FONT = Font(bold=True, size=11)

_HEADER_FILL = PatternFill(
    start_color="D9E1F2",
    end_color="D9E1F2",
    fill_type="solid",
)

# Column widths (characters) keyed by column header name
_COLUMN_WIDTHS: dict[str, int] = {
    "Datum": 12,
    "Betrag (CHF)": 14,
    "Betreff": 50,
    "Absender": 32,
    "Empfangen": 18,
}
_DEFAULT_COLUMN_WIDTH = 16


# Leading characters that make Excel read a cell as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _as_text(value: str) -> str:
    """Prefix a quote so sender-controlled text is never evaluated as a formula."""
    if value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


def _row(record: EmailRecord) -> list[str]:
    return [
        _as_text(record.transaction_date or ""),
        _as_text(record.amount or ""),
        _as_text(record.subject),
        _as_text(record.sender),
        format_received_at(record),
    ]


def export_summary_csv(records: list[EmailRecord]) -> bytes:
    """
    Export records as CSV.

    Semicolon-delimited and UTF-8 with BOM, which is what Excel expects with
    Swiss regional settings.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=";")
    writer.writerow(COLUMNS)
    for record in records:
        writer.writerow(_row(record))
    return buf.getvalue().encode("utf-8-sig")


def export_summary_xlsx(records: list[EmailRecord]) -> bytes:
    """
    Export records as an Excel workbook.

    Amounts that parse as numbers are written as numeric cells and summed in a
    final total row; unparsable amounts are kept as text and left out of the
    total.
    """
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Belege"

    # ------------------------------------------------------------------
    # Row 1: Column headers
    # ------------------------------------------------------------------
    ws.append(COLUMNS)
    for col_idx in range(1, len(COLUMNS) + 1):
        cell = ws.cell(row=1, column=col_idx)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center")

    # ------------------------------------------------------------------
    # Data rows
    # ------------------------------------------------------------------
    total = Decimal("0")
    for record in records:
        row = _row(record)
        value = parse_amount(record.amount) if record.amount else None
        if value is not None:
            total += value
            row[1] = float(value)
        ws.append(row)
        if value is not None:
            ws.cell(row=ws.max_row, column=2).number_format = "#,##0.00"

    # ------------------------------------------------------------------
    # Total row
    # ------------------------------------------------------------------
    ws.append(["Total", float(total)])
    total_row = ws.max_row
    ws.cell(row=total_row, column=1).font = _TOTAL_FONT
    ws.cell(row=total_row, column=2).font = _TOTAL_FONT
    ws.cell(row=total_row, column=2).number_format = "#,##0.00"

    # ------------------------------------------------------------------
    # Set column widths, freeze header row
    # ------------------------------------------------------------------
    for col_idx, col_name in enumerate(COLUMNS, start=1):
        width = _COLUMN_WIDTHS.get(col_name, _DEFAULT_COLUMN_WIDTH)
        ws.column_dimensions[get_column_letter(col_idx)].width = width

    ws.freeze_panes = ws.cell(row=2, column=1)

    logger.info(f"Summary export: {len(records)} rows, total CHF {total}")

    # ------------------------------------------------------------------
    # Serialize to bytes
    # ------------------------------------------------------------------
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.read()
