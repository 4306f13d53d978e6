"""
CSV and Excel exports.

Excel output is SpreadsheetML 2003 (XML), which Excel opens as a workbook
without a binary writer.
"""
import csv
import io
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

CellValue = Any


class ExportFormat(str, Enum):
    CSV = "csv"
    XLSX = "xlsx"


CLIENT_HEADERS = [
    "Name",
    "Phone",
    "Email",
    "Region",
    "City",
    "Address",
    "Total Orders",
    "Created Date",
]

INVOICE_HEADERS = [
    "Invoice Number",
    "Date",
    "Client Name",
    "Client Phone",
    "Subtotal (GHS)",
    "Tax (GHS)",
    "Total (GHS)",
    "Paid (GHS)",
    "Status",
    "Due Date",
]

PAYMENT_HEADERS = [
    "Payment Number",
    "Date",
    "Client Name",
    "Client Phone",
    "Order Number",
    "Amount (GHS)",
    "Payment Method",
    "Transaction ID",
    "Status",
    "Notes",
]


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.date().isoformat() if isinstance(value, datetime) else str(value)


def format_amount(value: Optional[Decimal]) -> str:
    return f"{Decimal(value or 0):.2f}"


def generate_csv(headers: Sequence[str], rows: Iterable[Sequence[CellValue]]) -> str:
    """Header row as-is, every data cell quoted; None renders empty."""
    buffer = io.StringIO()
    buffer.write(",".join(headers) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return buffer.getvalue().rstrip("\n")


def _is_number(cell: CellValue) -> bool:
    if isinstance(cell, bool):
        return False
    if isinstance(cell, (int, float, Decimal)):
        return True
    if isinstance(cell, str):
        # Plain decimals only; phone numbers keep their leading "+" or zero
        text = cell.strip()
        if text.startswith("0") and len(text) > 1 and text[1] != ".":
            return False
        return text.lstrip("-").replace(".", "", 1).isdigit()
    return False


def generate_excel_xml(
    headers: Sequence[str], rows: Iterable[Sequence[CellValue]], sheet_name: str = "Data"
) -> str:
    """
    Build a SpreadsheetML workbook.

    Numeric cells are typed Number with a currency format; everything else
    is an escaped String.
    """
    parts: List[str] = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<?mso-application progid="Excel.Sheet"?>',
        '<Workbook xmlns="urn:schemas-microsoft-com:office:spreadsheet"',
        ' xmlns:ss="urn:schemas-microsoft-com:office:spreadsheet">',
        "<Styles>",
        '  <Style ss:ID="Header">',
        '    <Font ss:Bold="1"/>',
        '    <Interior ss:Color="#E0E0E0" ss:Pattern="Solid"/>',
        "  </Style>",
        '  <Style ss:ID="Currency">',
        '    <NumberFormat ss:Format="#,##0.00"/>',
        "  </Style>",
        "</Styles>",
        f'<Worksheet ss:Name="{_escape(sheet_name)}">',
        "<Table>",
    ]

    header_cells = "".join(
        f'<Cell><Data ss:Type="String">{_escape(header)}</Data></Cell>' for header in headers
    )
    parts.append(f'<Row ss:StyleID="Header">{header_cells}</Row>')

    for row in rows:
        cells = []
        for cell in row:
            if _is_number(cell):
                cells.append(
                    f'<Cell ss:StyleID="Currency"><Data ss:Type="Number">{cell}</Data></Cell>'
                )
            else:
                text = "" if cell is None else str(cell)
                cells.append(f'<Cell><Data ss:Type="String">{_escape(text)}</Data></Cell>')
        parts.append(f"<Row>{''.join(cells)}</Row>")

    parts.extend(["</Table>", "</Worksheet>", "</Workbook>"])
    return "\n".join(parts)


def _escape(value: str) -> str:
    return escape(str(value), {'"': "&quot;"})


def render_export(
    resource: str,
    headers: Sequence[str],
    rows: Iterable[Sequence[CellValue]],
    export_format: ExportFormat,
    today: Optional[date] = None,
) -> Tuple[str, str, str]:
    """
    Render rows in the requested format.

    Returns:
        (body, media type, attachment filename)
    """
    stamp = (today or date.today()).isoformat()
    if export_format == ExportFormat.XLSX:
        body = generate_excel_xml(headers, rows, sheet_name=resource.capitalize())
        return body, "application/vnd.ms-excel", f"{resource}-{stamp}.xls"
    return generate_csv(headers, rows), "text/csv; charset=utf-8", f"{resource}-{stamp}.csv"
