"""Spreadsheet reports of the students, books and transactions lists."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

# (header, key, width)
Column = Tuple[str, str, int]

COLUMNS: Dict[str, List[Column]] = {
    "Students": [
        ("Student ID", "student_id", 15),
        ("Name", "name", 25),
        ("Email", "email", 30),
        ("Phone", "phone", 15),
        ("Department", "department", 20),
        ("Year", "year", 12),
        ("Created At", "created_at", 20),
    ],
    "Books": [
        ("ISBN", "isbn", 15),
        ("Title", "title", 35),
        ("Author", "author", 25),
        ("Publisher", "publisher", 25),
        ("Category", "category", 20),
        ("Total Copies", "total_copies", 15),
        ("Available Copies", "available_copies", 18),
        ("Created At", "created_at", 20),
    ],
    "Transactions": [
        ("Transaction ID", "id", 15),
        ("Student ID", "student_id", 15),
        ("Student Name", "student_name", 25),
        ("ISBN", "isbn", 15),
        ("Book Title", "book_title", 35),
        ("Issue Date", "issue_date", 20),
        ("Due Date", "due_date", 20),
        ("Return Date", "return_date", 20),
        ("Status", "status", 12),
    ],
}

# Report types that end with a record count
SUMMARY_TYPES = ("Books", "Transactions")

TITLE_FILL = PatternFill("solid", fgColor="667EEA")
HEADER_FILL = PatternFill("solid", fgColor="764BA2")
STRIPE_FILL = PatternFill("solid", fgColor="F8F9FA")
SUMMARY_FILL = PatternFill("solid", fgColor="FFEB3B")
HEADER_BORDER = Border(*(Side(style="thin"),) * 4)
CELL_BORDER = Border(*(Side(style="thin", color="E0E0E0"),) * 4)


def default_filename(kind: str) -> str:
    return f"library_{kind.lower()}_{datetime.now():%Y-%m-%d}.xlsx"


def export_to_excel(kind: str, rows: Sequence[Mapping[str, Any]], file_path: str) -> str:
    """Write ``rows`` as a formatted ``kind`` report to ``file_path`` and return the path.

    Raises ValueError for an unknown report type; I/O errors propagate.
    """
    if kind not in COLUMNS:
        raise ValueError(f"Unsupported export type: {kind}")
    columns = COLUMNS[kind]
    last = get_column_letter(len(columns))

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = kind

    ws.merge_cells(f"A1:{last}1")
    title_cell = ws["A1"]
    title_cell.value = f"{kind} Report"
    title_cell.font = Font(size=16, bold=True, color="FFFFFF")
    title_cell.fill = TITLE_FILL
    title_cell.alignment = Alignment(vertical="center", horizontal="center")
    ws.row_dimensions[1].height = 30

    ws.merge_cells(f"A2:{last}2")
    date_cell = ws["A2"]
    date_cell.value = f"Generated on: {datetime.now():%Y-%m-%d %H:%M:%S}"
    date_cell.font = Font(size=10, italic=True)
    date_cell.alignment = Alignment(horizontal="center")

    for index, (header, _, width) in enumerate(columns, 1):
        cell = ws.cell(row=3, column=index, value=header)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(vertical="center", horizontal="center")
        cell.border = HEADER_BORDER
        ws.column_dimensions[get_column_letter(index)].width = width
    ws.row_dimensions[3].height = 25

    for index, item in enumerate(rows):
        ws.append([item.get(key) for _, key, _ in columns])
        for cell in ws[ws.max_row]:
            cell.border = CELL_BORDER
            cell.alignment = Alignment(vertical="center")
            if index % 2 == 0:
                cell.fill = STRIPE_FILL

    if kind in SUMMARY_TYPES:
        ws.append([])
        ws.append(["Total Records:", len(rows)])
        for column in (1, 2):
            cell = ws.cell(row=ws.max_row, column=column)
            cell.font = Font(bold=True)
            cell.fill = SUMMARY_FILL

    wb.save(file_path)
    logger.info("Exported %d %s rows to %s", len(rows), kind.lower(), file_path)
    return file_path
