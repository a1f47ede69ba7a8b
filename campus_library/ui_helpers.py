import json
import os
from typing import Any, Dict, List, Sequence, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable providing the default CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"
OUTPUT_MODES = {"plain", "json", "rich"}

_console = Console()
_output_mode = None

# (header, key) pairs per listing
STUDENT_COLUMNS = [("Student ID", "student_id"), ("Name", "name"), ("Email", "email"),
                   ("Phone", "phone"), ("Department", "department"), ("Year", "year")]
BOOK_COLUMNS = [("ISBN", "isbn"), ("Title", "title"), ("Author", "author"), ("Publisher", "publisher"),
                ("Category", "category"), ("Total", "total_copies"), ("Available", "available_copies")]
TRANSACTION_COLUMNS = [("ID", "id"), ("Student", "student_id"), ("Name", "student_name"),
                       ("ISBN", "isbn"), ("Title", "book_title"), ("Issued", "issue_date"),
                       ("Due", "due_date"), ("Returned", "return_date"), ("Status", "status")]
LOAN_COLUMNS = [("ID", "id"), ("ISBN", "isbn"), ("Title", "title"), ("Author", "author"),
                ("Issued", "issue_date"), ("Due", "due_date")]


def set_output_mode(mode: str) -> None:
    global _output_mode
    mode = (mode or "").lower().strip()
    if mode in OUTPUT_MODES:
        _output_mode = mode
    # Invalid values are ignored; the current mode stays


def get_output_mode() -> str:
    if _output_mode:
        return _output_mode
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _text(value: Any) -> str:
    return "N/A" if value is None or value == "" else str(value)


def print_records(records: List[Dict[str, Any]], columns: Sequence[Tuple[str, str]],
                  title: str, empty_message: str) -> None:
    """Print a listing in the current output mode.
    - plain: one ' | '-separated line per record, or ``empty_message``
    - json: JSON array of the displayed fields
    - rich: Rich table
    """
    mode = get_output_mode()

    if mode == "json":
        payload = [{key: r.get(key) for _, key in columns} for r in records]
        print(json.dumps(payload, ensure_ascii=False))
        return

    if not records:
        print(empty_message)
        return

    if mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for header, _ in columns:
            table.add_column(header)
        for r in records:
            table.add_row(*(_text(r.get(key)) for _, key in columns))
        _console.print(table)
    else:
        for r in records:
            print(" | ".join(_text(r.get(key)) for _, key in columns))


def print_stats_result(stats: Dict[str, Any]) -> None:
    mode = get_output_mode()
    lines = [
        ("Total Students", stats.get("totalStudents", 0)),
        ("Total Books", stats.get("totalBooks", 0)),
        ("Total Copies", stats.get("totalCopies", 0)),
        ("Available Copies", stats.get("availableCopies", 0)),
        ("Issued Books", stats.get("issuedBooks", 0)),
    ]

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {value}" for label, value in lines)
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for label, value in lines:
            print(f"{label}: {value}")
