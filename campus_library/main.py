import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import typer
from rich.prompt import Confirm

from campus_library.commands import CommandHandler
from campus_library.config import settings
from campus_library.errors import LibraryError
from campus_library.library import Library
from campus_library.ui_helpers import (
    BOOK_COLUMNS,
    LOAN_COLUMNS,
    OUTPUT_MODE_ENV,
    STUDENT_COLUMNS,
    TRANSACTION_COLUMNS,
    print_records,
    print_stats_result,
    set_output_mode,
)

APP_NAME = "Library CLI"

# Options shared by every command, filled in by the app callback
_state: Dict[str, Optional[str]] = {"db": None}


@contextmanager
def _commands() -> Iterator[CommandHandler]:
    """Open the library for one command; pending writes are flushed on the way out."""
    library = Library(db_file=_state["db"])
    try:
        yield CommandHandler(library)
    finally:
        library.close()


def _report(result: Dict[str, Any], message: str) -> None:
    if result.get("success"):
        print(message)
    else:
        print(f"Error: {result.get('error')}")
        raise typer.Exit(code=1)


def _confirmed(question: str, yes: bool) -> bool:
    if yes or Confirm.ask(question, default=False):
        return True
    print("Cancelled.")
    return False


# --- Typer CLI application ---
app = typer.Typer(help=APP_NAME)
student_app = typer.Typer(help="Manage students.")
book_app = typer.Typer(help="Manage books.")
app.add_typer(student_app, name="student")
app.add_typer(book_app, name="book")


@app.callback()
def _global_options(
    db: Optional[str] = typer.Option(None, "--db", help="Database file (default: LIBRARY_DB_FILE or ~/.campus-library/library.db)"),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Global options for the CLI (database file, output mode)."""
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.WARNING),
                        format="%(levelname)s %(name)s: %(message)s")
    _state["db"] = db
    set_output_mode(output or os.environ.get(OUTPUT_MODE_ENV, "plain"))


# --- Students ---
@student_app.command("add")
def student_add(
    student_id: str,
    name: str,
    email: str,
    phone: Optional[str] = typer.Option(None, "--phone"),
    department: Optional[str] = typer.Option(None, "--department", "-d"),
    year: Optional[str] = typer.Option(None, "--year", "-y"),
):
    """Register a new student."""
    with _commands() as commands:
        result = commands.add_student({
            "student_id": student_id, "name": name, "email": email,
            "phone": phone, "department": department, "year": year,
        })
    _report(result, f"Student {student_id} added.")


@student_app.command("list")
def student_list(search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter on ID, name, email or department")):
    """List students, newest first."""
    with _commands() as commands:
        students = commands.get_students(search)
    print_records(students, STUDENT_COLUMNS, "🎓 Students", "No students found.")


@student_app.command("update")
def student_update(
    student_id: str,
    name: str,
    email: str,
    phone: Optional[str] = typer.Option(None, "--phone"),
    department: Optional[str] = typer.Option(None, "--department", "-d"),
    year: Optional[str] = typer.Option(None, "--year", "-y"),
):
    """Replace a student's details."""
    with _commands() as commands:
        result = commands.update_student({
            "student_id": student_id, "name": name, "email": email,
            "phone": phone, "department": department, "year": year,
        })
    _report(result, f"Student {student_id} updated.")


@student_app.command("delete")
def student_delete(student_id: str, yes: bool = typer.Option(False, "--yes", help="Skip confirmation")):
    """Delete a student. Their loan records are kept."""
    if not _confirmed(f"Delete student {student_id}?", yes):
        return
    with _commands() as commands:
        result = commands.delete_student(student_id)
    _report(result, f"Student {student_id} deleted.")


@student_app.command("loans")
def student_loans(student_id: str):
    """Show the books a student currently holds."""
    with _commands() as commands:
        loans = commands.get_student_books(student_id)
    print_records(loans, LOAN_COLUMNS, f"📖 Loans of {student_id}", f"Student {student_id} has no active loans.")


# --- Books ---
@book_app.command("add")
def book_add(
    isbn: str,
    title: str,
    author: str,
    publisher: Optional[str] = typer.Option(None, "--publisher", "-p"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    copies: int = typer.Option(1, "--copies", "-n", min=0, help="Total copies"),
):
    """Add a book with all copies available."""
    with _commands() as commands:
        result = commands.add_book({
            "isbn": isbn, "title": title, "author": author,
            "publisher": publisher, "category": category, "total_copies": copies,
        })
    _report(result, f"Book {isbn} added.")


@book_app.command("list")
def book_list(search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter on ISBN, title, author or category")):
    """List books, newest first."""
    with _commands() as commands:
        books = commands.get_books(search)
    print_records(books, BOOK_COLUMNS, "📚 Books", "No books found.")


@book_app.command("update")
def book_update(
    isbn: str,
    title: str,
    author: str,
    publisher: Optional[str] = typer.Option(None, "--publisher", "-p"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    copies: int = typer.Option(..., "--copies", "-n", min=0, help="New total copies"),
):
    """Replace a book's details; available copies follow the change in total."""
    with _commands() as commands:
        result = commands.update_book({
            "isbn": isbn, "title": title, "author": author,
            "publisher": publisher, "category": category, "total_copies": copies,
        })
    _report(result, f"Book {isbn} updated.")


@book_app.command("delete")
def book_delete(isbn: str, yes: bool = typer.Option(False, "--yes", help="Skip confirmation")):
    """Delete a book. Loan records for it are kept."""
    if not _confirmed(f"Delete book {isbn}?", yes):
        return
    with _commands() as commands:
        result = commands.delete_book(isbn)
    _report(result, f"Book {isbn} deleted.")


# --- Lending ---
@app.command("issue")
def cli_issue(student_id: str, isbn: str):
    """Lend a book to a student for the loan period."""
    with _commands() as commands:
        result = commands.issue_book({"student_id": student_id, "isbn": isbn})
    _report(result, f"Book {isbn} issued to {student_id}.")


@app.command("return")
def cli_return(transaction_id: int):
    """Mark a loan as returned."""
    with _commands() as commands:
        result = commands.return_book(transaction_id)
    _report(result, f"Transaction {transaction_id} returned.")


@app.command("delete-transaction")
def cli_delete_transaction(transaction_id: int, yes: bool = typer.Option(False, "--yes", help="Skip confirmation")):
    """Delete a returned loan record."""
    if not _confirmed(f"Delete transaction {transaction_id}?", yes):
        return
    with _commands() as commands:
        result = commands.delete_transaction(transaction_id)
    _report(result, f"Transaction {transaction_id} deleted.")


@app.command("transactions")
def cli_transactions(status: Optional[str] = typer.Option(None, "--status", help="issued | returned")):
    """List loan records, newest first."""
    with _commands() as commands:
        transactions = commands.get_transactions()
    if status:
        transactions = [t for t in transactions if t["status"] == status.lower()]
    print_records(transactions, TRANSACTION_COLUMNS, "🔁 Transactions", "No transactions found.")


@app.command("stats")
def cli_stats():
    """Show library statistics."""
    with _commands() as commands:
        stats = commands.get_statistics()
    print_stats_result(stats)


# --- Export, backup and restore ---
@app.command("export")
def cli_export(
    kind: str = typer.Argument(..., help="students | books | transactions"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Target .xlsx file"),
):
    """Export a list to an Excel workbook."""
    with _commands() as commands:
        result = commands.export_to_excel({"type": kind.capitalize(), "file_path": file})
    _report(result, f"Exported to {result.get('filePath')}")


@app.command("backup")
def cli_backup(destination: str):
    """Copy the database file to DESTINATION."""
    library = Library(db_file=_state["db"])
    try:
        library.backup_database(destination)
    except LibraryError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    finally:
        library.close()
    print(f"Database backed up to {destination}")


@app.command("restore")
def cli_restore(source: str, yes: bool = typer.Option(False, "--yes", help="Skip confirmation")):
    """Replace the database with a backup file."""
    if not _confirmed("This will replace your current database. Are you sure?", yes):
        return
    library = Library(db_file=_state["db"])
    try:
        library.restore_database(source)
    except LibraryError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    finally:
        library.close()
    print(f"Database restored from {source}")


if __name__ == "__main__":
    app()
