"""Loan records and the read-only views derived from them."""

from __future__ import annotations

from typing import Any, Mapping

ISSUED = "issued"
RETURNED = "returned"


class Transaction:
    """A loan of one copy of a book to one student.

    ``student_name`` and ``book_title`` come from the joined list view and are
    None when the referenced student or book has since been deleted.
    """

    def __init__(self, id: int, student_id: str, isbn: str, issue_date: str | None,
                 due_date: str | None = None, return_date: str | None = None,
                 status: str = ISSUED, student_name: str | None = None,
                 book_title: str | None = None) -> None:
        self.id = id
        self.student_id = student_id
        self.isbn = isbn
        self.issue_date = issue_date
        self.due_date = due_date
        self.return_date = return_date
        self.status = status
        self.student_name = student_name
        self.book_title = book_title

    @property
    def is_active(self) -> bool:
        return self.status == ISSUED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "isbn": self.isbn,
            "book_title": self.book_title,
            "issue_date": self.issue_date,
            "due_date": self.due_date,
            "return_date": self.return_date,
            "status": self.status,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Transaction":
        keys = row.keys()
        return Transaction(
            id=row["id"],
            student_id=row["student_id"],
            isbn=row["isbn"],
            issue_date=row["issue_date"],
            due_date=row["due_date"],
            return_date=row["return_date"],
            status=row["status"],
            student_name=row["student_name"] if "student_name" in keys else None,
            book_title=row["book_title"] if "book_title" in keys else None,
        )


class ActiveLoan:
    """A book a student currently holds."""

    def __init__(self, id: int, isbn: str, title: str | None, author: str | None,
                 issue_date: str | None, due_date: str | None, status: str = ISSUED) -> None:
        self.id = id
        self.isbn = isbn
        self.title = title
        self.author = author
        self.issue_date = issue_date
        self.due_date = due_date
        self.status = status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "issue_date": self.issue_date,
            "due_date": self.due_date,
            "status": self.status,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "ActiveLoan":
        return ActiveLoan(
            id=row["id"],
            isbn=row["isbn"],
            title=row["title"],
            author=row["author"],
            issue_date=row["issue_date"],
            due_date=row["due_date"],
            status=row["status"],
        )


class Statistics:
    def __init__(self, total_students: int = 0, total_books: int = 0,
                 total_copies: int = 0, available_copies: int = 0) -> None:
        self.total_students = total_students
        self.total_books = total_books
        self.total_copies = total_copies
        self.available_copies = available_copies

    @property
    def issued_books(self) -> int:
        return self.total_copies - self.available_copies

    def to_dict(self) -> dict:
        return {
            "totalStudents": self.total_students,
            "totalBooks": self.total_books,
            "totalCopies": self.total_copies,
            "availableCopies": self.available_copies,
            "issuedBooks": self.issued_books,
        }
