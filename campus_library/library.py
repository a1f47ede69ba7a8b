import copy
import logging
import os
import shutil
from contextlib import nullcontext
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from campus_library.book import Book
from campus_library.cache_manager import BOOKS, STATISTICS, STUDENTS, TRANSACTIONS, ReadCache
from campus_library.config import settings
from campus_library.database import Store
from campus_library.errors import LoanError, NotFoundError, StoreError
from campus_library.persistence import DebouncedSaver
from campus_library.student import Student
from campus_library.transaction import ISSUED, RETURNED, ActiveLoan, Statistics, Transaction

logger = logging.getLogger(__name__)

DUPLICATE_LOAN = "This student already has a copy of this book issued and hasn't returned it yet."
BOOK_NOT_FOUND = "Book not found"
STUDENT_NOT_FOUND = "Student not found"
TRANSACTION_NOT_FOUND = "Transaction not found"
NO_COPIES = "No copies available"
ALREADY_RETURNED = "Book already returned"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_TRANSACTION_VIEW = """
    SELECT
        t.id,
        t.student_id,
        s.name AS student_name,
        t.isbn,
        b.title AS book_title,
        t.issue_date,
        t.due_date,
        t.return_date,
        t.status
    FROM transactions t
    LEFT JOIN students s ON t.student_id = s.student_id
    LEFT JOIN books b ON t.isbn = b.isbn
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Library:
    """Owns the store, the read cache and the debounced saver, and serves every operation.

    Failures are raised as ``LibraryError`` subclasses; the command layer turns
    them into ``{success: False, error: ...}`` results.
    """

    def __init__(self, db_file: Optional[str] = None, *, cache_ttl_ms: Optional[int] = None,
                 save_delay_ms: Optional[int] = None, loan_days: Optional[int] = None,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        self.db_file = db_file or settings.db_file
        self.loan_days = settings.loan_days if loan_days is None else loan_days
        self.save_delay_ms = settings.save_delay_ms if save_delay_ms is None else save_delay_ms
        self._now = clock or _utcnow
        self.cache = ReadCache(settings.cache_ttl_ms if cache_ttl_ms is None else cache_ttl_ms)
        self.store: Optional[Store] = None
        self.saver: Optional[DebouncedSaver] = None
        self._open_store()

    def _open_store(self) -> None:
        store = None
        try:
            store = Store.open(self.db_file)
            # Make sure the file exists and carries the current schema
            store.flush()
        except StoreError:
            if store is not None:
                store.close()
            logger.exception("Database initialization error (%s)", self.db_file)
            self.store = None
            self.saver = None
            return
        self.store = store
        self.saver = DebouncedSaver(store, self.save_delay_ms)

    @property
    def db(self) -> Store:
        if self.store is None:
            raise StoreError("Database is not initialized")
        return self.store

    def _changed(self, *categories: str) -> None:
        """Invalidate the affected views and schedule a save."""
        self.cache.invalidate(categories)
        if self.saver is not None:
            self.saver.schedule()

    def _cached(self, category: str, load: Callable[[], Any]) -> Any:
        """Serve a copy of the cached view so callers cannot alter it."""
        with self.db.lock:
            value = self.cache.get(category)
            if value is None:
                value = load()
                self.cache.set(category, value)
            return copy.deepcopy(value)

    def _timestamp(self, moment: Optional[datetime] = None) -> str:
        return (moment or self._now()).strftime(TIMESTAMP_FORMAT)

    # ------------------------- Students ------------------------- #
    def add_student(self, student: Student) -> Student:
        self.db.execute(
            """INSERT INTO students (student_id, name, email, phone, department, year)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (student.student_id, student.name, student.email,
             student.phone, student.department, student.year)
        )
        # Transactions view shows the student's name, so it changes too
        self._changed(STUDENTS, STATISTICS, TRANSACTIONS)
        return self.find_student(student.student_id)

    def list_students(self, query: Optional[str] = None) -> List[Student]:
        students = self._cached(STUDENTS, self._load_students)
        if query:
            return [s for s in students if s.matches(query)]
        return list(students)

    def _load_students(self) -> List[Student]:
        rows = self.db.query("SELECT * FROM students ORDER BY created_at DESC, id DESC")
        return [Student.from_row(row) for row in rows]

    def find_student(self, student_id: str) -> Optional[Student]:
        row = self.db.query_one("SELECT * FROM students WHERE student_id = ?", (student_id,))
        return Student.from_row(row) if row else None

    def update_student(self, student: Student) -> Student:
        """Replace every mutable field of the student with ``student``'s values."""
        updated = self.db.execute(
            """UPDATE students SET name = ?, email = ?, phone = ?, department = ?, year = ?
               WHERE student_id = ?""",
            (student.name, student.email, student.phone, student.department,
             student.year, student.student_id)
        )
        if not updated:
            raise NotFoundError(STUDENT_NOT_FOUND)
        self._changed(STUDENTS, TRANSACTIONS)
        return self.find_student(student.student_id)

    def delete_student(self, student_id: str) -> bool:
        """Delete unconditionally. Loans referencing the student are left in place."""
        deleted = self.db.execute("DELETE FROM students WHERE student_id = ?", (student_id,))
        self._changed(STUDENTS, STATISTICS, TRANSACTIONS)
        return deleted > 0

    # ------------------------- Books ------------------------- #
    def add_book(self, book: Book) -> Book:
        if book.total_copies < 0 or book.available_copies < 0:
            raise LoanError("Copy counts cannot be negative")
        if book.available_copies > book.total_copies:
            raise LoanError("Available copies cannot exceed total copies")
        self.db.execute(
            """INSERT INTO books (isbn, title, author, publisher, category, total_copies, available_copies)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (book.isbn, book.title, book.author, book.publisher, book.category,
             book.total_copies, book.available_copies)
        )
        self._changed(BOOKS, STATISTICS, TRANSACTIONS)
        return self.find_book(book.isbn)

    def list_books(self, query: Optional[str] = None) -> List[Book]:
        books = self._cached(BOOKS, self._load_books)
        if query:
            return [b for b in books if b.matches(query)]
        return list(books)

    def _load_books(self) -> List[Book]:
        rows = self.db.query("SELECT * FROM books ORDER BY created_at DESC, id DESC")
        return [Book.from_row(row) for row in rows]

    def find_book(self, isbn: str) -> Optional[Book]:
        row = self.db.query_one("SELECT * FROM books WHERE isbn = ?", (isbn,))
        return Book.from_row(row) if row else None

    def update_book(self, book: Book) -> Book:
        """Replace the book's fields by ISBN.

        A change of ``total_copies`` moves ``available_copies`` by the same
        delta, so copies currently on loan stay accounted for. The incoming
        ``available_copies`` is ignored.
        """
        if book.total_copies < 0:
            raise LoanError("Copy counts cannot be negative")
        with self.db.transaction() as db:
            row = db.query_one("SELECT total_copies, available_copies FROM books WHERE isbn = ?", (book.isbn,))
            if row is None:
                raise NotFoundError(BOOK_NOT_FOUND)
            new_available = row["available_copies"] + (book.total_copies - row["total_copies"])
            if new_available < 0:
                issued = row["total_copies"] - row["available_copies"]
                raise LoanError(f"Total copies cannot be lower than the {issued} copies currently issued")
            db.execute(
                """UPDATE books SET title = ?, author = ?, publisher = ?, category = ?,
                   total_copies = ?, available_copies = ? WHERE isbn = ?""",
                (book.title, book.author, book.publisher, book.category,
                 book.total_copies, new_available, book.isbn)
            )
        self._changed(BOOKS, STATISTICS, TRANSACTIONS)
        return self.find_book(book.isbn)

    def delete_book(self, isbn: str) -> bool:
        """Delete unconditionally. Loans referencing the book are left in place."""
        deleted = self.db.execute("DELETE FROM books WHERE isbn = ?", (isbn,))
        self._changed(BOOKS, STATISTICS, TRANSACTIONS)
        return deleted > 0

    # ------------------------- Lending ------------------------- #
    def issue_book(self, student_id: str, isbn: str) -> Transaction:
        """Lend one copy of ``isbn`` to ``student_id``.

        Checks run in this order: duplicate active loan, book exists, a copy is
        available, student exists. The loan insert and the copy decrement are
        one atomic unit.
        """
        with self.db.transaction() as db:
            duplicate = db.query_one(
                "SELECT id FROM transactions WHERE student_id = ? AND isbn = ? AND status = ?",
                (student_id, isbn, ISSUED)
            )
            if duplicate:
                raise LoanError(DUPLICATE_LOAN)

            book = db.query_one("SELECT available_copies FROM books WHERE isbn = ?", (isbn,))
            if book is None:
                raise NotFoundError(BOOK_NOT_FOUND)
            if (book["available_copies"] or 0) <= 0:
                raise LoanError(NO_COPIES)

            if db.query_one("SELECT student_id FROM students WHERE student_id = ?", (student_id,)) is None:
                raise NotFoundError(STUDENT_NOT_FOUND)

            issued_at = self._now()
            due_at = issued_at + timedelta(days=self.loan_days)
            transaction_id = db.insert(
                """INSERT INTO transactions (student_id, isbn, issue_date, due_date, status)
                   VALUES (?, ?, ?, ?, ?)""",
                (student_id, isbn, self._timestamp(issued_at), self._timestamp(due_at), ISSUED)
            )
            if db.execute("UPDATE books SET available_copies = available_copies - 1 WHERE isbn = ?", (isbn,)) != 1:
                raise StoreError(f"Could not update available copies for {isbn}")

        logger.info("Issued %s to %s (transaction %s)", isbn, student_id, transaction_id)
        self._changed(TRANSACTIONS, BOOKS, STATISTICS)
        return self.find_transaction(transaction_id)

    def return_book(self, transaction_id: int) -> Transaction:
        with self.db.transaction() as db:
            row = db.query_one("SELECT isbn, status FROM transactions WHERE id = ?", (transaction_id,))
            if row is None:
                raise NotFoundError(TRANSACTION_NOT_FOUND)
            if row["status"] == RETURNED:
                raise LoanError(ALREADY_RETURNED)

            db.execute(
                "UPDATE transactions SET status = ?, return_date = ? WHERE id = ?",
                (RETURNED, self._timestamp(), transaction_id)
            )
            # The book may have been deleted since the loan; the loan still closes
            db.execute("UPDATE books SET available_copies = available_copies + 1 WHERE isbn = ?", (row["isbn"],))

        logger.info("Returned transaction %s (%s)", transaction_id, row["isbn"])
        self._changed(TRANSACTIONS, BOOKS, STATISTICS)
        return self.find_transaction(transaction_id)

    def delete_transaction(self, transaction_id: int) -> None:
        """Remove a returned loan record. Copy counts are not touched."""
        with self.db.transaction() as db:
            row = db.query_one("SELECT status FROM transactions WHERE id = ?", (transaction_id,))
            if row is None:
                raise NotFoundError(TRANSACTION_NOT_FOUND)
            if row["status"] == ISSUED:
                raise LoanError("Cannot delete a transaction whose book has not been returned")
            db.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
        self._changed(TRANSACTIONS)

    def find_transaction(self, transaction_id: int) -> Optional[Transaction]:
        row = self.db.query_one(_TRANSACTION_VIEW + " WHERE t.id = ?", (transaction_id,))
        return Transaction.from_row(row) if row else None

    def list_transactions(self) -> List[Transaction]:
        return list(self._cached(TRANSACTIONS, self._load_transactions))

    def _load_transactions(self) -> List[Transaction]:
        rows = self.db.query(_TRANSACTION_VIEW + " ORDER BY t.issue_date DESC, t.id DESC")
        return [Transaction.from_row(row) for row in rows]

    def student_books(self, student_id: str) -> List[ActiveLoan]:
        """Books the student currently holds, newest loan first."""
        rows = self.db.query(
            """SELECT t.id, t.isbn, b.title, b.author, t.issue_date, t.due_date, t.status
               FROM transactions t
               LEFT JOIN books b ON t.isbn = b.isbn
               WHERE t.student_id = ? AND t.status = ?
               ORDER BY t.issue_date DESC, t.id DESC""",
            (student_id, ISSUED)
        )
        return [ActiveLoan.from_row(row) for row in rows]

    # ------------------------- Statistics ------------------------- #
    def get_statistics(self) -> Statistics:
        return self._cached(STATISTICS, self._load_statistics)

    def _load_statistics(self) -> Statistics:
        students = self.db.query_one("SELECT COUNT(*) FROM students")[0]
        books = self.db.query_one("SELECT COUNT(*) FROM books")[0]
        copies = self.db.query_one("SELECT SUM(total_copies), SUM(available_copies) FROM books")
        return Statistics(
            total_students=students,
            total_books=books,
            total_copies=copies[0] or 0,
            available_copies=copies[1] or 0,
        )

    # ------------------------- Backup / restore ------------------------- #
    def backup_database(self, destination: str) -> str:
        """Write pending changes, then copy the database file to ``destination``."""
        if self.saver is None:
            raise StoreError("Database is not initialized")
        self.saver.flush_now()
        try:
            shutil.copyfile(self.db_file, destination)
        except OSError as e:
            raise StoreError(str(e)) from e
        logger.info("Database backed up to %s", destination)
        return destination

    def restore_database(self, source: str) -> None:
        """Replace the database file with ``source`` and reload it."""
        if not os.path.exists(source):
            raise NotFoundError(f"Backup file not found: {source}")
        if self.saver is not None:
            self.saver.cancel()
        # Holding the store lock keeps an in-flight save from overwriting the copy
        with self.store.lock if self.store is not None else nullcontext():
            try:
                shutil.copyfile(source, self.db_file)
            except OSError as e:
                if self.saver is not None and self.saver.dirty:
                    self.saver.schedule()
                raise StoreError(str(e)) from e
            if self.store is not None:
                self.store.close()
                self.store = None
        self.cache.clear()
        self._open_store()
        if self.store is None:
            raise StoreError(f"Could not open restored database {source}")
        logger.info("Database restored from %s", source)

    # ------------------------- Shutdown ------------------------- #
    def close(self) -> None:
        """Finish any pending save synchronously and release the store."""
        try:
            if self.saver is not None:
                self.saver.close()
        finally:
            self.saver = None
            if self.store is not None:
                self.store.close()
                self.store = None

    def __enter__(self) -> "Library":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
