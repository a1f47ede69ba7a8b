"""Embedded SQL store adapter.

The whole database lives in an in-memory SQLite connection. It is loaded from
the database file on open and written back as a single serialized image by
``flush``, so the file on disk only changes when a flush happens.
"""

import logging
import os
import sqlite3
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

from campus_library.errors import StoreError

logger = logging.getLogger(__name__)

Params = Sequence[Any]


class Store:
    """Single-writer handle on the library database."""

    def __init__(self, conn: sqlite3.Connection, path: Optional[str] = None) -> None:
        self._conn = conn
        self.path = path
        # Every statement and every workflow step runs under this lock
        self.lock = threading.RLock()
        self._tx_depth = 0

    # ------------------------- Lifecycle ------------------------- #
    @classmethod
    def open(cls, path: Optional[str]) -> "Store":
        """Load the database file (if any) into memory and bring the schema up to date."""
        try:
            conn = sqlite3.connect(":memory:", check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            if path and os.path.exists(path):
                with open(path, "rb") as f:
                    data = f.read()
                if data:
                    conn.deserialize(data)
            store = cls(conn, path)
            store.create_tables()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(str(e)) from e
        logger.info("Database opened from %s", path or ":memory:")
        return store

    def close(self) -> None:
        with self.lock:
            self._conn.close()

    def create_tables(self) -> None:
        """Creates the tables and indexes if missing; safe to run on every startup."""
        with self.lock:
            cursor = self._conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS students (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id TEXT UNIQUE NOT NULL,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    phone TEXT,
                    department TEXT,
                    year TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    isbn TEXT UNIQUE NOT NULL,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    publisher TEXT,
                    category TEXT,
                    total_copies INTEGER DEFAULT 1,
                    available_copies INTEGER DEFAULT 1,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id TEXT NOT NULL,
                    isbn TEXT NOT NULL,
                    issue_date TEXT DEFAULT CURRENT_TIMESTAMP,
                    return_date TEXT,
                    status TEXT DEFAULT 'issued',
                    FOREIGN KEY (student_id) REFERENCES students(student_id),
                    FOREIGN KEY (isbn) REFERENCES books(isbn)
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_student_id ON students(student_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_book_isbn ON books(isbn)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_trans_student ON transactions(student_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_trans_isbn ON transactions(isbn)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_trans_status ON transactions(status)")

            # Databases written before due dates existed lack the column
            cursor.execute("PRAGMA table_info(transactions)")
            columns = [column[1] for column in cursor.fetchall()]
            if "due_date" not in columns:
                cursor.execute("ALTER TABLE transactions ADD COLUMN due_date TEXT")

    # ------------------------- Statements ------------------------- #
    def query(self, sql: str, params: Params = ()) -> List[sqlite3.Row]:
        with self.lock:
            try:
                return self._conn.execute(sql, tuple(params)).fetchall()
            except (sqlite3.Error, OverflowError) as e:
                raise StoreError(str(e)) from e

    def query_one(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def execute(self, sql: str, params: Params = ()) -> int:
        """Run a write statement and return the number of affected rows."""
        with self.lock:
            try:
                return self._conn.execute(sql, tuple(params)).rowcount
            except (sqlite3.Error, OverflowError) as e:
                raise StoreError(str(e)) from e

    def insert(self, sql: str, params: Params = ()) -> int:
        """Run an INSERT and return the new row id."""
        with self.lock:
            try:
                return self._conn.execute(sql, tuple(params)).lastrowid
            except (sqlite3.Error, OverflowError) as e:
                raise StoreError(str(e)) from e

    @contextmanager
    def transaction(self) -> Iterator["Store"]:
        """Group several statements into one atomic unit.

        Nested use joins the outer transaction. Any exception rolls the whole
        unit back and propagates.
        """
        with self.lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield self
                finally:
                    self._tx_depth -= 1
                return

            try:
                self._conn.execute("BEGIN")
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
            self._tx_depth = 1
            try:
                yield self
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                try:
                    self._conn.execute("COMMIT")
                except sqlite3.Error as e:
                    self._conn.execute("ROLLBACK")
                    raise StoreError(str(e)) from e
            finally:
                self._tx_depth = 0

    # ------------------------- Persistence ------------------------- #
    def export(self) -> bytes:
        """Serialize the whole database into a byte image."""
        with self.lock:
            try:
                return self._conn.serialize()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def flush(self, path: Optional[str] = None, data: Optional[bytes] = None) -> None:
        """Write a database image to disk, replacing the previous file atomically."""
        path = path or self.path
        if not path:
            return
        target = Path(path)
        with self.lock:
            if data is None:
                data = self.export()
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=target.name, suffix=".tmp")
                try:
                    with os.fdopen(fd, "wb") as f:
                        f.write(data)
                    os.replace(tmp_path, target)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.remove(tmp_path)
                    raise
            except OSError as e:
                raise StoreError(str(e)) from e
        logger.debug("Database flushed to %s (%d bytes)", path, len(data))
