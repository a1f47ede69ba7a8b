import sqlite3

import pytest

from campus_library.database import Store
from campus_library.errors import StoreError


def _columns(store, table):
    return [row[1] for row in store.query(f"PRAGMA table_info({table})")]


def test_open_creates_schema(db_file):
    store = Store.open(db_file)
    tables = {row["name"] for row in store.query("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {"students", "books", "transactions"} <= tables
    indexes = {row["name"] for row in store.query("SELECT name FROM sqlite_master WHERE type = 'index'")}
    assert {"idx_student_id", "idx_book_isbn", "idx_trans_student", "idx_trans_isbn", "idx_trans_status"} <= indexes
    assert "due_date" in _columns(store, "transactions")
    store.close()


def test_schema_creation_is_idempotent(db_file):
    store = Store.open(db_file)
    store.execute("INSERT INTO students (student_id, name, email) VALUES (?, ?, ?)", ("S1", "Ada", "ada@uni.edu"))
    store.create_tables()
    store.create_tables()
    assert len(store.query("SELECT * FROM students")) == 1
    store.close()


def test_due_date_column_is_migrated(db_file):
    # A database written before due dates were tracked
    conn = sqlite3.connect(db_file)
    conn.execute("""
        CREATE TABLE transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL,
            isbn TEXT NOT NULL,
            issue_date TEXT DEFAULT CURRENT_TIMESTAMP,
            return_date TEXT,
            status TEXT DEFAULT 'issued'
        )
    """)
    conn.execute("INSERT INTO transactions (student_id, isbn) VALUES ('S1', 'X1')")
    conn.commit()
    conn.close()

    store = Store.open(db_file)
    assert "due_date" in _columns(store, "transactions")
    row = store.query_one("SELECT * FROM transactions")
    assert row["student_id"] == "S1"
    assert row["due_date"] is None
    store.close()


def test_flush_then_reopen_keeps_rows(db_file):
    store = Store.open(db_file)
    store.execute("INSERT INTO books (isbn, title, author) VALUES (?, ?, ?)", ("X1", "Dune", "Frank Herbert"))
    store.flush()
    store.close()

    reopened = Store.open(db_file)
    assert reopened.query_one("SELECT title FROM books WHERE isbn = ?", ("X1",))["title"] == "Dune"
    reopened.close()


def test_writes_stay_in_memory_until_flushed(db_file):
    store = Store.open(db_file)
    store.flush()
    store.execute("INSERT INTO books (isbn, title, author) VALUES (?, ?, ?)", ("X1", "Dune", "Frank Herbert"))

    other = Store.open(db_file)
    assert other.query("SELECT * FROM books") == []
    other.close()
    store.close()


def test_export_returns_database_image(db_file):
    store = Store.open(db_file)
    data = store.export()
    assert isinstance(data, bytes)
    assert data.startswith(b"SQLite format 3\x00")
    store.close()


def test_flush_writes_explicit_path_and_data(db_file, tmp_path):
    store = Store.open(db_file)
    target = tmp_path / "nested" / "copy.db"
    store.flush(str(target), store.export())
    assert target.exists()
    store.close()


def test_constraint_violation_passes_message_through(db_file):
    store = Store.open(db_file)
    store.execute("INSERT INTO students (student_id, name, email) VALUES (?, ?, ?)", ("S1", "Ada", "ada@uni.edu"))
    with pytest.raises(StoreError, match="UNIQUE constraint failed: students.student_id"):
        store.execute("INSERT INTO students (student_id, name, email) VALUES (?, ?, ?)", ("S1", "Bob", "bob@uni.edu"))
    store.close()


def test_bad_sql_is_a_store_error(db_file):
    store = Store.open(db_file)
    with pytest.raises(StoreError):
        store.query("SELECT * FROM nowhere")
    store.close()


def test_integer_overflow_is_a_store_error(db_file):
    store = Store.open(db_file)
    with pytest.raises(StoreError, match="too large"):
        store.execute("UPDATE books SET total_copies = ?", (2**63,))
    with pytest.raises(StoreError, match="too large"):
        store.query("SELECT * FROM transactions WHERE id = ?", (2**63,))
    store.close()


def test_transaction_rolls_back_on_error(db_file):
    store = Store.open(db_file)
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.execute("INSERT INTO books (isbn, title, author) VALUES (?, ?, ?)", ("X1", "Dune", "Frank Herbert"))
            raise RuntimeError("boom")
    assert store.query("SELECT * FROM books") == []

    with store.transaction():
        store.execute("INSERT INTO books (isbn, title, author) VALUES (?, ?, ?)", ("X2", "Emma", "Jane Austen"))
        with store.transaction():
            store.execute("UPDATE books SET total_copies = 4 WHERE isbn = ?", ("X2",))
    assert store.query_one("SELECT total_copies FROM books")["total_copies"] == 4
    store.close()


def test_insert_returns_row_id(db_file):
    store = Store.open(db_file)
    first = store.insert("INSERT INTO transactions (student_id, isbn) VALUES (?, ?)", ("S1", "X1"))
    second = store.insert("INSERT INTO transactions (student_id, isbn) VALUES (?, ?)", ("S1", "X2"))
    assert second == first + 1
    store.close()


def test_corrupt_file_fails_to_open(db_file):
    with open(db_file, "wb") as f:
        f.write(b"this is not a database" * 100)
    with pytest.raises(StoreError):
        Store.open(db_file)
