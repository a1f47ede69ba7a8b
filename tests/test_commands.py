import openpyxl
import pytest

from campus_library.commands import CommandHandler
from campus_library.library import DUPLICATE_LOAN, Library

STUDENT = {
    "student_id": "S1",
    "name": "Ada Lovelace",
    "email": "ada@uni.edu",
    "phone": "555-0100",
    "department": "Mathematics",
    "year": 2,
}
BOOK = {
    "isbn": "X1",
    "title": "Dune",
    "author": "Frank Herbert",
    "publisher": "Chilton",
    "category": "Fiction",
    "total_copies": 2,
}


def test_channels_cover_the_command_surface(commands):
    assert commands.channels == sorted([
        "add-student", "get-students", "update-student", "delete-student",
        "add-book", "get-books", "update-book", "delete-book",
        "issue-book", "return-book", "delete-transaction", "get-transactions",
        "get-student-books", "get-statistics", "export-to-excel",
    ])


def test_unknown_channel(commands):
    with pytest.raises(KeyError):
        commands.invoke("drop-database")


def test_student_round_trip(commands):
    assert commands.invoke("add-student", STUDENT) == {"success": True}

    students = commands.invoke("get-students")
    assert len(students) == 1
    assert {k: students[0][k] for k in STUDENT} == {**STUDENT, "year": "2"}

    updated = {**STUDENT, "name": "Ada King", "phone": None}
    assert commands.invoke("update-student", updated) == {"success": True}
    assert commands.invoke("get-students")[0]["name"] == "Ada King"
    assert commands.invoke("get-students")[0]["phone"] is None

    assert commands.invoke("delete-student", "S1") == {"success": True}
    assert commands.invoke("get-students") == []


def test_book_round_trip(commands):
    assert commands.invoke("add-book", BOOK) == {"success": True}
    books = commands.invoke("get-books")
    assert books[0]["available_copies"] == 2

    assert commands.invoke("update-book", {**BOOK, "total_copies": 4, "available_copies": 0}) == {"success": True}
    book = commands.invoke("get-books")[0]
    assert (book["total_copies"], book["available_copies"]) == (4, 4)

    assert commands.invoke("delete-book", "X1") == {"success": True}
    assert commands.invoke("get-books") == []


def test_get_lists_filter(commands):
    commands.invoke("add-book", BOOK)
    commands.invoke("add-book", {**BOOK, "isbn": "X2", "title": "Emma", "author": "Jane Austen", "category": "Classics"})
    assert [b["isbn"] for b in commands.invoke("get-books", "austen")] == ["X2"]


def test_duplicate_key_surfaces_store_message(commands):
    commands.invoke("add-student", STUDENT)
    result = commands.invoke("add-student", STUDENT)
    assert result["success"] is False
    assert "UNIQUE constraint failed" in result["error"]


def test_validation_failures_are_results(commands):
    result = commands.invoke("add-student", {"student_id": "S1", "name": "  "})
    assert result["success"] is False
    assert "name" in result["error"]
    assert "email" in result["error"]

    result = commands.invoke("add-book", {**BOOK, "total_copies": -1})
    assert result["success"] is False
    assert "total_copies" in result["error"]

    result = commands.invoke("return-book", "abc")
    assert result["success"] is False

    assert commands.invoke("add-student", None)["success"] is False


def test_out_of_range_integers_are_results(commands):
    result = commands.invoke("add-book", {**BOOK, "total_copies": 2**63})
    assert result["success"] is False
    assert "too large" in result["error"]
    assert commands.invoke("get-books") == []

    result = commands.invoke("return-book", 2**63)
    assert result["success"] is False
    assert "too large" in result["error"]


def test_lending_results(commands):
    commands.invoke("add-student", STUDENT)
    commands.invoke("add-book", BOOK)

    assert commands.invoke("issue-book", {"studentId": "S1", "isbn": "X1"}) == {"success": True}
    assert commands.invoke("issue-book", {"student_id": "S1", "isbn": "X1"}) == {
        "success": False, "error": DUPLICATE_LOAN}
    assert commands.invoke("issue-book", {"student_id": "S1", "isbn": "NOPE"}) == {
        "success": False, "error": "Book not found"}
    assert commands.invoke("issue-book", {"student_id": "NOBODY", "isbn": "X1"}) == {
        "success": False, "error": "Student not found"}

    transactions = commands.invoke("get-transactions")
    assert len(transactions) == 1
    t = transactions[0]
    assert (t["student_name"], t["book_title"], t["status"]) == ("Ada Lovelace", "Dune", "issued")

    loans = commands.invoke("get-student-books", "S1")
    assert [loan["isbn"] for loan in loans] == ["X1"]

    assert commands.invoke("delete-transaction", t["id"])["success"] is False
    assert commands.invoke("return-book", t["id"]) == {"success": True}
    assert commands.invoke("return-book", str(t["id"])) == {"success": False, "error": "Book already returned"}
    assert commands.invoke("return-book", 999) == {"success": False, "error": "Transaction not found"}
    assert commands.invoke("delete-transaction", t["id"]) == {"success": True}
    assert commands.invoke("get-transactions") == []


def test_statistics(commands):
    for i in range(3):
        commands.invoke("add-student", {**STUDENT, "student_id": f"S{i}"})
    commands.invoke("add-book", {**BOOK, "total_copies": 2, "available_copies": 1})
    commands.invoke("add-book", {**BOOK, "isbn": "X2", "total_copies": 3})
    assert commands.invoke("get-statistics") == {
        "totalStudents": 3,
        "totalBooks": 2,
        "totalCopies": 5,
        "availableCopies": 4,
        "issuedBooks": 1,
    }


def test_broken_store_fails_softly(tmp_path):
    commands = CommandHandler(Library(db_file=str(tmp_path)))
    assert commands.invoke("add-student", STUDENT) == {"success": False, "error": "Database is not initialized"}
    assert commands.invoke("get-students") == []
    assert commands.invoke("get-transactions") == []
    assert commands.invoke("get-statistics")["totalStudents"] == 0


def test_export_books(commands, tmp_path):
    commands.invoke("add-book", BOOK)
    target = str(tmp_path / "books.xlsx")

    result = commands.invoke("export-to-excel", {"type": "Books", "filePath": target})
    assert result == {"success": True, "filePath": target}

    ws = openpyxl.load_workbook(target).active
    assert ws.title == "Books"
    assert ws["A1"].value == "Books Report"
    assert ws["A2"].value.startswith("Generated on:")
    assert [c.value for c in ws[3]][:3] == ["ISBN", "Title", "Author"]
    assert ws["A4"].value == "X1"
    assert ws["F4"].value == 2
    assert ws["A6"].value == "Total Records:"
    assert ws["B6"].value == 1


def test_export_given_rows(commands, tmp_path):
    target = str(tmp_path / "students.xlsx")
    rows = [{"student_id": "S9", "name": "Grace Hopper", "email": "grace@navy.mil"}]
    result = commands.invoke("export-to-excel", {"type": "Students", "data": rows, "file_path": target})
    assert result["success"] is True

    ws = openpyxl.load_workbook(target).active
    assert ws["A4"].value == "S9"
    # Students reports carry no summary row
    assert ws.max_row == 4


def test_export_rejects_unknown_type(commands, tmp_path):
    result = commands.invoke("export-to-excel", {"type": "Authors", "file_path": str(tmp_path / "a.xlsx")})
    assert result["success"] is False


def test_export_reports_io_errors(commands, tmp_path):
    result = commands.invoke("export-to-excel", {"type": "Books", "file_path": str(tmp_path / "missing" / "b.xlsx")})
    assert result["success"] is False
    assert result["error"]
