"""Command surface consumed by front ends.

Each channel takes a plain payload and returns plain data: mutations answer
``{"success": bool, "error"?: str}``, reads answer lists/dicts. Failures never
escape as exceptions.
"""

import logging
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from campus_library.book import Book
from campus_library.errors import LibraryError
from campus_library.exporter import default_filename, export_to_excel
from campus_library.library import Library
from campus_library.student import Student
from campus_library.transaction import Statistics

logger = logging.getLogger(__name__)

Result = Dict[str, Any]


# --- Payload models ---
class StudentModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    student_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    phone: Optional[str] = None
    department: Optional[str] = None
    year: Optional[str] = None

    @field_validator("year", mode="before")
    @classmethod
    def _year_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class BookModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    isbn: str = Field(min_length=1)
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    publisher: Optional[str] = None
    category: Optional[str] = None
    total_copies: int = Field(default=1, ge=0)
    available_copies: Optional[int] = Field(default=None, ge=0)


class IssueModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    student_id: str = Field(min_length=1, validation_alias=AliasChoices("student_id", "studentId"))
    isbn: str = Field(min_length=1)


class TransactionRef(BaseModel):
    transaction_id: int = Field(gt=0)


class ExportModel(BaseModel):
    type: Literal["Students", "Books", "Transactions"]
    data: Optional[List[Dict[str, Any]]] = None
    file_path: Optional[str] = Field(default=None, validation_alias=AliasChoices("file_path", "filePath"))


def _validation_message(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


class CommandHandler:
    """Routes channel names to ``Library`` operations."""

    def __init__(self, library: Library) -> None:
        self.library = library
        self._handlers: Dict[str, Callable[[Any], Any]] = {
            "add-student": self.add_student,
            "get-students": self.get_students,
            "update-student": self.update_student,
            "delete-student": self.delete_student,
            "add-book": self.add_book,
            "get-books": self.get_books,
            "update-book": self.update_book,
            "delete-book": self.delete_book,
            "issue-book": self.issue_book,
            "return-book": self.return_book,
            "delete-transaction": self.delete_transaction,
            "get-transactions": self.get_transactions,
            "get-student-books": self.get_student_books,
            "get-statistics": self.get_statistics,
            "export-to-excel": self.export_to_excel,
        }

    @property
    def channels(self) -> List[str]:
        return sorted(self._handlers)

    def invoke(self, channel: str, payload: Any = None) -> Any:
        handler = self._handlers.get(channel)
        if handler is None:
            raise KeyError(f"No handler registered for '{channel}'")
        return handler(payload)

    # --- Helpers ---
    @staticmethod
    def _mutate(action: Callable[[], Any]) -> Result:
        try:
            action()
        except ValidationError as e:
            return {"success": False, "error": _validation_message(e)}
        except LibraryError as e:
            return {"success": False, "error": str(e)}
        return {"success": True}

    @staticmethod
    def _read(what: str, action: Callable[[], Any], default: Any) -> Any:
        try:
            return action()
        except (LibraryError, ValidationError) as e:
            logger.error("Error getting %s: %s", what, e)
            return default

    # --- Students ---
    def add_student(self, payload: Any) -> Result:
        return self._mutate(lambda: self.library.add_student(
            Student(**StudentModel.model_validate(payload).model_dump())))

    def get_students(self, query: Optional[str] = None) -> List[dict]:
        return self._read("students", lambda: [s.to_dict() for s in self.library.list_students(query)], [])

    def update_student(self, payload: Any) -> Result:
        return self._mutate(lambda: self.library.update_student(
            Student(**StudentModel.model_validate(payload).model_dump())))

    def delete_student(self, student_id: str) -> Result:
        return self._mutate(lambda: self.library.delete_student(student_id))

    # --- Books ---
    def add_book(self, payload: Any) -> Result:
        return self._mutate(lambda: self.library.add_book(
            Book(**BookModel.model_validate(payload).model_dump())))

    def get_books(self, query: Optional[str] = None) -> List[dict]:
        return self._read("books", lambda: [b.to_dict() for b in self.library.list_books(query)], [])

    def update_book(self, payload: Any) -> Result:
        return self._mutate(lambda: self.library.update_book(
            Book(**BookModel.model_validate(payload).model_dump())))

    def delete_book(self, isbn: str) -> Result:
        return self._mutate(lambda: self.library.delete_book(isbn))

    # --- Lending ---
    def issue_book(self, payload: Any) -> Result:
        def action():
            loan = IssueModel.model_validate(payload)
            self.library.issue_book(loan.student_id, loan.isbn)
        return self._mutate(action)

    def return_book(self, transaction_id: Union[int, str]) -> Result:
        return self._mutate(lambda: self.library.return_book(
            TransactionRef(transaction_id=transaction_id).transaction_id))

    def delete_transaction(self, transaction_id: Union[int, str]) -> Result:
        return self._mutate(lambda: self.library.delete_transaction(
            TransactionRef(transaction_id=transaction_id).transaction_id))

    def get_transactions(self, _payload: Any = None) -> List[dict]:
        return self._read("transactions", lambda: [t.to_dict() for t in self.library.list_transactions()], [])

    def get_student_books(self, student_id: str) -> List[dict]:
        return self._read("student books", lambda: [loan.to_dict() for loan in self.library.student_books(student_id)], [])

    def get_statistics(self, _payload: Any = None) -> dict:
        return self._read("statistics", lambda: self.library.get_statistics().to_dict(), Statistics().to_dict())

    # --- Export ---
    def export_to_excel(self, payload: Any) -> Result:
        try:
            request = ExportModel.model_validate(payload)
            rows = request.data
            if rows is None:
                loaders = {
                    "Students": self.get_students,
                    "Books": self.get_books,
                    "Transactions": self.get_transactions,
                }
                rows = loaders[request.type]()
            path = export_to_excel(request.type, rows, request.file_path or default_filename(request.type))
        except ValidationError as e:
            return {"success": False, "error": _validation_message(e)}
        except (ValueError, OSError) as e:
            logger.error("Error exporting to Excel: %s", e)
            return {"success": False, "error": str(e)}
        return {"success": True, "filePath": path}
