from __future__ import annotations

from typing import Any, Mapping


class Book:
    """A catalogue entry with its copy counts."""

    def __init__(self, isbn: str, title: str, author: str, publisher: str | None = None,
                 category: str | None = None, total_copies: int = 1,
                 available_copies: int | None = None, created_at: str | None = None) -> None:
        self.isbn = isbn.strip()
        self.title = title.strip()
        self.author = author.strip()
        self.publisher = publisher or None
        self.category = category or None
        self.total_copies = int(total_copies)
        # New books start with every copy on the shelf
        self.available_copies = self.total_copies if available_copies is None else int(available_copies)
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    @property
    def issued_copies(self) -> int:
        return self.total_copies - self.available_copies

    def matches(self, term: str) -> bool:
        term = term.lower()
        fields = (self.isbn, self.title, self.author, self.category)
        return any(term in f.lower() for f in fields if f)

    def to_dict(self) -> dict:
        return {
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "publisher": self.publisher,
            "category": self.category,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Book":
        return Book(
            isbn=row["isbn"],
            title=row["title"],
            author=row["author"],
            publisher=row["publisher"],
            category=row["category"],
            total_copies=row["total_copies"] or 0,
            available_copies=row["available_copies"] or 0,
            created_at=row["created_at"],
        )
