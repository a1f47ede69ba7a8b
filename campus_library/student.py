from __future__ import annotations

from typing import Any, Mapping


class Student:
    """A registered library member, identified by ``student_id``."""

    def __init__(self, student_id: str, name: str, email: str, phone: str | None = None,
                 department: str | None = None, year: str | None = None,
                 created_at: str | None = None) -> None:
        self.student_id = student_id.strip()
        self.name = name.strip()
        self.email = email.strip()
        self.phone = phone or None
        self.department = department or None
        self.year = year or None
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} ({self.student_id})"

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match over the displayed fields."""
        term = term.lower()
        fields = (self.student_id, self.name, self.email, self.department)
        return any(term in f.lower() for f in fields if f)

    def to_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "department": self.department,
            "year": self.year,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Student":
        return Student(
            student_id=row["student_id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            department=row["department"],
            year=row["year"],
            created_at=row["created_at"],
        )
