"""Case-insensitive substring filters for the list pages."""
from __future__ import annotations

from typing import Iterable, List, Optional

from .models import Course, Student


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _matches(needle: str, *fields: Optional[str]) -> bool:
    return any(needle in _norm(f) for f in fields)


def filter_students(students: Iterable[Student], query: Optional[str]) -> List[Student]:
    needle = _norm(query)
    items = list(students)
    if not needle:
        return items
    return [
        s
        for s in items
        if _matches(needle, s.roll_no, s.full_name, s.email, s.department_name, s.department_code)
    ]


def filter_courses(courses: Iterable[Course], query: Optional[str]) -> List[Course]:
    needle = _norm(query)
    items = list(courses)
    if not needle:
        return items
    return [
        c
        for c in items
        if _matches(needle, c.course_code, c.course_name, c.department_name, c.department_code)
    ]


__all__ = ["filter_courses", "filter_students"]
