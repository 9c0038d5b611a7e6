"""
Record types for the college tables.

Rows mirror the remote tables (`profiles`, `departments`, `courses`,
`subjects`, `students`, `attendance`, `notes`). Joined display fields
(profile name, department code) are optional and filled by the repository.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"

    @classmethod
    def parse(cls, value: object) -> "AttendanceStatus":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError("invalid_status")


@dataclass(frozen=True)
class Caller:
    """Who a repository call runs as.

    `elevated=True` models the service-role client: row-level security does not
    apply. Otherwise a caller without `user_id` is anonymous and denied.
    """

    user_id: Optional[str] = None
    role: str = "unknown"
    elevated: bool = False

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id and not self.elevated


@dataclass
class Profile:
    id: str
    full_name: str
    email: str
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Department:
    id: str
    name: str
    code: str


@dataclass
class Course:
    id: str
    course_code: str
    course_name: str
    credits: int
    description: Optional[str] = None
    department_id: Optional[str] = None
    department_name: Optional[str] = None
    department_code: Optional[str] = None


@dataclass
class Subject:
    id: str
    subject_name: str
    subject_code: str


@dataclass
class Student:
    id: str
    roll_no: str
    year: int
    user_id: Optional[str] = None
    department_id: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[str] = None
    created_at: str = ""
    full_name: Optional[str] = None
    email: Optional[str] = None
    department_name: Optional[str] = None
    department_code: Optional[str] = None


@dataclass
class AttendanceRecord:
    student_id: str
    subject_id: str
    date: str
    status: AttendanceStatus
    marked_by: Optional[str] = None


@dataclass
class Note:
    id: str
    student_id: str
    title: str
    content: str
    created_at: str
    updated_at: str


@dataclass
class RosterEntry:
    student_id: str
    roll_no: str
    full_name: str
    status: AttendanceStatus


@dataclass
class DashboardStats:
    students: int = 0
    courses: int = 0
    departments: int = 0


__all__ = [
    "AttendanceRecord",
    "AttendanceStatus",
    "Caller",
    "Course",
    "DashboardStats",
    "Department",
    "Note",
    "Profile",
    "RosterEntry",
    "Student",
    "Subject",
]
