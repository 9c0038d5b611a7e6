"""
Records repository: contract plus the in-memory implementation.

Why:
    Pages issue direct create/read/update/delete calls against the remote
    tables. Routes depend on the `RecordsRepo` protocol so tests and offline
    development use `InMemoryRecords`, while deployments wire the Supabase
    implementation from `records.repo_supabase`.

Security:
    Every call carries a `Caller`. The in-memory store mimics the backend's
    row-level security: anonymous callers are denied, writes need the right
    role, notes are owner-only. An elevated caller (service role) skips all
    checks.

Errors (mapped by the web adapter):
    ValueError("invalid_*"), PermissionError("*_forbidden" | "rls_denied"),
    LookupError("*_not_found").
"""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol
from uuid import uuid4

from .models import (
    AttendanceRecord,
    AttendanceStatus,
    Caller,
    Course,
    DashboardStats,
    Department,
    Note,
    Profile,
    Student,
    Subject,
)


logger = logging.getLogger("cms.records")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_STAFF_ROLES = ("admin", "teacher")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_date(value: str) -> str:
    """Accept only ISO calendar dates (YYYY-MM-DD)."""
    raw = (value or "").strip()
    if not _DATE_RE.match(raw):
        raise ValueError("invalid_date")
    try:
        datetime.strptime(raw, "%Y-%m-%d")
    except ValueError:
        raise ValueError("invalid_date")
    return raw


def validate_new_student(roll_no: str, year: object) -> tuple[str, int]:
    roll = (roll_no or "").strip()
    if not roll or len(roll) > 50:
        raise ValueError("invalid_roll_no")
    try:
        year_i = int(year)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError("invalid_year")
    if year_i < 1 or year_i > 4:
        raise ValueError("invalid_year")
    return roll, year_i


def validate_note(title: str, content: Optional[str]) -> tuple[str, str]:
    title_s = (title or "").strip()
    if not title_s or len(title_s) > 200:
        raise ValueError("invalid_title")
    return title_s, content or ""


class RecordsRepo(Protocol):
    async def count_stats(self, *, caller: Caller) -> DashboardStats: ...

    async def get_profile(self, user_id: str, *, caller: Caller) -> Optional[Profile]: ...

    async def list_students(self, *, caller: Caller) -> List[Student]: ...

    async def add_student(
        self,
        *,
        caller: Caller,
        roll_no: str,
        department_id: str,
        year: int,
        phone: Optional[str] = None,
    ) -> Student: ...

    async def delete_student(self, student_id: str, *, caller: Caller) -> None: ...

    async def find_student_by_user(self, user_id: str, *, caller: Caller) -> Optional[Student]: ...

    async def list_departments(self, *, caller: Caller) -> List[Department]: ...

    async def list_courses(self, *, caller: Caller) -> List[Course]: ...

    async def list_subjects(self, *, caller: Caller) -> List[Subject]: ...

    async def list_attendance(self, *, caller: Caller, subject_id: str, date: str) -> List[AttendanceRecord]: ...

    async def list_attendance_for_student(self, student_id: str, *, caller: Caller) -> List[AttendanceRecord]: ...

    async def upsert_attendance(
        self,
        *,
        caller: Caller,
        student_id: str,
        subject_id: str,
        date: str,
        status: AttendanceStatus,
    ) -> AttendanceRecord: ...

    async def list_notes(self, student_id: str, *, caller: Caller) -> List[Note]: ...

    async def create_note(self, *, caller: Caller, student_id: str, title: str, content: str) -> Note: ...

    async def update_note(self, note_id: str, *, caller: Caller, title: str, content: str) -> Note: ...

    async def delete_note(self, note_id: str, *, caller: Caller) -> None: ...


class InMemoryRecords:
    """Process-local tables with RLS-like checks. Test hooks: `calls`."""

    def __init__(self) -> None:
        self.profiles: Dict[str, Profile] = {}
        self.roles: Dict[str, str] = {}
        self.departments: Dict[str, Department] = {}
        self.courses: Dict[str, Course] = {}
        self.subjects: Dict[str, Subject] = {}
        self.students: Dict[str, Student] = {}
        # attendance[(student_id, subject_id, date)]
        self.attendance: Dict[tuple, AttendanceRecord] = {}
        self.notes: Dict[str, Note] = {}
        self.calls: List[str] = []

    # --- seeding (service side; no RLS) ----------------------------------------

    def seed_profile(self, user_id: str, full_name: str, email: str, role: Optional[str] = None) -> Profile:
        now = _now_iso()
        prof = Profile(id=user_id, full_name=full_name, email=email, created_at=now, updated_at=now)
        self.profiles[user_id] = prof
        if role:
            self.roles[user_id] = role
        return prof

    def seed_department(self, name: str, code: str) -> Department:
        dept = Department(id=str(uuid4()), name=name, code=code)
        self.departments[dept.id] = dept
        return dept

    def seed_course(self, code: str, name: str, credits: int = 3, *, department_id: Optional[str] = None, description: Optional[str] = None) -> Course:
        course = Course(id=str(uuid4()), course_code=code, course_name=name, credits=credits, description=description, department_id=department_id)
        self.courses[course.id] = course
        return course

    def seed_subject(self, code: str, name: str) -> Subject:
        subject = Subject(id=str(uuid4()), subject_name=name, subject_code=code)
        self.subjects[subject.id] = subject
        return subject

    def seed_student(self, roll_no: str, *, year: int = 1, user_id: Optional[str] = None, department_id: Optional[str] = None) -> Student:
        student = Student(id=str(uuid4()), roll_no=roll_no, year=year, user_id=user_id, department_id=department_id, created_at=_now_iso())
        self.students[student.id] = student
        return student

    def on_user_created(self, user_id: str, email: str, full_name: str, metadata: Dict[str, str]) -> None:
        """Sign-up trigger: profile plus role row (defaults to student)."""
        self.seed_profile(user_id, full_name, email, role=metadata.get("role") or "student")

    # --- RLS helpers --------------------------------------------------------------

    def _track(self, op: str, caller: Caller) -> None:
        self.calls.append(op)
        if caller.is_anonymous:
            logger.info("RLS denied %s for anonymous caller", op)
            raise PermissionError("rls_denied")

    @staticmethod
    def _require_staff(caller: Caller, code: str) -> None:
        if caller.elevated:
            return
        if caller.role not in _STAFF_ROLES:
            raise PermissionError(code)

    def _student_owned_by(self, student_id: str, caller: Caller) -> Student:
        student = self.students.get(student_id)
        if student is None:
            raise LookupError("student_not_found")
        if not caller.elevated and student.user_id != caller.user_id:
            raise PermissionError("notes_forbidden")
        return student

    def _joined_student(self, student: Student) -> Student:
        prof = self.profiles.get(student.user_id or "")
        dept = self.departments.get(student.department_id or "")
        return replace(
            student,
            full_name=prof.full_name if prof else None,
            email=prof.email if prof else None,
            department_name=dept.name if dept else None,
            department_code=dept.code if dept else None,
        )

    # --- reads ----------------------------------------------------------------------

    async def count_stats(self, *, caller: Caller) -> DashboardStats:
        self._track("count_stats", caller)
        return DashboardStats(students=len(self.students), courses=len(self.courses), departments=len(self.departments))

    async def get_profile(self, user_id: str, *, caller: Caller) -> Optional[Profile]:
        self._track("get_profile", caller)
        return self.profiles.get(user_id)

    async def list_students(self, *, caller: Caller) -> List[Student]:
        self._track("list_students", caller)
        rows = sorted(self.students.values(), key=lambda s: s.created_at, reverse=True)
        return [self._joined_student(s) for s in rows]

    async def find_student_by_user(self, user_id: str, *, caller: Caller) -> Optional[Student]:
        self._track("find_student_by_user", caller)
        for student in self.students.values():
            if student.user_id == user_id:
                return self._joined_student(student)
        return None

    async def list_departments(self, *, caller: Caller) -> List[Department]:
        self._track("list_departments", caller)
        return sorted(self.departments.values(), key=lambda d: d.name)

    async def list_courses(self, *, caller: Caller) -> List[Course]:
        self._track("list_courses", caller)
        out = []
        for course in sorted(self.courses.values(), key=lambda c: c.course_code):
            dept = self.departments.get(course.department_id or "")
            out.append(replace(course, department_name=dept.name if dept else None, department_code=dept.code if dept else None))
        return out

    async def list_subjects(self, *, caller: Caller) -> List[Subject]:
        self._track("list_subjects", caller)
        return sorted(self.subjects.values(), key=lambda s: s.subject_code)

    async def list_attendance(self, *, caller: Caller, subject_id: str, date: str) -> List[AttendanceRecord]:
        self._track("list_attendance", caller)
        day = validate_date(date)
        return [rec for (_, subj, d), rec in self.attendance.items() if subj == subject_id and d == day]

    async def list_attendance_for_student(self, student_id: str, *, caller: Caller) -> List[AttendanceRecord]:
        self._track("list_attendance_for_student", caller)
        rows = [rec for (sid, _, _), rec in self.attendance.items() if sid == student_id]
        return sorted(rows, key=lambda r: r.date, reverse=True)

    # --- writes ---------------------------------------------------------------------

    async def add_student(
        self,
        *,
        caller: Caller,
        roll_no: str,
        department_id: str,
        year: int,
        phone: Optional[str] = None,
    ) -> Student:
        self._track("add_student", caller)
        self._require_staff(caller, "students_forbidden")
        roll, year_i = validate_new_student(roll_no, year)
        if department_id not in self.departments:
            raise LookupError("department_not_found")
        if any(s.roll_no == roll for s in self.students.values()):
            raise ValueError("duplicate_roll_no")
        student = Student(
            id=str(uuid4()),
            roll_no=roll,
            year=year_i,
            department_id=department_id,
            phone=(phone or "").strip() or None,
            created_at=_now_iso(),
        )
        self.students[student.id] = student
        return self._joined_student(student)

    async def delete_student(self, student_id: str, *, caller: Caller) -> None:
        self._track("delete_student", caller)
        self._require_staff(caller, "students_forbidden")
        if self.students.pop(student_id, None) is None:
            raise LookupError("student_not_found")
        for key in [k for k in self.attendance if k[0] == student_id]:
            self.attendance.pop(key, None)
        for note_id in [n.id for n in self.notes.values() if n.student_id == student_id]:
            self.notes.pop(note_id, None)

    async def upsert_attendance(
        self,
        *,
        caller: Caller,
        student_id: str,
        subject_id: str,
        date: str,
        status: AttendanceStatus,
    ) -> AttendanceRecord:
        self._track("upsert_attendance", caller)
        self._require_staff(caller, "attendance_forbidden")
        day = validate_date(date)
        if student_id not in self.students:
            raise LookupError("student_not_found")
        if subject_id not in self.subjects:
            raise LookupError("subject_not_found")
        rec = AttendanceRecord(
            student_id=student_id,
            subject_id=subject_id,
            date=day,
            status=AttendanceStatus.parse(status),
            marked_by=caller.user_id,
        )
        self.attendance[(student_id, subject_id, day)] = rec
        return rec

    async def list_notes(self, student_id: str, *, caller: Caller) -> List[Note]:
        self._track("list_notes", caller)
        self._student_owned_by(student_id, caller)
        rows = [n for n in self.notes.values() if n.student_id == student_id]
        return sorted(rows, key=lambda n: n.updated_at, reverse=True)

    async def create_note(self, *, caller: Caller, student_id: str, title: str, content: str) -> Note:
        self._track("create_note", caller)
        self._student_owned_by(student_id, caller)
        title_s, content_s = validate_note(title, content)
        now = _now_iso()
        note = Note(id=str(uuid4()), student_id=student_id, title=title_s, content=content_s, created_at=now, updated_at=now)
        self.notes[note.id] = note
        return note

    async def update_note(self, note_id: str, *, caller: Caller, title: str, content: str) -> Note:
        self._track("update_note", caller)
        note = self.notes.get(note_id)
        if note is None:
            raise LookupError("note_not_found")
        self._student_owned_by(note.student_id, caller)
        title_s, content_s = validate_note(title, content)
        updated = replace(note, title=title_s, content=content_s, updated_at=_now_iso())
        self.notes[note_id] = updated
        return updated

    async def delete_note(self, note_id: str, *, caller: Caller) -> None:
        self._track("delete_note", caller)
        note = self.notes.get(note_id)
        if note is None:
            raise LookupError("note_not_found")
        self._student_owned_by(note.student_id, caller)
        self.notes.pop(note_id, None)


class InMemoryRoleView:
    """RoleLookup over `InMemoryRecords.roles` (the `user_roles` table)."""

    def __init__(self, records: InMemoryRecords) -> None:
        self._records = records

    async def get_role(self, user_id: str) -> Optional[str]:
        return self._records.roles.get(user_id)


__all__ = [
    "InMemoryRecords",
    "InMemoryRoleView",
    "RecordsRepo",
    "validate_date",
    "validate_new_student",
    "validate_note",
]
