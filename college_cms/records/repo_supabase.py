"""
Supabase-backed records repository (PostgREST via the async supabase client).

Row-level security is enforced by the backend: the adapter runs every query
through whichever client it was constructed with. The web layer hands in the
browser's session-bound client, or the service-role client for elevated
callers. The `caller` argument only supplies audit columns (`marked_by`).

PostgREST errors are mapped onto the repository error contract:
    42501 (insufficient_privilege) -> PermissionError("rls_denied")
    23505 (unique_violation)       -> ValueError("duplicate_<table>")
    23503 (foreign_key_violation)  -> LookupError("<table>_reference_not_found")
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

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
from .repo import validate_date, validate_new_student, validate_note


logger = logging.getLogger("cms.records")

_STUDENT_SELECT = "*, profiles:user_id (full_name, email), departments:department_id (name, code)"
_COURSE_SELECT = "*, departments:department_id (name, code)"


def _map_error(exc: Exception, table: str) -> Exception:
    code = str(getattr(exc, "code", "") or "")
    if code == "42501":
        return PermissionError("rls_denied")
    if code == "23505":
        return ValueError(f"duplicate_{table}")
    if code == "23503":
        return LookupError(f"{table}_reference_not_found")
    return exc


def _student_from_row(row: dict) -> Student:
    prof = row.get("profiles") or {}
    dept = row.get("departments") or {}
    return Student(
        id=str(row["id"]),
        roll_no=str(row.get("roll_no") or ""),
        year=int(row.get("year") or 0),
        user_id=row.get("user_id"),
        department_id=row.get("department_id"),
        phone=row.get("phone"),
        address=row.get("address"),
        date_of_birth=row.get("date_of_birth"),
        created_at=str(row.get("created_at") or ""),
        full_name=prof.get("full_name"),
        email=prof.get("email"),
        department_name=dept.get("name"),
        department_code=dept.get("code"),
    )


def _course_from_row(row: dict) -> Course:
    dept = row.get("departments") or {}
    return Course(
        id=str(row["id"]),
        course_code=str(row.get("course_code") or ""),
        course_name=str(row.get("course_name") or ""),
        credits=int(row.get("credits") or 0),
        description=row.get("description"),
        department_id=row.get("department_id"),
        department_name=dept.get("name"),
        department_code=dept.get("code"),
    )


def _attendance_from_row(row: dict, *, subject_id: Optional[str] = None, date: Optional[str] = None) -> AttendanceRecord:
    return AttendanceRecord(
        student_id=str(row["student_id"]),
        subject_id=str(row.get("subject_id") or subject_id or ""),
        date=str(row.get("date") or date or ""),
        status=AttendanceStatus.parse(row.get("status") or "absent"),
        marked_by=row.get("marked_by"),
    )


def _note_from_row(row: dict) -> Note:
    return Note(
        id=str(row["id"]),
        student_id=str(row["student_id"]),
        title=str(row.get("title") or ""),
        content=str(row.get("content") or ""),
        created_at=str(row.get("created_at") or ""),
        updated_at=str(row.get("updated_at") or ""),
    )


class SupabaseRecords:
    def __init__(self, client: Any) -> None:
        self._client = client

    async def _run(self, table: str, query: Any) -> Any:
        try:
            return await query.execute()
        except Exception as exc:
            mapped = _map_error(exc, table)
            if mapped is exc:
                logger.warning("Query on %s failed: %s", table, exc.__class__.__name__)
                raise
            raise mapped from exc

    def _table(self, name: str) -> Any:
        return self._client.table(name)

    async def count_stats(self, *, caller: Caller) -> DashboardStats:
        counts = {}
        for table in ("students", "courses", "departments"):
            res = await self._run(table, self._table(table).select("*", count="exact", head=True))
            counts[table] = int(getattr(res, "count", 0) or 0)
        return DashboardStats(**counts)

    async def get_profile(self, user_id: str, *, caller: Caller) -> Optional[Profile]:
        res = await self._run("profiles", self._table("profiles").select("*").eq("id", user_id).maybe_single())
        row = getattr(res, "data", None) if res is not None else None
        if not isinstance(row, dict):
            return None
        return Profile(
            id=str(row["id"]),
            full_name=str(row.get("full_name") or ""),
            email=str(row.get("email") or ""),
            created_at=str(row.get("created_at") or ""),
            updated_at=str(row.get("updated_at") or ""),
        )

    async def list_students(self, *, caller: Caller) -> List[Student]:
        res = await self._run("students", self._table("students").select(_STUDENT_SELECT).order("created_at", desc=True))
        return [_student_from_row(r) for r in (res.data or [])]

    async def find_student_by_user(self, user_id: str, *, caller: Caller) -> Optional[Student]:
        res = await self._run("students", self._table("students").select(_STUDENT_SELECT).eq("user_id", user_id).maybe_single())
        row = getattr(res, "data", None) if res is not None else None
        return _student_from_row(row) if isinstance(row, dict) else None

    async def list_departments(self, *, caller: Caller) -> List[Department]:
        res = await self._run("departments", self._table("departments").select("*").order("name"))
        return [Department(id=str(r["id"]), name=str(r.get("name") or ""), code=str(r.get("code") or "")) for r in (res.data or [])]

    async def list_courses(self, *, caller: Caller) -> List[Course]:
        res = await self._run("courses", self._table("courses").select(_COURSE_SELECT).order("course_code"))
        return [_course_from_row(r) for r in (res.data or [])]

    async def list_subjects(self, *, caller: Caller) -> List[Subject]:
        res = await self._run("subjects", self._table("subjects").select("id, subject_name, subject_code").order("subject_code"))
        return [Subject(id=str(r["id"]), subject_name=str(r.get("subject_name") or ""), subject_code=str(r.get("subject_code") or "")) for r in (res.data or [])]

    async def list_attendance(self, *, caller: Caller, subject_id: str, date: str) -> List[AttendanceRecord]:
        day = validate_date(date)
        res = await self._run(
            "attendance",
            self._table("attendance").select("student_id, status").eq("subject_id", subject_id).eq("date", day),
        )
        return [_attendance_from_row(r, subject_id=subject_id, date=day) for r in (res.data or [])]

    async def list_attendance_for_student(self, student_id: str, *, caller: Caller) -> List[AttendanceRecord]:
        res = await self._run(
            "attendance",
            self._table("attendance").select("student_id, subject_id, date, status, marked_by").eq("student_id", student_id).order("date", desc=True),
        )
        return [_attendance_from_row(r) for r in (res.data or [])]

    async def add_student(
        self,
        *,
        caller: Caller,
        roll_no: str,
        department_id: str,
        year: int,
        phone: Optional[str] = None,
    ) -> Student:
        roll, year_i = validate_new_student(roll_no, year)
        payload = {"roll_no": roll, "department_id": department_id, "year": year_i, "phone": (phone or "").strip() or None}
        res = await self._run("students", self._table("students").insert(payload))
        rows = res.data or []
        if not rows:
            raise PermissionError("rls_denied")
        return _student_from_row(rows[0])

    async def delete_student(self, student_id: str, *, caller: Caller) -> None:
        res = await self._run("students", self._table("students").delete().eq("id", student_id))
        if not (res.data or []):
            # RLS hides rows the caller may not delete; indistinguishable from missing.
            raise LookupError("student_not_found")

    async def upsert_attendance(
        self,
        *,
        caller: Caller,
        student_id: str,
        subject_id: str,
        date: str,
        status: AttendanceStatus,
    ) -> AttendanceRecord:
        day = validate_date(date)
        parsed = AttendanceStatus.parse(status)
        payload = {
            "student_id": student_id,
            "subject_id": subject_id,
            "date": day,
            "status": parsed.value,
            "marked_by": caller.user_id,
        }
        await self._run("attendance", self._table("attendance").upsert(payload, on_conflict="student_id,subject_id,date"))
        return AttendanceRecord(student_id=student_id, subject_id=subject_id, date=day, status=parsed, marked_by=caller.user_id)

    async def list_notes(self, student_id: str, *, caller: Caller) -> List[Note]:
        res = await self._run("notes", self._table("notes").select("*").eq("student_id", student_id).order("updated_at", desc=True))
        return [_note_from_row(r) for r in (res.data or [])]

    async def create_note(self, *, caller: Caller, student_id: str, title: str, content: str) -> Note:
        title_s, content_s = validate_note(title, content)
        res = await self._run("notes", self._table("notes").insert({"student_id": student_id, "title": title_s, "content": content_s}))
        rows = res.data or []
        if not rows:
            raise PermissionError("rls_denied")
        return _note_from_row(rows[0])

    async def update_note(self, note_id: str, *, caller: Caller, title: str, content: str) -> Note:
        title_s, content_s = validate_note(title, content)
        res = await self._run("notes", self._table("notes").update({"title": title_s, "content": content_s}).eq("id", note_id))
        rows = res.data or []
        if not rows:
            raise LookupError("note_not_found")
        return _note_from_row(rows[0])

    async def delete_note(self, note_id: str, *, caller: Caller) -> None:
        res = await self._run("notes", self._table("notes").delete().eq("id", note_id))
        if not (res.data or []):
            raise LookupError("note_not_found")


__all__ = ["SupabaseRecords"]
