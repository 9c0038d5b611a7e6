"""
JSON API mirroring the protected pages.

Why:
    Scripts and tests can exercise the same records and the same allow-lists
    without parsing HTML. Each endpoint runs the route guard of the page it
    mirrors; a denied guard answers 401 (`unauthenticated`) or 403
    (`forbidden`) instead of redirecting.

Notes:
    - Responses carry `Cache-Control: private, no-store`.
    - Repository errors map to 400 `bad_request`, 403 `forbidden` and
      404 `not_found`, each with the error code as `detail`.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError, field_validator

from college_cms.records.models import AttendanceRecord, Course, Note, RosterEntry, Student
from college_cms.records.roster import build_roster, summarize
from college_cms.records.search import filter_courses, filter_students

from ..views import ATTENDANCE, COURSES, DASHBOARD, MY_ATTENDANCE, NOTES, STUDENTS
from .security import csrf_violation


api_router = APIRouter(tags=["API"])
logger = logging.getLogger("cms.web")


def _main():
    from college_cms.web import main

    return main


def _json_private(payload, *, status_code: int = 200) -> JSONResponse:
    """JSON with caching disabled; records are user- and role-scoped."""
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _repo_error(exc: Exception) -> JSONResponse:
    detail = str(exc.args[0]) if exc.args else ""
    if isinstance(exc, PermissionError):
        return _json_private({"error": "forbidden", "detail": detail}, status_code=403)
    if isinstance(exc, LookupError):
        return _json_private({"error": "not_found", "detail": detail}, status_code=404)
    return _json_private({"error": "bad_request", "detail": detail}, status_code=400)


async def _payload(request: Request, model):
    """Parse the JSON body into `model`; returns (instance, error_response)."""
    try:
        raw = await request.json()
    except ValueError:
        return None, _json_private({"error": "bad_request", "detail": "invalid_json"}, status_code=400)
    try:
        return model.model_validate(raw), None
    except ValidationError as exc:
        field = ".".join(str(p) for p in exc.errors()[0].get("loc", ())) or "body"
        return None, _json_private({"error": "bad_request", "detail": f"invalid_{field}"}, status_code=400)


def _serialize_student(s: Student) -> dict:
    return asdict(s)


def _serialize_course(c: Course) -> dict:
    return asdict(c)


def _serialize_attendance(r: AttendanceRecord) -> dict:
    data = asdict(r)
    data["status"] = r.status.value
    return data


def _serialize_roster(e: RosterEntry) -> dict:
    return {"student_id": e.student_id, "roll_no": e.roll_no, "full_name": e.full_name, "status": e.status.value}


def _serialize_note(n: Note) -> dict:
    return asdict(n)


class StudentCreate(BaseModel):
    roll_no: str = Field(..., min_length=1, max_length=50)
    department_id: str = Field(..., min_length=1)
    year: int = Field(..., ge=1, le=4)
    phone: Optional[str] = Field(default=None, max_length=32)

    @field_validator("phone")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class AttendanceMark(BaseModel):
    student_id: str = Field(..., min_length=1)
    subject_id: str = Field(..., min_length=1)
    date: str
    status: str


class NotePayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = ""


# --- Principal & dashboard ---------------------------------------------------------


@api_router.get("/api/me")
async def api_me(request: Request):
    """Resolved principal of this request (no tokens)."""
    principal = _main().current_principal(request)
    body = principal.as_user_context()
    body["authenticated"] = principal.is_authenticated
    return _json_private(body)


@api_router.get("/api/dashboard")
async def api_dashboard(request: Request):
    main = _main()
    denied = await main.guard_api(request, DASHBOARD)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    try:
        stats = await repo.count_stats(caller=caller)
    except PermissionError as exc:
        return _repo_error(exc)
    return _json_private(asdict(stats))


# --- Students -----------------------------------------------------------------------


@api_router.get("/api/students")
async def api_students(request: Request, q: Optional[str] = None):
    """List students, newest first, optionally filtered. Roles: admin, teacher."""
    main = _main()
    denied = await main.guard_api(request, STUDENTS)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    try:
        students = await repo.list_students(caller=caller)
    except PermissionError as exc:
        return _repo_error(exc)
    return _json_private([_serialize_student(s) for s in filter_students(students, q)])


@api_router.post("/api/students")
async def api_students_create(request: Request):
    main = _main()
    denied = await main.guard_api(request, STUDENTS)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    payload, error = await _payload(request, StudentCreate)
    if error:
        return error
    repo, caller = await main.records_for(request)
    try:
        student = await repo.add_student(
            caller=caller,
            roll_no=payload.roll_no,
            department_id=payload.department_id,
            year=payload.year,
            phone=payload.phone,
        )
    except (ValueError, LookupError, PermissionError) as exc:
        return _repo_error(exc)
    return _json_private(_serialize_student(student), status_code=201)


@api_router.delete("/api/students/{student_id}")
async def api_students_delete(request: Request, student_id: str):
    main = _main()
    denied = await main.guard_api(request, STUDENTS)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    repo, caller = await main.records_for(request)
    try:
        await repo.delete_student(student_id, caller=caller)
    except (LookupError, PermissionError) as exc:
        return _repo_error(exc)
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})


# --- Courses ------------------------------------------------------------------------


@api_router.get("/api/courses")
async def api_courses(request: Request, q: Optional[str] = None):
    main = _main()
    denied = await main.guard_api(request, COURSES)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    try:
        courses = await repo.list_courses(caller=caller)
    except PermissionError as exc:
        return _repo_error(exc)
    return _json_private([_serialize_course(c) for c in filter_courses(courses, q)])


# --- Attendance ---------------------------------------------------------------------


@api_router.get("/api/subjects")
async def api_subjects(request: Request):
    main = _main()
    denied = await main.guard_api(request, ATTENDANCE)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    try:
        subjects = await repo.list_subjects(caller=caller)
    except PermissionError as exc:
        return _repo_error(exc)
    return _json_private([asdict(s) for s in subjects])


@api_router.get("/api/attendance")
async def api_attendance(request: Request, subject_id: str, date: str):
    """Roster for a subject/date. Roles: teacher, admin."""
    main = _main()
    denied = await main.guard_api(request, ATTENDANCE)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    try:
        marks = await repo.list_attendance(caller=caller, subject_id=subject_id, date=date)
        students = await repo.list_students(caller=caller)
    except (ValueError, PermissionError) as exc:
        return _repo_error(exc)
    return _json_private([_serialize_roster(e) for e in build_roster(students, marks)])


@api_router.put("/api/attendance")
async def api_attendance_mark(request: Request):
    """Upsert one mark (conflict key: student, subject, date). Roles: teacher, admin."""
    main = _main()
    denied = await main.guard_api(request, ATTENDANCE)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    payload, error = await _payload(request, AttendanceMark)
    if error:
        return error
    repo, caller = await main.records_for(request)
    try:
        rec = await repo.upsert_attendance(
            caller=caller,
            student_id=payload.student_id,
            subject_id=payload.subject_id,
            date=payload.date,
            status=payload.status,
        )
    except (ValueError, LookupError, PermissionError) as exc:
        return _repo_error(exc)
    return _json_private(_serialize_attendance(rec))


@api_router.get("/api/attendance/mine")
async def api_my_attendance(request: Request):
    """The calling student's own records plus a per-status summary."""
    main = _main()
    denied = await main.guard_api(request, MY_ATTENDANCE)
    if denied is not None:
        return denied
    principal = main.current_principal(request)
    repo, caller = await main.records_for(request)
    try:
        student = await repo.find_student_by_user(principal.user_id or "", caller=caller)
        if student is None:
            return _json_private({"error": "not_found", "detail": "student_not_found"}, status_code=404)
        records = await repo.list_attendance_for_student(student.id, caller=caller)
    except PermissionError as exc:
        return _repo_error(exc)
    return _json_private({"records": [_serialize_attendance(r) for r in records], "summary": summarize(records)})


# --- Notes --------------------------------------------------------------------------


async def _own_student_id(request: Request) -> Optional[str]:
    main = _main()
    principal = main.current_principal(request)
    repo, caller = await main.records_for(request)
    student = await repo.find_student_by_user(principal.user_id or "", caller=caller)
    return student.id if student is not None else None


@api_router.get("/api/notes")
async def api_notes(request: Request):
    main = _main()
    denied = await main.guard_api(request, NOTES)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    try:
        student_id = await _own_student_id(request)
        if student_id is None:
            return _json_private({"error": "not_found", "detail": "student_not_found"}, status_code=404)
        notes = await repo.list_notes(student_id, caller=caller)
    except (PermissionError, LookupError) as exc:
        return _repo_error(exc)
    return _json_private([_serialize_note(n) for n in notes])


@api_router.post("/api/notes")
async def api_notes_create(request: Request):
    main = _main()
    denied = await main.guard_api(request, NOTES)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    payload, error = await _payload(request, NotePayload)
    if error:
        return error
    repo, caller = await main.records_for(request)
    try:
        student_id = await _own_student_id(request)
        if student_id is None:
            return _json_private({"error": "not_found", "detail": "student_not_found"}, status_code=404)
        note = await repo.create_note(caller=caller, student_id=student_id, title=payload.title, content=payload.content)
    except (ValueError, LookupError, PermissionError) as exc:
        return _repo_error(exc)
    return _json_private(_serialize_note(note), status_code=201)


@api_router.patch("/api/notes/{note_id}")
async def api_notes_update(request: Request, note_id: str):
    main = _main()
    denied = await main.guard_api(request, NOTES)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    payload, error = await _payload(request, NotePayload)
    if error:
        return error
    repo, caller = await main.records_for(request)
    try:
        note = await repo.update_note(note_id, caller=caller, title=payload.title, content=payload.content)
    except (ValueError, LookupError, PermissionError) as exc:
        return _repo_error(exc)
    return _json_private(_serialize_note(note))


@api_router.delete("/api/notes/{note_id}")
async def api_notes_delete(request: Request, note_id: str):
    main = _main()
    denied = await main.guard_api(request, NOTES)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    repo, caller = await main.records_for(request)
    try:
        await repo.delete_note(note_id, caller=caller)
    except (LookupError, PermissionError) as exc:
        return _repo_error(exc)
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})
