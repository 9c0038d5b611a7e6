"""
Server-rendered pages for the protected views.

Every handler first runs the route guard for its view; nothing below the
guard call runs (and no record is fetched) unless the guard authorizes.
Writes follow post/redirect/get with a short `msg` or `error` code in the
query string.
"""

from __future__ import annotations

import logging
from datetime import date as _date
from typing import Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from college_cms.records.roster import build_roster, summarize
from college_cms.records.search import filter_courses, filter_students
from college_cms.records.models import DashboardStats

from ..components import (
    AttendanceFilterForm,
    AttendanceHistory,
    Component,
    CoursesTable,
    NoteForm,
    NotesList,
    RosterTable,
    SearchBox,
    StatsCards,
    StudentCreateForm,
    StudentsTable,
    error_message,
)
from ..views import ATTENDANCE, COURSES, DASHBOARD, MY_ATTENDANCE, NOTES, STUDENTS
from .security import csrf_violation


pages_router = APIRouter(tags=["Pages"])
logger = logging.getLogger("cms.web")

_SUCCESS_MESSAGES: Dict[str, str] = {
    "student_added": "Student added successfully.",
    "student_deleted": "Student deleted successfully.",
    "attendance_marked": "Attendance marked.",
    "note_created": "Note created successfully.",
    "note_updated": "Note updated successfully.",
    "note_deleted": "Note deleted successfully.",
}


def _main():
    from college_cms.web import main

    return main


def _flash(msg: Optional[str], error: Optional[str]):
    if error:
        return error_message(error), "error"
    if msg and msg in _SUCCESS_MESSAGES:
        return _SUCCESS_MESSAGES[msg], "success"
    return None, "info"


def _redirect(path: str, **params: str) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v})
    return RedirectResponse(url=f"{path}?{query}" if query else path, status_code=303)


def _code(exc: Exception) -> str:
    return str(exc.args[0]) if exc.args else exc.__class__.__name__


def _page(request: Request, title: str, content: str, *, msg=None, error=None, status_code: int = 200) -> HTMLResponse:
    flash, kind = _flash(msg, error)
    return _main().layout_response(request, title, content, status_code=status_code, flash=flash, flash_kind=kind)


# --- Dashboard ------------------------------------------------------------------


@pages_router.get(DASHBOARD.path, response_class=HTMLResponse)
async def dashboard(request: Request):
    main = _main()
    denied = await main.guard_page(request, DASHBOARD)
    if denied is not None:
        return denied
    principal = main.current_principal(request)
    repo, caller = await main.records_for(request)
    error = None
    name = "Administrator" if principal.is_bypass else (principal.email or "")
    try:
        stats = await repo.count_stats(caller=caller)
        if principal.user_id:
            profile = await repo.get_profile(principal.user_id, caller=caller)
            if profile is not None and profile.full_name:
                name = profile.full_name
    except PermissionError as exc:
        logger.warning("Dashboard data denied: %s", _code(exc))
        stats = DashboardStats()
        error = "rls_denied"
    content = f"""
    <section class="dashboard">
        <h1>Welcome back, {Component.escape(name)}</h1>
        <p class="role-badge">Role: {Component.escape(principal.role.value)}</p>
        {StatsCards(stats).render()}
    </section>"""
    return _page(request, "Dashboard", content, error=error)


# --- Students -------------------------------------------------------------------


async def _students_page(request: Request, *, q: str = "", msg=None, error=None, values=None, status_code: int = 200) -> HTMLResponse:
    main = _main()
    repo, caller = await main.records_for(request)
    try:
        students = await repo.list_students(caller=caller)
        departments = await repo.list_departments(caller=caller)
    except PermissionError as exc:
        logger.warning("Students list denied: %s", _code(exc))
        students, departments = [], []
        error = error or "rls_denied"
    visible = filter_students(students, q)
    content = f"""
    <section class="students">
        <h1>Students</h1>
        {SearchBox("/students", q, "Search by roll no, name or department").render()}
        {StudentCreateForm([(d.id, f"{d.code} - {d.name}") for d in departments], values=values).render()}
        {StudentsTable(visible, can_delete=True).render()}
    </section>"""
    return _page(request, "Students", content, msg=msg, error=error, status_code=status_code)


@pages_router.get(STUDENTS.path, response_class=HTMLResponse)
async def students_page(request: Request, q: Optional[str] = None, msg: Optional[str] = None, error: Optional[str] = None):
    denied = await _main().guard_page(request, STUDENTS)
    if denied is not None:
        return denied
    return await _students_page(request, q=q or "", msg=msg, error=error)


@pages_router.post(STUDENTS.path)
async def students_create(request: Request):
    main = _main()
    denied = await main.guard_page(request, STUDENTS)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    form = await request.form()
    values = {k: str(form.get(k) or "") for k in ("roll_no", "department_id", "year", "phone")}
    repo, caller = await main.records_for(request)
    try:
        await repo.add_student(
            caller=caller,
            roll_no=values["roll_no"],
            department_id=values["department_id"],
            year=values["year"],  # validated (1..4) by the repository
            phone=values["phone"],
        )
    except (ValueError, LookupError) as exc:
        return await _students_page(request, error=_code(exc), values=values, status_code=400)
    except PermissionError as exc:
        return await _students_page(request, error=_code(exc), values=values, status_code=403)
    return _redirect(STUDENTS.path, msg="student_added")


@pages_router.post("/students/{student_id}/delete")
async def students_delete(request: Request, student_id: str):
    main = _main()
    denied = await main.guard_page(request, STUDENTS)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    repo, caller = await main.records_for(request)
    try:
        await repo.delete_student(student_id, caller=caller)
    except (LookupError, PermissionError) as exc:
        return _redirect(STUDENTS.path, error=_code(exc))
    return _redirect(STUDENTS.path, msg="student_deleted")


# --- Courses --------------------------------------------------------------------


@pages_router.get(COURSES.path, response_class=HTMLResponse)
async def courses_page(request: Request, q: Optional[str] = None):
    main = _main()
    denied = await main.guard_page(request, COURSES)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    error = None
    try:
        courses = await repo.list_courses(caller=caller)
    except PermissionError as exc:
        logger.warning("Course list denied: %s", _code(exc))
        courses, error = [], "rls_denied"
    content = f"""
    <section class="courses">
        <h1>Courses</h1>
        {SearchBox("/courses", q or "", "Search by code, name or department").render()}
        {CoursesTable(filter_courses(courses, q)).render()}
    </section>"""
    return _page(request, "Courses", content, error=error)


# --- Attendance -----------------------------------------------------------------


@pages_router.get(ATTENDANCE.path, response_class=HTMLResponse)
async def attendance_page(
    request: Request,
    subject_id: Optional[str] = None,
    date: Optional[str] = None,
    msg: Optional[str] = None,
    error: Optional[str] = None,
):
    """Roster for one subject and day; students without a mark show as absent."""
    main = _main()
    denied = await main.guard_page(request, ATTENDANCE)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    day = date or _date.today().isoformat()
    roster_html = '<p class="empty-state">Select a subject to load the roster.</p>'
    try:
        subjects = await repo.list_subjects(caller=caller)
        if subject_id:
            students = await repo.list_students(caller=caller)
            marks = await repo.list_attendance(caller=caller, subject_id=subject_id, date=day)
            roster_html = RosterTable(build_roster(students, marks), subject_id=subject_id, date=day).render()
    except ValueError as exc:
        subjects, error = [], _code(exc)
    except PermissionError as exc:
        logger.warning("Attendance data denied: %s", _code(exc))
        subjects, error = [], "rls_denied"
    content = f"""
    <section class="attendance">
        <h1>Attendance</h1>
        {AttendanceFilterForm([(s.id, f"{s.subject_code} - {s.subject_name}") for s in subjects], subject_id or "", day).render()}
        {roster_html}
    </section>"""
    return _page(request, "Attendance", content, msg=msg, error=error)


@pages_router.post("/attendance/mark")
async def attendance_mark(request: Request):
    main = _main()
    denied = await main.guard_page(request, ATTENDANCE)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    form = await request.form()
    subject_id = str(form.get("subject_id") or "")
    day = str(form.get("date") or "")
    repo, caller = await main.records_for(request)
    try:
        await repo.upsert_attendance(
            caller=caller,
            student_id=str(form.get("student_id") or ""),
            subject_id=subject_id,
            date=day,
            status=str(form.get("status") or ""),
        )
    except (ValueError, LookupError, PermissionError) as exc:
        return _redirect(ATTENDANCE.path, subject_id=subject_id, date=day, error=_code(exc))
    return _redirect(ATTENDANCE.path, subject_id=subject_id, date=day, msg="attendance_marked")


@pages_router.get(MY_ATTENDANCE.path, response_class=HTMLResponse)
async def my_attendance_page(request: Request):
    """A student's own attendance history; nobody else's rows are fetched."""
    main = _main()
    denied = await main.guard_page(request, MY_ATTENDANCE)
    if denied is not None:
        return denied
    principal = main.current_principal(request)
    repo, caller = await main.records_for(request)
    body = '<p class="empty-state">No student record is linked to your account.</p>'
    error = None
    try:
        student = await repo.find_student_by_user(principal.user_id or "", caller=caller)
        if student is not None:
            records = await repo.list_attendance_for_student(student.id, caller=caller)
            subjects = {s.id: s.subject_name for s in await repo.list_subjects(caller=caller)}
            body = AttendanceHistory(records, subjects, summarize(records)).render()
    except PermissionError as exc:
        logger.warning("Own attendance denied: %s", _code(exc))
        error = "rls_denied"
    content = f'<section class="my-attendance"><h1>My Attendance</h1>{body}</section>'
    return _page(request, "My Attendance", content, error=error)


# --- Notes ----------------------------------------------------------------------


async def _own_student_id(request: Request) -> Optional[str]:
    main = _main()
    principal = main.current_principal(request)
    repo, caller = await main.records_for(request)
    student = await repo.find_student_by_user(principal.user_id or "", caller=caller)
    return student.id if student is not None else None


async def _notes_page(request: Request, *, msg=None, error=None, values=None, status_code: int = 200) -> HTMLResponse:
    main = _main()
    repo, caller = await main.records_for(request)
    body = '<p class="empty-state">No student record is linked to your account.</p>'
    try:
        student_id = await _own_student_id(request)
        if student_id is not None:
            notes = await repo.list_notes(student_id, caller=caller)
            body = NoteForm(values=values).render() + NotesList(notes).render()
    except (PermissionError, LookupError) as exc:
        logger.warning("Notes unavailable: %s", _code(exc))
        error = error or _code(exc)
    content = f'<section class="notes"><h1>My Notes</h1>{body}</section>'
    return _page(request, "My Notes", content, msg=msg, error=error, status_code=status_code)


@pages_router.get(NOTES.path, response_class=HTMLResponse)
async def notes_page(request: Request, msg: Optional[str] = None, error: Optional[str] = None):
    denied = await _main().guard_page(request, NOTES)
    if denied is not None:
        return denied
    return await _notes_page(request, msg=msg, error=error)


@pages_router.post(NOTES.path)
async def notes_create(request: Request):
    main = _main()
    denied = await main.guard_page(request, NOTES)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    form = await request.form()
    values = {"title": str(form.get("title") or ""), "content": str(form.get("content") or "")}
    repo, caller = await main.records_for(request)
    try:
        student_id = await _own_student_id(request)
    except (PermissionError, LookupError) as exc:
        return _redirect(NOTES.path, error=_code(exc))
    if student_id is None:
        return _redirect(NOTES.path, error="student_not_found")
    try:
        await repo.create_note(caller=caller, student_id=student_id, title=values["title"], content=values["content"])
    except ValueError as exc:
        return await _notes_page(request, error=_code(exc), values=values, status_code=400)
    except (PermissionError, LookupError) as exc:
        return _redirect(NOTES.path, error=_code(exc))
    return _redirect(NOTES.path, msg="note_created")


@pages_router.get("/notes/{note_id}/edit", response_class=HTMLResponse)
async def notes_edit_page(request: Request, note_id: str):
    main = _main()
    denied = await main.guard_page(request, NOTES)
    if denied is not None:
        return denied
    repo, caller = await main.records_for(request)
    try:
        student_id = await _own_student_id(request)
        notes = await repo.list_notes(student_id, caller=caller) if student_id else []
    except (PermissionError, LookupError) as exc:
        logger.warning("Note edit unavailable: %s", _code(exc))
        return _redirect(NOTES.path, error=_code(exc))
    note = next((n for n in notes if n.id == note_id), None)
    if note is None:
        return _redirect(NOTES.path, error="note_not_found")
    form = NoteForm(note_id=note.id, values={"title": note.title, "content": note.content}).render()
    return _page(request, "Edit note", f'<section class="notes"><h1>Edit note</h1>{form}</section>')


@pages_router.post("/notes/{note_id}")
async def notes_update(request: Request, note_id: str):
    main = _main()
    denied = await main.guard_page(request, NOTES)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    form = await request.form()
    repo, caller = await main.records_for(request)
    try:
        await repo.update_note(note_id, caller=caller, title=str(form.get("title") or ""), content=str(form.get("content") or ""))
    except (ValueError, LookupError, PermissionError) as exc:
        return _redirect(NOTES.path, error=_code(exc))
    return _redirect(NOTES.path, msg="note_updated")


@pages_router.post("/notes/{note_id}/delete")
async def notes_delete(request: Request, note_id: str) -> Response:
    main = _main()
    denied = await main.guard_page(request, NOTES)
    if denied is not None:
        return denied
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    repo, caller = await main.records_for(request)
    try:
        await repo.delete_note(note_id, caller=caller)
    except (LookupError, PermissionError) as exc:
        return _redirect(NOTES.path, error=_code(exc))
    return _redirect(NOTES.path, msg="note_deleted")
