"""
List and card components for the record pages.
"""

from typing import Dict, Iterable, List, Optional

from college_cms.records.models import AttendanceRecord, Course, DashboardStats, Note, RosterEntry, Student

from .base import Component


class StatsCards(Component):
    def __init__(self, stats: DashboardStats):
        self.stats = stats

    def render(self) -> str:
        cards = [
            ("Total Students", self.stats.students),
            ("Total Courses", self.stats.courses),
            ("Departments", self.stats.departments),
        ]
        items = "".join(
            f'<div class="stat-card"><span class="stat-label">{self.escape(label)}</span>'
            f'<span class="stat-value">{int(value)}</span></div>'
            for label, value in cards
        )
        return f'<section class="stats-grid" aria-label="Statistics">{items}</section>'


class SearchBox(Component):
    def __init__(self, action: str, query: str = "", placeholder: str = "Search"):
        self.action = action
        self.query = query
        self.placeholder = placeholder

    def render(self) -> str:
        attrs = self.attributes(type="search", name="q", value=self.query, placeholder=self.placeholder, class_="form-input", aria_label=self.placeholder)
        return f'<form method="get" action="{self.escape(self.action)}" class="search-box" role="search"><input {attrs}></form>'


class StudentsTable(Component):
    def __init__(self, students: Iterable[Student], *, can_delete: bool = False):
        self.students = list(students)
        self.can_delete = can_delete

    def render(self) -> str:
        if not self.students:
            return '<p class="empty-state">No students found.</p>'
        rows = []
        for s in self.students:
            dept = s.department_code or s.department_name or ""
            actions = ""
            if self.can_delete:
                actions = (
                    f'<form method="post" action="/students/{self.escape(s.id)}/delete">'
                    '<button type="submit" class="btn btn-danger">Delete</button></form>'
                )
            rows.append(
                "<tr>"
                f"<td>{self.escape(s.roll_no)}</td>"
                f"<td>{self.escape(s.full_name or 'N/A')}</td>"
                f"<td>{self.escape(s.email or '')}</td>"
                f"<td>{self.escape(dept)}</td>"
                f"<td>{int(s.year)}</td>"
                f"<td>{actions}</td>"
                "</tr>"
            )
        return (
            '<table class="table students-table"><thead><tr>'
            "<th>Roll No</th><th>Name</th><th>Email</th><th>Department</th><th>Year</th><th></th>"
            f"</tr></thead><tbody>{''.join(rows)}</tbody></table>"
        )


class CoursesTable(Component):
    def __init__(self, courses: Iterable[Course]):
        self.courses = list(courses)

    def render(self) -> str:
        if not self.courses:
            return '<p class="empty-state">No courses found.</p>'
        cards = []
        for c in self.courses:
            desc = f'<p class="course-description">{self.escape(c.description)}</p>' if c.description else ""
            dept = f'<span class="course-dept">{self.escape(c.department_name)}</span>' if c.department_name else ""
            cards.append(
                '<article class="course-card">'
                f'<header><span class="course-code">{self.escape(c.course_code)}</span>'
                f'<span class="course-credits">{int(c.credits)} credits</span></header>'
                f"<h3>{self.escape(c.course_name)}</h3>{desc}{dept}"
                "</article>"
            )
        return f'<section class="course-grid">{"".join(cards)}</section>'


class RosterTable(Component):
    """Roster with one status selector per student (teachers/admins)."""

    STATUSES = ("present", "absent", "late")

    def __init__(self, entries: Iterable[RosterEntry], *, subject_id: str, date: str):
        self.entries = list(entries)
        self.subject_id = subject_id
        self.date = date

    def render(self) -> str:
        if not self.entries:
            return '<p class="empty-state">No students on this roster.</p>'
        rows = []
        for e in self.entries:
            buttons = "".join(
                f'<button type="submit" name="status" value="{status}" '
                f'class="{self.classes("btn", "btn-status", active=(e.status.value == status))}">{status.title()}</button>'
                for status in self.STATUSES
            )
            rows.append(
                "<tr>"
                f"<td>{self.escape(e.roll_no)}</td>"
                f"<td>{self.escape(e.full_name)}</td>"
                f'<td class="status status-{self.escape(e.status.value)}">{self.escape(e.status.value)}</td>'
                "<td>"
                '<form method="post" action="/attendance/mark">'
                f'<input type="hidden" name="student_id" value="{self.escape(e.student_id)}">'
                f'<input type="hidden" name="subject_id" value="{self.escape(self.subject_id)}">'
                f'<input type="hidden" name="date" value="{self.escape(self.date)}">'
                f"{buttons}</form>"
                "</td>"
                "</tr>"
            )
        return (
            '<table class="table roster-table"><thead><tr>'
            "<th>Roll No</th><th>Name</th><th>Status</th><th>Mark</th>"
            f"</tr></thead><tbody>{''.join(rows)}</tbody></table>"
        )


class AttendanceHistory(Component):
    def __init__(self, records: Iterable[AttendanceRecord], subject_names: Optional[Dict[str, str]] = None, summary: Optional[Dict[str, int]] = None):
        self.records = list(records)
        self.subject_names = subject_names or {}
        self.summary = summary or {}

    def render(self) -> str:
        summary = " ".join(
            f'<span class="summary-item">{self.escape(k.title())}: {int(v)}</span>' for k, v in self.summary.items()
        )
        if not self.records:
            return f'<div class="attendance-summary">{summary}</div><p class="empty-state">No attendance recorded yet.</p>'
        rows = "".join(
            "<tr>"
            f"<td>{self.escape(r.date)}</td>"
            f"<td>{self.escape(self.subject_names.get(r.subject_id, r.subject_id))}</td>"
            f'<td class="status status-{self.escape(r.status.value)}">{self.escape(r.status.value)}</td>'
            "</tr>"
            for r in self.records
        )
        return (
            f'<div class="attendance-summary">{summary}</div>'
            '<table class="table attendance-history"><thead><tr><th>Date</th><th>Subject</th><th>Status</th></tr></thead>'
            f"<tbody>{rows}</tbody></table>"
        )


class NotesList(Component):
    def __init__(self, notes: List[Note]):
        self.notes = notes

    def render(self) -> str:
        if not self.notes:
            return '<p class="empty-state">No notes yet. Create your first note.</p>'
        items = []
        for n in self.notes:
            nid = self.escape(n.id)
            items.append(
                '<article class="note-card">'
                f"<h3>{self.escape(n.title)}</h3>"
                f'<p class="note-content">{self.escape(n.content)}</p>'
                f'<footer><time datetime="{self.escape(n.updated_at)}">{self.escape(n.updated_at[:10])}</time>'
                f'<a href="/notes/{nid}/edit" class="btn btn-link">Edit</a>'
                f'<form method="post" action="/notes/{nid}/delete"><button type="submit" class="btn btn-danger">Delete</button></form>'
                "</footer></article>"
            )
        return f'<section class="notes-grid">{"".join(items)}</section>'
