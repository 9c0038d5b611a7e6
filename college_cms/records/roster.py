"""
Attendance roster: students joined with profile names and the day's marks.

A student without a mark for the subject/date shows as `absent`; a student
without a linked profile shows as `Unknown`.
"""
from __future__ import annotations

from typing import Dict, Iterable, List

from .models import AttendanceRecord, AttendanceStatus, RosterEntry, Student


def build_roster(
    students: Iterable[Student],
    attendance: Iterable[AttendanceRecord],
) -> List[RosterEntry]:
    """Merge students and attendance rows into roster entries ordered by roll number."""
    marks: Dict[str, AttendanceStatus] = {rec.student_id: rec.status for rec in attendance}
    entries: List[RosterEntry] = []
    for student in students:
        entries.append(
            RosterEntry(
                student_id=student.id,
                roll_no=student.roll_no,
                full_name=student.full_name or "Unknown",
                status=marks.get(student.id, AttendanceStatus.ABSENT),
            )
        )
    entries.sort(key=lambda e: e.roll_no)
    return entries


def summarize(records: Iterable[AttendanceRecord]) -> Dict[str, int]:
    """Count records per status; every status key is present."""
    counts = {status.value: 0 for status in AttendanceStatus}
    for rec in records:
        counts[rec.status.value] += 1
    return counts


__all__ = ["build_roster", "summarize"]
