"""
Protected views and their role allow-lists.

The guard, the navigation and the JSON mirrors all read these definitions, so
a page's allow-list is declared exactly once.
"""
from __future__ import annotations

from typing import List, Tuple

from college_cms.identity_access.domain import ProtectedView


DASHBOARD = ProtectedView.of("dashboard", "/dashboard")
STUDENTS = ProtectedView.of("students", "/students", ["admin", "teacher"])
COURSES = ProtectedView.of("courses", "/courses")
ATTENDANCE = ProtectedView.of("attendance", "/attendance", ["teacher", "admin"])
MY_ATTENDANCE = ProtectedView.of("my-attendance", "/attendance/mine", ["student"])
NOTES = ProtectedView.of("notes", "/notes", ["student"])

# (view, label) in sidebar order
NAV_ITEMS: List[Tuple[ProtectedView, str]] = [
    (DASHBOARD, "Dashboard"),
    (STUDENTS, "Students"),
    (COURSES, "Courses"),
    (ATTENDANCE, "Attendance"),
    (MY_ATTENDANCE, "My Attendance"),
    (NOTES, "My Notes"),
]

__all__ = ["ATTENDANCE", "COURSES", "DASHBOARD", "MY_ATTENDANCE", "NAV_ITEMS", "NOTES", "STUDENTS"]
