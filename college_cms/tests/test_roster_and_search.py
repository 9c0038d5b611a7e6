"""
Roster assembly and list filters.
"""
from __future__ import annotations

from college_cms.records.models import AttendanceRecord, AttendanceStatus, Course, Student
from college_cms.records.roster import build_roster, summarize
from college_cms.records.search import filter_courses, filter_students


def _students():
    return [
        Student(id="2", roll_no="CS-002", year=1, user_id="u-2", full_name="Ben Ode", department_code="CS"),
        Student(id="1", roll_no="CS-001", year=1, user_id="u-1", full_name="Asha Rao", email="asha@college.test"),
        Student(id="3", roll_no="PH-001", year=2, department_name="Physics"),
    ]


def test_roster_defaults_unmarked_to_absent_and_unknown_name():
    marks = [AttendanceRecord(student_id="2", subject_id="m", date="2024-03-01", status=AttendanceStatus.PRESENT)]
    roster = build_roster(_students(), marks)
    assert [e.roll_no for e in roster] == ["CS-001", "CS-002", "PH-001"]
    assert [e.status for e in roster] == [AttendanceStatus.ABSENT, AttendanceStatus.PRESENT, AttendanceStatus.ABSENT]
    assert roster[2].full_name == "Unknown"


def test_summary_has_every_status():
    recs = [
        AttendanceRecord(student_id="1", subject_id="m", date="2024-03-01", status=AttendanceStatus.LATE),
        AttendanceRecord(student_id="1", subject_id="m", date="2024-03-02", status=AttendanceStatus.LATE),
    ]
    assert summarize(recs) == {"present": 0, "absent": 0, "late": 2}
    assert summarize([]) == {"present": 0, "absent": 0, "late": 0}


def test_filter_students_matches_any_display_field():
    students = _students()
    assert filter_students(students, None) == students
    assert filter_students(students, "   ") == students
    assert [s.id for s in filter_students(students, "asha")] == ["1"]
    assert [s.id for s in filter_students(students, "COLLEGE.test")] == ["1"]
    assert [s.id for s in filter_students(students, "physics")] == ["3"]
    assert [s.id for s in filter_students(students, "cs-")] == ["2", "1"]
    assert filter_students(students, "zzz") == []


def test_filter_courses():
    courses = [
        Course(id="a", course_code="CS101", course_name="Programming", credits=4, department_code="CS"),
        Course(id="b", course_code="MA201", course_name="Linear Algebra", credits=3, department_name="Mathematics"),
    ]
    assert [c.id for c in filter_courses(courses, "algebra")] == ["b"]
    assert [c.id for c in filter_courses(courses, "cs1")] == ["a"]
    assert [c.id for c in filter_courses(courses, "math")] == ["b"]
