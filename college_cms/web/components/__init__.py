# College CMS component system
# Pure Python components for HTML generation

from .base import Component
from .layout import Layout
from .navigation import Navigation
from .forms import (
    AttendanceFilterForm,
    NoteForm,
    SignInForm,
    SignUpForm,
    StudentCreateForm,
    error_message,
)
from .tables import (
    AttendanceHistory,
    CoursesTable,
    NotesList,
    RosterTable,
    SearchBox,
    StatsCards,
    StudentsTable,
)

__all__ = [
    "AttendanceFilterForm",
    "AttendanceHistory",
    "Component",
    "CoursesTable",
    "Layout",
    "Navigation",
    "NoteForm",
    "NotesList",
    "RosterTable",
    "SearchBox",
    "SignInForm",
    "SignUpForm",
    "StatsCards",
    "StudentCreateForm",
    "StudentsTable",
    "error_message",
]
