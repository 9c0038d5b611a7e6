"""
Form components.

Field wrappers keep markup consistent; the concrete forms map error codes
from the routes to short user-facing messages.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from .base import Component


ERROR_MESSAGES: Dict[str, str] = {
    "invalid_email": "Please enter a valid email address.",
    "password_too_short": "Password must be at least 6 characters.",
    "full_name_too_short": "Full name must be at least 2 characters.",
    "invalid_credentials": "Invalid email or password.",
    "students_only": "Only students can sign in here.",
    "signup_failed": "Sign-up failed. Please try again.",
    "invalid_roll_no": "Roll number is required.",
    "invalid_year": "Year must be between 1 and 4.",
    "duplicate_roll_no": "A student with this roll number already exists.",
    "department_not_found": "Please choose a department.",
    "invalid_title": "Title is required.",
    "invalid_date": "Please choose a valid date.",
    "invalid_status": "Unknown attendance status.",
    "rls_denied": "The backend refused access to these records.",
    "students_forbidden": "Only teachers and administrators can manage students.",
    "attendance_forbidden": "Only teachers and administrators can mark attendance.",
    "notes_forbidden": "You can only manage your own notes.",
    "student_not_found": "No student record is linked to your account.",
    "note_not_found": "Note not found.",
    "subject_not_found": "Subject not found.",
}


def error_message(code: Optional[str]) -> str:
    if not code:
        return ""
    return ERROR_MESSAGES.get(code, "Something went wrong. Please try again.")


class FormField(Component):
    """Wrapper that renders label, input slot and error text."""

    def __init__(self, field_id: str, label: str, *, required: bool = False, error_text: Optional[str] = None) -> None:
        self.field_id = field_id
        self.label = label
        self.required = required
        self.error_text = error_text

    def render(self, input_html: str) -> str:
        required_marker = '<span class="form-required" aria-hidden="true">*</span>' if self.required else ""
        error_html = (
            f'<p class="form-error" role="alert" id="{self.field_id}-error">{self.escape(self.error_text)}</p>'
            if self.error_text
            else ""
        )
        label_attrs = self.attributes(for_=self.field_id, class_="form-label")
        return (
            '<div class="form-field">'
            f"<label {label_attrs}>{self.escape(self.label)}{required_marker}</label>"
            f"{input_html}"
            f"{error_html}"
            "</div>"
        )


class TextInputField(FormField):
    def render(self, value: str = "", input_type: str = "text", **attrs) -> str:  # type: ignore[override]
        input_attrs = self.attributes(
            id=self.field_id,
            name=self.field_id,
            type=input_type,
            value=value,
            required=self.required,
            class_="form-input",
            **attrs,
        )
        return super().render(f"<input {input_attrs}>")


class SelectField(FormField):
    def render(self, options: Sequence[Tuple[str, str]], selected: str = "", **attrs) -> str:  # type: ignore[override]
        select_attrs = self.attributes(id=self.field_id, name=self.field_id, required=self.required, class_="form-select", **attrs)
        opts = [
            f'<option value="{self.escape(value)}"{" selected" if value == selected else ""}>{self.escape(label)}</option>'
            for value, label in options
        ]
        return super().render(f"<select {select_attrs}>{''.join(opts)}</select>")


class TextAreaField(FormField):
    def render(self, value: str = "", rows: int = 5, **attrs) -> str:  # type: ignore[override]
        area_attrs = self.attributes(id=self.field_id, name=self.field_id, rows=str(rows), class_="form-textarea", **attrs)
        return super().render(f"<textarea {area_attrs}>{self.escape(value)}</textarea>")


def _error_block(code: Optional[str]) -> str:
    if not code:
        return ""
    return f'<div class="form-error" role="alert">{Component.escape(error_message(code))}</div>'


class SignInForm(Component):
    def __init__(self, error: Optional[str] = None, values: Optional[dict] = None):
        self.error = error
        self.values = values or {}

    def render(self) -> str:
        # type=text: the bypass identity is not an email address
        email = TextInputField("email", "Email", required=True).render(value=self.values.get("email", ""), autocomplete="username")
        password = TextInputField("password", "Password", required=True).render(input_type="password", autocomplete="current-password")
        return f"""
        <form method="post" action="/auth/signin" class="auth-form" id="signin-form">
            <h2>Sign in</h2>
            {email}
            {password}
            {_error_block(self.error)}
            <div class="form-actions"><button type="submit" class="btn btn-primary">Sign in</button></div>
        </form>"""


class SignUpForm(Component):
    def __init__(self, error: Optional[str] = None, values: Optional[dict] = None):
        self.error = error
        self.values = values or {}

    def render(self) -> str:
        full_name = TextInputField("full_name", "Full name", required=True).render(value=self.values.get("full_name", ""))
        email = TextInputField("email", "Email", required=True).render(value=self.values.get("email", ""), input_type="email")
        password = TextInputField("password", "Password", required=True).render(input_type="password", autocomplete="new-password")
        return f"""
        <form method="post" action="/auth/signup" class="auth-form" id="signup-form">
            <h2>Create a student account</h2>
            {full_name}
            {email}
            {password}
            {_error_block(self.error)}
            <div class="form-actions"><button type="submit" class="btn">Sign up</button></div>
        </form>"""


class StudentCreateForm(Component):
    def __init__(self, departments: Sequence[Tuple[str, str]], error: Optional[str] = None, values: Optional[dict] = None):
        self.departments = list(departments)
        self.error = error
        self.values = values or {}

    def render(self) -> str:
        roll = TextInputField("roll_no", "Roll number", required=True).render(value=self.values.get("roll_no", ""))
        dept = SelectField("department_id", "Department", required=True).render(
            [("", "Select department")] + self.departments, selected=self.values.get("department_id", "")
        )
        year = SelectField("year", "Year", required=True).render(
            [(str(y), f"Year {y}") for y in range(1, 5)], selected=str(self.values.get("year", "1"))
        )
        phone = TextInputField("phone", "Phone").render(value=self.values.get("phone", ""), input_type="tel")
        return f"""
        <form method="post" action="/students" class="student-create-form">
            <h2>Add student</h2>
            {roll}
            {dept}
            {year}
            {phone}
            {_error_block(self.error)}
            <div class="form-actions"><button type="submit" class="btn btn-primary">Add student</button></div>
        </form>"""


class NoteForm(Component):
    """Create a note, or edit one when `note_id` is given."""

    def __init__(self, note_id: Optional[str] = None, error: Optional[str] = None, values: Optional[dict] = None):
        self.note_id = note_id
        self.error = error
        self.values = values or {}

    def render(self) -> str:
        action = f"/notes/{self.escape(self.note_id)}" if self.note_id else "/notes"
        title = TextInputField("title", "Title", required=True).render(value=self.values.get("title", ""))
        content = TextAreaField("content", "Content").render(value=self.values.get("content", ""))
        label = "Save note" if self.note_id else "Add note"
        return f"""
        <form method="post" action="{action}" class="note-form">
            {title}
            {content}
            {_error_block(self.error)}
            <div class="form-actions"><button type="submit" class="btn btn-primary">{label}</button></div>
        </form>"""


class AttendanceFilterForm(Component):
    def __init__(self, subjects: List[Tuple[str, str]], subject_id: str = "", date: str = ""):
        self.subjects = subjects
        self.subject_id = subject_id
        self.date = date

    def render(self) -> str:
        subject = SelectField("subject_id", "Subject", required=True).render(
            [("", "Select subject")] + self.subjects, selected=self.subject_id
        )
        day = TextInputField("date", "Date", required=True).render(value=self.date, input_type="date")
        return f"""
        <form method="get" action="/attendance" class="attendance-filter">
            {subject}
            {day}
            <div class="form-actions"><button type="submit" class="btn">Load roster</button></div>
        </form>"""
