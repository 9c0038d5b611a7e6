"""College records: tables, repositories, roster and search helpers."""

from .models import AttendanceStatus, Caller
from .repo import InMemoryRecords, InMemoryRoleView, RecordsRepo

__all__ = ["AttendanceStatus", "Caller", "InMemoryRecords", "InMemoryRoleView", "RecordsRepo"]
