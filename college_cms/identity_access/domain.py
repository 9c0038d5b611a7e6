"""
Identity domain: roles, principals and protected views.

Why:
- Centralize the role vocabulary so the guard, the pages and the role lookup
  cannot drift apart.
- Keep role values a closed enumeration. Unknown strings coming back from the
  backend collapse to `Role.UNKNOWN` instead of silently matching nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> "Role":
        """Map a raw role string to a Role; anything unrecognised is UNKNOWN."""
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN
        normalized = value.strip().lower()
        for role in (cls.STUDENT, cls.TEACHER, cls.ADMIN):
            if role.value == normalized:
                return role
        return cls.UNKNOWN


# Roles a Role Record may hold. UNKNOWN is a resolution outcome, never stored.
ALLOWED_ROLES = frozenset({Role.STUDENT.value, Role.TEACHER.value, Role.ADMIN.value})


class PrincipalSource(str, Enum):
    BACKEND_SESSION = "backend-session"
    LOCAL_BYPASS = "local-bypass"


@dataclass(frozen=True)
class Principal:
    """Resolved identity and role for the current browser session."""

    is_authenticated: bool
    role: Role = Role.UNKNOWN
    source: Optional[PrincipalSource] = None
    user_id: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls(is_authenticated=False)

    @classmethod
    def bypass_admin(cls) -> "Principal":
        # No backend identity backs this principal.
        return cls(is_authenticated=True, role=Role.ADMIN, source=PrincipalSource.LOCAL_BYPASS)

    @classmethod
    def from_session(cls, session, role: object) -> "Principal":
        return cls(
            is_authenticated=True,
            role=Role.parse(role),
            source=PrincipalSource.BACKEND_SESSION,
            user_id=session.user_id,
            email=session.email,
        )

    @property
    def is_bypass(self) -> bool:
        return self.source is PrincipalSource.LOCAL_BYPASS

    def as_user_context(self) -> dict:
        """Minimal, template-safe view of the principal (no tokens)."""
        return {
            "sub": self.user_id or "",
            "email": self.email or "",
            "role": self.role.value,
            "source": self.source.value if self.source else "",
        }


@dataclass(frozen=True)
class ProtectedView:
    """A page gated by an optional allow-list of roles.

    `allowed_roles=None` means any authenticated principal may render it.
    """

    name: str
    path: str
    allowed_roles: Optional[Tuple[Role, ...]] = None

    @classmethod
    def of(cls, name: str, path: str, roles: Optional[Sequence[object]] = None) -> "ProtectedView":
        if roles is None:
            return cls(name=name, path=path, allowed_roles=None)
        return cls(name=name, path=path, allowed_roles=tuple(Role.parse(r) for r in roles))


def is_role_allowed(role: Role, allowed_roles: Optional[Sequence[Role]]) -> bool:
    """Explicit allow-list membership.

    - No allow-list: every role passes (authentication is checked elsewhere).
    - UNKNOWN never passes a declared allow-list, even one that lists it.
    """
    if allowed_roles is None:
        return True
    if role is Role.UNKNOWN:
        return False
    return role in allowed_roles


__all__ = [
    "ALLOWED_ROLES",
    "Principal",
    "PrincipalSource",
    "ProtectedView",
    "Role",
    "is_role_allowed",
]
