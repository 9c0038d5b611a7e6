"""
Ports to the hosted auth backend and its role table.

The backend (Supabase in production) is an opaque collaborator: it owns the
session, emits auth-state-change events and stores exactly one role record per
identity. The web layer and the resolver only talk to these protocols so tests
can substitute the in-memory adapters from `identity_access.memory`.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"

    @classmethod
    def parse(cls, value: object) -> "AuthEvent":
        raw = getattr(value, "value", value)
        try:
            return cls(str(raw))
        except ValueError:
            # Events we do not model explicitly (e.g. PASSWORD_RECOVERY) still
            # mean "the user context may have changed".
            return cls.USER_UPDATED


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    email: str
    access_token: str = ""
    refresh_token: str = ""
    expires_at: Optional[int] = None


AuthStateHandler = Callable[[AuthEvent, Optional[AuthSession]], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class AuthError(Exception):
    """Sign-in/sign-up rejected by the backend; `str(exc)` is user-facing."""


class AuthBackend(Protocol):
    async def get_session(self) -> Optional[AuthSession]:
        ...

    def on_auth_state_change(self, handler: AuthStateHandler) -> Subscription:
        ...

    async def sign_out(self) -> None:
        ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        ...

    async def sign_up(self, email: str, password: str, full_name: str) -> Optional[AuthSession]:
        ...


class RoleLookup(Protocol):
    async def get_role(self, user_id: str) -> Optional[str]:
        """Return the raw role string, None when no record exists.

        Query errors propagate as exceptions; callers decide how to degrade.
        """
        ...


__all__ = [
    "AuthBackend",
    "AuthError",
    "AuthEvent",
    "AuthSession",
    "AuthStateHandler",
    "RoleLookup",
    "Subscription",
]
