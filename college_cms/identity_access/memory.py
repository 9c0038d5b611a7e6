"""
In-memory auth backend and role table for development and tests.

Why: The hosted backend is an external collaborator. These adapters mimic its
observable behaviour (sessions, synchronous auth-state callbacks, one role row
per identity) so the gate can be exercised without network access.

Not for production: accounts and passwords live in process memory.
"""
from __future__ import annotations

import asyncio
import secrets
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .backend import AuthError, AuthEvent, AuthSession, AuthStateHandler


@dataclass
class _Account:
    user_id: str
    email: str
    password: str
    full_name: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)


class InMemoryUserDirectory:
    """Accounts shared by all in-memory auth clients (the "hosted" side).

    `on_user_created(user_id, email, full_name, metadata)` plays the role of the
    database trigger that seeds `profiles` and `user_roles` on sign-up.
    """

    def __init__(self, on_user_created: Optional[Callable[[str, str, str, Dict[str, str]], None]] = None) -> None:
        self._by_email: Dict[str, _Account] = {}
        self._on_user_created = on_user_created

    def add_user(self, email: str, password: str, *, user_id: Optional[str] = None, full_name: str = "", **metadata: str) -> str:
        key = email.strip().lower()
        if key in self._by_email:
            raise AuthError("User already registered")
        account = _Account(user_id=user_id or str(uuid.uuid4()), email=key, password=password, full_name=full_name, metadata=dict(metadata))
        self._by_email[key] = account
        if self._on_user_created is not None:
            self._on_user_created(account.user_id, account.email, full_name, dict(metadata))
        return account.user_id

    def authenticate(self, email: str, password: str) -> Optional[_Account]:
        account = self._by_email.get((email or "").strip().lower())
        if account is None or not secrets.compare_digest(account.password, password or ""):
            return None
        return account

    def get(self, email: str) -> Optional[_Account]:
        return self._by_email.get((email or "").strip().lower())


class _InMemorySubscription:
    def __init__(self, owner: "InMemoryAuthBackend", handler: AuthStateHandler) -> None:
        self._owner = owner
        self._handler = handler

    def unsubscribe(self) -> None:
        self._owner._handlers = [h for h in self._owner._handlers if h is not self._handler]


def _issue_session(account: _Account, ttl_seconds: int = 3600) -> AuthSession:
    return AuthSession(
        user_id=account.user_id,
        email=account.email,
        access_token=secrets.token_urlsafe(24),
        refresh_token=secrets.token_urlsafe(24),
        expires_at=int(time.time()) + ttl_seconds,
    )


class InMemoryAuthBackend:
    """Per-browser auth client bound to an `InMemoryUserDirectory`.

    Handlers are invoked synchronously from within sign-in/sign-out, the same
    way the Supabase client notifies its subscribers.
    """

    def __init__(self, directory: Optional[InMemoryUserDirectory] = None, *, session: Optional[AuthSession] = None) -> None:
        self.directory = directory or InMemoryUserDirectory()
        self._session = session
        self._handlers: List[AuthStateHandler] = []
        self.fail_get_session: Optional[Exception] = None
        self.sign_out_calls = 0

    async def get_session(self) -> Optional[AuthSession]:
        if self.fail_get_session is not None:
            raise self.fail_get_session
        return self._session

    def on_auth_state_change(self, handler: AuthStateHandler) -> _InMemorySubscription:
        self._handlers.append(handler)
        return _InMemorySubscription(self, handler)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def emit(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        """Simulate a backend auth-state transition and notify subscribers."""
        if event is AuthEvent.SIGNED_OUT:
            self._session = None
        elif session is not None:
            self._session = session
        for handler in list(self._handlers):
            handler(event, self._session)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        account = self.directory.authenticate(email, password)
        if account is None:
            raise AuthError("Invalid login credentials")
        session = _issue_session(account)
        self.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_up(self, email: str, password: str, full_name: str) -> Optional[AuthSession]:
        self.directory.add_user(email, password, full_name=full_name, role="student")
        return await self.sign_in_with_password(email, password)

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.emit(AuthEvent.SIGNED_OUT, None)

    def refresh(self) -> AuthSession:
        """Rotate tokens for the current session and emit TOKEN_REFRESHED."""
        if self._session is None:
            raise AuthError("No active session")
        current = self._session
        rotated = AuthSession(
            user_id=current.user_id,
            email=current.email,
            access_token=secrets.token_urlsafe(24),
            refresh_token=secrets.token_urlsafe(24),
            expires_at=int(time.time()) + 3600,
        )
        self.emit(AuthEvent.TOKEN_REFRESHED, rotated)
        return rotated


class InMemoryRoleTable:
    """Single-row-per-identity role table.

    Test hooks:
        - `fail_with`: raise this exception from every lookup (query error).
        - `queue_responses([(delay, role), ...])`: script the next lookups,
          regardless of the stored rows, to simulate slow or changing answers.
        - `calls`: user ids looked up, in initiation order.
    """

    def __init__(self, rows: Optional[Dict[str, str]] = None) -> None:
        self.rows: Dict[str, str] = dict(rows or {})
        self.fail_with: Optional[Exception] = None
        self.calls: List[str] = []
        self._scripted: Deque[Tuple[float, Optional[str]]] = deque()

    def set_role(self, user_id: str, role: str) -> None:
        self.rows[user_id] = role

    def remove(self, user_id: str) -> None:
        self.rows.pop(user_id, None)

    def queue_responses(self, responses: List[Tuple[float, Optional[str]]]) -> None:
        self._scripted.extend(responses)

    async def get_role(self, user_id: str) -> Optional[str]:
        self.calls.append(user_id)
        if self._scripted:
            delay, role = self._scripted.popleft()
            await asyncio.sleep(delay)
            return role
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        return self.rows.get(user_id)


__all__ = ["InMemoryAuthBackend", "InMemoryRoleTable", "InMemoryUserDirectory"]
