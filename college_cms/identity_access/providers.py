"""
Authorization providers: one abstraction for "who is calling".

Two sources can assert a principal: the hosted backend session (with its role
record) and the client-local bypass flag. Each is a provider; a composite asks
them in a configured order and the first opinion wins. This replaces scattered
flag checks in every page with a single, ordered decision.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from . import bypass
from .backend import AuthBackend, AuthSession, RoleLookup
from .domain import Principal, Role


logger = logging.getLogger("cms.identity_access")

PRECEDENCE_BYPASS_FIRST = "bypass-first"
PRECEDENCE_SESSION_FIRST = "session-first"
PRECEDENCES = frozenset({PRECEDENCE_BYPASS_FIRST, PRECEDENCE_SESSION_FIRST})


class AuthorizationProvider(Protocol):
    async def provide(self) -> Optional[Principal]:
        """Return a principal, or None to defer to the next provider."""
        ...


class LocalOverrideProvider:
    """Admin principal when the bypass flag is set; never calls the backend."""

    def __init__(self, storage: bypass.ClientStorage) -> None:
        self._storage = storage

    async def provide(self) -> Optional[Principal]:
        if bypass.is_active(self._storage):
            return Principal.bypass_admin()
        return None


class RemoteSessionProvider:
    """Principal from the backend session and the role table.

    Behavior:
        - No backend configured, no session, or a failing session call:
          anonymous (a failure is logged, never retried).
        - Session present: role lookup by user id. A missing row or a query
          error yields `Role.UNKNOWN` but keeps the caller authenticated.

    `authenticated_only=True` returns None instead of an anonymous principal so
    a later provider can still answer (used for session-first precedence).
    """

    def __init__(self, auth: Optional[AuthBackend], roles: Optional[RoleLookup], *, authenticated_only: bool = False) -> None:
        self._auth = auth
        self._roles = roles
        self._authenticated_only = authenticated_only

    async def provide(self) -> Optional[Principal]:
        session = await self._current_session()
        if session is None:
            return None if self._authenticated_only else Principal.anonymous()
        role = await self.lookup_role(session)
        return Principal.from_session(session, role)

    async def _current_session(self) -> Optional[AuthSession]:
        if self._auth is None:
            return None
        try:
            return await self._auth.get_session()
        except Exception as exc:
            logger.warning("Backend session lookup failed: %s", exc.__class__.__name__)
            return None

    async def lookup_role(self, session: AuthSession) -> Role:
        if self._roles is None:
            return Role.UNKNOWN
        try:
            raw = await self._roles.get_role(session.user_id)
        except Exception as exc:
            logger.warning("Role lookup failed for user %s: %s", session.user_id, exc.__class__.__name__)
            return Role.UNKNOWN
        if raw is None:
            logger.info("No role record for user %s", session.user_id)
            return Role.UNKNOWN
        role = Role.parse(raw)
        if role is Role.UNKNOWN:
            logger.warning("Unrecognised role value for user %s", session.user_id)
        return role


class CompositeProvider:
    """Ask providers in order; the first non-None principal wins."""

    def __init__(self, providers: Sequence[AuthorizationProvider]) -> None:
        self._providers = list(providers)

    async def provide(self) -> Principal:
        for provider in self._providers:
            principal = await provider.provide()
            if principal is not None:
                return principal
        return Principal.anonymous()


def build_provider(
    storage: Optional[bypass.ClientStorage],
    auth: Optional[AuthBackend],
    roles: Optional[RoleLookup],
    *,
    precedence: str = PRECEDENCE_BYPASS_FIRST,
    bypass_enabled: bool = True,
) -> CompositeProvider:
    """Compose the bypass and backend providers in the configured order.

    - `bypass-first`: the flag short-circuits before the backend is asked.
    - `session-first`: a live backend session wins; the flag only applies to
      callers without one.
    """
    if precedence not in PRECEDENCES:
        raise ValueError("invalid_precedence")
    override = LocalOverrideProvider(storage) if (bypass_enabled and storage is not None) else None
    if override is None:
        return CompositeProvider([RemoteSessionProvider(auth, roles)])
    if precedence == PRECEDENCE_SESSION_FIRST:
        return CompositeProvider([RemoteSessionProvider(auth, roles, authenticated_only=True), override])
    return CompositeProvider([override, RemoteSessionProvider(auth, roles)])


__all__ = [
    "AuthorizationProvider",
    "CompositeProvider",
    "LocalOverrideProvider",
    "PRECEDENCES",
    "PRECEDENCE_BYPASS_FIRST",
    "PRECEDENCE_SESSION_FIRST",
    "RemoteSessionProvider",
    "build_provider",
]
