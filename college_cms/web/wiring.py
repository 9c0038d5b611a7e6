"""
Backend wiring: which auth clients, role lookup and records repo the app uses.

Why:
    App startup may occur before Supabase is reachable or configured. The app
    then runs on in-memory adapters; when configuration is present the
    Supabase wiring is installed instead. Routes and middleware only talk to
    the small `BackendWiring` surface so tests swap it via `main.set_wiring`.

Security:
    Browser clients use the anon key; the backend applies row-level security
    with the user's token. The service-role client is created only when
    SUPABASE_SERVICE_ROLE_KEY is set and is used for elevated callers.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from college_cms.identity_access.backend import AuthBackend, RoleLookup
from college_cms.identity_access.memory import InMemoryAuthBackend, InMemoryUserDirectory
from college_cms.identity_access.supabase_backend import (
    SupabaseAuthBackend,
    SupabaseRoleLookup,
    create_browser_client,
    create_service_client,
)
from college_cms.records.repo import InMemoryRecords, InMemoryRoleView, RecordsRepo
from college_cms.records.repo_supabase import SupabaseRecords

from .config import Settings


logger = logging.getLogger("cms.web")


class BackendWiring(Protocol):
    @property
    def elevated_available(self) -> bool:
        ...

    async def new_auth(self) -> AuthBackend:
        """Create a fresh auth client for one browser."""
        ...

    def role_lookup(self, auth: Optional[AuthBackend]) -> Optional[RoleLookup]:
        ...

    async def records_for(self, auth: Optional[AuthBackend], *, elevated: bool) -> RecordsRepo:
        ...


class InMemoryWiring:
    """Everything in process memory; the sign-up trigger seeds profiles and roles.

    `elevated=True` pretends a service-role client is configured, so bypass
    principals can read and write records.
    """

    def __init__(self, records: Optional[InMemoryRecords] = None, *, roles: Optional[RoleLookup] = None, elevated: bool = False) -> None:
        self.records = records or InMemoryRecords()
        self.directory = InMemoryUserDirectory(on_user_created=self.records.on_user_created)
        self.roles: RoleLookup = roles or InMemoryRoleView(self.records)
        self._elevated = elevated

    @classmethod
    def demo(cls) -> "InMemoryWiring":
        """Development wiring with a small seeded college.

        Elevated, so the local admin bypass can browse and edit records.
        Signing up creates further student accounts as usual.
        """
        wiring = cls(elevated=True)
        records = wiring.records
        cs = records.seed_department("Computer Science", "CS")
        math = records.seed_department("Mathematics", "MA")
        records.seed_course("CS101", "Introduction to Programming", 4, department_id=cs.id)
        records.seed_course("MA101", "Calculus I", 3, department_id=math.id)
        records.seed_subject("DSA", "Data Structures")
        records.seed_subject("LA", "Linear Algebra")
        records.seed_student("CS-001", year=1, department_id=cs.id)
        records.seed_student("MA-001", year=2, department_id=math.id)
        return wiring

    @property
    def elevated_available(self) -> bool:
        return self._elevated

    async def new_auth(self) -> InMemoryAuthBackend:
        return InMemoryAuthBackend(self.directory)

    def role_lookup(self, auth: Optional[AuthBackend]) -> Optional[RoleLookup]:
        return self.roles

    async def records_for(self, auth: Optional[AuthBackend], *, elevated: bool) -> InMemoryRecords:
        return self.records


class SupabaseWiring:
    def __init__(self, url: str, anon_key: str, *, service_key: str = "", role_table: str = "user_roles") -> None:
        self._url = url
        self._anon_key = anon_key
        self._service_key = service_key
        self._role_table = role_table
        self._service_client: Any = None
        self._anon_client: Any = None

    @property
    def elevated_available(self) -> bool:
        return bool(self._service_key)

    async def new_auth(self) -> SupabaseAuthBackend:
        return SupabaseAuthBackend(await create_browser_client(self._url, self._anon_key))

    def role_lookup(self, auth: Optional[AuthBackend]) -> Optional[RoleLookup]:
        client = getattr(auth, "client", None)
        if client is None:
            return None
        return SupabaseRoleLookup(client, table=self._role_table)

    async def records_for(self, auth: Optional[AuthBackend], *, elevated: bool) -> SupabaseRecords:
        if elevated and self._service_key:
            if self._service_client is None:
                self._service_client = await create_service_client(self._url, self._service_key)
            return SupabaseRecords(self._service_client)
        client = getattr(auth, "client", None)
        if client is None:
            # No browser session: an anon client sees only what RLS grants anonymous callers.
            if self._anon_client is None:
                self._anon_client = await create_browser_client(self._url, self._anon_key)
            client = self._anon_client
        return SupabaseRecords(client)


def wiring_from_settings(settings: Settings) -> BackendWiring:
    """Pick Supabase wiring when configured, else the in-memory adapters.

    Behavior:
        - Supabase needs SUPABASE_URL and SUPABASE_ANON_KEY; clients are created
          lazily on first use, so an unreachable project does not block startup.
        - Without configuration, logs a warning and returns the seeded
          `InMemoryWiring.demo()`.
    """
    if settings.supabase_configured:
        logger.info("Backend wired: Supabase (%s)", settings.supabase_url)
        return SupabaseWiring(
            settings.supabase_url,
            settings.supabase_anon_key,
            service_key=settings.supabase_service_role_key,
            role_table=settings.role_table,
        )
    logger.warning("Supabase not configured; using seeded in-memory backend")
    return InMemoryWiring.demo()


__all__ = ["BackendWiring", "InMemoryWiring", "SupabaseWiring", "wiring_from_settings"]
