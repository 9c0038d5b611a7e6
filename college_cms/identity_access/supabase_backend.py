"""
Supabase adapters for the auth and role-lookup ports.

The adapters are duck-typed against the async client returned by
`supabase.acreate_client(...)` so tests can hand in fakes:

- `client.auth.get_session()` -> Session | None
- `client.auth.on_auth_state_change(cb)` -> Subscription (sync registration)
- `client.auth.sign_in_with_password({...})`, `client.auth.sign_up({...})`,
  `client.auth.sign_out()`
- `client.table(name).select(...).eq(...).maybe_single().execute()`

Security:
- Per-browser clients are created with the anon key; row-level security is
  enforced by the backend with the user's access token.
- The service-role client bypasses RLS. It is created only from server-side
  configuration and never bound to a browser session.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from .backend import AuthError, AuthEvent, AuthSession, AuthStateHandler


logger = logging.getLogger("cms.identity_access")


def _to_session(raw: Any) -> Optional[AuthSession]:
    """Normalize a gotrue Session (or None) into our AuthSession."""
    if raw is None:
        return None
    user = getattr(raw, "user", None)
    user_id = getattr(user, "id", None)
    if not user_id:
        return None
    return AuthSession(
        user_id=str(user_id),
        email=str(getattr(user, "email", "") or ""),
        access_token=str(getattr(raw, "access_token", "") or ""),
        refresh_token=str(getattr(raw, "refresh_token", "") or ""),
        expires_at=getattr(raw, "expires_at", None),
    )


class SupabaseAuthBackend:
    """AuthBackend backed by one supabase async client (one per browser)."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @property
    def client(self) -> Any:
        return self._client

    async def get_session(self) -> Optional[AuthSession]:
        return _to_session(await self._client.auth.get_session())

    def on_auth_state_change(self, handler: AuthStateHandler):
        def _callback(event: Any, session: Any) -> None:
            handler(AuthEvent.parse(event), _to_session(session))

        return self._client.auth.on_auth_state_change(_callback)

    async def sign_out(self) -> None:
        await self._client.auth.sign_out()

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        try:
            res = await self._client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:
            # gotrue raises AuthApiError with a user-facing message
            raise AuthError(str(exc) or "Sign-in failed") from exc
        session = _to_session(getattr(res, "session", None))
        if session is None:
            raise AuthError("Sign-in failed")
        return session

    async def sign_up(self, email: str, password: str, full_name: str) -> Optional[AuthSession]:
        try:
            res = await self._client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": {"full_name": full_name, "role": "student"}},
                }
            )
        except Exception as exc:
            raise AuthError(str(exc) or "Sign-up failed") from exc
        # Projects with email confirmation return no session until confirmed.
        return _to_session(getattr(res, "session", None))


class SupabaseRoleLookup:
    """Read the caller's role row from the role table.

    Parameters
    ----------
    client:
        Supabase async client. Reads go through RLS with the caller's token.
    table / key_column:
        Single-row-per-identity table, `user_roles(user_id, role)` by default.
    """

    def __init__(self, client: Any, *, table: str = "user_roles", key_column: str = "user_id") -> None:
        self._client = client
        self._table = table
        self._key_column = key_column

    async def get_role(self, user_id: str) -> Optional[str]:
        res = await (
            self._client.table(self._table)
            .select("role")
            .eq(self._key_column, user_id)
            .maybe_single()
            .execute()
        )
        # postgrest returns None (not an empty response) for maybe_single() misses
        data = getattr(res, "data", None) if res is not None else None
        if not isinstance(data, dict):
            return None
        role = data.get("role")
        return str(role) if role else None


async def create_browser_client(url: str, anon_key: str) -> Any:
    """Create a fresh anon-key client for one browser session."""
    from supabase import acreate_client

    return await acreate_client(url, anon_key)


async def create_service_client(url: str, service_key: str) -> Any:
    """Create the elevated (service-role) client; bypasses RLS."""
    from supabase import acreate_client

    client = await acreate_client(url, service_key)
    logger.info("Supabase service client initialised")
    return client


__all__ = [
    "SupabaseAuthBackend",
    "SupabaseRoleLookup",
    "create_browser_client",
    "create_service_client",
]
