"""
Local admin bypass: a client-held flag that asserts admin privilege.

Why this exists:
    The sign-in form accepts a fixed admin identity/password pair. Instead of a
    backend session it writes a flag into client-local storage; every later
    resolution that sees the flag treats the caller as an authenticated admin
    without asking the backend.

Security:
    The flag is trusted purely because it equals "true". Nothing server-side
    backs it. Only the exact string activates it; any other value fails closed.
    Sign-out of a backend session does not clear it; only `deactivate` does.
"""
from __future__ import annotations

import logging
import secrets
from typing import Dict, Mapping, Optional, Protocol

from fastapi.responses import Response


logger = logging.getLogger("cms.identity_access")

ADMIN_BYPASS_KEY = "cms_admin_bypass"
ADMIN_BYPASS_VALUE = "true"
ADMIN_BYPASS_IDENTITY = "admin"
ADMIN_BYPASS_PASSWORD = "admin123"

# Durable like browser local storage: one year.
_COOKIE_MAX_AGE = 365 * 24 * 3600


class ClientStorage(Protocol):
    """Synchronous string key/value store owned by the browser."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MemoryStorage:
    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class CookieStorage:
    """Client storage carried in request cookies.

    Reads see the request cookies plus writes made during this request. Writes
    are recorded and flushed onto the outgoing response with `apply`.
    """

    def __init__(self, cookies: Mapping[str, str], *, secure: bool = True) -> None:
        self._data: Dict[str, str] = dict(cookies)
        self._pending: Dict[str, Optional[str]] = {}
        self._secure = secure

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value
        self._pending[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)
        self._pending[key] = None

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._pending)

    def apply(self, response: Response) -> None:
        for key, value in self._pending.items():
            if value is None:
                response.delete_cookie(key, path="/")
            else:
                # Not HttpOnly: the value is client-owned state, like localStorage.
                response.set_cookie(
                    key=key,
                    value=value,
                    max_age=_COOKIE_MAX_AGE,
                    path="/",
                    secure=self._secure,
                    samesite="lax",
                )
        self._pending.clear()


def matches_bypass_credentials(
    identity: str,
    password: str,
    *,
    expected_identity: str = ADMIN_BYPASS_IDENTITY,
    expected_password: str = ADMIN_BYPASS_PASSWORD,
) -> bool:
    """True when both submitted values equal the hardcoded bypass pair."""
    if not isinstance(identity, str) or not isinstance(password, str):
        return False
    identity_ok = secrets.compare_digest(identity.encode("utf-8"), expected_identity.encode("utf-8"))
    password_ok = secrets.compare_digest(password.encode("utf-8"), expected_password.encode("utf-8"))
    return identity_ok and password_ok


def is_active(storage: ClientStorage) -> bool:
    try:
        value = storage.get_item(ADMIN_BYPASS_KEY)
    except Exception as exc:
        logger.warning("Client storage read failed: %s", exc.__class__.__name__)
        return False
    return value == ADMIN_BYPASS_VALUE


def activate(storage: ClientStorage) -> None:
    storage.set_item(ADMIN_BYPASS_KEY, ADMIN_BYPASS_VALUE)
    logger.warning("Local admin bypass activated")


def deactivate(storage: ClientStorage) -> None:
    storage.remove_item(ADMIN_BYPASS_KEY)


__all__ = [
    "ADMIN_BYPASS_IDENTITY",
    "ADMIN_BYPASS_KEY",
    "ADMIN_BYPASS_PASSWORD",
    "ADMIN_BYPASS_VALUE",
    "ClientStorage",
    "CookieStorage",
    "MemoryStorage",
    "activate",
    "deactivate",
    "is_active",
    "matches_bypass_credentials",
]
