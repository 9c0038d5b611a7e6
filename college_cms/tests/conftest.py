"""
Pytest configuration for the college CMS tests.

Why: Force AnyIO to use the asyncio backend, and give every test a fresh
in-memory backend, session store and settings so state never leaks between
cases.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import httpx
import pytest
from httpx import ASGITransport

from college_cms.identity_access.stores import SessionStore
from college_cms.web import main
from college_cms.web.wiring import InMemoryWiring


# Session and bypass cookies are Secure; talk to the app over https.
BASE_URL = "https://test"
PASSWORD = "secret123"

_ENV_VARS = (
    "CMS_ENV",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "CMS_ROLE_TABLE",
    "CMS_BYPASS_PRECEDENCE",
    "CMS_ADMIN_BYPASS_ENABLED",
    "CMS_STUDENT_ONLY_SIGNIN",
    "CMS_TRUST_PROXY",
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_web_state(monkeypatch: pytest.MonkeyPatch):
    """Fresh settings, session store and in-memory wiring per test.

    Behavior:
        - Clears CMS/Supabase environment variables and settings overrides.
        - Replaces `main.SESSION_STORE` and installs a new `InMemoryWiring`.
    """
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    main.SETTINGS.reset()
    main.SESSION_STORE = SessionStore()
    main.set_wiring(InMemoryWiring())
    yield
    main.SETTINGS.reset()


@pytest.fixture
def wiring() -> InMemoryWiring:
    return main.get_wiring()  # type: ignore[return-value]


@pytest.fixture
def elevated_wiring() -> InMemoryWiring:
    """Wiring with a (simulated) service-role client for bypass principals."""
    w = InMemoryWiring(elevated=True)
    main.set_wiring(w)
    return w


@dataclass
class SignedIn:
    user_id: str
    session_id: str
    email: str

    @property
    def cookies(self) -> Dict[str, str]:
        return {main.SESSION_COOKIE_NAME: self.session_id}


@pytest.fixture
def login():
    """Create an account with the given role row and bind a signed-in session.

    `role=None` removes the role row (the account has no role record).
    """

    async def _login(role: Optional[str] = "student", *, email: Optional[str] = None, full_name: str = "Test User") -> SignedIn:
        w = main.get_wiring()
        addr = email or f"{role or 'norole'}-{len(main.SESSION_STORE)}@college.test"
        user_id = w.directory.add_user(addr, PASSWORD, full_name=full_name, role="student")
        if role is None:
            w.records.roles.pop(user_id, None)
        else:
            w.records.roles[user_id] = role
        auth = await w.new_auth()
        await auth.sign_in_with_password(addr, PASSWORD)
        rec = main.SESSION_STORE.create(auth=auth)
        return SignedIn(user_id=user_id, session_id=rec.session_id, email=addr)

    return _login


@pytest.fixture
def http():
    """Issue one request against the app with explicit cookies, no redirects followed."""

    async def _call(method: str, path: str, *, cookies: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None, **kwargs) -> httpx.Response:
        hdrs = dict(headers or {})
        if cookies:
            hdrs["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())
        async with httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url=BASE_URL) as client:
            return await client.request(method, path, headers=hdrs, follow_redirects=False, **kwargs)

    return _call


def set_cookie_headers(resp: httpx.Response, name: str) -> list:
    return [h for h in resp.headers.get_list("set-cookie") if h.startswith(f"{name}=")]


def set_cookie_value(resp: httpx.Response, name: str) -> Optional[str]:
    for header in set_cookie_headers(resp, name):
        value = header.split(";", 1)[0].split("=", 1)[1]
        return value.strip('"')
    return None


def cookie_deleted(resp: httpx.Response, name: str) -> bool:
    return any("max-age=0" in h.lower() for h in set_cookie_headers(resp, name))


BYPASS_COOKIES = {"cms_admin_bypass": "true"}
