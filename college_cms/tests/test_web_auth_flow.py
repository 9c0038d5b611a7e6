"""
Sign-in, sign-up, sign-out and the local admin bypass over HTTP.
"""
from __future__ import annotations

import pytest

from conftest import BYPASS_COOKIES, PASSWORD, cookie_deleted, set_cookie_headers, set_cookie_value

from college_cms.identity_access.stores import SessionStore
from college_cms.web import main


@pytest.mark.anyio
async def test_auth_page_renders_both_forms(http):
    resp = await http("GET", "/auth")
    assert resp.status_code == 200
    assert 'action="/auth/signin"' in resp.text
    assert 'action="/auth/signup"' in resp.text


@pytest.mark.anyio
async def test_auth_page_redirects_authenticated_visitors(http, login):
    user = await login("student")
    resp = await http("GET", "/auth", cookies=user.cookies)
    assert resp.status_code == 302 and resp.headers["location"] == "/dashboard"
    bypassed = await http("GET", "/auth", cookies=BYPASS_COOKIES)
    assert bypassed.status_code == 302 and bypassed.headers["location"] == "/dashboard"


@pytest.mark.anyio
async def test_bypass_credentials_set_flag_and_skip_backend(http, wiring):
    resp = await http("POST", "/auth/signin", data={"email": "admin", "password": "admin123"})
    assert resp.status_code == 303
    assert resp.headers["location"] == "/dashboard"
    assert set_cookie_value(resp, "cms_admin_bypass") == "true"
    assert set_cookie_headers(resp, main.SESSION_COOKIE_NAME) == []
    assert len(main.SESSION_STORE) == 0

    dash = await http("GET", "/dashboard", cookies=BYPASS_COOKIES)
    assert dash.status_code == 200
    assert "Local admin bypass active" in dash.text


@pytest.mark.anyio
async def test_bypass_credentials_ignored_when_disabled(http):
    main.SETTINGS.override(admin_bypass_enabled=False)
    resp = await http("POST", "/auth/signin", data={"email": "admin", "password": "admin123"})
    assert resp.status_code == 400
    assert set_cookie_headers(resp, "cms_admin_bypass") == []
    dash = await http("GET", "/dashboard", cookies=BYPASS_COOKIES)
    assert dash.status_code == 302 and dash.headers["location"] == "/auth"


@pytest.mark.anyio
async def test_configured_bypass_pair_replaces_default(http):
    main.SETTINGS.override(admin_bypass_identity="ops@college.test", admin_bypass_password="letmein99")
    default = await http("POST", "/auth/signin", data={"email": "admin", "password": "admin123"})
    assert default.status_code == 400
    resp = await http("POST", "/auth/signin", data={"email": "ops@college.test", "password": "letmein99"})
    assert resp.status_code == 303
    assert set_cookie_value(resp, "cms_admin_bypass") == "true"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "email,password,message",
    [
        ("not-an-email", PASSWORD, "Please enter a valid email address."),
        ("a@college.test", "123", "Password must be at least 6 characters."),
    ],
)
async def test_signin_validation(http, email, password, message):
    resp = await http("POST", "/auth/signin", data={"email": email, "password": password})
    assert resp.status_code == 400
    assert message in resp.text


@pytest.mark.anyio
async def test_signin_wrong_password(http, wiring):
    wiring.directory.add_user("t@college.test", PASSWORD)
    resp = await http("POST", "/auth/signin", data={"email": "t@college.test", "password": "wrong-pass"})
    assert resp.status_code == 401
    assert "Invalid email or password." in resp.text
    assert set_cookie_headers(resp, main.SESSION_COOKIE_NAME) == []


@pytest.mark.anyio
async def test_signin_success_binds_session_cookie(http, wiring):
    uid = wiring.directory.add_user("t@college.test", PASSWORD, full_name="Tara Singh")
    wiring.records.roles[uid] = "teacher"
    resp = await http("POST", "/auth/signin", data={"email": "t@college.test", "password": PASSWORD})
    assert resp.status_code == 303 and resp.headers["location"] == "/dashboard"
    (header,) = set_cookie_headers(resp, main.SESSION_COOKIE_NAME)
    lowered = header.lower()
    assert "httponly" in lowered and "secure" in lowered and "samesite=lax" in lowered
    sid = set_cookie_value(resp, main.SESSION_COOKIE_NAME)

    students = await http("GET", "/students", cookies={main.SESSION_COOKIE_NAME: sid})
    assert students.status_code == 200


@pytest.mark.anyio
async def test_signin_rotates_previous_session_record(http, login, wiring):
    user = await login("student")
    resp = await http("POST", "/auth/signin", cookies=user.cookies, data={"email": user.email, "password": PASSWORD})
    assert resp.status_code == 303
    new_sid = set_cookie_value(resp, main.SESSION_COOKIE_NAME)
    assert new_sid and new_sid != user.session_id
    assert main.SESSION_STORE.get(user.session_id) is None


@pytest.mark.anyio
async def test_student_only_mode_refuses_staff(http, wiring):
    main.SETTINGS.override(student_only_signin=True)
    uid = wiring.directory.add_user("t@college.test", PASSWORD)
    wiring.records.roles[uid] = "teacher"
    resp = await http("POST", "/auth/signin", data={"email": "t@college.test", "password": PASSWORD})
    assert resp.status_code == 403
    assert "Only students can sign in here." in resp.text
    assert set_cookie_headers(resp, main.SESSION_COOKIE_NAME) == []

    wiring.directory.add_user("s@college.test", PASSWORD)
    ok = await http("POST", "/auth/signin", data={"email": "s@college.test", "password": PASSWORD})
    assert ok.status_code == 303


@pytest.mark.anyio
@pytest.mark.parametrize(
    "form,message",
    [
        ({"full_name": "A", "email": "a@college.test", "password": PASSWORD}, "Full name must be at least 2 characters."),
        ({"full_name": "Asha", "email": "nope", "password": PASSWORD}, "Please enter a valid email address."),
        ({"full_name": "Asha", "email": "a@college.test", "password": "12"}, "Password must be at least 6 characters."),
    ],
)
async def test_signup_validation(http, form, message):
    resp = await http("POST", "/auth/signup", data=form)
    assert resp.status_code == 400
    assert message in resp.text


@pytest.mark.anyio
async def test_signup_creates_student_and_signs_in(http, wiring):
    resp = await http("POST", "/auth/signup", data={"full_name": "Asha Rao", "email": "asha@college.test", "password": PASSWORD})
    assert resp.status_code == 303 and resp.headers["location"] == "/dashboard"
    sid = set_cookie_value(resp, main.SESSION_COOKIE_NAME)
    (profile,) = wiring.records.profiles.values()
    assert profile.full_name == "Asha Rao"
    assert wiring.records.roles[profile.id] == "student"

    dash = await http("GET", "/dashboard", cookies={main.SESSION_COOKIE_NAME: sid})
    assert "Welcome back, Asha Rao" in dash.text

    again = await http("POST", "/auth/signup", data={"full_name": "Asha Rao", "email": "asha@college.test", "password": PASSWORD})
    assert again.status_code == 400
    assert "Sign-up failed. Please try again." in again.text


@pytest.mark.anyio
async def test_signout_ends_session_but_keeps_bypass(http, login):
    user = await login("student")
    rec = main.SESSION_STORE.get(user.session_id)
    cookies = dict(user.cookies, **BYPASS_COOKIES)
    resp = await http("POST", "/auth/signout", cookies=cookies)
    assert resp.status_code == 303 and resp.headers["location"] == "/auth"
    assert cookie_deleted(resp, main.SESSION_COOKIE_NAME)
    assert set_cookie_headers(resp, "cms_admin_bypass") == []
    assert rec.auth.sign_out_calls == 1
    assert main.SESSION_STORE.get(user.session_id) is None

    # The flag alone still yields the admin principal.
    dash = await http("GET", "/dashboard", cookies=cookies)
    assert dash.status_code == 200
    assert "Local admin bypass active" in dash.text


@pytest.mark.anyio
async def test_signout_without_session_is_harmless(http):
    resp = await http("POST", "/auth/signout")
    assert resp.status_code == 303
    assert cookie_deleted(resp, main.SESSION_COOKIE_NAME)


@pytest.mark.anyio
async def test_bypass_clear_removes_flag(http):
    resp = await http("POST", "/auth/bypass/clear", cookies=BYPASS_COOKIES)
    assert resp.status_code == 303 and resp.headers["location"] == "/auth"
    assert cookie_deleted(resp, "cms_admin_bypass")


@pytest.mark.anyio
async def test_bypass_first_precedence_overrides_student_session(http, login):
    user = await login("student")
    cookies = dict(user.cookies, **BYPASS_COOKIES)
    resp = await http("GET", "/students", cookies=cookies)
    assert resp.status_code == 200
    assert "Local admin bypass active" in resp.text


@pytest.mark.anyio
async def test_session_first_precedence_keeps_student_role(http, login):
    main.SETTINGS.override(bypass_precedence="session-first")
    user = await login("student")
    cookies = dict(user.cookies, **BYPASS_COOKIES)
    resp = await http("GET", "/students", cookies=cookies)
    assert resp.status_code == 302 and resp.headers["location"] == "/dashboard"
    # Without a session the flag still applies.
    bypass_only = await http("GET", "/students", cookies=BYPASS_COOKIES)
    assert bypass_only.status_code == 200


@pytest.mark.anyio
async def test_cross_origin_posts_are_rejected(http, login):
    user = await login("student")
    resp = await http("POST", "/auth/signout", cookies=user.cookies, headers={"Origin": "https://evil.example"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "csrf_violation"
    assert main.SESSION_STORE.get(user.session_id) is not None

    same = await http("POST", "/auth/signout", cookies=user.cookies, headers={"Origin": "https://test"})
    assert same.status_code == 303


def test_expired_session_records_are_evicted():
    store = SessionStore()
    stale = store.create(auth=object(), ttl_seconds=-10)
    fresh = store.create(auth=object())
    assert store.get(stale.session_id) is None
    assert len(store) == 1
    assert store.get(fresh.session_id) is fresh
    assert not fresh.expired()
