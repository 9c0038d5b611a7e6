"""
Authentication routes: sign-in, sign-up, sign-out and the admin bypass.

Why:
    Keep auth endpoints in a dedicated router. Shared state (settings, session
    store, backend wiring, cookie helpers) lives in `main` and is looked up at
    call time so tests can swap it.

Notes:
    - Matching bypass credentials never reach the backend: the client-local
      flag is written and the browser goes straight to the dashboard.
    - Sign-out ends the backend session only. The bypass flag survives it and
      is removed solely through `POST /auth/bypass/clear`.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from college_cms.identity_access import bypass
from college_cms.identity_access.backend import AuthError
from college_cms.identity_access.domain import Role
from college_cms.identity_access.guard import DEFAULT_PATH, SIGNIN_PATH
from college_cms.identity_access.providers import RemoteSessionProvider

from ..auth_utils import validate_signin, validate_signup
from ..components import SignInForm, SignUpForm
from .security import csrf_violation


auth_router = APIRouter(tags=["Auth"])  # explicit paths, no prefix
logger = logging.getLogger("cms.web.auth")


def _main():
    from college_cms.web import main

    return main


def _auth_page(
    request: Request,
    *,
    signin_error: Optional[str] = None,
    signup_error: Optional[str] = None,
    values: Optional[dict] = None,
    status_code: int = 200,
    flash: Optional[str] = None,
) -> HTMLResponse:
    values = values or {}
    content = f"""
    <section class="auth-page">
        <h1>College Management System</h1>
        <div class="auth-forms">
            {SignInForm(error=signin_error, values=values).render()}
            {SignUpForm(error=signup_error, values=values).render()}
        </div>
    </section>"""
    return _main().layout_response(request, "Sign in", content, status_code=status_code, show_nav=False, flash=flash)


def _bind_session(request: Request, auth) -> RedirectResponse:
    """Store the signed-in client under a fresh session id and set the cookie.

    A previous session record of this browser is dropped (no fixation).
    """
    main = _main()
    old = getattr(request.state, "session_record", None)
    if old is not None:
        main.SESSION_STORE.delete(old.session_id)
    rec = main.SESSION_STORE.create(auth=auth)
    response = RedirectResponse(url=DEFAULT_PATH, status_code=303)
    main.set_session_cookie(response, rec.session_id)
    return response


async def _browser_auth(request: Request):
    rec = getattr(request.state, "session_record", None)
    if rec is not None:
        return rec.auth
    return await _main().get_wiring().new_auth()


@auth_router.get(SIGNIN_PATH, response_class=HTMLResponse)
async def auth_page(request: Request, error: Optional[str] = None):
    """Sign-in/sign-up page; authenticated visitors go to the dashboard."""
    principal = _main().current_principal(request)
    if principal.is_authenticated:
        return RedirectResponse(url=DEFAULT_PATH, status_code=302)
    return _auth_page(request, signin_error=error)


@auth_router.post("/auth/signin")
async def auth_signin(request: Request):
    """
    Sign in with email/password, or with the local admin bypass pair.

    Behavior:
        - Bypass credentials (when enabled): write the flag, 303 to dashboard.
        - Invalid email or short password: 400 with the form re-rendered.
        - Backend rejects credentials: 401 with a generic message.
        - Student-only mode: non-students are signed out again (403).
        - Success: bind the backend session to a fresh cookie, 303 to dashboard.
    """
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    main = _main()
    settings = main.SETTINGS
    form = await request.form()
    email = str(form.get("email") or "").strip()
    password = str(form.get("password") or "")

    if settings.admin_bypass_enabled and bypass.matches_bypass_credentials(
        email,
        password,
        expected_identity=settings.admin_bypass_identity or bypass.ADMIN_BYPASS_IDENTITY,
        expected_password=settings.admin_bypass_password or bypass.ADMIN_BYPASS_PASSWORD,
    ):
        bypass.activate(request.state.client_storage)
        return RedirectResponse(url=DEFAULT_PATH, status_code=303)

    error = validate_signin(email, password)
    if error:
        return _auth_page(request, signin_error=error, values={"email": email}, status_code=400)

    auth = await _browser_auth(request)
    try:
        session = await auth.sign_in_with_password(email, password)
    except AuthError as exc:
        logger.info("Sign-in rejected: %s", exc)
        return _auth_page(request, signin_error="invalid_credentials", values={"email": email}, status_code=401)

    if settings.student_only_signin:
        role = await RemoteSessionProvider(auth, main.get_wiring().role_lookup(auth)).lookup_role(session)
        if role is not Role.STUDENT:
            logger.info("Sign-in refused for non-student role %s", role.value)
            await auth.sign_out()
            return _auth_page(request, signin_error="students_only", values={"email": email}, status_code=403)

    return _bind_session(request, auth)


@auth_router.post("/auth/signup")
async def auth_signup(request: Request):
    """
    Create a student account and sign it in.

    Validation: full name >= 2 chars, email format, password >= 6 chars. The
    backend seeds the profile and a `student` role record. Projects that
    require email confirmation return no session; the page then says so.
    """
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    form = await request.form()
    full_name = str(form.get("full_name") or "").strip()
    email = str(form.get("email") or "").strip()
    password = str(form.get("password") or "")
    values = {"full_name": full_name, "email": email}

    error = validate_signup(full_name, email, password)
    if error:
        return _auth_page(request, signup_error=error, values=values, status_code=400)

    auth = await _browser_auth(request)
    try:
        session = await auth.sign_up(email, password, full_name)
    except AuthError as exc:
        logger.info("Sign-up rejected: %s", exc)
        return _auth_page(request, signup_error="signup_failed", values=values, status_code=400)
    if session is None:
        return _auth_page(request, values=values, flash="Check your email to confirm your account.")
    return _bind_session(request, auth)


@auth_router.post("/auth/signout")
async def auth_signout(request: Request):
    """End the backend session and clear the session cookie (bypass flag stays)."""
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    main = _main()
    rec = getattr(request.state, "session_record", None)
    if rec is not None:
        try:
            await rec.auth.sign_out()
        except Exception as exc:
            logger.warning("Backend sign-out failed: %s", exc.__class__.__name__)
        main.SESSION_STORE.delete(rec.session_id)
    response = RedirectResponse(url=SIGNIN_PATH, status_code=303)
    main.clear_session_cookie(response)
    return response


@auth_router.post("/auth/bypass/clear")
async def auth_bypass_clear(request: Request):
    """Remove the local admin bypass flag from this browser."""
    csrf = csrf_violation(request)
    if csrf:
        return csrf
    bypass.deactivate(request.state.client_storage)
    logger.info("Local admin bypass cleared")
    return RedirectResponse(url=SIGNIN_PATH, status_code=303)
