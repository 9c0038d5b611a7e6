"College CMS"
from __future__ import annotations

import logging
from typing import Optional, Tuple

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from college_cms.identity_access.bypass import CookieStorage
from college_cms.identity_access.domain import Principal, ProtectedView
from college_cms.identity_access.guard import GuardState, RouteGuard
from college_cms.identity_access.providers import build_provider
from college_cms.identity_access.resolver import SessionResolver
from college_cms.identity_access.stores import ClientSessionRecord, SessionStore
from college_cms.records.models import Caller
from college_cms.records.repo import RecordsRepo

from .auth_utils import cookie_opts
from .components import Layout
from .config import Settings, ensure_secure_config_on_startup, should_load_dotenv
from .wiring import BackendWiring, wiring_from_settings


if should_load_dotenv():
    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
ensure_secure_config_on_startup()

# --- App & Settings Setup -------------------------------------------------------

logger = logging.getLogger("cms.web")
SETTINGS = Settings()
SESSION_COOKIE_NAME = "cms_session"
SESSION_STORE = SessionStore()

_WIRING: BackendWiring = wiring_from_settings(SETTINGS)


def set_wiring(wiring: BackendWiring) -> None:
    """Swap the backend wiring (tests, or after configuration changes)."""
    global _WIRING
    _WIRING = wiring


def get_wiring() -> BackendWiring:
    return _WIRING


app = FastAPI(title="College CMS", description="Role-gated college management", version="0.1.0")

# --- Auth Helpers & Middleware --------------------------------------------------

# Paths that never need a principal.
_UNRESOLVED_PATHS = ("/health", "/favicon.ico")


def _session_cookie_options() -> dict:
    return cookie_opts(SETTINGS.environment)


def set_session_cookie(response: Response, value: str, *, max_age: Optional[int] = None) -> None:
    opts = _session_cookie_options()
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=max_age,
    )


def clear_session_cookie(response: Response) -> None:
    opts = _session_cookie_options()
    response.delete_cookie(SESSION_COOKIE_NAME, path="/", secure=opts["secure"], httponly=True, samesite=opts["samesite"])


def _lookup_session_record(request: Request) -> Optional[ClientSessionRecord]:
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if not sid:
        return None
    try:
        return SESSION_STORE.get(sid)
    except Exception as exc:
        logger.warning("Session store get failed: %s", exc.__class__.__name__)
        return None


def build_resolver(storage: CookieStorage, rec: Optional[ClientSessionRecord]) -> SessionResolver:
    """One resolver per request; guard and page handlers share it."""
    auth = rec.auth if rec else None
    wiring = get_wiring()
    provider = build_provider(
        storage,
        auth,
        wiring.role_lookup(auth) if auth is not None else None,
        precedence=SETTINGS.bypass_precedence,
        bypass_enabled=SETTINGS.admin_bypass_enabled,
    )
    return SessionResolver(provider, auth)


@app.middleware("http")
async def principal_resolution(request: Request, call_next):
    """Resolve the principal once per request and flush client-storage writes.

    Behavior:
        - Builds the client storage from request cookies and the resolver from
          the browser's backend session (if any).
        - `/api/` calls without an authenticated principal get 401 JSON; HTML
          pages decide through their route guard.
        - On the way out: unmount guards, close the resolver (late results are
          dropped), apply pending client-storage cookie writes.
    """
    path = request.url.path
    if path in _UNRESOLVED_PATHS:
        return await call_next(request)

    storage = CookieStorage(request.cookies, secure=_session_cookie_options()["secure"])
    rec = _lookup_session_record(request)
    resolver = build_resolver(storage, rec)
    request.state.client_storage = storage
    request.state.session_record = rec
    request.state.resolver = resolver
    request.state.guards = []
    try:
        principal = await resolver.start()
        request.state.principal = principal
        request.state.user = principal.as_user_context() if principal.is_authenticated else None
        if path.startswith("/api/") and not principal.is_authenticated:
            response = JSONResponse(
                {"error": "unauthenticated"},
                status_code=401,
                headers={"Cache-Control": "private, no-store"},
            )
        else:
            response = await call_next(request)
    finally:
        for guard in request.state.guards:
            guard.unmount()
        resolver.close()
        await resolver.wait_idle()
    storage.apply(response)
    return response

# --- Security Headers Middleware ----------------------------------------------

@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    if SETTINGS.prod_like:
        csp = "default-src 'self'; script-src 'self'; style-src 'self'; img-src 'self' data:; form-action 'self';"
    else:
        # Inline styles are allowed locally for quick component iteration.
        csp = "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; img-src 'self' data:; form-action 'self';"
    response.headers.setdefault("Content-Security-Policy", csp)
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response

# --- Guard & Records Helpers ---------------------------------------------------


def current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    return principal if principal is not None else Principal.anonymous()


async def _mount_guard(request: Request, view: ProtectedView) -> RouteGuard:
    guard = RouteGuard(view, request.state.resolver)
    request.state.guards.append(guard)
    await guard.mount()
    return guard


async def guard_page(request: Request, view: ProtectedView) -> Optional[Response]:
    """Run the route guard for an HTML page.

    Returns None when the page may render, otherwise the response to send
    instead (redirect to sign-in, redirect to the dashboard, or a loading
    placeholder while no principal is committed).
    """
    guard = await _mount_guard(request, view)
    if guard.can_render():
        return None
    if guard.state is GuardState.LOADING:
        return layout_response(request, "Loading", '<p class="loading" role="status">Loading...</p>', show_nav=False)
    logger.info("Guard %s: %s -> %s", view.name, guard.state.value, guard.redirect_to)
    return RedirectResponse(url=guard.redirect_to or "/auth", status_code=302)


async def guard_api(request: Request, view: ProtectedView) -> Optional[JSONResponse]:
    """Same decision as `guard_page`, expressed as 401/403 JSON."""
    guard = await _mount_guard(request, view)
    if guard.can_render():
        return None
    headers = {"Cache-Control": "private, no-store"}
    if guard.state is GuardState.REDIRECT_DEFAULT:
        return JSONResponse({"error": "forbidden"}, status_code=403, headers=headers)
    return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=headers)


def caller_for(principal: Principal) -> Caller:
    """Map a principal to the identity repository calls run as.

    A bypass principal has no backend identity. It runs elevated only when a
    service-role client is wired; otherwise it is anonymous to the backend and
    row-level security denies it.
    """
    if principal.is_bypass:
        return Caller(role=principal.role.value, elevated=get_wiring().elevated_available)
    return Caller(user_id=principal.user_id, role=principal.role.value)


async def records_for(request: Request) -> Tuple[RecordsRepo, Caller]:
    principal = current_principal(request)
    caller = caller_for(principal)
    rec = getattr(request.state, "session_record", None)
    repo = await get_wiring().records_for(rec.auth if rec else None, elevated=caller.elevated)
    return repo, caller


def layout_response(
    request: Request,
    title: str,
    content: str,
    *,
    status_code: int = 200,
    show_nav: bool = True,
    flash: Optional[str] = None,
    flash_kind: str = "info",
) -> HTMLResponse:
    principal = getattr(request.state, "principal", None)
    html = Layout(
        title=title,
        content=content,
        principal=principal,
        show_nav=show_nav,
        current_path=request.url.path,
        flash=flash,
        flash_kind=flash_kind,
    ).render()
    return HTMLResponse(content=html, status_code=status_code, headers={"Cache-Control": "private, no-store"})

# --- Public Routes --------------------------------------------------------------


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/", response_class=HTMLResponse)
async def landing(request: Request):
    principal = current_principal(request)
    if principal.is_authenticated:
        cta = '<a href="/dashboard" class="btn btn-primary">Go to dashboard</a>'
    else:
        cta = '<a href="/auth" class="btn btn-primary">Sign in</a>'
    content = f"""
    <section class="hero">
        <h1>College Management System</h1>
        <p>Students, courses, attendance and notes in one place.</p>
        {cta}
    </section>"""
    return layout_response(request, "Welcome", content)


from .routes.auth import auth_router  # noqa: E402
from .routes.pages import pages_router  # noqa: E402
from .routes.api import api_router  # noqa: E402

app.include_router(auth_router)
app.include_router(pages_router)
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "college_cms.web.main:app",
        host="0.0.0.0",
        port=8000,
        reload=SETTINGS.environment == "dev",
    )
