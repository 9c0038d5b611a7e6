"""
Shared web security helpers for routes.

Contains the same-origin check used by every state-changing form post and
JSON write. Keeping a single implementation avoids security drift.
"""
from __future__ import annotations

import os
from typing import Optional, Tuple
from urllib.parse import urlparse

from fastapi import Request
from fastapi.responses import JSONResponse


def _parse_origin(url: str) -> Tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    port = p.port if p.port is not None else (443 if scheme == "https" else 80)
    return scheme, p.hostname.lower(), int(port)


def _server_origin(request: Request) -> Tuple[str, str, int]:
    """Origin of this server; X-Forwarded-* only when CMS_TRUST_PROXY=true."""
    trust_proxy = (os.getenv("CMS_TRUST_PROXY", "false") or "").lower() == "true"
    scheme = (request.url.scheme or "http").lower()
    host = (request.url.hostname or "").lower()
    port = int(request.url.port) if request.url.port else (443 if scheme == "https" else 80)
    if trust_proxy:
        xf_proto = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip().lower()
        xf_host = (request.headers.get("x-forwarded-host") or "").split(",")[0].strip().lower()
        if xf_proto:
            scheme = xf_proto
        if xf_host:
            if ":" in xf_host:
                host, port_str = xf_host.rsplit(":", 1)
                port = int(port_str) if port_str.isdigit() else (443 if scheme == "https" else 80)
            else:
                host = xf_host
                port = 443 if scheme == "https" else 80
    return scheme, host, port


def is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin or Referer headers.

    Behavior:
    - If Origin is present, require exact scheme/host/port match with server.
    - Else if Referer is present, validate its origin similarly.
    - Else (no headers): allow, so non-browser clients keep working.
    """
    try:
        server = _server_origin(request)
        origin_val = request.headers.get("origin")
        if origin_val:
            return _parse_origin(origin_val) == server
        referer_val = request.headers.get("referer")
        if referer_val:
            return _parse_origin(referer_val) == server
        return True
    except ValueError:
        return False


def csrf_violation(request: Request) -> Optional[JSONResponse]:
    """Return a 403 response for cross-origin writes, else None.

    In production both a present and matching Origin/Referer are required.
    """
    from college_cms.web import main

    strict = main.SETTINGS.prod_like
    if strict and not (request.headers.get("origin") or request.headers.get("referer")):
        return JSONResponse(
            {"error": "forbidden", "detail": "csrf_violation"},
            status_code=403,
            headers={"Cache-Control": "private, no-store"},
        )
    if not is_same_origin(request):
        return JSONResponse(
            {"error": "forbidden", "detail": "csrf_violation"},
            status_code=403,
            headers={"Cache-Control": "private, no-store"},
        )
    return None
