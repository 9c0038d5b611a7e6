"""
Shared authentication utilities.

Why:
    Avoid duplicating environment-dependent cookie policy logic across the
    main app and the auth router.

Design:
    The helpers are pure: they accept an environment string or raw form values
    and return flags or error codes. Callers decide where inputs come from.
"""

from __future__ import annotations

import re
from typing import Optional


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LEN = 6
MIN_FULL_NAME_LEN = 2


def cookie_opts(environment: str) -> dict:
    """Return hardened cookie flags (dev = prod).

    Returns a mapping with keys:
      - secure: True
      - samesite: "lax"  # cookies still sent on top-level redirects after sign-in
    """
    return {"secure": True, "samesite": "lax"}


def validate_signin(email: str, password: str) -> Optional[str]:
    """Return an error code for the sign-in form, or None when acceptable."""
    if not EMAIL_PATTERN.match((email or "").strip()):
        return "invalid_email"
    if len(password or "") < MIN_PASSWORD_LEN:
        return "password_too_short"
    return None


def validate_signup(full_name: str, email: str, password: str) -> Optional[str]:
    if len((full_name or "").strip()) < MIN_FULL_NAME_LEN:
        return "full_name_too_short"
    return validate_signin(email, password)
