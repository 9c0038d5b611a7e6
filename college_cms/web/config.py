"""
Configuration and startup security checks for the college CMS.

Why: The app can run fully in memory for development or against a hosted
Supabase project. Settings are read from the environment on every access so
tests can flip them with monkeypatch or the explicit overrides below.

Permissions: The caller needs no special privileges. `ensure_secure_config_on_startup`
reads environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os
import sys
from typing import Any, Dict, Optional

from college_cms.identity_access.providers import PRECEDENCE_BYPASS_FIRST, PRECEDENCES


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via CMS_ENABLE_DOTENV (default true outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    return _flag("CMS_ENABLE_DOTENV", True)


class Settings:
    """Environment-backed settings with per-key test overrides."""

    def __init__(self) -> None:
        self._overrides: Dict[str, Any] = {}

    def override(self, **values: Any) -> None:
        """Override settings for tests (e.g. `environment="prod"`)."""
        self._overrides.update(values)

    def reset(self) -> None:
        self._overrides.clear()

    def _get(self, key: str, env_value: Any) -> Any:
        if key in self._overrides:
            return self._overrides[key]
        return env_value

    @property
    def environment(self) -> str:
        return str(self._get("environment", os.getenv("CMS_ENV", "dev"))).lower()

    @property
    def prod_like(self) -> bool:
        """Production and staging get the strict CSP and Origin checks."""
        return _is_prod_like(self.environment)

    @property
    def supabase_url(self) -> str:
        return str(self._get("supabase_url", os.getenv("SUPABASE_URL", "")) or "").strip()

    @property
    def supabase_anon_key(self) -> str:
        return str(self._get("supabase_anon_key", os.getenv("SUPABASE_ANON_KEY", "")) or "").strip()

    @property
    def supabase_service_role_key(self) -> str:
        return str(self._get("supabase_service_role_key", os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")) or "").strip()

    @property
    def role_table(self) -> str:
        return str(self._get("role_table", os.getenv("CMS_ROLE_TABLE", "user_roles")) or "user_roles").strip()

    @property
    def bypass_precedence(self) -> str:
        value = str(self._get("bypass_precedence", os.getenv("CMS_BYPASS_PRECEDENCE", PRECEDENCE_BYPASS_FIRST)) or "")
        value = value.strip().lower()
        # Unknown values fall back to the observed behaviour.
        return value if value in PRECEDENCES else PRECEDENCE_BYPASS_FIRST

    @property
    def admin_bypass_enabled(self) -> bool:
        return bool(self._get("admin_bypass_enabled", _flag("CMS_ADMIN_BYPASS_ENABLED", True)))

    @property
    def student_only_signin(self) -> bool:
        return bool(self._get("student_only_signin", _flag("CMS_STUDENT_ONLY_SIGNIN", False)))

    @property
    def admin_bypass_identity(self) -> Optional[str]:
        return self._get("admin_bypass_identity", os.getenv("CMS_ADMIN_BYPASS_IDENTITY"))

    @property
    def admin_bypass_password(self) -> Optional[str]:
        return self._get("admin_bypass_password", os.getenv("CMS_ADMIN_BYPASS_PASSWORD"))

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - SUPABASE_URL and SUPABASE_ANON_KEY must be set; an in-memory backend is
      a development tool.
    - SUPABASE_URL must use https.
    - CMS_BYPASS_PRECEDENCE, when set, must be a known value.
    """

    env = os.getenv("CMS_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    url = (os.getenv("SUPABASE_URL") or "").strip()
    anon = (os.getenv("SUPABASE_ANON_KEY") or "").strip()
    if not url or not anon:
        raise SystemExit(
            "Refusing to start: SUPABASE_URL and SUPABASE_ANON_KEY must be set in production."
        )
    if url.lower().startswith("http://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production (got http).")

    srole = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if srole and srole.upper() == "DUMMY_DO_NOT_USE":
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is a dummy placeholder in production."
        )

    precedence = os.getenv("CMS_BYPASS_PRECEDENCE")
    if precedence is not None and precedence.strip().lower() not in PRECEDENCES:
        raise SystemExit(
            f"Refusing to start: CMS_BYPASS_PRECEDENCE must be one of {', '.join(sorted(PRECEDENCES))}."
        )


__all__ = ["Settings", "ensure_secure_config_on_startup", "should_load_dotenv"]
