"""
Startup config guard, settings parsing and form validation helpers.

Production-like environments must fail fast on an unusable backend
configuration, while development runs on the in-memory adapters.
"""
from __future__ import annotations

import pytest

from college_cms.web import auth_utils
from college_cms.web import config as cfg
from college_cms.web import main
from college_cms.web.wiring import InMemoryWiring, SupabaseWiring, wiring_from_settings


def _prod(monkeypatch: pytest.MonkeyPatch, **env: str) -> None:
    monkeypatch.setenv("CMS_ENV", "prod")
    for key, value in env.items():
        monkeypatch.setenv(key, value)


def test_dev_is_permissive(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CMS_ENV", "dev")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "DUMMY_DO_NOT_USE")
    cfg.ensure_secure_config_on_startup()


def test_prod_requires_supabase(monkeypatch: pytest.MonkeyPatch):
    _prod(monkeypatch)
    with pytest.raises(SystemExit):
        cfg.ensure_secure_config_on_startup()


def test_prod_requires_https(monkeypatch: pytest.MonkeyPatch):
    _prod(monkeypatch, SUPABASE_URL="http://db.college.test", SUPABASE_ANON_KEY="anon")
    with pytest.raises(SystemExit):
        cfg.ensure_secure_config_on_startup()


def test_prod_rejects_dummy_service_key(monkeypatch: pytest.MonkeyPatch):
    _prod(monkeypatch, SUPABASE_URL="https://db.college.test", SUPABASE_ANON_KEY="anon", SUPABASE_SERVICE_ROLE_KEY="dummy_do_not_use")
    with pytest.raises(SystemExit):
        cfg.ensure_secure_config_on_startup()


def test_prod_rejects_unknown_precedence(monkeypatch: pytest.MonkeyPatch):
    _prod(monkeypatch, SUPABASE_URL="https://db.college.test", SUPABASE_ANON_KEY="anon", CMS_BYPASS_PRECEDENCE="admin-wins")
    with pytest.raises(SystemExit):
        cfg.ensure_secure_config_on_startup()


def test_prod_accepts_complete_config(monkeypatch: pytest.MonkeyPatch):
    _prod(monkeypatch, SUPABASE_URL="https://db.college.test", SUPABASE_ANON_KEY="anon", CMS_BYPASS_PRECEDENCE="session-first")
    cfg.ensure_secure_config_on_startup()


def test_dotenv_is_never_loaded_under_pytest():
    assert cfg.should_load_dotenv() is False


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch):
    settings = cfg.Settings()
    assert settings.environment == "dev"
    assert settings.role_table == "user_roles"
    assert settings.bypass_precedence == "bypass-first"
    assert settings.admin_bypass_enabled is True
    assert settings.student_only_signin is False
    assert settings.supabase_configured is False

    monkeypatch.setenv("CMS_BYPASS_PRECEDENCE", "Session-First")
    monkeypatch.setenv("CMS_ADMIN_BYPASS_ENABLED", "false")
    monkeypatch.setenv("CMS_STUDENT_ONLY_SIGNIN", "1")
    monkeypatch.setenv("CMS_ROLE_TABLE", "roles")
    assert settings.bypass_precedence == "session-first"
    assert settings.admin_bypass_enabled is False
    assert settings.student_only_signin is True
    assert settings.role_table == "roles"


def test_unknown_precedence_falls_back_to_bypass_first(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CMS_BYPASS_PRECEDENCE", "whatever")
    assert cfg.Settings().bypass_precedence == "bypass-first"


def test_overrides_win_and_reset():
    settings = cfg.Settings()
    settings.override(environment="PROD", admin_bypass_enabled=False)
    assert settings.environment == "prod"
    assert settings.admin_bypass_enabled is False
    settings.reset()
    assert settings.environment == "dev"


def test_wiring_follows_configuration():
    settings = cfg.Settings()
    local = wiring_from_settings(settings)
    assert isinstance(local, InMemoryWiring)
    assert local.elevated_available is True
    assert {d.code for d in local.records.departments.values()} == {"CS", "MA"}
    settings.override(supabase_url="https://db.college.test", supabase_anon_key="anon", supabase_service_role_key="svc")
    wired = wiring_from_settings(settings)
    assert isinstance(wired, SupabaseWiring)
    assert wired.elevated_available is True


def test_cookie_policy_is_hardened_in_every_environment():
    for env in ("dev", "prod"):
        assert auth_utils.cookie_opts(env) == {"secure": True, "samesite": "lax"}


@pytest.mark.parametrize(
    "email,password,expected",
    [
        ("a@college.test", "secret1", None),
        ("a@college", "secret1", "invalid_email"),
        ("a b@college.test", "secret1", "invalid_email"),
        ("a@college.test", "12345", "password_too_short"),
    ],
)
def test_validate_signin(email, password, expected):
    assert auth_utils.validate_signin(email, password) == expected


def test_validate_signup_checks_name_first():
    assert auth_utils.validate_signup(" A ", "bad", "1") == "full_name_too_short"
    assert auth_utils.validate_signup("Al", "al@college.test", "secret1") is None


@pytest.mark.anyio
async def test_prod_writes_require_origin_header(http, login):
    main.SETTINGS.override(environment="prod")
    user = await login("student")
    bare = await http("POST", "/auth/signout", cookies=user.cookies)
    assert bare.status_code == 403
    with_origin = await http("POST", "/auth/signout", cookies=user.cookies, headers={"Origin": "https://test"})
    assert with_origin.status_code == 303


@pytest.mark.anyio
async def test_forwarded_origin_only_trusted_when_enabled(http, login, monkeypatch: pytest.MonkeyPatch):
    user = await login("student")
    headers = {"Origin": "https://cms.college.test", "X-Forwarded-Proto": "https", "X-Forwarded-Host": "cms.college.test"}
    untrusted = await http("POST", "/auth/signout", cookies=user.cookies, headers=headers)
    assert untrusted.status_code == 403
    monkeypatch.setenv("CMS_TRUST_PROXY", "true")
    trusted = await http("POST", "/auth/signout", cookies=user.cookies, headers=headers)
    assert trusted.status_code == 303


@pytest.mark.parametrize("env", ["production", "staging"])
def test_prod_like_environments(env):
    settings = cfg.Settings()
    settings.override(environment=env)
    assert settings.prod_like is True
    settings.override(environment="dev")
    assert settings.prod_like is False


@pytest.mark.anyio
async def test_production_alias_gets_strict_csp_and_origin_check(http, login):
    main.SETTINGS.override(environment="production")
    user = await login("student")
    page = await http("GET", "/auth")
    assert "'unsafe-inline'" not in page.headers["content-security-policy"]
    bare = await http("POST", "/auth/signout", cookies=user.cookies)
    assert bare.status_code == 403
