"""
Identity domain: closed role enumeration and explicit allow-list membership.
"""
from __future__ import annotations

import pytest

from college_cms.identity_access.backend import AuthSession
from college_cms.identity_access.domain import (
    ALLOWED_ROLES,
    Principal,
    PrincipalSource,
    ProtectedView,
    Role,
    is_role_allowed,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("student", Role.STUDENT),
        ("Teacher", Role.TEACHER),
        (" admin ", Role.ADMIN),
        ("superuser", Role.UNKNOWN),
        ("", Role.UNKNOWN),
        (None, Role.UNKNOWN),
        (42, Role.UNKNOWN),
        ("unknown", Role.UNKNOWN),
    ],
)
def test_role_parse_collapses_unrecognised_values(raw, expected):
    assert Role.parse(raw) is expected


def test_allowed_roles_exclude_unknown():
    assert ALLOWED_ROLES == {"student", "teacher", "admin"}


def test_no_allow_list_admits_every_role():
    for role in Role:
        assert is_role_allowed(role, None) is True


def test_allow_list_is_explicit_membership():
    allowed = (Role.TEACHER, Role.ADMIN)
    assert is_role_allowed(Role.ADMIN, allowed)
    assert is_role_allowed(Role.TEACHER, allowed)
    assert not is_role_allowed(Role.STUDENT, allowed)


def test_unknown_never_passes_a_declared_allow_list():
    assert not is_role_allowed(Role.UNKNOWN, (Role.STUDENT,))
    # Even a list that names it: unknown is an outcome, not a grantable role.
    assert not is_role_allowed(Role.UNKNOWN, (Role.UNKNOWN,))


def test_protected_view_parses_roles_and_keeps_order():
    view = ProtectedView.of("attendance", "/attendance", ["teacher", "admin"])
    assert view.allowed_roles == (Role.TEACHER, Role.ADMIN)
    assert ProtectedView.of("dashboard", "/dashboard").allowed_roles is None


def test_principal_constructors():
    anon = Principal.anonymous()
    assert not anon.is_authenticated
    assert anon.role is Role.UNKNOWN

    admin = Principal.bypass_admin()
    assert admin.is_authenticated and admin.role is Role.ADMIN
    assert admin.source is PrincipalSource.LOCAL_BYPASS
    assert admin.is_bypass and admin.user_id is None

    session = AuthSession(user_id="u-1", email="a@college.test")
    p = Principal.from_session(session, "bogus")
    assert p.is_authenticated and p.role is Role.UNKNOWN
    assert p.source is PrincipalSource.BACKEND_SESSION
    assert p.as_user_context() == {"sub": "u-1", "email": "a@college.test", "role": "unknown", "source": "backend-session"}
