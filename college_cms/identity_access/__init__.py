"""Identity & access: principals, the admin bypass, session resolution and route guards."""

from .domain import ALLOWED_ROLES, Principal, PrincipalSource, ProtectedView, Role, is_role_allowed
from .guard import DEFAULT_PATH, SIGNIN_PATH, GuardState, RouteGuard, decide
from .resolver import SessionResolver

__all__ = [
    "ALLOWED_ROLES",
    "DEFAULT_PATH",
    "GuardState",
    "Principal",
    "PrincipalSource",
    "ProtectedView",
    "Role",
    "RouteGuard",
    "SIGNIN_PATH",
    "SessionResolver",
    "decide",
    "is_role_allowed",
]
