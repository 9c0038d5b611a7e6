"""
Route guard: render, or redirect, for one protected view.

States:
    loading -> authorized | redirect-to-signin | redirect-to-default

The transition function `decide` is pure. `RouteGuard` binds it to a shared
resolver for the lifetime of a view ("mount" .. "unmount") and recomputes on
every published principal, so a later auth-state change can move an
authorized view to any other state. Rendering always recomputes first.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional

from .domain import Principal, ProtectedView, is_role_allowed
from .resolver import SessionResolver


logger = logging.getLogger("cms.identity_access")

SIGNIN_PATH = "/auth"
DEFAULT_PATH = "/dashboard"


class GuardState(str, Enum):
    LOADING = "loading"
    AUTHORIZED = "authorized"
    REDIRECT_SIGNIN = "redirect-to-signin"
    REDIRECT_DEFAULT = "redirect-to-default"


def decide(principal: Optional[Principal], view: ProtectedView) -> GuardState:
    if principal is None:
        return GuardState.LOADING
    if not principal.is_authenticated:
        return GuardState.REDIRECT_SIGNIN
    if not is_role_allowed(principal.role, view.allowed_roles):
        return GuardState.REDIRECT_DEFAULT
    return GuardState.AUTHORIZED


def redirect_target(state: GuardState) -> Optional[str]:
    if state is GuardState.REDIRECT_SIGNIN:
        return SIGNIN_PATH
    if state is GuardState.REDIRECT_DEFAULT:
        return DEFAULT_PATH
    return None


StateListener = Callable[[GuardState], None]


class RouteGuard:
    def __init__(self, view: ProtectedView, resolver: SessionResolver) -> None:
        self.view = view
        self._resolver = resolver
        self._state = GuardState.LOADING
        self._mounted = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def redirect_to(self) -> Optional[str]:
        return redirect_target(self._state)

    @property
    def mounted(self) -> bool:
        return self._mounted

    def on_state_change(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    async def mount(self) -> GuardState:
        """Attach to the resolver and settle the initial state.

        Starts the resolver if nobody has, so backend auth events reach the
        guard. Uses the committed principal when available; otherwise runs the
        first resolution. Stays LOADING while that call is in flight. Mounting
        an already mounted guard just recomputes.
        """
        if self._mounted:
            return self._recompute()
        self._mounted = True
        self._unsubscribe = self._resolver.subscribe(self._on_principal)
        if not self._resolver.started:
            await self._resolver.start()
        elif self._resolver.current is None:
            await self._resolver.resolve()
        return self._recompute()

    def unmount(self) -> None:
        self._mounted = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def can_render(self) -> bool:
        """Recompute from the current principal, then answer."""
        return self._recompute() is GuardState.AUTHORIZED

    def _on_principal(self, principal: Principal) -> None:
        if not self._mounted:
            return
        self._recompute()

    def _recompute(self) -> GuardState:
        if not self._mounted:
            return self._state
        new_state = decide(self._resolver.current, self.view)
        if new_state is not self._state:
            logger.debug("Guard %s: %s -> %s", self.view.name, self._state.value, new_state.value)
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state)
        return new_state


__all__ = [
    "DEFAULT_PATH",
    "GuardState",
    "RouteGuard",
    "SIGNIN_PATH",
    "decide",
    "redirect_target",
]
