"""
Session resolver: the single source of the current principal.

Guard and pages share one resolver instead of re-deriving identity on their
own. The resolver recomputes the principal from scratch on every resolution
and follows the backend's auth-state-change events.

Concurrency (asyncio, single thread):
    - Every resolution takes a monotonic sequence number when it starts. A
      result is committed only if no later-started resolution has committed
      already, so results follow initiation order, not completion order.
    - Event-driven resolutions are scheduled as tasks that yield once before
      querying. The backend client invokes handlers from inside its own
      notification loop; querying it re-entrantly from there is avoided.
    - There is no cancellation. After `close()` no result is committed.
    - There is no timeout. A hung backend call leaves `current` at None.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Set

from .backend import AuthBackend, AuthEvent, AuthSession, Subscription
from .domain import Principal
from .providers import AuthorizationProvider


logger = logging.getLogger("cms.identity_access")

PrincipalListener = Callable[[Principal], None]


class SessionResolver:
    def __init__(self, provider: AuthorizationProvider, auth: Optional[AuthBackend] = None) -> None:
        self._provider = provider
        self._auth = auth
        self._current: Optional[Principal] = None
        self._started_seq = 0
        self._committed_seq = 0
        self._listeners: List[PrincipalListener] = []
        self._subscription: Optional[Subscription] = None
        self._pending: Set[asyncio.Task] = set()
        self._closed = False
        self._started = False

    # --- state ------------------------------------------------------------------

    @property
    def current(self) -> Optional[Principal]:
        """Latest committed principal; None while the first resolution runs."""
        return self._current

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def started(self) -> bool:
        """True once `start()` has subscribed to backend auth events."""
        return self._started

    def subscribe(self, listener: PrincipalListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    # --- lifecycle --------------------------------------------------------------

    async def start(self) -> Principal:
        """Subscribe to backend auth events and run the initial resolution."""
        self._started = True
        if self._auth is not None and self._subscription is None:
            try:
                self._subscription = self._auth.on_auth_state_change(self._on_auth_state_change)
            except Exception as exc:
                logger.warning("Auth state subscription failed: %s", exc.__class__.__name__)
        return await self.resolve()

    def close(self) -> None:
        """Stop following backend events; in-flight results are dropped."""
        self._closed = True
        if self._subscription is not None:
            try:
                self._subscription.unsubscribe()
            except Exception as exc:
                logger.warning("Auth state unsubscribe failed: %s", exc.__class__.__name__)
            self._subscription = None
        self._listeners.clear()

    async def wait_idle(self) -> None:
        """Await event-driven resolutions scheduled so far (tests, shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- resolution -------------------------------------------------------------

    async def resolve(self) -> Principal:
        """Recompute the principal and commit it unless superseded.

        Returns the committed principal, which is this resolution's result or
        a newer one that finished first.
        """
        self._started_seq += 1
        seq = self._started_seq
        principal = await self._provider.provide()
        self._commit(seq, principal)
        return self._current if self._current is not None else principal

    def _commit(self, seq: int, principal: Principal) -> None:
        if self._closed:
            return
        if seq <= self._committed_seq:
            logger.debug("Discarding superseded resolution %s (committed %s)", seq, self._committed_seq)
            return
        self._committed_seq = seq
        changed = principal != self._current
        self._current = principal
        if changed:
            for listener in list(self._listeners):
                listener(principal)

    def _on_auth_state_change(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        if self._closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Auth event %s outside an event loop; ignored", event.value)
            return
        logger.debug("Auth event %s; scheduling resolution", event.value)
        task = loop.create_task(self._resolve_deferred())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _resolve_deferred(self) -> None:
        # Reserve the sequence slot now so ordering follows event order.
        self._started_seq += 1
        seq = self._started_seq
        # Yield before touching the backend client again.
        await asyncio.sleep(0)
        if self._closed:
            return
        principal = await self._provider.provide()
        self._commit(seq, principal)


__all__ = ["PrincipalListener", "SessionResolver"]
