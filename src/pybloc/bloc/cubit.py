"""Cubit: a state container that broadcasts accepted changes.

Design goals
------------
1.  **Equality gate** — ``emit(s)`` with ``s == state`` does nothing: no
    ``Change``, no hook call, no delivery.
2.  **Atomic commits** — one ``threading.RLock`` serialises commits across
    threads.  Re-entrant emits (from ``on_change`` or from a subscriber)
    are queued and committed after the in-flight one has been delivered.
3.  **Terminal close** — Open → Closed is one-way.  After ``close()``
    every emit is a logged no-op.  A ``weakref.finalize`` performs the same
    release when an unclosed cubit is garbage-collected.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections import deque
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pybloc.bus.broadcast import Broadcast, Subscription
from pybloc.core.models import Change

logger = logging.getLogger(__name__)

S = TypeVar("S")
T = TypeVar("T")


def _release(stream: Broadcast[Any], subscriptions: set[Subscription[Any]]) -> None:
    """Cancel internally owned subscriptions and close the stream."""
    for subscription in list(subscriptions):
        subscription.cancel()
    subscriptions.clear()
    stream.close()


class Cubit(Generic[S]):
    """Holds exactly one state value and broadcasts every accepted change.

    Subclass and add methods that call ``emit``::

        class CounterCubit(Cubit[int]):
            def __init__(self) -> None:
                super().__init__(0)

            def increment(self) -> None:
                self.emit(self.state + 1)

    Parameters
    ----------
    initial_state
        The state before any emission.
    name
        Used in log messages.  Defaults to the class name.
    on_change, on_error
        Optional callbacks used by the default ``on_change``/``on_error``
        hooks, for owners that compose a cubit instead of subclassing it.
    """

    def __init__(
        self,
        initial_state: S,
        *,
        name: str | None = None,
        on_change: Callable[[Change[S]], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._state = initial_state
        self._name = name or type(self).__name__
        self._closed = False
        self._lock = threading.RLock()
        self._emitting = False
        self._pending: deque[S] = deque()
        self._change_callback = on_change
        self._error_callback = on_error

        self._stream: Broadcast[S] = Broadcast(name=f"{self._name}.stream")
        # Subscriptions this cubit holds on other streams.
        self._subscriptions: set[Subscription[Any]] = set()
        self._finalizer = weakref.finalize(
            self, _release, self._stream, self._subscriptions,
        )

    # -- Read side ---------------------------------------------------------

    @property
    def state(self) -> S:
        return self._state

    @property
    def stream(self) -> Broadcast[S]:
        """Forward-only broadcast of accepted states.  No replay."""
        return self._stream

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def name(self) -> str:
        return self._name

    @property
    def lock(self) -> threading.RLock:
        """The lock that serialises commits.

        Holding it keeps other threads from emitting; emits from the
        holding thread still commit.
        """
        return self._lock

    # -- Mutation ----------------------------------------------------------

    def emit(self, state: S) -> None:
        """Replace the current state with *state* unless they are equal."""
        if self._closed:
            logger.warning(
                "Cannot emit %r after %s is closed", state, self._name,
            )
            return

        with self._lock:
            if self._emitting:
                self._pending.append(state)
                return
            self._emitting = True
            try:
                self._commit(state)
                while self._pending:
                    self._commit(self._pending.popleft())
            finally:
                self._pending.clear()
                self._emitting = False

    def _commit(self, state: S) -> None:
        if self._closed:
            logger.warning(
                "Dropping queued emit %r: %s closed mid-delivery",
                state, self._name,
            )
            return

        previous = self._state
        if state == previous:
            return

        self._state = state
        try:
            self.on_change(Change(previous=previous, next=state))
        except Exception as exc:
            self.on_error(exc)

        for exc in self._stream.publish(state):
            self.on_error(exc)

    # -- Hooks -------------------------------------------------------------

    def on_change(self, change: Change[S]) -> None:
        """Called once per accepted emission, after ``state`` is updated.

        Override in a subclass for custom logging or side effects.
        """
        if self._change_callback is not None:
            self._change_callback(change)

    def on_error(self, error: Exception) -> None:
        """Called with errors reported by subscribers or application code.

        Never alters state.  The default logs the error with its traceback.
        """
        if self._error_callback is not None:
            self._error_callback(error)
            return
        logger.error(
            "%s reported an error: %s", self._name, error, exc_info=error,
        )

    def add_error(self, error: Exception) -> None:
        """Report *error* from application code through ``on_error``."""
        self.on_error(error)

    # -- Internal subscriptions -------------------------------------------

    def listen_to(
        self,
        source: Broadcast[T],
        callback: Callable[[T], Any],
    ) -> Subscription[T]:
        """Subscribe to another stream for as long as this cubit is open.

        The subscription is cancelled by ``close()``.
        """
        subscription = source.subscribe(callback)
        if self._closed:
            subscription.cancel()
            return subscription
        self._subscriptions.add(subscription)
        return subscription

    # -- Lifecycle ---------------------------------------------------------

    def close(self) -> None:
        """Close the cubit.  Idempotent and terminal."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._finalizer()
        logger.debug("%s closed", self._name)

    def __enter__(self) -> Cubit[S]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"<{type(self).__name__} {self._name} state={self._state!r} {status}>"
