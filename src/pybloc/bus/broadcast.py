"""Synchronous multi-subscriber broadcast channel.

A ``Broadcast`` hands every published value directly to each subscriber
callback, in subscription order, on the publishing thread.  There is no
buffering and no backpressure: a slow subscriber blocks the publisher.

Snapshot semantics (same as the notifier pattern):

- ``publish()`` snapshots the subscriber list before delivery, so
  subscribing during a delivery round takes effect from the next round.
- A subscription cancelled during a round is skipped for the rest of it.
- One failing subscriber does not stop delivery to the others; the error
  is logged, counted and returned to the caller.

``async for value in broadcast`` is the only buffered consumer: each
iterator owns an unbounded ``asyncio.Queue`` and finishes when the
broadcast is closed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Callback = Callable[[T], Any]


class Subscription(Generic[T]):
    """Cancellation handle returned by ``Broadcast.subscribe``."""

    def __init__(
        self,
        owner: Broadcast[T] | None,
        callback: Callable[[T], Any],
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._owner = owner
        self._callback = callback
        self._on_close = on_close
        self._active = owner is not None

    @property
    def is_active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop delivery to this subscriber.  Idempotent."""
        if not self._active:
            return
        self._active = False
        owner, self._owner = self._owner, None
        if owner is not None:
            owner._remove(self)

    def _deliver(self, value: T) -> None:
        if self._active:
            self._callback(value)

    def _detach(self) -> None:
        """Called by the owning broadcast when it closes."""
        self._active = False
        self._owner = None
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> Subscription[T]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.cancel()

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"<Subscription {state} {getattr(self._callback, '__name__', '?')}>"


class Broadcast(Generic[T]):
    """Publish/subscribe channel over a list of callbacks.

    Parameters
    ----------
    name
        Used in log messages only.
    """

    def __init__(self, name: str = "broadcast") -> None:
        self._name = name
        self._subscribers: list[Subscription[T]] = []
        self._lock = threading.RLock()
        self._closed = False

        # Observability
        self._error_count = 0
        self._published = 0

    # -- Core API ----------------------------------------------------------

    def subscribe(
        self,
        callback: Callable[[T], Any],
        *,
        on_close: Callable[[], None] | None = None,
    ) -> Subscription[T]:
        """Register *callback* for every value published from now on.

        On a closed broadcast the returned subscription is already
        inactive and *on_close* fires immediately.
        """
        with self._lock:
            if not self._closed:
                subscription = Subscription(self, callback, on_close)
                self._subscribers.append(subscription)
                return subscription

        logger.debug("Subscribe on closed %s ignored", self._name)
        subscription = Subscription(None, callback, on_close)
        subscription._detach()
        return subscription

    def publish(self, value: T) -> list[Exception]:
        """Deliver *value* to every current subscriber.

        Returns the exceptions raised by subscribers, in delivery order, so
        the owner can route them to its error hook.
        """
        with self._lock:
            if self._closed:
                return []
            snapshot = self._subscribers[:]
            self._published += 1

        errors: list[Exception] = []
        for subscription in snapshot:
            try:
                subscription._deliver(value)
            except Exception as exc:
                with self._lock:
                    self._error_count += 1
                errors.append(exc)
                logger.exception(
                    "Subscriber %r failed on %s", subscription, self._name,
                )
        return errors

    def close(self) -> None:
        """Detach every subscriber and refuse new ones.  Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers, self._subscribers = self._subscribers, []

        for subscription in subscribers:
            subscription._detach()
        logger.debug(
            "%s closed, detached %d subscriber(s)", self._name, len(subscribers),
        )

    def _remove(self, subscription: Subscription[T]) -> None:
        with self._lock:
            try:
                self._subscribers.remove(subscription)
            except ValueError:
                pass

    def __aiter__(self) -> StreamIterator[T]:
        return StreamIterator(self)

    # -- Observability -----------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def error_count(self) -> int:
        """Total subscriber failures since creation."""
        return self._error_count

    @property
    def published_count(self) -> int:
        return self._published


_DONE = object()


class StreamIterator(Generic[T]):
    """Async iterator over a ``Broadcast``; ends when the broadcast closes.

    Must be created inside a running event loop.  Values published from
    other threads are handed to the loop with ``call_soon_threadsafe``.
    """

    def __init__(self, source: Broadcast[T]) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._subscription = source.subscribe(self._put, on_close=self._finish)

    def _finish(self) -> None:
        self._put(_DONE)

    def _put(self, item: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(item)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def __aiter__(self) -> StreamIterator[T]:
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()
        if item is _DONE:
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """Stop listening; values already buffered are discarded."""
        self._subscription.cancel()
        self._queue.put_nowait(_DONE)
