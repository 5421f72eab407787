"""Bloc: routes events to handlers and reports the resulting transitions.

Design goals
------------
1.  **Kind-routed dispatching** — handlers register for an event kind (an
    enum member, a ``kind`` tag or a class; see ``core.events``).  The
    dispatcher resolves the first registered candidate for each event.
2.  **Single serialised consumer** — ``add()`` only enqueues.  One
    dispatcher task per router drains an ``asyncio.Queue`` in FIFO order
    and runs each handler to completion before taking the next event.
3.  **Net transitions** — one ``Transition`` per handled event, built
    from the state before the handler and the state after it, and only
    when the two differ.
4.  **Absorbed anomalies** — post-close adds, adds with no event loop,
    unhandled kinds, a full queue and handler failures are logged and
    recorded as dead letters; nothing propagates to the producer.

The router *has* a ``Cubit`` rather than *being* one: ``state``,
``stream`` and ``emit`` are forwarded, and the cubit's hooks are wired
back to this router's ``on_change``/``on_error``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import weakref
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from structlog.contextvars import bound_contextvars

from pybloc.bloc.cubit import Cubit
from pybloc.bus.broadcast import Broadcast, Subscription
from pybloc.core.config import DispatchConfig, get_settings
from pybloc.core.errors import (
    BlocError,
    ContainerClosedError,
    EventQueueFullError,
    HandlerError,
    NoEventLoopError,
    UnhandledEventError,
)
from pybloc.core.events import EventKind, candidate_kinds, kind_name
from pybloc.core.ids import new_id
from pybloc.core.models import Change, DeadLetter, Transition

logger = logging.getLogger(__name__)

E = TypeVar("E")
S = TypeVar("S")
T = TypeVar("T")

# A handler may return an awaitable; it then runs as a continuation task.
EventHandler = Callable[[Any], "Awaitable[Any] | None"]


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _cancel_tasks(tasks: set[asyncio.Task[Any]]) -> None:
    """Cancel dispatcher and continuation tasks from any thread."""
    current = _running_loop()
    for task in list(tasks):
        if task.done():
            continue
        loop = task.get_loop()
        if loop is current:
            task.cancel()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(task.cancel)
    tasks.clear()


async def _drain_events(
    queue: asyncio.Queue[Any],
    bloc_ref: weakref.ReferenceType[Bloc[Any, Any]],
) -> None:
    """Dispatcher loop.  Holds the router weakly so it can be collected."""
    while True:
        event = await queue.get()
        bloc = bloc_ref()
        try:
            if bloc is None or bloc.is_closed:
                return
            bloc._dispatch(event)
        except Exception:
            logger.exception("Dispatch of %r failed", event)
        finally:
            queue.task_done()
            del bloc


class Bloc(Generic[E, S]):
    """Event-driven state container.

    Register handlers in ``__init__``; handlers call ``emit``::

        class CounterBloc(Bloc[CounterEvent, int]):
            def __init__(self) -> None:
                super().__init__(0)
                self.on(CounterEvent.INCREMENT, lambda e: self.emit(self.state + 1))

    ``add()`` must be called while an event loop is running (or after one
    has been bound by an earlier ``add``); otherwise the event is
    dead-lettered.  Producers on other threads are handed over to that loop.

    Parameters
    ----------
    initial_state
        The state before any event.
    name
        Used in log messages and dispatch context.  Defaults to the class name.
    dispatch
        Queue and dead-letter limits.  Defaults to ``get_settings().dispatch``.
    """

    def __init__(
        self,
        initial_state: S,
        *,
        name: str | None = None,
        dispatch: DispatchConfig | None = None,
    ) -> None:
        self._name = name or type(self).__name__
        self._config = dispatch or get_settings().dispatch
        self._cubit: Cubit[S] = Cubit(
            initial_state,
            name=self._name,
            on_change=self.on_change,
            on_error=self.on_error,
        )
        self._handlers: dict[EventKind, EventHandler] = {}
        self._transitions: Broadcast[Transition[E, S]] = Broadcast(
            name=f"{self._name}.transitions",
        )
        self._queue: asyncio.Queue[E] = asyncio.Queue(
            maxsize=self._config.queue_maxsize,
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._dispatcher: asyncio.Task[None] | None = None
        self._continuations: set[asyncio.Task[Any]] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

        # Observability
        self._dead_letters: deque[DeadLetter] = deque(
            maxlen=self._config.max_dead_letters,
        )
        self._events_processed = 0

        self._finalizer = weakref.finalize(self, _cancel_tasks, self._tasks)

    # -- Forwarded state ---------------------------------------------------

    @property
    def state(self) -> S:
        return self._cubit.state

    @property
    def stream(self) -> Broadcast[S]:
        return self._cubit.stream

    @property
    def transition_stream(self) -> Broadcast[Transition[E, S]]:
        """Forward-only broadcast of transitions."""
        return self._transitions

    @property
    def is_closed(self) -> bool:
        return self._cubit.is_closed

    @property
    def name(self) -> str:
        return self._name

    def emit(self, state: S) -> None:
        """Commit *state* through the owned cubit's equality gate."""
        self._cubit.emit(state)

    def listen_to(
        self,
        source: Broadcast[T],
        callback: Callable[[T], Any],
    ) -> Subscription[T]:
        """Subscribe to another stream until this router closes."""
        return self._cubit.listen_to(source, callback)

    # -- Registration ------------------------------------------------------

    def on(self, kind: EventKind, handler: EventHandler) -> None:
        """Register *handler* for *kind*.  A later registration replaces it."""
        if kind in self._handlers:
            logger.debug(
                "Replacing handler for %s on %s", kind_name(kind), self._name,
            )
        self._handlers[kind] = handler

    def handler_kinds(self) -> list[EventKind]:
        """Registered kinds, in registration order."""
        return list(self._handlers)

    # -- Producer side -----------------------------------------------------

    def add(self, event: E) -> None:
        """Queue *event* for dispatch and return immediately.

        Never raises.  An event added after ``close()``, or before any
        loop is bound while none is running, is logged and recorded as a
        dead letter.
        """
        if self.is_closed:
            self._drop(
                event,
                ContainerClosedError(f"{self._name} is closed"),
                "Cannot add %s after %s is closed",
            )
            return

        current = _running_loop()
        if self._loop is None or self._loop.is_closed():
            if current is None:
                self._drop(
                    event,
                    NoEventLoopError(f"{self._name}.add() needs a running event loop"),
                    "Cannot add %s: %s has no event loop",
                )
                return
            if self._loop is not None:
                # Queues bind to their first loop; start over on the new one.
                self._queue = asyncio.Queue(maxsize=self._config.queue_maxsize)
                self._dispatcher = None
            self._loop = current

        try:
            self.on_event(event)
        except Exception as exc:
            self.on_error(exc)

        if current is self._loop:
            self._enqueue(event)
        else:
            self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: E) -> None:
        if self.is_closed:
            self._drop(
                event,
                ContainerClosedError(f"{self._name} closed before dispatch"),
                "Dropping %s: %s closed before it was queued",
            )
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._drop(
                event,
                EventQueueFullError(
                    f"{self._name} queue full "
                    f"(maxsize={self._config.queue_maxsize})"
                ),
                "Dropping %s: %s event queue is full",
            )
            return
        self._ensure_dispatcher()

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is not None and not self._dispatcher.done():
            return
        self._dispatcher = asyncio.get_running_loop().create_task(
            _drain_events(self._queue, weakref.ref(self)),
            name=f"{self._name}-dispatcher",
        )
        self._tasks.add(self._dispatcher)
        self._dispatcher.add_done_callback(self._tasks.discard)

    # -- Dispatch ----------------------------------------------------------

    def _resolve(self, event: E) -> tuple[EventKind, EventHandler | None]:
        kinds = candidate_kinds(event)
        for kind in kinds:
            handler = self._handlers.get(kind)
            if handler is not None:
                return kind, handler
        return kinds[0], None

    def _dispatch(self, event: E) -> None:
        kind, handler = self._resolve(event)
        if handler is None:
            self._drop(
                event,
                UnhandledEventError(kind, self._name),
                "No handler for %s on %s",
            )
            return

        # Other threads wait to emit until this event's transition is out.
        with self._cubit.lock, bound_contextvars(
            bloc=self._name, event_kind=kind_name(kind), dispatch_id=new_id(),
        ):
            previous = self.state
            try:
                result = handler(event)
            except Exception as exc:
                self._dead_letters.append(
                    DeadLetter(event=event, error=self._handler_error(kind, exc)),
                )
                self.on_error(exc)
            else:
                if inspect.isawaitable(result):
                    self._spawn_continuation(result, kind)

            self._events_processed += 1
            current = self.state
            if current != previous:
                transition = Transition(previous=previous, event=event, next=current)
                try:
                    self.on_transition(transition)
                except Exception as exc:
                    self.on_error(exc)
                for exc in self._transitions.publish(transition):
                    self.on_error(exc)

    @staticmethod
    def _handler_error(kind: EventKind, exc: Exception) -> HandlerError:
        error = HandlerError(kind_name(kind), f"{type(exc).__name__}: {exc}")
        error.__cause__ = exc
        return error

    def _spawn_continuation(self, awaitable: Awaitable[Any], kind: EventKind) -> None:
        """Run the async tail of a handler.  Its emits yield no transition."""

        async def _run() -> Any:
            return await awaitable

        task = asyncio.get_running_loop().create_task(
            _run(), name=f"{self._name}-{kind_name(kind)}",
        )
        self._continuations.add(task)
        self._tasks.add(task)
        task.add_done_callback(self._continuation_done)

    def _continuation_done(self, task: asyncio.Task[Any]) -> None:
        self._continuations.discard(task)
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, Exception):
            self.on_error(exc)

    def _drop(self, event: E, error: BlocError, message: str) -> None:
        self._dead_letters.append(DeadLetter(event=event, error=error))
        kind, _ = self._resolve(event)
        logger.warning(message, kind_name(kind), self._name)

    # -- Hooks -------------------------------------------------------------

    def on_event(self, event: E) -> None:
        """Called for every event accepted by ``add``.  Default: nothing."""

    def on_transition(self, transition: Transition[E, S]) -> None:
        """Called once per event that changed state, before publishing."""

    def on_change(self, change: Change[S]) -> None:
        """Called once per accepted emission.  Default: nothing."""

    def on_error(self, error: Exception) -> None:
        """Called with handler, hook and subscriber failures.

        The default logs the error; it never alters state.
        """
        logger.error(
            "%s reported an error: %s", self._name, error, exc_info=error,
        )

    def add_error(self, error: Exception) -> None:
        """Report *error* from application code through ``on_error``."""
        self.on_error(error)

    # -- Lifecycle ---------------------------------------------------------

    async def drain(self) -> None:
        """Wait until every queued event and continuation has finished.

        Events handed over from other threads count once their hand-off
        reaches this loop; ``drain`` yields before each wait so hand-offs
        scheduled before the call are included.
        """
        while True:
            await asyncio.sleep(0)
            await self._queue.join()
            pending = [t for t in self._continuations if not t.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    def close(self) -> None:
        """Close the router.  Idempotent and terminal.

        Events still queued are discarded; the dispatcher and any
        continuation tasks are cancelled.
        """
        if self.is_closed:
            return
        self._cubit.close()
        self._transitions.close()

        loop = self._loop
        if loop is not None and not loop.is_closed():
            if _running_loop() is loop:
                self._discard_pending()
            else:
                loop.call_soon_threadsafe(self._discard_pending)
        self._finalizer()
        logger.debug("%s closed", self._name)

    def _discard_pending(self) -> None:
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            discarded += 1
        if discarded:
            logger.debug(
                "%s discarded %d queued event(s) on close", self._name, discarded,
            )

    async def __aenter__(self) -> Bloc[E, S]:
        return self

    async def __aexit__(self, exc_type: object, *exc: object) -> None:
        if exc_type is None and not self.is_closed:
            await self.drain()
        self.close()

    # -- Observability -----------------------------------------------------

    @property
    def dead_letters(self) -> list[DeadLetter]:
        """Events dropped so far (read-only snapshot, oldest first)."""
        return list(self._dead_letters)

    def clear_dead_letters(self) -> list[DeadLetter]:
        """Drain the dead-letter list and return all entries."""
        drained = list(self._dead_letters)
        self._dead_letters.clear()
        return drained

    @property
    def events_processed(self) -> int:
        """Events that reached a handler."""
        return self._events_processed

    def __repr__(self) -> str:
        status = "closed" if self.is_closed else "open"
        return f"<{type(self).__name__} {self._name} state={self.state!r} {status}>"
