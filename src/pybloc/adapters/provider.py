"""Context-scoped dependency injection for containers.

``provide`` binds one instance for the current context (thread or asyncio
task, via ``contextvars``); ``read`` looks up the innermost binding of a
type.  Instances built by ``create=`` belong to the scope and are closed
when it exits; instances passed by value are only shared.

    with provide(create=CounterBloc):
        ...
        bloc = read(CounterBloc)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, ExitStack, contextmanager
from contextvars import ContextVar
from typing import Any, TypeVar

from pybloc.core.errors import ProviderNotFoundError
from pybloc.core.interfaces import IClosable

C = TypeVar("C")

_provided: ContextVar[tuple[Any, ...]] = ContextVar("pybloc_provided", default=())


@contextmanager
def provide(
    value: C | None = None,
    *,
    create: Callable[[], C] | None = None,
) -> Iterator[C]:
    """Bind *value*, or the result of *create*, for the enclosed block."""
    if (value is None) == (create is None):
        raise ValueError("provide() takes exactly one of value or create=")

    instance = create() if create is not None else value
    token = _provided.set(_provided.get() + (instance,))
    try:
        yield instance  # type: ignore[misc]
    finally:
        _provided.reset(token)
        if create is not None and isinstance(instance, IClosable):
            instance.close()


@contextmanager
def provide_all(*scopes: AbstractContextManager[Any]) -> Iterator[tuple[Any, ...]]:
    """Enter several ``provide(...)`` scopes; exit them in reverse order."""
    with ExitStack() as stack:
        yield tuple(stack.enter_context(scope) for scope in scopes)


def read(cls: type[C]) -> C:
    """Return the innermost provided instance of *cls* (or a subclass).

    Raises:
        ProviderNotFoundError: Nothing of that type is provided here.
    """
    found = maybe_read(cls)
    if found is None:
        raise ProviderNotFoundError(f"No {cls.__name__} provided in this context")
    return found


def maybe_read(cls: type[C]) -> C | None:
    for instance in reversed(_provided.get()):
        if isinstance(instance, cls):
            return instance
    return None
