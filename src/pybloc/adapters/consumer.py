"""Builder and listener bound to the same source."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pybloc.adapters.builder import StateBuilder
from pybloc.adapters.listener import Condition, StateListener
from pybloc.core.interfaces import IStateSource

S = TypeVar("S")
R = TypeVar("R")


class StateConsumer(Generic[S, R]):
    """Rebuilds ``output`` and runs ``listener`` with independent conditions.

    The builder is subscribed first, so on each delivery ``output`` is
    already up to date when the listener runs.
    """

    def __init__(
        self,
        source: IStateSource[S],
        builder: Callable[[S], R],
        listener: Callable[[S], Any],
        *,
        build_when: Condition[S] | None = None,
        listen_when: Condition[S] | None = None,
    ) -> None:
        self._builder = StateBuilder(source, builder, build_when=build_when)
        self._listener = StateListener(source, listener, listen_when=listen_when)

    @property
    def output(self) -> R:
        return self._builder.output

    @property
    def build_count(self) -> int:
        return self._builder.build_count

    @property
    def is_attached(self) -> bool:
        return self._builder.is_attached and self._listener.is_attached

    def detach(self) -> None:
        self._builder.detach()
        self._listener.detach()

    def __enter__(self) -> StateConsumer[S, R]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.detach()
