"""Render adapter: rebuild an output from state on selected changes."""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

from pybloc.adapters.listener import Condition
from pybloc.core.interfaces import IStateSource

S = TypeVar("S")
R = TypeVar("R")


class StateBuilder(Generic[S, R]):
    """Keeps ``output = builder(state)`` up to date.

    Builds once when attached, then rebuilds for each delivered state that
    passes ``build_when(previous, current)``.  ``previous`` is the state the
    current output was last compared against, advanced on every delivery.
    """

    def __init__(
        self,
        source: IStateSource[S],
        builder: Callable[[S], R],
        *,
        build_when: Condition[S] | None = None,
    ) -> None:
        self._builder = builder
        self._build_when = build_when
        self._previous = source.state
        self._output = builder(source.state)
        self._build_count = 1
        self._subscription = source.stream.subscribe(self._on_state)

    def _on_state(self, state: S) -> None:
        previous, self._previous = self._previous, state
        if self._build_when is None or self._build_when(previous, state):
            self._output = self._builder(state)
            self._build_count += 1

    @property
    def output(self) -> R:
        return self._output

    @property
    def build_count(self) -> int:
        return self._build_count

    @property
    def is_attached(self) -> bool:
        return self._subscription.is_active

    def detach(self) -> None:
        self._subscription.cancel()

    def __enter__(self) -> StateBuilder[S, R]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.detach()
