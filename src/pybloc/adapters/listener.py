"""Side-effect adapter: run a callback on selected state changes."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pybloc.core.interfaces import IStateSource

S = TypeVar("S")

Condition = Callable[[S, S], bool]


class StateListener(Generic[S]):
    """Calls ``listener(state)`` for each delivered state that passes
    ``listen_when(previous, current)``.

    ``previous`` starts as the source's state at attach time and advances on
    every delivery, whether or not the listener fired.
    """

    def __init__(
        self,
        source: IStateSource[S],
        listener: Callable[[S], Any],
        *,
        listen_when: Condition[S] | None = None,
    ) -> None:
        self._source = source
        self._listener = listener
        self._listen_when = listen_when
        self._previous = source.state
        self._subscription = source.stream.subscribe(self._on_state)

    def _on_state(self, state: S) -> None:
        previous, self._previous = self._previous, state
        if self._listen_when is None or self._listen_when(previous, state):
            self._listener(state)

    @property
    def is_attached(self) -> bool:
        return self._subscription.is_active

    def detach(self) -> None:
        self._subscription.cancel()

    def __enter__(self) -> StateListener[S]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.detach()
