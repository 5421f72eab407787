"""Protocol interfaces consumed by adapters.

Adapters depend on these rather than on ``Cubit``/``Bloc`` so any object
with the same ``state``/``stream`` contract can be bound.
"""

from __future__ import annotations

from typing import Protocol, TypeVar, runtime_checkable

from pybloc.bus.broadcast import Broadcast

S_co = TypeVar("S_co", covariant=True)


@runtime_checkable
class IClosable(Protocol):
    """Anything with a terminal ``close()``."""

    @property
    def is_closed(self) -> bool: ...

    def close(self) -> None: ...


@runtime_checkable
class IStateSource(Protocol[S_co]):
    """Readable current state plus a forward-only stream of changes."""

    @property
    def state(self) -> S_co: ...

    @property
    def stream(self) -> Broadcast[S_co]: ...

    @property
    def is_closed(self) -> bool: ...

    def close(self) -> None: ...
