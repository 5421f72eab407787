"""Event kinds and their resolution.

Routers look handlers up by *kind*, never by type-name strings.  An event
offers its candidate kinds in priority order:

1.  An ``Enum`` member is its own kind (``CounterEvent.INCREMENT``).
2.  An object carrying a ``kind`` attribute is tagged by it — the
    tagged-union style used by ``BlocEvent`` subclasses.
3.  The exact runtime class, always tried last, so a handler registered
    for ``CounterEvent`` catches every member that has no handler of its
    own.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

EventKind = Hashable


@dataclass(frozen=True)
class BlocEvent:
    """Optional immutable base for tagged events.

    Subclasses set ``kind`` to an enum member (or any hashable tag)::

        class CounterKind(Enum):
            INCREMENT = "increment"

        @dataclass(frozen=True)
        class Increment(BlocEvent):
            kind: ClassVar[CounterKind] = CounterKind.INCREMENT
            step: int = 1
    """

    kind: ClassVar[EventKind | None] = None


def candidate_kinds(event: Any) -> tuple[EventKind, ...]:
    """Return the kinds *event* may be routed by, most specific first."""
    if isinstance(event, Enum):
        return (event, type(event))

    tag = getattr(event, "kind", None)
    if tag is not None and _is_hashable(tag):
        return (tag, type(event))

    return (type(event),)


def _is_hashable(value: Any) -> bool:
    # isinstance(x, Hashable) is True for a tuple holding a list.
    try:
        hash(value)
    except TypeError:
        return False
    return True


def kind_name(kind: EventKind) -> str:
    """Human-readable name for logs."""
    if isinstance(kind, type):
        return kind.__name__
    if isinstance(kind, Enum):
        return f"{type(kind).__name__}.{kind.name}"
    return repr(kind)
