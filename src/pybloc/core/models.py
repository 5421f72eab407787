"""Immutable value records produced by containers and routers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from .errors import BlocError
from .ids import utc_now

S = TypeVar("S")
E = TypeVar("E")


@dataclass(frozen=True)
class Change(Generic[S]):
    """One accepted emission: the state before and after it."""

    previous: S
    next: S

    def __str__(self) -> str:
        return f"Change {{ previous: {self.previous}, next: {self.next} }}"


@dataclass(frozen=True)
class Transition(Generic[E, S]):
    """Net effect of one handled event.

    ``previous`` is the state before the handler ran and ``next`` the state
    after it returned; intermediate emits inside the handler are not
    represented.
    """

    previous: S
    event: E
    next: S

    def __str__(self) -> str:
        return (
            f"Transition {{ previous: {self.previous}, "
            f"event: {self.event}, next: {self.next} }}"
        )


@dataclass(frozen=True)
class DeadLetter:
    """An event the router dropped, and why."""

    event: Any
    error: BlocError
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def reason(self) -> str:
        return type(self.error).__name__
