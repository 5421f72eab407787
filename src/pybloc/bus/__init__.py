"""Broadcast channels used for state and transition streams."""

from pybloc.bus.broadcast import Broadcast, StreamIterator, Subscription

__all__ = ["Broadcast", "StreamIterator", "Subscription"]
