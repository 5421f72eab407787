"""Framework-neutral adapters over the ``state``/``stream`` contract."""

from pybloc.adapters.builder import StateBuilder
from pybloc.adapters.consumer import StateConsumer
from pybloc.adapters.listener import StateListener
from pybloc.adapters.provider import maybe_read, provide, provide_all, read

__all__ = [
    "StateBuilder",
    "StateConsumer",
    "StateListener",
    "maybe_read",
    "provide",
    "provide_all",
    "read",
]
