"""State containers: ``Cubit`` (emit-driven) and ``Bloc`` (event-driven)."""

from pybloc.bloc.bloc import Bloc
from pybloc.bloc.cubit import Cubit

__all__ = ["Bloc", "Cubit"]
