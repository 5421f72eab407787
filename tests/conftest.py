"""Shared fixtures for the pybloc test suite."""

from __future__ import annotations

import pytest

from helpers.counters import CounterBloc, CounterCubit
from pybloc.core.config import DispatchConfig, reset_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Keep BLOC_* environment and cached settings out of every test."""
    monkeypatch.delenv("BLOC_DISPATCH__QUEUE_MAXSIZE", raising=False)
    monkeypatch.delenv("BLOC_DISPATCH__MAX_DEAD_LETTERS", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def counter_cubit() -> CounterCubit:
    cubit = CounterCubit()
    yield cubit
    cubit.close()


@pytest.fixture
def counter_bloc() -> CounterBloc:
    bloc = CounterBloc(dispatch=DispatchConfig())
    yield bloc
    bloc.close()


@pytest.fixture
def recorder():
    """Return ``(values, callback)``; the callback appends to ``values``."""
    values = []
    return values, values.append
