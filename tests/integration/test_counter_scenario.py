"""Integration test: counter cubit and bloc end to end."""

import logging

import pytest

from helpers.counters import CounterBloc, CounterCubit, Increment, Unregistered
from pybloc.adapters import StateBuilder, StateListener, provide, read
from pybloc.core.config import DispatchConfig
from pybloc.core.models import Change, Transition


def test_cubit_scenario():
    """emit(1) delivers once with Change{0,1}; emitting 1 again is silent."""
    cubit = CounterCubit()
    delivered = []
    cubit.stream.subscribe(delivered.append)

    cubit.emit(1)
    assert delivered == [1]
    assert cubit.changes == [Change(previous=0, next=1)]

    cubit.emit(1)
    assert delivered == [1]
    assert len(cubit.changes) == 1
    cubit.close()


@pytest.mark.asyncio
async def test_bloc_scenario(caplog):
    """Increment moves 0 → 1 with one transition; an unregistered event does nothing."""
    bloc = CounterBloc(dispatch=DispatchConfig())
    transitions = []
    bloc.transition_stream.subscribe(transitions.append)

    bloc.add(Increment())
    await bloc.drain()
    assert bloc.state == 1
    assert transitions == [Transition(previous=0, event=Increment(), next=1)]

    with caplog.at_level(logging.WARNING):
        bloc.add(Unregistered())
        await bloc.drain()

    assert bloc.state == 1
    assert len(transitions) == 1
    assert any("No handler" in r.getMessage() for r in caplog.records)
    bloc.close()


@pytest.mark.asyncio
async def test_provided_bloc_drives_adapters():
    """A provided bloc is shared by a builder and a listener."""
    alerts = []

    async with CounterBloc(dispatch=DispatchConfig()) as bloc:
        with provide(bloc):
            view = StateBuilder(read(CounterBloc), lambda s: f"Count: {s}")
            StateListener(
                read(CounterBloc),
                alerts.append,
                listen_when=lambda prev, cur: cur % 3 == 0,
            )

            for _ in range(4):
                bloc.add(Increment())
            await bloc.drain()

            assert view.output == "Count: 4"
            assert view.build_count == 5
            assert alerts == [3]

    assert not view.is_attached
