# tests/client/test_connection_state.py

import asyncio
from unittest.mock import MagicMock

import grpc
import pytest

from vectordb_rpc.client.connection import ConnectionState, ConnectionStatus, SingleFlight
from vectordb_rpc.exception import ConnectivityError, IncompatibilityError
from tests.fixtures.handshake import ScriptedHandshake as Handshake, rpc_error


# Tests for SingleFlight
@pytest.mark.asyncio
async def test_single_flight_shares_one_run():
    flight: SingleFlight[int] = SingleFlight()
    runs = 0

    async def operation() -> int:
        nonlocal runs
        runs += 1
        await asyncio.sleep(0.01)
        return runs

    results = await asyncio.gather(*(flight.join(operation) for _ in range(5)))
    assert results == [1] * 5
    assert runs == 1
    assert flight.in_flight is False

    assert await flight.join(operation) == 2


@pytest.mark.asyncio
async def test_single_flight_shares_exceptions():
    flight: SingleFlight[None] = SingleFlight()

    async def operation() -> None:
        await asyncio.sleep(0.01)
        raise RuntimeError("shared failure")

    results = await asyncio.gather(*(flight.join(operation) for _ in range(3)), return_exceptions=True)
    assert all(isinstance(r, RuntimeError) for r in results)
    assert results[0] is results[1]


@pytest.mark.asyncio
async def test_single_flight_waiter_cancellation_does_not_cancel_attempt():
    flight: SingleFlight[str] = SingleFlight()

    async def operation() -> str:
        await asyncio.sleep(0.05)
        return "done"

    impatient = asyncio.create_task(flight.join(operation))
    patient = asyncio.create_task(flight.join(operation))
    await asyncio.sleep(0.01)
    impatient.cancel()

    assert await patient == "done"
    assert impatient.cancelled()


@pytest.mark.asyncio
async def test_single_flight_recovers_when_attempt_cancelled_before_start():
    flight: SingleFlight[str] = SingleFlight()
    started = []

    async def operation() -> str:
        started.append(True)
        return "ok"

    waiter = asyncio.create_task(flight.join(operation))
    await asyncio.sleep(0)
    assert flight.in_flight
    flight._task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert started == []
    assert flight.in_flight is False

    assert await flight.join(operation) == "ok"


# Tests for ConnectionState
@pytest.mark.asyncio
async def test_initial_state():
    state = ConnectionState(handshake=Handshake())
    assert state.status is ConnectionStatus.NOT_CONNECTED
    assert state.last_error is None
    assert await state.wait_if_connecting() is ConnectionStatus.NOT_CONNECTED
    assert state.attempts == 0


@pytest.mark.asyncio
async def test_successful_handshake():
    handshake = Handshake()
    state = ConnectionState(handshake=handshake)
    assert await state.ensure_connected() is ConnectionStatus.CONNECTED
    assert await state.ensure_connected() is ConnectionStatus.CONNECTED
    assert handshake.calls == 1


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_handshake():
    handshake = Handshake(delay=0.02)
    state = ConnectionState(handshake=handshake)

    results = await asyncio.gather(
        state.ensure_connected(),
        state.settled(),
        state.ensure_connected(),
        state.settled(),
    )
    assert set(results) == {ConnectionStatus.CONNECTED}
    assert handshake.calls == 1


@pytest.mark.asyncio
async def test_status_is_connecting_while_in_flight():
    state = ConnectionState(handshake=Handshake(delay=0.05))
    task = asyncio.create_task(state.ensure_connected())
    await asyncio.sleep(0.01)
    assert state.status is ConnectionStatus.CONNECTING
    assert await state.wait_if_connecting() is ConnectionStatus.CONNECTED
    await task


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [rpc_error(grpc.StatusCode.UNIMPLEMENTED), IncompatibilityError("old server", code="UNIMPLEMENTED")],
)
async def test_unimplemented_is_a_terminal_outcome(error):
    handshake = Handshake(error)
    state = ConnectionState(handshake=handshake)

    assert await state.ensure_connected() is ConnectionStatus.UNIMPLEMENTED
    assert state.last_error is None
    assert await state.ensure_connected() is ConnectionStatus.UNIMPLEMENTED
    assert handshake.calls == 1


@pytest.mark.asyncio
async def test_unavailable_is_failed_with_error():
    state = ConnectionState(handshake=Handshake(rpc_error(grpc.StatusCode.UNAVAILABLE)))
    assert await state.ensure_connected() is ConnectionStatus.FAILED
    assert isinstance(state.last_error, ConnectivityError)
    assert state.last_error.code == "UNAVAILABLE"


@pytest.mark.asyncio
async def test_unexpected_exception_is_failed():
    state = ConnectionState(handshake=Handshake(RuntimeError("kaboom")))
    assert await state.ensure_connected() is ConnectionStatus.FAILED
    assert isinstance(state.last_error, ConnectivityError)
    assert isinstance(state.last_error.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_timeout_marks_failed_for_all_joiners():
    state = ConnectionState(handshake=Handshake(delay=5), timeout=0.05)
    results = await asyncio.wait_for(
        asyncio.gather(state.ensure_connected(), state.settled(), state.ensure_connected()),
        timeout=2,
    )
    assert set(results) == {ConnectionStatus.FAILED}
    assert state.last_error.code == "DEADLINE_EXCEEDED"
    assert state.status is not ConnectionStatus.CONNECTING


@pytest.mark.asyncio
async def test_ensure_connected_retries_after_failure():
    handshake = Handshake(ConnectivityError("first try fails"))
    state = ConnectionState(handshake=handshake)

    assert await state.ensure_connected() is ConnectionStatus.FAILED
    assert await state.ensure_connected() is ConnectionStatus.CONNECTED
    assert state.last_error is None
    assert handshake.calls == 2


@pytest.mark.asyncio
async def test_settled_does_not_retry_failure():
    handshake = Handshake(ConnectivityError("down"))
    state = ConnectionState(handshake=handshake)

    assert await state.settled() is ConnectionStatus.FAILED
    assert await state.settled() is ConnectionStatus.FAILED
    assert handshake.calls == 1


@pytest.mark.asyncio
async def test_reset_allows_new_handshake():
    handshake = Handshake(rpc_error(grpc.StatusCode.UNIMPLEMENTED))
    state = ConnectionState(handshake=handshake)
    await state.ensure_connected()

    state.reset()
    assert state.status is ConnectionStatus.NOT_CONNECTED
    assert await state.settled() is ConnectionStatus.CONNECTED
    assert handshake.calls == 2


@pytest.mark.asyncio
async def test_wait_if_connecting_never_starts_a_handshake():
    handshake = MagicMock()
    state = ConnectionState(handshake=handshake)
    assert await state.wait_if_connecting() is ConnectionStatus.NOT_CONNECTED
    handshake.assert_not_called()
