"""
Connection State Machine.

Tracks whether the client has completed its initial handshake with the
server and coordinates concurrent callers so that at most one handshake is
ever in flight:

    NOT_CONNECTED -> CONNECTING -> CONNECTED | UNIMPLEMENTED | FAILED

UNIMPLEMENTED is a degraded but successful outcome: the server answered and
does not know the handshake RPC, which means it predates it. FAILED keeps the
error that caused it in `last_error`.
"""

import asyncio
import traceback
from collections.abc import Awaitable, Callable
from enum import StrEnum, auto
from typing import Any, Generic

import grpc
from attrs import define, field

from pyvider.telemetry import logger

from vectordb_rpc.exception import ConnectivityError, IncompatibilityError, VectorDBError
from vectordb_rpc.protocol.transport import translate_rpc_error
from vectordb_rpc.types import ResultT


class ConnectionStatus(StrEnum):
    NOT_CONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    UNIMPLEMENTED = auto()
    FAILED = auto()


@define
class SingleFlight(Generic[ResultT]):
    """
    Runs at most one instance of an operation at a time.

    The first caller of `join` starts the operation as a task; callers that
    arrive while it runs await the same task and receive the same result or
    exception. A done-callback clears the cell however the task ends, so the
    next `join` after completion starts a fresh attempt. Each waiter is
    shielded: cancelling one waiter does not cancel the shared attempt.
    """

    _task: "asyncio.Future[ResultT] | None" = field(init=False, default=None)

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    async def join(self, operation: Callable[[], Awaitable[ResultT]]) -> ResultT:
        if self._task is None:
            self._task = asyncio.ensure_future(operation())
            self._task.add_done_callback(self._clear)
        return await asyncio.shield(self._task)

    def _clear(self, task: "asyncio.Future[ResultT]") -> None:
        # Runs for every outcome, including cancellation before the first step.
        if self._task is task:
            self._task = None


@define
class ConnectionState:
    """
    Handshake status of one client.

    Attributes:
        handshake: Coroutine function performing the handshake RPC. It signals
            failure by raising; a `grpc.aio.AioRpcError` with status
            UNIMPLEMENTED (or an `IncompatibilityError`) marks the server as
            predating the handshake.
        timeout: Seconds bounding one handshake attempt; None waits indefinitely
    """

    handshake: Callable[[], Awaitable[Any]] = field()
    timeout: float | None = field(default=None)

    _status: ConnectionStatus = field(init=False, default=ConnectionStatus.NOT_CONNECTED)
    _last_error: VectorDBError | None = field(init=False, default=None)
    _flight: SingleFlight[ConnectionStatus] = field(init=False, factory=SingleFlight)
    _attempts: int = field(init=False, default=0)

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def last_error(self) -> VectorDBError | None:
        """The error of the last FAILED handshake, None otherwise."""
        return self._last_error

    @property
    def attempts(self) -> int:
        """Number of handshake attempts started so far."""
        return self._attempts

    async def ensure_connected(self) -> ConnectionStatus:
        """
        🤝 Make sure a handshake has settled, starting one if needed.

        CONNECTED and UNIMPLEMENTED return immediately. A handshake in
        flight is joined. NOT_CONNECTED and FAILED start a new attempt.
        """
        if self._status in (ConnectionStatus.CONNECTED, ConnectionStatus.UNIMPLEMENTED):
            return self._status
        return await self._flight.join(self._attempt)

    async def settled(self) -> ConnectionStatus:
        """
        🤝 Return the status once no handshake is in flight.

        Starts a handshake only from NOT_CONNECTED. Unlike
        `ensure_connected`, a FAILED status is returned as is; call `reset`
        or `ensure_connected` to try again.
        """
        if self._flight.in_flight or self._status is ConnectionStatus.NOT_CONNECTED:
            return await self._flight.join(self._attempt)
        return self._status

    async def wait_if_connecting(self) -> ConnectionStatus:
        """Wait for an in-flight handshake, if any, without starting one."""
        if self._flight.in_flight:
            return await self._flight.join(self._attempt)
        return self._status

    def reset(self) -> None:
        """
        Forget the outcome of the last handshake.

        A handshake already in flight is not cancelled; its outcome will
        still be recorded when it completes.
        """
        logger.debug(f"🤝🔄 Resetting connection state (was {self._status})")
        self._status = ConnectionStatus.NOT_CONNECTED
        self._last_error = None

    async def _attempt(self) -> ConnectionStatus:
        self._attempts += 1
        self._status = ConnectionStatus.CONNECTING
        self._last_error = None
        logger.debug(f"🤝🚀 Starting handshake attempt #{self._attempts}")

        try:
            if self.timeout is None:
                await self.handshake()
            else:
                await asyncio.wait_for(self.handshake(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            return self._fail(
                ConnectivityError(
                    f"Handshake timed out after {self.timeout}s",
                    code=grpc.StatusCode.DEADLINE_EXCEEDED.name,
                    hint="Check the address, or raise the connect timeout.",
                ),
                e,
            )
        except grpc.aio.AioRpcError as e:
            if e.code() == grpc.StatusCode.UNIMPLEMENTED:
                return self._unimplemented()
            return self._fail(translate_rpc_error(e, "Connect"), e)
        except IncompatibilityError:
            return self._unimplemented()
        except VectorDBError as e:
            return self._fail(e, e)
        except Exception as e:
            return self._fail(ConnectivityError(f"Handshake failed: {e}"), e)

        self._status = ConnectionStatus.CONNECTED
        logger.info("🤝✅ Handshake complete, server connected")
        return self._status

    def _unimplemented(self) -> ConnectionStatus:
        self._status = ConnectionStatus.UNIMPLEMENTED
        logger.warning("🤝⚠️ Server does not implement the handshake RPC; treating it as an older server")
        return self._status

    def _fail(self, error: VectorDBError, cause: BaseException) -> ConnectionStatus:
        if error is not cause and error.__cause__ is None:
            error.__cause__ = cause
        self._last_error = error
        self._status = ConnectionStatus.FAILED
        logger.error(
            f"🤝❌ Handshake failed: {error}",
            extra={"trace": "".join(traceback.format_exception(cause))},
        )
        return self._status

# 🐍🏗️🔌
