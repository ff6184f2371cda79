"""Channel pool for the VectorDB RPC client.

Keeps live gRPC channels to one target between calls so that connection
setup is amortised over many short requests, and bounds the number of
channels that exist at once so that a saturated server or network applies
backpressure instead of an ever-growing number of connections.

Each ``acquire()`` leases one channel exclusively to the caller, either an
idle one that still validates or a newly created one, and suspends while
``max_size`` channels are leased. ``release()`` returns the channel to the
idle set, or destroys it when the caller marks it invalid, so a channel that
failed for one caller is never offered to the next.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import traceback
from collections import deque
from collections.abc import AsyncIterator
from typing import Any

import grpc
from attrs import define, field

from pyvider.telemetry import logger

from vectordb_rpc.crypto.credentials import ResolvedCredentials
from vectordb_rpc.exception import ConnectivityError
from vectordb_rpc.types import ChannelFactory

__all__ = [
    "DEFAULT_CHANNEL_OPTIONS",
    "ChannelPool",
    "GrpcChannelFactory",
    "PoolMetrics",
    "merge_channel_options",
]

DEFAULT_CHANNEL_OPTIONS: dict[str, Any] = {
    # Servers may raise their message limits, so never cap them client side.
    "grpc.max_receive_message_length": -1,
    "grpc.max_send_message_length": -1,
    "grpc.keepalive_time_ms": 10 * 1000,
    "grpc.keepalive_timeout_ms": 5 * 1000,
    "grpc.keepalive_permit_without_calls": 1,
    "grpc.enable_retries": 1,
}


def merge_channel_options(*layers: dict[str, Any] | None) -> dict[str, Any]:
    """Layer channel options over the defaults; later layers win."""
    merged = dict(DEFAULT_CHANNEL_OPTIONS)
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


# ---------------------------------------------------------------------------
# GrpcChannelFactory
# ---------------------------------------------------------------------------


@define
class GrpcChannelFactory:
    """
    Creates `grpc.aio` channels bound to one target and credential set.

    Attributes:
        target: gRPC target ("host:port")
        credentials: Output of credential resolution
        options: Channel arguments, already merged over the defaults
        ready_timeout: Seconds to wait for a new channel to connect; None skips the wait
    """

    target: str
    credentials: ResolvedCredentials
    options: dict[str, Any] = field(factory=dict)
    ready_timeout: float | None = None

    async def create(self) -> grpc.aio.Channel:
        """
        🚢 Open a channel and optionally wait until it is connected.

        Raises:
            ConnectivityError: If the channel cannot be created or does not
                become ready within `ready_timeout`.
        """
        options = list(self.options.items())
        logger.debug(f"🚢🚀 Creating {self.credentials.mode} channel to {self.target}")
        try:
            if self.credentials.channel_credentials is None:
                channel = grpc.aio.insecure_channel(self.target, options=options)
            else:
                channel = grpc.aio.secure_channel(
                    self.target, self.credentials.channel_credentials, options=options
                )
        except (ValueError, TypeError, RuntimeError) as e:
            logger.error(f"🚢❌ Failed to create channel to {self.target}: {e}")
            raise ConnectivityError(f"Failed to create channel to {self.target}: {e}") from e

        if self.ready_timeout is not None:
            try:
                await asyncio.wait_for(channel.channel_ready(), timeout=self.ready_timeout)
            except asyncio.TimeoutError as e:
                await channel.close()
                logger.error(f"🚢❌ Channel to {self.target} not ready after {self.ready_timeout}s")
                raise ConnectivityError(
                    f"Channel to {self.target} did not become ready within {self.ready_timeout}s",
                    hint="Check that the server is running and the address is reachable.",
                ) from e
            logger.debug(f"🚢✅ Channel to {self.target} ready")

        return channel

    def validate(self, channel: grpc.aio.Channel) -> bool:
        return channel.get_state(try_to_connect=False) != grpc.ChannelConnectivity.SHUTDOWN

    async def destroy(self, channel: grpc.aio.Channel) -> None:
        await channel.close()


# ---------------------------------------------------------------------------
# PoolMetrics
# ---------------------------------------------------------------------------


@define(frozen=True)
class PoolMetrics:
    """
    Snapshot of pool counters and current state.

    Attributes:
        creates: Channels created.
        reuses: Acquisitions served from the idle set.
        releases: Channels returned to the idle set.
        discards: Channels destroyed on release (invalid, or pool closed).
        evictions: Idle channels destroyed (stale or failed validation).
        idle: Current idle count.
        leased: Current leased count.
    """

    creates: int
    reuses: int
    releases: int
    discards: int
    evictions: int
    idle: int
    leased: int


@define
class _PoolEntry:
    """A live channel and its bookkeeping."""

    channel: Any
    created_at: float = field(factory=time.monotonic)
    returned_at: float = field(factory=time.monotonic)
    uses: int = 0


def _positive(instance: Any, attribute: Any, value: int) -> None:
    if value < 1:
        raise ValueError(f"{attribute.name} must be at least 1, got {value}")


# ---------------------------------------------------------------------------
# ChannelPool
# ---------------------------------------------------------------------------


@define
class ChannelPool:
    """
    Bounded pool of channels produced by a `ChannelFactory`.

    Guarantees that no channel is leased to two callers at once, that a
    channel released as invalid is never handed out again, and that at most
    `max_size` channels are alive. Waiters are not served in FIFO order.

    Attributes:
        factory: Creates, validates and destroys channels
        max_size: Maximum number of live channels
        idle_timeout: Seconds after which an idle channel is destroyed rather than reused
    """

    factory: ChannelFactory = field()
    max_size: int = field(default=10, validator=_positive)
    idle_timeout: float | None = field(default=None)

    _idle: deque[_PoolEntry] = field(init=False, factory=deque)
    _leased: dict[int, _PoolEntry] = field(init=False, factory=dict)
    _slots: asyncio.Semaphore = field(init=False)
    _closed: bool = field(init=False, default=False)
    _pending: set[asyncio.Future[Any]] = field(init=False, factory=set)

    _creates: int = field(init=False, default=0)
    _reuses: int = field(init=False, default=0)
    _releases: int = field(init=False, default=0)
    _discards: int = field(init=False, default=0)
    _evictions: int = field(init=False, default=0)

    def __attrs_post_init__(self) -> None:
        self._slots = asyncio.Semaphore(self.max_size)
        logger.debug(f"🏊 ChannelPool created (max_size={self.max_size}, idle_timeout={self.idle_timeout})")

    @property
    def size(self) -> int:
        """Live channels: idle plus leased."""
        return len(self._idle) + len(self._leased)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def metrics(self) -> PoolMetrics:
        return PoolMetrics(
            creates=self._creates,
            reuses=self._reuses,
            releases=self._releases,
            discards=self._discards,
            evictions=self._evictions,
            idle=len(self._idle),
            leased=len(self._leased),
        )

    async def acquire(self) -> Any:
        """
        🏊 Lease a channel, waiting while `max_size` channels are leased.

        Raises:
            ConnectivityError: If the pool is closed or a new channel cannot be created.
        """
        if self._closed:
            raise ConnectivityError("Channel pool is closed")

        await self._slots.acquire()
        entry: _PoolEntry | None = None
        try:
            if self._closed:
                raise ConnectivityError("Channel pool is closed")

            entry, stale = self._pop_idle()
            if stale:
                # Shielded so that a cancelled caller still closes every stale channel.
                await asyncio.shield(self._destroy_detached(stale))

            if entry is None:
                channel = await self.factory.create()
                entry = _PoolEntry(channel=channel)
                self._creates += 1
                logger.debug(f"🏊✨ Created channel #{self._creates} (pool size {self.size + 1}/{self.max_size})")
            else:
                self._reuses += 1
        except BaseException:
            # Only a reused entry can be held here; created channels are assigned last.
            if entry is not None:
                if self._closed:
                    self._destroy_detached([entry])
                else:
                    self._idle.append(entry)
            self._slots.release()
            raise

        entry.uses += 1
        self._leased[id(entry.channel)] = entry
        return entry.channel

    async def release(self, channel: Any, valid: bool = True) -> None:
        """
        🏊 Return a leased channel.

        Args:
            channel: A channel obtained from `acquire`
            valid: False when the channel failed during use; it is then destroyed

        Raises:
            ValueError: If the channel is not currently leased from this pool.
        """
        entry = self._leased.pop(id(channel), None)
        if entry is None:
            raise ValueError("Channel is not leased from this pool")

        try:
            if valid and not self._closed and self.factory.validate(channel):
                entry.returned_at = time.monotonic()
                self._idle.append(entry)
                self._releases += 1
            else:
                self._discards += 1
                logger.debug(f"🏊🗑️ Discarding channel after {entry.uses} use(s) (valid={valid}, closed={self._closed})")
                await self._destroy(entry)
        finally:
            self._slots.release()

    @contextlib.asynccontextmanager
    async def lease(self) -> AsyncIterator[Any]:
        """Acquire a channel for the duration of a block; it is discarded if the block raises."""
        channel = await self.acquire()
        valid = True
        try:
            yield channel
        except BaseException:
            valid = False
            raise
        finally:
            await self.release(channel, valid=valid)

    async def close(self) -> None:
        """
        🏊🔒 Destroy idle channels and refuse further acquisitions.

        Channels still leased are destroyed when they are released.
        Calling close more than once is safe.
        """
        if self._closed:
            return
        self._closed = True
        idle = list(self._idle)
        self._idle.clear()
        for entry in idle:
            await self._destroy(entry)
        if self._pending:
            await asyncio.gather(*self._pending)
        logger.debug(f"🏊🔒 ChannelPool closed ({len(idle)} idle destroyed, {len(self._leased)} still leased)")

    def _pop_idle(self) -> tuple[_PoolEntry | None, list[_PoolEntry]]:
        """Take the most recently returned usable idle entry; collect stale or invalid ones."""
        stale: list[_PoolEntry] = []
        if self.idle_timeout is not None:
            cutoff = time.monotonic() - self.idle_timeout
            while self._idle and self._idle[0].returned_at < cutoff:
                stale.append(self._idle.popleft())

        while self._idle:
            entry = self._idle.pop()
            if self.factory.validate(entry.channel):
                self._evictions += len(stale)
                return entry, stale
            stale.append(entry)

        self._evictions += len(stale)
        return None, stale

    def _destroy_detached(self, entries: list[_PoolEntry]) -> asyncio.Future[Any]:
        """Destroy `entries` in a task that outlives the caller; `close` waits for it."""
        task = asyncio.ensure_future(asyncio.gather(*(self._destroy(e) for e in entries)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _destroy(self, entry: _PoolEntry) -> None:
        try:
            await self.factory.destroy(entry.channel)
        except Exception as e:
            logger.error(
                f"🏊❌ Error destroying channel: {e}",
                extra={"trace": traceback.format_exc()},
            )

# 🐍🏗️🔌
