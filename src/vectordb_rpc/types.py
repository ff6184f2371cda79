from __future__ import annotations

"""Type definitions for the VectorDB RPC client.

This module provides the Protocol classes and type aliases that define the
seams between the client's components: how channels are produced for the
pool, and how a request is invoked on a channel. Tests and advanced users can
supply their own implementations of these protocols.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol, TypeVar, runtime_checkable

import grpc
from google.protobuf.message import Message

ChannelT = TypeVar("ChannelT")
ResultT = TypeVar("ResultT")

# Type aliases
GrpcChannelType = grpc.aio.Channel                    # Channels handed out by the pool
GrpcCredentialsType = grpc.ChannelCredentials | None  # None selects a plaintext channel
ChannelOptionsType = dict[str, Any]                   # gRPC channel arguments by name
MetadataType = Mapping[str, str]                      # Headers attached to a call
RequestType = Message | Mapping[str, Any] | None      # Message, plain dict, or empty request
FallbackType = Callable[[], Any | Awaitable[Any]]     # Compatibility fallback


@runtime_checkable
class ChannelFactory(Protocol[ChannelT]):
    """
    Lifecycle hooks the channel pool uses to manage its channels.

    `create` may fail; the pool reports the failure to the caller of
    `acquire`. `validate` runs before an idle channel is reused; returning
    False makes the pool destroy it and try the next one.
    """

    async def create(self) -> ChannelT:
        """Open a new channel."""
        ...

    def validate(self, channel: ChannelT) -> bool:
        """Return True if the idle channel can be handed out again."""
        ...

    async def destroy(self, channel: ChannelT) -> None:
        """Close a channel that left the pool."""
        ...


@runtime_checkable
class RPCInvoker(Protocol):
    """Invoke one unary RPC by method name on a channel."""

    async def invoke(
        self,
        channel: Any,
        method_name: str,
        request: RequestType,
        *,
        metadata: MetadataType,
        timeout: float | None = None,
    ) -> Message:
        ...

# 🐍🏗️🔌
