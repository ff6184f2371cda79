#
# vectordb_rpc/client/base.py
#

"""
VectorDBClient module for managing connections and dispatching RPCs.

This module provides the core client of the VectorDB RPC package. A client
is built once from a `ClientConfig`; building resolves the TLS credentials
and loads the protocol schema, so a client that exists is always usable.

The client manages the complete lifecycle of its connections:
1. Lazily creating a bounded pool of gRPC channels bound to its credentials
2. Performing the Connect handshake exactly once, shared by concurrent callers
3. Gating version-sensitive operations on the handshake outcome
4. Attaching authentication and database metadata to every call
5. Leasing a channel per call and discarding channels that failed
6. Closing every channel on shutdown

Example usage:
    ```python
    from vectordb_rpc import create_client

    client = create_client("localhost:19530", username="root", password="secret")
    async with client:
        response = await client.call("ShowCollections")
        print(response.collection_names)

        # Collection facade
        await client.has_collection("books")
    ```
"""

import base64
import getpass
import socket
import traceback
from collections.abc import Mapping
from datetime import datetime
from importlib import metadata as importlib_metadata
from typing import Any

import grpc
from attrs import define, evolve, field
from google.protobuf.message import Message

from pyvider.telemetry import logger

from vectordb_rpc.client.collection import CollectionOperations
from vectordb_rpc.client.compatibility import require_capability
from vectordb_rpc.client.connection import ConnectionState, ConnectionStatus
from vectordb_rpc.client.resource import ResourceGroupOperations
from vectordb_rpc.config import ClientConfig, get_settings
from vectordb_rpc.crypto.credentials import ResolvedCredentials, resolve_credentials
from vectordb_rpc.exception import ConfigError, ConnectivityError, ProtocolError
from vectordb_rpc.pool import ChannelPool, GrpcChannelFactory, merge_channel_options
from vectordb_rpc.protocol.schema import SchemaTypes, load_schema, message_to_dict
from vectordb_rpc.protocol.transport import ServiceTransport, translate_rpc_error
from vectordb_rpc.types import FallbackType, RequestType
from vectordb_rpc.utils import format_address

SDK_TYPE = "python"
HANDSHAKE_METHOD = "Connect"


def _sdk_version() -> str:
    try:
        return importlib_metadata.version("vectordb-rpc")
    except importlib_metadata.PackageNotFoundError:
        return "unknown"


def _local_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def _lower_keys(headers: Mapping[str, Any]) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in headers.items()}


@define(frozen=True)
class CallContext:
    """
    Request context applied to a call.

    Attributes:
        metadata: Headers sent with the call (keys are lower-case)
        timeout: Per-call deadline in seconds, None for no deadline
    """

    metadata: dict[str, str] = field(factory=dict, converter=_lower_keys)
    timeout: float | None = None

    def with_metadata(self, headers: Mapping[str, str]) -> "CallContext":
        """Return a copy with `headers` added; an empty value removes a header."""
        merged = dict(self.metadata)
        for key, value in headers.items():
            if value:
                merged[str(key).lower()] = str(value)
            else:
                merged.pop(str(key).lower(), None)
        return evolve(self, metadata=merged)

    def over(self, base: "CallContext") -> "CallContext":
        """Layer this context over `base`: own headers win, own timeout wins when set."""
        return CallContext(
            metadata={**base.metadata, **self.metadata},
            timeout=self.timeout if self.timeout is not None else base.timeout,
        )


def default_metadata(config: ClientConfig) -> dict[str, str]:
    """
    Headers derived from a client configuration.

    `authorization` carries the token when set, otherwise base64 of
    "username:password" when either is set. `dbname` is sent when a database
    is configured and `client-id` always.
    """
    headers: dict[str, str] = {}
    if config.token:
        headers["authorization"] = config.token
    elif config.username or config.password:
        credentials = f"{config.username}:{config.password}".encode()
        headers["authorization"] = base64.b64encode(credentials).decode("ascii")
    if config.database:
        headers["dbname"] = config.database
    headers["client-id"] = config.id
    return headers


@define
class VectorDBClient(CollectionOperations, ResourceGroupOperations):
    """
    Client for the VectorDB gRPC service.

    Construct it with `VectorDBClient.build(config)` or `create_client(...)`;
    `__init__` takes the already-resolved parts and performs no I/O.

    Attributes:
        config: The immutable client configuration
        credentials: Resolved security mode and channel credentials
        schema: Message types loaded from the .proto files
        transport: Dynamic invoker for the service's RPC methods
        target: gRPC target derived from the configured address
        channel_options: Channel arguments, defaults included
        server_info: Server details reported by the handshake, empty until connected
    """

    config: ClientConfig = field()
    credentials: ResolvedCredentials = field()
    schema: SchemaTypes = field()
    transport: ServiceTransport = field()
    target: str = field()
    channel_options: dict[str, Any] = field(factory=dict)

    server_info: dict[str, Any] = field(init=False, factory=dict)
    _pool: ChannelPool | None = field(init=False, default=None)
    _state: ConnectionState = field(init=False)
    _context: CallContext = field(init=False)

    def __attrs_post_init__(self) -> None:
        self._state = ConnectionState(handshake=self._handshake, timeout=self.config.connect_timeout)
        self._context = CallContext(metadata=default_metadata(self.config))
        logger.debug(f"🔧 VectorDBClient created for {self.target} ({self.credentials.mode})")

    @classmethod
    def build(cls, config: ClientConfig) -> "VectorDBClient":
        """
        🧰 Resolve credentials and load the schema, then create the client.

        Raises:
            ConfigError: If TLS material or schema files cannot be loaded.
        """
        logger.debug(f"🧰 Building VectorDBClient for {config.address}")
        try:
            credentials = resolve_credentials(config.address, config.tls, config.ssl)
            schema = load_schema(config.proto_file_path)
            transport = ServiceTransport(schema)
        except ConfigError:
            logger.error(f"🧰❌ Failed to build client for {config.address}")
            raise
        except ProtocolError as e:
            logger.error(f"🧰❌ Loaded schema is unusable: {e}")
            raise ConfigError(f"Loaded schema is unusable: {e}") from e

        target = format_address(config.address, get_settings().default_port())
        channel_options = merge_channel_options(credentials.options, config.channel_options)
        logger.info(f"🧰✅ VectorDBClient ready for {target} (security={credentials.mode})")
        return cls(
            config=config,
            credentials=credentials,
            schema=schema,
            transport=transport,
            target=target,
            channel_options=channel_options,
        )

    @property
    def pool(self) -> ChannelPool:
        """The channel pool, created on first use."""
        if self._pool is None:
            factory = GrpcChannelFactory(
                target=self.target,
                credentials=self.credentials,
                options=self.channel_options,
                ready_timeout=self.config.connect_timeout,
            )
            self._pool = ChannelPool(
                factory=factory,
                max_size=self.config.pool.max_size,
                idle_timeout=self.config.pool.idle_timeout,
            )
        return self._pool

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def metadata(self) -> dict[str, str]:
        """A copy of the headers sent with every call."""
        return dict(self._context.metadata)

    def set_metadata(self, headers: Mapping[str, str]) -> None:
        """Add default headers; an empty value removes a header."""
        self._context = self._context.with_metadata(headers)
        logger.debug(f"📡📝 Default metadata keys now: {sorted(self._context.metadata)}")

    def use_database(self, db_name: str) -> None:
        """Send `db_name` as the database of all subsequent calls."""
        if not db_name:
            raise ValueError("db_name is required")
        self.set_metadata({"dbname": db_name})
        logger.info(f"📡🗄️ Using database {db_name}")

    def encode_collection_schema(self, payload: Mapping[str, Any]) -> bytes:
        return self.schema.encode_collection_schema(payload)

    async def connect(self) -> ConnectionStatus:
        """
        🤝 Perform the handshake if it has not succeeded yet.

        Never raises for handshake failures; inspect the returned status and
        `state.last_error` instead.
        """
        return await self._state.ensure_connected()

    async def check_compatibility(
        self, message: str | None = None, fallback: FallbackType | None = None
    ) -> Any:
        """🛡️ Wait for the handshake and fail (or fall back) on incompatible servers."""
        return await require_capability(self._state, message, fallback)

    async def call(
        self,
        method: str,
        request: RequestType = None,
        *,
        context: CallContext | None = None,
        timeout: float | None = None,
    ) -> Message:
        """
        📡 Invoke a unary RPC by method name.

        Waits for an in-flight handshake first, then leases a channel from
        the pool for the duration of the call.

        Args:
            method: RPC method name, e.g. "HasCollection"
            request: Request message, plain dict, or None for an empty request
            context: Headers and timeout layered over the client defaults
            timeout: Deadline in seconds; overrides the context's timeout

        Raises:
            ProtocolError: Unknown method or malformed request.
            IncompatibilityError: The server does not implement the method.
            ConnectivityError: Channel or RPC failure.
        """
        await self._state.wait_if_connecting()
        return await self._invoke(method, request, context=context, timeout=timeout)

    async def _invoke(
        self,
        method: str,
        request: RequestType,
        *,
        context: CallContext | None = None,
        timeout: float | None = None,
    ) -> Message:
        effective = context.over(self._context) if context is not None else self._context
        if timeout is None:
            timeout = effective.timeout
        message = self.transport.build_request(method, request)

        channel = await self.pool.acquire()
        valid = False
        try:
            response = await self.transport.invoke(
                channel, method, message, metadata=effective.metadata, timeout=timeout
            )
            valid = True
            return response
        except grpc.aio.AioRpcError as e:
            error = translate_rpc_error(e, method)
            logger.error(f"📡❌ {method} failed: {error}")
            raise error from e
        finally:
            await self.pool.release(channel, valid=valid)

    async def _handshake(self) -> None:
        """Send client info with the Connect RPC and record what the server reports."""
        client_info = {
            "sdk_type": SDK_TYPE,
            "sdk_version": _sdk_version(),
            "local_time": datetime.now().astimezone().isoformat(),
            "user": self.config.username or _local_user(),
            "host": socket.gethostname(),
            "reserved": {"client_id": self.config.id},
        }
        logger.debug(f"🤝 Sending {HANDSHAKE_METHOD} to {self.target}")
        response = await self._invoke(HANDSHAKE_METHOD, {"client_info": client_info})

        if response.status.error_code != 0 or response.status.code != 0:
            status = message_to_dict(response.status)
            raise ConnectivityError(
                f"{HANDSHAKE_METHOD} rejected by server: {status.get('reason') or status.get('error_code')}",
                code=str(status.get("error_code")),
            )

        self.server_info = message_to_dict(response.server_info)
        if response.identifier:
            self.set_metadata({"identifier": str(response.identifier)})
        logger.info(f"🤝✅ Connected to {self.target} (server identifier {response.identifier or 'none'})")

    async def close(self) -> None:
        """
        Close every channel of the pool.

        Calls made after closing fail with `ConnectivityError`. This method is
        idempotent.
        """
        logger.debug("🔄 Closing VectorDBClient...")
        if self._pool is not None:
            try:
                await self._pool.close()
            except Exception as e:
                logger.error(f"🔄❌ Error closing channel pool: {e}", extra={"trace": traceback.format_exc()})
        logger.info("🔄 VectorDBClient closed.")

    async def __aenter__(self) -> "VectorDBClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_value: Any, tb: Any) -> None:
        await self.close()

# 🐍🏗️🔌
