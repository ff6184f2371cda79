"""
Dynamic RPC Invocation.

`ServiceTransport` turns the service descriptor loaded at runtime into
unary gRPC calls addressed by method name, so RPC facades never need
generated stubs: they name the method, pass a message or a plain dict, and
receive the decoded response message.
"""

from collections.abc import Mapping
from typing import Any

import grpc
from attrs import define, field
from google.protobuf import json_format
from google.protobuf.message import DecodeError, Message

from pyvider.telemetry import logger

from vectordb_rpc.exception import ConnectivityError, IncompatibilityError, ProtocolError, VectorDBError
from vectordb_rpc.protocol.schema import SchemaTypes
from vectordb_rpc.types import MetadataType, RequestType


@define(frozen=True, slots=True)
class MethodSpec:
    """Wire path and message classes of one unary RPC."""

    name: str
    path: str
    request_class: type[Message]
    response_class: type[Message]


@define
class ServiceTransport:
    """
    Invokes the RPCs of the loaded service on a gRPC channel.

    Attributes:
        schema: Resolved schema types holding the service descriptor
    """

    schema: SchemaTypes
    _methods: dict[str, MethodSpec] = field(init=False, factory=dict)

    def __attrs_post_init__(self) -> None:
        service = self.schema.service
        for method in service.methods:
            self._methods[method.name] = MethodSpec(
                name=method.name,
                path=f"/{service.full_name}/{method.name}",
                request_class=self.schema.message_class(method.input_type.full_name),
                response_class=self.schema.message_class(method.output_type.full_name),
            )
        logger.debug(f"📡 ServiceTransport ready with methods: {sorted(self._methods)}")

    @property
    def method_names(self) -> list[str]:
        return sorted(self._methods)

    def method(self, method_name: str) -> MethodSpec:
        """
        Look up a method of the service.

        Raises:
            ProtocolError: If the service defines no such method.
        """
        try:
            return self._methods[method_name]
        except KeyError as e:
            raise ProtocolError(
                f"Unknown RPC method: {method_name}",
                hint=f"Known methods: {', '.join(self.method_names)}",
            ) from e

    def build_request(self, method_name: str, request: RequestType) -> Message:
        """
        Coerce `request` into the request message of `method_name`.

        Raises:
            ProtocolError: For unknown methods, wrongly typed messages, or dicts
                that do not match the request type.
        """
        spec = self.method(method_name)
        if request is None:
            return spec.request_class()
        if isinstance(request, Message):
            if request.DESCRIPTOR.full_name != spec.request_class.DESCRIPTOR.full_name:
                raise ProtocolError(
                    f"{method_name} expects {spec.request_class.DESCRIPTOR.full_name}, "
                    f"got {request.DESCRIPTOR.full_name}"
                )
            return request
        if isinstance(request, Mapping):
            try:
                return json_format.ParseDict(dict(request), spec.request_class())
            except (json_format.ParseError, TypeError, ValueError) as e:
                raise ProtocolError(f"Invalid {method_name} request: {e}") from e
        raise ProtocolError(f"Unsupported request type for {method_name}: {type(request).__name__}")

    async def invoke(
        self,
        channel: grpc.aio.Channel,
        method_name: str,
        request: RequestType,
        *,
        metadata: MetadataType,
        timeout: float | None = None,
    ) -> Message:
        """
        📡 Perform one unary call and return the decoded response.

        gRPC failures propagate as `grpc.aio.AioRpcError`; use
        `translate_rpc_error` to map them onto the client's exceptions.

        Raises:
            ProtocolError: If the response bytes do not decode as the response type.
        """
        spec = self.method(method_name)
        message = self.build_request(method_name, request)
        # Raw bytes: grpc.aio turns deserializer failures into a None result.
        multicallable = channel.unary_unary(
            spec.path,
            request_serializer=spec.request_class.SerializeToString,
            response_deserializer=None,
        )
        logger.debug(f"📡🚀 Invoking {spec.path}")
        raw = await multicallable(message, metadata=tuple(metadata.items()), timeout=timeout)
        return self.decode_response(method_name, raw)

    def decode_response(self, method_name: str, raw: bytes | None) -> Message:
        """
        Decode the wire bytes of a `method_name` response.

        Raises:
            ProtocolError: If the bytes are missing or malformed.
        """
        spec = self.method(method_name)
        if raw is None:
            raise ProtocolError(f"{method_name} returned no response payload")
        try:
            return spec.response_class.FromString(raw)
        except DecodeError as e:
            logger.error(f"📡❌ Malformed {method_name} response: {e}")
            raise ProtocolError(f"Malformed {method_name} response: {e}") from e


def translate_rpc_error(error: grpc.aio.AioRpcError, method_name: str) -> VectorDBError:
    """
    Map a failed gRPC call onto the client's exception hierarchy.

    UNIMPLEMENTED means the server does not know the method and becomes an
    `IncompatibilityError`; every other status is a `ConnectivityError`.
    """
    code: Any = error.code()
    code_name = code.name if isinstance(code, grpc.StatusCode) else str(code)
    details = error.details() or ""
    if code == grpc.StatusCode.UNIMPLEMENTED:
        return IncompatibilityError(
            f"The server does not implement {method_name}: {details}".rstrip(": "),
            code=code_name,
            hint="Upgrade the server or use an older client.",
        )
    return ConnectivityError(f"{method_name} failed with {code_name}: {details}", code=code_name)

# 🐍🏗️🔌
