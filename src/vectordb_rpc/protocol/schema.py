"""
Protocol Schema Loading.

Compiles the service and data-type `.proto` files at runtime with
`grpc_tools.protoc`, loads the resulting descriptors into a private
descriptor pool, and resolves the message types the client needs by their
fully-qualified names.

Loading is synchronous and happens once, while a client is being built. Any
failure (missing file, compiler error, unknown type name) raises
`ConfigError` so that no half-initialised client can exist.
"""

import os
import tempfile
import traceback
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

from attrs import define, field
from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory
from google.protobuf.descriptor import Descriptor, ServiceDescriptor
from google.protobuf.message import DecodeError, EncodeError, Message
from grpc_tools import protoc

from pyvider.telemetry import logger

from vectordb_rpc.config import ProtoFilePaths
from vectordb_rpc.exception import ConfigError, ProtocolError

SERVICE_NAME = "milvus.proto.milvus.MilvusService"
COLLECTION_SCHEMA_TYPE = "milvus.proto.schema.CollectionSchema"
FIELD_SCHEMA_TYPE = "milvus.proto.schema.FieldSchema"


@define(frozen=True)
class SchemaTypes:
    """
    Message types resolved from the loaded schema files.

    Attributes:
        collection_schema: Message class for `CollectionSchema`
        field_schema: Message class for `FieldSchema`
        service: Descriptor of the RPC service
        pool: Descriptor pool holding every loaded type
        files: The (service, schema) paths the types were loaded from
    """

    collection_schema: type[Message]
    field_schema: type[Message]
    service: ServiceDescriptor = field(repr=False)
    pool: descriptor_pool.DescriptorPool = field(repr=False)
    files: tuple[Path, Path] = field(factory=tuple)

    def message_class(self, full_name: str) -> type[Message]:
        """
        Resolve any message class by fully-qualified name.

        Raises:
            ProtocolError: If the name is not defined by the loaded schema files.
        """
        try:
            descriptor = self.pool.FindMessageTypeByName(full_name)
        except KeyError as e:
            raise ProtocolError(f"Unknown message type: {full_name}") from e
        return message_factory.GetMessageClass(descriptor)

    def encode_collection_schema(self, payload: Mapping[str, Any]) -> bytes:
        """
        🧬 Encode a collection schema given as a plain mapping to wire bytes.

        Used by requests that carry the schema as an opaque `bytes` field.
        Field entries may use `data_type` names ("Int64", "FloatVector") or
        numbers, and `type_params` either as a list of key/value pairs or as a
        plain dict.

        Raises:
            ProtocolError: If the payload does not fit the schema.
        """
        normalised = dict(payload)
        normalised["fields"] = [_normalise_field(f) for f in payload.get("fields", [])]
        if "properties" in normalised:
            normalised["properties"] = _key_value_pairs(normalised["properties"])

        try:
            message = json_format.ParseDict(normalised, self.collection_schema())
            return message.SerializeToString()
        except (json_format.ParseError, EncodeError, TypeError, ValueError) as e:
            logger.error(f"🧬❌ Failed to encode collection schema: {e}")
            raise ProtocolError(f"Invalid collection schema: {e}") from e

    def decode_collection_schema(self, data: bytes) -> dict[str, Any]:
        """
        🧬 Decode wire bytes of a collection schema into a plain dict.

        Raises:
            ProtocolError: If the bytes are not a valid encoded schema.
        """
        try:
            message = self.collection_schema.FromString(data)
        except DecodeError as e:
            raise ProtocolError(f"Malformed collection schema bytes: {e}") from e
        return message_to_dict(message)


def message_to_dict(message: Message) -> dict[str, Any]:
    """Convert a response message to a dict keyed by proto field names, defaults included."""
    return json_format.MessageToDict(
        message,
        preserving_proto_field_name=True,
        always_print_fields_with_no_presence=True,
    )


def _key_value_pairs(value: Any) -> Any:
    if isinstance(value, Mapping):
        return [{"key": str(k), "value": str(v)} for k, v in value.items()]
    return value


def _normalise_field(entry: Mapping[str, Any]) -> dict[str, Any]:
    normalised = dict(entry)
    for key in ("type_params", "index_params"):
        if key in normalised:
            normalised[key] = _key_value_pairs(normalised[key])
    return normalised


def _well_known_include() -> str:
    return str(resources.files("grpc_tools") / "_proto")


def compile_descriptor_set(files: list[Path]) -> descriptor_pb2.FileDescriptorSet:
    """
    🧬 Compile `.proto` files into a FileDescriptorSet, imports included.

    Each file's directory is added as an include path, followed by the
    well-known types shipped with grpcio-tools.

    Raises:
        ConfigError: If a file is missing or protoc reports an error.
    """
    for path in files:
        if not path.is_file():
            logger.error(f"🧬❌ Schema file not found: {path}")
            raise ConfigError(
                f"Schema file not found: {path}",
                hint="Check proto_file_path in the client configuration.",
            )

    files = [p.resolve() for p in files]
    include_dirs = list(dict.fromkeys(str(p.parent) for p in files))
    fd, out_path = tempfile.mkstemp(suffix=".pb")
    os.close(fd)
    try:
        args = [
            "grpc_tools.protoc",
            *(f"--proto_path={d}" for d in include_dirs),
            f"--proto_path={_well_known_include()}",
            "--include_imports",
            f"--descriptor_set_out={out_path}",
            *(str(p) for p in files),
        ]
        logger.debug(f"🧬🚀 Compiling schema files: {[str(p) for p in files]}")
        exit_code = protoc.main(args)
        if exit_code != 0:
            logger.error(f"🧬❌ protoc exited with code {exit_code} for {[str(p) for p in files]}")
            raise ConfigError(f"Failed to compile schema files {[str(p) for p in files]} (protoc exit code {exit_code})")
        return descriptor_pb2.FileDescriptorSet.FromString(Path(out_path).read_bytes())
    finally:
        Path(out_path).unlink(missing_ok=True)


def load_schema(paths: ProtoFilePaths | None = None) -> SchemaTypes:
    """
    🧬 Load the service and schema `.proto` files and resolve the client's types.

    Args:
        paths: Optional override paths; unset entries fall back to settings
            and then to the files bundled with the package.

    Returns:
        The resolved SchemaTypes.

    Raises:
        ConfigError: If a file is missing, fails to compile, or lacks a required type.
    """
    service_path, schema_path = (paths or ProtoFilePaths()).resolved()
    files = [schema_path, service_path] if schema_path != service_path else [service_path]
    descriptor_set = compile_descriptor_set(files)

    pool = descriptor_pool.DescriptorPool()
    try:
        for file_proto in descriptor_set.file:
            pool.AddSerializedFile(file_proto.SerializeToString())
    except (TypeError, ValueError) as e:
        logger.error("🧬❌ Failed to register schema descriptors", extra={"trace": traceback.format_exc()})
        raise ConfigError(f"Failed to register schema descriptors: {e}") from e

    collection_schema = _resolve_message(pool, COLLECTION_SCHEMA_TYPE)
    field_schema = _resolve_message(pool, FIELD_SCHEMA_TYPE)
    try:
        service = pool.FindServiceByName(SERVICE_NAME)
    except KeyError as e:
        logger.error(f"🧬❌ Service {SERVICE_NAME} not found in {service_path}")
        raise ConfigError(f"Service {SERVICE_NAME} is not defined in {service_path}") from e

    logger.info(f"🧬✅ Loaded schema: {len(service.methods)} RPC methods from {service_path.name}")
    return SchemaTypes(
        collection_schema=message_factory.GetMessageClass(collection_schema),
        field_schema=message_factory.GetMessageClass(field_schema),
        service=service,
        pool=pool,
        files=(service_path, schema_path),
    )


def _resolve_message(pool: descriptor_pool.DescriptorPool, full_name: str) -> Descriptor:
    try:
        return pool.FindMessageTypeByName(full_name)
    except KeyError as e:
        logger.error(f"🧬❌ Message type {full_name} not found in loaded schema")
        raise ConfigError(f"Message type {full_name} is not defined by the schema files") from e

# 🐍🏗️🔌
