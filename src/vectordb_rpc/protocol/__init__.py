"""
Protocol package: runtime loading of the `.proto` schema files and dynamic
invocation of the service they define.
"""

from vectordb_rpc.protocol.schema import (
    COLLECTION_SCHEMA_TYPE,
    FIELD_SCHEMA_TYPE,
    SERVICE_NAME,
    SchemaTypes,
    load_schema,
    message_to_dict,
)
from vectordb_rpc.protocol.transport import MethodSpec, ServiceTransport, translate_rpc_error

__all__ = [
    "COLLECTION_SCHEMA_TYPE",
    "FIELD_SCHEMA_TYPE",
    "SERVICE_NAME",
    "MethodSpec",
    "SchemaTypes",
    "ServiceTransport",
    "load_schema",
    "message_to_dict",
    "translate_rpc_error",
]

# 🐍🏗️🔌
