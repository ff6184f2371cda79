"""
VectorDB RPC Package.

This package exports the main classes and exceptions of the VectorDB RPC
client, making them available for direct import from `vectordb_rpc`.
"""

from vectordb_rpc.client import (
    CallContext,
    ConnectionStatus,
    VectorDBClient,
)
from vectordb_rpc.config import (
    ClientConfig,
    PoolConfig,
    ProtoFilePaths,
    TLSConfig,
    VectorDBSettings,
    configure,
    get_settings,
)
from vectordb_rpc.crypto import SecurityMode
from vectordb_rpc.exception import (
    ConfigError,
    ConnectivityError,
    CredentialsError,
    IncompatibilityError,
    ProtocolError,
    VectorDBError,
)
from vectordb_rpc.factories import create_client
from vectordb_rpc.pool import ChannelPool, PoolMetrics
from vectordb_rpc.protocol import message_to_dict

__all__ = [
    "CallContext",
    "ChannelPool",
    "ClientConfig",
    "ConfigError",
    "ConnectionStatus",
    "ConnectivityError",
    "CredentialsError",
    "IncompatibilityError",
    "PoolConfig",
    "PoolMetrics",
    "ProtoFilePaths",
    "ProtocolError",
    "SecurityMode",
    "TLSConfig",
    "VectorDBClient",
    "VectorDBError",
    "VectorDBSettings",
    "configure",
    "create_client",
    "get_settings",
    "message_to_dict",
]

# 🐍🏗️🔌
