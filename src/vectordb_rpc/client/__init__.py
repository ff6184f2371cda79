"""
Client package: the VectorDB client, its connection state machine and the
compatibility gate.
"""

from vectordb_rpc.client.base import CallContext, VectorDBClient, default_metadata
from vectordb_rpc.client.compatibility import DEFAULT_INCOMPATIBLE_MESSAGE, require_capability
from vectordb_rpc.client.connection import ConnectionState, ConnectionStatus, SingleFlight

__all__ = [
    "DEFAULT_INCOMPATIBLE_MESSAGE",
    "CallContext",
    "ConnectionState",
    "ConnectionStatus",
    "SingleFlight",
    "VectorDBClient",
    "default_metadata",
    "require_capability",
]

# 🐍🏗️🔌
