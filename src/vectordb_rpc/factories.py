"""Factory Functions for the VectorDB RPC client
============================================

This module provides the primary entry point for creating clients. It accepts
either a complete configuration or a bare address plus a few common options,
and returns a client whose credentials and schema are already loaded.
"""

from collections.abc import Mapping
from typing import Any

from pyvider.telemetry import logger

from vectordb_rpc.client import VectorDBClient
from vectordb_rpc.config import ClientConfig


def create_client(
    config_or_address: ClientConfig | Mapping[str, Any] | str | None,
    ssl: bool | None = None,
    username: str | None = None,
    password: str | None = None,
    channel_options: Mapping[str, Any] | None = None,
) -> VectorDBClient:
    """
    Create a new client with sensible defaults.

    Args:
        config_or_address: A ClientConfig, a mapping of its fields, or an
            address such as "localhost:19530" or "https://db.example.com"
        ssl: Use one-way TLS even without the https:// scheme (address form only)
        username: Username for basic authentication (address form only)
        password: Password for basic authentication (address form only)
        channel_options: gRPC channel arguments (address form only)

    Returns:
        A ready VectorDBClient. No network traffic happens until the first
        call or `connect()`.

    Raises:
        ConfigError: If the address is missing, a value is invalid, or TLS
            material or schema files cannot be loaded.
    """
    logger.debug(f"🧰🚀 Creating client from {type(config_or_address).__name__}")
    config = ClientConfig.from_value(
        config_or_address,
        ssl=ssl,
        username=username,
        password=password,
        channel_options=channel_options,
    )
    return VectorDBClient.build(config)

# 🐍🏗️🔌
