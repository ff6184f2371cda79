#!/usr/bin/env python3
"""
Error Handling - How configuration, connectivity and compatibility failures surface.
"""

import asyncio

from example_utils import configure_for_example, example_address

configure_for_example()

from vectordb_rpc import (  # noqa: E402
    ConfigError,
    ConnectivityError,
    IncompatibilityError,
    create_client,
)
from pyvider.telemetry import logger  # noqa: E402


async def configuration_errors():
    """Configuration problems raise while the client is built, before any I/O."""
    logger.info("⚙️ Configuration errors")
    for config in ({"address": ""}, {"address": "localhost", "timeout": "soon"}):
        try:
            create_client(config)
        except ConfigError as e:
            logger.info(f"🔍 Caught ConfigError: {e}")


async def unreachable_server():
    """An unreachable server leaves the client FAILED; gated operations re-raise the cause."""
    logger.info("🔌 Unreachable server")
    client = create_client({"address": "127.0.0.1:1", "timeout": "500ms"})
    try:
        status = await client.connect()
        logger.info(f"🤝 Handshake status: {status}")
        await client.list_resource_groups()
    except ConnectivityError as e:
        logger.info(f"🔍 Caught ConnectivityError: {e}")
    finally:
        await client.close()


async def graceful_degradation():
    """Fall back when the server predates a capability."""
    logger.info("🛡️ Graceful degradation")

    async with create_client(example_address()) as client:
        try:
            groups = await client.check_compatibility(
                fallback=lambda: {"resource_groups": ["__default_resource_group"]}
            )
            if groups is None:
                groups = await client.list_resource_groups()
            logger.info(f"✅ Resource groups: {groups['resource_groups']}")
        except IncompatibilityError as e:
            logger.warning(f"⚠️ {e}")
        except ConnectivityError as e:
            logger.warning(f"⚠️ Server unavailable: {e}")


async def main():
    """Run error handling examples."""
    logger.info("🚀 Error Handling Examples")

    await configuration_errors()
    await unreachable_server()
    await graceful_degradation()

    logger.info("✅ All error handling examples completed")


if __name__ == "__main__":
    asyncio.run(main())

# 🐍🚀
