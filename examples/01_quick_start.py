#!/usr/bin/env python3
"""
Quick Start Example - Connect to a VectorDB server and manage a collection.

Expects a server at localhost:19530 (override with VECTORDB_EXAMPLE_ADDRESS).
"""

import asyncio

from example_utils import configure_for_example, example_address

configure_for_example()

from vectordb_rpc import ConnectionStatus, VectorDBError, create_client  # noqa: E402
from pyvider.telemetry import logger  # noqa: E402

FIELDS = [
    {"name": "book_id", "data_type": "Int64", "is_primary_key": True},
    {"name": "embedding", "data_type": "FloatVector", "type_params": {"dim": 8}},
]


async def main():
    """Run the quick start example."""
    logger.info("🚀 Starting vectordb-rpc Quick Start Example")

    try:
        client = create_client(example_address(), username="root", password="Milvus")
    except VectorDBError as e:
        logger.error(f"❌ Could not build client: {e}")
        return

    async with client:
        if client.status is not ConnectionStatus.CONNECTED:
            logger.warning(f"⚠️ Handshake outcome: {client.status} ({client.state.last_error})")

        logger.info(f"🤝 Server info: {client.server_info}")

        try:
            status = await client.create_collection("quick_start_books", FIELDS, description="example")
            logger.info(f"🗂️ create_collection -> {status['error_code']}")

            listed = await client.show_collections()
            logger.info(f"🗂️ Collections: {listed['collection_names']}")

            described = await client.describe_collection("quick_start_books")
            logger.info(f"🗂️ Fields: {[f['name'] for f in described['schema']['fields']]}")

            await client.drop_collection("quick_start_books")
        except VectorDBError as e:
            logger.error(f"❌ {type(e).__name__}: {e}")
            if e.hint:
                logger.error(f"   Hint: {e.hint}")

        logger.info(f"📊 Pool metrics: {client.pool.metrics}")

    logger.info("✅ Quick start completed")


if __name__ == "__main__":
    asyncio.run(main())

# 🐍🚀
