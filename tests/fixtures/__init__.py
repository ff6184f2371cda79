# tests/fixtures/__init__.py

from tests.fixtures.crypto import (
    TLSMaterial,
    garbage_pem_path,
    tls_material,
)
from tests.fixtures.pool import (
    FakeChannel,
    FakeChannelFactory,
    fake_factory,
)
from tests.fixtures.server import (
    FakeVectorDBServer,
    legacy_server,
    schema_types,
    vectordb_server,
)
from tests.fixtures.client import (
    client_for,
    connected_client,
    legacy_client,
)

__all__ = [
    # crypto
    "TLSMaterial",
    "garbage_pem_path",
    "tls_material",
    # pool
    "FakeChannel",
    "FakeChannelFactory",
    "fake_factory",
    # server
    "FakeVectorDBServer",
    "legacy_server",
    "schema_types",
    "vectordb_server",
    # client
    "client_for",
    "connected_client",
    "legacy_client",
]
