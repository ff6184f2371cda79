# tests/client/test_vectordb_client.py

import asyncio
import base64

import pytest

from vectordb_rpc import (
    CallContext,
    ClientConfig,
    ConfigError,
    ConnectionStatus,
    ConnectivityError,
    CredentialsError,
    IncompatibilityError,
    ProtocolError,
    SecurityMode,
    VectorDBClient,
    create_client,
)
from vectordb_rpc.client.base import default_metadata
from tests.fixtures.client import client_for


# Construction
def test_create_client_requires_address():
    with pytest.raises(ConfigError):
        create_client("")
    with pytest.raises(ConfigError):
        create_client({"ssl": True})


def test_create_client_from_address():
    client = create_client("https://db.example.com", username="root", password="secret")
    assert isinstance(client, VectorDBClient)
    assert client.target == "db.example.com:19530"
    assert client.credentials.mode is SecurityMode.ONE_WAY
    assert client.status is ConnectionStatus.NOT_CONNECTED
    assert client.channel_options["grpc.keepalive_time_ms"] == 10000


def test_create_client_merges_channel_options():
    client = create_client(
        {
            "address": "db.example.com:443",
            "ssl": True,
            "tls": {"server_name": "db.internal"},
            "channel_options": {"grpc.keepalive_time_ms": 30000},
        }
    )
    assert client.channel_options["grpc.keepalive_time_ms"] == 30000
    assert client.channel_options["grpc.ssl_target_name_override"] == "db.internal"
    assert client.channel_options["grpc.max_send_message_length"] == -1


def test_build_with_two_way_tls(tls_material):
    config = ClientConfig(
        address="localhost:19530",
        tls={
            "root_cert_path": str(tls_material.ca_cert_path),
            "private_key_path": str(tls_material.client_key_path),
            "cert_chain_path": str(tls_material.client_cert_path),
        },
    )
    client = VectorDBClient.build(config)
    assert client.credentials.mode is SecurityMode.TWO_WAY


def test_build_fails_on_missing_certificate(tmp_path):
    with pytest.raises(CredentialsError):
        create_client({"address": "localhost", "tls": {"root_cert_path": str(tmp_path / "ca.pem")}})


def test_build_fails_on_missing_schema(tmp_path):
    with pytest.raises(ConfigError, match="Schema file not found"):
        create_client({"address": "localhost", "proto_file_path": {"service": str(tmp_path / "none.proto")}})


def test_pool_is_created_lazily():
    client = create_client({"address": "localhost", "pool": {"max_size": 3}})
    assert client._pool is None
    assert client.pool.max_size == 3
    assert client.pool is client.pool


# Metadata
def test_default_metadata_basic_auth():
    config = ClientConfig(address="a:1", username="root", password="secret", database="books", id="c-1")
    assert default_metadata(config) == {
        "authorization": base64.b64encode(b"root:secret").decode(),
        "dbname": "books",
        "client-id": "c-1",
    }


def test_default_metadata_token_wins():
    config = ClientConfig(address="a:1", username="root", password="secret", token="root:secret-token")
    assert default_metadata(config)["authorization"] == "root:secret-token"


def test_default_metadata_without_credentials():
    assert "authorization" not in default_metadata(ClientConfig(address="a:1"))


def test_set_metadata_and_use_database():
    client = create_client("localhost")
    client.set_metadata({"X-Trace": "abc"})
    client.use_database("library")
    assert client.metadata["x-trace"] == "abc"
    assert client.metadata["dbname"] == "library"

    client.set_metadata({"x-trace": ""})
    assert "x-trace" not in client.metadata

    with pytest.raises(ValueError):
        client.use_database("")


def test_call_context_layering():
    base = CallContext(metadata={"a": "1", "b": "2"}, timeout=5)
    override = CallContext(metadata={"B": "3"})
    merged = override.over(base)
    assert merged.metadata == {"a": "1", "b": "3"}
    assert merged.timeout == 5


# Handshake
@pytest.mark.asyncio
async def test_connect_sends_client_info(connected_client, vectordb_server):
    assert await connected_client.connect() is ConnectionStatus.CONNECTED

    (method, request, metadata), = vectordb_server.calls_to("Connect")
    info = request["client_info"]
    assert info["sdk_type"] == "python"
    assert info["reserved"] == {"client_id": connected_client.config.id}
    assert info["user"] == "root"
    assert info["host"]
    assert metadata["authorization"] == base64.b64encode(b"root:Milvus").decode()
    assert metadata["client-id"] == connected_client.config.id


@pytest.mark.asyncio
async def test_connect_records_server_info_and_identifier(connected_client):
    await connected_client.connect()
    assert connected_client.server_info["build_tags"] == "test"
    assert connected_client.metadata["identifier"] == "42"


@pytest.mark.asyncio
async def test_identifier_is_sent_after_connect(connected_client, vectordb_server):
    await connected_client.connect()
    await connected_client.call("ShowCollections")
    _, _, metadata = vectordb_server.calls_to("ShowCollections")[-1]
    assert metadata["identifier"] == "42"


@pytest.mark.asyncio
async def test_zero_identifier_is_not_sent(vectordb_server):
    vectordb_server.identifier = 0
    client = client_for(vectordb_server)
    try:
        await client.connect()
        assert "identifier" not in client.metadata
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_legacy_server_is_unimplemented(legacy_client):
    assert await legacy_client.connect() is ConnectionStatus.UNIMPLEMENTED
    with pytest.raises(IncompatibilityError):
        await legacy_client.check_compatibility()
    assert await legacy_client.check_compatibility(fallback=lambda: "fallback") == "fallback"


@pytest.mark.asyncio
async def test_legacy_server_still_serves_other_calls(legacy_client, legacy_server):
    legacy_server.collections["books"] = b""
    await legacy_client.connect()
    response = await legacy_client.call("HasCollection", {"collection_name": "books"})
    assert response.value is True


@pytest.mark.asyncio
async def test_rejected_handshake_is_failed(vectordb_server):
    vectordb_server.connect_error_code = "NotReadyServe"
    client = client_for(vectordb_server)
    try:
        assert await client.connect() is ConnectionStatus.FAILED
        assert isinstance(client.state.last_error, ConnectivityError)
        assert "not ready" in str(client.state.last_error)
        with pytest.raises(ConnectivityError):
            await client.check_compatibility()
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_unreachable_server_fails_within_timeout():
    client = create_client({"address": "127.0.0.1:1", "timeout": "300ms"})
    try:
        status = await asyncio.wait_for(client.connect(), timeout=5)
        assert status is ConnectionStatus.FAILED
        assert isinstance(client.state.last_error, ConnectivityError)
        with pytest.raises(ConnectivityError):
            await client.check_compatibility()
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_calls_wait_for_in_flight_handshake(vectordb_server):
    vectordb_server.connect_delay = 0.1
    client = client_for(vectordb_server)
    try:
        connecting = asyncio.create_task(client.connect())
        await asyncio.sleep(0.02)
        assert client.status is ConnectionStatus.CONNECTING

        await client.call("ShowCollections")
        assert client.status is ConnectionStatus.CONNECTED
        _, _, metadata = vectordb_server.calls_to("ShowCollections")[-1]
        assert metadata["identifier"] == "42"
        await connecting
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_concurrent_checks_share_one_handshake(connected_client, vectordb_server):
    await asyncio.gather(*(connected_client.check_compatibility() for _ in range(10)))
    assert len(vectordb_server.calls_to("Connect")) == 1


# Calls
@pytest.mark.asyncio
async def test_call_with_message_and_dict(connected_client, vectordb_server):
    vectordb_server.collections["books"] = b""
    request_class = connected_client.transport.method("HasCollection").request_class

    by_dict = await connected_client.call("HasCollection", {"collection_name": "books"})
    by_message = await connected_client.call("HasCollection", request_class(collection_name="films"))
    assert by_dict.value is True
    assert by_message.value is False


@pytest.mark.asyncio
async def test_call_context_overrides_metadata(connected_client, vectordb_server):
    await connected_client.call("ShowCollections", context=CallContext(metadata={"dbname": "other"}), timeout=5)
    _, _, metadata = vectordb_server.calls_to("ShowCollections")[-1]
    assert metadata["dbname"] == "other"
    assert metadata["client-id"] == connected_client.config.id


@pytest.mark.asyncio
async def test_bad_request_fails_before_leasing(connected_client):
    with pytest.raises(ProtocolError):
        await connected_client.call("NoSuchMethod")
    with pytest.raises(ProtocolError):
        await connected_client.call("HasCollection", {"unknown_field": 1})
    assert connected_client.pool.metrics.creates == 0


@pytest.mark.asyncio
async def test_failed_call_discards_channel(legacy_client):
    with pytest.raises(IncompatibilityError):
        await legacy_client.call("Connect")
    metrics = legacy_client.pool.metrics
    assert metrics.discards == 1
    assert metrics.idle == 0


@pytest.mark.asyncio
async def test_successful_calls_reuse_channels(connected_client):
    for _ in range(5):
        await connected_client.call("ShowCollections")
    metrics = connected_client.pool.metrics
    assert metrics.creates == 1
    assert metrics.reuses == 4


@pytest.mark.asyncio
async def test_concurrent_calls_respect_pool_size(vectordb_server):
    client = client_for(vectordb_server, pool={"max_size": 2})
    try:
        await asyncio.gather(*(client.call("ShowCollections") for _ in range(12)))
        assert client.pool.metrics.creates <= 2
        assert len(vectordb_server.calls_to("ShowCollections")) == 12
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_close_and_context_manager(vectordb_server):
    async with client_for(vectordb_server) as client:
        assert client.status is ConnectionStatus.CONNECTED
        await client.call("ShowCollections")

    with pytest.raises(ConnectivityError, match="closed"):
        await client.call("ShowCollections")
    await client.close()
