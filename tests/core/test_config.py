# tests/core/test_config.py

import uuid

import pytest

from vectordb_rpc.config import (
    BUNDLED_SCHEMA_PROTO,
    BUNDLED_SERVICE_PROTO,
    CONFIG_SCHEMA,
    ClientConfig,
    PoolConfig,
    ProtoFilePaths,
    TLSConfig,
    VectorDBSettings,
    configure,
    fetch_env_variable,
    get_config,
    get_settings,
    validate_config_value,
)
from vectordb_rpc.exception import ConfigError


# Tests for fetch_env_variable
def test_fetch_env_variable_default_value(monkeypatch):
    """Test fetching a variable using its default value."""
    key = "VECTORDB_CONNECT_TIMEOUT_MS"
    monkeypatch.delenv(key, raising=False)
    assert fetch_env_variable(key, CONFIG_SCHEMA[key]) == 15000


def test_fetch_env_variable_type_conversion_int(monkeypatch):
    key = "VECTORDB_POOL_MAX_SIZE"
    monkeypatch.setenv(key, "3")
    assert fetch_env_variable(key, CONFIG_SCHEMA[key]) == 3


def test_fetch_env_variable_type_conversion_float(monkeypatch):
    key = "VECTORDB_POOL_IDLE_TIMEOUT"
    monkeypatch.setenv(key, "2.5")
    assert fetch_env_variable(key, CONFIG_SCHEMA[key]) == 2.5


def test_fetch_env_variable_none_default(monkeypatch):
    key = "VECTORDB_SERVICE_PROTO"
    monkeypatch.delenv(key, raising=False)
    assert fetch_env_variable(key, CONFIG_SCHEMA[key]) is None


def test_fetch_env_variable_invalid_int(monkeypatch):
    key = "VECTORDB_POOL_MAX_SIZE"
    monkeypatch.setenv(key, "lots")
    with pytest.raises(ValueError, match="Invalid format for VECTORDB_POOL_MAX_SIZE"):
        fetch_env_variable(key, CONFIG_SCHEMA[key])


def test_validate_config_value_missing_required():
    with pytest.raises(ValueError, match="Missing required configuration"):
        validate_config_value("VECTORDB_POOL_MAX_SIZE", None, CONFIG_SCHEMA["VECTORDB_POOL_MAX_SIZE"])


def test_get_config_reads_environment(monkeypatch):
    monkeypatch.setenv("VECTORDB_DEFAULT_PORT", "443")
    config = get_config()
    assert config["VECTORDB_DEFAULT_PORT"] == 443
    assert set(config) == set(CONFIG_SCHEMA)


# Tests for VectorDBSettings
def test_settings_singleton():
    assert VectorDBSettings.instance() is get_settings()


def test_settings_set_unknown_key():
    with pytest.raises(KeyError):
        get_settings().set("VECTORDB_NOT_A_SETTING", 1)


def test_configure_overrides_defaults(tmp_path):
    configure(connect_timeout="30s", pool_max_size=4, pool_idle_timeout=60, service_proto=tmp_path / "svc.proto")
    settings = get_settings()
    assert settings.connect_timeout_ms() == 30000
    assert settings.pool_max_size() == 4
    assert settings.pool_idle_timeout() == 60.0
    assert settings.service_proto() == str(tmp_path / "svc.proto")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"connect_timeout": "soon"},
        {"connect_timeout": -5},
        {"pool_max_size": 0},
    ],
)
def test_configure_rejects_invalid_values(kwargs):
    with pytest.raises(ConfigError):
        configure(**kwargs)


# Tests for ClientConfig
def test_client_config_requires_address():
    with pytest.raises(ConfigError, match="address is required"):
        ClientConfig()
    with pytest.raises(ConfigError):
        ClientConfig(address="   ")


def test_client_config_defaults():
    config = ClientConfig(address="localhost:19530")
    assert config.ssl is False
    assert config.username == ""
    assert config.password == ""
    assert config.tls is None
    assert config.channel_options == {}
    assert config.timeout == 15000
    assert config.connect_timeout == 15.0
    assert config.pool.max_size == 10
    assert config.pool.idle_timeout is None
    uuid.UUID(config.id)


def test_client_config_ids_are_unique():
    assert ClientConfig(address="a:1").id != ClientConfig(address="a:1").id
    assert ClientConfig(address="a:1", id="fixed").id == "fixed"


def test_client_config_none_credentials_become_empty():
    config = ClientConfig(address="a:1", username=None, password=None)
    assert config.username == ""
    assert config.password == ""


@pytest.mark.parametrize(
    ("timeout", "expected"),
    [
        ("500ms", 500),
        ("15s", 15000),
        ("1m", 60000),
        (2500, 2500),
    ],
)
def test_client_config_timeout_tokens(timeout, expected):
    assert ClientConfig(address="a:1", timeout=timeout).timeout == expected


def test_client_config_invalid_timeout():
    with pytest.raises(ConfigError, match="Invalid timeout"):
        ClientConfig(address="a:1", timeout="eventually")


def test_client_config_timeout_follows_settings():
    configure(connect_timeout="2s")
    assert ClientConfig(address="a:1").timeout == 2000


def test_client_config_is_immutable():
    config = ClientConfig(address="a:1")
    with pytest.raises(AttributeError):
        config.address = "b:2"


def test_client_config_converts_nested_mappings():
    config = ClientConfig(
        address="a:1",
        tls={"root_cert_path": "ca.pem", "server_name": "db.local"},
        proto_file_path={"service": "svc.proto"},
        pool={"max_size": 2},
    )
    assert isinstance(config.tls, TLSConfig)
    assert config.tls.server_name == "db.local"
    assert config.tls.verify_options == {}
    assert isinstance(config.proto_file_path, ProtoFilePaths)
    assert config.pool == PoolConfig(max_size=2)


def test_pool_config_rejects_non_positive_size():
    with pytest.raises(ConfigError):
        PoolConfig(max_size=0)


def test_from_mapping_rejects_unknown_keys():
    with pytest.raises(ConfigError, match="Unknown client configuration keys: colour"):
        ClientConfig.from_mapping({"address": "a:1", "colour": "blue"})


def test_from_value_forms():
    config = ClientConfig(address="a:1")
    assert ClientConfig.from_value(config) is config

    from_address = ClientConfig.from_value("b:2", ssl=True, username="u", password="p", channel_options={"x": 1})
    assert from_address.address == "b:2"
    assert from_address.ssl is True
    assert from_address.username == "u"
    assert from_address.channel_options == {"x": 1}

    assert ClientConfig.from_value({"address": "c:3"}).address == "c:3"


def test_from_value_without_address():
    with pytest.raises(ConfigError):
        ClientConfig.from_value(None)
    with pytest.raises(ConfigError):
        ClientConfig.from_value(42)


# Tests for ProtoFilePaths
def test_proto_paths_resolution_order(monkeypatch, tmp_path):
    assert ProtoFilePaths().resolved() == (BUNDLED_SERVICE_PROTO, BUNDLED_SCHEMA_PROTO)

    monkeypatch.setenv("VECTORDB_SCHEMA_PROTO", str(tmp_path / "env_schema.proto"))
    VectorDBSettings._instance = None
    service, schema = ProtoFilePaths(service=str(tmp_path / "svc.proto")).resolved()
    assert service == tmp_path / "svc.proto"
    assert schema == tmp_path / "env_schema.proto"
