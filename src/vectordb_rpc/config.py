"""Configuration management for the VectorDB RPC client.

This module provides two layers of configuration:

1. Process-wide settings read from environment variables, described by a
   schema with defaults, types and validation, and exposed through the
   `VectorDBSettings` singleton. These provide defaults such as the connect
   timeout, pool capacity and schema file overrides.
2. Per-client configuration objects (`ClientConfig`, `TLSConfig`,
   `PoolConfig`, `ProtoFilePaths`). These are immutable once constructed and
   validated without performing any file or network I/O.

Usage:
    # Read a setting
    from vectordb_rpc.config import get_settings
    timeout_ms = get_settings().connect_timeout_ms()

    # Override settings programmatically
    from vectordb_rpc import configure
    configure(connect_timeout="30s", pool_max_size=4)

    # Describe a client
    from vectordb_rpc import ClientConfig
    config = ClientConfig(address="https://db.example.com:19530", username="root", password="secret")
"""

import os
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from attrs import Factory, converters, define, field, fields

from pyvider.telemetry import logger

from vectordb_rpc.exception import ConfigError
from vectordb_rpc.utils import parse_time_token

BUNDLED_PROTO_DIR = Path(__file__).resolve().parent / "protocol" / "proto"
BUNDLED_SERVICE_PROTO = BUNDLED_PROTO_DIR / "milvus.proto"
BUNDLED_SCHEMA_PROTO = BUNDLED_PROTO_DIR / "schema.proto"

DEFAULT_CONNECT_TIMEOUT_MS = 15 * 1000
DEFAULT_POOL_MAX_SIZE = 10
DEFAULT_PORT = 19530

# Configuration Schema: environment variables, defaults, types and descriptions.
CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    "VECTORDB_CONNECT_TIMEOUT_MS": {
        "required": True,
        "default": DEFAULT_CONNECT_TIMEOUT_MS,
        "description": "Default timeout in milliseconds for the connection handshake.",
        "type": "int",
    },
    "VECTORDB_POOL_MAX_SIZE": {
        "required": True,
        "default": DEFAULT_POOL_MAX_SIZE,
        "description": "Maximum number of channels a client pool keeps alive.",
        "type": "int",
    },
    "VECTORDB_POOL_IDLE_TIMEOUT": {
        "required": False,
        "default": None,
        "description": "Seconds after which an idle channel is closed instead of reused.",
        "type": "float",
    },
    "VECTORDB_SERVICE_PROTO": {
        "required": False,
        "default": None,
        "description": "Path to the service .proto file; the bundled file is used when unset.",
        "type": "str",
    },
    "VECTORDB_SCHEMA_PROTO": {
        "required": False,
        "default": None,
        "description": "Path to the data-type schema .proto file; the bundled file is used when unset.",
        "type": "str",
    },
    "VECTORDB_DEFAULT_PORT": {
        "required": True,
        "default": DEFAULT_PORT,
        "description": "Port appended to addresses that do not name one.",
        "type": "int",
    },
}


def fetch_env_variable(key: str, meta: dict[str, Any]) -> Any:
    """
    Fetches and converts an environment variable based on schema metadata.

    Args:
        key: The configuration key to fetch
        meta: Metadata about the configuration value

    Returns:
        The converted configuration value, or None when unset without default

    Raises:
        ValueError: If type conversion fails
    """
    value = os.getenv(key, meta["default"])

    if value is None:
        return None

    try:
        match meta["type"]:
            case "str":
                return value

            case "int":
                if isinstance(value, int):
                    return value
                return int(value)

            case "float":
                if isinstance(value, float):
                    return value
                return float(value)

            case _:
                logger.warning(f"⚙️⚠️ Unknown type {meta['type']} for {key}, returning raw value")
                return value

    except (ValueError, TypeError) as e:
        logger.error(f"⚙️❌ Type conversion failed for {key}", extra={"error": str(e)})
        raise ValueError(f"Invalid format for {key}. Expected {meta['type']}, got: {value}") from e


def validate_config_value(key: str, value: Any, meta: dict[str, Any]) -> bool:
    """
    Validates a configuration value against schema requirements.

    Raises:
        ValueError: For missing required values
    """
    if meta.get("required", False) and value is None:
        logger.error(f"⚙️❌ Missing required configuration: {key}")
        raise ValueError(f"Missing required configuration: {key}. {meta['description']}")

    return True


def get_config() -> dict[str, Any]:
    """
    Retrieves all settings from the environment, applying defaults and validation.

    Raises:
        ValueError: For invalid configuration
    """
    config = {}
    logger.debug("⚙️🔄 Building settings from environment and defaults")

    for key, meta in CONFIG_SCHEMA.items():
        try:
            value = fetch_env_variable(key, meta)
            validate_config_value(key, value, meta)
            config[key] = value
        except ValueError as e:
            logger.error(f"⚙️❌ Configuration error for {key}", extra={"error": str(e)})
            raise

    logger.debug(f"⚙️✅ Settings complete with {len(config)} values")
    return config


class VectorDBSettings:
    """
    Process-wide settings for the VectorDB RPC client.

    Singleton holding defaults loaded from the environment on first use.
    Values can be changed with `set` or the `configure` helper; clients
    read them once, when their configuration is constructed.

    Attributes:
        config: Dictionary of setting values
    """

    _instance: "VectorDBSettings | None" = None

    def __init__(self) -> None:
        """Initialize the settings from environment and defaults."""
        self.config: dict[str, Any] = {}
        try:
            self.config = get_config()
            logger.debug("⚙️✅ VectorDBSettings initialized with environment variables")
        except Exception as e:
            logger.error("⚙️❌ Error initializing VectorDBSettings", extra={"error": str(e)})
            raise

    @classmethod
    def instance(cls) -> "VectorDBSettings":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
            logger.debug("⚙️🔄 Created new VectorDBSettings singleton instance")
        return cls._instance

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a setting, or `default` when it is not present."""
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set a setting dynamically.

        Raises:
            KeyError: If key is not in CONFIG_SCHEMA
        """
        if key not in CONFIG_SCHEMA:
            logger.warning(f"⚙️⚠️ Setting unknown config key: {key}")
            raise KeyError(f"Unknown configuration key: {key}")

        validate_config_value(key, value, CONFIG_SCHEMA[key])
        logger.debug(f"⚙️📝 Updating config {key} -> {value}")
        self.config[key] = value

    def connect_timeout_ms(self) -> int:
        return cast(int, self.get("VECTORDB_CONNECT_TIMEOUT_MS"))

    def pool_max_size(self) -> int:
        return cast(int, self.get("VECTORDB_POOL_MAX_SIZE"))

    def pool_idle_timeout(self) -> float | None:
        return cast(float | None, self.get("VECTORDB_POOL_IDLE_TIMEOUT"))

    def service_proto(self) -> str | None:
        return cast(str | None, self.get("VECTORDB_SERVICE_PROTO"))

    def schema_proto(self) -> str | None:
        return cast(str | None, self.get("VECTORDB_SCHEMA_PROTO"))

    def default_port(self) -> int:
        return cast(int, self.get("VECTORDB_DEFAULT_PORT"))


def get_settings() -> VectorDBSettings:
    """Return the process-wide settings singleton."""
    return VectorDBSettings.instance()


def configure(
    connect_timeout: str | int | None = None,
    pool_max_size: int | None = None,
    pool_idle_timeout: float | None = None,
    service_proto: str | Path | None = None,
    schema_proto: str | Path | None = None,
    default_port: int | None = None,
) -> None:
    """
    Override process-wide defaults programmatically.

    Only arguments that are not None are applied. Clients constructed after
    this call pick up the new values; existing clients keep theirs.

    Args:
        connect_timeout: Duration token ("30s") or milliseconds
        pool_max_size: Maximum channels per client pool
        pool_idle_timeout: Idle eviction threshold in seconds
        service_proto: Path overriding the bundled service .proto
        schema_proto: Path overriding the bundled schema .proto
        default_port: Port appended to addresses without one

    Raises:
        ConfigError: For invalid values
    """
    logger.debug("⚙️🔄 Running simplified configuration")
    settings = get_settings()

    try:
        if connect_timeout is not None:
            settings.set("VECTORDB_CONNECT_TIMEOUT_MS", _timeout_to_ms(connect_timeout))
        if pool_max_size is not None:
            if pool_max_size < 1:
                raise ValueError(f"pool_max_size must be at least 1, got {pool_max_size}")
            settings.set("VECTORDB_POOL_MAX_SIZE", pool_max_size)
        if pool_idle_timeout is not None:
            settings.set("VECTORDB_POOL_IDLE_TIMEOUT", float(pool_idle_timeout))
        if service_proto is not None:
            settings.set("VECTORDB_SERVICE_PROTO", str(service_proto))
        if schema_proto is not None:
            settings.set("VECTORDB_SCHEMA_PROTO", str(schema_proto))
        if default_port is not None:
            settings.set("VECTORDB_DEFAULT_PORT", default_port)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    logger.debug("⚙️✅ Configuration completed successfully")


# =============================================================================
# Per-client configuration
# =============================================================================

def _timeout_to_ms(value: str | int | float) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid timeout: {value!r}")
    if isinstance(value, str):
        return parse_time_token(value)
    if value <= 0:
        raise ValueError(f"Timeout must be positive, got {value}")
    return int(value)


def _resolve_timeout(value: str | int | float | None) -> int:
    """Converter: duration token or milliseconds to milliseconds, None to the default."""
    if value is None:
        return get_settings().connect_timeout_ms()
    try:
        return _timeout_to_ms(value)
    except (ValueError, TypeError) as e:
        raise ConfigError(
            f"Invalid timeout {value!r}",
            hint="Use milliseconds or a duration token such as '500ms', '15s' or '1m'.",
        ) from e


def _require_address(instance: Any, attribute: Any, value: Any) -> None:
    if not isinstance(value, str) or not value.strip():
        logger.error("⚙️❌ ClientConfig created without an address")
        raise ConfigError(
            "VectorDB address is required.",
            hint="Pass an address such as 'localhost:19530' or 'https://host:443'.",
        )


def _new_client_id(value: str | None) -> str:
    return value or str(uuid.uuid4())


@define(frozen=True, kw_only=True)
class TLSConfig:
    """
    TLS material for a client.

    A `root_cert_path` switches the client to two-way TLS. The private key and
    certificate chain are optional even then; absent files are simply not sent.
    `verify_options` holds extra gRPC channel arguments applied to TLS channels.
    """

    root_cert_path: str | None = None
    private_key_path: str | None = None
    cert_chain_path: str | None = None
    server_name: str | None = None
    verify_options: dict[str, Any] = field(
        factory=dict, converter=converters.default_if_none(factory=dict)
    )


@define(frozen=True, kw_only=True)
class ProtoFilePaths:
    """Override paths for the service and schema .proto files."""

    service: str | None = None
    schema: str | None = None

    def resolved(self) -> tuple[Path, Path]:
        """Return (service, schema) paths: explicit override, then settings, then bundled file."""
        settings = get_settings()
        service = self.service or settings.service_proto() or BUNDLED_SERVICE_PROTO
        schema = self.schema or settings.schema_proto() or BUNDLED_SCHEMA_PROTO
        return Path(service), Path(schema)


def _positive_size(instance: Any, attribute: Any, value: int) -> None:
    if not isinstance(value, int) or value < 1:
        raise ConfigError(f"{attribute.name} must be a positive integer, got {value!r}")


@define(frozen=True, kw_only=True)
class PoolConfig:
    """Channel pool sizing for one client."""

    max_size: int = field(
        default=Factory(lambda: get_settings().pool_max_size()), validator=_positive_size
    )
    idle_timeout: float | None = field(default=Factory(lambda: get_settings().pool_idle_timeout()))


def _to_tls(value: TLSConfig | Mapping[str, Any] | None) -> TLSConfig | None:
    if value is None or isinstance(value, TLSConfig):
        return value
    return TLSConfig(**value)


def _to_proto_paths(value: ProtoFilePaths | Mapping[str, Any] | None) -> ProtoFilePaths | None:
    if value is None or isinstance(value, ProtoFilePaths):
        return value
    return ProtoFilePaths(**value)


def _to_pool(value: PoolConfig | Mapping[str, Any] | None) -> PoolConfig:
    if value is None:
        return PoolConfig()
    if isinstance(value, PoolConfig):
        return value
    return PoolConfig(**value)


@define(frozen=True, kw_only=True)
class ClientConfig:
    """
    Immutable description of one client.

    Construction validates the configuration without touching the file
    system or the network: a missing address or malformed timeout raises
    `ConfigError` immediately. Certificate and schema files are only read
    when the client is built.

    Attributes:
        address: Service address, optionally with http:// or https:// scheme
        ssl: Request one-way TLS even without the https:// scheme
        username: Username for basic authentication ("" when unused)
        password: Password for basic authentication ("" when unused)
        token: Token sent instead of username/password when set
        database: Database name sent with every call when set
        tls: TLS material; a root certificate switches to two-way TLS
        channel_options: gRPC channel arguments layered over the defaults
        id: Client identifier, a fresh UUID unless given
        timeout: Connect timeout in milliseconds (tokens such as "15s" accepted)
        proto_file_path: Override paths for the two .proto files
        pool: Channel pool sizing
    """

    address: str = field(default="", validator=_require_address)
    ssl: bool = field(default=False, converter=bool)
    username: str = field(default="", converter=converters.default_if_none(""))
    password: str = field(default="", converter=converters.default_if_none(""))
    token: str = field(default="", converter=converters.default_if_none(""))
    database: str = field(default="", converter=converters.default_if_none(""))
    tls: TLSConfig | None = field(default=None, converter=_to_tls)
    channel_options: dict[str, Any] = field(
        factory=dict, converter=converters.default_if_none(factory=dict)
    )
    id: str = field(default=None, converter=_new_client_id)
    timeout: int = field(default=None, converter=_resolve_timeout)
    proto_file_path: ProtoFilePaths | None = field(default=None, converter=_to_proto_paths)
    pool: PoolConfig = field(default=None, converter=_to_pool)

    @property
    def connect_timeout(self) -> float:
        """The connect timeout in seconds."""
        return self.timeout / 1000

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ClientConfig":
        """
        Build a ClientConfig from a plain mapping.

        Raises:
            ConfigError: For unknown keys or invalid values
        """
        known = {a.name for a in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown client configuration keys: {', '.join(unknown)}")
        try:
            return cls(**data)
        except ConfigError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid client configuration: {e}") from e

    @classmethod
    def from_value(
        cls,
        config_or_address: "ClientConfig | Mapping[str, Any] | str | None",
        ssl: bool | None = None,
        username: str | None = None,
        password: str | None = None,
        channel_options: Mapping[str, Any] | None = None,
    ) -> "ClientConfig":
        """
        Normalise the two construction forms: a configuration object (or
        mapping), or a bare address plus positional options.

        Raises:
            ConfigError: If no address is given or values are invalid
        """
        if isinstance(config_or_address, ClientConfig):
            return config_or_address
        if isinstance(config_or_address, Mapping):
            return cls.from_mapping(config_or_address)
        if config_or_address is None or isinstance(config_or_address, str):
            return cls(
                address=config_or_address or "",
                ssl=bool(ssl),
                username=username,
                password=password,
                channel_options=dict(channel_options) if channel_options else None,
            )
        raise ConfigError(
            f"Expected a ClientConfig, mapping or address string, got {type(config_or_address).__name__}"
        )

# 🐍🏗️🔌
