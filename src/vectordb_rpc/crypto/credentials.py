"""
Security Mode Selection and Channel Credentials.

Given a target address and the TLS-related parts of a client configuration,
this module decides which security tier the client uses and builds the gRPC
credential object that every pooled channel is created with:

- DISABLED: plaintext channel, no credential object.
- ONE_WAY:  TLS that authenticates the server only (system trust store).
- TWO_WAY:  TLS with an explicit root certificate and, optionally, a client
            private key and certificate chain for mutual authentication.

A root certificate path always selects TWO_WAY, whatever the address scheme
or `ssl` flag say.
"""

from enum import StrEnum, auto
from typing import Any

import grpc
from attrs import define, field

from pyvider.telemetry import logger

from vectordb_rpc.config import TLSConfig
from vectordb_rpc.crypto.certificate import PemKind, read_pem_file
from vectordb_rpc.utils import is_secure_address


class SecurityMode(StrEnum):
    DISABLED = auto()
    ONE_WAY = auto()
    TWO_WAY = auto()


@define(frozen=True)
class ResolvedCredentials:
    """
    Output of credential resolution, consumed only by the channel factory.

    Attributes:
        mode: The selected security tier
        channel_credentials: gRPC credentials, None for plaintext channels
        options: TLS-specific channel arguments (server name override, verify options)
    """

    mode: SecurityMode
    channel_credentials: grpc.ChannelCredentials | None = field(default=None, repr=False)
    options: dict[str, Any] = field(factory=dict)

    @property
    def is_secure(self) -> bool:
        return self.mode is not SecurityMode.DISABLED


def resolve_security_mode(address: str, tls: TLSConfig | None = None, ssl: bool = False) -> SecurityMode:
    """
    🔐 Classify the security tier. Pure function of its arguments.

    Examples:
        >>> resolve_security_mode("host:1")
        <SecurityMode.DISABLED: 'disabled'>
        >>> resolve_security_mode("https://host:1")
        <SecurityMode.ONE_WAY: 'one_way'>
        >>> resolve_security_mode("http://host:1", TLSConfig(root_cert_path="ca.pem"))
        <SecurityMode.TWO_WAY: 'two_way'>
    """
    mode = SecurityMode.ONE_WAY if is_secure_address(address) or ssl else SecurityMode.DISABLED
    if tls is not None and tls.root_cert_path:
        mode = SecurityMode.TWO_WAY
    return mode


def resolve_credentials(address: str, tls: TLSConfig | None = None, ssl: bool = False) -> ResolvedCredentials:
    """
    🔐 Select the security tier and materialise its credentials.

    For TWO_WAY, the configured PEM files are read from disk; any of the
    private key and certificate chain may be absent.

    Raises:
        CredentialsError: If a configured PEM file cannot be read or parsed.
    """
    mode = resolve_security_mode(address, tls, ssl)
    logger.debug(f"🔐🔍 Security mode for {address}: {mode}")

    options: dict[str, Any] = {}
    if mode is not SecurityMode.DISABLED and tls is not None:
        if tls.server_name:
            options["grpc.ssl_target_name_override"] = tls.server_name
        options.update(tls.verify_options)

    match mode:
        case SecurityMode.ONE_WAY:
            logger.debug("🔐 Creating TLS credentials with server trust only.")
            credentials = grpc.ssl_channel_credentials()
        case SecurityMode.TWO_WAY if tls is not None:
            root_cert = read_pem_file(tls.root_cert_path, PemKind.CERTIFICATE) if tls.root_cert_path else None
            private_key = read_pem_file(tls.private_key_path, PemKind.PRIVATE_KEY) if tls.private_key_path else None
            cert_chain = read_pem_file(tls.cert_chain_path, PemKind.CERTIFICATE) if tls.cert_chain_path else None
            if bool(private_key) != bool(cert_chain):
                logger.warning("🔐⚠️ Only one of private key / certificate chain configured; client auth may fail.")
            logger.debug(
                f"🔐 Creating mutual TLS credentials (key={private_key is not None}, chain={cert_chain is not None})."
            )
            credentials = grpc.ssl_channel_credentials(
                root_certificates=root_cert,
                private_key=private_key,
                certificate_chain=cert_chain,
            )
        case _:
            logger.info("🔐 TLS not enabled; channels will be insecure.")
            credentials = None

    return ResolvedCredentials(mode=mode, channel_credentials=credentials, options=options)

# 🐍🏗️🔌
