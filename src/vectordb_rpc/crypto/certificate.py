"""
PEM Material Loading and Inspection.

This module reads the PEM files referenced by a client's TLS configuration
and validates them with the `cryptography` library, so that a malformed or
unreadable certificate is reported as a configuration problem when the
client is built rather than as an opaque handshake failure later.
"""

import traceback
from datetime import UTC, datetime
from enum import StrEnum, auto
from pathlib import Path

from attrs import define
from cryptography import x509
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from pyvider.telemetry import logger

from vectordb_rpc.exception import CredentialsError


class PemKind(StrEnum):
    CERTIFICATE = auto()
    PRIVATE_KEY = auto()


@define(slots=True, frozen=True)
class CertificateInfo:
    """Identifying details of the first certificate in a PEM bundle."""

    subject: str
    issuer: str
    serial_number: int
    not_valid_before: datetime
    not_valid_after: datetime
    count: int

    @property
    def is_expired(self) -> bool:
        return datetime.now(UTC) > self.not_valid_after

    @property
    def is_not_yet_valid(self) -> bool:
        return datetime.now(UTC) < self.not_valid_before


def inspect_certificates(pem: bytes) -> CertificateInfo:
    """
    📜🔍 Parse a PEM bundle and describe its first certificate.

    Raises:
        CredentialsError: If the data holds no parsable certificate.
    """
    try:
        certs = x509.load_pem_x509_certificates(pem)
    except ValueError as e:
        raise CredentialsError(f"Invalid PEM certificate data: {e}") from e
    if not certs:
        raise CredentialsError("PEM data contains no certificates")

    first = certs[0]
    return CertificateInfo(
        subject=first.subject.rfc4514_string(),
        issuer=first.issuer.rfc4514_string(),
        serial_number=first.serial_number,
        not_valid_before=first.not_valid_before_utc,
        not_valid_after=first.not_valid_after_utc,
        count=len(certs),
    )


def read_pem_file(path: str | Path, kind: PemKind) -> bytes:
    """
    📜📂 Read a PEM file from disk and check that it parses as `kind`.

    Args:
        path: File system path of the PEM file.
        kind: Whether the file should hold certificates or a private key.

    Returns:
        The raw file contents, as passed to gRPC.

    Raises:
        CredentialsError: If the file cannot be read or does not parse.
    """
    logger.debug(f"📜📂🚀 Reading {kind} PEM file: {path}")
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        logger.error(
            f"📜📂❌ Failed to read {kind} PEM file: {path}",
            extra={"error": str(e), "trace": traceback.format_exc()},
        )
        raise CredentialsError(
            f"Failed to read {kind} file: {path}",
            hint="Check the TLS paths in the client configuration.",
        ) from e

    match kind:
        case PemKind.CERTIFICATE:
            info = inspect_certificates(data)
            logger.debug(
                f"📜🔍✅ Loaded {info.count} certificate(s) from {path}, "
                f"subject={info.subject}, expires={info.not_valid_after.isoformat()}"
            )
            if info.is_expired:
                logger.warning(f"📜⚠️ Certificate in {path} expired at {info.not_valid_after.isoformat()}")
            elif info.is_not_yet_valid:
                logger.warning(f"📜⚠️ Certificate in {path} is not valid before {info.not_valid_before.isoformat()}")
        case PemKind.PRIVATE_KEY:
            try:
                load_pem_private_key(data, password=None)
            except (ValueError, TypeError) as e:
                logger.error(f"📜🔑❌ Invalid private key in {path}", extra={"error": str(e)})
                raise CredentialsError(
                    f"Invalid private key file: {path}",
                    hint="Private keys must be unencrypted PEM.",
                ) from e
            logger.debug(f"📜🔑✅ Loaded private key from {path}")

    return data

# 🐍🏗️🔌
