"""
Credential handling for the VectorDB RPC client: security mode selection,
gRPC channel credentials, and PEM loading.
"""

from vectordb_rpc.crypto.certificate import CertificateInfo, PemKind, inspect_certificates, read_pem_file
from vectordb_rpc.crypto.credentials import (
    ResolvedCredentials,
    SecurityMode,
    resolve_credentials,
    resolve_security_mode,
)

__all__ = [
    "CertificateInfo",
    "PemKind",
    "ResolvedCredentials",
    "SecurityMode",
    "inspect_certificates",
    "read_pem_file",
    "resolve_credentials",
    "resolve_security_mode",
]

# 🐍🏗️🔌
