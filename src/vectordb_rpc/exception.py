"""
Custom Exceptions for the VectorDB RPC client.

This module defines the hierarchy of exceptions raised by the client to
separate configuration problems (fatal at construction) from connectivity
failures, server incompatibility, and payload encoding problems.
"""


class VectorDBError(Exception):
    """Base class for all client-specific errors."""
    def __init__(self, message: str, code: str | None = None, hint: str | None = None) -> None:
        """
        Initialize VectorDBError.

        Args:
            message: The error message.
            code: An optional error code (gRPC status code name for RPC failures).
            hint: An optional hint for resolving the error.
        """
        super().__init__(message)
        self.code = code
        self.hint = hint

    def __str__(self) -> str:
        """Return a string representation of the error, including the hint if available."""
        base_message = super().__str__()
        if self.hint:
            return f"{base_message} (Hint: {self.hint})"
        return base_message


class ConfigError(VectorDBError):
    """Invalid client configuration, missing schema files or unresolvable schema types."""


class CredentialsError(ConfigError):
    """TLS material that could not be read or parsed."""


class ConnectivityError(VectorDBError):
    """Channel creation or network-level RPC failure."""


class IncompatibilityError(VectorDBError):
    """The server lacks a capability required by the client."""


class ProtocolError(VectorDBError):
    """Malformed payloads or encode/decode failures of schema-typed fields."""

# 🐍🏗️🔌
