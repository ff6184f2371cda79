"""
Compatibility Gate.

Version-sensitive operations call `require_capability` before touching the
network. It waits for the connection handshake to settle and then lets the
call proceed, runs a caller-supplied fallback, or raises: an
`IncompatibilityError` when the server predates the handshake, or the
original `ConnectivityError` when the handshake itself failed.
"""

import inspect
from typing import Any

from pyvider.telemetry import logger

from vectordb_rpc.client.connection import ConnectionState, ConnectionStatus
from vectordb_rpc.exception import ConnectivityError, IncompatibilityError
from vectordb_rpc.types import FallbackType

DEFAULT_INCOMPATIBLE_MESSAGE = (
    "This version of sdk is incompatible with the server, "
    "please downgrade your sdk or upgrade your server."
)


async def require_capability(
    state: ConnectionState,
    message: str | None = None,
    fallback: FallbackType | None = None,
) -> Any:
    """
    🛡️ Gate a version-sensitive operation on the handshake outcome.

    Args:
        state: Connection state of the client
        message: Error message used instead of the default for incompatible servers
        fallback: Called (and awaited if it returns an awaitable) instead of
            raising when the server is incompatible

    Returns:
        None when the server is connected, otherwise the fallback's result.

    Raises:
        IncompatibilityError: Server predates the handshake and no fallback was given.
        ConnectivityError: The handshake failed; chained to the stored failure.
    """
    status = await state.settled()

    match status:
        case ConnectionStatus.UNIMPLEMENTED:
            if fallback is not None:
                logger.debug("🛡️🔀 Server incompatible, running fallback")
                result = fallback()
                if inspect.isawaitable(result):
                    result = await result
                return result
            logger.warning("🛡️⚠️ Operation rejected: server is incompatible")
            raise IncompatibilityError(message or DEFAULT_INCOMPATIBLE_MESSAGE, code=status.name)

        case ConnectionStatus.FAILED:
            cause = state.last_error
            if cause is None:
                raise ConnectivityError("Connection to the server failed")
            # Each call raises its own error, chained to the stored one.
            raise ConnectivityError(cause.args[0], code=cause.code, hint=cause.hint) from cause

        case _:
            return None

# 🐍🏗️🔌
