"""
Small helpers shared by configuration and the client: address formatting
and duration-token parsing.
"""

import re

from pyvider.telemetry import logger

# Milliseconds per time-token unit. "M" is a 30-day month, "Y" a 365-day year.
TIME_UNITS_MS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
    "M": 30 * 24 * 60 * 60 * 1000,
    "Y": 365 * 24 * 60 * 60 * 1000,
}

_TIME_TOKEN_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d|w|M|Y)\s*$")

SECURE_SCHEME = "https://"
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def parse_time_token(token: str) -> int:
    """
    Convert a duration token such as "500ms", "15s" or "2h" into milliseconds.

    Args:
        token: Number followed by one of ms, s, m, h, d, w, M, Y.

    Returns:
        The duration in whole milliseconds.

    Raises:
        ValueError: If the token is not a recognised duration.
    """
    match = _TIME_TOKEN_RE.match(token)
    if not match:
        raise ValueError(f"Invalid time token: {token!r}")
    number, unit = match.groups()
    return int(float(number) * TIME_UNITS_MS[unit])


def is_secure_address(address: str) -> bool:
    """True when the address carries the secure scheme."""
    return address.lower().startswith(SECURE_SCHEME)


def format_address(address: str, default_port: int) -> str:
    """
    Turn a user-facing address into a gRPC target.

    Strips any URL scheme and path, and appends `default_port` when the
    address names no port. Bracketed IPv6 literals keep their brackets.

    Examples:
        >>> format_address("https://db.example.com", 19530)
        'db.example.com:19530'
        >>> format_address("localhost:19531", 19530)
        'localhost:19531'
    """
    target = _SCHEME_RE.sub("", address.strip())
    target = target.split("/", 1)[0]
    # userinfo is carried in metadata, never in the target
    target = target.rsplit("@", 1)[-1]

    if target.startswith("["):
        host, _, rest = target.partition("]")
        has_port = rest.startswith(":") and rest[1:].isdigit()
        formatted = target if has_port else f"{host}]:{default_port}"
    else:
        host, sep, port = target.rpartition(":")
        has_port = bool(sep) and port.isdigit()
        formatted = target if has_port else f"{target}:{default_port}"

    logger.debug(f"🧭 Formatted address '{address}' -> '{formatted}'")
    return formatted

# 🐍🏗️🔌
