"""Shared transform helpers for building event property dicts."""

from typing import Any
from urllib.parse import urlsplit

from visitrelay.telemetry.errors import MalformedInputError


def strip_none(value: Any) -> Any:
    """Recursively drop None entries from dicts and lists."""
    if isinstance(value, dict):
        return {k: strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_none(v) for v in value if v is not None]
    return value


def parse_hostname(url: str, field: str = "url") -> str:
    """Return the hostname of an absolute URL.

    Raises:
        MalformedInputError: If the URL has no scheme or host, or cannot be
            split at all (e.g. an unterminated IPv6 literal).
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        _ = parts.port  # raises on a non-numeric or out-of-range port
    except ValueError as e:
        raise MalformedInputError(field, url) from e
    if not parts.scheme or not hostname:
        raise MalformedInputError(field, url)
    return hostname
