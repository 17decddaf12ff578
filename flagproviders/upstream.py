"""Resolution of a flagd target into a connection endpoint and authority."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

log = logging.getLogger(__name__)

_ENVOY_DEFAULT_PORT = 9211
_IN_PROCESS_DEFAULT_PORT = 8015
_RPC_DEFAULT_PORT = 8013
_INT_PATTERN = re.compile(r"[+-]?\d+")
_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1


def _parse_port(text: str) -> int | None:
    if not _INT_PATTERN.fullmatch(text):
        return None
    value = int(text)
    if not _I32_MIN <= value <= _I32_MAX:
        return None
    return value


def _check_endpoint(endpoint: str) -> str:
    parts = urlsplit(endpoint)
    if not parts.hostname:
        raise ValueError(f"invalid endpoint: {endpoint!r}")
    port = parts.port  # raises ValueError when out of range
    if port is not None and not 0 <= port <= 65535:
        raise ValueError(f"invalid port in endpoint: {endpoint!r}")
    return endpoint


class UpstreamConfig:
    """An endpoint URL and the authority to present when connecting to it."""

    def __init__(self, target: str, is_in_process: bool) -> None:
        log.debug("Creating upstream config for target: %s", target)

        if target.startswith("http://"):
            authority = urlsplit(target).netloc
            if not authority:
                raise ValueError(f"target has no authority: {target!r}")
            self.endpoint = _check_endpoint(target)
            self.authority = authority
            return

        if target.startswith("envoy://"):
            parts = urlsplit(target)
            authority = parts.path.lstrip("/")
            if not authority:
                raise ValueError("Service name (authority) cannot be empty")
            host = parts.hostname or "localhost"
            if ":" in host:
                host = f"[{host}]"
            port = parts.port if parts.port is not None else _ENVOY_DEFAULT_PORT
            endpoint = f"http://{host}:{port}"
        else:
            pieces = target.split(":")
            host = pieces[0]
            port = _parse_port(pieces[1]) if len(pieces) > 1 else None
            if port is None:
                port = _IN_PROCESS_DEFAULT_PORT if is_in_process else _RPC_DEFAULT_PORT
            log.debug("Using standard resolution with %s:%s", host, port)
            if not host:
                raise ValueError("Failed to parse authority: empty host")
            endpoint = f"http://{host}:{port}"
            authority = host

        self.endpoint = _check_endpoint(endpoint)
        self.authority = authority

    def __repr__(self) -> str:
        return f"UpstreamConfig(endpoint={self.endpoint!r}, authority={self.authority!r})"