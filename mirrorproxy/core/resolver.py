"""
Target resolution: work out where an inbound request is really going.

Three addressing conventions are understood, tried in this order:

1. Standard proxy mode, the request line carries an absolute URL
   (``GET http://api.example.com/v1 HTTP/1.1``).
2. Path mode, an http or https URL is embedded after a leading slash
   (``GET /https://api.example.com/v1 HTTP/1.1``), for clients that
   cannot be configured with a proxy. Other schemes fall through to host
   mode, so ``/s3://bucket/key`` is just a path.
3. Host mode, anything else is rebuilt from the Host header as
   ``http://<host><target>``. The scheme is always assumed to be plain
   HTTP here since nothing in the request says otherwise.
"""

from __future__ import annotations

import ipaddress
import re
import urllib.parse
from dataclasses import dataclass
from typing import Optional

from mirrorproxy.core.errors import InvalidTargetError

_ABSOLUTE_URL = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
_PATH_MODE = re.compile(r"^/https?://", re.IGNORECASE)
_FORBIDDEN_CHARS = re.compile(r"[\x00-\x20\x7f]")
_HOSTNAME = re.compile(r"^[A-Za-z0-9_~\-]+(\.[A-Za-z0-9_~\-]+)*\.?$")

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class Target:
    """A validated destination."""
    url: str
    scheme: str
    hostname: str
    port: int
    path: str

    @property
    def is_https(self) -> bool:
        return self.scheme == "https"


def resolve_target(request_target: str, host: Optional[str] = None) -> str:
    """Derive the candidate destination URL for a request.

    Args:
        request_target: The raw request-target from the request line.
        host: The Host header value, if the request had one.

    Returns:
        A URL string. It is not validated here; see :func:`parse_target`.
    """
    if _ABSOLUTE_URL.match(request_target):
        return request_target
    if _PATH_MODE.match(request_target):
        return request_target[1:]
    if host:
        return f"http://{host}{request_target}"
    return request_target


def _valid_hostname(hostname: str) -> bool:
    if ":" in hostname:
        try:
            ipaddress.IPv6Address(hostname)
        except ValueError:
            return False
        return True
    return bool(_HOSTNAME.match(hostname))


def parse_target(url: str) -> Target:
    """Validate ``url`` as an absolute http(s) URL.

    Raises:
        InvalidTargetError: if the URL cannot be forwarded to.
    """
    if not url or _FORBIDDEN_CHARS.search(url):
        raise InvalidTargetError(url, "empty or contains whitespace")

    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError as e:
        raise InvalidTargetError(url, str(e)) from e
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise InvalidTargetError(url, "scheme must be http or https")

    hostname = parts.hostname
    if not hostname or not _valid_hostname(hostname):
        raise InvalidTargetError(url, "missing or malformed host")

    try:
        port = parts.port
    except ValueError as e:
        raise InvalidTargetError(url, str(e)) from e
    if port is None:
        port = DEFAULT_PORTS[scheme]
    elif port == 0:
        raise InvalidTargetError(url, "port out of range")

    path = parts.path or "/"
    if parts.query:
        path += f"?{parts.query}"

    return Target(url=url, scheme=scheme, hostname=hostname, port=port, path=path)
