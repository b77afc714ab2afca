"""Exception types raised by the proxy core."""

from __future__ import annotations


class MirrorProxyError(Exception):
    """Base class for all proxy errors."""


class InvalidTargetError(MirrorProxyError):
    """The inbound request does not resolve to a usable absolute URL."""

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        msg = f"Invalid URL: {url}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class UpstreamError(MirrorProxyError):
    """Connecting to or reading from the destination server failed."""

    def __init__(self, message: str, headers_sent: bool = False):
        self.headers_sent = headers_sent
        super().__init__(message)
