"""
Response capture for the transcript.

The forwarder feeds every chunk it relays into a :class:`CaptureBuffer`.
Nothing here ever touches the bytes the client receives: the buffer only
keeps a bounded copy, and :func:`render_body` turns that copy into text
for display once the response is complete.
"""

from __future__ import annotations

import gzip
import logging
import zlib
from typing import Callable, Dict, List, Optional, Tuple

import brotli

logger = logging.getLogger(__name__)

MAX_CAPTURE_BYTES = 1024 * 1024


def _inflate(data: bytes) -> bytes:
    # Some servers send raw deflate streams without the zlib header.
    try:
        return zlib.decompress(data)
    except zlib.error:
        return zlib.decompress(data, -zlib.MAX_WBITS)


_DECODERS: Dict[str, Tuple[str, Callable[[bytes], bytes]]] = {
    "gzip": ("gzip", gzip.decompress),
    "deflate": ("deflate", _inflate),
    "br": ("brotli", brotli.decompress),
}


def large_marker(size: int) -> str:
    return f"[Large response: {size} bytes]"


def binary_marker(size: int) -> str:
    return f"[Binary data: {size} bytes]"


def decode_failure_marker(decoder: str, message: str) -> str:
    return f"[Failed to decompress {decoder}: {message}]"


def _as_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return binary_marker(len(data))


def render_body(
    data: bytes,
    content_encoding: Optional[str] = None,
    size: Optional[int] = None,
    limit: int = MAX_CAPTURE_BYTES,
) -> str:
    """Turn a captured response body into display text.

    Args:
        data: The captured bytes, still content-encoded.
        content_encoding: The response's ``Content-Encoding`` header.
        size: Total body size when ``data`` was not kept in full.
        limit: Bodies larger than this are reported by size only.

    Returns:
        The decoded text, or a bracketed marker describing why there is none.
    """
    total = len(data) if size is None else size
    if total > limit:
        return large_marker(total)

    encoding = (content_encoding or "").strip().lower()
    if encoding not in _DECODERS:
        return _as_text(data)

    name, decoder = _DECODERS[encoding]
    try:
        decoded = decoder(data)
    except Exception as e:
        logger.debug(f"Could not decode {name} body for transcript: {e}")
        return decode_failure_marker(name, str(e))
    return _as_text(decoded)


class CaptureBuffer:
    """Bounded in-memory copy of a response body.

    Bytes are kept until the running total passes ``limit`` (never more
    than :data:`MAX_CAPTURE_BYTES`). From then on only the count is tracked,
    since the body will be reported by size.
    """

    def __init__(self, limit: int = MAX_CAPTURE_BYTES):
        self.limit = min(limit, MAX_CAPTURE_BYTES)
        self.size = 0
        self.overflowed = False
        self._chunks: List[bytes] = []

    def feed(self, chunk: bytes) -> None:
        self.size += len(chunk)
        if self.overflowed:
            return
        if self.size > self.limit:
            self.overflowed = True
            self._chunks = []
            return
        self._chunks.append(chunk)

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)

    def render(self, content_encoding: Optional[str] = None) -> str:
        return render_body(self.getvalue(), content_encoding,
                           size=self.size, limit=self.limit)
