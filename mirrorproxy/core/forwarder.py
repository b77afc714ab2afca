"""
Outbound forwarding for a single proxied request.

One :class:`Forwarder` serves one inbound request: it opens a fresh
connection to the destination, streams the request body up, then relays
the response status, headers and body back to the client exactly as they
arrived. Every relayed chunk is also fed to a :class:`CaptureBuffer` so the
transcript can be rendered afterwards.
"""

from __future__ import annotations

import http.client
import logging
import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional

from mirrorproxy.core.capture import MAX_CAPTURE_BYTES, CaptureBuffer
from mirrorproxy.core.errors import UpstreamError
from mirrorproxy.core.models import LogRecord, header_value, snapshot_headers
from mirrorproxy.core.resolver import Target

if TYPE_CHECKING:
    from http.server import BaseHTTPRequestHandler

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
_MAX_LINE = 65536


@dataclass
class ForwardOptions:
    """Per-server knobs for outbound connections."""
    upstream_timeout: Optional[float] = None
    verify_tls: bool = True
    chunk_size: int = READ_CHUNK_SIZE
    capture_limit: int = MAX_CAPTURE_BYTES


def open_connection(target: Target, options: ForwardOptions) -> http.client.HTTPConnection:
    """Plain or TLS connection to ``target``; nothing is sent yet."""
    if target.is_https:
        ctx = ssl.create_default_context()
        if not options.verify_tls:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        return http.client.HTTPSConnection(
            target.hostname, target.port,
            timeout=options.upstream_timeout, context=ctx,
        )
    return http.client.HTTPConnection(
        target.hostname, target.port, timeout=options.upstream_timeout,
    )


def _has_body(method: str, status: int) -> bool:
    if method.upper() == "HEAD":
        return False
    return not (100 <= status < 200 or status in (204, 304))


class Forwarder:
    """Relay one request to its destination and capture the response."""

    def __init__(
        self,
        handler: "BaseHTTPRequestHandler",
        target: Target,
        record: LogRecord,
        options: Optional[ForwardOptions] = None,
    ):
        self.handler = handler
        self.target = target
        self.record = record
        self.options = options or ForwardOptions()
        self.capture = CaptureBuffer(self.options.capture_limit)

    # ── Request side ─────────────────────────────────────────────────────

    def _request_body(self) -> Iterator[bytes]:
        """Yield the inbound body in its original framing, chunk by chunk."""
        headers = self.handler.headers
        rfile = self.handler.rfile
        size = self.options.chunk_size

        if "chunked" in headers.get("Transfer-Encoding", "").lower():
            while True:
                line = rfile.readline(_MAX_LINE)
                if not line:
                    raise ConnectionError("client closed connection mid-body")
                yield line
                chunk_len = int(line.split(b";", 1)[0].strip(), 16)
                if chunk_len == 0:
                    while True:
                        trailer = rfile.readline(_MAX_LINE)
                        if trailer:
                            yield trailer
                        if trailer in (b"\r\n", b"\n", b""):
                            return
                remaining = chunk_len + 2
                while remaining > 0:
                    data = rfile.read(min(remaining, size))
                    if not data:
                        raise ConnectionError("client closed connection mid-body")
                    remaining -= len(data)
                    yield data
            return

        remaining = int(headers.get("Content-Length") or 0)
        while remaining > 0:
            data = rfile.read(min(remaining, size))
            if not data:
                raise ConnectionError("client closed connection mid-body")
            remaining -= len(data)
            yield data

    def _send_request(self, conn: http.client.HTTPConnection) -> http.client.HTTPResponse:
        conn.putrequest(self.handler.command, self.target.path,
                        skip_accept_encoding=True)
        for name, value in self.handler.headers.items():
            if name.lower() == "host":
                continue
            conn.putheader(name, value)
        conn.endheaders()
        for data in self._request_body():
            conn.send(data)
        return conn.getresponse()

    # ── Response side ────────────────────────────────────────────────────

    def _send_response_head(self, resp: http.client.HTTPResponse) -> None:
        h = self.handler
        h.send_response_only(resp.status, resp.reason)
        for name, value in resp.getheaders():
            h.send_header(name, value)
        h.end_headers()

    def _relay_body(self, resp: http.client.HTTPResponse) -> None:
        wfile = self.handler.wfile
        chunked = "chunked" in (resp.getheader("Transfer-Encoding") or "").lower()
        client_ok = True

        while True:
            try:
                data = resp.read1(self.options.chunk_size)
            except (OSError, http.client.HTTPException) as e:
                raise UpstreamError(str(e) or e.__class__.__name__, headers_sent=True) from e
            if not data:
                if resp.length:
                    raise UpstreamError(
                        f"Upstream closed connection with {resp.length} bytes outstanding",
                        headers_sent=True,
                    )
                break
            self.capture.feed(data)
            self.record.response_size += len(data)
            try:
                if chunked:
                    wfile.write(b"%x\r\n" % len(data) + data + b"\r\n")
                else:
                    wfile.write(data)
                wfile.flush()
            except OSError as e:
                logger.debug(f"Client went away during relay of {self.record.url}: {e}")
                self.record.error = f"Client disconnected: {e}"
                client_ok = False
                break

        if chunked and client_ok:
            try:
                wfile.write(b"0\r\n\r\n")
                wfile.flush()
            except OSError as e:
                self.record.error = f"Client disconnected: {e}"

    # ── Entry point ──────────────────────────────────────────────────────

    def run(self) -> LogRecord:
        """Forward the request. Returns the finalized record.

        Raises:
            UpstreamError: if the destination could not be reached or failed
                mid-response. ``headers_sent`` tells the caller whether a
                502 can still be sent to the client.
        """
        conn = open_connection(self.target, self.options)
        try:
            try:
                resp = self._send_request(conn)
            except (OSError, ValueError, http.client.HTTPException) as e:
                raise UpstreamError(str(e) or e.__class__.__name__) from e

            self.record.status_code = resp.status
            self.record.response_headers = snapshot_headers(resp.getheaders())

            try:
                self._send_response_head(resp)
            except OSError as e:
                self.record.error = f"Client disconnected: {e}"
                return self.record

            if _has_body(self.handler.command, resp.status):
                self._relay_body(resp)
            else:
                resp.read()
        except UpstreamError as e:
            self.record.error = str(e)
            self.record.status_code = 502
            if e.headers_sent:
                self.record.response_body = self._render()
            raise
        finally:
            conn.close()

        self.record.response_body = self._render()
        return self.record

    def _render(self) -> str:
        encoding = header_value(self.record.response_headers, "content-encoding")
        return self.capture.render(encoding)
