"""
Proxy server lifecycle and inbound request handling.

:class:`ProxyServer` owns one listening socket, the log store, and the
forwarding options for a running proxy. Each accepted connection is served
on its own daemon thread by :class:`ProxyRequestHandler`, which resolves the
destination, hands the request to a :class:`Forwarder`, and files the
finished :class:`LogRecord`.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from http.server import BaseHTTPRequestHandler
from socketserver import ThreadingTCPServer
from typing import Any, Callable, Dict, List, Optional

from mirrorproxy import __version__
from mirrorproxy.core.errors import InvalidTargetError, UpstreamError
from mirrorproxy.core.forwarder import ForwardOptions, Forwarder
from mirrorproxy.core.models import LogRecord, snapshot_headers
from mirrorproxy.core.resolver import parse_target, resolve_target
from mirrorproxy.core.store import DEFAULT_CAPACITY, LogStore

logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


# ── Request Handler ──────────────────────────────────────────────────────────

class ProxyRequestHandler(BaseHTTPRequestHandler):
    """Serves one inbound connection, one request per connection."""

    protocol_version = "HTTP/1.1"
    server_version = f"MirrorProxy/{__version__}"

    # Request-target exactly as the client sent it, when it had to be
    # rewritten for the request-line parser.
    original_target: Optional[str] = None

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")

    def parse_request(self) -> bool:
        # A target with spaces in it is still a target. It is re-joined with
        # %20 so the line parses, and the original text is kept for the log.
        self.original_target = None
        words = self.raw_requestline.split()
        if len(words) > 3 and words[-1].startswith(b"HTTP/"):
            line = self.raw_requestline.rstrip(b"\r\n")
            start = line.index(words[0]) + len(words[0])
            self.original_target = line[start:line.rindex(words[-1])].strip().decode("iso-8859-1")
            target = b"%20".join(words[1:-1])
            self.raw_requestline = b" ".join((words[0], target, words[-1])) + b"\r\n"
        return super().parse_request()

    def do_GET(self):
        self._proxy_request()

    def do_POST(self):
        self._proxy_request()

    def do_PUT(self):
        self._proxy_request()

    def do_DELETE(self):
        self._proxy_request()

    def do_PATCH(self):
        self._proxy_request()

    def do_HEAD(self):
        self._proxy_request()

    def do_OPTIONS(self):
        self._proxy_request()

    def do_TRACE(self):
        self._proxy_request()

    def do_CONNECT(self):
        self.close_connection = True
        self.send_error(501, "CONNECT tunnelling is not supported")

    def __getattr__(self, name: str):
        # Extension methods (PURGE, PROPFIND, ...) have no do_ method of
        # their own and are proxied like the standard ones.
        if name.startswith("do_"):
            return self._proxy_request
        raise AttributeError(name)

    def _send_plain(self, code: int, text: str) -> None:
        body = text.encode("utf-8")
        try:
            self.send_response(code)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(body)))
            self.send_header("Connection", "close")
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(body)
        except OSError as e:
            logger.debug(f"Could not send {code} to client: {e}")

    def _proxy_request(self) -> None:
        proxy: ProxyServer = self.server.proxy  # type: ignore[attr-defined]
        self.close_connection = True

        url = resolve_target(self.original_target or self.path, self.headers.get("Host"))
        record = LogRecord(
            method=self.command,
            url=url,
            request_headers=snapshot_headers(self.headers.items()),
        )
        logger.debug(f"[Proxy] {self.command} {url}")

        try:
            target = parse_target(url)
        except InvalidTargetError as e:
            logger.debug(f"Rejected request: {e}")
            record.error = f"Invalid URL: {url}"
            record.status_code = 400
            proxy._record(record)
            self._send_plain(400, "Bad Request: Invalid URL")
            return

        try:
            Forwarder(self, target, record, proxy.options).run()
        except UpstreamError as e:
            logger.debug(f"Upstream error for {url}: {e}")
            proxy._record(record)
            if not e.headers_sent:
                self._send_plain(502, f"Proxy Error: {e}")
            return

        proxy._record(record)


class _ThreadingProxyServer(ThreadingTCPServer):
    """Threaded TCP server with a back-reference to its controller."""
    allow_reuse_address = True
    daemon_threads = True
    request_queue_size = 128
    # stop() must not wait for in-flight transfers to drain.
    block_on_close = False

    def __init__(self, addr, handler, proxy: "ProxyServer"):
        self.proxy = proxy
        super().__init__(addr, handler)

    def handle_error(self, request, client_address):
        logger.exception(f"Unhandled error serving {client_address}")


# ── Lifecycle Controller ─────────────────────────────────────────────────────

class ProxyServer:
    """
    One proxy instance: listening socket, log store, forwarding options.

    Several instances may run side by side on different ports. Log records
    are delivered to ``on_log_added`` (and any later subscribers) once each,
    as soon as they are finalized.
    """

    def __init__(
        self,
        port: int = 8888,
        on_log_added: Optional[Callable[[LogRecord], None]] = None,
        host: str = "127.0.0.1",
        max_logs: int = DEFAULT_CAPACITY,
        options: Optional[ForwardOptions] = None,
    ):
        self.port = port
        self.host = host
        self.store = LogStore(max_logs)
        self.options = options or ForwardOptions()
        self.state = ServerState.STOPPED
        self._server: Optional[_ThreadingProxyServer] = None
        self._thread: Optional[threading.Thread] = None
        self._start_time: float = 0
        if on_log_added:
            self.store.on_appended(on_log_added)

    @property
    def is_running(self) -> bool:
        return self.state is ServerState.RUNNING

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self, port: Optional[int] = None) -> Dict[str, Any]:
        """Bind the listening socket and start accepting connections.

        Args:
            port: Port to listen on; defaults to the one given at
                construction. ``0`` picks a free port.

        Returns:
            Status dict. ``ok`` is False when the port could not be bound.
        """
        if self.state is not ServerState.STOPPED:
            return {"ok": False, "error": f"Proxy already running on port {self.port}"}

        if port is not None:
            self.port = port
        self.state = ServerState.STARTING
        try:
            self._server = _ThreadingProxyServer(
                (self.host, self.port), ProxyRequestHandler, self)
        except OSError as e:
            self.state = ServerState.STOPPED
            self._server = None
            logger.warning(f"Cannot bind {self.host}:{self.port}: {e}")
            return {"ok": False, "error": f"Cannot bind port {self.port}: {e}"}

        self.port = self._server.server_address[1]
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name=f"mirrorproxy-{self.port}",
        )
        self._thread.start()
        self._start_time = time.time()
        self.state = ServerState.RUNNING
        logger.info(f"Proxy server listening on port {self.port}")

        base = f"http://{self.host}:{self.port}"
        return {
            "ok": True,
            "port": self.port,
            "message": f"Proxy server listening on {self.host}:{self.port}",
            "proxy_url": base,
            "curl_example": f"curl -x {base} http://example.com",
            "path_example": f"curl {base}/https://example.com",
        }

    def stop(self) -> Dict[str, Any]:
        """Close the listening socket.

        Transfers already in progress keep running on their own threads.
        """
        if self.state is not ServerState.RUNNING:
            return {"ok": False, "error": "Proxy is not running"}

        self.state = ServerState.STOPPING
        try:
            self._server.shutdown()
            self._server.server_close()
        except OSError as e:
            logger.debug(f"Error during proxy shutdown: {e}")
        if self._thread:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
        self.state = ServerState.STOPPED
        logger.info("Proxy server stopped")

        stats = self.store.stats()
        stats["ok"] = True
        stats["uptime_seconds"] = round(time.time() - self._start_time, 1)
        stats["message"] = "Proxy stopped"
        return stats

    # ── Logs ─────────────────────────────────────────────────────────────

    def _record(self, record: LogRecord) -> None:
        record.mark_done()
        self.store.append(record)

    def get_port(self) -> int:
        return self.port

    def get_logs(self) -> List[LogRecord]:
        return self.store.snapshot()

    def clear_logs(self) -> int:
        return self.store.clear_all()

    def on_log_added(self, callback: Callable[[LogRecord], None]) -> None:
        self.store.on_appended(callback)
